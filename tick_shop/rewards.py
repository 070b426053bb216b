"""One-time grants versus persistent modifiers, and level-up rewards."""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import TYPE_CHECKING

from tick_shop.economy import OneTimeCost, level_for_exp
from tick_shop.types import EffectSource, EffectType, Metric

if TYPE_CHECKING:
    from tick_shop.config import EffectSpec, ShopConfig
    from tick_shop.registry import EffectRegistry
    from tick_shop.scheduler import ShopState

logger = logging.getLogger(__name__)

# Spendable resources: an Add on one of these is paid out once.
ONE_TIME_METRICS = frozenset({
    Metric.CASH,
    Metric.MY_TIME,
    Metric.LEVERAGED_TIME,
    Metric.EXP,
    Metric.GENERATE_LEADS,
})


def is_one_time(metric: Metric, effect_type: EffectType) -> bool:
    return effect_type is EffectType.ADD and metric in ONE_TIME_METRICS


def record_cash(state: ShopState, amount: float, label: str, category: str) -> None:
    """Credit income or charge an immediate one-time cost."""
    m = state.metrics
    if amount >= 0:
        state.metrics = replace(
            m, cash=m.cash + amount, total_revenue=m.total_revenue + amount
        )
        state.period_revenue += amount
        return
    cost = -amount
    state.metrics = replace(m, cash=m.cash - cost)
    state.one_time_costs.append(
        OneTimeCost(label=label, amount=cost, category=category, already_deducted=True)
    )
    state.one_time_costs_paid += cost


def add_exp(state: ShopState, amount: float) -> None:
    state.metrics = replace(state.metrics, exp=max(0.0, state.metrics.exp + amount))


def apply_grant(
    state: ShopState,
    metric: Metric,
    amount: float,
    label: str,
    category: str,
    lead_conversion_rate: float,
) -> None:
    """Apply a one-time grant straight to the state, bypassing the registry."""
    m = state.metrics
    if metric is Metric.CASH:
        record_cash(state, amount, label, category)
    elif metric is Metric.EXP:
        add_exp(state, amount)
    elif metric is Metric.MY_TIME:
        state.metrics = replace(m, my_time=max(0.0, m.my_time + amount))
    elif metric is Metric.LEVERAGED_TIME:
        state.metrics = replace(m, leveraged_time=max(0.0, m.leveraged_time + amount))
    elif metric is Metric.GENERATE_LEADS:
        leads = max(0, math.floor(amount))
        state.lead_progress += leads * lead_conversion_rate
    else:
        raise ValueError(f"{metric.value} has no one-time form")


def apply_specs(
    state: ShopState,
    registry: EffectRegistry,
    specs: tuple[EffectSpec, ...],
    source: EffectSource,
    id_prefix: str,
    config: ShopConfig,
    label: str,
) -> None:
    """Route each spec to a one-time grant or a persistent registry effect."""
    tps = config.stats.ticks_per_second
    rate = registry.current_value(Metric.LEAD_CONVERSION_RATE, config.stats.lead_conversion_rate)
    for i, spec in enumerate(specs):
        if is_one_time(spec.metric, spec.type):
            apply_grant(state, spec.metric, spec.value, label, source.category, rate)
        else:
            registry.add(spec.bind(source, f"{id_prefix}-effect-{i}", state.tick, tps))


def apply_level_ups(
    state: ShopState, registry: EffectRegistry, config: ShopConfig
) -> list[int]:
    """Grant the reward of every level reached but not yet rewarded.

    Rewards may grant experience themselves, so this repeats until the
    level is stable. Each level is rewarded at most once per game.
    """
    gained: list[int] = []
    while True:
        level = level_for_exp(state.metrics.exp, config.stats.exp_per_level)
        if level <= state.rewarded_level:
            return gained
        for number in range(state.rewarded_level + 1, level + 1):
            state.rewarded_level = number
            gained.append(number)
            reward = config.level_reward(number)
            logger.info("Reached level %d", number)
            if reward is None:
                continue
            source_id = f"level-{number}"
            apply_specs(
                state,
                registry,
                reward.effects,
                EffectSource("level", source_id, reward.title),
                source_id,
                config,
                f"Level {number} reward: {reward.title}",
            )
            for flag in reward.unlocks_flags:
                state.flags[flag] = True
