"""Random business events: triggering, weighted consequences and resolution."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from tick_shop.config import EffectSpec
from tick_shop.dynamic import evaluate as evaluate_dynamic
from tick_shop.effects import apply_effect
from tick_shop.requirements import RequirementSnapshot, evaluate_all
from tick_shop.rewards import add_exp, apply_grant, is_one_time, record_cash
from tick_shop.types import ActionError, Effect, EffectSource, EffectType, Metric

if TYPE_CHECKING:
    from tick_shop.config import ChoiceDef, ConsequenceDef, EventDef, ShopConfig
    from tick_shop.registry import EffectRegistry
    from tick_shop.scheduler import ShopState

logger = logging.getLogger(__name__)

# Balances adjusted in place when a non-Add effect targets them.
_DIRECT_BALANCES = {
    Metric.CASH: "cash",
    Metric.EXP: "exp",
    Metric.MY_TIME: "my_time",
}


@dataclass(frozen=True)
class ResolvedEffect:
    """An event effect with every dynamic amount fixed at choice time."""

    kind: str  # cash | exp | metric
    amount: float = 0.0
    metric: Metric | None = None
    effect_type: EffectType | None = None
    priority: int = 0
    duration_seconds: float | None = None
    label: str | None = None


@dataclass(frozen=True)
class EventOutcome:
    event_id: str
    choice_id: str
    consequence_id: str | None
    cost_paid: float
    time_cost_paid: float
    effects: tuple[ResolvedEffect, ...]


def eligible_events(config: ShopConfig, snapshot: RequirementSnapshot) -> list[EventDef]:
    return [e for e in config.events if evaluate_all(e.requirements, snapshot)]


def maybe_trigger(
    config: ShopConfig, snapshot: RequirementSnapshot, rng: random.Random
) -> EventDef | None:
    """Roll for an event. Returns the chosen event, or None."""
    if not config.events:
        return None
    if rng.random() >= config.stats.event_probability:
        return None
    candidates = eligible_events(config, snapshot)
    if not candidates:
        return None
    return rng.choice(candidates)


def pick_consequence(choice: ChoiceDef, rng: random.Random) -> ConsequenceDef | None:
    """Weighted pick; negative weights count as zero."""
    if not choice.consequences:
        return None
    total = sum(max(0.0, c.weight) for c in choice.consequences)
    if total <= 0:
        logger.warning(
            "Choice %r has no positive consequence weights; using the first", choice.id
        )
        return choice.consequences[0]
    roll = rng.random() * total
    cumulative = 0.0
    for consequence in choice.consequences:
        cumulative += max(0.0, consequence.weight)
        if roll < cumulative:
            return consequence
    return choice.consequences[-1]


def resolve_effects(
    consequence: ConsequenceDef | None, period_expenses: float
) -> tuple[ResolvedEffect, ...]:
    if consequence is None:
        return ()
    resolved = []
    for effect in consequence.effects:
        if effect.type == "dynamicCash":
            amount = evaluate_dynamic(effect.expression, period_expenses)
            resolved.append(ResolvedEffect("cash", amount=amount, label=effect.label))
        elif effect.type in ("cash", "exp"):
            resolved.append(ResolvedEffect(effect.type, amount=effect.amount, label=effect.label))
        else:
            resolved.append(
                ResolvedEffect(
                    "metric",
                    amount=effect.value,
                    metric=effect.metric,
                    effect_type=effect.effect_type,
                    priority=effect.priority,
                    duration_seconds=effect.duration_seconds,
                    label=effect.label,
                )
            )
    return tuple(resolved)


def resolve_choice(
    state: ShopState,
    registry: EffectRegistry,
    config: ShopConfig,
    event: EventDef,
    choice_id: str,
    rng: random.Random,
) -> EventOutcome:
    """Pay the choice's costs, pick a consequence and apply it to ``state``."""
    choice = event.choice(choice_id)
    if choice is None:
        raise ActionError(f"Event {event.id!r} has no choice {choice_id!r}")
    time_cost = choice.time_cost if config.time_enabled else 0.0
    if time_cost > state.metrics.my_time:
        raise ActionError(
            f"Not enough personal time: need {time_cost:g}, have {state.metrics.my_time:g}"
        )

    label = f"{event.title or event.id} - {choice.label or choice.id}"
    if choice.cost > 0:
        record_cash(state, -choice.cost, f"{label} (cost)", "event")
    if time_cost > 0:
        state.metrics = replace(state.metrics, my_time=state.metrics.my_time - time_cost)

    consequence = pick_consequence(choice, rng)
    resolved = resolve_effects(consequence, state.period_expenses)
    apply_resolved(state, registry, config, event, choice, resolved, label)
    if choice.sets_flag:
        state.flags[choice.sets_flag] = True

    return EventOutcome(
        event_id=event.id,
        choice_id=choice.id,
        consequence_id=consequence.id if consequence else None,
        cost_paid=choice.cost,
        time_cost_paid=time_cost,
        effects=resolved,
    )


def apply_resolved(
    state: ShopState,
    registry: EffectRegistry,
    config: ShopConfig,
    event: EventDef,
    choice: ChoiceDef,
    resolved: tuple[ResolvedEffect, ...],
    label: str,
) -> None:
    source = EffectSource("event", event.id, event.title)
    rate = registry.current_value(Metric.LEAD_CONVERSION_RATE, config.stats.lead_conversion_rate)
    for i, effect in enumerate(resolved):
        if effect.kind == "cash":
            record_cash(state, effect.amount, effect.label or label, "event")
        elif effect.kind == "exp":
            add_exp(state, effect.amount)
        elif is_one_time(effect.metric, effect.effect_type):
            apply_grant(state, effect.metric, effect.amount, effect.label or label, "event", rate)
        elif effect.metric in _DIRECT_BALANCES:
            # One-shot adjustment of a balance, e.g. "lose 10% of cash".
            current = getattr(state.metrics, _DIRECT_BALANCES[effect.metric])
            bound = _bind(effect, source, f"event-{event.id}-{choice.id}-{state.tick}-{i}", 0, 1)
            delta = apply_effect(current, bound) - current
            apply_grant(state, effect.metric, delta, effect.label or label, "event", rate)
        else:
            registry.add(
                _bind(
                    effect,
                    source,
                    f"event-{event.id}-{choice.id}-{state.tick}-{i}",
                    state.tick,
                    config.stats.ticks_per_second,
                )
            )


def _bind(
    effect: ResolvedEffect, source: EffectSource, effect_id: str, tick: int, tps: int
) -> Effect:
    spec = EffectSpec(
        metric=effect.metric,
        type=effect.effect_type,
        value=effect.amount,
        priority=effect.priority,
        duration_seconds=effect.duration_seconds,
    )
    return spec.bind(source, effect_id, tick, tps)
