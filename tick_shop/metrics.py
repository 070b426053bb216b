"""Per-metric valid ranges and the derived-metrics bundle read once per tick."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tick_shop.types import Metric

if TYPE_CHECKING:
    from tick_shop.config import ShopConfig
    from tick_shop.registry import EffectRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricConstraint:
    """Valid range for a metric after effects are combined.

    ``degenerate_at`` marks values that indicate a misconfigured effect
    combination; reaching it is logged as a warning before clamping.
    """

    min: float | None = None
    max: float | None = None
    round_to_int: bool = False
    degenerate_at: float | None = None


METRIC_CONSTRAINTS: dict[Metric, MetricConstraint] = {
    Metric.SPAWN_INTERVAL_SECONDS: MetricConstraint(min=0.0, degenerate_at=0.0),
    Metric.SERVICE_SPEED_MULTIPLIER: MetricConstraint(min=0.1, degenerate_at=0.0),
    Metric.SERVICE_ROOMS: MetricConstraint(min=1, round_to_int=True),
    Metric.HAPPY_PROBABILITY: MetricConstraint(min=0.0, max=1.0),
    Metric.REPUTATION_MULTIPLIER: MetricConstraint(min=0.0),
    Metric.PERIOD_EXPENSES: MetricConstraint(min=0.0),
    Metric.SERVICE_REVENUE_MULTIPLIER: MetricConstraint(min=0.0),
    Metric.LEAD_CONVERSION_RATE: MetricConstraint(min=1.0),
    Metric.MONTHLY_TIME_CAPACITY: MetricConstraint(min=0, round_to_int=True),
    Metric.LEVERAGED_TIME: MetricConstraint(min=0, round_to_int=True),
}


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def clamp_metric(metric: Metric, value: float) -> float:
    """Clamp ``value`` into the valid range of ``metric``.

    Metrics without a constraint (cash, exp, time grants) pass through.
    """
    constraint = METRIC_CONSTRAINTS.get(metric)
    if constraint is None:
        return value
    if constraint.degenerate_at is not None and value <= constraint.degenerate_at:
        logger.warning(
            "Metric %s computed to %r; clamping to %r", metric.value, value, constraint.min
        )
    result = value
    if constraint.min is not None:
        result = max(constraint.min, result)
    if constraint.max is not None:
        result = min(constraint.max, result)
    if constraint.round_to_int:
        result = round_half_up(result)
    return result


def seconds_to_ticks(seconds: float, ticks_per_second: int) -> int:
    """Convert seconds to whole ticks, never less than one."""
    ticks = round_half_up(seconds * ticks_per_second)
    if ticks < 1:
        logger.warning("Interval of %r seconds is below one tick; using 1 tick", seconds)
        return 1
    return ticks


@dataclass(frozen=True)
class DerivedMetrics:
    """Current metric values computed once per tick from the effect registry."""

    spawn_interval_seconds: float
    spawn_interval_ticks: int
    service_speed: float
    service_rooms: int
    reputation_multiplier: float
    happy_probability: float
    period_expenses: float
    revenue_multiplier: float
    revenue_flat_bonus: float
    lead_conversion_rate: float
    leveraged_time_capacity: float


def base_value(metric: Metric, config: ShopConfig) -> float:
    """Config-defined value a metric starts from before effects apply.

    Balances (cash, exp, time) have no fixed base; their effects start from 0.
    """
    stats = config.stats
    bases = {
        Metric.SPAWN_INTERVAL_SECONDS: stats.customer_spawn_interval_seconds,
        Metric.SERVICE_SPEED_MULTIPLIER: 1.0,
        Metric.SERVICE_ROOMS: stats.service_rooms,
        Metric.REPUTATION_MULTIPLIER: 1.0,
        Metric.HAPPY_PROBABILITY: stats.base_happy_probability,
        Metric.PERIOD_EXPENSES: config.metrics.base_period_expenses,
        Metric.SERVICE_REVENUE_MULTIPLIER: stats.service_revenue_multiplier,
        Metric.LEAD_CONVERSION_RATE: stats.lead_conversion_rate,
        Metric.MONTHLY_TIME_CAPACITY: config.metrics.starting_time,
    }
    return float(bases.get(metric, 0.0))


def derive_metrics(registry: EffectRegistry, config: ShopConfig) -> DerivedMetrics:
    def value(metric: Metric) -> float:
        return registry.current_value(metric, base_value(metric, config))

    spawn_seconds = value(Metric.SPAWN_INTERVAL_SECONDS)
    return DerivedMetrics(
        spawn_interval_seconds=spawn_seconds,
        spawn_interval_ticks=seconds_to_ticks(spawn_seconds, config.stats.ticks_per_second),
        service_speed=value(Metric.SERVICE_SPEED_MULTIPLIER),
        service_rooms=int(value(Metric.SERVICE_ROOMS)),
        reputation_multiplier=value(Metric.REPUTATION_MULTIPLIER),
        happy_probability=value(Metric.HAPPY_PROBABILITY),
        period_expenses=value(Metric.PERIOD_EXPENSES),
        revenue_multiplier=value(Metric.SERVICE_REVENUE_MULTIPLIER),
        revenue_flat_bonus=value(Metric.SERVICE_REVENUE_FLAT_BONUS),
        lead_conversion_rate=value(Metric.LEAD_CONVERSION_RATE),
        leveraged_time_capacity=value(Metric.LEVERAGED_TIME),
    )