"""Shared types and errors for the shop simulation."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class Metric(str, Enum):
    """Numeric game parameters that effects can target."""

    CASH = "cash"
    EXP = "exp"
    MY_TIME = "myTime"
    LEVERAGED_TIME = "leveragedTime"
    GENERATE_LEADS = "generateLeads"
    SPAWN_INTERVAL_SECONDS = "spawnIntervalSeconds"
    SERVICE_SPEED_MULTIPLIER = "serviceSpeedMultiplier"
    SERVICE_ROOMS = "serviceRooms"
    REPUTATION_MULTIPLIER = "reputationMultiplier"
    HAPPY_PROBABILITY = "happyProbability"
    PERIOD_EXPENSES = "periodExpenses"
    SERVICE_REVENUE_MULTIPLIER = "serviceRevenueMultiplier"
    SERVICE_REVENUE_FLAT_BONUS = "serviceRevenueFlatBonus"
    MONTHLY_TIME_CAPACITY = "monthlyTimeCapacity"
    LEAD_CONVERSION_RATE = "leadConversionRate"


class EffectType(str, Enum):
    ADD = "add"
    PERCENT = "percent"  # fractional delta, 0.1 == +10%
    MULTIPLY = "multiply"
    SET = "set"


SOURCE_CATEGORIES = ("upgrade", "staff", "marketing", "event", "level")


class EffectError(ValueError):
    """Raised when an effect is malformed at the point of insertion."""


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid at load time."""


class ActionError(Exception):
    """Raised when a player action cannot be carried out."""


class SnapshotError(Exception):
    """Raised on restore failures (version mismatch, tps mismatch)."""


@dataclass(frozen=True, slots=True)
class EffectSource:
    category: str
    id: str
    name: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.category, self.id)


@dataclass(frozen=True, slots=True)
class Effect:
    """A sourced, typed, possibly time-limited modification to one metric.

    ``duration_ticks=None`` means permanent. A timed effect is expired once
    ``tick - created_at_tick >= duration_ticks``.
    """

    id: str
    source: EffectSource
    metric: Metric
    type: EffectType
    value: float
    priority: int = 0
    duration_ticks: int | None = None
    created_at_tick: int = 0

    def expired(self, tick: int) -> bool:
        if self.duration_ticks is None:
            return False
        return tick - self.created_at_tick >= self.duration_ticks


def validate_effect(effect: Effect) -> None:
    """Raise EffectError unless metric, type and value are well-formed."""
    if not isinstance(effect.metric, Metric):
        raise EffectError(f"Unknown metric {effect.metric!r} on effect {effect.id!r}")
    if not isinstance(effect.type, EffectType):
        raise EffectError(f"Unknown effect type {effect.type!r} on effect {effect.id!r}")
    value = effect.value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EffectError(f"Effect {effect.id!r} value must be numeric, got {value!r}")
    if not math.isfinite(value):
        raise EffectError(f"Effect {effect.id!r} value must be finite, got {value!r}")
    if effect.duration_ticks is not None and effect.duration_ticks < 0:
        raise EffectError(
            f"Effect {effect.id!r} duration must be >= 0, got {effect.duration_ticks}"
        )
