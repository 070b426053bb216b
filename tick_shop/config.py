"""Configuration models and fail-fast loading."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tick_shop.dynamic import LiteralValue, ScaledExpense, parse_dynamic_value
from tick_shop.metrics import round_half_up
from tick_shop.requirements import FlagRequirement, NumericRequirement, parse_requirement
from tick_shop.types import ConfigError, Effect, EffectSource, EffectType, Metric


class _Model(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )


def _requirements(value: Any) -> Any:
    if value is None:
        return ()
    return tuple(parse_requirement(r) if isinstance(r, Mapping) else r for r in value)


class _Gated(_Model):
    requirements: tuple[Union[FlagRequirement, NumericRequirement], ...] = ()

    @field_validator("requirements", mode="before")
    @classmethod
    def _parse_requirements(cls, value: Any) -> Any:
        return _requirements(value)


class BusinessStats(_Model):
    ticks_per_second: int = Field(default=10, gt=0)
    period_duration_seconds: int = Field(default=60, gt=0)
    customer_spawn_interval_seconds: float = Field(default=3.0, gt=0)
    customer_patience_seconds: float = Field(default=10.0, gt=0)
    leaving_angry_duration_ticks: int = Field(default=10, ge=0)
    service_rooms: int = Field(default=2, ge=1)
    exp_gain_per_happy_customer: float = Field(default=1.0, ge=0)
    exp_loss_per_angry_customer: float = Field(default=1.0, ge=0)
    base_happy_probability: float = Field(default=1.0, ge=0, le=1)
    service_revenue_multiplier: float = Field(default=1.0, ge=0)
    # Lead progress per spawn interval; a customer arrives at 100.
    lead_conversion_rate: float = Field(default=100.0, gt=0)
    exp_per_level: Union[int, tuple[int, ...]] = 100
    event_check_interval_seconds: float = Field(default=15.0, gt=0)
    event_probability: float = Field(default=0.99, ge=0, le=1)

    @field_validator("exp_per_level")
    @classmethod
    def _check_exp_per_level(cls, value: Any) -> Any:
        if isinstance(value, int):
            if value <= 0:
                raise ValueError("exp_per_level must be positive")
        elif not value or any(v <= 0 for v in value):
            raise ValueError("exp_per_level entries must be positive")
        return value


class BusinessMetrics(_Model):
    starting_cash: float = 1000.0
    starting_exp: float = Field(default=0.0, ge=0)
    # Personal hours granted per period; 0 disables the time budget.
    starting_time: int = Field(default=0, ge=0)
    period_expenses: Union[float, dict[str, float]] = 0.0

    @field_validator("period_expenses")
    @classmethod
    def _non_negative(cls, value: Any) -> Any:
        amounts = value.values() if isinstance(value, dict) else [value]
        if any(v < 0 for v in amounts):
            raise ValueError("period expenses must be non-negative")
        return value

    @property
    def base_period_expenses(self) -> float:
        if isinstance(self.period_expenses, dict):
            return float(sum(self.period_expenses.values()))
        return float(self.period_expenses)


class EffectSpec(_Model):
    """Effect template without identity, as found on upgrades, staff and rewards."""

    metric: Metric
    type: EffectType
    value: float = Field(allow_inf_nan=False)
    priority: int = 0
    duration_seconds: Optional[float] = Field(default=None, ge=0)

    def bind(
        self,
        source: EffectSource,
        effect_id: str,
        tick: int,
        ticks_per_second: int,
        duration_ticks: int | None = None,
    ) -> Effect:
        if duration_ticks is None and self.duration_seconds is not None:
            duration_ticks = round_half_up(self.duration_seconds * ticks_per_second)
        return Effect(
            id=effect_id,
            source=source,
            metric=self.metric,
            type=self.type,
            value=self.value,
            priority=self.priority,
            duration_ticks=duration_ticks,
            created_at_tick=tick,
        )


class ServiceDef(_Gated):
    id: str
    name: str = ""
    price: float = Field(ge=0)
    duration_seconds: float = Field(gt=0)
    weight: float = Field(default=1.0, ge=0)


class UpgradeLevelDef(_Model):
    level: int = Field(ge=1)
    name: str = ""
    cost: float = Field(default=0.0, ge=0)
    time_cost: float = Field(default=0.0, ge=0)
    effects: tuple[EffectSpec, ...] = ()


class UpgradeDef(_Gated):
    id: str
    name: str = ""
    levels: tuple[UpgradeLevelDef, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _levels_are_sequential(self) -> UpgradeDef:
        numbers = [lvl.level for lvl in self.levels]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(f"upgrade {self.id!r} levels must be 1..N, got {numbers}")
        return self

    @property
    def max_level(self) -> int:
        return len(self.levels)

    def level(self, number: int) -> UpgradeLevelDef:
        return self.levels[number - 1]


class StaffRoleDef(_Gated):
    id: str
    name: str = ""
    salary: float = Field(default=0.0, ge=0)
    hire_cost: float = Field(default=0.0, ge=0)
    effects: tuple[EffectSpec, ...] = ()


class CampaignDef(_Gated):
    id: str
    name: str = ""
    cost: float = Field(default=0.0, ge=0)
    time_cost: float = Field(default=0.0, ge=0)
    duration_seconds: Optional[float] = Field(default=None, gt=0)
    duration_ticks: Optional[int] = Field(default=None, gt=0)
    effects: tuple[EffectSpec, ...] = ()

    @model_validator(mode="after")
    def _has_duration(self) -> CampaignDef:
        if self.duration_seconds is None and self.duration_ticks is None:
            raise ValueError(f"campaign {self.id!r} needs duration_seconds or duration_ticks")
        return self

    def ticks(self, ticks_per_second: int) -> int:
        if self.duration_ticks is not None:
            return self.duration_ticks
        return max(1, round_half_up(self.duration_seconds * ticks_per_second))


class EventEffectDef(_Model):
    """One consequence effect: a cash or exp grant, or a metric effect."""

    type: Literal["cash", "dynamicCash", "exp", "metric"]
    amount: Optional[float] = Field(default=None, allow_inf_nan=False)
    expression: Optional[Union[LiteralValue, ScaledExpense]] = None
    metric: Optional[Metric] = None
    effect_type: Optional[EffectType] = None
    value: Optional[float] = Field(default=None, allow_inf_nan=False)
    priority: int = 0
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    label: Optional[str] = None

    @field_validator("expression", mode="before")
    @classmethod
    def _parse_expression(cls, value: Any) -> Any:
        if value is None:
            return None
        try:
            return parse_dynamic_value(value)
        except ConfigError as exc:
            raise ValueError(str(exc)) from exc

    @model_validator(mode="after")
    def _fields_for_type(self) -> EventEffectDef:
        if self.type in ("cash", "exp") and self.amount is None:
            raise ValueError(f"{self.type} effect needs an amount")
        if self.type == "dynamicCash" and self.expression is None:
            raise ValueError("dynamicCash effect needs an expression")
        if self.type == "metric" and (
            self.metric is None or self.effect_type is None or self.value is None
        ):
            raise ValueError("metric effect needs metric, effectType and value")
        return self


class ConsequenceDef(_Model):
    id: str
    label: str = ""
    description: str = ""
    weight: float = 1.0
    effects: tuple[EventEffectDef, ...] = ()


class ChoiceDef(_Model):
    id: str
    label: str = ""
    cost: float = Field(default=0.0, ge=0)
    time_cost: float = Field(default=0.0, ge=0)
    sets_flag: Optional[str] = None
    consequences: tuple[ConsequenceDef, ...] = ()


class EventDef(_Gated):
    id: str
    title: str = ""
    category: str = "opportunity"
    summary: str = ""
    choices: tuple[ChoiceDef, ...] = Field(min_length=1)

    def choice(self, choice_id: str) -> ChoiceDef | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


class LevelRewardDef(_Model):
    level: int = Field(ge=1)
    title: str = ""
    effects: tuple[EffectSpec, ...] = ()
    unlocks_flags: tuple[str, ...] = ()


class WinCondition(_Model):
    cash_target: float = 50000.0
    period_target: Optional[int] = Field(default=None, ge=1)


class LoseCondition(_Model):
    cash_threshold: float = 0.0
    time_threshold: float = 0.0


class ShopConfig(_Model):
    """Complete, validated configuration for one shop."""

    stats: BusinessStats = Field(default_factory=BusinessStats)
    metrics: BusinessMetrics = Field(default_factory=BusinessMetrics)
    services: tuple[ServiceDef, ...]
    upgrades: tuple[UpgradeDef, ...]
    staff_roles: tuple[StaffRoleDef, ...] = ()
    campaigns: tuple[CampaignDef, ...] = ()
    events: tuple[EventDef, ...] = ()
    level_rewards: tuple[LevelRewardDef, ...] = ()
    win_condition: WinCondition = Field(default_factory=WinCondition)
    lose_condition: LoseCondition = Field(default_factory=LoseCondition)

    @model_validator(mode="after")
    def _catalog_present(self) -> ShopConfig:
        if not self.services:
            raise ValueError("at least one service is required")
        if not self.upgrades:
            raise ValueError("at least one upgrade is required")
        for label, items in (
            ("service", self.services),
            ("upgrade", self.upgrades),
            ("staff role", self.staff_roles),
            ("campaign", self.campaigns),
            ("event", self.events),
        ):
            ids = [item.id for item in items]
            if len(ids) != len(set(ids)):
                raise ValueError(f"duplicate {label} id in {ids}")
        return self

    @property
    def time_enabled(self) -> bool:
        return self.metrics.starting_time > 0

    def service(self, service_id: str) -> ServiceDef | None:
        return _find(self.services, service_id)

    def upgrade(self, upgrade_id: str) -> UpgradeDef | None:
        return _find(self.upgrades, upgrade_id)

    def staff_role(self, role_id: str) -> StaffRoleDef | None:
        return _find(self.staff_roles, role_id)

    def campaign(self, campaign_id: str) -> CampaignDef | None:
        return _find(self.campaigns, campaign_id)

    def event(self, event_id: str) -> EventDef | None:
        return _find(self.events, event_id)

    def level_reward(self, level: int) -> LevelRewardDef | None:
        for reward in self.level_rewards:
            if reward.level == level:
                return reward
        return None


def _find(items: tuple[Any, ...], item_id: str) -> Any:
    for item in items:
        if item.id == item_id:
            return item
    return None


def _format_errors(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        path = ".".join(str(p) for p in err["loc"]) or "<root>"
        lines.append(f"{path}: {err['msg']}")
    return "; ".join(lines)


def load_config(data: Mapping[str, Any] | ShopConfig) -> ShopConfig:
    """Validate raw configuration. Raises ConfigError naming every bad field."""
    if isinstance(data, ShopConfig):
        return data
    try:
        return ShopConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid shop configuration: {_format_errors(exc)}") from exc
