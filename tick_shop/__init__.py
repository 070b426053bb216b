"""tick_shop - A discrete-time shop simulation built on a composable effect algebra."""

from tick_shop.clock import Clock
from tick_shop.config import ShopConfig, load_config
from tick_shop.customers import Customer, CustomerStatus
from tick_shop.economy import LedgerEntry, OneTimeCost, close_out_period
from tick_shop.effects import apply_effect, combine, order_effects
from tick_shop.registry import EffectRegistry
from tick_shop.requirements import FlagRequirement, NumericRequirement, evaluate, evaluate_all
from tick_shop.scheduler import ShopMetrics, ShopState, TickResult, tick_once
from tick_shop.session import GameSession
from tick_shop.types import (
    ActionError,
    ConfigError,
    Effect,
    EffectError,
    EffectSource,
    EffectType,
    Metric,
    SnapshotError,
)

__all__ = [
    "GameSession",
    "ShopConfig",
    "load_config",
    "ShopState",
    "ShopMetrics",
    "TickResult",
    "tick_once",
    "Clock",
    "EffectRegistry",
    "Effect",
    "EffectSource",
    "EffectType",
    "Metric",
    "apply_effect",
    "combine",
    "order_effects",
    "Customer",
    "CustomerStatus",
    "LedgerEntry",
    "OneTimeCost",
    "close_out_period",
    "FlagRequirement",
    "NumericRequirement",
    "evaluate",
    "evaluate_all",
    "ActionError",
    "ConfigError",
    "EffectError",
    "SnapshotError",
]
