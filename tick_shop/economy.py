"""Period close-out, ledger entries, levels and win/lose checks."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from tick_shop.types import Metric

if TYPE_CHECKING:
    from tick_shop.config import LoseCondition, WinCondition
    from tick_shop.registry import EffectRegistry
    from tick_shop.scheduler import ShopMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OneTimeCost:
    """A non-recurring expense incurred during a period.

    ``already_deducted`` marks costs that left the cash balance when they were
    incurred, so close-out must not charge them again.
    """

    label: str
    amount: float
    category: str
    already_deducted: bool = False


@dataclass(frozen=True)
class CloseOutResult:
    cash: float
    profit: float
    total_expenses: float
    base_expenses: float
    additional_expenses: float


@dataclass(frozen=True)
class LedgerEntry:
    period: int
    revenue: float
    expenses: float
    one_time_costs: tuple[OneTimeCost, ...]
    profit: float
    exp_after: float
    exp_change: float
    level: int
    level_change: int


def close_out_period(
    cash: float,
    period_revenue: float,
    period_expenses: float,
    period_one_time_costs: float,
    one_time_costs_paid: float = 0.0,
) -> CloseOutResult:
    """Settle one period.

    ``period_expenses`` already holds the recurring baseline. Revenue was
    credited as it was earned, so it never touches cash here. Cash may go
    negative.
    """
    total = period_expenses + period_one_time_costs
    return CloseOutResult(
        cash=cash - (total - one_time_costs_paid),
        profit=period_revenue - total,
        total_expenses=total,
        base_expenses=period_expenses,
        additional_expenses=period_one_time_costs,
    )


def make_ledger_entry(
    period: int,
    revenue: float,
    recurring_expenses: float,
    one_time_costs: Iterable[OneTimeCost],
    exp_after: float,
    previous: LedgerEntry | None,
    exp_per_level: int | tuple[int, ...],
) -> LedgerEntry:
    costs = tuple(one_time_costs)
    one_time_total = sum(c.amount for c in costs)
    level = level_for_exp(exp_after, exp_per_level)
    prev_exp = previous.exp_after if previous is not None else 0.0
    prev_level = previous.level if previous is not None else 0
    return LedgerEntry(
        period=period,
        revenue=revenue,
        expenses=recurring_expenses,
        one_time_costs=costs,
        profit=revenue - (recurring_expenses + one_time_total),
        exp_after=exp_after,
        exp_change=exp_after - prev_exp,
        level=level,
        level_change=level - prev_level,
    )


def recurring_expenses(registry: EffectRegistry, base: float) -> float:
    """Live recurring expenses: base plus every active expense effect."""
    return registry.current_value(Metric.PERIOD_EXPENSES, base)


def level_for_exp(exp: float, exp_per_level: int | tuple[int, ...]) -> int:
    """Level reached with ``exp`` experience, starting at 0.

    A single number is a flat cost per level. A sequence gives the cost of
    each successive level; the last entry repeats.
    """
    if exp <= 0:
        return 0
    if isinstance(exp_per_level, int):
        return int(exp // exp_per_level)
    level = 0
    remaining = exp
    steps = list(exp_per_level)
    while True:
        cost = steps[min(level, len(steps) - 1)]
        if remaining < cost:
            return level
        remaining -= cost
        level += 1


def check_win(cash: float, period: int, win: WinCondition) -> bool:
    """Cash target reached, or (when set) the period target survived."""
    if cash >= win.cash_target:
        return True
    return win.period_target is not None and period >= win.period_target


def check_lose(metrics: ShopMetrics, lose: LoseCondition, time_enabled: bool) -> bool:
    if metrics.cash <= lose.cash_threshold:
        return True
    if time_enabled:
        total_time = metrics.my_time + metrics.leveraged_time
        return total_time <= lose.time_threshold
    return False
