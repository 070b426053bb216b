"""Dynamic cash amounts: a literal or a multiple of current period expenses."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from tick_shop.types import ConfigError

_EXPENSES = re.compile(r"^\s*expenses\s*(?:\*\s*([0-9]*\.?[0-9]+))?\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class LiteralValue:
    value: float
    kind: str = "literal"


@dataclass(frozen=True)
class ScaledExpense:
    """``multiplier`` times current recurring expenses, always charged as a cost."""

    multiplier: float
    kind: str = "scaledExpense"


DynamicValue = Union[LiteralValue, ScaledExpense]


def parse_dynamic_value(raw: object) -> DynamicValue:
    """Parse the external form: a number, a numeric string or ``"expenses*N"``.

    Tagged mappings (``{"kind": "literal", "value": 5}``) are accepted too.
    Raises ConfigError for anything else.
    """
    if isinstance(raw, (LiteralValue, ScaledExpense)):
        return raw
    if isinstance(raw, bool):
        raise ConfigError(f"Invalid dynamic value {raw!r}")
    if isinstance(raw, (int, float)):
        return LiteralValue(float(raw))
    if isinstance(raw, dict):
        kind = raw.get("kind")
        if kind == "literal":
            return LiteralValue(float(raw["value"]))
        if kind == "scaledExpense":
            return ScaledExpense(float(raw["multiplier"]))
        raise ConfigError(f"Unknown dynamic value kind {kind!r}")
    if isinstance(raw, str):
        match = _EXPENSES.match(raw)
        if match:
            return ScaledExpense(float(match.group(1)) if match.group(1) else 1.0)
        try:
            return LiteralValue(float(raw))
        except ValueError:
            pass
    raise ConfigError(f"Invalid dynamic value {raw!r}")


def evaluate(value: DynamicValue, period_expenses: float) -> float:
    """Resolve to a signed cash amount. Expense-scaled values are negative."""
    if isinstance(value, ScaledExpense):
        return -abs(value.multiplier * period_expenses)
    return value.value
