"""Tests for tick_shop.dynamic."""
from __future__ import annotations

import pytest

from tick_shop.dynamic import LiteralValue, ScaledExpense, evaluate, parse_dynamic_value
from tick_shop.types import ConfigError


@pytest.mark.parametrize(
    "raw, expected",
    [
        (250, LiteralValue(250.0)),
        (-40.5, LiteralValue(-40.5)),
        ("120", LiteralValue(120.0)),
        ("expenses", ScaledExpense(1.0)),
        ("expenses*1.5", ScaledExpense(1.5)),
        (" Expenses * 2 ", ScaledExpense(2.0)),
        ({"kind": "literal", "value": 3}, LiteralValue(3.0)),
        ({"kind": "scaledExpense", "multiplier": 0.5}, ScaledExpense(0.5)),
    ],
)
def test_parse(raw: object, expected: object) -> None:
    assert parse_dynamic_value(raw) == expected


@pytest.mark.parametrize("raw", ["revenue*2", "expenses*", True, None, [1], {"kind": "sqrt"}])
def test_parse_rejects(raw: object) -> None:
    with pytest.raises(ConfigError):
        parse_dynamic_value(raw)


def test_literal_keeps_sign() -> None:
    assert evaluate(LiteralValue(75.0), 300.0) == 75.0
    assert evaluate(LiteralValue(-75.0), 300.0) == -75.0


def test_scaled_expense_is_a_cost() -> None:
    assert evaluate(ScaledExpense(1.5), 280.0) == -420.0
    assert evaluate(ScaledExpense(-1.5), 280.0) == -420.0


def test_scaled_expense_tracks_current_expenses() -> None:
    value = parse_dynamic_value("expenses*2")
    assert evaluate(value, 100.0) == -200.0
    assert evaluate(value, 350.0) == -700.0
