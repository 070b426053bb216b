"""Tests for tick_shop.events."""
from __future__ import annotations

import logging
import random

import pytest

from tick_shop.config import load_config
from tick_shop.events import maybe_trigger, pick_consequence, resolve_choice
from tick_shop.registry import EffectRegistry
from tick_shop.requirements import RequirementSnapshot
from tick_shop.scheduler import ShopState
from tick_shop.types import ActionError, Metric

FLOOD = {
    "id": "flood",
    "title": "Flood",
    "choices": [
        {
            "id": "fix",
            "label": "Call a plumber",
            "cost": 100,
            "setsFlag": "fixed",
            "consequences": [{"id": "bill", "effects": [
                {"type": "dynamicCash", "expression": "expenses*1.5"},
            ]}],
        },
        {
            "id": "ignore",
            "consequences": [{"id": "fine", "effects": [
                {"type": "metric", "metric": "cash", "effectType": "percent", "value": -0.1},
            ]}],
        },
        {
            "id": "promo",
            "consequences": [{"id": "buzz", "effects": [
                {"type": "metric", "metric": "spawnIntervalSeconds", "effectType": "percent",
                 "value": -0.5, "durationSeconds": 30},
                {"type": "exp", "amount": 5},
                {"type": "cash", "amount": 250},
            ]}],
        },
        {"id": "meditate", "timeCost": 5},
        {
            "id": "gamble",
            "consequences": [
                {"id": "lose", "weight": 0},
                {"id": "win", "weight": 2},
            ],
        },
        {
            "id": "stuck",
            "consequences": [
                {"id": "first", "weight": 0},
                {"id": "second", "weight": 0},
            ],
        },
    ],
}

VIP = {
    "id": "vip_visit",
    "requirements": [{"type": "flag", "id": "vip"}],
    "choices": [{"id": "welcome"}],
}


def _config(starting_time: int = 0):
    return load_config({
        "stats": {"eventProbability": 1.0},
        "metrics": {"startingCash": 1000, "startingTime": starting_time,
                    "periodExpenses": {"rent": 200, "utilities": 80}},
        "services": [{"id": "cut", "price": 150, "durationSeconds": 15}],
        "upgrades": [{"id": "chair", "levels": [{"level": 1}]}],
        "events": [FLOOD, VIP],
    })


def _resolve(choice_id: str, config=None, state=None, registry=None):
    config = config or _config()
    state = state or ShopState.new(config)
    registry = registry if registry is not None else EffectRegistry()
    outcome = resolve_choice(
        state, registry, config, config.event("flood"), choice_id, random.Random(0)
    )
    return outcome, state, registry


class TestTrigger:
    def test_requirements_gate_events(self) -> None:
        config = _config()
        rng = random.Random(4)
        picks = {maybe_trigger(config, RequirementSnapshot(), rng).id for _ in range(20)}
        assert picks == {"flood"}

    def test_flagged_event_becomes_eligible(self) -> None:
        config = _config()
        rng = random.Random(4)
        snap = RequirementSnapshot(flags={"vip": True})
        picks = {maybe_trigger(config, snap, rng).id for _ in range(40)}
        assert picks == {"flood", "vip_visit"}


class TestConsequences:
    def test_zero_weight_never_picked(self) -> None:
        choice = _config().event("flood").choice("gamble")
        rng = random.Random(9)
        assert {pick_consequence(choice, rng).id for _ in range(30)} == {"win"}

    def test_all_zero_weights_falls_back_to_first(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        choice = _config().event("flood").choice("stuck")
        with caplog.at_level(logging.WARNING, logger="tick_shop.events"):
            assert pick_consequence(choice, random.Random(0)).id == "first"
        assert "stuck" in caplog.text

    def test_no_consequences(self) -> None:
        choice = _config().event("flood").choice("meditate")
        assert pick_consequence(choice, random.Random(0)) is None


class TestResolve:
    def test_cost_dynamic_cash_and_flag(self) -> None:
        outcome, state, _ = _resolve("fix")
        assert outcome.consequence_id == "bill"
        assert outcome.cost_paid == 100
        assert outcome.effects[0].amount == -420.0
        assert state.metrics.cash == 480.0
        assert [c.amount for c in state.one_time_costs] == [100.0, 420.0]
        assert state.one_time_costs_paid == 520.0
        assert state.flags["fixed"] is True

    def test_percent_on_cash_is_one_shot(self) -> None:
        _, state, registry = _resolve("ignore")
        assert state.metrics.cash == pytest.approx(900.0)
        assert len(registry) == 0

    def test_mixed_consequence(self) -> None:
        _, state, registry = _resolve("promo")
        (effect,) = registry.effects()
        assert effect.metric is Metric.SPAWN_INTERVAL_SECONDS
        assert effect.duration_ticks == 300
        assert effect.source.category == "event"
        assert state.metrics.exp == 5.0
        assert state.metrics.cash == 1250.0
        assert state.period_revenue == 250.0

    def test_unknown_choice(self) -> None:
        with pytest.raises(ActionError):
            _resolve("panic")

    def test_time_cost_checked_when_time_enabled(self) -> None:
        config = _config(starting_time=3)
        with pytest.raises(ActionError, match="personal time"):
            _resolve("meditate", config=config)

    def test_time_cost_paid(self) -> None:
        config = _config(starting_time=8)
        outcome, state, _ = _resolve("meditate", config=config)
        assert outcome.time_cost_paid == 5
        assert state.metrics.my_time == 3.0

    def test_time_cost_ignored_when_time_disabled(self) -> None:
        outcome, state, _ = _resolve("meditate")
        assert outcome.time_cost_paid == 0.0
        assert outcome.consequence_id is None
        assert state.metrics.my_time == 0.0
