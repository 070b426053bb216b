"""Tests for tick_shop.rewards - one-time grants and level rewards."""
from __future__ import annotations

from dataclasses import replace

import pytest

from tick_shop.config import load_config
from tick_shop.registry import EffectRegistry
from tick_shop.rewards import apply_grant, apply_level_ups, is_one_time, record_cash
from tick_shop.scheduler import ShopState
from tick_shop.types import EffectType, Metric


def _config(**extra):
    data = {
        "stats": {"expPerLevel": 10},
        "services": [{"id": "cut", "price": 10, "durationSeconds": 1}],
        "upgrades": [{"id": "chair", "levels": [{"level": 1}]}],
    }
    data.update(extra)
    return load_config(data)


class TestClassification:
    def test_add_on_balance_is_one_time(self) -> None:
        assert is_one_time(Metric.CASH, EffectType.ADD)
        assert is_one_time(Metric.GENERATE_LEADS, EffectType.ADD)

    def test_other_types_persist(self) -> None:
        assert not is_one_time(Metric.CASH, EffectType.PERCENT)
        assert not is_one_time(Metric.SERVICE_ROOMS, EffectType.ADD)


class TestGrants:
    def test_income_counts_as_revenue(self) -> None:
        state = ShopState.new(_config())
        record_cash(state, 200.0, "Prize", "event")
        assert state.metrics.cash == 1200.0
        assert state.metrics.total_revenue == 200.0
        assert state.period_revenue == 200.0
        assert state.one_time_costs == []

    def test_cost_is_deducted_and_recorded(self) -> None:
        state = ShopState.new(_config())
        record_cash(state, -150.0, "Broken pipe", "event")
        assert state.metrics.cash == 850.0
        (cost,) = state.one_time_costs
        assert cost.amount == 150.0
        assert cost.already_deducted is True
        assert state.one_time_costs_paid == 150.0
        assert state.period_revenue == 0.0

    def test_leads_use_conversion_rate(self) -> None:
        state = ShopState.new(_config())
        apply_grant(state, Metric.GENERATE_LEADS, 2.7, "Referral", "event", 40.0)
        assert state.lead_progress == 80.0

    def test_exp_never_negative(self) -> None:
        state = ShopState.new(_config())
        apply_grant(state, Metric.EXP, -50.0, "Bad review", "event", 100.0)
        assert state.metrics.exp == 0.0

    def test_persistent_metric_rejected(self) -> None:
        state = ShopState.new(_config())
        with pytest.raises(ValueError):
            apply_grant(state, Metric.SERVICE_ROOMS, 1, "x", "event", 100.0)


class TestLevelUps:
    def test_rewards_each_level_once(self) -> None:
        config = _config(levelRewards=[
            {"level": 1, "title": "Known", "effects": [
                {"metric": "serviceRooms", "type": "add", "value": 1},
            ]},
            {"level": 2, "title": "Famous", "effects": [
                {"metric": "cash", "type": "add", "value": 500},
            ], "unlocksFlags": ["franchise"]},
        ])
        registry = EffectRegistry()
        state = ShopState.new(config)
        state.metrics = replace(state.metrics, exp=25.0)

        assert apply_level_ups(state, registry, config) == [1, 2]
        assert registry.has("level-1-effect-0")
        assert state.metrics.cash == 1500.0
        assert state.flags == {"franchise": True}
        assert apply_level_ups(state, registry, config) == []
        assert state.metrics.cash == 1500.0

    def test_exp_reward_can_chain_levels(self) -> None:
        config = _config(levelRewards=[
            {"level": 1, "effects": [{"metric": "exp", "type": "add", "value": 10}]},
        ])
        state = ShopState.new(config)
        state.metrics = replace(state.metrics, exp=10.0)
        assert apply_level_ups(state, EffectRegistry(), config) == [1, 2]
        assert state.metrics.exp == 20.0
        assert state.rewarded_level == 2
