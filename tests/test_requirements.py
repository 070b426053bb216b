"""Tests for tick_shop.requirements."""
from __future__ import annotations

import logging

import pytest

from tick_shop.config import load_config
from tick_shop.requirements import (
    FlagRequirement,
    NumericRequirement,
    RequirementSnapshot,
    describe,
    evaluate,
    evaluate_all,
    parse_requirement,
)
from tick_shop.scheduler import HiredStaff, ShopState


def _snapshot(**kwargs) -> RequirementSnapshot:
    defaults = dict(
        flags={"unlocked": True},
        metrics={"cash": 500.0, "level": 2},
        upgrades={"chair": 1},
        staff_roles=("barber", "barber", "cleaner"),
        names={"upgrade:chair": "Comfy Chair", "staff:barber": "Barber"},
    )
    defaults.update(kwargs)
    return RequirementSnapshot(**defaults)


class TestParse:
    def test_flag(self) -> None:
        req = parse_requirement({"type": "flag", "id": "vip", "expected": False})
        assert req == FlagRequirement(id="vip", expected=False)

    def test_flag_expected_defaults_true(self) -> None:
        assert parse_requirement({"type": "flag", "id": "vip"}).expected is True

    def test_numeric_defaults(self) -> None:
        req = parse_requirement({"type": "upgrade", "id": "chair"})
        assert isinstance(req, NumericRequirement)
        assert req.operator == ">="
        assert req.threshold == 1

    def test_on_fail_camel_case(self) -> None:
        req = parse_requirement({"type": "metric", "id": "cash", "value": 5, "onFail": "hide"})
        assert req.on_fail == "hide"
        assert req.value == 5.0


class TestEvaluate:
    def test_flag_match(self) -> None:
        assert evaluate(FlagRequirement("unlocked"), _snapshot()) is True
        assert evaluate(FlagRequirement("unlocked", expected=False), _snapshot()) is False

    def test_missing_flag_only_matches_nothing(self) -> None:
        snap = _snapshot()
        assert evaluate(FlagRequirement("missing"), snap) is False
        assert evaluate(FlagRequirement("missing", expected=False), snap) is False

    def test_upgrade_level(self) -> None:
        snap = _snapshot()
        assert evaluate(NumericRequirement("upgrade", "chair"), snap) is True
        assert evaluate(NumericRequirement("upgrade", "chair", value=2), snap) is False
        assert evaluate(NumericRequirement("upgrade", "sink", "==", 0), snap) is True

    def test_staff_count_by_role_and_total(self) -> None:
        snap = _snapshot()
        assert evaluate(NumericRequirement("staff", "barber", ">=", 2), snap) is True
        assert evaluate(NumericRequirement("staff", "cleaner", ">", 1), snap) is False
        assert evaluate(NumericRequirement("staff", "*", "==", 3), snap) is True

    @pytest.mark.parametrize(
        "op, value, expected",
        [(">=", 500, True), ("<=", 499, False), (">", 500, False), ("<", 501, True),
         ("==", 500, True)],
    )
    def test_metric_operators(self, op: str, value: float, expected: bool) -> None:
        req = NumericRequirement("metric", "cash", op, value)
        assert evaluate(req, _snapshot()) is expected

    def test_unknown_metric_is_zero(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="tick_shop.requirements"):
            assert evaluate(NumericRequirement("metric", "karma", "==", 0), _snapshot()) is True
        assert "karma" in caplog.text

    def test_unknown_type_fails(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="tick_shop.requirements"):
            assert evaluate(NumericRequirement("weather", "sunny"), _snapshot()) is False
        assert "weather" in caplog.text

    def test_unknown_operator_fails(self) -> None:
        req = NumericRequirement("metric", "cash", "!=", 1)
        assert evaluate(req, _snapshot()) is False

    def test_evaluate_all_empty_is_true(self) -> None:
        assert evaluate_all(None, _snapshot()) is True
        assert evaluate_all((), _snapshot()) is True

    def test_evaluate_all_is_and(self) -> None:
        reqs = (FlagRequirement("unlocked"), NumericRequirement("metric", "level", ">=", 3))
        assert evaluate_all(reqs, _snapshot()) is False
        assert evaluate_all(reqs[:1], _snapshot()) is True


class TestDescribe:
    def test_upgrade(self) -> None:
        req = NumericRequirement("upgrade", "chair", ">=", 2)
        assert describe(req, _snapshot()) == "Comfy Chair Level >= 2 (Current: 1)"

    def test_total_staff(self) -> None:
        req = NumericRequirement("staff", "*")
        assert describe(req, _snapshot()) == "Total Staff >= 1 (Current: 3)"

    def test_named_staff(self) -> None:
        req = NumericRequirement("staff", "barber", ">=", 3)
        assert describe(req, _snapshot()) == "Barber >= 3 (Current: 2)"

    def test_negated_flag(self) -> None:
        assert describe(FlagRequirement("closed", expected=False), _snapshot()) == "NOT closed"


class TestFromState:
    def test_reads_live_state(self) -> None:
        config = load_config({
            "stats": {"expPerLevel": 10},
            "metrics": {"startingCash": 750, "startingExp": 25},
            "services": [{"id": "cut", "price": 10, "durationSeconds": 5}],
            "upgrades": [{"id": "chair", "name": "Chair", "levels": [{"level": 1}]}],
            "staffRoles": [{"id": "barber", "name": "Barber"}],
        })
        state = ShopState.new(config)
        state.upgrades["chair"] = 1
        state.staff.append(HiredStaff("barber-1", "barber"))
        state.flags["open"] = True

        snap = RequirementSnapshot.from_state(state, config)
        assert snap.metrics["cash"] == 750
        assert snap.metrics["level"] == 2
        assert snap.metrics["period"] == 1
        assert snap.upgrades == {"chair": 1}
        assert snap.staff_count("barber") == 1
        assert snap.flags == {"open": True}
        assert snap.names["upgrade:chair"] == "Chair"
