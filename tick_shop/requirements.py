"""Requirement predicates gating services, upgrades, staff, campaigns and events."""
from __future__ import annotations

import logging
import operator as _op
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Literal, Union

if TYPE_CHECKING:
    from tick_shop.config import ShopConfig
    from tick_shop.scheduler import ShopState

logger = logging.getLogger(__name__)

OnFail = Literal["hide", "lock"]

OPERATORS: dict[str, Callable[[float, float], bool]] = {
    ">=": _op.ge,
    "<=": _op.le,
    ">": _op.gt,
    "<": _op.lt,
    "==": _op.eq,
}

# Threshold used when a numeric requirement omits ``value``.
DEFAULT_VALUES: dict[str, float] = {"upgrade": 1, "metric": 0, "staff": 1}

ALL_STAFF = "*"


@dataclass(frozen=True)
class FlagRequirement:
    id: str
    expected: bool = True
    on_fail: OnFail | None = None
    type: Literal["flag"] = "flag"


@dataclass(frozen=True)
class NumericRequirement:
    """Compares a snapshot value against ``value``.

    ``type`` is normally ``metric``, ``upgrade`` or ``staff``; anything else
    is kept as-is and never satisfied.
    """

    type: str
    id: str
    operator: str = ">="
    value: float | None = None
    on_fail: OnFail | None = None

    @property
    def threshold(self) -> float:
        if self.value is not None:
            return self.value
        return DEFAULT_VALUES.get(self.type, 0)


Requirement = Union[FlagRequirement, NumericRequirement]


@dataclass(frozen=True)
class RequirementSnapshot:
    """Read-only view of the state a requirement may inspect."""

    flags: Mapping[str, bool] = field(default_factory=dict)
    metrics: Mapping[str, float] = field(default_factory=dict)
    upgrades: Mapping[str, int] = field(default_factory=dict)
    staff_roles: tuple[str, ...] = ()
    names: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_state(cls, state: ShopState, config: ShopConfig) -> RequirementSnapshot:
        from tick_shop.economy import level_for_exp

        m = state.metrics
        names: dict[str, str] = {}
        for upgrade in config.upgrades:
            names[f"upgrade:{upgrade.id}"] = upgrade.name or upgrade.id
        for role in config.staff_roles:
            names[f"staff:{role.id}"] = role.name or role.id
        return cls(
            flags=dict(state.flags),
            metrics={
                "cash": m.cash,
                "exp": m.exp,
                "level": level_for_exp(m.exp, config.stats.exp_per_level),
                "expenses": m.total_expenses,
                "gameTime": state.time_seconds,
                "myTime": m.my_time,
                "leveragedTime": m.leveraged_time,
                "revenue": m.total_revenue,
                "period": state.current_period,
            },
            upgrades=dict(state.upgrades),
            staff_roles=tuple(s.role_id for s in state.staff),
            names=names,
        )

    def staff_count(self, role_id: str) -> int:
        if role_id == ALL_STAFF:
            return len(self.staff_roles)
        return sum(1 for r in self.staff_roles if r == role_id)


def parse_requirement(data: Mapping[str, Any]) -> Requirement:
    """Convert the external ``{type, id, ...}`` shape into a requirement."""
    req_type = str(data.get("type", ""))
    req_id = str(data.get("id", ""))
    on_fail = data.get("onFail", data.get("on_fail"))
    if req_type == "flag":
        return FlagRequirement(id=req_id, expected=data.get("expected") is not False,
                               on_fail=on_fail)
    value = data.get("value")
    return NumericRequirement(
        type=req_type,
        id=req_id,
        operator=data.get("operator") or ">=",
        value=float(value) if value is not None else None,
        on_fail=on_fail,
    )


def _actual(req: NumericRequirement, snapshot: RequirementSnapshot) -> float | None:
    if req.type == "upgrade":
        return snapshot.upgrades.get(req.id, 0)
    if req.type == "staff":
        return snapshot.staff_count(req.id)
    if req.type == "metric":
        if req.id not in snapshot.metrics:
            logger.warning("Unknown requirement metric %r; treating as 0", req.id)
            return 0
        return snapshot.metrics[req.id]
    return None


def evaluate(requirement: Requirement, snapshot: RequirementSnapshot) -> bool:
    """True if ``requirement`` holds. Never raises."""
    if isinstance(requirement, FlagRequirement):
        return snapshot.flags.get(requirement.id) == requirement.expected
    if not isinstance(requirement, NumericRequirement):
        logger.warning("Unknown requirement %r", requirement)
        return False
    actual = _actual(requirement, snapshot)
    if actual is None:
        logger.warning("Unknown requirement type %r", requirement.type)
        return False
    compare = OPERATORS.get(requirement.operator)
    if compare is None:
        logger.warning("Unknown requirement operator %r", requirement.operator)
        return False
    return compare(actual, requirement.threshold)


def evaluate_all(
    requirements: Iterable[Requirement] | None, snapshot: RequirementSnapshot
) -> bool:
    """Logical AND. No requirements means always satisfied."""
    if not requirements:
        return True
    return all(evaluate(r, snapshot) for r in requirements)


def describe(requirement: Requirement, snapshot: RequirementSnapshot) -> str:
    """Human-readable line such as ``Espresso Machine Level >= 2 (Current: 1)``."""
    if isinstance(requirement, FlagRequirement):
        prefix = "" if requirement.expected else "NOT "
        return f"{prefix}{snapshot.names.get(f'flag:{requirement.id}', requirement.id)}"
    threshold = f"{requirement.threshold:g}"
    op = requirement.operator
    if requirement.type == "upgrade":
        name = snapshot.names.get(f"upgrade:{requirement.id}", requirement.id)
        current = snapshot.upgrades.get(requirement.id, 0)
        return f"{name} Level {op} {threshold} (Current: {current})"
    if requirement.type == "staff":
        current = snapshot.staff_count(requirement.id)
        if requirement.id == ALL_STAFF:
            return f"Total Staff {op} {threshold} (Current: {current})"
        name = snapshot.names.get(f"staff:{requirement.id}", requirement.id)
        return f"{name} {op} {threshold} (Current: {current})"
    if requirement.type == "metric":
        current = snapshot.metrics.get(requirement.id, 0)
        return f"{requirement.id} {op} {threshold} (Current: {current:g})"
    return requirement.id
