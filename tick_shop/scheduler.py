"""Shop state and the single-tick transition."""
from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass, field, replace
from typing import Any

from tick_shop.clock import Clock
from tick_shop.config import ServiceDef, ShopConfig
from tick_shop.customers import (
    Customer,
    CustomerStatus,
    CustomerStepResult,
    spawn_customer,
    step_customers,
)
from tick_shop.economy import (
    LedgerEntry,
    OneTimeCost,
    check_lose,
    check_win,
    close_out_period,
    level_for_exp,
    make_ledger_entry,
)
from tick_shop.events import maybe_trigger
from tick_shop.metrics import DerivedMetrics, derive_metrics, seconds_to_ticks
from tick_shop.registry import EffectRegistry
from tick_shop.requirements import RequirementSnapshot, evaluate_all
from tick_shop.rewards import add_exp, apply_level_ups
from tick_shop.types import Effect, Metric

logger = logging.getLogger(__name__)

LEAD_THRESHOLD = 100.0

WON = "won"
LOST = "lost"


@dataclass(frozen=True)
class ShopMetrics:
    cash: float
    total_revenue: float = 0.0
    total_expenses: float = 0.0
    exp: float = 0.0
    my_time: float = 0.0
    leveraged_time: float = 0.0
    leveraged_time_capacity: float = 0.0


@dataclass(frozen=True)
class HiredStaff:
    instance_id: str
    role_id: str
    hired_at_tick: int = 0


@dataclass
class ShopState:
    """Everything that changes while a shop runs, apart from active effects."""

    metrics: ShopMetrics
    tick: int = 0
    time_seconds: int = 0
    current_period: int = 1
    customers: list[Customer] = field(default_factory=list)
    period_revenue: float = 0.0
    period_expenses: float = 0.0
    one_time_costs: list[OneTimeCost] = field(default_factory=list)
    one_time_costs_paid: float = 0.0
    ledger: list[LedgerEntry] = field(default_factory=list)
    lead_progress: float = 0.0
    next_customer_id: int = 1
    flags: dict[str, bool] = field(default_factory=dict)
    upgrades: dict[str, int] = field(default_factory=dict)
    staff: list[HiredStaff] = field(default_factory=list)
    next_staff_id: int = 1
    active_campaign: str | None = None
    campaign_ends_at_tick: int | None = None
    current_event: str | None = None
    rewarded_level: int = 0
    outcome: str | None = None

    @classmethod
    def new(cls, config: ShopConfig) -> ShopState:
        start = config.metrics
        return cls(
            metrics=ShopMetrics(
                cash=start.starting_cash,
                exp=start.starting_exp,
                my_time=float(start.starting_time),
            ),
            period_expenses=start.base_period_expenses,
            rewarded_level=level_for_exp(start.starting_exp, config.stats.exp_per_level),
        )

    def copy(self) -> ShopState:
        """Copy whose containers can be changed without touching this state."""
        return replace(
            self,
            customers=list(self.customers),
            one_time_costs=list(self.one_time_costs),
            ledger=list(self.ledger),
            flags=dict(self.flags),
            upgrades=dict(self.upgrades),
            staff=list(self.staff),
        )

    @property
    def one_time_costs_total(self) -> float:
        return sum(c.amount for c in self.one_time_costs)


@dataclass(frozen=True)
class TickResult:
    state: ShopState
    derived: DerivedMetrics
    customers: CustomerStepResult
    closed: LedgerEntry | None = None
    spawned: tuple[Customer, ...] = ()
    expired: tuple[Effect, ...] = ()
    levels_gained: tuple[int, ...] = ()
    event_triggered: str | None = None


def pick_service(
    services: list[ServiceDef], rng: random.Random
) -> ServiceDef | None:
    """Weighted random service; zero total weight falls back to a uniform pick."""
    if not services:
        return None
    weights = [s.weight for s in services]
    if sum(weights) <= 0:
        return rng.choice(services)
    return rng.choices(services, weights=weights, k=1)[0]


def _spawn(
    state: ShopState,
    config: ShopConfig,
    derived: DerivedMetrics,
    rng: random.Random,
    due: bool,
) -> list[Customer]:
    """Convert every whole lead in ``lead_progress`` into a customer.

    Progress grows by the conversion rate on spawn ticks; granted leads add to
    it at any time and convert on the next tick. The remainder carries over.
    """
    if due:
        state.lead_progress += derived.lead_conversion_rate
    spawned: list[Customer] = []
    if state.lead_progress < LEAD_THRESHOLD:
        return spawned
    snapshot = RequirementSnapshot.from_state(state, config)
    available = [s for s in config.services if evaluate_all(s.requirements, snapshot)]
    patience = seconds_to_ticks(
        config.stats.customer_patience_seconds, config.stats.ticks_per_second
    )
    while state.lead_progress >= LEAD_THRESHOLD:
        state.lead_progress -= LEAD_THRESHOLD
        service = pick_service(available, rng)
        if service is None:
            logger.warning("No service available at tick %d; lead lost", state.tick)
            continue
        customer = spawn_customer(state.next_customer_id, service, patience, state.tick)
        state.next_customer_id += 1
        state.customers.append(customer)
        spawned.append(customer)
    return spawned


def _reconcile_leveraged_time(state: ShopState, capacity: float) -> None:
    m = state.metrics
    delta = capacity - m.leveraged_time_capacity
    if delta == 0:
        return
    if delta > 0:
        leveraged = m.leveraged_time + delta
    else:
        leveraged = min(m.leveraged_time, capacity)
    state.metrics = replace(
        m, leveraged_time=max(0.0, leveraged), leveraged_time_capacity=capacity
    )


def close_period(
    state: ShopState, registry: EffectRegistry, config: ShopConfig
) -> LedgerEntry:
    """Settle the current period, append the ledger entry and start the next one."""
    m = state.metrics
    result = close_out_period(
        m.cash,
        state.period_revenue,
        state.period_expenses,
        state.one_time_costs_total,
        state.one_time_costs_paid,
    )
    entry = make_ledger_entry(
        state.current_period,
        state.period_revenue,
        state.period_expenses,
        state.one_time_costs,
        m.exp,
        state.ledger[-1] if state.ledger else None,
        config.stats.exp_per_level,
    )
    my_time = m.my_time
    if config.time_enabled:
        my_time = registry.current_value(
            Metric.MONTHLY_TIME_CAPACITY, config.metrics.starting_time
        )
    state.metrics = replace(
        m,
        cash=result.cash,
        total_expenses=m.total_expenses + result.total_expenses,
        my_time=my_time,
    )
    state.ledger.append(entry)
    state.period_revenue = 0.0
    state.one_time_costs = []
    state.one_time_costs_paid = 0.0
    state.period_expenses = registry.current_value(
        Metric.PERIOD_EXPENSES, config.metrics.base_period_expenses
    )
    state.current_period += 1
    logger.info(
        "Period %d closed: revenue=%.2f expenses=%.2f profit=%.2f cash=%.2f",
        entry.period, entry.revenue, result.total_expenses, entry.profit, result.cash,
    )
    return entry


def evaluate_outcome(state: ShopState, config: ShopConfig) -> str | None:
    """Decide the game if it is not decided yet. Loss is checked first."""
    if state.outcome is not None:
        return state.outcome
    if check_lose(state.metrics, config.lose_condition, config.time_enabled):
        state.outcome = LOST
    elif check_win(state.metrics.cash, len(state.ledger), config.win_condition):
        state.outcome = WON
    if state.outcome is not None:
        logger.info("Game %s at tick %d", state.outcome, state.tick)
    return state.outcome


def tick_once(
    state: ShopState,
    registry: EffectRegistry,
    config: ShopConfig,
    rng: random.Random,
) -> TickResult:
    """Advance the shop by exactly one tick.

    ``state`` is left untouched; the returned result holds the new state.
    The registry is updated in place (expiry, level rewards).
    """
    clock = Clock(config.stats.ticks_per_second, config.stats.period_duration_seconds)
    state = state.copy()
    previous_seconds = state.time_seconds

    state.tick += 1
    state.time_seconds = clock.advance_time(state.time_seconds, state.tick)

    expired = registry.expire(state.tick)
    if state.campaign_ends_at_tick is not None and state.tick >= state.campaign_ends_at_tick:
        logger.debug("Campaign %s ended at tick %d", state.active_campaign, state.tick)
        state.active_campaign = None
        state.campaign_ends_at_tick = None

    derived = derive_metrics(registry, config)
    state.period_expenses = derived.period_expenses
    _reconcile_leveraged_time(state, derived.leveraged_time_capacity)

    spawned = _spawn(
        state, config, derived, rng, clock.spawn_due(state.tick, derived.spawn_interval_ticks)
    )

    step = step_customers(state.customers, derived, config.stats, rng)
    state.customers = step.customers
    if step.revenue:
        m = state.metrics
        state.metrics = replace(
            m, cash=m.cash + step.revenue, total_revenue=m.total_revenue + step.revenue
        )
        state.period_revenue += step.revenue
    if step.exp_delta:
        add_exp(state, step.exp_delta)
    levels = apply_level_ups(state, registry, config)

    closed = None
    if clock.is_period_rollover(previous_seconds, state.time_seconds):
        closed = close_period(state, registry, config)
        evaluate_outcome(state, config)

    triggered = None
    event_ticks = seconds_to_ticks(
        config.stats.event_check_interval_seconds, config.stats.ticks_per_second
    )
    if state.outcome is None and state.current_event is None and state.tick % event_ticks == 0:
        event = maybe_trigger(config, RequirementSnapshot.from_state(state, config), rng)
        if event is not None:
            state.current_event = event.id
            triggered = event.id
            logger.info("Event %s triggered at tick %d", event.id, state.tick)

    return TickResult(
        state=state,
        derived=derived,
        customers=step,
        closed=closed,
        spawned=tuple(spawned),
        expired=tuple(expired),
        levels_gained=tuple(levels),
        event_triggered=triggered,
    )


def state_to_dict(state: ShopState) -> dict[str, Any]:
    """JSON-compatible form of ``state``; customers refer to services by id."""
    return {
        "metrics": asdict(state.metrics),
        "tick": state.tick,
        "time_seconds": state.time_seconds,
        "current_period": state.current_period,
        "customers": [
            {
                "id": c.id,
                "service": c.service.id,
                "status": c.status.value,
                "service_ticks_left": c.service_ticks_left,
                "patience_ticks_left": c.patience_ticks_left,
                "max_patience_ticks": c.max_patience_ticks,
                "room_id": c.room_id,
                "leaving_ticks": c.leaving_ticks,
                "entered_at_tick": c.entered_at_tick,
            }
            for c in state.customers
        ],
        "period_revenue": state.period_revenue,
        "period_expenses": state.period_expenses,
        "one_time_costs": [asdict(c) for c in state.one_time_costs],
        "one_time_costs_paid": state.one_time_costs_paid,
        "ledger": [asdict(e) for e in state.ledger],
        "lead_progress": state.lead_progress,
        "next_customer_id": state.next_customer_id,
        "flags": dict(state.flags),
        "upgrades": dict(state.upgrades),
        "staff": [asdict(s) for s in state.staff],
        "next_staff_id": state.next_staff_id,
        "active_campaign": state.active_campaign,
        "campaign_ends_at_tick": state.campaign_ends_at_tick,
        "current_event": state.current_event,
        "rewarded_level": state.rewarded_level,
        "outcome": state.outcome,
    }


def state_from_dict(data: dict[str, Any], config: ShopConfig) -> ShopState:
    """Rebuild a state. Raises KeyError for any id the config does not define."""
    _check_ids(data, config)
    customers = []
    for raw in data["customers"]:
        service = config.service(raw["service"])
        if service is None:
            raise KeyError(f"Unknown service {raw['service']!r} in snapshot")
        customers.append(
            Customer(**{**raw, "service": service, "status": CustomerStatus(raw["status"])})
        )
    return ShopState(
        metrics=ShopMetrics(**data["metrics"]),
        tick=data["tick"],
        time_seconds=data["time_seconds"],
        current_period=data["current_period"],
        customers=customers,
        period_revenue=data["period_revenue"],
        period_expenses=data["period_expenses"],
        one_time_costs=[OneTimeCost(**c) for c in data["one_time_costs"]],
        one_time_costs_paid=data["one_time_costs_paid"],
        ledger=[
            LedgerEntry(
                **{**e, "one_time_costs": tuple(OneTimeCost(**c) for c in e["one_time_costs"])}
            )
            for e in data["ledger"]
        ],
        lead_progress=data["lead_progress"],
        next_customer_id=data["next_customer_id"],
        flags=dict(data["flags"]),
        upgrades=dict(data["upgrades"]),
        staff=[HiredStaff(**s) for s in data["staff"]],
        next_staff_id=data["next_staff_id"],
        active_campaign=data["active_campaign"],
        campaign_ends_at_tick=data["campaign_ends_at_tick"],
        current_event=data["current_event"],
        rewarded_level=data["rewarded_level"],
        outcome=data["outcome"],
    )


def _check_ids(data: dict[str, Any], config: ShopConfig) -> None:
    for upgrade_id, level in data["upgrades"].items():
        upgrade = config.upgrade(upgrade_id)
        if upgrade is None:
            raise KeyError(f"Unknown upgrade {upgrade_id!r} in snapshot")
        if not 1 <= level <= upgrade.max_level:
            raise KeyError(f"Upgrade {upgrade_id!r} has no level {level} in snapshot")
    for hired in data["staff"]:
        if config.staff_role(hired["role_id"]) is None:
            raise KeyError(f"Unknown staff role {hired['role_id']!r} in snapshot")
    campaign = data["active_campaign"]
    if campaign is not None and config.campaign(campaign) is None:
        raise KeyError(f"Unknown campaign {campaign!r} in snapshot")
    event = data["current_event"]
    if event is not None and config.event(event) is None:
        raise KeyError(f"Unknown event {event!r} in snapshot")
