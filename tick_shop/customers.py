"""Customer lifecycle: Waiting -> InService -> removed, Waiting -> LeavingAngry -> removed."""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tick_shop.config import BusinessStats, ServiceDef
    from tick_shop.metrics import DerivedMetrics

logger = logging.getLogger(__name__)

MIN_SERVICE_SPEED = 0.1


class CustomerStatus(str, Enum):
    WAITING = "waiting"
    IN_SERVICE = "inService"
    LEAVING_ANGRY = "leavingAngry"


@dataclass(frozen=True)
class Customer:
    id: int
    service: ServiceDef
    status: CustomerStatus
    service_ticks_left: int
    patience_ticks_left: int
    max_patience_ticks: int
    room_id: int | None = None
    leaving_ticks: int = 0
    entered_at_tick: int = 0


@dataclass(frozen=True)
class CustomerStepResult:
    """Survivors of one tick plus the economic side effects it produced."""

    customers: list[Customer]
    revenue: float = 0.0
    exp_delta: float = 0.0
    served: int = 0
    happy: int = 0
    angry: int = 0


def spawn_customer(
    customer_id: int, service: ServiceDef, patience_ticks: int, tick: int
) -> Customer:
    patience = max(1, patience_ticks)
    return Customer(
        id=customer_id,
        service=service,
        status=CustomerStatus.WAITING,
        service_ticks_left=0,
        patience_ticks_left=patience,
        max_patience_ticks=patience,
        entered_at_tick=tick,
    )


def service_ticks(duration_seconds: float, ticks_per_second: int, speed: float) -> int:
    """Ticks needed to serve a customer at ``speed``; always at least one."""
    if speed < MIN_SERVICE_SPEED:
        logger.warning("Service speed %r below minimum; using %r", speed, MIN_SERVICE_SPEED)
        speed = MIN_SERVICE_SPEED
    return max(1, math.ceil(duration_seconds * ticks_per_second / speed))


def start_service(customer: Customer, room_id: int, ticks: int) -> Customer:
    return replace(
        customer,
        status=CustomerStatus.IN_SERVICE,
        room_id=room_id,
        service_ticks_left=ticks,
    )


def free_rooms(customers: list[Customer], room_count: int) -> list[int]:
    """Room ids in ``1..room_count`` not held by a customer in service."""
    taken = {
        c.room_id for c in customers
        if c.status is CustomerStatus.IN_SERVICE and c.room_id is not None
    }
    return [r for r in range(1, room_count + 1) if r not in taken]


def service_revenue(price: float, derived: DerivedMetrics) -> float:
    return max(0.0, price + derived.revenue_flat_bonus) * derived.revenue_multiplier


def step_customers(
    customers: list[Customer],
    derived: DerivedMetrics,
    stats: BusinessStats,
    rng: random.Random,
) -> CustomerStepResult:
    """Advance every customer by one tick.

    Waiting customers are offered free rooms oldest first. A customer that
    is seated this tick does not also count down service on the same tick.
    """
    rooms = free_rooms(customers, derived.service_rooms)
    order = sorted(customers, key=lambda c: (c.entered_at_tick, c.id))
    survivors: list[Customer] = []
    revenue = 0.0
    exp_delta = 0.0
    served = happy = angry = 0

    for customer in order:
        if customer.status is CustomerStatus.WAITING:
            waiting = replace(customer, patience_ticks_left=customer.patience_ticks_left - 1)
            if rooms:
                ticks = service_ticks(
                    customer.service.duration_seconds, stats.ticks_per_second,
                    derived.service_speed,
                )
                survivors.append(start_service(waiting, rooms.pop(0), ticks))
            elif waiting.patience_ticks_left <= 0:
                survivors.append(replace(waiting, status=CustomerStatus.LEAVING_ANGRY))
                exp_delta -= stats.exp_loss_per_angry_customer
                angry += 1
            else:
                survivors.append(waiting)

        elif customer.status is CustomerStatus.IN_SERVICE:
            left = customer.service_ticks_left - 1
            if left > 0:
                survivors.append(replace(customer, service_ticks_left=left))
                continue
            revenue += service_revenue(customer.service.price, derived)
            served += 1
            if rng.random() < derived.happy_probability:
                exp_delta += stats.exp_gain_per_happy_customer * derived.reputation_multiplier
                happy += 1

        else:
            leaving = customer.leaving_ticks + 1
            if leaving < stats.leaving_angry_duration_ticks:
                survivors.append(replace(customer, leaving_ticks=leaving))

    return CustomerStepResult(
        customers=survivors,
        revenue=revenue,
        exp_delta=exp_delta,
        served=served,
        happy=happy,
        angry=angry,
    )
