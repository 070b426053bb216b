"""GameSession - one running shop: state, effects, RNG, hooks and player actions."""
from __future__ import annotations

import logging
import os
import random
from collections.abc import Mapping
from dataclasses import replace
from typing import Any, Callable

from tick_shop.clock import Clock
from tick_shop.config import EffectSpec, ShopConfig, load_config
from tick_shop.economy import LedgerEntry
from tick_shop.events import EventOutcome, resolve_choice
from tick_shop.metrics import DerivedMetrics, base_value, derive_metrics
from tick_shop.registry import EffectRegistry, MetricCalculation
from tick_shop.requirements import Requirement, RequirementSnapshot, evaluate_all
from tick_shop.rewards import apply_level_ups, record_cash
from tick_shop.scheduler import (
    HiredStaff,
    ShopState,
    TickResult,
    evaluate_outcome,
    state_from_dict,
    state_to_dict,
    tick_once,
)
from tick_shop.types import ActionError, EffectSource, EffectType, Metric, SnapshotError

logger = logging.getLogger(__name__)

_SNAPSHOT_VERSION = 1


class GameSession:
    """Explicit per-game context. Create one per game; ``reset`` starts over.

    Hooks receive the session plus the relevant payload and run after the
    state they describe is in place.
    """

    def __init__(
        self, config: ShopConfig | Mapping[str, Any], seed: int | None = None
    ) -> None:
        self._config = load_config(config)
        self._clock = Clock(
            self._config.stats.ticks_per_second,
            self._config.stats.period_duration_seconds,
        )
        self._period_hooks: list[Callable[[GameSession, LedgerEntry], None]] = []
        self._level_hooks: list[Callable[[GameSession, int], None]] = []
        self._game_over_hooks: list[Callable[[GameSession, str], None]] = []
        self._event_hooks: list[Callable[[GameSession, str], None]] = []
        self._init_game(seed)

    def _init_game(self, seed: int | None) -> None:
        if seed is None:
            seed = int.from_bytes(os.urandom(8))
        self._seed = seed
        self._rng = random.Random(seed)
        self._registry = EffectRegistry()
        self._state = ShopState.new(self._config)
        self._last: TickResult | None = None

    @property
    def config(self) -> ShopConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def registry(self) -> EffectRegistry:
        return self._registry

    @property
    def state(self) -> ShopState:
        return self._state

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def last_tick(self) -> TickResult | None:
        return self._last

    @property
    def outcome(self) -> str | None:
        return self._state.outcome

    # --- Hooks ---

    def on_period_close(self, hook: Callable[[GameSession, LedgerEntry], None]) -> None:
        self._period_hooks.append(hook)

    def on_level_up(self, hook: Callable[[GameSession, int], None]) -> None:
        self._level_hooks.append(hook)

    def on_game_over(self, hook: Callable[[GameSession, str], None]) -> None:
        self._game_over_hooks.append(hook)

    def on_event(self, hook: Callable[[GameSession, str], None]) -> None:
        self._event_hooks.append(hook)

    # --- Loop ---

    def step(self) -> TickResult | None:
        """Run one tick. Returns None once the game is decided."""
        if self._state.outcome is not None:
            return None
        result = tick_once(self._state, self._registry, self._config, self._rng)
        self._state = result.state
        self._last = result
        for level in result.levels_gained:
            self._fire(self._level_hooks, level)
        if result.closed is not None:
            self._fire(self._period_hooks, result.closed)
        if result.event_triggered is not None:
            self._fire(self._event_hooks, result.event_triggered)
        if self._state.outcome is not None:
            self._fire(self._game_over_hooks, self._state.outcome)
        return result

    def run(self, n: int) -> int:
        """Run up to ``n`` ticks, stopping early when the game is decided."""
        ran = 0
        for _ in range(n):
            if self.step() is None:
                break
            ran += 1
        return ran

    def reset(self, seed: int | None = None) -> None:
        """Start a fresh game with the same config. Hooks are kept."""
        self._init_game(self._seed if seed is None else seed)

    def _fire(self, hooks: list[Callable[[GameSession, Any], None]], payload: Any) -> None:
        for hook in hooks:
            hook(self, payload)

    # --- Queries ---

    def requirement_snapshot(self) -> RequirementSnapshot:
        return RequirementSnapshot.from_state(self._state, self._config)

    def is_available(self, requirements: tuple[Requirement, ...] | None) -> bool:
        return evaluate_all(requirements, self.requirement_snapshot())

    def derived(self) -> DerivedMetrics:
        return derive_metrics(self._registry, self._config)

    def metric_value(self, metric: Metric) -> float:
        return self._registry.current_value(metric, base_value(metric, self._config))

    def explain(self, metric: Metric) -> MetricCalculation:
        return self._registry.explain(metric, base_value(metric, self._config))

    # --- Actions ---

    def purchase_upgrade(self, upgrade_id: str) -> int:
        """Buy the next level of an upgrade. Returns the new level."""
        self._require_running()
        upgrade = self._config.upgrade(upgrade_id)
        if upgrade is None:
            raise ActionError(f"Unknown upgrade {upgrade_id!r}")
        current = self._state.upgrades.get(upgrade_id, 0)
        if current >= upgrade.max_level:
            raise ActionError(f"{upgrade.name or upgrade.id} is already at max level")
        self._require(upgrade.requirements, upgrade.name or upgrade.id)
        level = upgrade.level(current + 1)
        self._require_cash(level.cost)
        self._require_time(level.time_cost)

        label = f"{upgrade.name or upgrade.id} level {level.level}"
        self._pay(level.cost, label, "upgrade")
        self._spend_time(level.time_cost)
        source = EffectSource("upgrade", upgrade.id, upgrade.name)
        self._registry.remove_by_source("upgrade", upgrade.id)
        self._add_effects(level.effects, source, f"upgrade-{upgrade.id}-{level.level}")
        self._state.upgrades[upgrade.id] = level.level
        logger.debug("Purchased %s", label)
        self._after_action()
        return level.level

    def hire_staff(self, role_id: str) -> HiredStaff:
        self._require_running()
        role = self._config.staff_role(role_id)
        if role is None:
            raise ActionError(f"Unknown staff role {role_id!r}")
        self._require(role.requirements, role.name or role.id)
        self._require_cash(role.hire_cost)

        state = self._state
        hired = HiredStaff(f"{role.id}-{state.next_staff_id}", role.id, state.tick)
        state.next_staff_id += 1
        self._pay(role.hire_cost, f"Hire {role.name or role.id}", "staff")
        source = EffectSource("staff", hired.instance_id, role.name)
        self._add_effects(role.effects, source, f"staff-{hired.instance_id}")
        if role.salary > 0:
            salary = EffectSpec(metric=Metric.PERIOD_EXPENSES, type=EffectType.ADD,
                                value=role.salary)
            salary_source = EffectSource("staff", _salary_key(hired.instance_id), role.name)
            self._registry.add(
                salary.bind(salary_source, f"staff-{hired.instance_id}-salary", state.tick,
                            self._clock.tps)
            )
        state.staff.append(hired)
        logger.debug("Hired %s", hired.instance_id)
        self._after_action()
        return hired

    def fire_staff(self, instance_id: str) -> None:
        self._require_running()
        remaining = [s for s in self._state.staff if s.instance_id != instance_id]
        if len(remaining) == len(self._state.staff):
            raise ActionError(f"No hired staff {instance_id!r}")
        self._state.staff = remaining
        self._registry.remove_by_source("staff", instance_id)
        self._registry.remove_by_source("staff", _salary_key(instance_id))
        logger.debug("Fired %s", instance_id)
        self._after_action()

    def start_campaign(self, campaign_id: str) -> None:
        self._require_running()
        if self._state.active_campaign is not None:
            raise ActionError(f"Campaign {self._state.active_campaign!r} is still running")
        campaign = self._config.campaign(campaign_id)
        if campaign is None:
            raise ActionError(f"Unknown campaign {campaign_id!r}")
        self._require(campaign.requirements, campaign.name or campaign.id)
        self._require_cash(campaign.cost)
        self._require_time(campaign.time_cost)

        state = self._state
        ticks = campaign.ticks(self._clock.tps)
        self._pay(campaign.cost, f"Campaign: {campaign.name or campaign.id}", "marketing")
        self._spend_time(campaign.time_cost)
        source = EffectSource("marketing", campaign.id, campaign.name)
        for i, spec in enumerate(campaign.effects):
            self._registry.add(
                spec.bind(source, f"marketing-{campaign.id}-{state.tick}-{i}", state.tick,
                          self._clock.tps, duration_ticks=ticks)
            )
        state.active_campaign = campaign.id
        state.campaign_ends_at_tick = state.tick + ticks
        logger.debug("Campaign %s started for %d ticks", campaign.id, ticks)
        self._after_action()

    def trigger_event(self, event_id: str) -> None:
        """Make ``event_id`` the pending event, as if the periodic roll chose it."""
        self._require_running()
        if self._config.event(event_id) is None:
            raise ActionError(f"Unknown event {event_id!r}")
        self._state.current_event = event_id

    def resolve_event_choice(self, choice_id: str) -> EventOutcome:
        self._require_running()
        event_id = self._state.current_event
        if event_id is None:
            raise ActionError("No event is waiting for a choice")
        event = self._config.event(event_id)
        outcome = resolve_choice(
            self._state, self._registry, self._config, event, choice_id, self._rng
        )
        self._state.current_event = None
        for level in apply_level_ups(self._state, self._registry, self._config):
            self._fire(self._level_hooks, level)
        self._after_action()
        return outcome

    def _require_running(self) -> None:
        if self._state.outcome is not None:
            raise ActionError(f"Game is over ({self._state.outcome})")

    def _require(self, requirements: tuple[Requirement, ...], name: str) -> None:
        if not self.is_available(requirements):
            raise ActionError(f"Requirements not met for {name}")

    def _require_cash(self, amount: float) -> None:
        if amount > self._state.metrics.cash:
            raise ActionError(
                f"Cannot afford {amount:g}; cash is {self._state.metrics.cash:g}"
            )

    def _require_time(self, hours: float) -> None:
        if not self._config.time_enabled or hours <= 0:
            return
        m = self._state.metrics
        if hours > m.my_time + m.leveraged_time:
            raise ActionError(
                f"Not enough time: need {hours:g}, have {m.my_time + m.leveraged_time:g}"
            )

    def _pay(self, amount: float, label: str, category: str) -> None:
        if amount > 0:
            record_cash(self._state, -amount, label, category)

    def _spend_time(self, hours: float) -> None:
        """Leveraged time is used before personal time."""
        if not self._config.time_enabled or hours <= 0:
            return
        m = self._state.metrics
        from_leveraged = min(hours, m.leveraged_time)
        self._state.metrics = replace(
            m,
            leveraged_time=m.leveraged_time - from_leveraged,
            my_time=m.my_time - (hours - from_leveraged),
        )

    def _add_effects(
        self, specs: tuple[EffectSpec, ...], source: EffectSource, id_prefix: str
    ) -> None:
        for i, spec in enumerate(specs):
            self._registry.add(
                spec.bind(source, f"{id_prefix}-effect-{i}", self._state.tick, self._clock.tps)
            )

    def _after_action(self) -> None:
        if self._state.outcome is not None:
            return
        if evaluate_outcome(self._state, self._config) is not None:
            self._fire(self._game_over_hooks, self._state.outcome)

    # --- Serialization ---

    def snapshot(self) -> dict[str, Any]:
        return {
            "version": _SNAPSHOT_VERSION,
            "tps": self._clock.tps,
            "seed": self._seed,
            "rng_state": _serialize_rng_state(self._rng.getstate()),
            "state": state_to_dict(self._state),
            "effects": self._registry.snapshot(),
        }

    def restore(self, data: dict[str, Any]) -> None:
        version = data.get("version")
        if version != _SNAPSHOT_VERSION:
            raise SnapshotError(
                f"Unsupported snapshot version {version!r}, expected {_SNAPSHOT_VERSION}"
            )
        snap_tps = data.get("tps")
        if snap_tps != self._clock.tps:
            raise SnapshotError(
                f"TPS mismatch: snapshot has {snap_tps}, session has {self._clock.tps}"
            )
        try:
            state = state_from_dict(data["state"], self._config)
        except KeyError as exc:
            raise SnapshotError(f"Snapshot does not match config: {exc}") from exc
        self._registry.restore(data["effects"])
        self._seed = data["seed"]
        self._rng.setstate(_deserialize_rng_state(data["rng_state"]))
        self._state = state
        self._last = None


def _salary_key(instance_id: str) -> str:
    # Salary lives under its own source, apart from the role effects.
    return f"{instance_id}:salary"


def _serialize_rng_state(state: tuple[int, tuple[int, ...], float | None]) -> list[Any]:
    version, internalstate, gauss_next = state
    return [version, list(internalstate), gauss_next]


def _deserialize_rng_state(data: list[Any]) -> tuple[int, tuple[int, ...], float | None]:
    version, internalstate, gauss_next = data
    return (version, tuple(internalstate), gauss_next)
