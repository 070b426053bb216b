"""EffectRegistry - time-aware collection of active effects keyed by metric."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from tick_shop.effects import CalculationStep, combine, explain, order_effects
from tick_shop.metrics import clamp_metric
from tick_shop.types import (
    Effect,
    EffectError,
    EffectSource,
    EffectType,
    Metric,
    validate_effect,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricCalculation:
    metric: Metric
    base_value: float
    final_value: float
    steps: list[CalculationStep] = field(default_factory=list)
    contributors: list[EffectSource] = field(default_factory=list)


class EffectRegistry:
    """Stores active effects per metric with O(1) lookup of an effect's metric.

    Effects are not expired lazily: call :meth:`expire` once per tick before
    reading metric values.
    """

    def __init__(self) -> None:
        self._by_metric: dict[Metric, list[Effect]] = {}
        self._index: dict[str, Metric] = {}

    # --- Mutation ---

    def add(self, effect: Effect) -> None:
        """Insert an effect. Raises EffectError if it is malformed.

        An effect with the same id, or an effect on the same metric from the
        same ``(source.category, source.id)``, is replaced rather than stacked.
        """
        validate_effect(effect)
        self.remove(effect.id)
        bucket = self._by_metric.setdefault(effect.metric, [])
        for i, existing in enumerate(bucket):
            if existing.source.key == effect.source.key:
                del self._index[existing.id]
                bucket[i] = effect
                break
        else:
            bucket.append(effect)
        self._index[effect.id] = effect.metric
        logger.debug("Effect %s added to %s from %s", effect.id, effect.metric.value,
                     effect.source.key)

    def remove(self, effect_id: str) -> bool:
        """Remove an effect by id. Returns False if it was not present."""
        metric = self._index.pop(effect_id, None)
        if metric is None:
            return False
        bucket = self._by_metric[metric]
        bucket[:] = [e for e in bucket if e.id != effect_id]
        if not bucket:
            del self._by_metric[metric]
        return True

    def remove_by_source(self, category: str, source_id: str) -> int:
        """Remove every effect from one source across all metrics."""
        return self._remove_where(
            lambda e: e.source.category == category and e.source.id == source_id
        )

    def clear_category(self, category: str) -> int:
        """Remove every effect whose source belongs to ``category``."""
        return self._remove_where(lambda e: e.source.category == category)

    def clear(self) -> None:
        self._by_metric.clear()
        self._index.clear()

    def expire(self, current_tick: int) -> list[Effect]:
        """Drop effects whose duration has elapsed. Returns what was removed."""
        expired = [e for e in self.effects() if e.expired(current_tick)]
        for effect in expired:
            self.remove(effect.id)
            logger.debug("Effect %s expired at tick %d", effect.id, current_tick)
        return expired

    def _remove_where(self, predicate: Any) -> int:
        doomed = [e.id for e in self.effects() if predicate(e)]
        for effect_id in doomed:
            self.remove(effect_id)
        return len(doomed)

    # --- Queries ---

    def current_value(self, metric: Metric, base_value: float) -> float:
        """Combine all active effects on ``metric`` with ``base_value`` and clamp."""
        effects = self._by_metric.get(metric)
        if not effects:
            return clamp_metric(metric, float(base_value))
        return clamp_metric(metric, combine(base_value, effects))

    def explain(self, metric: Metric, base_value: float) -> MetricCalculation:
        """Audit trail of how ``current_value`` is reached."""
        effects = self._by_metric.get(metric, [])
        steps = explain(base_value, effects)
        raw = steps[-1].value
        final = clamp_metric(metric, raw)
        if final != raw:
            steps.append(
                CalculationStep(description="Constraints applied", value=final,
                                delta=final - raw)
            )
        return MetricCalculation(
            metric=metric,
            base_value=float(base_value),
            final_value=final,
            steps=steps,
            contributors=[e.source for e in order_effects(effects)],
        )

    def effects_for(self, metric: Metric) -> list[Effect]:
        return list(self._by_metric.get(metric, []))

    def effects(self) -> list[Effect]:
        """All active effects, grouped by metric in insertion order."""
        return [e for bucket in self._by_metric.values() for e in bucket]

    def has(self, effect_id: str) -> bool:
        return effect_id in self._index

    def sources(self, category: str) -> list[str]:
        """Distinct source ids currently contributing from ``category``."""
        seen: dict[str, None] = {}
        for effect in self.effects():
            if effect.source.category == category:
                seen.setdefault(effect.source.id, None)
        return list(seen)

    def __len__(self) -> int:
        return len(self._index)

    # --- Serialization ---

    def snapshot(self) -> dict[str, Any]:
        """Serialize active effects in insertion order per metric."""
        return {
            "effects": [
                {
                    "id": e.id,
                    "source": {
                        "category": e.source.category,
                        "id": e.source.id,
                        "name": e.source.name,
                    },
                    "metric": e.metric.value,
                    "type": e.type.value,
                    "value": e.value,
                    "priority": e.priority,
                    "duration_ticks": e.duration_ticks,
                    "created_at_tick": e.created_at_tick,
                }
                for e in self.effects()
            ]
        }

    def restore(self, data: dict[str, Any]) -> None:
        """Replace contents with a snapshot produced by :meth:`snapshot`."""
        self.clear()
        for raw in data.get("effects", []):
            try:
                metric = Metric(raw["metric"])
                effect_type = EffectType(raw["type"])
            except ValueError as exc:
                raise EffectError(str(exc)) from exc
            self.add(
                Effect(
                    id=raw["id"],
                    source=EffectSource(**raw["source"]),
                    metric=metric,
                    type=effect_type,
                    value=raw["value"],
                    priority=raw.get("priority", 0),
                    duration_ticks=raw.get("duration_ticks"),
                    created_at_tick=raw.get("created_at_tick", 0),
                )
            )
