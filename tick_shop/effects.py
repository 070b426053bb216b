"""Effect algebra - how typed effects fold into a metric value."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from tick_shop.types import Effect, EffectType

# Set establishes the floor, relative modifiers compound on top of it.
TYPE_ORDER: tuple[EffectType, ...] = (
    EffectType.SET,
    EffectType.ADD,
    EffectType.PERCENT,
    EffectType.MULTIPLY,
)

_TYPE_RANK = {t: i for i, t in enumerate(TYPE_ORDER)}


@dataclass(frozen=True)
class CalculationStep:
    description: str
    value: float
    delta: float = 0.0
    effect: Effect | None = None


def apply_effect(value: float, effect: Effect) -> float:
    """Apply a single effect to ``value``."""
    if effect.type is EffectType.ADD:
        return value + effect.value
    if effect.type is EffectType.PERCENT:
        return value * (1 + effect.value)
    if effect.type is EffectType.MULTIPLY:
        return value * effect.value
    if effect.type is EffectType.SET:
        return float(effect.value)
    raise ValueError(f"Unknown effect type: {effect.type!r}")


def order_effects(effects: Iterable[Effect]) -> list[Effect]:
    """Canonical order: by type group, then ascending priority, then insertion."""
    indexed = list(enumerate(effects))
    indexed.sort(key=lambda pair: (_TYPE_RANK[pair[1].type], pair[1].priority, pair[0]))
    return [effect for _, effect in indexed]


def combine(base: float, effects: Iterable[Effect]) -> float:
    """Fold every effect into ``base`` in canonical order. No clamping."""
    value = float(base)
    for effect in order_effects(effects):
        value = apply_effect(value, effect)
    return value


def _describe(effect: Effect) -> str:
    name = effect.source.name or effect.source.id
    v = effect.value
    if effect.type is EffectType.ADD:
        return f"{name} ({'+' if v >= 0 else ''}{v:g})"
    if effect.type is EffectType.PERCENT:
        return f"{name} ({'+' if v >= 0 else ''}{v * 100:g}%)"
    if effect.type is EffectType.MULTIPLY:
        return f"{name} (x{v:g})"
    return f"{name} (set {v:g})"


def explain(base: float, effects: Iterable[Effect]) -> list[CalculationStep]:
    """Same fold as :func:`combine`, recording every intermediate value."""
    value = float(base)
    steps = [CalculationStep(description="Base", value=value)]
    for effect in order_effects(effects):
        before = value
        value = apply_effect(value, effect)
        steps.append(
            CalculationStep(
                description=_describe(effect),
                value=value,
                delta=value - before,
                effect=effect,
            )
        )
    return steps
