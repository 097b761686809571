from __future__ import annotations

from typing import Iterable

from rules.state import Effect, Entity

EFFECT_CANONICAL = {
    "shield": "Shield",
    "mage armor": "Mage Armor",
    "shield of faith": "Shield of Faith",
    "bless": "Bless",
    "mage hand": "Mage Hand",
    "prone": "Prone",
    "stunt edge": "Stunt Edge",
}

# canonical name -> (type, value, turns until expiry; None never expires)
EFFECT_DEFAULTS: dict[str, tuple[str, int | None, int | None]] = {
    "Shield": ("ac_bonus", 5, 1),
    "Mage Armor": ("buff", None, None),
    "Shield of Faith": ("ac_bonus", 2, 3),
    "Bless": ("buff", None, 5),
    "Mage Hand": ("pin", None, 2),
    "Prone": ("debuff", None, 1),
    "Stunt Edge": ("buff", 2, 1),
}

DAMAGE_EDGE_EFFECTS = {"Stunt Edge"}


def normalize_effect(name: str) -> str:
    key = name.strip().lower()
    if key in EFFECT_CANONICAL:
        return EFFECT_CANONICAL[key]
    raise ValueError(f"Unknown effect: {name}")


def make_effect(name: str, *, turn: int, duration: int | None = None) -> Effect:
    canonical = normalize_effect(name)
    effect_type, value, default_duration = EFFECT_DEFAULTS[canonical]
    if duration is None:
        duration = default_duration
    return Effect(
        name=canonical,
        type=effect_type,
        value=value,
        expires_at_turn=None if duration is None else turn + duration,
    )


def apply_effect(effects: Iterable[Effect], effect: Effect) -> tuple[Effect, ...]:
    """Add ``effect``, replacing any existing effect with the same name."""
    kept = [existing for existing in effects if existing.name.lower() != effect.name.lower()]
    return tuple(kept) + (effect,)


def prune_effects(effects: Iterable[Effect], turn: int) -> tuple[Effect, ...]:
    return tuple(
        effect
        for effect in effects
        if effect.expires_at_turn is None or turn <= effect.expires_at_turn
    )


def prune_entity_effects(entity: Entity, turn: int) -> Entity:
    if not entity.effects:
        return entity
    return entity.model_copy(update={"effects": prune_effects(entity.effects, turn)})


def ac_bonus(effects: Iterable[Effect]) -> int:
    bonuses = [effect.value or 0 for effect in effects if effect.type == "ac_bonus"]
    return max(bonuses, default=0)


def damage_edge(effects: Iterable[Effect]) -> int:
    return sum(
        effect.value or 0
        for effect in effects
        if effect.type == "buff" and effect.name in DAMAGE_EDGE_EFFECTS
    )


def is_pinned(entity: Entity) -> bool:
    return any(effect.type == "pin" for effect in entity.effects)
