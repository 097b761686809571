from __future__ import annotations

from typing import Any, Mapping

from rules.combat import pick_target, strike_entity
from rules.core import SessionState, roll, roll_d20
from rules.reference import ReferenceCatalog, normalize_name
from rules.schemas import SpellDef, SpellMechanics
from rules.state import GameState, Resolution, SlotPool, replace_entity
from rules.statuses import apply_effect, make_effect

SLOT_KEY = "level_1"
SLOT_LEVEL = 1
DEFAULT_SAVE_DC = 10
MAGE_ARMOR_AC = 13

# Fixed effects for spells without a mechanics descriptor.
SPELL_EFFECTS: dict[str, dict[str, Any]] = {
    "magic missile": {
        "type": "damage",
        "dice": "1d4+1",
        "text": "You cast Magic Missile at {target}, dealing {amount} force damage.",
    },
    "guiding bolt": {
        "type": "damage",
        "dice": "4d6",
        "text": "You hurl a lance of radiant light at {target}, dealing {amount} radiant damage.",
    },
    "thunderwave": {
        "type": "damage",
        "dice": "2d8",
        "text": "You unleash Thunderwave at {target}, dealing {amount} thunder damage.",
    },
    "fire bolt": {
        "type": "damage",
        "dice": "1d10",
        "text": "You hurl a Fire Bolt at {target}, dealing {amount} fire damage.",
    },
    "ray of frost": {
        "type": "damage",
        "dice": "1d8",
        "text": "You cast Ray of Frost at {target}, dealing {amount} cold damage.",
    },
    "sacred flame": {
        "type": "damage",
        "dice": "1d8",
        "text": "Radiant fire sears {target}, dealing {amount} radiant damage.",
    },
    "word of radiance": {
        "type": "damage",
        "dice": "1d6",
        "text": "You utter a searing word; {target} takes {amount} radiant damage.",
    },
    "toll the dead": {
        "type": "damage",
        "dice": "1d12",
        "text": "A mournful toll rings out; {target} suffers {amount} necrotic damage.",
    },
    "cure wounds": {
        "type": "heal",
        "dice": "1d8+2",
        "text": "Healing energy knits flesh; you recover {amount} HP.",
    },
    "healing word": {
        "type": "heal",
        "dice": "1d4+2",
        "text": "You speak a word of restoration, recovering {amount} HP.",
    },
    "shield": {
        "type": "effect",
        "effect": "Shield",
        "text": "You raise Shield, gaining +5 AC until the start of your next turn.",
    },
    "mage armor": {
        "type": "effect",
        "effect": "Mage Armor",
        "base_ac": MAGE_ARMOR_AC,
        "text": "You ward yourself with Mage Armor, hardening your defenses.",
    },
    "shield of faith": {
        "type": "effect",
        "effect": "Shield of Faith",
        "text": "A shimmering field surrounds you, granting +2 AC for a short while.",
    },
    "bless": {
        "type": "effect",
        "effect": "Bless",
        "text": "You bless your efforts, guiding your strikes and resolve.",
    },
    "mage hand": {
        "type": "pin",
        "effect": "Mage Hand",
        "text": "A spectral hand clamps onto {target}, pinning it for the next moments.",
        "empty_text": "A spectral hand flickers into being, grasping at loose debris.",
    },
    "detect magic": {
        "type": "utility",
        "text": "You attune your senses; lingering magic hums in the air.",
    },
    "identify": {
        "type": "utility",
        "text": "You focus to identify an item or effect; details surface in your mind.",
    },
}


class SpellError(ValueError):
    pass


def dice_at_level(table: Mapping[int, str], level: int) -> str | None:
    """Dice for the highest table level not above ``level``; the lowest entry otherwise."""
    if not table:
        return None
    levels = sorted(table)
    eligible = [entry for entry in levels if entry <= level]
    return table[eligible[-1] if eligible else levels[0]]


def damage_dice_for(mechanics: SpellMechanics, character_level: int) -> str | None:
    return (
        dice_at_level(mechanics.at_character_level, character_level)
        or dice_at_level(mechanics.at_slot_level, SLOT_LEVEL)
        or mechanics.dice
    )


def _knows(names: tuple[str, ...], spell: SpellDef) -> bool:
    key = normalize_name(spell.name)
    return any(normalize_name(name) == key for name in names)


def check_castable(state: GameState, catalog: ReferenceCatalog, spell_name: str) -> SpellDef:
    """Return the spell when the player may cast it now; SpellError explains why not."""
    spell = catalog.spells_for_class(state.character.class_name).get(normalize_name(spell_name))
    if spell is None or not _knows(state.known_spells, spell):
        raise SpellError("You have not learned that spell.")
    if spell.is_cantrip:
        return spell
    if not _knows(state.prepared_spells, spell):
        raise SpellError(f"You have not prepared {spell.name}.")
    slot = state.spell_slots.get(SLOT_KEY)
    if slot is None or slot.current <= 0:
        raise SpellError(f"You have no {SLOT_KEY.replace('_', ' ')} spell slots left.")
    return spell


def spend_slot(state: GameState) -> GameState:
    slots = dict(state.spell_slots)
    slot = slots[SLOT_KEY]
    slots[SLOT_KEY] = SlotPool(max=slot.max, current=slot.current - 1)
    return state.model_copy(update={"spell_slots": slots})


def _heal(state: GameState, amount: int) -> GameState:
    return state.model_copy(update={"hp": min(state.max_hp, state.hp + amount)})


def _resolve_mechanics(
    result: Resolution,
    spell: SpellDef,
    session: SessionState,
    index: int | None,
) -> bool:
    mechanics = spell.mechanics
    state = result.state
    if mechanics.resolution == "heal":
        dice = dice_at_level(mechanics.heal_at_slot_level, SLOT_LEVEL)
        if dice is None:
            return False
        amount = roll(session, dice, label=spell.name)
        result.state = _heal(state, amount)
        result.note(f"Healing energy restores {amount} HP.")
        return True

    dice = damage_dice_for(mechanics, state.level)
    if dice is None or index is None:
        return False
    entity = state.nearby_entities[index]
    damage_type = (mechanics.damage_type or "magical").lower()
    hit_text = f"You cast {spell.name} at {entity.name}, dealing {{amount}} {damage_type} damage."

    if mechanics.resolution == "attack":
        attack_roll = roll_d20(session, label=f"{spell.name} attack") + state.spell_attack_bonus
        result.rolls.update(player_attack=attack_roll, player_attack_is_save=False)
        if attack_roll < entity.ac:
            result.combat_outcome = "miss"
            result.note(f"Your {spell.name} misses {entity.name}.")
            return True
    elif mechanics.resolution == "save":
        save_roll = roll_d20(session, label=f"{entity.name} save")
        save_dc = state.spell_save_dc or DEFAULT_SAVE_DC
        result.rolls.update(
            player_attack=save_roll, player_attack_is_save=True, player_attack_dc=save_dc
        )
        if save_roll >= save_dc:
            result.combat_outcome = "miss"
            result.note(f"{entity.name} resists your {spell.name}.")
            return True

    amount = roll(session, dice, label=f"{spell.name} damage")
    result.state, result.combat_outcome = strike_entity(state, index, amount)
    result.rolls["player_damage"] = amount
    result.note(hit_text.format(amount=amount))
    return True


def _resolve_fixed_effect(
    result: Resolution,
    spell: SpellDef,
    session: SessionState,
    index: int | None,
) -> None:
    state = result.state
    effect = SPELL_EFFECTS.get(normalize_name(spell.name))
    if effect is None:
        result.note(f"You cast {spell.name}, but its effect is not modeled yet.")
        return

    kind = effect["type"]
    target_name = state.nearby_entities[index].name if index is not None else None
    if kind == "damage":
        if index is None:
            result.note(f"You cast {spell.name}, but nothing is there to strike.")
            return
        amount = roll(session, effect["dice"], label=f"{spell.name} damage")
        result.state, result.combat_outcome = strike_entity(state, index, amount)
        result.rolls["player_damage"] = amount
        result.note(effect["text"].format(target=target_name, amount=amount))
    elif kind == "heal":
        amount = roll(session, effect["dice"], label=spell.name)
        result.state = _heal(state, amount)
        result.note(effect["text"].format(amount=amount))
    elif kind == "effect":
        update: dict[str, Any] = {
            "active_effects": apply_effect(
                state.active_effects, make_effect(effect["effect"], turn=state.turn_counter)
            )
        }
        if "base_ac" in effect:
            update["ac"] = max(state.ac, effect["base_ac"])
        result.state = state.model_copy(update=update)
        result.note(effect["text"])
    elif kind == "pin":
        if index is None:
            result.note(effect["empty_text"])
            return
        entity = state.nearby_entities[index]
        pinned = entity.model_copy(
            update={
                "effects": apply_effect(
                    entity.effects, make_effect(effect["effect"], turn=state.turn_counter)
                )
            }
        )
        result.state = state.model_copy(
            update={"nearby_entities": replace_entity(state.nearby_entities, index, pinned)}
        )
        result.note(effect["text"].format(target=entity.name))
    else:
        result.note(effect["text"])


def cast_spell(
    state: GameState,
    catalog: ReferenceCatalog,
    session: SessionState,
    spell_name: str,
    *,
    target: str | None = None,
    text: str = "",
) -> Resolution:
    """Cast a known spell at the named or first alive entity.

    Refusals (unknown, unprepared, no slot) leave the state untouched and
    report why. Non-cantrips spend one level 1 slot.
    """
    try:
        spell = check_castable(state, catalog, spell_name)
    except SpellError as exc:
        return Resolution(state=state, facts=[str(exc)])

    if not spell.is_cantrip:
        state = spend_slot(state)
    index = pick_target(state, target, text)
    result = Resolution(state=state, target_index=index)
    if spell.mechanics is not None and _resolve_mechanics(result, spell, session, index):
        return result
    _resolve_fixed_effect(result, spell, session, index)
    return result
