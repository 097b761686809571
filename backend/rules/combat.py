from __future__ import annotations

from rules.core import SessionState, roll, roll_d20
from rules.reference import ReferenceCatalog
from rules.state import (
    Entity,
    GameState,
    Resolution,
    damage_entity,
    record_inventory_change,
    remove_item,
    replace_entity,
)
from rules.statuses import ac_bonus, damage_edge, is_pinned
from rules.validation import armor_class_from_inventory, select_attack_weapon

DEFEND_BONUS = 4
POTION_HEAL = "2d4+2"
GREATER_POTION_HEAL = "4d4+4"
BANDAGE_HEAL = 6

NAME_STOPWORDS = {"the", "and", "of"}

NO_THREAT = "You act, but there is no immediate threat here."
NO_FOE = "You swing, but no foe stands before you."
NOTHING_LEFT = "There is nothing left to attack."


def base_armor_class(state: GameState, catalog: ReferenceCatalog) -> int:
    if not state.inventory:
        return state.ac
    return max(state.ac, armor_class_from_inventory(state, catalog))


def player_armor_class(state: GameState, catalog: ReferenceCatalog) -> int:
    """Effective AC: base from gear plus the best AC effect plus this turn's guard."""
    return base_armor_class(state, catalog) + ac_bonus(state.active_effects) + state.temp_ac_bonus


def _names_match(entity: Entity, text: str) -> bool:
    lowered = text.lower()
    name = entity.name.lower()
    if name in lowered or lowered in name:
        return True
    words = set(lowered.split())
    return any(
        len(word) >= 3 and word not in NAME_STOPWORDS and word in words for word in name.split()
    )


def pick_target(state: GameState, target: str | None, text: str = "") -> int | None:
    """Index of the alive entity named by ``target`` or the text, else the first alive one."""
    alive = [index for index, entity in enumerate(state.nearby_entities) if entity.is_alive]
    if not alive:
        return None
    for hint in (target, text):
        if not hint:
            continue
        for index in alive:
            if _names_match(state.nearby_entities[index], hint):
                return index
    return alive[0]


def strike_entity(state: GameState, index: int, damage: int) -> tuple[GameState, str]:
    """Apply damage to the entity at ``index``; returns the state and "hit" or "kill"."""
    entity = damage_entity(state.nearby_entities[index], damage)
    state = state.model_copy(
        update={"nearby_entities": replace_entity(state.nearby_entities, index, entity)}
    )
    return state, "kill" if entity.status == "dead" else "hit"


def use_consumable(state: GameState, kind: str, session: SessionState) -> Resolution:
    item = next(
        (entry for entry in state.inventory if kind in entry.name.lower() and entry.quantity > 0),
        None,
    )
    if item is None:
        return Resolution(state=state, facts=[f"You fumble for a {kind}, but you have none left."])

    if kind == "potion":
        dice = GREATER_POTION_HEAL if "greater" in item.name.lower() else POTION_HEAL
        heal = roll(session, dice, label=item.name)
        message = f"You drink {item.name}, recovering {heal} HP."
        change = f"Used {item.name} ({heal} HP) at {state.location}"
    else:
        heal = BANDAGE_HEAL
        message = f"You apply a bandage, recovering {heal} HP."
        change = f"Used bandage ({heal} HP) at {state.location}"

    state = state.model_copy(
        update={
            "hp": min(state.max_hp, state.hp + heal),
            "inventory": remove_item(state.inventory, item.name),
        }
    )
    return Resolution(state=record_inventory_change(state, change), facts=[message])


def weapon_attack(
    state: GameState,
    catalog: ReferenceCatalog,
    session: SessionState,
    *,
    weapon_name: str | None = None,
    target: str | None = None,
    text: str = "",
) -> Resolution:
    index = pick_target(state, target, text)
    if index is None:
        return Resolution(state=state, facts=[NO_FOE])

    weapon = select_attack_weapon(state, catalog, weapon_name)
    entity = state.nearby_entities[index]
    attack_roll = roll_d20(session, label=f"attack {entity.name}")
    result = Resolution(state=state, target_index=index, rolls={"player_attack": attack_roll})
    if attack_roll < entity.ac:
        result.combat_outcome = "miss"
        result.note(f"You miss {entity.name} (roll {attack_roll} vs AC {entity.ac}).")
        return result

    damage = roll(session, weapon.damage, label=f"{weapon.name} damage")
    damage = max(0, damage + damage_edge(state.active_effects))
    result.state, result.combat_outcome = strike_entity(state, index, damage)
    result.rolls["player_damage"] = damage
    result.note(
        f"You hit {entity.name} with {weapon.name} for {damage} damage "
        f"(roll {attack_roll} vs AC {entity.ac})."
    )
    return result


def defend(state: GameState) -> Resolution:
    return Resolution(
        state=state.model_copy(update={"temp_ac_bonus": DEFEND_BONUS}),
        facts=["You brace for impact, raising your guard."],
    )


def run_away(state: GameState) -> Resolution:
    return Resolution(
        state=state.model_copy(update={"nearby_entities": (), "is_combat_active": False}),
        facts=["You flee the encounter."],
    )


def monster_turn(
    state: GameState,
    catalog: ReferenceCatalog,
    session: SessionState,
    *,
    core_action: str,
    engaged_index: int | None = None,
) -> Resolution:
    """Let one alive entity retaliate.

    Fires only when combat is already active or this turn's action was
    attack or defend, and never after running.
    """
    result = Resolution(state=state)
    if core_action == "run":
        return result
    alive = [index for index, entity in enumerate(state.nearby_entities) if entity.is_alive]
    if not alive:
        return result
    if not (state.is_combat_active or core_action in {"attack", "defend"}):
        return result

    index = engaged_index if engaged_index in alive else alive[0]
    attacker = state.nearby_entities[index]
    if is_pinned(attacker):
        result.note(f"{attacker.name} struggles against the spectral hand and cannot attack this moment.")
        return result

    attack_roll = roll_d20(session, label=f"{attacker.name} attack") + attacker.attack_bonus
    armor_class = player_armor_class(state, catalog)
    result.rolls["monster_attack"] = attack_roll
    if attack_roll < armor_class:
        result.note(f"{attacker.name} misses you (roll {attack_roll} vs AC {armor_class}).")
        return result

    damage = max(0, roll(session, attacker.damage_dice, label=f"{attacker.name} damage"))
    result.rolls["monster_damage"] = damage
    result.state = state.model_copy(update={"hp": max(0, state.hp - damage)})
    result.note(f"{attacker.name} hits you for {damage} damage (roll {attack_roll} vs AC {armor_class}).")
    return result


def end_of_turn(state: GameState, core_action: str) -> GameState:
    any_alive = bool(state.alive_entities())
    engaged = state.is_combat_active or core_action in {"attack", "defend"}
    return state.model_copy(
        update={
            "temp_ac_bonus": 0,
            "is_combat_active": any_alive and engaged and state.hp > 0,
        }
    )
