from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from rules.reference import ReferenceCatalog, normalize_name
from rules.state import GameState, Item

UNARMED = "Fists"
UNARMED_DAMAGE = "1"


@dataclass(frozen=True)
class AttackWeapon:
    name: str
    damage: str
    legal: bool


def is_weapon_allowed(catalog: ReferenceCatalog, class_name: str | None, weapon_name: str) -> bool:
    weapon = catalog.weapon(weapon_name)
    if weapon is None:
        return False
    allowed = {normalize_name(entry) for entry in catalog.class_def(class_name).weapons}
    return weapon.category in allowed or normalize_name(weapon.name) in allowed


def is_armor_allowed(catalog: ReferenceCatalog, class_name: str | None, armor_name: str) -> bool:
    armor = catalog.armor_piece(armor_name)
    if armor is None:
        return False
    return armor.category in catalog.class_def(class_name).armor


def select_attack_weapon(
    state: GameState,
    catalog: ReferenceCatalog,
    weapon_name: str | None = None,
) -> AttackWeapon:
    """Pick the weapon used for an attack and fall back to fists when illegal."""
    weapons = [item for item in state.inventory if item.type == "weapon" and item.quantity > 0]
    chosen: Item | None = None
    if weapon_name:
        chosen = next(
            (item for item in weapons if normalize_name(item.name) == normalize_name(weapon_name)),
            None,
        )
    if chosen is None:
        chosen = next((item for item in weapons if item.equipped), None)
    if chosen is None and weapons:
        chosen = weapons[0]
    if chosen is None:
        return AttackWeapon(name=UNARMED, damage=UNARMED_DAMAGE, legal=True)

    weapon = catalog.weapon(chosen.name)
    if weapon is None or not is_weapon_allowed(catalog, state.character.class_name, chosen.name):
        return AttackWeapon(name=UNARMED, damage=UNARMED_DAMAGE, legal=False)
    return AttackWeapon(name=weapon.name, damage=weapon.damage, legal=True)


def armor_class_from_gear(
    catalog: ReferenceCatalog,
    armor_names: Iterable[str],
    ability_scores: dict[str, int],
) -> int:
    dex_mod = (ability_scores.get("dex", 10) - 10) // 2
    best = 10 + dex_mod
    shield_bonus = 0
    for name in armor_names:
        armor = catalog.armor_piece(name)
        if armor is None:
            continue
        if armor.category == "shield":
            shield_bonus = max(shield_bonus, armor.base_ac)
            continue
        dex_cap = dex_mod if armor.max_dex is None else min(dex_mod, armor.max_dex)
        best = max(best, armor.base_ac + dex_cap)
    return best + shield_bonus


def armor_class_from_inventory(state: GameState, catalog: ReferenceCatalog) -> int:
    equipped = [
        item.name for item in state.inventory if item.type == "armor" and item.equipped
    ]
    return armor_class_from_gear(catalog, equipped, state.ability_scores)


def normalize_equipped(
    inventory: tuple[Item, ...],
    catalog: ReferenceCatalog,
) -> tuple[Item, ...]:
    """Keep one equipped weapon, one body armor and one shield.

    The first already-equipped item of each slot wins; an empty slot is filled
    by the first carried item that fits it.
    """

    def first(predicate) -> str | None:
        preferred = next((item.name for item in inventory if predicate(item) and item.equipped), None)
        return preferred or next((item.name for item in inventory if predicate(item)), None)

    def is_weapon(item: Item) -> bool:
        return item.type == "weapon"

    def is_shield(item: Item) -> bool:
        return item.type == "armor" and catalog.is_shield(item.name)

    def is_body_armor(item: Item) -> bool:
        return item.type == "armor" and not catalog.is_shield(item.name)

    weapon_name = first(is_weapon)
    armor_name = first(is_body_armor)
    shield_name = first(is_shield)

    claimed: set[str] = set()
    normalized: list[Item] = []
    for item in inventory:
        if is_weapon(item):
            slot, wanted = "weapon", weapon_name
        elif is_shield(item):
            slot, wanted = "shield", shield_name
        elif is_body_armor(item):
            slot, wanted = "armor", armor_name
        else:
            slot, wanted = None, None
        equipped = slot is not None and slot not in claimed and item.name == wanted
        if equipped:
            claimed.add(slot)
        normalized.append(item if item.equipped == equipped else item.model_copy(update={"equipped": equipped}))
    return tuple(normalized)


def equip_item(
    inventory: tuple[Item, ...],
    name: str,
    catalog: ReferenceCatalog,
) -> tuple[Item, ...]:
    """Equip ``name`` and unequip whatever held the same slot."""
    shield = catalog.is_shield(name)
    target = next((item for item in inventory if normalize_name(item.name) == normalize_name(name)), None)
    if target is None or target.type not in {"weapon", "armor"}:
        return inventory

    def same_slot(item: Item) -> bool:
        if item.type != target.type:
            return False
        if item.type == "weapon":
            return True
        return catalog.is_shield(item.name) == shield

    updated: list[Item] = []
    for item in inventory:
        if item is target:
            updated.append(item.model_copy(update={"equipped": True}))
        elif same_slot(item) and item.equipped:
            updated.append(item.model_copy(update={"equipped": False}))
        else:
            updated.append(item)
    return tuple(updated)
