from rules.state import add_item
from rules.validation import (
    armor_class_from_gear,
    equip_item,
    is_armor_allowed,
    is_weapon_allowed,
    normalize_equipped,
)


def test_weapon_legality_by_category_or_name(catalog) -> None:
    assert is_weapon_allowed(catalog, "Fighter", "Longsword")
    assert is_weapon_allowed(catalog, "Wizard", "Dagger")
    assert not is_weapon_allowed(catalog, "Wizard", "Longsword")
    assert not is_weapon_allowed(catalog, "Fighter", "Laser Sword")


def test_armor_legality(catalog) -> None:
    assert is_armor_allowed(catalog, "Fighter", "Chain Shirt")
    assert not is_armor_allowed(catalog, "Wizard", "Leather")


def test_armor_class_from_gear(catalog) -> None:
    fighter_scores = {"dex": 12}
    assert armor_class_from_gear(catalog, ["Leather", "Shield"], fighter_scores) == 14
    assert armor_class_from_gear(catalog, [], {"dex": 14}) == 12
    # medium armor caps the dexterity bonus at 2
    assert armor_class_from_gear(catalog, ["Chain Shirt"], {"dex": 18}) == 15


def test_equip_item_swaps_within_a_slot(catalog, fighter_state) -> None:
    inventory = add_item(fighter_state.inventory, "Chain Shirt", "armor")
    inventory = equip_item(inventory, "Chain Shirt", catalog)
    equipped = [item.name for item in inventory if item.equipped]
    assert equipped == ["Longsword", "Shield", "Chain Shirt"]


def test_normalize_equipped_fills_empty_slots(catalog, fighter_state) -> None:
    bare = tuple(item.model_copy(update={"equipped": False}) for item in fighter_state.inventory)
    normalized = normalize_equipped(bare, catalog)
    assert [item.name for item in normalized if item.equipped] == ["Longsword", "Leather", "Shield"]
