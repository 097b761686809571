import json
import shutil

import pytest

from rules.reference import (
    DATA_DIR,
    ReferenceCatalog,
    ReferenceDataError,
    UnknownReferenceError,
    normalize_name,
)


def _copy_data(tmp_path):
    target = tmp_path / "data"
    shutil.copytree(DATA_DIR, target)
    return target


def test_catalog_lookups_are_case_insensitive(catalog) -> None:
    assert catalog.weapon("longsword").name == "Longsword"
    assert catalog.item_type("healing_potion") == "potion"
    assert catalog.item_type("Shield") == "armor"
    assert catalog.item_type("Moon Rock") is None
    assert catalog.display_name("chain-shirt") == "Chain Shirt"
    assert normalize_name("  Giant_Rat ") == "giant rat"


def test_find_monster_ignores_looted_marker(catalog) -> None:
    assert catalog.find_monster("Giant Rat (looted)").name == "Giant Rat"
    assert catalog.find_monster("Nothing Here") is None
    with pytest.raises(UnknownReferenceError):
        catalog.monster("Nothing Here")


def test_unknown_class_falls_back_to_default(catalog) -> None:
    assert catalog.class_def("Fighter").key == "fighter"
    assert catalog.class_def("bard").key == "default"
    assert catalog.class_def(None).key == "default"


def test_scene_variants_are_picked_by_seed(catalog) -> None:
    first = catalog.pick_scene_variant("act1_gate", 2)
    second = catalog.pick_scene_variant("act1_gate", 3)
    assert {first.id, second.id} == {"iron_gate_v1", "iron_gate_v2"}
    assert catalog.resolve_scene_target("citadel_hall", 5).id == "citadel_hall"
    assert catalog.pick_scene_variant("missing", 1) is None


def test_scenes_are_found_by_exact_id(catalog) -> None:
    assert catalog.scene("iron_gate_v1").title == "The Iron Gate"
    assert catalog.scene("citadel_hall").id == "citadel_hall"
    assert catalog.scene("iron gate v1") is None
    assert catalog.scene(None) is None


def test_trader_lookup_by_location(catalog) -> None:
    assert catalog.trader_at("The Iron Gate").name == "Marta the Peddler"
    assert catalog.trader_at("The Catacombs") is None


def test_levels_and_spell_lists(catalog) -> None:
    assert catalog.next_level(1).xp_required == 300
    assert catalog.next_level(10) is None
    assert "guiding bolt" in catalog.spells_for_class("Cleric")
    assert "guiding bolt" not in catalog.spells_for_class("Wizard")


def test_dangling_loot_table_fails_fast(tmp_path) -> None:
    data_dir = _copy_data(tmp_path)
    monsters = json.loads((data_dir / "monsters.json").read_text())
    monsters[0]["loot_table"] = "nowhere"
    (data_dir / "monsters.json").write_text(json.dumps(monsters))

    with pytest.raises(ReferenceDataError) as excinfo:
        ReferenceCatalog.load(data_dir)
    assert "nowhere" in str(excinfo.value)


def test_unexpected_field_fails_fast(tmp_path) -> None:
    data_dir = _copy_data(tmp_path)
    weapons = json.loads((data_dir / "weapons.json").read_text())
    weapons[0]["sharpness"] = 11
    (data_dir / "weapons.json").write_text(json.dumps(weapons))

    with pytest.raises(ReferenceDataError):
        ReferenceCatalog.load(data_dir)


def test_bad_dice_in_reference_data_fails_fast(tmp_path) -> None:
    data_dir = _copy_data(tmp_path)
    monsters = json.loads((data_dir / "monsters.json").read_text())
    monsters[0]["damage_dice"] = "0d6"
    (data_dir / "monsters.json").write_text(json.dumps(monsters))

    with pytest.raises(ReferenceDataError):
        ReferenceCatalog.load(data_dir)


def test_missing_file_fails_fast(tmp_path) -> None:
    data_dir = _copy_data(tmp_path)
    (data_dir / "levels.json").unlink()

    with pytest.raises(ReferenceDataError):
        ReferenceCatalog.load(data_dir)
