from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, TypeVar

from pydantic import BaseModel, ValidationError

from rules.schemas import (
    AbilityDef,
    ArmorDef,
    BasicActionDef,
    ClassDef,
    FlavorLine,
    ItemDef,
    LevelDef,
    LootTableDef,
    MonsterDef,
    SceneDef,
    SkillDef,
    SpellDef,
    TraderDef,
    WeaponDef,
)

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"

CATALOG_FILES: dict[str, tuple[str, type[BaseModel]]] = {
    "abilities": ("abilities.json", AbilityDef),
    "skills": ("skills.json", SkillDef),
    "basic_actions": ("basic_actions.json", BasicActionDef),
    "weapons": ("weapons.json", WeaponDef),
    "armor": ("armor.json", ArmorDef),
    "items": ("items.json", ItemDef),
    "spells": ("spells.json", SpellDef),
    "monsters": ("monsters.json", MonsterDef),
    "loot_tables": ("loot_tables.json", LootTableDef),
    "scenes": ("scenes.json", SceneDef),
    "traders": ("traders.json", TraderDef),
    "classes": ("classes.json", ClassDef),
    "levels": ("levels.json", LevelDef),
    "narration": ("narration.json", FlavorLine),
}

DEFAULT_CLASS_KEY = "default"

ModelT = TypeVar("ModelT", bound=BaseModel)


class ReferenceDataError(ValueError):
    pass


class UnknownReferenceError(KeyError):
    pass


def normalize_name(value: str) -> str:
    cleaned = value.strip().lower().replace("_", " ").replace("-", " ")
    return " ".join(cleaned.split())


def _index(
    records: Iterable[ModelT], key: str, label: str, *, normalized: bool = True
) -> Mapping[str, ModelT]:
    indexed: dict[str, ModelT] = {}
    for record in records:
        record_key = str(getattr(record, key))
        if normalized:
            record_key = normalize_name(record_key)
        if record_key in indexed:
            raise ReferenceDataError(f"Duplicate {label} entry: {getattr(record, key)}")
        indexed[record_key] = record
    return MappingProxyType(indexed)


def _read_records(data_dir: Path, file_name: str, model: type[ModelT]) -> list[ModelT]:
    path = data_dir / file_name
    if not path.exists():
        raise ReferenceDataError(f"Missing reference file: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ReferenceDataError(f"{file_name} is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise ReferenceDataError(f"{file_name} must contain a JSON list.")
    records: list[ModelT] = []
    for position, entry in enumerate(payload):
        try:
            records.append(model.model_validate(entry))
        except ValidationError as exc:
            raise ReferenceDataError(
                f"{file_name} entry {position} failed validation: {exc}"
            ) from exc
    return records


@dataclass(frozen=True)
class ReferenceCatalog:
    """Read-only lookup tables for everything the engine resolves against.

    Build one with :meth:`load` at startup and pass it to the engine. Every
    file is schema-checked and cross-referenced during construction, so a
    catalog that exists is a catalog the engine can trust.
    """

    abilities: Mapping[str, AbilityDef]
    skills: Mapping[str, SkillDef]
    basic_actions: Mapping[str, BasicActionDef]
    weapons: Mapping[str, WeaponDef]
    armor: Mapping[str, ArmorDef]
    items: Mapping[str, ItemDef]
    spells: Mapping[str, SpellDef]
    monsters: Mapping[str, MonsterDef]
    loot_tables: Mapping[str, LootTableDef]
    scenes: Mapping[str, SceneDef]
    scene_groups: Mapping[str, tuple[SceneDef, ...]]
    traders: tuple[TraderDef, ...]
    classes: Mapping[str, ClassDef]
    levels: Mapping[int, LevelDef]
    flavor_lines: tuple[FlavorLine, ...]

    @classmethod
    def load(cls, data_dir: str | Path | None = None) -> ReferenceCatalog:
        root = Path(data_dir) if data_dir else DATA_DIR
        raw: dict[str, list[Any]] = {
            name: _read_records(root, file_name, model)
            for name, (file_name, model) in CATALOG_FILES.items()
        }

        # scene ids are exact keys shared with saves and exit targets
        scenes = _index(raw["scenes"], "id", "scene", normalized=False)
        groups: dict[str, list[SceneDef]] = {}
        for scene in raw["scenes"]:
            groups.setdefault(scene.group or scene.id, []).append(scene)

        levels: dict[int, LevelDef] = {}
        for level_def in raw["levels"]:
            if level_def.level in levels:
                raise ReferenceDataError(f"Duplicate level entry: {level_def.level}")
            levels[level_def.level] = level_def

        catalog = cls(
            abilities=_index(raw["abilities"], "name", "ability"),
            skills=_index(raw["skills"], "name", "skill"),
            basic_actions=_index(raw["basic_actions"], "name", "basic action"),
            weapons=_index(raw["weapons"], "name", "weapon"),
            armor=_index(raw["armor"], "name", "armor"),
            items=_index(raw["items"], "name", "item"),
            spells=_index(raw["spells"], "name", "spell"),
            monsters=_index(raw["monsters"], "name", "monster"),
            loot_tables=_index(raw["loot_tables"], "id", "loot table"),
            scenes=scenes,
            scene_groups=MappingProxyType(
                {key: tuple(value) for key, value in groups.items()}
            ),
            traders=tuple(raw["traders"]),
            classes=_index(raw["classes"], "key", "class"),
            levels=MappingProxyType(levels),
            flavor_lines=tuple(raw["narration"]),
        )
        catalog._check_references()
        logger.info(
            "Loaded reference catalog from %s (%d scenes, %d monsters)",
            root,
            len(catalog.scenes),
            len(catalog.monsters),
        )
        return catalog

    def _check_references(self) -> None:
        problems: list[str] = []

        def require(condition: bool, message: str) -> None:
            if not condition:
                problems.append(message)

        for monster in self.monsters.values():
            if monster.loot_table:
                require(
                    normalize_name(monster.loot_table) in self.loot_tables,
                    f"monster {monster.name} uses unknown loot table {monster.loot_table}",
                )
        for table in self.loot_tables.values():
            for entry in table.items:
                require(
                    self.item_type(entry.item) is not None,
                    f"loot table {table.id} drops unknown item {entry.item}",
                )
        for scene in self.scenes.values():
            for spawn in scene.on_enter.spawn:
                require(
                    normalize_name(spawn.monster) in self.monsters,
                    f"scene {scene.id} spawns unknown monster {spawn.monster}",
                )
            for scene_exit in scene.exits:
                require(
                    self._scene_target_exists(scene_exit.target),
                    f"scene {scene.id} exits to unknown scene {scene_exit.target}",
                )
                if scene_exit.consume_item:
                    require(
                        self.item_type(scene_exit.consume_item) is not None,
                        f"scene {scene.id} consumes unknown item {scene_exit.consume_item}",
                    )
            for discovery in scene.discoveries:
                require(
                    self.item_type(discovery.item) is not None,
                    f"scene {scene.id} reveals unknown item {discovery.item}",
                )
            if scene.on_complete:
                reward = scene.on_complete.reward
                if reward.loot_table:
                    require(
                        normalize_name(reward.loot_table) in self.loot_tables,
                        f"scene {scene.id} rewards unknown loot table {reward.loot_table}",
                    )
                for item in reward.items:
                    require(
                        self.item_type(item) is not None,
                        f"scene {scene.id} rewards unknown item {item}",
                    )
        for trader in self.traders:
            for listing in trader.inventory:
                require(
                    self.item_type(listing.item) is not None,
                    f"trader {trader.id} sells unknown item {listing.item}",
                )
        for class_def in self.classes.values():
            for entry in class_def.weapons:
                require(
                    entry in {"simple", "martial"} or normalize_name(entry) in self.weapons,
                    f"class {class_def.key} allows unknown weapon {entry}",
                )
            if class_def.archetype:
                require(
                    normalize_name(class_def.archetype.starting_weapon) in self.weapons,
                    f"class {class_def.key} starts with unknown weapon "
                    f"{class_def.archetype.starting_weapon}",
                )
            if class_def.starter:
                for item in class_def.starter.equipment:
                    require(
                        self.item_type(item) is not None,
                        f"class {class_def.key} starts with unknown item {item}",
                    )
        require(DEFAULT_CLASS_KEY in self.classes, "classes.json needs a default class")
        require(1 in self.levels, "levels.json needs a level 1 entry")

        if problems:
            raise ReferenceDataError("Reference data is inconsistent: " + "; ".join(problems))

    def _scene_target_exists(self, target: str) -> bool:
        return target in self.scenes or target in self.scene_groups

    def weapon(self, name: str | None) -> WeaponDef | None:
        if not name:
            return None
        return self.weapons.get(normalize_name(name))

    def armor_piece(self, name: str | None) -> ArmorDef | None:
        if not name:
            return None
        return self.armor.get(normalize_name(name))

    def is_shield(self, name: str) -> bool:
        armor = self.armor_piece(name)
        return armor is not None and armor.category == "shield"

    def item_type(self, name: str) -> str | None:
        key = normalize_name(name)
        if key in self.weapons:
            return "weapon"
        if key in self.armor:
            return "armor"
        item = self.items.get(key)
        return item.type if item else None

    def display_name(self, name: str) -> str:
        key = normalize_name(name)
        for table in (self.weapons, self.armor, self.items):
            record = table.get(key)
            if record is not None:
                return record.name
        return name.replace("_", " ").strip()

    def monster(self, name: str) -> MonsterDef:
        found = self.find_monster(name)
        if found is None:
            raise UnknownReferenceError(f"Unknown monster: {name}")
        return found

    def find_monster(self, name: str) -> MonsterDef | None:
        key = normalize_name(name.replace("(looted)", ""))
        if key in self.monsters:
            return self.monsters[key]
        for monster_key, monster in self.monsters.items():
            if monster_key in key:
                return monster
        return None

    def loot_table(self, table_id: str) -> LootTableDef:
        table = self.loot_tables.get(normalize_name(table_id))
        if table is None:
            raise UnknownReferenceError(f"Unknown loot table: {table_id}")
        return table

    def scene(self, scene_id: str | None) -> SceneDef | None:
        if not scene_id:
            return None
        return self.scenes.get(scene_id)

    def pick_scene_variant(self, group: str, seed: int) -> SceneDef | None:
        variants = self.scene_groups.get(group)
        if not variants:
            return None
        return variants[abs(seed) % len(variants)]

    def resolve_scene_target(self, target: str, seed: int) -> SceneDef | None:
        return self.scene(target) or self.pick_scene_variant(target, seed)

    def trader_at(self, location: str) -> TraderDef | None:
        for trader in self.traders:
            if trader.location == location:
                return trader
        return None

    def class_def(self, class_name: str | None) -> ClassDef:
        key = normalize_name(class_name or "")
        found = self.classes.get(key)
        if found is not None:
            return found
        for candidate in self.classes.values():
            if normalize_name(candidate.name) == key:
                return candidate
        return self.classes[DEFAULT_CLASS_KEY]

    def class_skills(self, class_name: str | None) -> tuple[str, ...]:
        class_def = self.class_def(class_name)
        if class_def.skills:
            return class_def.skills
        return tuple(skill.name for skill in list(self.skills.values())[:2])

    def spells_for_class(self, class_name: str | None) -> Mapping[str, SpellDef]:
        list_key = "cleric" if self.class_def(class_name).key == "cleric" else "wizard"
        return MappingProxyType(
            {key: spell for key, spell in self.spells.items() if list_key in spell.classes}
        )

    def next_level(self, level: int) -> LevelDef | None:
        return self.levels.get(level + 1)
