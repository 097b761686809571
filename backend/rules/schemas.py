from __future__ import annotations

from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rules.core import parse_dice

ItemType = Literal["weapon", "armor", "potion", "scroll", "misc", "food", "material", "key"]
NarrationMode = Literal[
    "ROOM_INTRO",
    "COMBAT_HIT",
    "COMBAT_MISS",
    "COMBAT_KILL",
    "SEARCH_FOUND",
    "SEARCH_EMPTY",
    "LOOT_GAIN",
    "INVESTIGATE",
    "GENERAL",
    "SHEET",
]
NARRATION_MODES: tuple[str, ...] = get_args(NarrationMode)


def _check_dice(value: str | None) -> str | None:
    if value is not None:
        parse_dice(value)
    return value


class ReferenceModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class AbilityDef(ReferenceModel):
    name: str
    abbr: str
    summary: str


class SkillDef(ReferenceModel):
    name: str
    ability: str


class BasicActionDef(ReferenceModel):
    name: str
    summary: str


class WeaponDef(ReferenceModel):
    name: str
    category: Literal["simple", "martial"]
    damage: str
    damage_type: str
    properties: tuple[str, ...] = ()
    cost: int = Field(default=0, ge=0)

    @field_validator("damage")
    @classmethod
    def check_damage(cls, value: str) -> str:
        return _check_dice(value)


class ArmorDef(ReferenceModel):
    name: str
    category: Literal["light", "medium", "heavy", "shield"]
    base_ac: int
    # None means uncapped dexterity, 0 means dexterity does not apply.
    max_dex: int | None = None
    cost: int = Field(default=0, ge=0)


class ItemDef(ReferenceModel):
    name: str
    type: ItemType
    cost: int = Field(default=0, ge=0)
    description: str | None = None


class SpellMechanics(ReferenceModel):
    resolution: Literal["attack", "save", "auto", "heal"]
    damage_type: str | None = None
    dice: str | None = None
    at_character_level: dict[int, str] = Field(default_factory=dict)
    at_slot_level: dict[int, str] = Field(default_factory=dict)
    heal_at_slot_level: dict[int, str] = Field(default_factory=dict)
    save_ability: str | None = None

    @field_validator("dice")
    @classmethod
    def check_dice(cls, value: str | None) -> str | None:
        return _check_dice(value)

    @field_validator("at_character_level", "at_slot_level", "heal_at_slot_level")
    @classmethod
    def check_dice_tables(cls, value: dict[int, str]) -> dict[int, str]:
        for dice in value.values():
            parse_dice(dice)
        return value


class SpellDef(ReferenceModel):
    name: str
    level: int = Field(ge=0, le=9)
    school: str
    classes: tuple[str, ...]
    summary: str | None = None
    mechanics: SpellMechanics | None = None

    @property
    def is_cantrip(self) -> bool:
        return self.level == 0


class MonsterDef(ReferenceModel):
    name: str
    hp: int = Field(gt=0)
    ac: int
    attack_bonus: int
    damage_dice: str
    xp: int | None = None
    loot_table: str | None = None
    description: str | None = None

    @field_validator("damage_dice")
    @classmethod
    def check_damage(cls, value: str) -> str:
        return _check_dice(value)


class LootItemEntry(ReferenceModel):
    item: str
    weight: int = Field(ge=1)
    qty: str = "1"

    @field_validator("qty")
    @classmethod
    def check_qty(cls, value: str) -> str:
        return _check_dice(value)


class LootTableDef(ReferenceModel):
    id: str
    coins: dict[Literal["cp", "sp", "gp", "pp"], str] = Field(default_factory=dict)
    items: tuple[LootItemEntry, ...] = ()

    @field_validator("coins")
    @classmethod
    def check_coins(cls, value: dict[str, str]) -> dict[str, str]:
        for dice in value.values():
            parse_dice(dice)
        return value


class SceneSpawn(ReferenceModel):
    monster: str
    name: str | None = None
    hp: int | None = Field(default=None, gt=0)


class EntryConditions(ReferenceModel):
    min_level: int | None = None
    requires_item: str | None = None
    flags_all: tuple[str, ...] = ()
    flags_any: tuple[str, ...] = ()


class SceneExit(ReferenceModel):
    verbs: tuple[str, ...] = Field(min_length=1)
    target: str
    consume_item: str | None = None
    log: str | None = None


class SceneDiscovery(ReferenceModel):
    keywords: tuple[str, ...] = Field(min_length=1)
    item: str
    item_type: ItemType = "misc"
    summary: str
    scares: tuple[str, ...] = ()


class OnEnter(ReferenceModel):
    log: str | None = None
    spawn: tuple[SceneSpawn, ...] = ()


class SceneReward(ReferenceModel):
    xp: int = Field(default=0, ge=0)
    loot_table: str | None = None
    items: tuple[str, ...] = ()


class OnComplete(ReferenceModel):
    flags_set: tuple[str, ...] = ()
    reward: SceneReward = SceneReward()


class SceneDef(ReferenceModel):
    id: str
    group: str | None = None
    title: str | None = None
    location: str
    description: str | None = None
    entry_conditions: EntryConditions | None = None
    on_enter: OnEnter = OnEnter()
    exits: tuple[SceneExit, ...] = ()
    discoveries: tuple[SceneDiscovery, ...] = ()
    on_complete: OnComplete | None = None


class TraderListing(ReferenceModel):
    item: str
    price: int = Field(ge=0)


class TraderDef(ReferenceModel):
    id: str
    name: str
    location: str
    inventory: tuple[TraderListing, ...]
    buyback_rate: float = Field(ge=0, le=1)


class SlotDef(ReferenceModel):
    max: int = Field(ge=0)
    current: int = Field(ge=0)


class StarterSpells(ReferenceModel):
    cantrips: tuple[str, ...] = ()
    spellbook: tuple[str, ...] = ()
    domain: tuple[str, ...] = ()
    prepared: tuple[str, ...] = ()


class StarterCasting(ReferenceModel):
    ability: str
    attack_bonus: int = 0
    save_dc: int = 0
    slots: dict[str, SlotDef] = Field(default_factory=dict)


class StarterCharacter(ReferenceModel):
    max_hp: int = Field(gt=0)
    abilities: dict[str, int]
    skills: tuple[str, ...] = ()
    equipment: tuple[str, ...] = ()
    spells: StarterSpells | None = None
    casting: StarterCasting | None = None


class ArchetypeDef(ReferenceModel):
    label: str
    background: str
    ac_bonus: int = 0
    hp_bonus: int = 0
    starting_weapon: str
    starting_armor: str | None = None


class ClassDef(ReferenceModel):
    key: str
    name: str
    # Entries are weapon categories ("simple", "martial") or specific weapon names.
    weapons: tuple[str, ...]
    armor: tuple[str, ...] = ()
    skills: tuple[str, ...] = ()
    archetype: ArchetypeDef | None = None
    starter: StarterCharacter | None = None


class LevelDef(ReferenceModel):
    level: int = Field(ge=1)
    xp_required: int = Field(ge=0)
    hp_gain: int = Field(ge=0)
    proficiency_bonus: int


class FlavorLine(ReferenceModel):
    text: str
    modes: tuple[NarrationMode, ...]
    tags: tuple[str, ...] = ("default",)
