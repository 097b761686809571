from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rules.schemas import ItemType, NarrationMode

LOG_WINDOW = 50
NARRATIVE_WINDOW = 3
INVENTORY_LOG_WINDOW = 10
LOCATION_WINDOW = 10

DEFAULT_ABILITY_SCORES = {"str": 10, "dex": 10, "con": 10, "int": 10, "wis": 10, "cha": 10}

EntityStatus = Literal["alive", "dead", "fleeing", "object"]
EffectType = Literal["ac_bonus", "buff", "debuff", "pin"]


class StateModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class Item(StateModel):
    id: str
    name: str
    type: ItemType
    quantity: int = Field(ge=0)
    equipped: bool = False


class Effect(StateModel):
    name: str
    type: EffectType
    value: int | None = None
    expires_at_turn: int | None = None


class Entity(StateModel):
    name: str
    status: EntityStatus
    description: str | None = None
    hp: int = Field(ge=0)
    max_hp: int = Field(ge=0)
    ac: int = 10
    attack_bonus: int = 0
    damage_dice: str = "1d4"
    effects: tuple[Effect, ...] = ()

    @property
    def is_alive(self) -> bool:
        return self.status == "alive"


class SlotPool(StateModel):
    max: int = Field(ge=0)
    current: int = Field(ge=0)


class CharacterInfo(StateModel):
    name: str = "Adventurer"
    class_name: str = Field(alias="class")
    background: str = ""
    ac_bonus: int = 0
    hp_bonus: int = 0
    starting_weapon: str = "Fists"
    starting_armor: str | None = None


class Quest(StateModel):
    id: str
    title: str
    status: str = "active"
    description: str = ""


class LastRolls(StateModel):
    player_attack: int = 0
    player_damage: int = 0
    monster_attack: int = 0
    monster_damage: int = 0
    player_attack_is_save: bool = False
    player_attack_dc: int = 0


class LogEntry(StateModel):
    id: str
    mode: NarrationMode
    summary: str
    flavor: str | None = None
    created_at: str


class GameState(StateModel):
    hp: int = Field(ge=0)
    max_hp: int = Field(ge=1)
    ac: int
    temp_ac_bonus: int = 0
    gold: int = 0
    level: int = Field(default=1, ge=1)
    xp: int = Field(default=0, ge=0)
    xp_to_next: int | None = None
    character: CharacterInfo
    location: str
    inventory: tuple[Item, ...] = ()
    nearby_entities: tuple[Entity, ...] = ()
    active_effects: tuple[Effect, ...] = ()
    skills: tuple[str, ...] = ()
    ability_scores: dict[str, int] = Field(default_factory=dict)
    known_spells: tuple[str, ...] = ()
    prepared_spells: tuple[str, ...] = ()
    spell_slots: dict[str, SlotPool] = Field(default_factory=dict)
    spellcasting_ability: str | None = None
    spell_attack_bonus: int = 0
    spell_save_dc: int = 0
    story_scene_id: str | None = None
    story_flags: tuple[str, ...] = ()
    location_history: tuple[str, ...] = ()
    quests: tuple[Quest, ...] = ()
    room_registry: dict[str, str] = Field(default_factory=dict)
    scene_registry: dict[str, str] = Field(default_factory=dict)
    current_image: str = ""
    last_rolls: LastRolls = LastRolls()
    last_action_summary: str = ""
    log: tuple[LogEntry, ...] = ()
    narrative_history: tuple[str, ...] = ()
    inventory_change_log: tuple[str, ...] = ()
    turn_counter: int = Field(default=0, ge=0)
    is_combat_active: bool = False
    world_seed: int = 0

    def alive_entities(self) -> list[Entity]:
        return [entity for entity in self.nearby_entities if entity.is_alive]


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", value.strip().lower()).strip("_")


def same_name(left: str, right: str) -> bool:
    return left.strip().lower() == right.strip().lower()


def find_item(inventory: Iterable[Item], name: str) -> Item | None:
    for item in inventory:
        if same_name(item.name, name) and item.quantity > 0:
            return item
    return None


def add_item(
    inventory: tuple[Item, ...],
    name: str,
    item_type: str,
    *,
    quantity: int = 1,
    turn: int = 0,
) -> tuple[Item, ...]:
    """Add ``quantity`` of an item, merging into an existing stack of the same name."""
    if quantity <= 0:
        return inventory
    updated: list[Item] = []
    merged = False
    for item in inventory:
        if not merged and same_name(item.name, name) and item.type == item_type:
            updated.append(item.model_copy(update={"quantity": item.quantity + quantity}))
            merged = True
        else:
            updated.append(item)
    if not merged:
        updated.append(
            Item(
                id=f"{slugify(name)}-{turn}-{len(inventory)}",
                name=name,
                type=item_type,
                quantity=quantity,
                equipped=False,
            )
        )
    return tuple(updated)


def remove_item(
    inventory: tuple[Item, ...],
    name: str,
    *,
    quantity: int = 1,
) -> tuple[Item, ...]:
    updated: list[Item] = []
    remaining = quantity
    for item in inventory:
        if remaining > 0 and same_name(item.name, name) and item.quantity > 0:
            taken = min(item.quantity, remaining)
            remaining -= taken
            if item.quantity - taken > 0:
                updated.append(item.model_copy(update={"quantity": item.quantity - taken}))
            continue
        updated.append(item)
    return tuple(updated)


def replace_entity(
    entities: tuple[Entity, ...],
    index: int,
    entity: Entity,
) -> tuple[Entity, ...]:
    return entities[:index] + (entity,) + entities[index + 1 :]


def damage_entity(entity: Entity, amount: int) -> Entity:
    if entity.status == "dead":
        return entity
    hp = max(0, entity.hp - max(0, amount))
    status = "dead" if hp == 0 else entity.status
    return entity.model_copy(update={"hp": hp, "status": status})


def append_bounded(values: tuple[str, ...], value: str, limit: int) -> tuple[str, ...]:
    return (values + (value,))[-limit:]


def record_inventory_change(state: GameState, text: str) -> GameState:
    return state.model_copy(
        update={
            "inventory_change_log": append_bounded(
                state.inventory_change_log, text, INVENTORY_LOG_WINDOW
            )
        }
    )


def ability_modifier(state: GameState, ability: str) -> int:
    score = state.ability_scores.get(ability.lower(), 10)
    return (score - 10) // 2


def enforce_invariants(previous: GameState, state: GameState) -> GameState:
    """Clamp vitals and entity HP, keep the dead dead and bound every trailing window."""
    entities: list[Entity] = []
    for index, entity in enumerate(state.nearby_entities):
        max_hp = max(0, entity.max_hp)
        hp = min(max(0, entity.hp), max_hp)
        status = entity.status
        prior = previous.nearby_entities[index] if index < len(previous.nearby_entities) else None
        was_dead = (
            prior is not None
            and prior.status == "dead"
            and same_name(prior.name.replace(" (looted)", ""), entity.name.replace(" (looted)", ""))
        )
        if status == "object":
            pass
        elif was_dead or status == "dead" or hp == 0:
            status = "dead"
            hp = 0
        entities.append(
            entity.model_copy(update={"hp": hp, "max_hp": max_hp, "status": status})
        )

    inventory = tuple(item for item in state.inventory if item.quantity > 0)
    return state.model_copy(
        update={
            "hp": min(max(0, state.hp), state.max_hp),
            "gold": max(0, state.gold),
            "nearby_entities": tuple(entities),
            "inventory": inventory,
            "log": state.log[-LOG_WINDOW:],
            "narrative_history": state.narrative_history[-NARRATIVE_WINDOW:],
            "inventory_change_log": state.inventory_change_log[-INVENTORY_LOG_WINDOW:],
            "location_history": state.location_history[-LOCATION_WINDOW:],
        }
    )


@dataclass
class Resolution:
    """New state from one resolver plus what it reports back to the turn."""

    state: GameState
    facts: list[str] = field(default_factory=list)
    combat_outcome: str | None = None
    target_index: int | None = None
    mode_override: str | None = None
    rolls: dict[str, int | bool] = field(default_factory=dict)

    def note(self, fact: str) -> None:
        if fact:
            self.facts.append(fact)
