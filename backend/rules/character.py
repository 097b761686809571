from __future__ import annotations

import logging
import random

from rules.progression import xp_to_next_for
from rules.reference import ReferenceCatalog
from rules.scenes import apply_scene_entry, refresh_registries
from rules.state import (
    DEFAULT_ABILITY_SCORES,
    CharacterInfo,
    GameState,
    Item,
    Quest,
    SlotPool,
    add_item,
)
from rules.validation import armor_class_from_gear, normalize_equipped

logger = logging.getLogger(__name__)

DEFAULT_ARCHETYPE = "fighter"
DEFAULT_NAME = "Adventurer"
START_SCENE_GROUP = "act1_gate"
STARTING_BANDAGES = 2
BASE_HP = 20
BASE_AC = 10
OPENING_SUMMARY = "The gates are locked. A monster guards the path."
OPENING_QUEST = Quest(
    id="1",
    title="The Awakening",
    status="active",
    description="Find the Iron Key.",
)


class CharacterError(ValueError):
    pass


def new_world_seed() -> int:
    return random.randint(1, 999_999)


def _starting_inventory(catalog: ReferenceCatalog, equipment: tuple[str, ...]) -> tuple[Item, ...]:
    inventory: tuple[Item, ...] = ()
    for name in equipment:
        inventory = add_item(
            inventory,
            catalog.display_name(name),
            catalog.item_type(name) or "misc",
        )
    inventory = add_item(
        inventory,
        "Bandage",
        catalog.item_type("Bandage") or "misc",
        quantity=STARTING_BANDAGES,
    )
    return normalize_equipped(inventory, catalog)


def new_game_state(
    catalog: ReferenceCatalog,
    archetype: str | None = DEFAULT_ARCHETYPE,
    *,
    seed: int | None = None,
    name: str = DEFAULT_NAME,
) -> GameState:
    """Build a fresh save at the gate for the chosen class.

    Unknown archetypes fall back to the fighter.
    """
    class_def = catalog.class_def(archetype)
    if class_def.archetype is None:
        class_def = catalog.class_def(DEFAULT_ARCHETYPE)
    profile = class_def.archetype
    if profile is None:
        raise CharacterError(f"No playable archetype for {archetype!r}.")

    world_seed = seed if seed is not None else new_world_seed()
    starter = class_def.starter

    abilities = dict(DEFAULT_ABILITY_SCORES)
    known_spells: tuple[str, ...] = ()
    prepared_spells: tuple[str, ...] = ()
    spell_slots: dict[str, SlotPool] = {}
    casting_ability = "int"
    spell_attack_bonus = 0
    spell_save_dc = 0

    if starter is not None:
        abilities.update(starter.abilities)
        max_hp = starter.max_hp
        skills = starter.skills or catalog.class_skills(class_def.key)
        inventory = _starting_inventory(catalog, starter.equipment)
        armor_class = armor_class_from_gear(catalog, starter.equipment, abilities)
        if starter.spells is not None:
            known_spells = (
                starter.spells.cantrips + starter.spells.spellbook + starter.spells.domain
            )
            prepared_spells = starter.spells.prepared
        if starter.casting is not None:
            spell_slots = {
                key: SlotPool(max=slot.max, current=slot.current)
                for key, slot in starter.casting.slots.items()
            }
            casting_ability = starter.casting.ability
            spell_attack_bonus = starter.casting.attack_bonus
            spell_save_dc = starter.casting.save_dc
    else:
        max_hp = BASE_HP + profile.hp_bonus
        armor_class = BASE_AC + profile.ac_bonus
        skills = catalog.class_skills(class_def.key)
        gear = (profile.starting_weapon,) + ((profile.starting_armor,) if profile.starting_armor else ())
        inventory = _starting_inventory(catalog, gear)

    gate = catalog.pick_scene_variant(START_SCENE_GROUP, world_seed)
    if gate is None:
        gate = next(iter(catalog.scenes.values()))

    state = GameState(
        hp=max_hp,
        max_hp=max_hp,
        ac=armor_class,
        gold=0,
        level=1,
        xp=0,
        xp_to_next=xp_to_next_for(catalog, 1),
        character=CharacterInfo(
            name=name,
            class_name=profile.label,
            background=profile.background,
            ac_bonus=profile.ac_bonus,
            hp_bonus=profile.hp_bonus,
            starting_weapon=profile.starting_weapon,
            starting_armor=profile.starting_armor,
        ),
        location=gate.location,
        inventory=inventory,
        skills=tuple(skills),
        ability_scores=abilities,
        known_spells=known_spells,
        prepared_spells=prepared_spells,
        spell_slots=spell_slots,
        spellcasting_ability=casting_ability,
        spell_attack_bonus=spell_attack_bonus,
        spell_save_dc=spell_save_dc,
        story_scene_id=gate.id,
        quests=(OPENING_QUEST,),
        last_action_summary=OPENING_SUMMARY,
        world_seed=world_seed,
    )
    state, messages = apply_scene_entry(state, gate, catalog)
    if messages:
        state = state.model_copy(update={"last_action_summary": " ".join(messages)})
    logger.info("New %s game at %s (seed %s)", profile.label, gate.id, world_seed)
    return refresh_registries(state)
