from __future__ import annotations

import re

from rules.core import SessionState
from rules.loot import LootDrop, apply_drop, roll_loot
from rules.progression import award_xp
from rules.reference import ReferenceCatalog
from rules.schemas import SceneDef, SceneExit
from rules.settings import scene_art_key
from rules.state import (
    LOCATION_WINDOW,
    Entity,
    GameState,
    Resolution,
    add_item,
    append_bounded,
    find_item,
    record_inventory_change,
    remove_item,
    slugify,
)

ART_VARIANTS = 3
THREAT_REFUSAL = "You cannot leave while threats remain. Clear them first."


def current_scene(state: GameState, catalog: ReferenceCatalog) -> SceneDef | None:
    scene = catalog.scene(state.story_scene_id)
    if scene is not None:
        return scene
    candidates = [item for item in catalog.scenes.values() if item.location == state.location]
    if not candidates:
        return None
    return candidates[abs(state.world_seed) % len(candidates)]


def is_scene_cleared(state: GameState, scene: SceneDef) -> bool:
    if scene.on_complete is None or not scene.on_complete.flags_set:
        return False
    return all(flag in state.story_flags for flag in scene.on_complete.flags_set)


def find_exit(scene: SceneDef | None, text: str) -> SceneExit | None:
    if scene is None:
        return None
    lowered = text.lower()
    for scene_exit in scene.exits:
        if any(verb in lowered for verb in scene_exit.verbs):
            return scene_exit
    return None


def entry_blocker(state: GameState, scene: SceneDef) -> str | None:
    """Why the player may not enter ``scene`` yet, or None when they may."""
    conditions = scene.entry_conditions
    if conditions is None:
        return None
    if conditions.min_level is not None and state.level < conditions.min_level:
        return f"requires level {conditions.min_level}"
    if conditions.requires_item and find_item(state.inventory, conditions.requires_item) is None:
        return f"requires {conditions.requires_item}"
    if conditions.flags_all and not all(flag in state.story_flags for flag in conditions.flags_all):
        return "the way is not yet open"
    if conditions.flags_any and not any(flag in state.story_flags for flag in conditions.flags_any):
        return "the way is not yet open"
    return None


def spawn_entities(scene: SceneDef, catalog: ReferenceCatalog) -> tuple[Entity, ...]:
    entities = []
    for spawn in scene.on_enter.spawn:
        monster = catalog.monster(spawn.monster)
        hp = spawn.hp or monster.hp
        entities.append(
            Entity(
                name=spawn.name or monster.name,
                status="alive",
                description=monster.description or monster.name,
                hp=hp,
                max_hp=hp,
                ac=monster.ac,
                attack_bonus=monster.attack_bonus,
                damage_dice=monster.damage_dice,
            )
        )
    return tuple(entities)


def apply_scene_entry(
    state: GameState,
    scene: SceneDef,
    catalog: ReferenceCatalog,
    *,
    record_history: bool = True,
) -> tuple[GameState, list[str]]:
    """Move the player into ``scene``.

    Spawns replace the nearby entities unless the scene was already cleared.
    """
    messages: list[str] = []
    room_registry = dict(state.room_registry)
    if scene.description:
        room_registry[scene.location] = scene.description

    if is_scene_cleared(state, scene):
        entities: tuple[Entity, ...] = ()
    else:
        entities = spawn_entities(scene, catalog)
        if scene.on_enter.log:
            messages.append(scene.on_enter.log)

    update = {
        "story_scene_id": scene.id,
        "location": scene.location,
        "room_registry": room_registry,
        "nearby_entities": entities,
        "is_combat_active": False,
    }
    if record_history:
        update["location_history"] = append_bounded(
            state.location_history, scene.location, LOCATION_WINDOW
        )
    return state.model_copy(update=update), messages


def try_exit(
    state: GameState,
    catalog: ReferenceCatalog,
    text: str,
) -> Resolution | None:
    """Resolve a scene exit named in ``text``; None when no exit matches."""
    scene = current_scene(state, catalog)
    scene_exit = find_exit(scene, text)
    if scene_exit is None:
        return None

    if state.alive_entities():
        return Resolution(state=state, facts=[THREAT_REFUSAL], mode_override="GENERAL")
    if scene_exit.consume_item and find_item(state.inventory, scene_exit.consume_item) is None:
        return Resolution(
            state=state,
            facts=[f"You need {scene_exit.consume_item} to proceed."],
            mode_override="GENERAL",
        )

    target = catalog.resolve_scene_target(scene_exit.target, state.world_seed)
    if target is None:
        return None
    blocker = entry_blocker(state, target)
    if blocker:
        return Resolution(
            state=state,
            facts=[f"You cannot enter {target.location} yet ({blocker})."],
            mode_override="GENERAL",
        )

    if scene_exit.consume_item:
        state = state.model_copy(
            update={"inventory": remove_item(state.inventory, scene_exit.consume_item)}
        )
        state = record_inventory_change(
            state, f"Used {scene_exit.consume_item} at {state.location}"
        )
    facts = [scene_exit.log] if scene_exit.log else []
    state, entry_messages = apply_scene_entry(state, target, catalog)
    facts.extend(entry_messages)
    if not facts:
        facts.append(f"You move to {target.location}.")
    return Resolution(state=state, facts=facts)


def exit_label(catalog: ReferenceCatalog, scene_exit: SceneExit, seed: int) -> str:
    target = catalog.resolve_scene_target(scene_exit.target, seed)
    if target is None:
        return scene_exit.target
    return target.location or target.title or target.id


def look_around(state: GameState, catalog: ReferenceCatalog) -> list[str]:
    threats = state.alive_entities()
    if threats:
        spotted = ", ".join(f"{entity.name} ({entity.hp}/{entity.max_hp} HP)" for entity in threats)
        threat_text = f"You spot {spotted}."
    else:
        threat_text = "No immediate threats."
    facts = [f"You look around {state.location}. {threat_text}"]

    scene = current_scene(state, catalog)
    if scene is not None and scene.exits:
        exit_text = "; ".join(
            f"{scene_exit.verbs[0]} → {exit_label(catalog, scene_exit, state.world_seed)}"
            for scene_exit in scene.exits
        )
        facts.append(f"Exits: {exit_text}.")
    trader = catalog.trader_at(state.location)
    if trader is not None:
        facts.append(f"A trader is posted here: {trader.name}.")
    return facts


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(r"\b(" + "|".join(re.escape(word) for word in keywords) + r")", re.IGNORECASE)


def discovery_flag(item_name: str) -> str:
    return f"found_{slugify(item_name)}"


def apply_discoveries(
    state: GameState,
    catalog: ReferenceCatalog,
    text: str,
) -> tuple[GameState, list[str], bool, bool]:
    """Grant hidden scene items whose keywords appear in ``text``.

    Returns the new state, messages, whether a search was attempted and
    whether anything was found. Each discovery is granted once per save.
    """
    scene = current_scene(state, catalog)
    if scene is None or scene.location != state.location:
        return state, [], False, False

    messages: list[str] = []
    attempted = found = False
    for discovery in scene.discoveries:
        if not _keyword_pattern(discovery.keywords).search(text):
            continue
        attempted = True
        flag = discovery_flag(discovery.item)
        if flag in state.story_flags or find_item(state.inventory, discovery.item):
            continue
        found = True
        state = state.model_copy(
            update={
                "inventory": add_item(
                    state.inventory,
                    catalog.display_name(discovery.item),
                    discovery.item_type,
                    turn=state.turn_counter,
                ),
                "story_flags": state.story_flags + (flag,),
            }
        )
        state = record_inventory_change(state, f"Gained {discovery.item} at {state.location}")
        messages.append(discovery.summary)
        if discovery.scares:
            state = _scare_entities(state, discovery.scares)
    return state, messages, attempted, found


def _scare_entities(state: GameState, scares: tuple[str, ...]) -> GameState:
    entities = tuple(
        entity.model_copy(update={"status": "fleeing"})
        if entity.is_alive and any(word in entity.name.lower() for word in scares)
        else entity
        for entity in state.nearby_entities
    )
    still_fighting = any(entity.is_alive and entity.hp > 0 for entity in entities)
    return state.model_copy(
        update={
            "nearby_entities": entities,
            "is_combat_active": still_fighting and state.hp > 0,
        }
    )


def apply_scene_completion(
    state: GameState,
    catalog: ReferenceCatalog,
    session: SessionState,
) -> tuple[GameState, list[str]]:
    """Grant a cleared scene's flags and rewards, once."""
    scene = catalog.scene(state.story_scene_id)
    if scene is None or scene.on_complete is None or state.alive_entities():
        return state, []
    new_flags = tuple(flag for flag in scene.on_complete.flags_set if flag not in state.story_flags)
    if not new_flags:
        return state, []

    state = state.model_copy(update={"story_flags": state.story_flags + new_flags})
    reward = scene.on_complete.reward
    messages: list[str] = []
    if reward.xp > 0:
        state, xp_messages = award_xp(
            state, catalog, reward.xp, reason=f"for securing {scene.title or scene.location}."
        )
        messages.extend(xp_messages)

    drop = LootDrop(coins={}, items=())
    if reward.loot_table:
        drop = roll_loot(catalog, reward.loot_table, session)
    if reward.items:
        drop = LootDrop(
            coins=drop.coins,
            items=drop.items + tuple((catalog.display_name(name), 1) for name in reward.items),
        )
    if not drop.is_empty or drop.coins:
        state, loot_messages = apply_drop(state, catalog, drop, source="Scene loot")
        messages.extend(loot_messages)
    return state, messages


def refresh_registries(state: GameState) -> GameState:
    """Memoise the room description and the scene art key for this turn."""
    room_registry = dict(state.room_registry)
    if state.location not in room_registry:
        threats = [entity.name for entity in state.alive_entities()]
        if threats:
            room_registry[state.location] = f"{state.location} with {', '.join(threats)} nearby."
        else:
            room_registry[state.location] = f"{state.location} is quiet."

    threat = next(
        (entity for entity in state.nearby_entities if entity.status not in {"dead", "object"}),
        None,
    )
    registry_key, art_key = scene_art_key(state.location, threat.name if threat else None)
    scene_registry = dict(state.scene_registry)
    if registry_key not in scene_registry:
        scene_registry[registry_key] = f"{art_key}:v{abs(state.world_seed) % ART_VARIANTS}"
    return state.model_copy(
        update={
            "room_registry": room_registry,
            "scene_registry": scene_registry,
            "current_image": scene_registry[registry_key],
        }
    )
