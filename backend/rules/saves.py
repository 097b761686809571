from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from models import SavedGame
from rules.character import START_SCENE_GROUP, new_world_seed
from rules.progression import xp_to_next_for
from rules.reference import ReferenceCatalog
from rules.scenes import refresh_registries
from rules.schemas import NARRATION_MODES
from rules.state import DEFAULT_ABILITY_SCORES, GameState
from rules.validation import armor_class_from_inventory, normalize_equipped

logger = logging.getLogger(__name__)

LEGACY_MODES = {
    "GENERAL_INTERACTION": "GENERAL",
    "COMBAT_FOCUS": "COMBAT_HIT",
    "SEARCH": "SEARCH_EMPTY",
    "LOOT": "LOOT_GAIN",
    "INSPECTION": "INVESTIGATE",
}
MIGRATED_LOG_LIMIT = 10
INCOMPATIBLE_MESSAGE = "Saved game is incompatible with the current version."


class SaveIncompatibleError(ValueError):
    pass


def map_legacy_mode(mode: Any) -> str:
    if mode in NARRATION_MODES:
        return mode
    return LEGACY_MODES.get(mode, "GENERAL")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _camel_keys(raw: dict[str, Any]) -> dict[str, Any]:
    """Accept saves written with either key style; camelCase wins on conflict."""
    data = {key: value for key, value in raw.items() if "_" not in key}
    for key, value in raw.items():
        if "_" in key:
            data.setdefault(to_camel(key), value)
    return data


def _backfill(data: dict[str, Any], catalog: ReferenceCatalog) -> dict[str, Any]:
    character = data.get("character")
    class_name = None
    if isinstance(character, dict):
        class_name = character.get("class") or character.get("class_name")
    class_def = catalog.class_def(class_name)
    starter = class_def.starter

    seed = data.get("worldSeed") or 0
    if not isinstance(seed, int) or seed <= 0:
        seed = new_world_seed()
        logger.info("Backfilled world seed %s", seed)
    data["worldSeed"] = seed

    if not data.get("skills"):
        data["skills"] = list(catalog.class_skills(class_name))

    if starter is not None and starter.spells is not None:
        spells = starter.spells
        data.setdefault("knownSpells", list(spells.cantrips + spells.spellbook + spells.domain))
        data.setdefault("preparedSpells", list(spells.prepared))
    if starter is not None and starter.casting is not None:
        casting = starter.casting
        data.setdefault(
            "spellSlots",
            {key: {"max": slot.max, "current": slot.current} for key, slot in casting.slots.items()},
        )
        data.setdefault("spellAttackBonus", casting.attack_bonus)
        data.setdefault("spellSaveDc", casting.save_dc)
    if not data.get("spellcastingAbility"):
        data["spellcastingAbility"] = "int"

    if not data.get("storySceneId"):
        gate = catalog.pick_scene_variant(START_SCENE_GROUP, seed)
        data["storySceneId"] = gate.id if gate else None

    gold = data.get("gold")
    data["gold"] = max(0, gold) if isinstance(gold, int) else 0

    abilities = dict(DEFAULT_ABILITY_SCORES)
    if starter is not None:
        abilities.update(starter.abilities)
    abilities.update(data.get("abilityScores") or {})
    data["abilityScores"] = abilities

    log = data.get("log") or []
    if log:
        data["log"] = [
            {**entry, "mode": map_legacy_mode(entry.get("mode"))} if isinstance(entry, dict) else entry
            for entry in log
        ]
    else:
        history = data.get("narrativeHistory") or []
        created_at = _now()
        data["log"] = [
            {
                "id": f"log-legacy-{index}",
                "mode": "GENERAL",
                "summary": summary,
                "createdAt": created_at,
            }
            for index, summary in enumerate(history[-MIGRATED_LOG_LIMIT:])
        ]
        if history:
            logger.info("Migrated %d narrative entries into the log", len(data["log"]))
    return data


def hydrate_state(raw: dict[str, Any], catalog: ReferenceCatalog) -> GameState:
    """Turn a stored document into a current GameState.

    Older saves are upgraded in place: missing defaults are backfilled,
    legacy narration modes mapped, equipped flags normalised, AC recomputed
    from gear and the registries rebuilt.
    """
    if not isinstance(raw, dict):
        raise SaveIncompatibleError(INCOMPATIBLE_MESSAGE)
    data = _backfill(_camel_keys(raw), catalog)
    try:
        state = GameState.model_validate(data)
    except ValidationError as exc:
        logger.warning("Rejected saved game: %s", exc)
        raise SaveIncompatibleError(INCOMPATIBLE_MESSAGE) from exc

    inventory = normalize_equipped(state.inventory, catalog)
    state = state.model_copy(update={"inventory": inventory})
    room_registry: dict[str, str] = {}
    scene = catalog.scene(state.story_scene_id)
    if scene is not None and scene.description:
        room_registry[scene.location] = scene.description
    state = state.model_copy(
        update={
            "ac": max(state.ac, armor_class_from_inventory(state, catalog)),
            "xp_to_next": xp_to_next_for(catalog, state.level),
            "room_registry": room_registry,
            "scene_registry": {},
        }
    )
    return refresh_registries(state)


def serialize_state(state: GameState) -> dict[str, Any]:
    return state.model_dump(by_alias=True, mode="json")


def load_saved_state(
    db: Session,
    player_id: str,
    catalog: ReferenceCatalog,
) -> GameState | None:
    saved = db.get(SavedGame, player_id)
    if saved is None:
        return None
    return hydrate_state(saved.game_state, catalog)


def store_state(db: Session, player_id: str, state: GameState) -> SavedGame:
    payload = serialize_state(state)
    saved = db.get(SavedGame, player_id)
    if saved is None:
        saved = SavedGame(player_id=player_id, game_state=payload)
        db.add(saved)
    else:
        saved.game_state = payload
    db.flush()
    return saved
