from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from db import SessionLocal
from llm.schemas import NarrationRequest
from rules.combat import (
    NO_THREAT,
    NOTHING_LEFT,
    defend,
    end_of_turn,
    monster_turn,
    player_armor_class,
    run_away,
    use_consumable,
    weapon_attack,
)
from rules.core import SessionState
from rules.economy import resolve_trade
from rules.intent import GameIntent, parse_intent, sanitize_action
from rules.loot import loot_corpse
from rules.narration import (
    EXPLORATION_MODES,
    NOTHING_CHANGED,
    Narrator,
    TurnSignals,
    build_facts,
    build_request,
    select_mode,
)
from rules.powers import SLOT_KEY, cast_spell
from rules.progression import award_xp, kill_xp
from rules.reference import ReferenceCatalog
from rules.saves import load_saved_state, store_state
from rules.scenes import (
    apply_discoveries,
    apply_scene_completion,
    look_around,
    refresh_registries,
    try_exit,
)
from rules.settings import stable_seed
from rules.state import (
    LOG_WINDOW,
    NARRATIVE_WINDOW,
    GameState,
    LastRolls,
    LogEntry,
    Resolution,
    append_bounded,
    enforce_invariants,
)
from rules.statuses import prune_effects, prune_entity_effects
from rules.stunts import resolve_stunt

logger = logging.getLogger(__name__)

NOTHING_TO_LOOT = "There is nothing here to loot."


class TurnError(ValueError):
    pass


@dataclass
class TurnResult:
    new_state: GameState
    log_entry: LogEntry
    facts: list[str]
    rolls: list[dict]
    narration_context: NarrationRequest


def sheet_summary(state: GameState, section: str = "all") -> str:
    weapon = next(
        (item.name for item in state.inventory if item.type == "weapon" and item.equipped), "none"
    )
    armor = ", ".join(
        item.name for item in state.inventory if item.type == "armor" and item.equipped
    ) or "none"
    slot = state.spell_slots.get(SLOT_KEY)
    slots = f"level 1: {slot.current}/{slot.max}" if slot else "none"
    items = ", ".join(
        f"{item.quantity}x {item.name}{' (equipped)' if item.equipped else ''}"
        for item in state.inventory
    ) or "nothing"

    lines = {
        "skills": f"Skills: {', '.join(state.skills) or 'none'}.",
        "equipment": f"Equipped weapon: {weapon}. Armor: {armor}.",
        "spells": (
            f"Spells known: {', '.join(state.known_spells) or 'none'}. "
            f"Spells prepared: {', '.join(state.prepared_spells) or 'none'}. "
            f"Slots: {slots}."
        ),
        "inventory": f"Inventory: {items}. Gold: {state.gold}.",
    }
    sections = {
        "skills": ("skills",),
        "abilities": ("spells",),
        "inventory": ("inventory", "equipment"),
    }.get(section, ("skills", "equipment", "spells"))
    return " ".join(lines[name] for name in sections)


def _start_turn(previous: GameState) -> GameState:
    turn = previous.turn_counter + 1
    return previous.model_copy(
        update={
            "turn_counter": turn,
            "temp_ac_bonus": 0,
            "active_effects": prune_effects(previous.active_effects, turn),
            "nearby_entities": tuple(
                prune_entity_effects(entity, turn) for entity in previous.nearby_entities
            ),
        }
    )


def _player_action(
    state: GameState,
    intent: GameIntent,
    catalog: ReferenceCatalog,
    session: SessionState,
    signals: TurnSignals,
    text: str,
) -> Resolution:
    """Resolve the single player action this turn allows."""
    action = intent.action
    if intent.consumable:
        return use_consumable(state, intent.consumable, session)
    if action.kind == "look":
        signals.looked = not (intent.wants_search or intent.wants_investigate)
        return Resolution(state=state, facts=look_around(state, catalog))
    if action.kind == "checkSheet":
        signals.sheet = True
        return Resolution(state=state, facts=[sheet_summary(state, action.section)])
    if action.kind == "castAbility":
        return cast_spell(
            state, catalog, session, action.ability_name, target=action.target, text=text
        )
    if action.kind == "attack":
        return weapon_attack(
            state, catalog, session, weapon_name=action.weapon_name, target=action.target, text=text
        )
    if action.kind == "defend":
        return defend(state)
    if action.kind == "run":
        return run_away(state)
    if intent.stunt is not None:
        return resolve_stunt(state, intent.stunt, session)
    if intent.trade is not None:
        return resolve_trade(state, catalog, intent.trade)
    if intent.wants_loot or intent.wants_search or intent.wants_investigate:
        return Resolution(state=state)
    if intent.core_action == "other" and not state.alive_entities():
        return Resolution(state=state, facts=[NO_THREAT])
    return Resolution(state=state, facts=[f"You {text}."])


def _award_kills(
    state: GameState,
    catalog: ReferenceCatalog,
    alive_before: dict[int, str],
    signals: TurnSignals,
) -> GameState:
    for index, name in alive_before.items():
        if index >= len(state.nearby_entities):
            continue
        entity = state.nearby_entities[index]
        if entity.name != name or entity.status != "dead":
            continue
        state, messages = award_xp(
            state, catalog, kill_xp(catalog, name), reason=f"for defeating {name}."
        )
        for message in messages:
            signals.note(message)
    return state


def _gained_items(previous: GameState, state: GameState) -> list[str]:
    before = {item.name: item.quantity for item in previous.inventory}
    return [
        item.name for item in state.inventory if item.quantity > before.get(item.name, 0)
    ]


def resolve_turn(
    previous_state: GameState,
    raw_action: str,
    *,
    catalog: ReferenceCatalog,
    rng: Any = None,
    narrator: Narrator | None = None,
    now: datetime | None = None,
) -> TurnResult:
    """Resolve one player action into a new state and its log entry.

    ``previous_state`` is never modified. Randomness comes from ``rng``
    when given, else from a generator seeded by the world seed and turn.
    Refusals resolve as ordinary narrated turns; only malformed reference
    data raises.
    """
    text = sanitize_action(raw_action) or "act"
    state = _start_turn(previous_state)
    turn = state.turn_counter
    session = SessionState(seed=stable_seed(state.world_seed, turn), rng=rng)
    intent = parse_intent(text, state, catalog)
    signals = TurnSignals()
    alive_before = {
        index: entity.name for index, entity in enumerate(state.nearby_entities) if entity.is_alive
    }

    rolls: dict[str, int | bool] = {}
    result = try_exit(state, catalog, text)
    exited = result is not None
    if result is None:
        result = _player_action(state, intent, catalog, session, signals, text)
        rolls.update(result.rolls)
        monster = monster_turn(
            result.state,
            catalog,
            session,
            core_action=intent.core_action,
            engaged_index=result.target_index,
        )
        rolls.update(monster.rolls)
        state = monster.state
        engine_facts = result.facts + monster.facts
    else:
        state = result.state
        engine_facts = list(result.facts)
    for fact in engine_facts:
        signals.note(fact)
    signals.mode_override = result.mode_override
    signals.combat_outcome = result.combat_outcome

    state = end_of_turn(state, intent.core_action)

    state, found_messages, attempted, found = apply_discoveries(state, catalog, text)
    for message in found_messages:
        signals.note(message)
    signals.search_attempted = attempted or intent.wants_search
    signals.search_found = found
    signals.investigate_attempted = intent.wants_investigate

    if not exited:
        state = _award_kills(state, catalog, alive_before, signals)
    state, completion_messages = apply_scene_completion(state, catalog, session)
    for message in completion_messages:
        signals.note(message)

    if intent.wants_loot:
        signals.loot_attempted = True
        state, loot_messages, looted = loot_corpse(state, catalog, session)
        signals.loot_found = looted
        for message in loot_messages or [NOTHING_TO_LOOT]:
            signals.note(message)

    if (
        intent.action.kind == "attack"
        and result.target_index is not None
        and not state.alive_entities()
    ):
        signals.note(NOTHING_LEFT)

    state = enforce_invariants(previous_state, state)
    state = state.model_copy(update={"last_rolls": LastRolls(**rolls)})
    state = refresh_registries(state)

    signals.moved = state.location != previous_state.location
    signals.dealt_damage = bool(rolls.get("player_damage")) and result.combat_outcome in {"hit", "kill"}
    signals.item_names = _gained_items(previous_state, state)
    if result.target_index is not None and result.target_index < len(state.nearby_entities):
        signals.enemy_name = state.nearby_entities[result.target_index].name
    elif state.alive_entities():
        signals.enemy_name = state.alive_entities()[0].name

    mode = select_mode(signals)
    facts = build_facts(
        previous_state,
        state,
        signals,
        mode,
        armor_class=player_armor_class(state, catalog),
    )
    fact_block = "\n".join(facts)
    request = build_request(previous_state, state, signals, mode, facts)

    flavor = None
    summary = fact_block
    last_entry = previous_state.log[-1] if previous_state.log else None
    if mode in EXPLORATION_MODES and last_entry is not None and last_entry.summary == fact_block:
        summary = NOTHING_CHANGED
    elif narrator is not None:
        flavor = narrator.generate_flavor(request)

    created_at = (now or datetime.now(timezone.utc)).isoformat()
    log_entry = LogEntry(
        id=f"log-{state.world_seed:x}-{turn}",
        mode=mode,
        summary=summary,
        flavor=flavor,
        created_at=created_at,
    )
    history_block = f"{summary}\n\n{flavor}" if flavor else summary
    state = state.model_copy(
        update={
            "log": (state.log + (log_entry,))[-LOG_WINDOW:],
            "narrative_history": append_bounded(
                state.narrative_history, history_block, NARRATIVE_WINDOW
            ),
            "last_action_summary": summary,
        }
    )
    logger.info("Turn %s resolved as %s (%d rolls)", turn, mode, len(session.turn_log))
    return TurnResult(
        new_state=state,
        log_entry=log_entry,
        facts=facts,
        rolls=session.turn_log,
        narration_context=request,
    )


def execute_turn(
    player_id: str,
    text: str,
    *,
    catalog: ReferenceCatalog,
    narrator: Narrator | None = None,
) -> TurnResult:
    with SessionLocal() as db:
        state = load_saved_state(db, player_id, catalog)
        if state is None:
            raise TurnError("Saved game not found.")
        result = resolve_turn(state, text, catalog=catalog, narrator=narrator)
        store_state(db, player_id, result.new_state)
        db.commit()
        return result
