from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

from llm.schemas import NarrationRequest
from rules.reference import ReferenceCatalog
from rules.schemas import FlavorLine
from rules.settings import biome_key, location_key, pick_variant, stable_seed
from rules.state import GameState

logger = logging.getLogger(__name__)

NOTHING_CHANGED = "You scan the area again; nothing seems to have changed."
MAX_FACT_LENGTH = 500
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f`]")

EXPLORATION_MODES = {"SEARCH_FOUND", "SEARCH_EMPTY", "ROOM_INTRO", "INVESTIGATE"}
LOCATION_LINE_MODES = EXPLORATION_MODES | {"LOOT_GAIN"}


class Narrator(Protocol):
    def generate_flavor(self, request: NarrationRequest) -> str | None: ...


@dataclass
class TurnSignals:
    """What happened this turn, gathered by the resolvers for mode selection."""

    facts: list[str] = field(default_factory=list)
    sheet: bool = False
    mode_override: str | None = None
    combat_outcome: str | None = None
    looked: bool = False
    moved: bool = False
    search_attempted: bool = False
    loot_attempted: bool = False
    investigate_attempted: bool = False
    search_found: bool = False
    loot_found: bool = False
    dealt_damage: bool = False
    enemy_name: str | None = None
    item_names: list[str] = field(default_factory=list)

    def note(self, fact: str) -> None:
        if fact:
            self.facts.append(fact)


def _when(mode: str, predicate: Callable[[TurnSignals], bool]) -> Callable[[TurnSignals], str | None]:
    return lambda signals: mode if predicate(signals) else None


# Evaluated top to bottom; the first rule that yields a mode wins.
MODE_RULES: tuple[tuple[str, Callable[[TurnSignals], str | None]], ...] = (
    ("sheet", _when("SHEET", lambda s: s.sheet)),
    ("override", lambda s: s.mode_override),
    ("kill", _when("COMBAT_KILL", lambda s: s.combat_outcome == "kill")),
    ("hit", _when("COMBAT_HIT", lambda s: s.combat_outcome == "hit")),
    ("miss", _when("COMBAT_MISS", lambda s: s.combat_outcome == "miss")),
    ("loot found", _when("LOOT_GAIN", lambda s: s.loot_found)),
    ("search found", _when("SEARCH_FOUND", lambda s: s.search_found)),
    ("investigate", _when("INVESTIGATE", lambda s: s.investigate_attempted)),
    ("room intro", _when("ROOM_INTRO", lambda s: s.looked or s.moved)),
    ("empty search", _when("SEARCH_EMPTY", lambda s: s.search_attempted or s.loot_attempted)),
    ("general", lambda s: "GENERAL"),
)


def select_mode(signals: TurnSignals) -> str:
    for _name, rule in MODE_RULES:
        mode = rule(signals)
        if mode:
            return mode
    return "GENERAL"


def sanitize_fact(text: str) -> str:
    cleaned = CONTROL_CHARS.sub("", text)
    return " ".join(cleaned.split())[:MAX_FACT_LENGTH]


def build_facts(
    previous: GameState,
    state: GameState,
    signals: TurnSignals,
    mode: str,
    *,
    armor_class: int,
) -> list[str]:
    facts = [sanitize_fact(fact) for fact in signals.facts]
    facts = [fact for fact in facts if fact]

    if state.location != previous.location or mode in LOCATION_LINE_MODES:
        description = state.room_registry.get(state.location)
        location_line = f"You are in {state.location}."
        if description:
            location_line = f"{location_line} {description}"
        facts.append(sanitize_fact(location_line))

    delta = state.hp - previous.hp
    change = ""
    if delta > 0:
        change = f" (healed {delta})"
    elif delta < 0:
        change = f" (lost {-delta})"
    facts.append(f"You are at {state.hp}/{state.max_hp} HP{change}, AC {armor_class}.")

    if state.nearby_entities:
        nearby = ", ".join(
            f"{entity.name} {entity.status} ({entity.hp}/{entity.max_hp} HP)"
            for entity in state.nearby_entities
        )
        facts.append(sanitize_fact(f"Nearby: {nearby}."))
    return facts


def build_request(
    previous: GameState,
    state: GameState,
    signals: TurnSignals,
    mode: str,
    facts: Sequence[str],
) -> NarrationRequest:
    return NarrationRequest(
        mode=mode,
        location_key=location_key(state.location),
        biome_key=biome_key(state.location),
        enemy_name=signals.enemy_name,
        took_damage=state.hp < previous.hp,
        dealt_damage=signals.dealt_damage,
        item_names=tuple(signals.item_names),
        facts=tuple(facts),
        turn=state.turn_counter,
    )


class CannedNarrator:
    """Offline narrator that picks a tagged flavor line from reference data."""

    def __init__(self, lines: Sequence[FlavorLine]) -> None:
        self.lines = tuple(lines)

    @classmethod
    def from_catalog(cls, catalog: ReferenceCatalog) -> CannedNarrator:
        return cls(catalog.flavor_lines)

    def generate_flavor(self, request: NarrationRequest) -> str | None:
        if request.mode == "SHEET":
            return None
        tags = {
            "default",
            f"location:{request.location_key}",
            f"biome:{request.biome_key}",
        }
        candidates = [
            line for line in self.lines if request.mode in line.modes and tags.intersection(line.tags)
        ]
        if not candidates:
            logger.debug("No flavor line for mode %s at %s", request.mode, request.location_key)
            return None
        seed = stable_seed(request.location_key, request.mode, request.turn, *request.facts)
        return pick_variant(candidates, seed=seed).text
