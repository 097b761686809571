"""Rule-based classification of free-text player actions.

The primary action comes from :data:`CLASSIFIER_RULES`, an ordered tuple of
rules. Each rule returns a definite variant or ``None`` and the first match
wins, so the tuple order *is* the priority order:

    sheet-check > look > run > defend > move > cast > attack
    > basic-action hint > skill hint > other

Trade, stunt and consumable classifications are attached to the
:class:`GameIntent`; the turn resolver decides which of them applies. A buy or
sell command suppresses the stunt and consumable readings, and a weapon it
names is not taken as an attack.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Literal, Union

from rules.reference import ReferenceCatalog
from rules.state import GameState
from rules.stunts import ClassifiedStunt, classify_stunt

MAX_ACTION_LENGTH = 500

SHEET_SECTIONS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("inventory", re.compile(r"\b(inventory|bag|pack)\b", re.IGNORECASE)),
    ("skills", re.compile(r"\b(skills|proficiencies)\b", re.IGNORECASE)),
    ("abilities", re.compile(r"\b(abilities|spells|feats|powers)\b", re.IGNORECASE)),
    ("all", re.compile(r"\b(character sheet|sheet|stats|status)\b", re.IGNORECASE)),
)
LOOK_PATTERN = re.compile(r"\b(look|inspect|examine|search|survey|observe)\b", re.IGNORECASE)
RUN_PATTERN = re.compile(r"\b(run|flee|escape|retreat)\b", re.IGNORECASE)
DEFEND_PATTERN = re.compile(r"\b(defend|block|dodge|parry|guard|brace|shield up)\b", re.IGNORECASE)
MOVE_PATTERN = re.compile(r"\b(move|go|walk|head|proceed|travel)\b", re.IGNORECASE)
DIRECTION_PATTERN = re.compile(
    r"\b(north|south|east|west|left|right|forwards|forward|backward|back)\b", re.IGNORECASE
)
CAST_PATTERN = re.compile(r"\b(cast|use|invoke|activate)\s+([a-z][a-z\s'-]{2,40})", re.IGNORECASE)
ATTACK_PATTERN = re.compile(
    r"\b(attack|hit|strike|stab|slash|swing|shoot|bash|punch|kick)\b", re.IGNORECASE
)
TARGET_PATTERN = re.compile(
    r"\b(?:on|at|against|toward|targeting|vs\.?)\s+(?:the\s+|an?\s+)?([a-z][a-z\s'-]{1,40})", re.IGNORECASE
)
PROPER_TARGET_PATTERN = re.compile(r"\b(?:the|a|an)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")

BUY_PATTERN = re.compile(r"\b(?:buy|purchase)\s+(?:an?\s+|the\s+|some\s+|one\s+)?(.+?)\s*$", re.IGNORECASE)
SELL_PATTERN = re.compile(r"\bsell\s+(?:my\s+|an?\s+|the\s+|one\s+)?(.+?)\s*$", re.IGNORECASE)
SHOP_PATTERN = re.compile(
    r"\b(trade|shop|browse|wares)\b"
    r"|\b(?:talk|speak)\s+(?:to|with)\s+(?:the\s+)?(?:trader|merchant|peddler|shopkeeper|quartermaster)\b",
    re.IGNORECASE,
)

POTION_PATTERN = re.compile(r"\b(potion|elixir|draught|draft)", re.IGNORECASE)
BANDAGE_PATTERN = re.compile(r"\bbandage", re.IGNORECASE)
SEARCH_PATTERN = re.compile(r"\b(search|rummage|scour|sift|probe)", re.IGNORECASE)
LOOT_PATTERN = re.compile(r"\b(loot|rummage|pick over|salvage)", re.IGNORECASE)
INVESTIGATE_PATTERN = re.compile(r"\b(investigate|inspect|examine)", re.IGNORECASE)

INJECTION_PATTERN = re.compile(
    r"(ignore|disregard|override|bypass|forget).{0,40}(instruction|system|rule|previous)",
    re.IGNORECASE,
)
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f`]")


@dataclass(frozen=True)
class Attack:
    weapon_name: str | None = None
    target: str | None = None
    kind: Literal["attack"] = "attack"


@dataclass(frozen=True)
class CastAbility:
    ability_name: str
    target: str | None = None
    kind: Literal["castAbility"] = "castAbility"


@dataclass(frozen=True)
class Defend:
    kind: Literal["defend"] = "defend"


@dataclass(frozen=True)
class Run:
    kind: Literal["run"] = "run"


@dataclass(frozen=True)
class Look:
    kind: Literal["look"] = "look"


@dataclass(frozen=True)
class Move:
    direction: str | None = None
    kind: Literal["move"] = "move"


@dataclass(frozen=True)
class CheckSheet:
    section: Literal["skills", "abilities", "inventory", "all"] = "all"
    kind: Literal["checkSheet"] = "checkSheet"


@dataclass(frozen=True)
class Other:
    raw: str
    kind: Literal["other"] = "other"


ParsedAction = Union[Attack, CastAbility, Defend, Run, Look, Move, CheckSheet, Other]


@dataclass(frozen=True)
class TradeIntent:
    action: Literal["openShop", "buy", "sell"]
    item_name: str | None = None


@dataclass(frozen=True)
class Vocabulary:
    """Names the parser recognises, longest first so "Greatclub" beats "Club"."""

    weapons: tuple[str, ...]
    known_spells: tuple[str, ...]
    spells: tuple[str, ...]
    abilities: tuple[str, ...]
    skills: tuple[str, ...]
    basic_actions: tuple[str, ...]

    @classmethod
    def from_catalog(
        cls,
        catalog: ReferenceCatalog,
        known_spells: Iterable[str] = (),
    ) -> Vocabulary:
        known = _longest_first(known_spells)
        others = tuple(
            name for name in _longest_first(spell.name for spell in catalog.spells.values())
            if name.lower() not in {spell.lower() for spell in known}
        )
        return cls(
            weapons=_longest_first(weapon.name for weapon in catalog.weapons.values()),
            known_spells=known,
            spells=others,
            abilities=_longest_first(ability.name for ability in catalog.abilities.values()),
            skills=_longest_first(skill.name for skill in catalog.skills.values()),
            basic_actions=_longest_first(action.name for action in catalog.basic_actions.values()),
        )


@dataclass(frozen=True)
class GameIntent:
    raw: str
    action: ParsedAction
    core_action: Literal["attack", "defend", "run", "other"]
    trade: TradeIntent | None = None
    stunt: ClassifiedStunt | None = None
    consumable: Literal["potion", "bandage"] | None = None
    wants_search: bool = False
    wants_loot: bool = False
    wants_investigate: bool = False
    signals: tuple[str, ...] = field(default=())


def _longest_first(names: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted(set(names), key=lambda name: (-len(name), name)))


def _contains_name(text: str, name: str) -> bool:
    return re.search(rf"\b{re.escape(name.lower())}\b", text.lower()) is not None


def find_target(text: str) -> str | None:
    match = TARGET_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    direct = PROPER_TARGET_PATTERN.search(text)
    if direct:
        return direct.group(1).strip()
    return None


def _sheet_rule(text: str, vocab: Vocabulary) -> ParsedAction | None:
    for section, pattern in SHEET_SECTIONS:
        if pattern.search(text):
            return CheckSheet(section=section)
    return None


def _look_rule(text: str, vocab: Vocabulary) -> ParsedAction | None:
    return Look() if LOOK_PATTERN.search(text) else None


def _run_rule(text: str, vocab: Vocabulary) -> ParsedAction | None:
    return Run() if RUN_PATTERN.search(text) else None


def _defend_rule(text: str, vocab: Vocabulary) -> ParsedAction | None:
    return Defend() if DEFEND_PATTERN.search(text) else None


def _move_rule(text: str, vocab: Vocabulary) -> ParsedAction | None:
    direction = DIRECTION_PATTERN.search(text)
    if direction and MOVE_PATTERN.search(text):
        return Move(direction=direction.group(1).lower())
    return None


def _cast_rule(text: str, vocab: Vocabulary) -> ParsedAction | None:
    match = CAST_PATTERN.search(text)
    if not match:
        return None
    verb, candidate = match.group(1).lower(), match.group(2).strip()
    lowered = candidate.lower()
    # Unlearned spells only count when the player explicitly casts.
    spells = vocab.known_spells + (vocab.spells if verb == "cast" else ())
    for spell in spells:
        if lowered == spell.lower() or _contains_name(lowered, spell):
            return CastAbility(ability_name=spell, target=find_target(text))
    for ability in vocab.abilities:
        if _contains_name(lowered, ability):
            return CastAbility(ability_name=candidate, target=find_target(text))
    return None


def _attack_rule(text: str, vocab: Vocabulary) -> ParsedAction | None:
    weapon_name = next((name for name in vocab.weapons if _contains_name(text, name)), None)
    if ATTACK_PATTERN.search(text) or weapon_name:
        return Attack(weapon_name=weapon_name, target=find_target(text))
    return None


def _basic_action_rule(text: str, vocab: Vocabulary) -> ParsedAction | None:
    if any(_contains_name(text, name) for name in vocab.basic_actions):
        return CheckSheet(section="all")
    return None


def _skill_rule(text: str, vocab: Vocabulary) -> ParsedAction | None:
    if any(_contains_name(text, name) for name in vocab.skills):
        return CheckSheet(section="skills")
    return None


ClassifierRule = Callable[[str, Vocabulary], "ParsedAction | None"]

CLASSIFIER_RULES: tuple[tuple[str, ClassifierRule], ...] = (
    ("sheet", _sheet_rule),
    ("look", _look_rule),
    ("run", _run_rule),
    ("defend", _defend_rule),
    ("move", _move_rule),
    ("cast", _cast_rule),
    ("attack", _attack_rule),
    ("basic action", _basic_action_rule),
    ("skill", _skill_rule),
)


def classify_action(text: str, vocab: Vocabulary) -> ParsedAction:
    for _name, rule in CLASSIFIER_RULES:
        parsed = rule(text, vocab)
        if parsed is not None:
            return parsed
    return Other(raw=text)


def classify_trade(text: str) -> TradeIntent | None:
    buy = BUY_PATTERN.search(text)
    if buy:
        return TradeIntent(action="buy", item_name=buy.group(1).strip(" .!?"))
    sell = SELL_PATTERN.search(text)
    if sell:
        return TradeIntent(action="sell", item_name=sell.group(1).strip(" .!?"))
    if SHOP_PATTERN.search(text):
        return TradeIntent(action="openShop")
    return None


def classify_consumable(text: str) -> Literal["potion", "bandage"] | None:
    if POTION_PATTERN.search(text):
        return "potion"
    if BANDAGE_PATTERN.search(text):
        return "bandage"
    return None


def core_action_for(action: ParsedAction) -> Literal["attack", "defend", "run", "other"]:
    if action.kind in {"attack", "castAbility"}:
        return "attack"
    if action.kind in {"defend", "run"}:
        return action.kind
    return "other"


def sanitize_action(text: str) -> str:
    cleaned = CONTROL_CHARS.sub(" ", text or "")
    cleaned = " ".join(cleaned.split())[:MAX_ACTION_LENGTH]
    return INJECTION_PATTERN.sub("act cautiously", cleaned)


def parse_intent(
    text: str,
    state: GameState | None,
    catalog: ReferenceCatalog,
) -> GameIntent:
    """Classify ``text`` against the catalog and the player's known spells."""
    raw = " ".join((text or "").split())[:MAX_ACTION_LENGTH]
    known_spells = state.known_spells if state is not None else ()
    vocab = Vocabulary.from_catalog(catalog, known_spells)
    action = classify_action(raw, vocab)
    trade = classify_trade(raw)
    if (
        trade is not None
        and trade.action != "openShop"
        and action.kind == "attack"
        and not ATTACK_PATTERN.search(raw)
    ):
        # a weapon named in "buy shortsword" is merchandise, not an attack
        action = Other(raw=raw)
    consumable = None
    stunt = None
    if trade is None or trade.action == "openShop":
        consumable = classify_consumable(raw)
        stunt = classify_stunt(raw)

    signals = []
    wants_search = SEARCH_PATTERN.search(raw) is not None
    wants_loot = LOOT_PATTERN.search(raw) is not None
    wants_investigate = INVESTIGATE_PATTERN.search(raw) is not None
    for name, flag in (("search", wants_search), ("loot", wants_loot), ("investigate", wants_investigate)):
        if flag:
            signals.append(name)

    return GameIntent(
        raw=raw,
        action=action,
        core_action=core_action_for(action),
        trade=trade,
        stunt=stunt,
        consumable=consumable,
        wants_search=wants_search,
        wants_loot=wants_loot,
        wants_investigate=wants_investigate,
        signals=tuple(signals),
    )
