from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from rules.core import SessionState, roll, roll_d20
from rules.state import GameState, Resolution, replace_entity, slugify
from rules.statuses import apply_effect, make_effect

StuntCategory = Literal["physical", "mental", "social", "exploration", "combat"]
Difficulty = Literal["easy", "moderate", "hard", "deadly"]

DIFFICULTY_TO_DC: dict[str, int] = {
    "easy": 10,
    "moderate": 13,
    "hard": 16,
    "deadly": 20,
}

SKILL_BONUS = 2
STUNT_DAMAGE = "1d4"


@dataclass(frozen=True)
class StuntTemplate:
    id: str
    category: StuntCategory
    primary_skill: str
    backup_skills: tuple[str, ...]
    difficulty: Difficulty
    success_effect: str
    failure_effect: str

    @property
    def dc(self) -> int:
        return DIFFICULTY_TO_DC[self.difficulty]


@dataclass(frozen=True)
class ClassifiedStunt:
    template: StuntTemplate
    target_name: str | None = None


STUNT_TEMPLATES: dict[str, StuntTemplate] = {
    "physical_default": StuntTemplate(
        id="physical_default",
        category="physical",
        primary_skill="Athletics",
        backup_skills=("Acrobatics",),
        difficulty="hard",
        success_effect="knock_prone",
        failure_effect="lose_position",
    ),
    "mental_default": StuntTemplate(
        id="mental_default",
        category="mental",
        primary_skill="Investigation",
        backup_skills=("Perception", "History"),
        difficulty="moderate",
        success_effect="discover_clue",
        failure_effect="no_effect",
    ),
    "social_default": StuntTemplate(
        id="social_default",
        category="social",
        primary_skill="Persuasion",
        backup_skills=("Intimidation", "Deception"),
        difficulty="moderate",
        success_effect="improve_attitude",
        failure_effect="worsen_attitude",
    ),
    "exploration_default": StuntTemplate(
        id="exploration_default",
        category="exploration",
        primary_skill="Perception",
        backup_skills=("Investigation",),
        difficulty="moderate",
        success_effect="discover_clue",
        failure_effect="alert_enemies",
    ),
    "combat_trick_default": StuntTemplate(
        id="combat_trick_default",
        category="combat",
        primary_skill="Acrobatics",
        backup_skills=("Athletics",),
        difficulty="hard",
        success_effect="extra_damage",
        failure_effect="take_damage",
    ),
}

# First match wins.
STUNT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    (
        "physical_default",
        re.compile(r"\b(jump|leap|vault|climb|swing|flip|tackle|grab|shove|push|ram|charge)\b"),
    ),
    (
        "social_default",
        re.compile(
            r"\b(persuade|convince|negotiate|charm|intimidate|threaten|scare|bluff|lie|deceive|talk my way)\b"
        ),
    ),
    (
        "mental_default",
        re.compile(
            r"\b(study|examine|ponder|recall|remember|history|arcana|religion|investigate|inspect|analyze)\b"
        ),
    ),
    (
        "exploration_default",
        re.compile(r"\b(poke|prod|test|press|turn|pull|push the lever|trap|mechanism|device|lock)\b"),
    ),
    (
        "combat_trick_default",
        re.compile(r"\b(trip|disarm|feint|kick sand|bash|slam|throw sand|throw dirt)\b"),
    ),
)

TARGET_PATTERN = re.compile(r"\b(?:on|at|against|to|into)\s+(?:the\s+|an?\s+)?([a-z]+)\b")

# effect tag -> story flag set once
FLAG_EFFECTS = {
    "discover_clue": "stunt_clue_found",
    "gain_info": "stunt_info_gained",
    "improve_attitude": "stunt_attitude_improved",
    "lose_position": "stunt_lost_position",
    "alert_enemies": "stunt_alerted_enemies",
    "worsen_attitude": "stunt_attitude_worsened",
}

EFFECT_MESSAGES = {
    "extra_damage": "You set up an opening for a stronger strike.",
    "discover_clue": "You notice a subtle detail you missed before.",
    "gain_info": "You piece together a useful insight.",
    "improve_attitude": "The tension eases, if only slightly.",
    "lose_position": "You lose your footing and give ground.",
    "alert_enemies": "Your misstep draws unwanted attention.",
    "worsen_attitude": "Your words sour the mood.",
    "waste_action": "The attempt goes nowhere.",
    "no_effect": "",
}

CATEGORY_MODES = {
    "physical": ("COMBAT_HIT", "COMBAT_MISS"),
    "combat": ("COMBAT_HIT", "COMBAT_MISS"),
    "mental": ("INVESTIGATE", "INVESTIGATE"),
    "exploration": ("INVESTIGATE", "INVESTIGATE"),
    "social": ("GENERAL", "GENERAL"),
}


def classify_stunt(text: str) -> ClassifiedStunt | None:
    lowered = (text or "").lower()
    target = TARGET_PATTERN.search(lowered)
    target_name = target.group(1) if target else None
    for template_id, pattern in STUNT_PATTERNS:
        if pattern.search(lowered):
            return ClassifiedStunt(template=STUNT_TEMPLATES[template_id], target_name=target_name)
    return None


def skill_modifier(state: GameState, skill_name: str) -> int:
    has_skill = any(skill.lower() == skill_name.lower() for skill in state.skills)
    return SKILL_BONUS if has_skill else 0


def _with_flag(state: GameState, flag: str) -> GameState:
    if flag in state.story_flags:
        return state
    return state.model_copy(update={"story_flags": state.story_flags + (flag,)})


def _knock_prone(state: GameState, target_name: str | None) -> tuple[GameState, str]:
    target_key = slugify(target_name or "")
    entities = state.nearby_entities
    applied = False
    if target_key:
        for index, entity in enumerate(entities):
            if not entity.is_alive or target_key not in slugify(entity.name):
                continue
            prone = make_effect("Prone", turn=state.turn_counter)
            entities = replace_entity(
                entities,
                index,
                entity.model_copy(update={"effects": apply_effect(entity.effects, prone)}),
            )
            applied = True
    if not applied:
        return state, "You knock your target off balance."
    return (
        state.model_copy(update={"nearby_entities": entities}),
        f"The {target_name} is knocked prone.",
    )


def _apply_consequence(
    state: GameState,
    session: SessionState,
    stunt: ClassifiedStunt,
    success: bool,
) -> tuple[GameState, str]:
    template = stunt.template
    effect = template.success_effect if success else template.failure_effect

    if effect == "knock_prone":
        return _knock_prone(state, stunt.target_name)
    if effect == "extra_damage":
        edge = make_effect("Stunt Edge", turn=state.turn_counter)
        state = state.model_copy(
            update={"active_effects": apply_effect(state.active_effects, edge)}
        )
        return state, EFFECT_MESSAGES[effect]
    if effect == "take_damage":
        damage = roll(session, STUNT_DAMAGE, label="stunt backlash")
        state = state.model_copy(update={"hp": max(0, state.hp - damage)})
        return state, f"You overextend and take {damage} damage."
    if effect in FLAG_EFFECTS:
        state = _with_flag(state, FLAG_EFFECTS[effect])
    return state, EFFECT_MESSAGES.get(effect, "")


def resolve_stunt(
    state: GameState,
    stunt: ClassifiedStunt,
    session: SessionState,
) -> Resolution:
    """Roll d20 + skill against the template DC and apply one consequence.

    A stunt always resolves: the result carries a summary and a narration
    mode chosen by category, never an error.
    """
    template = stunt.template
    skill_name = template.primary_skill
    total = roll_d20(session, label=f"{template.category} stunt") + skill_modifier(state, skill_name)
    success = total >= template.dc

    target_text = f" targeting the {stunt.target_name}" if stunt.target_name else ""
    outcome = "succeed" if success else "fail"
    summary = (
        f"You attempt a {template.category} stunt{target_text} using {skill_name}. "
        f"You roll {total} vs DC {template.dc} and {outcome}."
    )
    state, consequence = _apply_consequence(state, session, stunt, success)
    if consequence:
        summary = f"{summary} {consequence}"

    success_mode, failure_mode = CATEGORY_MODES[template.category]
    return Resolution(
        state=state,
        facts=[summary],
        mode_override=success_mode if success else failure_mode,
    )
