from __future__ import annotations

from rules.reference import ReferenceCatalog
from rules.state import GameState

DEFAULT_KILL_XP = 50
MIN_KILL_XP = 25
XP_PER_HP = 5


def xp_to_next_for(catalog: ReferenceCatalog, level: int) -> int | None:
    upcoming = catalog.next_level(level)
    return upcoming.xp_required if upcoming else None


def kill_xp(catalog: ReferenceCatalog, name: str) -> int:
    monster = catalog.find_monster(name)
    if monster is None:
        return DEFAULT_KILL_XP
    if monster.xp is not None:
        return monster.xp
    return max(MIN_KILL_XP, monster.hp * XP_PER_HP)


def award_xp(
    state: GameState,
    catalog: ReferenceCatalog,
    amount: int,
    *,
    reason: str | None = None,
) -> tuple[GameState, list[str]]:
    """Add XP and apply every level-up it pays for.

    Each level gained adds that level's HP gain to max HP and heals fully.
    """
    if amount <= 0:
        return state, []

    messages = [f"You gain {amount} XP {reason}" if reason else f"You gain {amount} XP."]
    xp = state.xp + amount
    level = state.level
    max_hp = state.max_hp
    hp = state.hp
    while True:
        upcoming = catalog.next_level(level)
        if upcoming is None or xp < upcoming.xp_required:
            break
        level = upcoming.level
        max_hp += upcoming.hp_gain
        hp = max_hp
        messages.append(f"You reach level {level}. Your maximum HP increases to {max_hp}.")

    updated = state.model_copy(
        update={
            "xp": xp,
            "level": level,
            "max_hp": max_hp,
            "hp": hp,
            "xp_to_next": xp_to_next_for(catalog, level),
        }
    )
    return updated, messages
