from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

DICE_TERM_PATTERN = re.compile(r"[+-]?[^+-]+")
DICE_PATTERN = re.compile(r"^(\d*)d(\d+)$", re.IGNORECASE)
INTEGER_PATTERN = re.compile(r"^\d+$")


class DiceError(ValueError):
    pass


@dataclass(frozen=True)
class DiceTerm:
    sign: int
    count: int
    sides: int


@dataclass(frozen=True)
class DiceExpression:
    formula: str
    dice: tuple[DiceTerm, ...]
    modifier: int

    @property
    def minimum(self) -> int:
        low = sum(term.sign * (term.count if term.sign > 0 else term.count * term.sides) for term in self.dice)
        return low + self.modifier

    @property
    def maximum(self) -> int:
        high = sum(term.sign * (term.count * term.sides if term.sign > 0 else term.count) for term in self.dice)
        return high + self.modifier


@dataclass
class SessionState:
    """Owns the random source for one turn and records every roll made with it.

    ``rng`` may be any object exposing ``randint(a, b)``; tests inject a
    scripted source to force specific results.
    """

    seed: int
    turn_log: list[dict] = field(default_factory=list)
    rng: Any = None

    def __post_init__(self) -> None:
        if self.rng is None:
            self.rng = random.Random(self.seed)


def parse_dice(dice_str: str) -> DiceExpression:
    compact = re.sub(r"\s+", "", dice_str or "")
    if not compact:
        raise DiceError(f"Invalid dice string: {dice_str!r}")

    terms = DICE_TERM_PATTERN.findall(compact)
    if "".join(terms) != compact:
        raise DiceError(f"Invalid dice string: {dice_str!r}")

    dice: list[DiceTerm] = []
    modifier = 0
    for term in terms:
        sign = -1 if term.startswith("-") else 1
        body = term.lstrip("+-")
        if INTEGER_PATTERN.match(body):
            modifier += sign * int(body)
            continue
        match = DICE_PATTERN.match(body)
        if not match:
            raise DiceError(f"Invalid dice term {term!r} in {dice_str!r}")
        count_text, sides_text = match.groups()
        count = int(count_text) if count_text else 1
        sides = int(sides_text)
        if count <= 0 or sides <= 0:
            raise DiceError(f"Invalid dice term {term!r} in {dice_str!r}")
        dice.append(DiceTerm(sign=sign, count=count, sides=sides))

    return DiceExpression(formula=compact, dice=tuple(dice), modifier=modifier)


def _log_roll(
    session: SessionState,
    *,
    formula: str,
    result: int,
    rolls: Iterable[int],
    modifier: int,
    label: str | None,
) -> None:
    session.turn_log.append(
        {
            "formula": formula,
            "result": result,
            "rolls": list(rolls),
            "modifier": modifier,
            "label": label,
        }
    )


def roll_d20(session: SessionState, *, label: str | None = None) -> int:
    result = session.rng.randint(1, 20)
    _log_roll(
        session,
        formula="1d20",
        result=result,
        rolls=[result],
        modifier=0,
        label=label,
    )
    return result


def roll(session: SessionState, dice_str: str, *, label: str | None = None) -> int:
    expression = parse_dice(dice_str)
    rolls: list[int] = []
    total = expression.modifier
    for term in expression.dice:
        drawn = [session.rng.randint(1, term.sides) for _ in range(term.count)]
        rolls.extend(drawn)
        total += term.sign * sum(drawn)
    _log_roll(
        session,
        formula=expression.formula,
        result=total,
        rolls=rolls,
        modifier=expression.modifier,
        label=label,
    )
    return total


def roll_between(
    session: SessionState,
    low: int,
    high: int,
    *,
    label: str | None = None,
) -> int:
    if high < low:
        raise DiceError(f"Invalid range {low}..{high}")
    result = session.rng.randint(low, high)
    _log_roll(
        session,
        formula=f"{low}..{high}",
        result=result,
        rolls=[result],
        modifier=0,
        label=label,
    )
    return result
