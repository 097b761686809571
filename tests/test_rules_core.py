import pytest

from rules.core import DiceError, SessionState, parse_dice, roll, roll_between, roll_d20


def test_deterministic_rolls_with_seed() -> None:
    first = SessionState(seed=1234)
    second = SessionState(seed=1234)

    assert roll_d20(first) == roll_d20(second)
    assert roll(first, "2d6+3") == roll(second, "2d6+3")
    assert roll(first, "1d8-1") == roll(second, "1d8-1")


def test_roll_logging() -> None:
    session = SessionState(seed=42)

    d20_result = roll_d20(session, label="initiative")
    dice_result = roll(session, "2d4+1", label="damage")

    assert len(session.turn_log) == 2
    first, second = session.turn_log

    assert first["formula"] == "1d20"
    assert first["result"] == d20_result
    assert first["label"] == "initiative"

    assert second["formula"] == "2d4+1"
    assert second["result"] == dice_result
    assert second["modifier"] == 1
    assert len(second["rolls"]) == 2


def test_three_d6_stays_in_range() -> None:
    session = SessionState(seed=7)
    results = [roll(session, "3d6") for _ in range(300)]
    assert min(results) >= 3
    assert max(results) <= 18


def test_single_sided_die_is_constant() -> None:
    session = SessionState(seed=99)
    assert all(roll(session, "1d1+5") == 6 for _ in range(20))


def test_terms_combine_left_to_right_with_sign() -> None:
    expression = parse_dice("1d4+1d6-2")
    assert [(term.sign, term.count, term.sides) for term in expression.dice] == [
        (1, 1, 4),
        (1, 1, 6),
    ]
    assert expression.modifier == -2
    assert expression.minimum == 0
    assert expression.maximum == 8


def test_flat_number_is_valid_notation() -> None:
    assert roll(SessionState(seed=1), "4") == 4


@pytest.mark.parametrize("notation", ["abc", "0d6", "2d0", "", "1d", "d", "1d6+x"])
def test_malformed_notation_raises(notation: str) -> None:
    with pytest.raises(DiceError):
        roll(SessionState(seed=1), notation)


def test_roll_between_rejects_inverted_range() -> None:
    session = SessionState(seed=1)
    with pytest.raises(DiceError):
        roll_between(session, 5, 1)
    assert 1 <= roll_between(session, 1, 5) <= 5
