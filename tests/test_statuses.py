import pytest

from rules.statuses import (
    ac_bonus,
    apply_effect,
    damage_edge,
    make_effect,
    normalize_effect,
    prune_effects,
)


def test_effect_names_are_canonical() -> None:
    assert normalize_effect("  shield of FAITH ") == "Shield of Faith"
    with pytest.raises(ValueError):
        normalize_effect("Haste")


def test_make_effect_uses_default_durations() -> None:
    shield = make_effect("shield", turn=3)
    assert (shield.type, shield.value, shield.expires_at_turn) == ("ac_bonus", 5, 4)
    assert make_effect("Mage Armor", turn=3).expires_at_turn is None
    assert make_effect("Bless", turn=3, duration=1).expires_at_turn == 4


def test_reapplying_replaces_the_effect() -> None:
    effects = apply_effect((), make_effect("Shield of Faith", turn=1))
    effects = apply_effect(effects, make_effect("Shield of Faith", turn=2))
    assert len(effects) == 1
    assert effects[0].expires_at_turn == 5


def test_expired_effects_are_pruned_after_their_last_turn() -> None:
    effects = (make_effect("Shield", turn=1), make_effect("Mage Armor", turn=1))
    assert len(prune_effects(effects, 2)) == 2
    assert [effect.name for effect in prune_effects(effects, 3)] == ["Mage Armor"]


def test_ac_bonuses_do_not_stack() -> None:
    effects = (make_effect("Shield", turn=0), make_effect("Shield of Faith", turn=0))
    assert ac_bonus(effects) == 5
    assert ac_bonus(()) == 0


def test_damage_edge_counts_stunt_edges_only() -> None:
    assert damage_edge((make_effect("Stunt Edge", turn=0), make_effect("Bless", turn=0))) == 2
