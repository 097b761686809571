from conftest import ScriptedRng
from rules.combat import (
    NO_FOE,
    defend,
    end_of_turn,
    monster_turn,
    pick_target,
    player_armor_class,
    run_away,
    use_consumable,
    weapon_attack,
)
from rules.core import SessionState
from rules.state import Entity, add_item, find_item
from rules.statuses import make_effect
from rules.validation import UNARMED, select_attack_weapon


def _session(*values) -> SessionState:
    return SessionState(seed=0, rng=ScriptedRng(values))


def _with_skeleton(state):
    skeleton = Entity(name="Skeleton", status="alive", hp=13, max_hp=13, ac=13)
    return state.model_copy(update={"nearby_entities": state.nearby_entities + (skeleton,)})


def test_pick_target_by_name_then_first_alive(fighter_state) -> None:
    state = _with_skeleton(fighter_state)
    assert pick_target(state, "skeleton") == 1
    assert pick_target(state, None, "strike the giant rat") == 0
    assert pick_target(state, "dragon") == 0
    assert pick_target(state.model_copy(update={"nearby_entities": ()}), "rat") is None


def test_weapon_attack_hit_rolls_weapon_damage(catalog, fighter_state) -> None:
    result = weapon_attack(fighter_state, catalog, _session(15, 4))
    assert result.combat_outcome == "hit"
    assert result.state.nearby_entities[0].hp == 3
    assert result.rolls == {"player_attack": 15, "player_damage": 4}
    assert result.facts == ["You hit Giant Rat with Longsword for 4 damage (roll 15 vs AC 12)."]


def test_weapon_attack_miss_leaves_target(catalog, fighter_state) -> None:
    result = weapon_attack(fighter_state, catalog, _session(5))
    assert result.combat_outcome == "miss"
    assert result.state == fighter_state
    assert result.facts == ["You miss Giant Rat (roll 5 vs AC 12)."]


def test_weapon_attack_kill(catalog, fighter_state) -> None:
    result = weapon_attack(fighter_state, catalog, _session(20, 8))
    assert result.combat_outcome == "kill"
    assert result.state.nearby_entities[0].status == "dead"


def test_weapon_attack_without_foes(catalog, fighter_state) -> None:
    empty = fighter_state.model_copy(update={"nearby_entities": ()})
    assert weapon_attack(empty, catalog, _session()).facts == [NO_FOE]


def test_illegal_weapon_falls_back_to_fists(catalog, wizard_state) -> None:
    chosen = select_attack_weapon(wizard_state, catalog, "Dagger")
    assert (chosen.name, chosen.legal) == ("Dagger", True)

    armed = wizard_state.model_copy(
        update={"inventory": add_item(wizard_state.inventory, "Longsword", "weapon")}
    )
    fallback = select_attack_weapon(armed, catalog, "Longsword")
    assert fallback.name == UNARMED
    assert fallback.legal is False


def test_defend_raises_armor_class_for_the_turn(catalog, fighter_state) -> None:
    guarded = defend(fighter_state).state
    assert guarded.temp_ac_bonus == 4
    assert player_armor_class(guarded, catalog) == player_armor_class(fighter_state, catalog) + 4
    assert end_of_turn(guarded, "defend").temp_ac_bonus == 0


def test_run_away_clears_the_encounter(fighter_state) -> None:
    result = run_away(fighter_state.model_copy(update={"is_combat_active": True}))
    assert result.state.nearby_entities == ()
    assert result.state.is_combat_active is False


def test_monster_waits_until_engaged(catalog, fighter_state) -> None:
    session = _session(20)
    result = monster_turn(fighter_state, catalog, session, core_action="other")
    assert result.facts == []
    assert session.turn_log == []

    assert monster_turn(fighter_state, catalog, session, core_action="run").facts == []


def test_monster_hits_when_attacked(catalog, fighter_state) -> None:
    result = monster_turn(fighter_state, catalog, _session(15, 3), core_action="attack")
    assert result.state.hp == fighter_state.hp - 5
    assert result.rolls == {"monster_attack": 19, "monster_damage": 5}
    assert result.facts == ["Giant Rat hits you for 5 damage (roll 19 vs AC 14)."]


def test_monster_misses_against_armor(catalog, fighter_state) -> None:
    active = fighter_state.model_copy(update={"is_combat_active": True})
    result = monster_turn(active, catalog, _session(1), core_action="other")
    assert result.state.hp == fighter_state.hp
    assert result.facts == ["Giant Rat misses you (roll 5 vs AC 14)."]


def test_pinned_monster_cannot_attack(catalog, fighter_state) -> None:
    rat = fighter_state.nearby_entities[0]
    pinned = rat.model_copy(update={"effects": (make_effect("Mage Hand", turn=0),)})
    state = fighter_state.model_copy(update={"nearby_entities": (pinned,)})
    session = _session(20)
    result = monster_turn(state, catalog, session, core_action="attack")
    assert "cannot attack" in result.facts[0]
    assert session.turn_log == []


def test_bandage_and_missing_potion(fighter_state) -> None:
    hurt = fighter_state.model_copy(update={"hp": 4})
    result = use_consumable(hurt, "bandage", _session())
    assert result.state.hp == 10
    assert find_item(result.state.inventory, "Bandage").quantity == 1
    assert result.facts == ["You apply a bandage, recovering 6 HP."]

    missing = use_consumable(hurt, "potion", _session())
    assert missing.state == hurt
    assert missing.facts == ["You fumble for a potion, but you have none left."]


def test_potion_heal_is_capped_at_max(fighter_state) -> None:
    state = fighter_state.model_copy(
        update={"hp": 10, "inventory": add_item(fighter_state.inventory, "Healing Potion", "potion")}
    )
    result = use_consumable(state, "potion", _session(4, 4))
    assert result.state.hp == state.max_hp
    assert find_item(result.state.inventory, "Healing Potion") is None


def test_end_of_turn_tracks_engagement(fighter_state) -> None:
    assert end_of_turn(fighter_state, "attack").is_combat_active is True
    assert end_of_turn(fighter_state, "other").is_combat_active is False
    cleared = fighter_state.model_copy(update={"nearby_entities": ()})
    assert end_of_turn(cleared, "attack").is_combat_active is False
