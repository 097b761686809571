from datetime import datetime, timezone

from conftest import ScriptedRng
from rules.combat import NOTHING_LEFT
from rules.narration import NOTHING_CHANGED, CannedNarrator
from rules.saves import hydrate_state, serialize_state
from rules.scenes import THREAT_REFUSAL
from rules.state import add_item, find_item
from rules.turn import resolve_turn, sheet_summary

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


class EchoNarrator:
    def __init__(self):
        self.requests = []

    def generate_flavor(self, request):
        self.requests.append(request)
        return f"Flavor for {request.mode}."


def _rat_at(state, hp: int):
    rat = state.nearby_entities[0].model_copy(update={"hp": hp})
    return state.model_copy(update={"nearby_entities": (rat,)})


def test_attack_wounds_the_rat(catalog, fighter_state) -> None:
    result = resolve_turn(
        fighter_state, "attack rat", catalog=catalog, rng=ScriptedRng([15, 4]), now=NOW
    )

    state = result.new_state
    assert state.nearby_entities[0].hp == 3
    assert state.hp == fighter_state.hp
    assert result.log_entry.mode == "COMBAT_HIT"
    assert state.last_rolls.player_attack == 15
    assert state.last_rolls.player_damage == 4
    assert state.last_rolls.monster_attack == 5
    assert state.is_combat_active is True
    assert state.turn_counter == 1
    assert result.log_entry.id == "log-2-1"
    assert result.log_entry.created_at == NOW.isoformat()


def test_killing_blow_awards_xp_and_clears_the_gate(catalog, fighter_state) -> None:
    wounded = _rat_at(fighter_state, 3)
    result = resolve_turn(wounded, "attack rat", catalog=catalog, rng=ScriptedRng([15, 4]))

    state = result.new_state
    assert state.nearby_entities[0].status == "dead"
    assert state.xp == 85
    assert "gate_cleared" in state.story_flags
    assert result.log_entry.mode == "COMBAT_KILL"
    assert NOTHING_LEFT in result.facts
    assert "You gain 35 XP for defeating Giant Rat." in result.facts
    assert state.is_combat_active is False


def test_buying_without_gold_is_narrated(catalog, fighter_state) -> None:
    result = resolve_turn(fighter_state, "buy healing potion", catalog=catalog, rng=ScriptedRng())

    assert "You cannot afford Healing Potion (costs 25 gold, you have 0)." in result.facts
    assert result.log_entry.mode == "GENERAL"
    assert result.new_state.inventory == fighter_state.inventory
    assert result.new_state.gold == 0


def _quiet_gate(state, gold: int):
    rat = state.nearby_entities[0].model_copy(update={"hp": 0, "status": "dead"})
    return state.model_copy(
        update={"nearby_entities": (rat,), "gold": gold, "story_flags": ("gate_cleared",)}
    )


def test_buying_a_weapon_trades_instead_of_attacking(catalog, fighter_state) -> None:
    result = resolve_turn(
        _quiet_gate(fighter_state, 50), "buy shortsword", catalog=catalog, rng=ScriptedRng()
    )

    state = result.new_state
    assert "You buy Shortsword from Marta the Peddler for 10 gold. You now have 40 gold." in result.facts
    assert state.gold == 40
    assert find_item(state.inventory, "Shortsword").equipped is True
    assert result.log_entry.mode == "GENERAL"


def test_selling_a_weapon_trades_instead_of_attacking(catalog, fighter_state) -> None:
    result = resolve_turn(
        _quiet_gate(fighter_state, 50), "sell longsword", catalog=catalog, rng=ScriptedRng()
    )

    state = result.new_state
    assert "You sell Longsword for 1 gold. You now have 51 gold." in result.facts
    assert state.gold == 51
    assert find_item(state.inventory, "Longsword") is None


def test_cannot_leave_while_the_rat_lives(catalog, fighter_state) -> None:
    keyed = fighter_state.model_copy(
        update={"inventory": add_item(fighter_state.inventory, "Iron Key", "key")}
    )
    result = resolve_turn(keyed, "open the gate", catalog=catalog, rng=ScriptedRng([20, 4]))

    assert THREAT_REFUSAL in result.facts
    assert result.new_state.location == fighter_state.location
    assert result.new_state.hp == fighter_state.hp
    assert result.log_entry.mode == "GENERAL"


def test_leaving_through_the_gate(catalog, fighter_state) -> None:
    rat = fighter_state.nearby_entities[0].model_copy(update={"hp": 0, "status": "dead"})
    ready = fighter_state.model_copy(
        update={
            "nearby_entities": (rat,),
            "inventory": add_item(fighter_state.inventory, "Iron Key", "key"),
        }
    )
    result = resolve_turn(ready, "open the gate", catalog=catalog, rng=ScriptedRng())

    state = result.new_state
    assert state.location == "The Outer Courtyard"
    assert find_item(state.inventory, "Iron Key") is None
    assert result.log_entry.mode == "ROOM_INTRO"
    assert state.xp == 0
    assert any(fact.startswith("You are in The Outer Courtyard.") for fact in result.facts)


def test_save_round_trip_after_a_turn(catalog, fighter_state) -> None:
    played = resolve_turn(fighter_state, "attack rat", catalog=catalog, rng=ScriptedRng([15, 4]))
    restored = hydrate_state(serialize_state(played.new_state), catalog)
    assert restored.nearby_entities == played.new_state.nearby_entities
    assert restored.log == played.new_state.log
    assert restored.xp == played.new_state.xp


def test_looking_twice_reports_nothing_changed(catalog, fighter_state) -> None:
    first = resolve_turn(fighter_state, "look around", catalog=catalog)
    second = resolve_turn(first.new_state, "look around", catalog=catalog)

    assert first.log_entry.mode == "ROOM_INTRO"
    assert second.facts == first.facts
    assert second.log_entry.summary == NOTHING_CHANGED
    assert second.log_entry.flavor is None


def test_same_seed_same_turn(catalog, fighter_state) -> None:
    first = resolve_turn(fighter_state, "attack the rat", catalog=catalog, now=NOW)
    second = resolve_turn(fighter_state, "attack the rat", catalog=catalog, now=NOW)
    assert first.new_state == second.new_state
    assert first.rolls == second.rolls


def test_input_state_is_untouched(catalog, fighter_state) -> None:
    before = serialize_state(fighter_state)
    resolve_turn(fighter_state, "attack rat", catalog=catalog, rng=ScriptedRng([20, 8]))
    assert serialize_state(fighter_state) == before


def test_the_dead_stay_dead(catalog, fighter_state) -> None:
    killed = resolve_turn(
        _rat_at(fighter_state, 3), "attack rat", catalog=catalog, rng=ScriptedRng([15, 4])
    ).new_state
    later = resolve_turn(killed, "attack rat", catalog=catalog, rng=ScriptedRng([20, 8]))
    rat = later.new_state.nearby_entities[0]
    assert rat.status == "dead"
    assert rat.hp == 0


def test_hp_never_drops_below_zero(catalog, fighter_state) -> None:
    fragile = fighter_state.model_copy(update={"hp": 1, "is_combat_active": True})
    result = resolve_turn(fragile, "defend", catalog=catalog, rng=ScriptedRng([20, 4]))
    assert result.new_state.hp == 0
    assert result.new_state.is_combat_active is False


def test_narrator_flavor_is_kept_beside_the_facts(catalog, fighter_state) -> None:
    narrator = EchoNarrator()
    result = resolve_turn(
        fighter_state, "attack rat", catalog=catalog, rng=ScriptedRng([15, 4]), narrator=narrator
    )

    assert result.log_entry.flavor == "Flavor for COMBAT_HIT."
    assert result.log_entry.summary == "\n".join(result.facts)
    assert result.new_state.narrative_history[-1] == (
        f"{result.log_entry.summary}\n\nFlavor for COMBAT_HIT."
    )
    (request,) = narrator.requests
    assert request.enemy_name == "Giant Rat"
    assert request.dealt_damage is True
    assert request.facts == tuple(result.facts)


def test_character_sheet_turn(catalog, fighter_state) -> None:
    narrator = CannedNarrator.from_catalog(catalog)
    result = resolve_turn(fighter_state, "check my character sheet", catalog=catalog, narrator=narrator)

    assert result.log_entry.mode == "SHEET"
    assert result.log_entry.flavor is None
    assert result.facts[0] == sheet_summary(fighter_state)
    assert result.new_state.hp == fighter_state.hp


def test_sheet_sections(wizard_state) -> None:
    assert sheet_summary(wizard_state, "skills") == "Skills: Arcana, History, Investigation."
    assert "Slots: level 1: 2/2." in sheet_summary(wizard_state, "abilities")
    inventory = sheet_summary(wizard_state, "inventory")
    assert inventory.startswith("Inventory: 1x Dagger (equipped)")
    assert "Equipped weapon: Dagger." in inventory


def test_empty_action_still_resolves(catalog, fighter_state) -> None:
    result = resolve_turn(fighter_state, "   ", catalog=catalog, rng=ScriptedRng())
    assert result.facts[0] == "You act."
    assert result.log_entry.mode == "GENERAL"


def test_looting_with_nothing_dead(catalog, fighter_state) -> None:
    result = resolve_turn(fighter_state, "loot the body", catalog=catalog, rng=ScriptedRng())
    assert "There is nothing here to loot." in result.facts
    assert result.log_entry.mode == "SEARCH_EMPTY"


def test_finding_the_key_scares_the_rat(catalog, fighter_state) -> None:
    result = resolve_turn(fighter_state, "search for the glint", catalog=catalog, rng=ScriptedRng())
    state = result.new_state
    assert find_item(state.inventory, "Iron Key") is not None
    assert state.nearby_entities[0].status == "fleeing"
    assert result.log_entry.mode == "SEARCH_FOUND"
