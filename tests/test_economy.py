import pytest

from rules.economy import (
    EconomyError,
    quote_sale_price,
    resolve_trade,
    validate_gold_spend,
)
from rules.intent import TradeIntent
from rules.state import find_item


@pytest.fixture
def trader(catalog):
    return catalog.trader_at("The Iron Gate")


def test_validate_gold_spend() -> None:
    assert validate_gold_spend(30, 25) == 5
    with pytest.raises(EconomyError):
        validate_gold_spend(10, 25)
    with pytest.raises(EconomyError):
        validate_gold_spend(10, -1)


def test_sale_quotes_floor_with_a_minimum_of_one(trader) -> None:
    assert quote_sale_price(trader, "Healing Potion").total_price == 12
    assert quote_sale_price(trader, "torch").total_price == 1
    unlisted = quote_sale_price(trader, "Moon Rock")
    assert unlisted.base_price == 2
    assert unlisted.total_price == 1


def test_buy_spends_gold_and_adds_the_item(catalog, fighter_state) -> None:
    state = fighter_state.model_copy(update={"gold": 30})
    result = resolve_trade(state, catalog, TradeIntent(action="buy", item_name="healing potion"))

    assert result.mode_override == "GENERAL"
    assert result.state.gold == 5
    assert find_item(result.state.inventory, "Healing Potion").type == "potion"
    assert result.facts == [
        "You buy Healing Potion from Marta the Peddler for 25 gold. You now have 5 gold."
    ]
    assert result.state.inventory_change_log[-1] == "Bought Healing Potion for 25 gold"


def test_buy_refuses_when_too_poor(catalog, fighter_state) -> None:
    state = fighter_state.model_copy(update={"gold": 0})
    result = resolve_trade(state, catalog, TradeIntent(action="buy", item_name="Healing Potion"))
    assert result.facts == ["You cannot afford Healing Potion (costs 25 gold, you have 0)."]
    assert result.state == state


def test_bought_armor_is_equipped(catalog, fighter_state) -> None:
    state = fighter_state.model_copy(update={"gold": 60})
    result = resolve_trade(state, catalog, TradeIntent(action="buy", item_name="Chain Shirt"))
    equipped = {item.name for item in result.state.inventory if item.equipped}
    assert "Chain Shirt" in equipped
    assert "Leather" not in equipped
    assert result.state.ac >= state.ac


def test_unlisted_purchase(catalog, fighter_state) -> None:
    result = resolve_trade(fighter_state, catalog, TradeIntent(action="buy", item_name="dragon egg"))
    assert result.facts == ["Marta the Peddler does not sell dragon egg."]


def test_sell_pays_the_buyback_rate(catalog, fighter_state) -> None:
    result = resolve_trade(fighter_state, catalog, TradeIntent(action="sell", item_name="shield"))
    assert result.state.gold == fighter_state.gold + 5
    assert find_item(result.state.inventory, "Shield") is None
    assert result.facts == [f"You sell Shield for 5 gold. You now have {fighter_state.gold + 5} gold."]

    missing = resolve_trade(fighter_state, catalog, TradeIntent(action="sell", item_name="crown"))
    assert missing.facts == ["You do not have crown to sell."]


def test_open_shop_lists_wares(catalog, fighter_state) -> None:
    result = resolve_trade(fighter_state, catalog, TradeIntent(action="openShop"))
    assert result.facts[0].startswith("You approach Marta the Peddler. For sale: Healing Potion (25g)")


def test_trading_without_a_trader(catalog, fighter_state) -> None:
    elsewhere = fighter_state.model_copy(update={"location": "The Catacombs"})
    result = resolve_trade(elsewhere, catalog, TradeIntent(action="buy", item_name="torch"))
    assert result.facts == ["There is no trader here to do business with."]
    assert result.mode_override == "GENERAL"
