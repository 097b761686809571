from __future__ import annotations

import math
from dataclasses import dataclass

from rules.intent import TradeIntent
from rules.reference import ReferenceCatalog, normalize_name
from rules.schemas import TraderDef, TraderListing
from rules.state import GameState, Resolution, add_item, record_inventory_change, remove_item
from rules.validation import armor_class_from_inventory, equip_item, is_armor_allowed

DEFAULT_BASE_PRICE = 2


class EconomyError(ValueError):
    pass


@dataclass(frozen=True)
class SaleQuote:
    base_price: int
    buyback_rate: float
    total_price: int


def quote_sale_price(trader: TraderDef, item_name: str) -> SaleQuote:
    listing = find_listing(trader, item_name)
    base_price = listing.price if listing else DEFAULT_BASE_PRICE
    total_price = max(1, math.floor(base_price * trader.buyback_rate))
    return SaleQuote(base_price=base_price, buyback_rate=trader.buyback_rate, total_price=total_price)


def validate_gold_spend(gold: int, cost: int) -> int:
    if cost < 0:
        raise EconomyError("Cost must be non-negative.")
    if gold < cost:
        raise EconomyError("Insufficient gold.")
    return gold - cost


def find_listing(trader: TraderDef, item_name: str) -> TraderListing | None:
    key = normalize_name(item_name)
    for listing in trader.inventory:
        if normalize_name(listing.item) == key:
            return listing
    return None


def _narrated(text: str, state: GameState) -> Resolution:
    return Resolution(state=state, facts=[text], mode_override="GENERAL")


def open_shop(state: GameState, trader: TraderDef) -> Resolution:
    wares = ", ".join(f"{listing.item} ({listing.price}g)" for listing in trader.inventory)
    return _narrated(
        f"You approach {trader.name}. For sale: {wares}. You have {state.gold} gold.", state
    )


def buy_item(
    state: GameState,
    catalog: ReferenceCatalog,
    trader: TraderDef,
    item_name: str,
) -> Resolution:
    listing = find_listing(trader, item_name)
    if listing is None:
        return _narrated(f"{trader.name} does not sell {item_name}.", state)
    display_name = catalog.display_name(listing.item)
    try:
        gold = validate_gold_spend(state.gold, listing.price)
    except EconomyError:
        return _narrated(
            f"You cannot afford {display_name} (costs {listing.price} gold, you have {state.gold}).",
            state,
        )

    item_type = catalog.item_type(listing.item) or "misc"
    inventory = add_item(state.inventory, display_name, item_type, turn=state.turn_counter)
    wearable = item_type == "armor" and is_armor_allowed(
        catalog, state.character.class_name, display_name
    )
    if item_type == "weapon" or wearable:
        inventory = equip_item(inventory, display_name, catalog)
    state = state.model_copy(update={"gold": gold, "inventory": inventory})
    if item_type == "armor":
        state = state.model_copy(
            update={"ac": max(state.ac, armor_class_from_inventory(state, catalog))}
        )
    state = record_inventory_change(state, f"Bought {display_name} for {listing.price} gold")
    return _narrated(
        f"You buy {display_name} from {trader.name} for {listing.price} gold. "
        f"You now have {state.gold} gold.",
        state,
    )


def sell_item(state: GameState, trader: TraderDef, item_name: str) -> Resolution:
    key = normalize_name(item_name)
    item = next(
        (entry for entry in state.inventory if normalize_name(entry.name) == key and entry.quantity > 0),
        None,
    )
    if item is None:
        return _narrated(f"You do not have {item_name} to sell.", state)

    quote = quote_sale_price(trader, item.name)
    state = state.model_copy(
        update={
            "gold": state.gold + quote.total_price,
            "inventory": remove_item(state.inventory, item.name),
        }
    )
    state = record_inventory_change(state, f"Sold {item.name} for {quote.total_price} gold")
    return _narrated(
        f"You sell {item.name} for {quote.total_price} gold. You now have {state.gold} gold.",
        state,
    )


def resolve_trade(
    state: GameState,
    catalog: ReferenceCatalog,
    trade: TradeIntent,
) -> Resolution:
    """Trade with the trader posted at the current location.

    Every outcome, including refusals, narrates as GENERAL.
    """
    trader = catalog.trader_at(state.location)
    if trader is None:
        return _narrated("There is no trader here to do business with.", state)
    if trade.action == "openShop":
        return open_shop(state, trader)
    if trade.action == "buy" and trade.item_name:
        return buy_item(state, catalog, trader, trade.item_name)
    if trade.action == "sell" and trade.item_name:
        return sell_item(state, trader, trade.item_name)
    return _narrated("You fail to complete any trade.", state)
