from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from rules.core import SessionState, roll, roll_between
from rules.reference import ReferenceCatalog
from rules.state import GameState, add_item, record_inventory_change

logger = logging.getLogger(__name__)

LOOTED_SUFFIX = " (looted)"
FALLBACK_GOLD = "1d5"
COIN_ORDER = ("pp", "gp", "sp", "cp")


@dataclass(frozen=True)
class LootDrop:
    coins: dict[str, int]
    items: tuple[tuple[str, int], ...]

    @property
    def gold(self) -> int:
        return bank_coins(self.coins)

    @property
    def is_empty(self) -> bool:
        return self.gold <= 0 and not self.items


def bank_coins(coins: Mapping[str, int]) -> int:
    """Whole gold value of a coin purse; smaller change is lost."""
    return (
        coins.get("gp", 0)
        + 10 * coins.get("pp", 0)
        + coins.get("sp", 0) // 10
        + coins.get("cp", 0) // 100
    )


def roll_loot(catalog: ReferenceCatalog, table_id: str, session: SessionState) -> LootDrop:
    table = catalog.loot_table(table_id)
    coins = {
        denomination: max(0, roll(session, dice, label=f"{table.id} {denomination}"))
        for denomination, dice in table.coins.items()
    }

    items: tuple[tuple[str, int], ...] = ()
    if table.items:
        total_weight = sum(entry.weight for entry in table.items)
        pick = roll_between(session, 1, total_weight, label=f"{table.id} item")
        running = 0
        for entry in table.items:
            running += entry.weight
            if pick <= running:
                quantity = max(1, roll(session, entry.qty, label=f"{entry.item} quantity"))
                items = ((catalog.display_name(entry.item), quantity),)
                break
    return LootDrop(coins=coins, items=items)


def describe_items(items: tuple[tuple[str, int], ...]) -> str:
    return ", ".join(f"{quantity}x {name}" for name, quantity in items)


def describe_coins(coins: Mapping[str, int]) -> str:
    return ", ".join(
        f"{coins[denomination]} {denomination}"
        for denomination in COIN_ORDER
        if coins.get(denomination, 0) > 0
    )


def grant_items(
    state: GameState,
    catalog: ReferenceCatalog,
    items: tuple[tuple[str, int], ...],
) -> GameState:
    inventory = state.inventory
    for name, quantity in items:
        item_type = catalog.item_type(name) or "misc"
        inventory = add_item(
            inventory, name, item_type, quantity=quantity, turn=state.turn_counter
        )
    return state.model_copy(update={"inventory": inventory})


def apply_drop(
    state: GameState,
    catalog: ReferenceCatalog,
    drop: LootDrop,
    *,
    source: str,
) -> tuple[GameState, list[str]]:
    """Bank a rolled drop into the state and report it as scene loot."""
    messages: list[str] = []
    coin_text = describe_coins(drop.coins)
    if coin_text:
        state = state.model_copy(update={"gold": state.gold + drop.gold})
        messages.append(f"You recover {coin_text}.")
    if drop.items:
        state = grant_items(state, catalog, drop.items)
        item_text = describe_items(drop.items)
        state = record_inventory_change(state, f"{source}: {item_text}")
        messages.append(f"Loot found: {item_text}.")
    return state, messages


def find_unlooted_corpse(state: GameState) -> int | None:
    for index, entity in enumerate(state.nearby_entities):
        if entity.status == "dead" and "looted" not in entity.name.lower():
            return index
    return None


def loot_corpse(
    state: GameState,
    catalog: ReferenceCatalog,
    session: SessionState,
) -> tuple[GameState, list[str], bool]:
    """Loot the first dead, unlooted corpse.

    The corpse is renamed with a "(looted)" marker so a second attempt finds
    nothing. Returns the new state, the messages and whether anything was
    gained.
    """
    index = find_unlooted_corpse(state)
    if index is None:
        return state, [], False

    corpse = state.nearby_entities[index]
    monster = catalog.find_monster(corpse.name)
    if monster is not None and monster.loot_table:
        drop = roll_loot(catalog, monster.loot_table, session)
    else:
        logger.debug("No loot table for %s; using remnant drop", corpse.name)
        drop = LootDrop(
            coins={"gp": roll(session, FALLBACK_GOLD, label="corpse gold")},
            items=((f"{corpse.name} Remnant", 1),),
        )

    gold = drop.gold
    state = grant_items(state, catalog, drop.items)
    entities = list(state.nearby_entities)
    entities[index] = corpse.model_copy(update={"name": f"{corpse.name}{LOOTED_SUFFIX}"})
    state = state.model_copy(
        update={"gold": state.gold + gold, "nearby_entities": tuple(entities)}
    )

    item_text = describe_items(drop.items)
    change = f"Looted {corpse.name}: +{gold} gold"
    if item_text:
        change = f"{change}, +{item_text}"
    state = record_inventory_change(state, change)

    parts = []
    if gold > 0:
        parts.append(f"{gold} gold")
    if item_text:
        parts.append(item_text)
    if parts:
        message = f"You loot the {corpse.name}, gaining {' and '.join(parts)}."
    else:
        message = f"You loot the {corpse.name}."
    return state, [message], not drop.is_empty
