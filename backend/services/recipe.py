"""
Basket recipe: which items, and how many of each, go into one basket.

The arithmetic helpers are pure so the same rules serve the display query
(`max_assemblable`) and the locked check inside `assemble_baskets`.
"""

import logging
from typing import Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.errors import InvalidQuantity, ItemNotFound, Shortfall
from db.database import RecipeEntry, StockBalance, StockItem
from services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


def compute_max_assemblable(recipe: Mapping[UUID, int], balances: Mapping[UUID, int]) -> int:
    """min(floor(balance / qty_needed)) over the recipe; 0 for an empty recipe."""
    best: Optional[int] = None
    for item_id, need in recipe.items():
        if need <= 0:
            continue
        have = max(int(balances.get(item_id, 0)), 0)
        possible = have // int(need)
        best = possible if best is None else min(best, possible)
    return best or 0


def find_shortfalls(
    recipe: Mapping[UUID, int],
    balances: Mapping[UUID, int],
    count: int,
    items: Optional[Mapping[UUID, StockItem]] = None,
) -> List[Shortfall]:
    """Recipe items whose balance cannot cover `count` baskets, in recipe order."""
    items = items or {}
    out: List[Shortfall] = []
    for item_id, need in recipe.items():
        if need <= 0:
            continue
        total = int(need) * count
        have = int(balances.get(item_id, 0))
        if have < total:
            it = items.get(item_id)
            out.append(
                Shortfall(
                    item_id=item_id,
                    name=it.name if it else str(item_id),
                    unit=it.unit if it else "un",
                    have=have,
                    need=total,
                )
            )
    return out


async def load_recipe(db: AsyncSession) -> List[RecipeEntry]:
    res = await db.execute(
        select(RecipeEntry)
        .options(selectinload(RecipeEntry.item))
        .order_by(RecipeEntry.item_id)
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())


def recipe_map(entries: List[RecipeEntry]) -> Dict[UUID, int]:
    return {e.item_id: int(e.qty_needed) for e in entries if int(e.qty_needed) > 0}


async def set_recipe_entry(db: AsyncSession, item_id: UUID, qty_needed: int) -> Optional[RecipeEntry]:
    """
    Upsert the quantity of `item_id` per basket.

    qty_needed == 0 removes the item from the recipe and returns None.
    """
    if qty_needed < 0:
        raise InvalidQuantity("qty_needed must be >= 0")

    async def _work(session: AsyncSession) -> Optional[RecipeEntry]:
        item = (
            await session.execute(
                select(StockItem)
                .options(selectinload(StockItem.recipe_entry))
                .where(StockItem.id == item_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFound(f"Item {item_id} not found")

        entry = (
            await session.execute(
                select(RecipeEntry)
                .options(selectinload(RecipeEntry.item))
                .where(RecipeEntry.item_id == item_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()

        if qty_needed == 0:
            if entry is not None:
                await session.delete(entry)
            logger.info("recipe entry removed item=%s", item_id)
            return None

        if entry is None:
            entry = RecipeEntry(item=item, qty_needed=qty_needed)
            session.add(entry)
        else:
            entry.qty_needed = qty_needed
        await session.flush()
        logger.info("recipe entry set item=%s qty_needed=%s", item_id, qty_needed)
        return entry

    return await run_in_transaction(db, _work, label="set_recipe_entry")


async def max_assemblable(db: AsyncSession) -> int:
    """Display-only read; assembly re-checks against locked balances."""
    entries = await load_recipe(db)
    if not entries:
        return 0
    recipe = recipe_map(entries)
    res = await db.execute(
        select(StockBalance.item_id, StockBalance.qty).where(StockBalance.item_id.in_(list(recipe)))
    )
    balances = {item_id: int(qty) for (item_id, qty) in res.all()}
    return compute_max_assemblable(recipe, balances)
