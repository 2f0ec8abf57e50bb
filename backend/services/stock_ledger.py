"""
Stock ledger: item catalogue, IN/OUT moves, balances and basket assembly.

Every mutation goes through `run_in_transaction` and writes the move row
and the balance update in the same commit, so that at any observation
point balance == sum(IN) - sum(OUT) for every item.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.clock import utc_now
from core.errors import InsufficientStock, InvalidQuantity, ItemNotFound, RecipeNotDefined, Shortfall
from db.database import READY_COUNTER_ID, BasketsReady, StockBalance, StockItem, StockMove
from db.stock.move import MOVE_IN, MOVE_OUT
from services.recipe import find_shortfalls, load_recipe, recipe_map
from services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# shared locking helpers
# ---------------------------------------------------------------------------

def _ready_counter_stmt():
    return (
        select(BasketsReady)
        .where(BasketsReady.id == READY_COUNTER_ID)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def _create_ready_counter(db: AsyncSession) -> None:
    # Two transactions can both miss the row; the loser's INSERT hits the
    # primary key and only its savepoint is undone.
    try:
        async with db.begin_nested():
            await db.execute(insert(BasketsReady).values(id=READY_COUNTER_ID, qty=0))
    except IntegrityError:
        logger.info("ready counter already created by another transaction")


async def lock_ready_counter(db: AsyncSession) -> BasketsReady:
    counter = (await db.execute(_ready_counter_stmt())).scalar_one_or_none()
    if counter is None:
        await _create_ready_counter(db)
        counter = (await db.execute(_ready_counter_stmt())).scalar_one()
    return counter


async def ready_count(db: AsyncSession) -> int:
    res = await db.execute(select(BasketsReady.qty).where(BasketsReady.id == READY_COUNTER_ID))
    return int(res.scalar_one_or_none() or 0)


def _append_move(
    db: AsyncSession,
    *,
    item_id: UUID,
    direction: str,
    qty: int,
    note: Optional[str],
    user_id: Optional[UUID],
    now: datetime,
) -> StockMove:
    move = StockMove(
        item_id=item_id,
        direction=direction,
        qty=qty,
        note=note,
        created_at=now,
        created_by_user_id=user_id,
    )
    db.add(move)
    return move


# ---------------------------------------------------------------------------
# catalogue
# ---------------------------------------------------------------------------

async def create_item(db: AsyncSession, name: str, unit: str = "un") -> StockItem:
    name = (name or "").strip()
    unit = (unit or "").strip() or "un"
    if not name:
        raise InvalidQuantity("Item name is required")

    async def _work(session: AsyncSession) -> StockItem:
        # opening balance row, so later updates are always a locked UPDATE
        item = StockItem(name=name, unit=unit, is_active=True, created_at=utc_now())
        item.balance = StockBalance(qty=0)
        session.add(item)
        await session.flush()
        logger.info("item created id=%s name=%s", item.id, name)
        return item

    return await run_in_transaction(db, _work, label="create_item")


async def set_item_active(db: AsyncSession, item_id: UUID, active: bool) -> StockItem:
    async def _work(session: AsyncSession) -> StockItem:
        res = await session.execute(
            select(StockItem).options(selectinload(StockItem.balance)).where(StockItem.id == item_id)
        )
        item = res.scalar_one_or_none()
        if item is None:
            raise ItemNotFound(f"Item {item_id} not found")
        item.is_active = bool(active)
        logger.info("item %s active=%s", item_id, item.is_active)
        return item

    return await run_in_transaction(db, _work, label="set_item_active")


async def list_items(db: AsyncSession, include_inactive: bool = False) -> List[StockItem]:
    stmt = (
        select(StockItem)
        .options(selectinload(StockItem.balance))
        .order_by(StockItem.name.asc())
        .execution_options(populate_existing=True)
    )
    if not include_inactive:
        stmt = stmt.where(StockItem.is_active == True)  # noqa: E712
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def list_balances(db: AsyncSession) -> List[Tuple[StockBalance, StockItem]]:
    res = await db.execute(
        select(StockBalance, StockItem)
        .join(StockItem, StockItem.id == StockBalance.item_id)
        .order_by(StockItem.name.asc())
        .execution_options(populate_existing=True)
    )
    return [(b, it) for (b, it) in res.all()]


async def get_balance(db: AsyncSession, item_id: UUID) -> int:
    res = await db.execute(select(StockBalance.qty).where(StockBalance.item_id == item_id))
    qty = res.scalar_one_or_none()
    if qty is None:
        raise ItemNotFound(f"Item {item_id} not found")
    return int(qty)


async def list_moves(db: AsyncSession, limit: int = 30, item_id: Optional[UUID] = None) -> List[StockMove]:
    stmt = (
        select(StockMove)
        .options(selectinload(StockMove.item))
        .order_by(StockMove.created_at.desc(), StockMove.id.desc())
        .limit(limit)
    )
    if item_id is not None:
        stmt = stmt.where(StockMove.item_id == item_id)
    res = await db.execute(stmt)
    return list(res.scalars().all())


# ---------------------------------------------------------------------------
# moves
# ---------------------------------------------------------------------------

async def record_move(
    db: AsyncSession,
    item_id: UUID,
    direction: str,
    qty: int,
    note: Optional[str] = None,
    *,
    user_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Append one IN/OUT move and apply it to the item's balance.

    Returns the new balance. The OUT check reads the balance under lock,
    so it is evaluated at commit time rather than request time.
    """
    direction = (direction or "").strip().upper()
    if direction not in (MOVE_IN, MOVE_OUT):
        raise InvalidQuantity(f"direction must be IN or OUT, got {direction!r}")
    if qty is None or int(qty) <= 0:
        raise InvalidQuantity("qty must be > 0")
    qty = int(qty)
    note = (note or "").strip() or None

    async def _work(session: AsyncSession) -> int:
        item = (
            await session.execute(
                select(StockItem).where(StockItem.id == item_id).execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFound(f"Item {item_id} not found")
        if not item.is_active:
            raise ItemNotFound(f"Item {item.name} is inactive")

        balance = (
            await session.execute(
                select(StockBalance)
                .where(StockBalance.item_id == item_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if balance is None:
            balance = StockBalance(item_id=item_id, qty=0)
            session.add(balance)

        current = int(balance.qty or 0)
        if direction == MOVE_OUT and current < qty:
            raise InsufficientStock(
                [_shortfall(item, current, qty)],
                message=f"OUT of {qty} {item.unit} exceeds balance of {item.name} ({current})",
            )

        _append_move(session, item_id=item_id, direction=direction, qty=qty, note=note,
                     user_id=user_id, now=now or utc_now())
        balance.qty = current + qty if direction == MOVE_IN else current - qty
        await session.flush()
        logger.info("move %s %s item=%s balance=%s", direction, qty, item_id, balance.qty)
        return int(balance.qty)

    return await run_in_transaction(db, _work, label="record_move")


def _shortfall(item: StockItem, have: int, need: int) -> Shortfall:
    return Shortfall(item_id=item.id, name=item.name, unit=item.unit, have=have, need=need)


# ---------------------------------------------------------------------------
# assembly
# ---------------------------------------------------------------------------

async def assemble_baskets(
    db: AsyncSession,
    count: int,
    note: Optional[str] = None,
    *,
    user_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Consume qty_needed * count of every recipe item and add `count` baskets
    to the ready counter, all in one commit. Returns the new ready quantity.
    """
    if count is None or int(count) < 1:
        raise InvalidQuantity("count must be >= 1")
    count = int(count)
    note = (note or "").strip() or f"Assembly of {count} basket(s)"

    async def _work(session: AsyncSession) -> int:
        entries = await load_recipe(session)
        recipe = recipe_map(entries)
        if not recipe:
            raise RecipeNotDefined()

        # lock order: ready counter, then balances by item id
        counter = await lock_ready_counter(session)
        res = await session.execute(
            select(StockBalance)
            .where(StockBalance.item_id.in_(sorted(recipe)))
            .order_by(StockBalance.item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        balances = {b.item_id: b for b in res.scalars().all()}

        items = {e.item_id: e.item for e in entries}
        shortfalls = find_shortfalls(
            recipe, {k: int(b.qty) for k, b in balances.items()}, count, items=items
        )
        if shortfalls:
            raise InsufficientStock(shortfalls)

        stamp = now or utc_now()
        for item_id, need in recipe.items():
            total = need * count
            _append_move(session, item_id=item_id, direction=MOVE_OUT, qty=total, note=note,
                         user_id=user_id, now=stamp)
            balances[item_id].qty = int(balances[item_id].qty) - total

        counter.qty = int(counter.qty) + count
        await session.flush()
        logger.info("assembled %d basket(s); ready=%d", count, counter.qty)
        return int(counter.qty)

    return await run_in_transaction(db, _work, label="assemble_baskets")
