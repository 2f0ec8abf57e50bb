from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, current_active_user
from db.database import StockItem as StockItemModel, StockMove as StockMoveModel, get_async_session
from db.users import User
from schemas.stock import (
    AssembleRequest,
    AssembleResult,
    BasketSummary,
    RecipeEntryRead,
    RecipeEntryUpdate,
    ShortfallRead,
    StockBalanceRead,
    StockItemCreate,
    StockItemRead,
    StockItemUpdate,
    StockMoveCreate,
    StockMoveRead,
    StockMoveResult,
)
from services import recipe as recipe_service
from services import stock_ledger

router = APIRouter()


def _item_out(it: StockItemModel) -> StockItemRead:
    return StockItemRead(
        id=it.id,
        name=it.name,
        unit=it.unit,
        is_active=bool(it.is_active),
        balance=int(it.balance.qty) if it.balance is not None else 0,
    )


def _move_out(mv: StockMoveModel) -> StockMoveRead:
    return StockMoveRead(
        id=mv.id,
        item_id=mv.item_id,
        item_name=mv.item.name if mv.item is not None else None,
        direction=mv.direction,
        qty=int(mv.qty),
        note=mv.note,
        created_at=mv.created_at,
        created_by_user_id=mv.created_by_user_id,
    )


@router.get("/items", response_model=List[StockItemRead])
async def list_items(
    include_inactive: bool = False,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Catalogue with current balances."""
    items = await stock_ledger.list_items(db, include_inactive=include_inactive)
    return [_item_out(it) for it in items]


@router.post("/items", response_model=StockItemRead, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: StockItemCreate,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    item = await stock_ledger.create_item(db, payload.name, payload.unit)
    return _item_out(item)


@router.patch("/items/{item_id}", response_model=StockItemRead)
async def update_item(
    item_id: UUID,
    payload: StockItemUpdate,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    item = await stock_ledger.set_item_active(db, item_id, payload.is_active)
    return _item_out(item)


@router.delete("/items/{item_id}", response_model=StockItemRead)
async def deactivate_item(
    item_id: UUID,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    """Soft delete: items referenced by moves are never removed."""
    item = await stock_ledger.set_item_active(db, item_id, False)
    return _item_out(item)


@router.get("/balances", response_model=List[StockBalanceRead])
async def list_balances(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await stock_ledger.list_balances(db)
    return [
        StockBalanceRead(item_id=it.id, name=it.name, unit=it.unit, is_active=bool(it.is_active), qty=int(b.qty))
        for (b, it) in rows
    ]


@router.get("/moves", response_model=List[StockMoveRead])
async def list_moves(
    limit: int = Query(30, ge=1, le=500),
    item_id: Optional[UUID] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    moves = await stock_ledger.list_moves(db, limit=limit, item_id=item_id)
    return [_move_out(mv) for mv in moves]


@router.post("/moves", response_model=StockMoveResult, status_code=status.HTTP_201_CREATED)
async def record_move(
    payload: StockMoveCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    balance = await stock_ledger.record_move(
        db, payload.item_id, payload.direction, payload.qty, payload.note, user_id=user.id
    )
    return StockMoveResult(item_id=payload.item_id, balance=balance)


@router.get("/recipe", response_model=List[RecipeEntryRead])
async def get_recipe(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    entries = await recipe_service.load_recipe(db)
    return [
        RecipeEntryRead(item_id=e.item_id, name=e.item.name, unit=e.item.unit, qty_needed=int(e.qty_needed))
        for e in entries
    ]


@router.put("/recipe/{item_id}", response_model=Optional[RecipeEntryRead])
async def set_recipe_entry(
    item_id: UUID,
    payload: RecipeEntryUpdate,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    """Set how many of an item go into one basket; 0 removes it from the recipe."""
    entry = await recipe_service.set_recipe_entry(db, item_id, payload.qty_needed)
    if entry is None:
        return None
    return RecipeEntryRead(
        item_id=entry.item_id, name=entry.item.name, unit=entry.item.unit, qty_needed=int(entry.qty_needed)
    )


@router.get("/baskets", response_model=BasketSummary)
async def basket_summary(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Ready baskets, how many more the stock allows, and what is missing for one more."""
    entries = await recipe_service.load_recipe(db)
    recipe = recipe_service.recipe_map(entries)
    balances = {b.item_id: int(b.qty) for (b, _it) in await stock_ledger.list_balances(db)}
    missing = recipe_service.find_shortfalls(recipe, balances, 1, items={e.item_id: e.item for e in entries})
    return BasketSummary(
        ready_qty=await stock_ledger.ready_count(db),
        max_assemblable=recipe_service.compute_max_assemblable(recipe, balances),
        missing_for_one=[
            ShortfallRead(item_id=s.item_id, name=s.name, unit=s.unit, have=s.have, need=s.need) for s in missing
        ],
    )


@router.post("/baskets/assemble", response_model=AssembleResult, status_code=status.HTTP_201_CREATED)
async def assemble_baskets(
    payload: AssembleRequest,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    ready_qty = await stock_ledger.assemble_baskets(db, payload.count, payload.note, user_id=user.id)
    return AssembleResult(assembled=payload.count, ready_qty=ready_qty)


@router.get("/baskets/max-assemblable", response_model=int)
async def max_assemblable(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    return await recipe_service.max_assemblable(db)
