import uuid

import pytest
from sqlalchemy import delete, func, select, update

from core.errors import InsufficientStock, InvalidQuantity, ItemNotFound, RecipeNotDefined
from db.database import BasketsReady, StockMove
from services import recipe as recipe_service
from services import stock_ledger


async def _fold_moves(db, item_id) -> int:
    res = await db.execute(
        select(StockMove.direction, func.sum(StockMove.qty))
        .where(StockMove.item_id == item_id)
        .group_by(StockMove.direction)
    )
    sums = {d: int(q) for d, q in res.all()}
    return sums.get("IN", 0) - sums.get("OUT", 0)


async def test_create_item_starts_at_zero(db):
    item = await stock_ledger.create_item(db, "  Flour ", "")
    assert item.name == "Flour"
    assert item.unit == "un"
    assert await stock_ledger.get_balance(db, item.id) == 0


async def test_create_item_requires_name(db):
    with pytest.raises(InvalidQuantity):
        await stock_ledger.create_item(db, "   ")


async def test_in_and_out_update_balance(db):
    item = await stock_ledger.create_item(db, "Rice", "kg")
    assert await stock_ledger.record_move(db, item.id, "IN", 10, "donation") == 10
    assert await stock_ledger.record_move(db, item.id, "out", 4) == 6
    assert await stock_ledger.get_balance(db, item.id) == 6
    assert await _fold_moves(db, item.id) == 6


async def test_out_beyond_balance_is_rejected_and_writes_nothing(db):
    item = await stock_ledger.create_item(db, "Oil")
    await stock_ledger.record_move(db, item.id, "IN", 2)

    with pytest.raises(InsufficientStock) as exc:
        await stock_ledger.record_move(db, item.id, "OUT", 3)

    assert exc.value.item_id == item.id
    assert exc.value.shortfalls[0].have == 2
    assert exc.value.shortfalls[0].need == 3
    assert item.name == "Oil"
    assert await stock_ledger.get_balance(db, item.id) == 2
    moves = await stock_ledger.list_moves(db, item_id=item.id)
    assert len(moves) == 1


@pytest.mark.parametrize("qty", [0, -1])
async def test_non_positive_qty_is_invalid(db, qty):
    item = await stock_ledger.create_item(db, "Sugar")
    with pytest.raises(InvalidQuantity):
        await stock_ledger.record_move(db, item.id, "IN", qty)


async def test_unknown_direction_is_invalid(db):
    item = await stock_ledger.create_item(db, "Sugar")
    with pytest.raises(InvalidQuantity):
        await stock_ledger.record_move(db, item.id, "SIDEWAYS", 1)


async def test_move_on_missing_item(db):
    with pytest.raises(ItemNotFound):
        await stock_ledger.record_move(db, uuid.uuid4(), "IN", 1)


async def test_move_on_inactive_item(db):
    item = await stock_ledger.create_item(db, "Milk")
    await stock_ledger.set_item_active(db, item.id, False)
    with pytest.raises(ItemNotFound):
        await stock_ledger.record_move(db, item.id, "IN", 1)

    active = await stock_ledger.list_items(db)
    assert item.id not in [it.id for it in active]
    everything = await stock_ledger.list_items(db, include_inactive=True)
    assert item.id in [it.id for it in everything]


async def test_list_moves_newest_first(db):
    item = await stock_ledger.create_item(db, "Rice")
    await stock_ledger.record_move(db, item.id, "IN", 5, "first")
    await stock_ledger.record_move(db, item.id, "OUT", 1, "second")
    moves = await stock_ledger.list_moves(db, limit=10)
    assert [m.note for m in moves] == ["second", "first"]
    assert moves[0].signed_qty == -1


async def test_assemble_consumes_recipe_and_fills_ready_counter(db, rice_and_beans):
    rice, beans = rice_and_beans
    assert await recipe_service.max_assemblable(db) == 2

    ready = await stock_ledger.assemble_baskets(db, 2)

    assert ready == 2
    assert await stock_ledger.ready_count(db) == 2
    assert await stock_ledger.get_balance(db, rice.id) == 1
    assert await stock_ledger.get_balance(db, beans.id) == 1
    assert await _fold_moves(db, rice.id) == 1
    assert await _fold_moves(db, beans.id) == 1
    assert await recipe_service.max_assemblable(db) == 0

    out_moves = [m for m in await stock_ledger.list_moves(db) if m.direction == "OUT"]
    assert sorted(m.qty for m in out_moves) == [2, 4]
    assert all(m.note == "Assembly of 2 basket(s)" for m in out_moves)


async def test_assemble_is_all_or_nothing(db, rice_and_beans):
    rice, beans = rice_and_beans

    with pytest.raises(InsufficientStock) as exc:
        await stock_ledger.assemble_baskets(db, 3)

    # rice: need 6 have 5; beans: need 3 have 3 -> only rice is short
    assert [s.item_id for s in exc.value.shortfalls] == [rice.id]
    assert (rice.name, beans.name) == ("Rice", "Beans")
    assert await stock_ledger.ready_count(db) == 0
    assert await stock_ledger.get_balance(db, rice.id) == 5
    assert await stock_ledger.get_balance(db, beans.id) == 3


async def test_assemble_reports_every_short_item(db, rice_and_beans):
    rice, beans = rice_and_beans
    with pytest.raises(InsufficientStock) as exc:
        await stock_ledger.assemble_baskets(db, 4)
    assert {s.item_id for s in exc.value.shortfalls} == {rice.id, beans.id}


async def test_assemble_without_recipe(db):
    with pytest.raises(RecipeNotDefined):
        await stock_ledger.assemble_baskets(db, 1)


async def test_assemble_count_must_be_positive(db, rice_and_beans):
    with pytest.raises(InvalidQuantity):
        await stock_ledger.assemble_baskets(db, 0)


async def test_recipe_entry_zero_removes_item(db, rice_and_beans):
    rice, beans = rice_and_beans
    assert await recipe_service.set_recipe_entry(db, beans.id, 0) is None
    entries = await recipe_service.load_recipe(db)
    assert recipe_service.recipe_map(entries) == {rice.id: 2}


async def test_recipe_entry_update_and_validation(db, rice_and_beans):
    rice, _beans = rice_and_beans
    entry = await recipe_service.set_recipe_entry(db, rice.id, 1)
    assert entry.qty_needed == 1
    assert await recipe_service.max_assemblable(db) == 3

    with pytest.raises(InvalidQuantity):
        await recipe_service.set_recipe_entry(db, rice.id, -2)


async def test_ready_counter_recreated_when_missing(db):
    await db.execute(delete(BasketsReady))
    await db.commit()

    counter = await stock_ledger.lock_ready_counter(db)
    assert counter.qty == 0
    await db.commit()
    assert await stock_ledger.ready_count(db) == 0


async def test_ready_counter_creation_conflict_keeps_existing_row(db):
    await db.execute(update(BasketsReady).values(qty=3))
    await db.commit()

    # another transaction got there first: the insert conflicts and is undone
    await stock_ledger._create_ready_counter(db)
    counter = await stock_ledger.lock_ready_counter(db)
    assert counter.qty == 3
    await db.commit()
