"""
Racing sessions against one database file.

Each coroutine gets its own session (and connection), so the only thing
keeping them consistent is the locking inside the services.
"""

import asyncio

import pytest

from core.config import settings
from core.errors import AlreadyDeliveredThisMonth, InsufficientStock, NoBasketsReady
from services import delivery_gate, stock_ledger


@pytest.fixture(autouse=True)
def utc_calendar(monkeypatch):
    monkeypatch.setattr(settings, "calendar_timezone", "UTC")


async def _race(session_maker, n, op):
    async def one(i):
        async with session_maker() as sess:
            return await op(sess, i)

    return await asyncio.gather(*(one(i) for i in range(n)), return_exceptions=True)


async def test_same_family_gets_one_basket(db, session_maker, rice_and_beans, family_factory):
    await stock_ledger.assemble_baskets(db, 2)
    family = await family_factory()

    results = await _race(session_maker, 5, lambda sess, i: delivery_gate.deliver(sess, family.id))

    ok = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(ok) == 1
    assert all(isinstance(r, AlreadyDeliveredThisMonth) for r in rejected)
    assert await stock_ledger.ready_count(db) == 1


async def test_ready_counter_never_goes_negative(db, session_maker, rice_and_beans, family_factory):
    await stock_ledger.assemble_baskets(db, 2)
    families = [await family_factory(f"Family {i}") for i in range(5)]

    results = await _race(session_maker, 5, lambda sess, i: delivery_gate.deliver(sess, families[i].id))

    ok = [r for r in results if not isinstance(r, Exception)]
    assert len(ok) == 2
    assert all(isinstance(r, NoBasketsReady) for r in results if isinstance(r, Exception))
    assert await stock_ledger.ready_count(db) == 0


async def test_concurrent_assemblies_never_overdraw(db, session_maker, rice_and_beans):
    rice, beans = rice_and_beans

    results = await _race(session_maker, 5, lambda sess, i: stock_ledger.assemble_baskets(sess, 1))

    ok = [r for r in results if not isinstance(r, Exception)]
    assert len(ok) == 2
    assert all(isinstance(r, InsufficientStock) for r in results if isinstance(r, Exception))
    assert await stock_ledger.ready_count(db) == 2
    assert await stock_ledger.get_balance(db, rice.id) == 1
    assert await stock_ledger.get_balance(db, beans.id) == 1


async def test_concurrent_outs_never_overdraw(db, session_maker):
    item = await stock_ledger.create_item(db, "Oil")
    await stock_ledger.record_move(db, item.id, "IN", 3)

    results = await _race(session_maker, 6, lambda sess, i: stock_ledger.record_move(sess, item.id, "OUT", 1))

    ok = [r for r in results if not isinstance(r, Exception)]
    assert len(ok) == 3
    assert sorted(ok) == [0, 1, 2]
    assert await stock_ledger.get_balance(db, item.id) == 0
