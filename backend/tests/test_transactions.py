import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from core.config import settings
from core.errors import NoBasketsReady, OperationFailed
from db.database import StockItem
from services import stock_ledger
from services.transactions import is_transient, run_in_transaction


class _PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"pg error {sqlstate}")
        self.sqlstate = sqlstate


def _locked():
    return OperationalError("UPDATE baskets_ready", {}, Exception("database is locked"))


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(settings, "txn_retry_backoff_seconds", 0)


@pytest.mark.parametrize(
    "exc, expected",
    [
        (_locked(), True),
        (OperationalError("x", {}, _PgError("40001")), True),
        (OperationalError("x", {}, _PgError("40P01")), True),
        (OperationalError("x", {}, _PgError("55P03")), True),
        (IntegrityError("x", {}, _PgError("23505")), False),
        (OperationalError("x", {}, Exception("no such table: families")), False),
    ],
)
def test_is_transient(exc, expected):
    assert is_transient(exc) is expected


async def test_transient_conflict_is_retried(db):
    calls = []

    async def work(session):
        calls.append(1)
        if len(calls) < 3:
            raise _locked()
        return "done"

    assert await run_in_transaction(db, work, label="test", max_attempts=3) == "done"
    assert len(calls) == 3


async def test_retry_budget_exhausted(db):
    calls = []

    async def work(session):
        calls.append(1)
        raise _locked()

    with pytest.raises(OperationFailed) as exc:
        await run_in_transaction(db, work, label="test", max_attempts=2)
    assert len(calls) == 2
    assert exc.value.status_code == 503


async def test_business_errors_are_not_retried(db):
    calls = []

    async def work(session):
        calls.append(1)
        raise NoBasketsReady("none")

    with pytest.raises(NoBasketsReady):
        await run_in_transaction(db, work, label="test", max_attempts=3)
    assert len(calls) == 1


async def test_permanent_store_errors_propagate(db):
    async def work(session):
        raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    with pytest.raises(IntegrityError):
        await run_in_transaction(db, work, label="test", max_attempts=3)


async def _reject(session):
    raise NoBasketsReady("none")


async def _noop(session):
    return None


async def _is_active(session_maker, item_id) -> bool:
    async with session_maker() as other:
        res = await other.execute(select(StockItem.is_active).where(StockItem.id == item_id))
        return res.scalar_one()


async def test_rejection_keeps_loaded_objects_usable(db):
    item = await stock_ledger.create_item(db, "Tea")

    with pytest.raises(NoBasketsReady):
        await run_in_transaction(db, _reject, label="test")

    assert item.name == "Tea"
    assert not db.in_transaction()


async def test_caller_changes_commit_with_the_unit(db, session_maker):
    item = await stock_ledger.create_item(db, "Tea")
    item.is_active = False

    await run_in_transaction(db, _noop, label="test")

    assert await _is_active(session_maker, item.id) is False


async def test_rejection_does_not_commit_caller_changes(db, session_maker):
    item = await stock_ledger.create_item(db, "Tea")
    item_id = item.id
    item.is_active = False

    with pytest.raises(NoBasketsReady):
        await run_in_transaction(db, _reject, label="test")

    assert db.in_transaction()
    await db.rollback()
    assert await _is_active(session_maker, item_id) is True
