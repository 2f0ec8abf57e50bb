import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import BasketError, OperationFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}
_RETRYABLE_SQLITE_MESSAGES = ("database is locked", "database table is locked")


def is_transient(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in _RETRYABLE_SQLSTATES:
        return True
    msg = str(orig or exc).lower()
    return any(m in msg for m in _RETRYABLE_SQLITE_MESSAGES)


def _has_pending(db: AsyncSession) -> bool:
    return bool(db.new or db.dirty or db.deleted)


async def run_in_transaction(
    db: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    label: str = "operation",
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run `work(db)` inside a savepoint and commit it as one unit.

    A business-rule error rolls back the savepoint only, so objects the
    caller already holds stay loaded; it then propagates as-is. Transient
    store conflicts roll back the whole transaction and are retried; once
    the attempt budget is spent they are reported as OperationFailed.

    A transaction the session already holds (e.g. autobegun by the auth
    dependency) is committed first when no unflushed changes are pending.
    If the caller did leave unflushed changes, they are flushed ahead of
    the savepoint and commit together with the unit; a rejection leaves
    them pending in the caller's transaction.
    """
    attempts = max_attempts or settings.txn_max_attempts

    pending = _has_pending(db)
    if db.in_transaction() and not pending:
        await db.commit()
    owns_outer = not db.in_transaction() and not pending

    for attempt in range(1, attempts + 1):
        try:
            savepoint = await db.begin_nested()
            try:
                result = await work(db)
            except BasketError:
                await savepoint.rollback()
                if owns_outer:
                    await db.commit()
                raise
            await savepoint.commit()
            await db.commit()
            return result
        except BasketError as e:
            logger.info("%s rejected: %s %s", label, e.code, e.message)
            raise
        except DBAPIError as e:
            await db.rollback()
            owns_outer = True
            if not is_transient(e):
                logger.exception("%s failed", label)
                raise
            if attempt >= attempts:
                logger.error("%s gave up after %d attempts: %s", label, attempt, e.orig)
                raise OperationFailed(f"{label} could not complete, please retry") from e
            logger.warning("%s conflicted (attempt %d/%d): %s", label, attempt, attempts, e.orig)
            await asyncio.sleep(settings.txn_retry_backoff_seconds * attempt)
        except Exception:
            await db.rollback()
            raise

    raise OperationFailed(f"{label} could not complete, please retry")
