"""
Delivery gate: at most one active basket delivery per family per calendar month.

Eligibility is evaluated in a fixed order, first failure wins:
inactive family, family not approved, no baskets ready, already delivered
this month. `deliver` re-runs the same checks against locked rows inside
the transaction that writes the delivery.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import month_start, utc_now
from core.errors import (
    AlreadyDeliveredThisMonth,
    BasketError,
    FamilyInactive,
    FamilyNotApproved,
    FamilyNotFound,
    NoBasketsReady,
)
from db.database import Delivery, Family
from db.family import FAMILY_APPROVED
from services.stock_ledger import lock_ready_counter, ready_count
from services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


@dataclass
class Eligibility:
    ok: bool
    code: Optional[str] = None
    reason: Optional[str] = None
    current_delivery: Optional[Delivery] = None


def _check(family: Family, ready_qty: int, current: Optional[Delivery]) -> None:
    if not family.is_active:
        raise FamilyInactive(f"Family {family.responsible_name} is inactive")
    if (family.status or "").upper() != FAMILY_APPROVED:
        raise FamilyNotApproved(f"Family {family.responsible_name} is not approved (status {family.status})")
    if ready_qty < 1:
        raise NoBasketsReady("No assembled baskets are ready for delivery")
    if current is not None:
        raise AlreadyDeliveredThisMonth(
            f"Family {family.responsible_name} already received a basket this month"
        )


async def get_family(db: AsyncSession, family_id: UUID, *, lock: bool = False) -> Family:
    stmt = select(Family).where(Family.id == family_id).execution_options(populate_existing=True)
    if lock:
        stmt = stmt.with_for_update()
    family = (await db.execute(stmt)).scalar_one_or_none()
    if family is None:
        raise FamilyNotFound(f"Family {family_id} not found")
    return family


async def active_delivery_this_month(
    db: AsyncSession, family_id: UUID, now: Optional[datetime] = None, *, lock: bool = False
) -> Optional[Delivery]:
    """Most recent non-reversed delivery for the family since the start of the month."""
    stmt = (
        select(Delivery)
        .where(Delivery.family_id == family_id)
        .where(Delivery.reversed_at.is_(None))
        .where(Delivery.delivered_at >= month_start(now))
        .order_by(Delivery.delivered_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalars().first()


async def check_eligibility(db: AsyncSession, family_id: UUID, now: Optional[datetime] = None) -> Eligibility:
    """
    Read-only eligibility report for display.

    Not a basis for mutation: `deliver` repeats the checks under lock.
    """
    family = await get_family(db, family_id)
    current = await active_delivery_this_month(db, family_id, now)
    try:
        _check(family, await ready_count(db), current)
    except BasketError as e:
        return Eligibility(ok=False, code=e.code, reason=e.message, current_delivery=current)
    return Eligibility(ok=True, current_delivery=current)


async def deliver(
    db: AsyncSession,
    family_id: UUID,
    note: Optional[str] = None,
    *,
    user_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> Delivery:
    note = (note or "").strip() or None

    async def _work(session: AsyncSession) -> Delivery:
        stamp = now or utc_now()
        # lock order: family, then ready counter
        family = await get_family(session, family_id, lock=True)
        counter = await lock_ready_counter(session)
        current = await active_delivery_this_month(session, family_id, stamp)
        _check(family, int(counter.qty), current)

        delivery = Delivery(
            family_id=family_id,
            delivered_at=stamp,
            note=note,
            delivered_by_user_id=user_id,
        )
        session.add(delivery)
        counter.qty = int(counter.qty) - 1
        await session.flush()
        logger.info("delivered basket family=%s delivery=%s ready=%d", family_id, delivery.id, counter.qty)
        return delivery

    return await run_in_transaction(db, _work, label="deliver_basket")


async def current_deliveries_for_month(db: AsyncSession, now: Optional[datetime] = None) -> Dict[UUID, Delivery]:
    """family_id -> most recent active delivery in the current month."""
    res = await db.execute(
        select(Delivery)
        .where(Delivery.reversed_at.is_(None))
        .where(Delivery.delivered_at >= month_start(now))
        .order_by(Delivery.delivered_at.desc())
        .execution_options(populate_existing=True)
    )
    out: Dict[UUID, Delivery] = {}
    for d in res.scalars().all():
        out.setdefault(d.family_id, d)
    return out


async def family_history(db: AsyncSession, family_id: UUID, limit: int = 50) -> List[Delivery]:
    await get_family(db, family_id)
    res = await db.execute(
        select(Delivery)
        .where(Delivery.family_id == family_id)
        .order_by(Delivery.delivered_at.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())
