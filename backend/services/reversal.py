"""
Delivery reversal.

A reversal returns the basket to the ready pool and frees the family's
monthly slot. It does not re-credit raw supplies: the basket stays
assembled.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utc_now
from core.errors import DeliveryAlreadyReversed, DeliveryNotFound
from db.database import Delivery
from services.delivery_gate import get_family, active_delivery_this_month
from services.stock_ledger import lock_ready_counter
from services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


async def _reverse_locked(
    session: AsyncSession,
    delivery: Delivery,
    note: Optional[str],
    user_id: Optional[UUID],
    stamp: datetime,
) -> Delivery:
    if delivery.reversed_at is not None:
        raise DeliveryAlreadyReversed(f"Delivery {delivery.id} was already reversed")

    counter = await lock_ready_counter(session)
    delivery.reversed_at = stamp
    delivery.reversed_note = note
    delivery.reversed_by_user_id = user_id
    counter.qty = int(counter.qty) + 1
    await session.flush()
    logger.info("reversed delivery=%s family=%s ready=%d", delivery.id, delivery.family_id, counter.qty)
    return delivery


async def reverse_delivery(
    db: AsyncSession,
    delivery_id: UUID,
    note: Optional[str] = None,
    *,
    user_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> Delivery:
    note = (note or "").strip() or None

    async def _work(session: AsyncSession) -> Delivery:
        delivery = (
            await session.execute(
                select(Delivery)
                .where(Delivery.id == delivery_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if delivery is None:
            raise DeliveryNotFound(f"Delivery {delivery_id} not found")
        return await _reverse_locked(session, delivery, note, user_id, now or utc_now())

    return await run_in_transaction(db, _work, label="reverse_delivery")


async def reverse_current_for_family(
    db: AsyncSession,
    family_id: UUID,
    note: Optional[str] = None,
    *,
    user_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> Delivery:
    """Reverse the family's most recent active delivery of the current month."""
    note = (note or "").strip() or None

    async def _work(session: AsyncSession) -> Delivery:
        stamp = now or utc_now()
        await get_family(session, family_id, lock=True)
        delivery = await active_delivery_this_month(session, family_id, stamp, lock=True)
        if delivery is None:
            raise DeliveryNotFound("No active delivery this month for this family")
        return await _reverse_locked(session, delivery, note, user_id, stamp)

    return await run_in_transaction(db, _work, label="reverse_current_delivery")
