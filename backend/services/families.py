"""
Family registry boundary.

Registration and approval live outside the ledger; the gate only reads
`status` and `is_active`. These helpers are the single writer of both.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utc_now
from core.errors import FamilyAlreadyRegistered
from db.database import Family
from db.family import FAMILY_APPROVED, FAMILY_PENDING
from services.delivery_gate import get_family
from services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


async def create_family(db: AsyncSession, **fields) -> Family:
    cpf = fields.get("cpf")

    async def _work(session: AsyncSession) -> Family:
        if cpf:
            existing = (await session.execute(select(Family.id).where(Family.cpf == cpf))).scalar_one_or_none()
            if existing is not None:
                raise FamilyAlreadyRegistered(f"A family with this CPF is already registered ({existing})")
        family = Family(**fields, status=FAMILY_PENDING, is_active=True, created_at=utc_now())
        session.add(family)
        try:
            await session.flush()
        except IntegrityError as e:
            # concurrent registration of the same CPF
            raise FamilyAlreadyRegistered("A family with this CPF is already registered") from e
        logger.info("family registered id=%s", family.id)
        return family

    return await run_in_transaction(db, _work, label="create_family")


async def set_family_status(
    db: AsyncSession, family_id: UUID, status: str, *, user_id: Optional[UUID] = None
) -> Family:
    status = status.upper()

    async def _work(session: AsyncSession) -> Family:
        family = await get_family(session, family_id, lock=True)
        family.status = status
        if status == FAMILY_APPROVED:
            family.approved_at = utc_now()
            family.approved_by_user_id = user_id
            family.is_active = True
        else:
            family.approved_at = None
            family.approved_by_user_id = None
        logger.info("family %s status=%s", family_id, status)
        return family

    return await run_in_transaction(db, _work, label="set_family_status")


async def set_family_active(db: AsyncSession, family_id: UUID, active: bool) -> Family:
    async def _work(session: AsyncSession) -> Family:
        family = await get_family(session, family_id, lock=True)
        family.is_active = bool(active)
        logger.info("family %s active=%s", family_id, family.is_active)
        return family

    return await run_in_transaction(db, _work, label="set_family_active")


async def list_families(db: AsyncSession, status: Optional[str] = None) -> List[Family]:
    stmt = (
        select(Family)
        .order_by(func.lower(Family.responsible_name).asc())
        .execution_options(populate_existing=True)
    )
    if status:
        stmt = stmt.where(Family.status == status.upper())
    res = await db.execute(stmt)
    return list(res.scalars().all())
