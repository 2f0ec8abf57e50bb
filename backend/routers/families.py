from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, current_active_user
from db.database import get_async_session
from db.users import User
from schemas.deliveries import DeliveryRead, DeliveryReverse
from schemas.families import (
    EligibilityRead,
    FamilyActiveUpdate,
    FamilyCreate,
    FamilyRead,
    FamilyStatus,
    FamilyStatusUpdate,
)
from services import delivery_gate, families as family_service, reversal

router = APIRouter()


@router.get("/", response_model=List[FamilyRead])
async def list_families(
    status_filter: Optional[FamilyStatus] = Query(None, alias="status"),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await family_service.list_families(db, status=status_filter)
    return [FamilyRead.from_model(f) for f in rows]


@router.post("/", response_model=FamilyRead, status_code=status.HTTP_201_CREATED)
async def register_family(
    payload: FamilyCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Register a family as PENDING (awaiting approval)."""
    family = await family_service.create_family(db, **payload.model_dump())
    return FamilyRead.from_model(family)


@router.get("/{family_id}", response_model=FamilyRead)
async def get_family(
    family_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    family = await delivery_gate.get_family(db, family_id)
    return FamilyRead.from_model(family)


@router.patch("/{family_id}/status", response_model=FamilyRead)
async def set_status(
    family_id: UUID,
    payload: FamilyStatusUpdate,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    family = await family_service.set_family_status(db, family_id, payload.status, user_id=user.id)
    return FamilyRead.from_model(family)


@router.patch("/{family_id}/active", response_model=FamilyRead)
async def set_active(
    family_id: UUID,
    payload: FamilyActiveUpdate,
    user: User = Depends(current_active_superuser),
    db: AsyncSession = Depends(get_async_session),
):
    family = await family_service.set_family_active(db, family_id, payload.is_active)
    return FamilyRead.from_model(family)


@router.get("/{family_id}/eligibility", response_model=EligibilityRead)
async def eligibility(
    family_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Whether a basket can be delivered now, and which check fails if not."""
    result = await delivery_gate.check_eligibility(db, family_id)
    return EligibilityRead(
        family_id=family_id,
        ok=result.ok,
        code=result.code,
        reason=result.reason,
        current_delivery_id=result.current_delivery.id if result.current_delivery else None,
    )


@router.get("/{family_id}/deliveries", response_model=List[DeliveryRead])
async def delivery_history(
    family_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await delivery_gate.family_history(db, family_id, limit=limit)
    return [DeliveryRead.model_validate(d) for d in rows]


@router.post("/{family_id}/reverse-current", response_model=DeliveryRead)
async def reverse_current_delivery(
    family_id: UUID,
    payload: DeliveryReverse,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Reverse this month's active delivery for the family (most recent one)."""
    delivery = await reversal.reverse_current_for_family(db, family_id, payload.note, user_id=user.id)
    return DeliveryRead.model_validate(delivery)
