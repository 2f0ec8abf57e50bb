from typing import Dict
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from db.database import get_async_session
from db.users import User
from schemas.deliveries import DeliveryCreate, DeliveryRead, DeliveryReverse
from services import delivery_gate, reversal

router = APIRouter()


@router.post("/", response_model=DeliveryRead, status_code=status.HTTP_201_CREATED)
async def deliver_basket(
    payload: DeliveryCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Hand one ready basket to an eligible family."""
    delivery = await delivery_gate.deliver(db, payload.family_id, payload.note, user_id=user.id)
    return DeliveryRead.model_validate(delivery)


@router.get("/current-month", response_model=Dict[UUID, DeliveryRead])
async def current_deliveries_for_month(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """family_id -> the family's active delivery this month."""
    rows = await delivery_gate.current_deliveries_for_month(db)
    return {family_id: DeliveryRead.model_validate(d) for family_id, d in rows.items()}


@router.post("/{delivery_id}/reverse", response_model=DeliveryRead)
async def reverse_delivery(
    delivery_id: UUID,
    payload: DeliveryReverse,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    delivery = await reversal.reverse_delivery(db, delivery_id, payload.note, user_id=user.id)
    return DeliveryRead.model_validate(delivery)
