from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from core.clock import as_utc


class _NoteMixin(BaseModel):
    note: Optional[str] = None

    @field_validator("note")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class DeliveryCreate(_NoteMixin):
    family_id: UUID


class DeliveryReverse(_NoteMixin):
    pass


class DeliveryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID
    delivered_at: datetime
    note: Optional[str] = None
    reversed_at: Optional[datetime] = None
    reversed_note: Optional[str] = None
    is_active: bool

    @field_validator("delivered_at", "reversed_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None
