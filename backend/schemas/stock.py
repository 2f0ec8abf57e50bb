from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from core.clock import as_utc


MoveDirection = Literal["IN", "OUT"]


class StockItemCreate(BaseModel):
    name: str
    unit: str = "un"

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("unit")
    @classmethod
    def _unit_default(cls, v: Optional[str]) -> str:
        return (v or "").strip() or "un"


class StockItemUpdate(BaseModel):
    # name/unit are fixed once created; only the active flag changes
    is_active: bool


class StockItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    unit: str
    is_active: bool
    balance: int = 0


class StockBalanceRead(BaseModel):
    item_id: UUID
    name: str
    unit: str
    is_active: bool
    qty: int


class StockMoveCreate(BaseModel):
    item_id: UUID
    direction: MoveDirection
    qty: int
    note: Optional[str] = None

    @field_validator("direction", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("note")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class StockMoveRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_id: UUID
    item_name: Optional[str] = None
    direction: MoveDirection
    qty: int
    note: Optional[str] = None
    created_at: datetime
    created_by_user_id: Optional[UUID] = None

    @field_validator("created_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class StockMoveResult(BaseModel):
    item_id: UUID
    balance: int


class RecipeEntryUpdate(BaseModel):
    qty_needed: int  # 0 removes the item from the recipe


class RecipeEntryRead(BaseModel):
    item_id: UUID
    name: str
    unit: str
    qty_needed: int


class ShortfallRead(BaseModel):
    item_id: UUID
    name: str
    unit: str
    have: int
    need: int


class BasketSummary(BaseModel):
    ready_qty: int
    max_assemblable: int
    missing_for_one: List[ShortfallRead]


class AssembleRequest(BaseModel):
    count: int = 1
    note: Optional[str] = None


class AssembleResult(BaseModel):
    assembled: int
    ready_qty: int
