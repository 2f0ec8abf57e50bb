import re
from datetime import datetime
from typing import Callable, Literal, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from db.database import Family


FamilyStatus = Literal["PENDING", "APPROVED", "REJECTED"]


def only_digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def mask_cpf(cpf: Optional[str]) -> Optional[str]:
    d = only_digits(cpf)
    if len(d) != 11:
        return cpf
    return f"***.***.***-{d[9:]}"


def _composed_address(f: Family) -> Optional[str]:
    parts = [f.street, f.number, f.neighborhood, f.city, f.state]
    out = [str(p).strip() for p in parts if p and str(p).strip()]
    if f.cep:
        out.append(f"CEP {f.cep}")
    return " - ".join(out) or None


# Evaluated in order; the first accessor returning a value wins.
ADDRESS_ACCESSORS: Sequence[Callable[[Family], Optional[str]]] = (
    _composed_address,
    lambda f: (f.address or "").strip() or None,
)


def resolve_display(f: Family, accessors: Sequence[Callable[[Family], Optional[str]]]) -> Optional[str]:
    for accessor in accessors:
        value = accessor(f)
        if value:
            return value
    return None


class FamilyCreate(BaseModel):
    responsible_name: str
    cpf: Optional[str] = None
    phone: Optional[str] = None
    members_count: Optional[int] = None
    street: Optional[str] = None
    number: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    cep: Optional[str] = None
    address: Optional[str] = None

    @field_validator("responsible_name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("street", "number", "neighborhood", "city", "state", "cep", "address")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("cpf")
    @classmethod
    def _cpf_digits(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        d = only_digits(v)
        if len(d) != 11:
            raise ValueError("CPF must have 11 digits")
        return d

    @field_validator("phone")
    @classmethod
    def _phone_digits(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        d = only_digits(v)
        if len(d) < 10:
            raise ValueError("phone needs area code and number (10+ digits)")
        return d

    @field_validator("members_count")
    @classmethod
    def _members_positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("members_count must be >= 1")
        return v


class FamilyStatusUpdate(BaseModel):
    status: FamilyStatus

    @field_validator("status", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class FamilyActiveUpdate(BaseModel):
    is_active: bool


class FamilyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    responsible_name: str
    cpf_masked: Optional[str] = None
    phone: Optional[str] = None
    members_count: Optional[int] = None
    display_address: Optional[str] = None
    status: FamilyStatus
    is_active: bool
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, f: Family) -> "FamilyRead":
        return cls(
            id=f.id,
            responsible_name=f.responsible_name,
            cpf_masked=mask_cpf(f.cpf),
            phone=f.phone,
            members_count=f.members_count,
            display_address=resolve_display(f, ADDRESS_ACCESSORS),
            status=f.status,
            is_active=bool(f.is_active),
            approved_at=f.approved_at,
            created_at=f.created_at,
        )


class EligibilityRead(BaseModel):
    family_id: UUID
    ok: bool
    code: Optional[str] = None
    reason: Optional[str] = None
    current_delivery_id: Optional[UUID] = None
