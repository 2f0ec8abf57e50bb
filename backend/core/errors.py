"""
Business-rule rejections raised by the ledger services.

Each error carries a stable `code` (returned to the client next to the
message) and the HTTP status the API maps it to. None of them leave
partial state behind: they are raised inside the transaction boundary,
which rolls back before re-raising.
"""

from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID


class BasketError(Exception):
    code = "BASKET_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


@dataclass(frozen=True)
class Shortfall:
    """One recipe item that cannot cover the requested basket count."""

    item_id: UUID
    name: str
    unit: str
    have: int
    need: int

    def describe(self) -> str:
        return f"{self.name} ({self.have}/{self.need} {self.unit})"


class InsufficientStock(BasketError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, shortfalls: List[Shortfall], message: Optional[str] = None):
        self.shortfalls = list(shortfalls)
        first = self.shortfalls[0] if self.shortfalls else None
        self.item_id = first.item_id if first else None
        if message is None:
            message = "Insufficient stock: " + ", ".join(s.describe() for s in self.shortfalls)
        super().__init__(message)


class RecipeNotDefined(BasketError):
    code = "RECIPE_NOT_DEFINED"
    status_code = 409

    def __init__(self, message: str = "Basket recipe is empty; define it before assembling"):
        super().__init__(message)


class ItemNotFound(BasketError):
    code = "ITEM_NOT_FOUND"
    status_code = 404


class InvalidQuantity(BasketError):
    code = "INVALID_QUANTITY"
    status_code = 400


class FamilyNotFound(BasketError):
    code = "FAMILY_NOT_FOUND"
    status_code = 404


class FamilyAlreadyRegistered(BasketError):
    code = "FAMILY_ALREADY_REGISTERED"
    status_code = 409


class FamilyInactive(BasketError):
    code = "FAMILY_INACTIVE"
    status_code = 409


class FamilyNotApproved(BasketError):
    code = "FAMILY_NOT_APPROVED"
    status_code = 409


class NoBasketsReady(BasketError):
    code = "NO_BASKETS_READY"
    status_code = 409


class AlreadyDeliveredThisMonth(BasketError):
    code = "ALREADY_DELIVERED_THIS_MONTH"
    status_code = 409


class DeliveryNotFound(BasketError):
    code = "DELIVERY_NOT_FOUND"
    status_code = 404


class DeliveryAlreadyReversed(BasketError):
    code = "DELIVERY_ALREADY_REVERSED"
    status_code = 409


class OperationFailed(BasketError):
    """Transient store conflict that did not clear within the retry budget."""

    code = "OPERATION_FAILED"
    status_code = 503
