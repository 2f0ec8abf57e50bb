import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from ..database import Base

MOVE_IN = "IN"
MOVE_OUT = "OUT"


class StockMove(Base):
    """Append-only. Rows are never updated or deleted."""

    __tablename__ = "stock_moves"
    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_stock_moves_qty_positive"),
        CheckConstraint("direction IN ('IN', 'OUT')", name="ck_stock_moves_direction"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    item_id = Column(
        Uuid,
        ForeignKey("stock_items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    direction = Column(Text, nullable=False)  # 'IN' | 'OUT'
    qty = Column(Integer, nullable=False)  # always positive; sign comes from direction
    note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    item = relationship("StockItem", back_populates="moves")

    @property
    def signed_qty(self) -> int:
        return self.qty if self.direction == MOVE_IN else -self.qty
