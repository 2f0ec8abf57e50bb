from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Uuid
from sqlalchemy.orm import relationship

from ..database import Base


class StockBalance(Base):
    """Quantity on hand. Only ever written together with a StockMove."""

    __tablename__ = "stock_balances"
    __table_args__ = (
        CheckConstraint("qty >= 0", name="ck_stock_balances_non_negative"),
    )

    item_id = Column(
        Uuid,
        ForeignKey("stock_items.id", ondelete="CASCADE"),
        primary_key=True,
    )
    qty = Column(Integer, nullable=False, default=0)

    item = relationship("StockItem", back_populates="balance")
