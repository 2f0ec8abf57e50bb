import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class Delivery(Base):
    """
    One basket handed to one family.

    Append-only except for the single reversal mutation
    (reversed_at / reversed_note / reversed_by_user_id).
    """
    __tablename__ = "basket_deliveries"
    __table_args__ = (
        Index("ix_basket_deliveries_family_delivered", "family_id", "delivered_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    family_id = Column(Uuid, ForeignKey("families.id", ondelete="RESTRICT"), nullable=False, index=True)

    delivered_at = Column(DateTime(timezone=True), nullable=False, index=True)
    note = Column(Text, nullable=True)
    delivered_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    reversed_at = Column(DateTime(timezone=True), nullable=True)
    reversed_note = Column(Text, nullable=True)
    reversed_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    family = relationship("Family", back_populates="deliveries")

    @property
    def is_active(self) -> bool:
        return self.reversed_at is None
