import uuid
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

FAMILY_PENDING = "PENDING"
FAMILY_APPROVED = "APPROVED"
FAMILY_REJECTED = "REJECTED"


class Family(Base):
    """
    Registered household.

    The ledger only reads `status` and `is_active`; both are owned by the
    approval workflow (see services/families.py).
    """
    __tablename__ = "families"
    __table_args__ = (
        CheckConstraint("status IN ('PENDING', 'APPROVED', 'REJECTED')", name="ck_families_status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    responsible_name = Column(String, nullable=False)
    cpf = Column(String(11), nullable=True, unique=True)  # digits only
    phone = Column(String, nullable=True)
    members_count = Column(Integer, nullable=True)

    # address parts; `address` is the free-text fallback
    street = Column(String, nullable=True)
    number = Column(String, nullable=True)
    neighborhood = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    cep = Column(String, nullable=True)
    address = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default=FAMILY_PENDING, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    deliveries = relationship("Delivery", back_populates="family")
