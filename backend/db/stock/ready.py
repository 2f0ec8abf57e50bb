from sqlalchemy import CheckConstraint, Column, Integer

from ..database import Base

READY_COUNTER_ID = 1


class BasketsReady(Base):
    """Assembled, undelivered baskets. Exactly one row (id=1)."""

    __tablename__ = "baskets_ready"
    __table_args__ = (
        CheckConstraint("qty >= 0", name="ck_baskets_ready_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    qty = Column(Integer, nullable=False, default=0)
