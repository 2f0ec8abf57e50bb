import uuid

from sqlalchemy import Boolean, Column, DateTime, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class StockItem(Base):
    __tablename__ = "stock_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # name/unit never change once moves reference the item; only is_active toggles
    name = Column(String, nullable=False)
    unit = Column(Text, nullable=False, default="un")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    balance = relationship("StockBalance", back_populates="item", uselist=False, cascade="all, delete-orphan")
    moves = relationship("StockMove", back_populates="item")
    recipe_entry = relationship("RecipeEntry", back_populates="item", uselist=False, cascade="all, delete-orphan")
