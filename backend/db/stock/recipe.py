from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Uuid
from sqlalchemy.orm import relationship

from ..database import Base


class RecipeEntry(Base):
    """Quantity of one item consumed per assembled basket."""

    __tablename__ = "basket_recipe"
    __table_args__ = (
        # a zero quantity means "not in the recipe" and is stored as no row
        CheckConstraint("qty_needed > 0", name="ck_basket_recipe_qty_positive"),
    )

    item_id = Column(
        Uuid,
        ForeignKey("stock_items.id", ondelete="CASCADE"),
        primary_key=True,
    )
    qty_needed = Column(Integer, nullable=False)

    item = relationship("StockItem", back_populates="recipe_entry")
