from fastapi_users.db import SQLAlchemyBaseUserTableUUID
from .database import Base


class User(SQLAlchemyBaseUserTableUUID, Base):
    """Staff account. Superusers may edit the catalogue, the recipe and family approvals."""
    __tablename__ = "users"
