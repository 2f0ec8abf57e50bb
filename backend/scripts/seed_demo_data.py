import asyncio
import os
import sys
from pathlib import Path

"""
Seed demo data (admin user, supplies with opening stock, basket recipe, families).

This script can be run from either:
- backend/: `uv run python scripts/seed_demo_data.py`
- repo root: `uv run python backend/scripts/seed_demo_data.py`

Re-running is safe: existing items/families (matched by name) are left alone.
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from db.database import async_session_maker, create_db_and_tables
from db.database import Family, StockItem, User
from db.family import FAMILY_APPROVED
from services import families as family_service
from services import recipe as recipe_service
from services import stock_ledger

from fastapi_users.password import PasswordHelper


password_helper = PasswordHelper()

# name, unit, opening stock, qty per basket (0 = not in the recipe)
DEMO_SUPPLIES = [
    ("Rice 5kg", "un", 40, 2),
    ("Beans 1kg", "un", 30, 1),
    ("Cooking oil 900ml", "un", 25, 1),
    ("Sugar 1kg", "un", 20, 1),
    ("Coffee 500g", "un", 12, 0),
]

DEMO_FAMILIES = [
    {"responsible_name": "Maria Aparecida", "cpf": "11122233344", "phone": "19988887777", "members_count": 4,
     "street": "Rua das Flores", "number": "120", "neighborhood": "Centro", "city": "Campinas", "state": "SP"},
    {"responsible_name": "Jose Ribeiro", "cpf": "55566677788", "members_count": 2, "address": "Travessa Sete, casa 3"},
    {"responsible_name": "Ana Souza", "cpf": "99900011122", "members_count": 6, "city": "Campinas", "state": "SP"},
]


async def get_or_create_user(session, email: str, password: str) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        email=email,
        hashed_password=password_helper.hash(password),
        is_active=True,
        is_superuser=True,
        is_verified=True,
    )
    session.add(user)
    await session.commit()
    return user


async def get_or_create_item(session, name: str, unit: str, opening: int, user_id) -> StockItem:
    result = await session.execute(
        select(StockItem).where(func.lower(StockItem.name) == name.strip().lower())
    )
    item = result.scalar_one_or_none()
    if item:
        return item

    item = await stock_ledger.create_item(session, name, unit)
    if opening > 0:
        await stock_ledger.record_move(session, item.id, "IN", opening, "Opening stock", user_id=user_id)
    return item


async def seed(session, admin_email: str = "admin@example.com", admin_password: str = "admin") -> dict:
    admin = await get_or_create_user(session, admin_email, admin_password)

    items = 0
    for name, unit, opening, per_basket in DEMO_SUPPLIES:
        item = await get_or_create_item(session, name, unit, opening, admin.id)
        items += 1
        if per_basket > 0:
            await recipe_service.set_recipe_entry(session, item.id, per_basket)

    families = 0
    for i, data in enumerate(DEMO_FAMILIES):
        result = await session.execute(
            select(Family).where(Family.responsible_name == data["responsible_name"])
        )
        if result.scalar_one_or_none():
            continue
        family = await family_service.create_family(session, **data)
        families += 1
        # leave the last one PENDING so the approval flow has something to do
        if i < len(DEMO_FAMILIES) - 1:
            await family_service.set_family_status(session, family.id, FAMILY_APPROVED, user_id=admin.id)

    return {"admin_id": admin.id, "items": items, "families_created": families}


async def main() -> None:
    await create_db_and_tables()
    async with async_session_maker() as session:
        out = await seed(
            session,
            admin_email=os.getenv("SEED_ADMIN_EMAIL", "admin@example.com"),
            admin_password=os.getenv("SEED_ADMIN_PASSWORD", "admin"),
        )
        possible = await recipe_service.max_assemblable(session)
    print(f"Seeded items: {out['items']}, new families: {out['families_created']}")
    print(f"Baskets possible with current stock: {possible}")


if __name__ == "__main__":
    asyncio.run(main())
