# tests/conftest.py
from __future__ import annotations

import os
from typing import AsyncGenerator

# The app module builds its default engine at import time; point it at a
# throwaway sqlite file so importing never needs a Postgres driver/server.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest-import.db")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from core.auth import current_active_superuser, current_active_user  # noqa: E402
from db.database import User, configure_engine, create_db_and_tables, get_async_session  # noqa: E402
from main import app  # noqa: E402
from services import families as family_service  # noqa: E402
from services import recipe as recipe_service  # noqa: E402
from services import stock_ledger  # noqa: E402


# =========================================
# One sqlite file per test (NullPool: one connection per session)
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = configure_engine(
        create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'basket.db'}",
            poolclass=NullPool,
            connect_args={"timeout": 30},
        )
    )
    await create_db_and_tables(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as sess:
        yield sess


@pytest_asyncio.fixture
async def staff_user(session_maker) -> User:
    async with session_maker() as sess:
        user = User(
            email="staff@example.com",
            hashed_password="not-used",
            is_active=True,
            is_superuser=True,
            is_verified=True,
        )
        sess.add(user)
        await sess.commit()
        return user


@pytest_asyncio.fixture
async def client(session_maker, staff_user) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as sess:
            yield sess

    app.dependency_overrides[get_async_session] = _session
    app.dependency_overrides[current_active_user] = lambda: staff_user
    app.dependency_overrides[current_active_superuser] = lambda: staff_user
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()


# =========================================
# Small builders
# =========================================
@pytest_asyncio.fixture
async def rice_and_beans(db):
    """recipe = {rice: 2, beans: 1}; balances = {rice: 5, beans: 3}"""
    rice = await stock_ledger.create_item(db, "Rice", "kg")
    beans = await stock_ledger.create_item(db, "Beans", "kg")
    await stock_ledger.record_move(db, rice.id, "IN", 5, "donation")
    await stock_ledger.record_move(db, beans.id, "IN", 3, "donation")
    await recipe_service.set_recipe_entry(db, rice.id, 2)
    await recipe_service.set_recipe_entry(db, beans.id, 1)
    return rice, beans


async def make_family(db, name: str = "Maria", *, status: str = "APPROVED", active: bool = True):
    family = await family_service.create_family(db, responsible_name=name)
    if status != "PENDING":
        family = await family_service.set_family_status(db, family.id, status)
    if not active:
        family = await family_service.set_family_active(db, family.id, False)
    return family


@pytest.fixture
def family_factory(db):
    async def _make(name: str = "Maria", **kw):
        return await make_family(db, name, **kw)

    return _make
