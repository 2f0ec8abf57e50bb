from collections.abc import AsyncGenerator
from typing import Optional

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


class Base(DeclarativeBase):
    pass


def configure_engine(engine: AsyncEngine) -> AsyncEngine:
    """
    Dialect-specific transaction setup.

    SQLite ignores SELECT ... FOR UPDATE, so every transaction is opened
    with BEGIN IMMEDIATE instead: the write lock is taken up front and a
    check followed by a write cannot interleave with another writer.
    """
    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            # stop the driver from emitting its own deferred BEGIN
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = configure_engine(create_async_engine(settings.database_url, echo=settings.database_echo))
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables(bind: Optional[AsyncEngine] = None):
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # single-row ready counter
    maker = async_sessionmaker(bind, expire_on_commit=False)
    async with maker() as session:
        res = await session.execute(select(BasketsReady).where(BasketsReady.id == READY_COUNTER_ID))
        if res.scalar_one_or_none() is None:
            session.add(BasketsReady(id=READY_COUNTER_ID, qty=0))
        await session.commit()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


# Re-export models so routers/scripts can import everything from one place.
from .users import User  # noqa: E402,F401
from .stock import (  # noqa: E402,F401
    READY_COUNTER_ID,
    BasketsReady,
    RecipeEntry,
    StockBalance,
    StockItem,
    StockMove,
)
from .family import Family  # noqa: E402,F401
from .delivery import Delivery  # noqa: E402,F401
