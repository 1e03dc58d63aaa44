import logging
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import config
import guard  # noqa: F401  registers the hall overlap DDL on the metadata
from slots import seed_reference_data

logger = logging.getLogger(__name__)


def build_engine(url: str, **options) -> AsyncEngine:
    options.setdefault("echo", config.DB_ECHO)
    if config.DB_ISOLATION_LEVEL:
        options["isolation_level"] = config.DB_ISOLATION_LEVEL
    new_engine = create_async_engine(url, **options)

    if new_engine.dialect.name == "sqlite":
        # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
        @event.listens_for(new_engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


# 1. Create the Async Engine
engine = build_engine(config.DATABASE_URL)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(target: AsyncEngine) -> None:
    async with target.begin() as conn:
        # This creates the tables if they don't exist
        await conn.run_sync(SQLModel.metadata.create_all)


async def init_db():
    await create_tables(engine)
    if config.SEED_REFERENCE_DATA:
        async with SessionLocal() as session:
            await seed_reference_data(session)
    logger.info("Database ready (%s)", engine.dialect.name)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session
