"""Integration-test fixtures.

These tests talk to a real PostgreSQL with migrations applied
(alembic upgrade head against DATABASE_URL). When the database is not
reachable the whole directory is skipped.

All integration tests share one event loop so the engine pool created here
stays valid for the whole session.
"""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from config.settings import settings
from src.mk_common.database import create_engine, create_session_factory


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def engine() -> AsyncIterator[AsyncEngine]:
    eng = create_engine(settings)
    try:
        async with eng.connect() as conn:
            await conn.execute(text("SELECT 1 FROM listings LIMIT 1"))
    except (OSError, SQLAlchemyError) as exc:
        await eng.dispose()
        pytest.skip(f"PostgreSQL with migrations not available: {exc}")
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)
