"""
NightPlan Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Provides reusable test infrastructure (mocked session, real SQLite
       database, preference rows).
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── mock_db_session: Mock AsyncSession that looks like PostgreSQL
    ├── make_preference: Factory for detached UserPreference rows
    ├── db_engine: Async SQLite engine (aiosqlite) with the schema created
    └── session_factory: async_sessionmaker bound to db_engine
"""

import os
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings for testing BEFORE any app imports: the settings
# singleton and the retry decorators read them at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["EVENT_BACKEND"] = "memory"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["PUBLISH_MAX_ATTEMPTS"] = "3"
os.environ["PUBLISH_MIN_WAIT"] = "0"
os.environ["PUBLISH_MAX_WAIT"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from app.database import Base  # noqa: E402
from app.models.user_preference import PREFERENCE_DEFAULTS, UserPreference  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Mocked Persistence
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    What:    A mock that simulates AsyncSession bound to PostgreSQL.
    Why:     Service logic tests should not require a real database.
    How:     Mocks execute, flush, commit, rollback, and close methods.

    Usage:
        mock_db_session.execute.side_effect = [find_result, insert_result, ...]
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.bind = SimpleNamespace(dialect=SimpleNamespace(name="postgresql"))
    return session


@pytest.fixture
def make_preference():
    """
    Factory for a UserPreference row with every column populated.

    Column defaults only apply on INSERT, so detached rows get them here.
    """
    def _make(user_id=None, **overrides):
        now = datetime.now(timezone.utc)
        values = dict(
            PREFERENCE_DEFAULTS,
            id=uuid.uuid4(),
            user_id=user_id or uuid.uuid4(),
            created_at=now,
            updated_at=now,
        )
        values.update(overrides)
        return UserPreference(**values)

    return _make


# ══════════════════════════════════════════════════════════════════════════
# Real Persistence (SQLite via aiosqlite)
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    A file-backed SQLite database with the full schema.

    File-backed (not :memory:) so separate sessions get separate connections,
    which the concurrency tests need.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'nightplan_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
