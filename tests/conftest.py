"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session

from yapper.database.models import Base


# ---------------------------------------------------------------------------
# Render BigInteger as INTEGER on SQLite so the in-memory schema matches
# what PostgreSQL would enforce for our integer columns.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


def run_async(coro):
    """Run an async coroutine in a new event loop (no pytest-asyncio)."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


def make_redis():
    """A fresh in-memory async Redis speaking str, like the bot's client.

    Build it inside the coroutine that uses it; each ``run_async`` call
    runs on its own event loop.  Each call gets its own server so no state
    leaks between tests.
    """
    from fakeredis import FakeAsyncRedis, FakeServer

    return FakeAsyncRedis(server=FakeServer(), decode_responses=True)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Yapper tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()
