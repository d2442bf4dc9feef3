"""Shared test fixtures.

Every test gets its own in-memory SQLite database (aiosqlite) holding the full
schema, so the suite runs without PostgreSQL or Redis. SQLite's driver-level
transaction handling is disabled and BEGIN emitted explicitly so that
SAVEPOINTs (``begin_nested``) behave the way they do on PostgreSQL.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from unibits.admin import service as admin_service
from unibits.auth.jwt import create_access_token
from unibits.database import get_session
from unibits.db.base import Base
from unibits.db.models import Module, Profile, UserRole
from unibits.learning.progress import complete_lesson, get_module_lessons
from unibits.main import create_app
from unibits.progression.ledger import get_or_create_profile
from unibits.progression.leveling import level_for_xp


def _use_explicit_transactions(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):  # noqa: ANN001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    _use_explicit_transactions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service-level tests."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, with the session dependency bound to the test database.

    API tests must not hold a ``db_session`` open while issuing requests: the
    in-memory database lives on a single shared connection.
    """
    app = create_app()

    async def _session_override() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build bearer headers for a user id."""

    def _headers(user_id: str, display_name: str | None = None) -> dict[str, str]:
        token = create_access_token(user_id, display_name)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_profile() -> Callable[..., Awaitable[Profile]]:
    """Create (or fetch) a profile and set its balances directly."""

    async def _make(
        db: AsyncSession,
        user_id: str,
        *,
        display_name: str | None = None,
        xp: int = 0,
        coins: int = 0,
        role: str | None = None,
    ) -> Profile:
        profile = await get_or_create_profile(db, user_id, display_name)
        profile.xp_total = xp
        profile.level = level_for_xp(xp)
        profile.coins = coins
        if role is not None:
            db.add(UserRole(user_id=user_id, role=role))
        await db.flush()
        return profile

    return _make


@pytest.fixture
def make_module() -> Callable[..., Awaitable[Module]]:
    """Author a module with lessons and boss questions through the admin service.

    Every question's correct answer is option 0.
    """

    async def _make(
        db: AsyncSession,
        title: str = "Bits and Bytes",
        *,
        lessons: int = 2,
        questions: int = 10,
        xp_reward: int = 100,
    ) -> Module:
        module = await admin_service.create_module(db, title)
        for n in range(lessons):
            await admin_service.create_lesson(db, module.id, f"{title} lesson {n + 1}", xp_reward=xp_reward)
        for n in range(questions):
            await admin_service.create_question(
                db, module.id, f"{title} question {n + 1}?", ["right", "wrong", "also wrong"], 0
            )
        return module

    return _make


@pytest.fixture
def complete_lessons() -> Callable[..., Awaitable[None]]:
    """Mark every lesson of a module completed for a user, without granting rewards."""

    async def _complete(db: AsyncSession, user_id: str, module_id: int) -> None:
        for lesson in await get_module_lessons(db, module_id):
            await complete_lesson(db, user_id, lesson.id)

    return _complete
