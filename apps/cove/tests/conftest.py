"""
Shared pytest configuration for cove tests.

Runs against an in-memory SQLite database by default. Point
TEST_DATABASE_URL at a PostgreSQL database to run the same suite against
production's dialect.

SAFETY: This module REFUSES to run against any PostgreSQL database whose
name does not contain the substring "test", since tables are dropped after
every test.
"""

import os

os.environ.setdefault("ENV", "test")

from datetime import timedelta  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool, StaticPool  # noqa: E402
from sqlalchemy import select, func  # noqa: E402
from cove.database.db import Base  # noqa: E402
from cove.database.models import (  # noqa: E402
    User,
    Profile,
    Intention,
    IntentionStatus,
    PoolEntry,
    Match,
    MatchMember,
    MatchStatus,
)
from cove.utils.datetime_utils import utcnow  # noqa: E402

VALID_CHIPS = {
    "what": {"intention": "friends", "activities": ["Live music", "Coffee"]},
    "when": ["Sat evening", "Sun daytime"],
    "where": "Palo Alto",
}


def _resolve_test_database_url() -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if a non-SQLite URL does not point to a database
    whose name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    if url.startswith("sqlite"):
        return url

    # ── Safety gate: database name MUST contain "test" ──────────────────
    db_name = url.rsplit("/", 1)[-1].split("?")[0]  # strip query params
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Resolved URL: {url}\n"
            f"{'=' * 70}"
        )
    return url


TEST_DATABASE_URL = _resolve_test_database_url()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh schema for each test."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection, otherwise every checkout sees an empty in-memory DB
        engine = create_async_engine(
            TEST_DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # NullPool avoids "Future attached to different loop" errors
        engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool, pool_pre_ping=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Test database session; every test runs in one uncommitted transaction."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


# ──────────────────────────────────────────────────────────────
# Factories
# ──────────────────────────────────────────────────────────────


async def create_test_user(db_session, phone, name=None, is_superadmin=False, alma_mater=None):
    """Helper: create a user (with a profile when alma_mater is given), return user_id."""
    user = User(phone_number=phone, name=name, is_superadmin=is_superadmin)
    db_session.add(user)
    await db_session.flush()
    if alma_mater:
        db_session.add(Profile(user_id=user.id, alma_mater=alma_mater, age=25, city="Palo Alto"))
        await db_session.flush()
    return user.id


async def create_pooled_intention(db_session, user_id, chips=None, tier=0, joined_at=None):
    """Helper: create an active intention plus its pool entry directly, return intention_id."""
    now = utcnow()
    intention = Intention(
        user_id=user_id,
        parsed_json=chips or VALID_CHIPS,
        status=IntentionStatus.ACTIVE.value,
        created_at=now,
        valid_until=now + timedelta(hours=72),
    )
    db_session.add(intention)
    await db_session.flush()
    db_session.add(PoolEntry(intention_id=intention.id, tier=tier, joined_at=joined_at or now))
    await db_session.flush()
    return intention.id


@pytest_asyncio.fixture
async def users(db_session):
    """Five users (alice..eve), each holding an active, pooled intention."""
    names = ["alice", "bob", "carol", "dave", "eve"]
    ids = {}
    for i, name in enumerate(names, start=1):
        user_id = await create_test_user(
            db_session, f"+1555200000{i}", name.title(), alma_mater="Stanford"
        )
        await create_pooled_intention(db_session, user_id)
        ids[name] = user_id
    return ids


@pytest_asyncio.fixture
async def admin(db_session):
    """A superadmin user id."""
    return await create_test_user(db_session, "+15559999999", "Admin", is_superadmin=True)


# ──────────────────────────────────────────────────────────────
# Invariants
# ──────────────────────────────────────────────────────────────


async def assert_matching_invariants(session):
    """Check the pool/match invariants against what is actually stored.

    - at most one active intention per user
    - every pool entry belongs to an active intention outside any active match
    - every match's group_size equals its live member count
    - no match has fewer than two members
    """
    result = await session.execute(
        select(Intention.user_id, func.count(Intention.id))
        .where(Intention.status == IntentionStatus.ACTIVE.value)
        .group_by(Intention.user_id)
        .having(func.count(Intention.id) > 1)
    )
    assert result.all() == [], "user with more than one active intention"

    result = await session.execute(
        select(PoolEntry.intention_id, Intention.status)
        .outerjoin(Intention, Intention.id == PoolEntry.intention_id)
    )
    for intention_id, status in result.all():
        assert status == IntentionStatus.ACTIVE.value, (
            f"pool entry for non-active intention {intention_id}"
        )

    result = await session.execute(
        select(PoolEntry.intention_id)
        .join(MatchMember, MatchMember.intention_id == PoolEntry.intention_id)
        .join(Match, Match.id == MatchMember.match_id)
        .where(Match.status == MatchStatus.ACTIVE.value)
    )
    assert result.all() == [], "pooled intention is also in an active match"

    counts = (
        select(MatchMember.match_id, func.count(MatchMember.id).label("n"))
        .group_by(MatchMember.match_id)
        .subquery()
    )
    result = await session.execute(
        select(Match.id, Match.group_size, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.match_id == Match.id)
    )
    for match_id, group_size, live in result.all():
        assert group_size == live, f"match {match_id}: group_size {group_size} != {live} members"
        assert live >= 2, f"match {match_id} has {live} members"


@pytest_asyncio.fixture
async def check_invariants(db_session):
    """Return a coroutine that asserts the matching invariants on db_session."""
    async def _check():
        await db_session.flush()
        await assert_matching_invariants(db_session)

    return _check
