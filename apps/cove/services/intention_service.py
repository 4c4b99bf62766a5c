"""
Intention service: a user's standing request to be matched.

Handles creating an intention (and its pool entry), reporting pool status,
and deleting an intention. At most one intention per user may be active.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, delete, update
from cove.database.models import (
    User,
    Intention,
    IntentionStatus,
    PoolEntry,
    Match,
    MatchMember,
    MatchStatus,
)
from cove.services import pool_service
from cove.services.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from cove.utils.constants import BATCH_INTERVAL_HOURS, INTENTION_KINDS, INTENTION_TTL_HOURS
from cove.utils.datetime_utils import utcnow, ensure_utc, to_iso
import logging

logger = logging.getLogger(__name__)


def next_batch_eta(now: Optional[datetime] = None) -> datetime:
    """
    Estimate when the batch matcher next runs.

    The matcher runs every BATCH_INTERVAL_HOURS on the UTC clock (00:00,
    03:00, 06:00, ...). The estimate is the first such boundary strictly
    after ``now``. Advisory only; nothing is scheduled from it.

    Args:
        now: Reference time (defaults to the current UTC time)

    Returns:
        Timezone-aware UTC datetime of the next boundary
    """
    now = ensure_utc(now) if now else utcnow()
    next_hour = (now.hour // BATCH_INTERVAL_HOURS + 1) * BATCH_INTERVAL_HOURS
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(hours=next_hour)


def parse_chips(chips: Any) -> Dict:
    """
    Validate intention chips and pull out the fields the matcher relies on.

    Current format:
        {"what": {"intention": "friends", "activities": [...]},
         "when": [...], "where": "Palo Alto", ...}

    Legacy format (what.notes instead of what.intention, location under
    "location") is still accepted from older app builds.

    Returns:
        Dict with intention, activities, availability, location

    Raises:
        BadRequestError: If chips are missing or incomplete
    """
    if not chips or not isinstance(chips, dict):
        raise BadRequestError("Invalid request: chips required")

    what = chips.get("what") or {}
    if not isinstance(what, dict):
        what = {}

    if what.get("intention"):
        intention = what["intention"]
        location = chips.get("where") or ""
    elif what.get("notes"):
        notes = str(what["notes"]).lower()
        intention = "romantic" if ("dating" in notes or "romantic" in notes) else "friends"
        location = chips.get("location") or ""
    else:
        raise BadRequestError(
            "Invalid request: chips must include what.intention, what.activities, when, and where"
        )
    activities = what.get("activities") or []
    availability = chips.get("when") or []

    if intention not in INTENTION_KINDS:
        raise BadRequestError('Invalid intention: must be "friends" or "romantic"')

    if not isinstance(activities, list) or not isinstance(availability, list):
        raise BadRequestError("Invalid request: activities and availability must be arrays")

    if not activities or not availability or not location:
        raise BadRequestError(
            "Invalid request: activities, availability, and location are required"
        )

    return {
        "intention": intention,
        "activities": activities,
        "availability": availability,
        "location": location,
    }


def format_intention(intention: Intention) -> Dict:
    """Convert Intention model to response dict."""
    return {
        "id": intention.id,
        "user_id": intention.user_id,
        "text": intention.text,
        "parsed_json": intention.parsed_json,
        "status": intention.status,
        "created_at": to_iso(intention.created_at),
        "valid_until": to_iso(intention.valid_until),
    }


def format_pool_entry(entry: Optional[PoolEntry], now: Optional[datetime] = None) -> Optional[Dict]:
    """Convert PoolEntry model to response dict, including the batch ETA."""
    if entry is None:
        return None
    return {
        "intention_id": entry.intention_id,
        "tier": entry.tier,
        "joined_at": to_iso(entry.joined_at),
        "next_batch_eta": to_iso(next_batch_eta(now)),
    }


async def get_active_intention(session: AsyncSession, user_id: int) -> Optional[Intention]:
    """
    Get the user's active intention, if any.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        Intention or None
    """
    result = await session.execute(
        select(Intention).where(
            Intention.user_id == user_id,
            Intention.status == IntentionStatus.ACTIVE.value,
        )
    )
    return result.scalar_one_or_none()


async def get_active_intentions_for_users(
    session: AsyncSession, user_ids: List[int]
) -> Dict[int, Intention]:
    """Batch-fetch active intentions keyed by user_id."""
    if not user_ids:
        return {}
    result = await session.execute(
        select(Intention).where(
            Intention.user_id.in_(user_ids),
            Intention.status == IntentionStatus.ACTIVE.value,
        )
    )
    return {intention.user_id: intention for intention in result.scalars().all()}


async def get_pool_entry(session: AsyncSession, intention_id: int) -> Optional[PoolEntry]:
    """Get the pool entry for an intention, if any."""
    result = await session.execute(
        select(PoolEntry).where(PoolEntry.intention_id == intention_id)
    )
    return result.scalar_one_or_none()


async def has_active_match(session: AsyncSession, user_id: int) -> bool:
    """Check if the user is a member of any active match."""
    result = await session.execute(
        select(MatchMember.id)
        .join(Match, Match.id == MatchMember.match_id)
        .where(
            MatchMember.user_id == user_id,
            Match.status == MatchStatus.ACTIVE.value,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def create_intention(session: AsyncSession, user_id: int, chips: Any) -> Dict:
    """
    Create a new intention and enter the user into the matching pool.

    The intention and its tier-0 pool entry are written in the caller's
    transaction, so either both exist afterwards or neither does.

    Args:
        session: Database session
        user_id: Owner of the intention
        chips: Structured preferences (stored verbatim as parsed_json)

    Returns:
        Dict with intention, pool_entry and next_batch_eta

    Raises:
        BadRequestError: If chips are missing or invalid
        ConflictError: If the user already has an active intention
    """
    parse_chips(chips)

    existing = await get_active_intention(session, user_id)
    if existing:
        raise ConflictError(
            "User already has an active intention. Please delete or update it first."
        )

    now = utcnow()
    intention = Intention(
        user_id=user_id,
        text="",
        parsed_json=chips,
        status=IntentionStatus.ACTIVE.value,
        created_at=now,
        valid_until=now + timedelta(hours=INTENTION_TTL_HOURS),
    )
    session.add(intention)
    try:
        await session.flush()
    except IntegrityError:
        # A concurrent request won the partial unique index on (user_id) WHERE active
        raise ConflictError(
            "User already has an active intention. Please delete or update it first."
        )

    pool_entry = await pool_service.release(session, intention.id)
    logger.info(f"Created intention {intention.id} for user {user_id}")

    eta = next_batch_eta(now)
    return {
        "intention": format_intention(intention),
        "pool_entry": format_pool_entry(pool_entry, now),
        "next_batch_eta": to_iso(eta),
    }


async def get_status(session: AsyncSession, user_id: int) -> Dict:
    """
    Report the user's current intention and pool status.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        Dict with has_intention, intention, pool_entry, has_match, user_name
    """
    result = await session.execute(select(User.name).where(User.id == user_id))
    user_name = result.scalar_one_or_none()
    has_match = await has_active_match(session, user_id)

    intention = await get_active_intention(session, user_id)
    if not intention:
        return {
            "has_intention": False,
            "intention": None,
            "pool_entry": None,
            "has_match": has_match,
            "user_name": user_name or "there",
        }

    pool_entry = await get_pool_entry(session, intention.id)
    return {
        "has_intention": True,
        "intention": format_intention(intention),
        "pool_entry": format_pool_entry(pool_entry),
        "has_match": has_match,
        "user_name": user_name or "there",
    }


async def delete_intention(session: AsyncSession, user_id: int, intention_id: int) -> None:
    """
    Delete an intention and remove it from the pool.

    Match membership is left alone; dissolving a match the intention
    belongs to is an admin action.

    Args:
        session: Database session
        user_id: Caller (must own the intention)
        intention_id: Intention ID

    Raises:
        NotFoundError: If the intention does not exist
        ForbiddenError: If the caller does not own it
    """
    result = await session.execute(select(Intention).where(Intention.id == intention_id))
    intention = result.scalar_one_or_none()

    if not intention:
        raise NotFoundError("Intention not found")
    if intention.user_id != user_id:
        raise ForbiddenError("Not authorized to delete this intention")

    await pool_service.consume(session, intention_id)
    # Memberships survive (group sizes stay intact) but lose their intention
    await session.execute(
        update(MatchMember)
        .where(MatchMember.intention_id == intention_id)
        .values(intention_id=None)
    )
    await session.execute(delete(Intention).where(Intention.id == intention_id))
    await session.flush()
    logger.info(f"Deleted intention {intention_id} for user {user_id}")
