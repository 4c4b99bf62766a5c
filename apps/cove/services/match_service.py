"""
Match service: creating matches and moving them through their lifecycle.

A match starts ``active`` and ends either ``accepted`` (a direct thread is
linked and both intentions become ``matched``) or ``declined``. Creating a
match binds each member's active intention and takes it out of the pool.
The batch matcher and the admin panel both go through ``create_match``.
"""

from datetime import timedelta
from typing import Dict, List, Optional, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from cove.database.models import (
    Intention,
    IntentionStatus,
    Match,
    MatchMember,
    MatchStatus,
    MatchFeedback,
)
from cove.services import intention_service, pool_service, thread_service, user_service
from cove.services.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from cove.utils.constants import ACCEPTABLE_GROUP_SIZE, MATCH_TTL_DAYS
from cove.utils.datetime_utils import utcnow, to_iso
import logging

logger = logging.getLogger(__name__)

RELAXED_CONSTRAINTS_BY_TIER = {
    1: ["Expanded search radius to adjacent areas"],
    2: ["Expanded search radius to region", "Adjacent time windows included"],
}


# ──────────────────────────────────────────────────────────────
# Helpers shared with the membership editor
# ──────────────────────────────────────────────────────────────


async def get_match(session: AsyncSession, match_id: int, for_update: bool = False) -> Match:
    """
    Load a match, optionally locking its row for the rest of the transaction.

    Raises:
        NotFoundError: If the match does not exist
    """
    query = select(Match).where(Match.id == match_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    match = result.scalar_one_or_none()
    if not match:
        raise NotFoundError("Match not found")
    return match


async def get_members(session: AsyncSession, match_id: int) -> List[MatchMember]:
    """Get a match's member rows in join order."""
    result = await session.execute(
        select(MatchMember).where(MatchMember.match_id == match_id).order_by(MatchMember.id)
    )
    return list(result.scalars().all())


async def sync_group_size(session: AsyncSession, match: Match) -> int:
    """Set match.group_size to the live member count and return it."""
    await session.flush()
    result = await session.execute(
        select(func.count(MatchMember.id)).where(MatchMember.match_id == match.id)
    )
    match.group_size = result.scalar_one()
    await session.flush()
    return match.group_size


async def ensure_not_in_active_match(
    session: AsyncSession, intention_ids: List[int], exclude_match_id: Optional[int] = None
) -> None:
    """
    Refuse to bind an intention that already belongs to an active match.

    Raises:
        ConflictError: If any of the intentions is already in an active match
    """
    if not intention_ids:
        return
    query = (
        select(MatchMember.intention_id, MatchMember.match_id)
        .join(Match, Match.id == MatchMember.match_id)
        .where(
            MatchMember.intention_id.in_(intention_ids),
            Match.status == MatchStatus.ACTIVE.value,
        )
    )
    if exclude_match_id is not None:
        query = query.where(Match.id != exclude_match_id)
    result = await session.execute(query.limit(1))
    row = result.first()
    if row:
        raise ConflictError(
            f"Intention {row.intention_id} is already part of active match {row.match_id}"
        )


def format_match(match: Match, members: List[MatchMember]) -> Dict:
    """Convert Match model and its member rows to response dict."""
    return {
        "id": match.id,
        "group_size": match.group_size,
        "score": match.score,
        "tier_used": match.tier_used,
        "status": match.status,
        "thread_id": match.thread_id,
        "created_at": to_iso(match.created_at),
        "expires_at": to_iso(match.expires_at),
        "members": [
            {"user_id": m.user_id, "intention_id": m.intention_id} for m in members
        ],
    }


def _find_member(members: List[MatchMember], user_id: int) -> Optional[MatchMember]:
    return next((m for m in members if m.user_id == user_id), None)


# ──────────────────────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────────────────────


async def create_match(
    session: AsyncSession,
    user_ids: List[int],
    tier_used: Optional[int] = None,
    score: Optional[float] = None,
) -> Dict:
    """
    Create an active match from users who each hold an active intention.

    Each user's active intention is bound through a MatchMember row and its
    pool entry is consumed, all in the caller's transaction.

    Args:
        session: Database session
        user_ids: Two or more distinct user IDs
        tier_used: Relaxation tier the matcher used (optional)
        score: Compatibility score (optional)

    Returns:
        Dict with match data and members

    Raises:
        BadRequestError: Fewer than 2 users, duplicates, or a user without an active intention
        NotFoundError: If a user does not exist
        ConflictError: If an intention is already part of an active match
    """
    if not isinstance(user_ids, list) or len(user_ids) < 2:
        raise BadRequestError("At least 2 users are required to create a match")
    if len(set(user_ids)) != len(user_ids):
        raise BadRequestError("A user cannot appear twice in the same match")

    existing = await user_service.get_existing_user_ids(session, user_ids)
    missing = [uid for uid in user_ids if uid not in existing]
    if missing:
        raise NotFoundError(f"User {missing[0]} not found")

    intentions = await intention_service.get_active_intentions_for_users(session, user_ids)
    lacking = [uid for uid in user_ids if uid not in intentions]
    if lacking:
        raise BadRequestError(f"User {lacking[0]} does not have an active intention")

    intention_ids = [intentions[uid].id for uid in user_ids]
    await ensure_not_in_active_match(session, intention_ids)

    now = utcnow()
    match = Match(
        group_size=len(user_ids),
        score=score,
        tier_used=tier_used,
        status=MatchStatus.ACTIVE.value,
        created_at=now,
        expires_at=now + timedelta(days=MATCH_TTL_DAYS),
    )
    session.add(match)
    await session.flush()

    members = [
        MatchMember(match_id=match.id, user_id=uid, intention_id=intentions[uid].id)
        for uid in user_ids
    ]
    session.add_all(members)
    await session.flush()

    for intention_id in intention_ids:
        await pool_service.consume(session, intention_id)

    logger.info(
        f"Created match {match.id} for users {user_ids} (tier={tier_used}, score={score})"
    )
    return format_match(match, members)


async def accept_match(session: AsyncSession, user_id: int, match_id: int) -> Dict:
    """
    Accept a pair match and link it to a direct thread.

    Reuses an existing thread between the two members if there is one,
    marks the match accepted, and marks both intentions matched. Accepting
    an already accepted match returns its thread again.

    Args:
        session: Database session
        user_id: Accepting member
        match_id: Match ID

    Returns:
        Dict with match_id, status and thread_id

    Raises:
        NotFoundError: If the match does not exist
        ForbiddenError: If the caller is not a member
        BadRequestError: If the match is not a pair or was declined
    """
    match = await get_match(session, match_id, for_update=True)
    members = await get_members(session, match_id)

    if not _find_member(members, user_id):
        raise ForbiddenError("Not authorized to accept this match")
    if match.group_size != ACCEPTABLE_GROUP_SIZE:
        raise BadRequestError("Group matches not yet supported for acceptance")
    if match.status == MatchStatus.DECLINED.value:
        raise BadRequestError("Match has already been declined")
    if match.status == MatchStatus.ACCEPTED.value:
        return {"match_id": match.id, "status": match.status, "thread_id": match.thread_id}

    other = next((m for m in members if m.user_id != user_id), None)
    if other is None:
        raise RuntimeError(f"Match {match_id} data corrupted: no other member")

    thread_id = await thread_service.find_or_create_direct_thread(
        session, user_id, other.user_id
    )
    match.status = MatchStatus.ACCEPTED.value
    match.thread_id = thread_id

    intention_ids = [m.intention_id for m in members if m.intention_id is not None]
    if intention_ids:
        await session.execute(
            update(Intention)
            .where(Intention.id.in_(intention_ids))
            .values(status=IntentionStatus.MATCHED.value)
        )
    await session.flush()

    logger.info(f"User {user_id} accepted match {match_id} (thread {thread_id})")
    return {"match_id": match.id, "status": match.status, "thread_id": thread_id}


async def decline_match(session: AsyncSession, user_id: int, match_id: int) -> Dict:
    """
    Decline a match.

    Members' intentions stay active but are NOT put back into the pool here;
    the pool maintenance sweep re-pools them on its next run.

    Raises:
        NotFoundError: If the match does not exist
        ForbiddenError: If the caller is not a member
        BadRequestError: If the match was already accepted
    """
    match = await get_match(session, match_id, for_update=True)
    members = await get_members(session, match_id)

    if not _find_member(members, user_id):
        raise ForbiddenError("Not authorized to decline this match")
    if match.status == MatchStatus.ACCEPTED.value:
        raise BadRequestError("Match has already been accepted")

    if match.status == MatchStatus.ACTIVE.value:
        match.status = MatchStatus.DECLINED.value
        await session.flush()
        logger.info(f"User {user_id} declined match {match_id}")

    return {"match_id": match.id, "status": match.status}


async def submit_feedback(
    session: AsyncSession,
    user_id: int,
    match_id: int,
    matched_on: Any,
    was_accurate: Optional[bool] = None,
) -> Dict:
    """
    Record a member's feedback on a match. Repeat submissions are kept.

    Raises:
        BadRequestError: If matched_on is not a list of strings
        NotFoundError: If the match does not exist
        ForbiddenError: If the caller is not a member
    """
    if not isinstance(matched_on, list) or not all(isinstance(x, str) for x in matched_on):
        raise BadRequestError("Invalid request: matched_on array required")

    await get_match(session, match_id)
    members = await get_members(session, match_id)
    if not _find_member(members, user_id):
        raise ForbiddenError("Not authorized to provide feedback for this match")

    feedback = MatchFeedback(
        match_id=match_id,
        user_id=user_id,
        matched_on=matched_on,
        was_accurate=was_accurate,
    )
    session.add(feedback)
    await session.flush()
    return {
        "id": feedback.id,
        "match_id": match_id,
        "user_id": user_id,
        "matched_on": matched_on,
        "was_accurate": was_accurate,
    }


# ──────────────────────────────────────────────────────────────
# Read side
# ──────────────────────────────────────────────────────────────


def derive_matched_on(
    chips: Optional[Dict], other_chips: Optional[Dict], alma_mater: Optional[str] = None
) -> List[str]:
    """
    Explain a match from the two members' chips.

    Lists shared activities, shared time windows, the shared location, and
    the other member's alumni network.
    """
    chips = chips or {}
    other_chips = other_chips or {}
    matched_on = []

    activities = (chips.get("what") or {}).get("activities") or []
    other_activities = (other_chips.get("what") or {}).get("activities") or []
    common_activities = [a for a in activities if a in other_activities]
    if common_activities:
        matched_on.append(f"Activity: {', '.join(common_activities)}")

    times = chips.get("when") or []
    other_times = other_chips.get("when") or []
    common_times = [t for t in times if t in other_times]
    if common_times:
        matched_on.append(f"Time: {', '.join(common_times)}")

    if chips.get("where") and chips.get("where") == other_chips.get("where"):
        matched_on.append(f"Location: {chips['where']}")

    if alma_mater:
        matched_on.append(f"Alumni network: {alma_mater}")

    return matched_on


def relaxed_constraints(tier_used: Optional[int]) -> List[str]:
    """Describe which search constraints the matcher relaxed for a tier."""
    return list(RELAXED_CONSTRAINTS_BY_TIER.get(tier_used or 0, []))


async def get_current_match(session: AsyncSession, user_id: int) -> Dict:
    """
    Get the caller's active match with the other member's public profile.

    Returns:
        Dict with has_match and match (None when there is no active match)
    """
    result = await session.execute(
        select(Match)
        .join(MatchMember, MatchMember.match_id == Match.id)
        .where(MatchMember.user_id == user_id, Match.status == MatchStatus.ACTIVE.value)
        .order_by(Match.created_at.desc(), Match.id.desc())
        .limit(1)
    )
    match = result.scalar_one_or_none()
    if not match:
        return {"has_match": False, "match": None}

    members = await get_members(session, match.id)
    current = _find_member(members, user_id)
    others = [m for m in members if m.user_id != user_id]
    if not others:
        raise RuntimeError(f"Match {match.id} data corrupted: no other member")

    intention_ids = [m.intention_id for m in members if m.intention_id is not None]
    result = await session.execute(select(Intention).where(Intention.id.in_(intention_ids)))
    chips_by_intention = {i.id: i.parsed_json for i in result.scalars().all()}
    profiles = await user_service.get_public_profiles(session, [m.user_id for m in others])

    other = others[0]
    other_profile = profiles.get(other.user_id, {})
    matched_on = derive_matched_on(
        chips_by_intention.get(current.intention_id),
        chips_by_intention.get(other.intention_id),
        other_profile.get("alma_mater"),
    )

    def _public(profile: Dict) -> Dict:
        return {k: v for k, v in profile.items() if k != "phone_number"}

    return {
        "has_match": True,
        "match": {
            "id": match.id,
            "matched_user_id": other.user_id,
            "score": match.score,
            "tier_used": match.tier_used,
            "matched_on": matched_on,
            "relaxed_constraints": relaxed_constraints(match.tier_used),
            "created_at": to_iso(match.created_at),
            "expires_at": to_iso(match.expires_at),
            "group_size": match.group_size,
            "user": _public(other_profile),
            "others": [_public(profiles.get(m.user_id, {})) for m in others],
        },
    }


async def list_matches(session: AsyncSession) -> Dict:
    """
    Admin listing of every match, newest first, with member details.

    Returns:
        Dict with matches and count
    """
    result = await session.execute(
        select(Match).order_by(Match.created_at.desc(), Match.id.desc())
    )
    matches = list(result.scalars().all())
    if not matches:
        return {"matches": [], "count": 0}

    result = await session.execute(
        select(MatchMember)
        .where(MatchMember.match_id.in_([m.id for m in matches]))
        .order_by(MatchMember.id)
    )
    members_by_match: Dict[int, List[MatchMember]] = {}
    for member in result.scalars().all():
        members_by_match.setdefault(member.match_id, []).append(member)

    user_ids = list({m.user_id for ms in members_by_match.values() for m in ms})
    profiles = await user_service.get_public_profiles(session, user_ids)

    formatted = []
    for match in matches:
        data = format_match(match, members_by_match.get(match.id, []))
        data["members"] = [
            {**profiles.get(m.user_id, {"user_id": m.user_id}), "intention_id": m.intention_id}
            for m in members_by_match.get(match.id, [])
        ]
        formatted.append(data)
    return {"matches": formatted, "count": len(formatted)}
