"""
Administrative corrections to match membership.

Every operation takes an already-resolved Caller and refuses non-admins.
Edits run inside the caller's transaction and lock the touched match rows,
so two admins editing the same match serialise on the database.

A match never survives with fewer than two members: taking a member out of
a pair deletes the match and puts the remaining member back into the pool.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from cove.database.models import Match, MatchMember, MatchStatus
from cove.services import intention_service, match_service, pool_service, user_service
from cove.services.exceptions import BadRequestError, ForbiddenError, NotFoundError
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """The authenticated user performing an edit."""

    id: int
    is_admin: bool = False


def _require_admin(caller: Caller) -> None:
    if not caller or not caller.is_admin:
        raise ForbiddenError("Admin access required")


async def _lock_matches(session: AsyncSession, match_ids: List[int]) -> Dict[int, Match]:
    """Lock the given matches in ID order and return them keyed by ID."""
    result = await session.execute(
        select(Match).where(Match.id.in_(match_ids)).order_by(Match.id).with_for_update()
    )
    matches = {m.id: m for m in result.scalars().all()}
    for match_id in match_ids:
        if match_id not in matches:
            raise NotFoundError(f"Match {match_id} not found")
    return matches


async def _dissolve(session: AsyncSession, match: Match, members: List[MatchMember]) -> List[int]:
    """
    Delete a match with all its member rows.

    Returns:
        The intention IDs the members were bound to
    """
    intention_ids = [m.intention_id for m in members if m.intention_id is not None]
    await session.execute(delete(MatchMember).where(MatchMember.match_id == match.id))
    await session.delete(match)
    await session.flush()
    return intention_ids


async def _release_all(session: AsyncSession, intention_ids: List[int]) -> List[int]:
    released = []
    for intention_id in intention_ids:
        if await pool_service.release(session, intention_id):
            released.append(intention_id)
    return released


async def create_match_manually(
    session: AsyncSession,
    caller: Caller,
    user_ids: List[int],
    tier_used: Optional[int] = None,
    score: Optional[float] = None,
) -> Dict:
    """Admin entry point onto match_service.create_match."""
    _require_admin(caller)
    match = await match_service.create_match(session, user_ids, tier_used=tier_used, score=score)
    logger.info(f"Admin {caller.id} created match {match['id']} manually")
    return match


async def add_member(session: AsyncSession, caller: Caller, match_id: int, user_id: int) -> Dict:
    """
    Add a user to an active match, binding their active intention.

    Args:
        session: Database session
        caller: Resolved caller (must be admin)
        match_id: Match to extend
        user_id: User to add

    Returns:
        Updated match dict

    Raises:
        ForbiddenError: If the caller is not an admin
        NotFoundError: If the match or user does not exist
        BadRequestError: If the match is not active, the user is already a
            member, or the user has no active intention
        ConflictError: If the intention is bound to another active match
    """
    _require_admin(caller)
    matches = await _lock_matches(session, [match_id])
    match = matches[match_id]

    if not await user_service.user_exists(session, user_id):
        raise NotFoundError("User not found")
    if match.status != MatchStatus.ACTIVE.value:
        raise BadRequestError("Only active matches can gain members")

    members = await match_service.get_members(session, match_id)
    if any(m.user_id == user_id for m in members):
        raise BadRequestError("User is already a member of this match")

    intention = await intention_service.get_active_intention(session, user_id)
    if not intention:
        raise BadRequestError("User does not have an active intention")
    await match_service.ensure_not_in_active_match(session, [intention.id])

    session.add(MatchMember(match_id=match_id, user_id=user_id, intention_id=intention.id))
    await match_service.sync_group_size(session, match)
    await pool_service.consume(session, intention.id)

    logger.info(f"Admin {caller.id} added user {user_id} to match {match_id}")
    return match_service.format_match(match, await match_service.get_members(session, match_id))


async def remove_member(
    session: AsyncSession,
    caller: Caller,
    match_id: int,
    user_id: int,
    return_to_pool: bool = False,
) -> Dict:
    """
    Remove a user from a match.

    Removing one half of a pair deletes the match and releases the remaining
    member; the removed member is left alone in that case, whatever
    return_to_pool says. From a larger match only the member row goes, and
    return_to_pool decides whether the removed member is re-pooled.

    Returns:
        Dict with match_deleted, the match (None when deleted) and the
        released intention IDs

    Raises:
        ForbiddenError: If the caller is not an admin
        NotFoundError: If the match or the membership does not exist
    """
    _require_admin(caller)
    matches = await _lock_matches(session, [match_id])
    match = matches[match_id]

    members = await match_service.get_members(session, match_id)
    target = next((m for m in members if m.user_id == user_id), None)
    if not target:
        raise NotFoundError("User is not a member of this match")

    if len(members) <= 2:
        remaining = [m for m in members if m.user_id != user_id]
        remaining_intentions = [m.intention_id for m in remaining if m.intention_id is not None]
        await _dissolve(session, match, members)
        released = await _release_all(session, remaining_intentions)
        logger.info(
            f"Admin {caller.id} removed user {user_id} from pair match {match_id}; "
            f"match deleted, released intentions {released}"
        )
        return {"match_deleted": True, "match": None, "released_intention_ids": released}

    intention_id = target.intention_id
    await session.delete(target)
    await session.flush()
    await match_service.sync_group_size(session, match)

    released = []
    if return_to_pool and intention_id is not None:
        released = await _release_all(session, [intention_id])

    logger.info(
        f"Admin {caller.id} removed user {user_id} from match {match_id} "
        f"(return_to_pool={return_to_pool})"
    )
    return {
        "match_deleted": False,
        "match": match_service.format_match(match, await match_service.get_members(session, match_id)),
        "released_intention_ids": released,
    }


async def move_member(
    session: AsyncSession,
    caller: Caller,
    user_id: int,
    from_match_id: int,
    to_match_id: int,
) -> Dict:
    """
    Move a user from one match to another, keeping their intention binding.

    If the source is a pair it is deleted and its other member released to
    the pool; otherwise the source just shrinks. The destination grows by
    one and the moved intention's pool entry (if any) is consumed.

    Raises:
        ForbiddenError: If the caller is not an admin
        NotFoundError: If either match does not exist or the user is not in the source
        BadRequestError: If source and destination are the same, the destination
            is not active, or the user is already in the destination
        ConflictError: If the moved intention is bound to another active match
    """
    _require_admin(caller)
    if from_match_id == to_match_id:
        raise BadRequestError("Source and destination match must differ")

    matches = await _lock_matches(session, [from_match_id, to_match_id])
    from_match = matches[from_match_id]
    to_match = matches[to_match_id]

    from_members = await match_service.get_members(session, from_match_id)
    moving = next((m for m in from_members if m.user_id == user_id), None)
    if not moving:
        raise NotFoundError("User is not a member of the source match")
    if to_match.status != MatchStatus.ACTIVE.value:
        raise BadRequestError("Only active matches can gain members")
    to_members = await match_service.get_members(session, to_match_id)
    if any(m.user_id == user_id for m in to_members):
        raise BadRequestError("User is already a member of the destination match")

    intention_id = moving.intention_id
    if intention_id is not None:
        await match_service.ensure_not_in_active_match(
            session, [intention_id], exclude_match_id=from_match_id
        )

    source_deleted = len(from_members) <= 2
    released = []
    if source_deleted:
        others = [
            m.intention_id
            for m in from_members
            if m.user_id != user_id and m.intention_id is not None
        ]
        await _dissolve(session, from_match, from_members)
        released = await _release_all(session, others)
    else:
        await session.delete(moving)
        await session.flush()
        await match_service.sync_group_size(session, from_match)

    session.add(MatchMember(match_id=to_match_id, user_id=user_id, intention_id=intention_id))
    await match_service.sync_group_size(session, to_match)
    if intention_id is not None:
        await pool_service.consume(session, intention_id)

    logger.info(
        f"Admin {caller.id} moved user {user_id} from match {from_match_id} to {to_match_id} "
        f"(source_deleted={source_deleted})"
    )
    return {
        "source_deleted": source_deleted,
        "from_match": None
        if source_deleted
        else match_service.format_match(
            from_match, await match_service.get_members(session, from_match_id)
        ),
        "to_match": match_service.format_match(
            to_match, await match_service.get_members(session, to_match_id)
        ),
        "released_intention_ids": released,
    }


async def delete_match(
    session: AsyncSession, caller: Caller, match_id: int, return_to_pool: bool = False
) -> Dict:
    """
    Delete a match and its member rows, optionally re-pooling the members.

    Raises:
        ForbiddenError: If the caller is not an admin
        NotFoundError: If the match does not exist
    """
    _require_admin(caller)
    matches = await _lock_matches(session, [match_id])
    match = matches[match_id]

    members = await match_service.get_members(session, match_id)
    intention_ids = await _dissolve(session, match, members)
    released = await _release_all(session, intention_ids) if return_to_pool else []

    logger.info(
        f"Admin {caller.id} deleted match {match_id} (return_to_pool={return_to_pool}, "
        f"released={released})"
    )
    return {"deleted": True, "match_id": match_id, "released_intention_ids": released}
