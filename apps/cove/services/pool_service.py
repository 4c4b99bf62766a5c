"""
Pool membership service.

The only place PoolEntry rows are created, removed, or have their tier
changed. Match and intention services call ``consume`` when an intention is
attached to a match and ``release`` when it is detached, always inside the
caller's transaction.

Also hosts the periodic pool housekeeping (tier promotion, expiry, and
re-pooling of orphaned active intentions) run by scripts/pool_maintenance.py.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from cove.database.models import (
    Intention,
    IntentionStatus,
    PoolEntry,
    Match,
    MatchMember,
    MatchStatus,
)
from cove.utils.constants import TIER_1_AFTER_HOURS, TIER_2_AFTER_HOURS, MAX_TIER
from cove.utils.datetime_utils import utcnow
import logging

logger = logging.getLogger(__name__)


async def _is_bound_to_active_match(session: AsyncSession, intention_id: int) -> bool:
    """Check if the intention is pinned by a member row of an active match."""
    result = await session.execute(
        select(MatchMember.id)
        .join(Match, Match.id == MatchMember.match_id)
        .where(
            MatchMember.intention_id == intention_id,
            Match.status == MatchStatus.ACTIVE.value,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def consume(session: AsyncSession, intention_id: int) -> bool:
    """
    Take an intention out of the pool.

    Args:
        session: Database session
        intention_id: Intention whose pool entry should be removed

    Returns:
        True if an entry was deleted, False if there was none
    """
    result = await session.execute(
        delete(PoolEntry).where(PoolEntry.intention_id == intention_id)
    )
    await session.flush()
    return result.rowcount > 0


async def release(session: AsyncSession, intention_id: int) -> Optional[PoolEntry]:
    """
    Put an intention (back) into the pool at tier 0.

    Only active intentions are pooled. A displaced user whose intention has
    been deleted, matched or expired stays out, as does an intention still
    bound to another active match. An existing entry is reset to tier 0.

    Args:
        session: Database session
        intention_id: Intention to pool

    Returns:
        The PoolEntry, or None if the intention is not eligible
    """
    result = await session.execute(select(Intention).where(Intention.id == intention_id))
    intention = result.scalar_one_or_none()
    if not intention or intention.status != IntentionStatus.ACTIVE.value:
        return None
    if await _is_bound_to_active_match(session, intention_id):
        return None

    now = utcnow()
    result = await session.execute(
        select(PoolEntry).where(PoolEntry.intention_id == intention_id)
    )
    entry = result.scalar_one_or_none()
    if entry:
        entry.tier = 0
        entry.joined_at = now
    else:
        entry = PoolEntry(intention_id=intention_id, tier=0, joined_at=now)
        session.add(entry)
    await session.flush()
    return entry


async def promote_tiers(session: AsyncSession, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Widen the search for entries that have waited too long.

    Tier 0 → 1 after TIER_1_AFTER_HOURS in the pool, tier 1 → 2 after
    TIER_2_AFTER_HOURS. Both steps run in order, so a long-waiting tier-0
    entry can move straight to tier 2. Entries never go past MAX_TIER.

    Returns:
        Dict with counts promoted to tier 1 and tier 2
    """
    now = now or utcnow()
    counts = {}
    for target, after_hours in ((1, TIER_1_AFTER_HOURS), (2, TIER_2_AFTER_HOURS)):
        if target > MAX_TIER:
            counts[f"tier_{target}"] = 0
            continue
        result = await session.execute(
            update(PoolEntry)
            .where(
                PoolEntry.tier == target - 1,
                PoolEntry.joined_at < now - timedelta(hours=after_hours),
            )
            .values(tier=target)
            .execution_options(synchronize_session=False)
        )
        counts[f"tier_{target}"] = result.rowcount
    await session.flush()
    return counts


async def expire_intentions(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Expire active intentions past their valid_until and drop their pool entries.

    Returns:
        Number of intentions expired
    """
    now = now or utcnow()
    result = await session.execute(
        select(Intention.id).where(
            Intention.status == IntentionStatus.ACTIVE.value,
            Intention.valid_until < now,
        )
    )
    expired_ids = list(result.scalars().all())
    if not expired_ids:
        return 0

    await session.execute(
        delete(PoolEntry)
        .where(PoolEntry.intention_id.in_(expired_ids))
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        update(Intention)
        .where(Intention.id.in_(expired_ids))
        .values(status=IntentionStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return len(expired_ids)


async def reconcile_pool(session: AsyncSession) -> int:
    """
    Re-pool active intentions that have fallen out of the pool.

    Declining a match, or being the removed half of a dissolved pair, leaves
    an active intention with no pool entry and no active match. This sweep
    releases every such intention back to tier 0.

    Returns:
        Number of intentions released
    """
    bound = (
        select(MatchMember.intention_id)
        .join(Match, Match.id == MatchMember.match_id)
        .where(
            Match.status == MatchStatus.ACTIVE.value,
            MatchMember.intention_id.isnot(None),
        )
    )
    pooled = select(PoolEntry.intention_id)
    result = await session.execute(
        select(Intention.id).where(
            Intention.status == IntentionStatus.ACTIVE.value,
            Intention.id.not_in(pooled),
            Intention.id.not_in(bound),
        )
    )
    released = 0
    for intention_id in result.scalars().all():
        if await release(session, intention_id):
            released += 1
    return released


async def run_maintenance(session: AsyncSession, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Run one pool housekeeping pass: promote tiers, expire, then re-pool orphans.

    Returns:
        Dict of counts for each step
    """
    now = now or utcnow()
    promoted = await promote_tiers(session, now)
    logger.info(
        f"Promoted {promoted['tier_1']} entries to tier 1, {promoted['tier_2']} to tier 2"
    )
    expired = await expire_intentions(session, now)
    logger.info(f"Expired {expired} intentions")
    released = await reconcile_pool(session)
    logger.info(f"Released {released} orphaned intentions back into the pool")
    return {
        "promoted_tier_1": promoted["tier_1"],
        "promoted_tier_2": promoted["tier_2"],
        "expired": expired,
        "released": released,
    }
