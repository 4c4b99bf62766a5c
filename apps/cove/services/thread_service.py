"""
Thread lookup for accepted matches.

Messaging itself lives elsewhere; this module only guarantees that a pair
of users shares exactly one direct thread.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case
from cove.database.models import Thread, ThreadMember
import logging

logger = logging.getLogger(__name__)


async def find_direct_thread(session: AsyncSession, user_id: int, other_user_id: int):
    """
    Find a thread whose members are exactly the two given users.

    Returns:
        Thread ID or None
    """
    pair = sorted({user_id, other_user_id})
    result = await session.execute(
        select(ThreadMember.thread_id)
        .group_by(ThreadMember.thread_id)
        .having(
            func.count(ThreadMember.id) == len(pair),
            func.sum(case((ThreadMember.user_id.in_(pair), 1), else_=0)) == len(pair),
        )
        .order_by(ThreadMember.thread_id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_or_create_direct_thread(
    session: AsyncSession, user_id: int, other_user_id: int
) -> int:
    """
    Reuse the existing direct thread between two users, or create one.

    Args:
        session: Database session
        user_id: First participant
        other_user_id: Second participant

    Returns:
        Thread ID
    """
    thread_id = await find_direct_thread(session, user_id, other_user_id)
    if thread_id:
        return thread_id

    thread = Thread()
    session.add(thread)
    await session.flush()
    session.add_all(
        [
            ThreadMember(thread_id=thread.id, user_id=user_id),
            ThreadMember(thread_id=thread.id, user_id=other_user_id),
        ]
    )
    await session.flush()
    logger.info(f"Created thread {thread.id} for users {user_id} and {other_user_id}")
    return thread.id
