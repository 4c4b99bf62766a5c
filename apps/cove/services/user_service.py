"""
User service layer: user lookups and the admin matching-details view.
"""

from typing import Optional, Dict, List, Set, Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from cove.database.models import User, Profile, Intention, IntentionStatus
from cove.services import intention_service, survey_service
from cove.services.exceptions import NotFoundError
from cove.utils.datetime_utils import to_iso
import logging

logger = logging.getLogger(__name__)

# How many retired intentions the admin details view shows
PAST_INTENTIONS_LIMIT = 10


def _user_to_dict(user: User) -> Dict:
    """Convert User model to the dict handed to route dependencies."""
    return {
        "id": user.id,
        "name": user.name,
        "phone_number": user.phone_number,
        "is_superadmin": bool(user.is_superadmin),
        "created_at": to_iso(user.created_at),
    }


async def create_user(
    session: AsyncSession,
    phone_number: str,
    name: Optional[str] = None,
    is_superadmin: bool = False,
) -> int:
    """
    Create a new user account.

    Args:
        session: Database session
        phone_number: Phone number in E.164 format
        name: Optional display name
        is_superadmin: Grant platform-wide admin rights

    Returns:
        User ID of the created user

    Raises:
        ValueError: If a user with this phone number already exists
    """
    result = await session.execute(select(User.id).where(User.phone_number == phone_number))
    if result.scalar_one_or_none():
        raise ValueError(f"Phone number {phone_number} is already registered")

    user = User(phone_number=phone_number, name=name, is_superadmin=is_superadmin)
    session.add(user)
    await session.flush()
    return user.id


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def user_exists(session: AsyncSession, user_id: int) -> bool:
    """Check whether a user row exists."""
    result = await session.execute(select(User.id).where(User.id == user_id))
    return result.scalar_one_or_none() is not None


async def get_existing_user_ids(session: AsyncSession, user_ids: Iterable[int]) -> Set[int]:
    """Return the subset of ``user_ids`` that belong to real users."""
    ids = list(user_ids)
    if not ids:
        return set()
    result = await session.execute(select(User.id).where(User.id.in_(ids)))
    return set(result.scalars().all())


async def get_public_profiles(session: AsyncSession, user_ids: List[int]) -> Dict[int, Dict]:
    """
    Batch-fetch the name and public profile fields for a set of users.

    Returns:
        Dict keyed by user_id; users without a profile get None fields
    """
    if not user_ids:
        return {}
    result = await session.execute(
        select(User, Profile)
        .outerjoin(Profile, Profile.user_id == User.id)
        .where(User.id.in_(user_ids))
    )
    profiles = {}
    for user, profile in result.all():
        profiles[user.id] = {
            "user_id": user.id,
            "name": user.name,
            "phone_number": user.phone_number,
            "age": profile.age if profile else None,
            "gender": profile.gender if profile else None,
            "bio": profile.bio if profile else None,
            "alma_mater": profile.alma_mater if profile else None,
            "city": profile.city if profile else None,
        }
    return profiles


async def get_user_matching_details(session: AsyncSession, user_id: int) -> Dict:
    """
    Admin view of everything the matcher knows about one user.

    Returns the user's public fields, survey answers, the active intention
    with its pool entry, and the most recent retired (matched/expired)
    intentions.

    Raises:
        NotFoundError: If the user does not exist
    """
    profiles = await get_public_profiles(session, [user_id])
    user = profiles.get(user_id)
    if not user:
        raise NotFoundError("User not found")

    survey = await survey_service.get_survey(session, user_id)
    active = await intention_service.get_active_intention(session, user_id)
    pool_entry = None
    if active:
        pool_entry = await intention_service.get_pool_entry(session, active.id)

    result = await session.execute(
        select(Intention)
        .where(
            Intention.user_id == user_id,
            Intention.status.in_(
                [IntentionStatus.EXPIRED.value, IntentionStatus.MATCHED.value]
            ),
        )
        .order_by(Intention.created_at.desc(), Intention.id.desc())
        .limit(PAST_INTENTIONS_LIMIT)
    )
    past = result.scalars().all()

    active_dict = None
    if active:
        active_dict = intention_service.format_intention(active)
        active_dict["pool_entry"] = intention_service.format_pool_entry(pool_entry)

    return {
        "user": user,
        "survey": survey,
        "active_intention": active_dict,
        "past_intentions": [intention_service.format_intention(i) for i in past],
    }


async def list_users(session: AsyncSession) -> Dict:
    """
    Admin listing of every user, newest first, with the profile fields
    admins filter on.

    Returns:
        Dict with the user list and its count
    """
    result = await session.execute(
        select(User, Profile)
        .outerjoin(Profile, Profile.user_id == User.id)
        .order_by(User.created_at.desc(), User.id.desc())
    )
    users = []
    for user, profile in result.all():
        entry = _user_to_dict(user)
        entry["age"] = profile.age if profile else None
        entry["city"] = profile.city if profile else None
        entry["alma_mater"] = profile.alma_mater if profile else None
        users.append(entry)
    return {"users": users, "count": len(users)}


async def set_superadmin(
    session: AsyncSession, actor_id: int, target_user_id: int, is_superadmin: bool
) -> Dict:
    """
    Grant or revoke platform-wide admin rights.

    Args:
        session: Database session
        actor_id: Admin making the change (for the audit log line)
        target_user_id: User whose rights change
        is_superadmin: New value

    Raises:
        NotFoundError: If the target user does not exist
    """
    result = await session.execute(select(User).where(User.id == target_user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")

    user.is_superadmin = is_superadmin
    await session.flush()
    logger.info(f"Admin {actor_id} set is_superadmin={is_superadmin} for user {target_user_id}")
    return {"user_id": target_user_id, "is_superadmin": is_superadmin}
