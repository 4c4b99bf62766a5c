"""
Admin route handlers: user administration, match inspection and manual match corrections.

Every route requires a system admin; the resolved Caller is passed on to
the membership editor, which checks the capability again itself.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cove.database.db import get_db_session
from cove.services import match_membership_service, match_service, user_service
from cove.services.exceptions import MatchingError
from cove.api.auth_dependencies import require_system_admin, caller_from_user
from cove.api.routes import http_error, internal_error
from cove.models.schemas import (
    AddMemberRequest,
    CreateMatchRequest,
    MoveMemberRequest,
    SetSuperadminRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/admin/matches")
async def list_matches(
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """List every match with its members."""
    try:
        return await match_service.list_matches(session)
    except Exception as e:
        raise internal_error("listing matches", e)


@router.get("/api/admin/users")
async def list_users(
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """List every user with their admin flag and basic profile fields."""
    try:
        return await user_service.list_users(session)
    except Exception as e:
        raise internal_error("listing users", e)


@router.post("/api/admin/users/{user_id}/superadmin")
async def set_superadmin(
    user_id: int,
    payload: SetSuperadminRequest,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Grant or revoke superadmin rights for a user."""
    try:
        result = await user_service.set_superadmin(
            session, user["id"], user_id, payload.is_superadmin
        )
        return {"success": True, **result}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("updating superadmin status", e)


@router.get("/api/admin/users/{user_id}/matching")
async def get_user_matching_details(
    user_id: int,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Show a user's survey, active intention and recent past intentions."""
    try:
        return await user_service.get_user_matching_details(session, user_id)
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("fetching user matching details", e)


@router.post("/api/admin/matches", status_code=201)
async def create_match(
    payload: CreateMatchRequest,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a match by hand from users with active intentions."""
    try:
        match = await match_membership_service.create_match_manually(
            session,
            caller_from_user(user),
            payload.user_ids,
            tier_used=payload.tier_used,
            score=payload.score,
        )
        return {"success": True, "match": match}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("creating match", e)


@router.post("/api/admin/matches/{match_id}/members")
async def add_member(
    match_id: int,
    payload: AddMemberRequest,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a user to a match."""
    try:
        match = await match_membership_service.add_member(
            session, caller_from_user(user), match_id, payload.user_id
        )
        return {"success": True, "match": match}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("adding match member", e)


@router.delete("/api/admin/matches/{match_id}/members/{member_user_id}")
async def remove_member(
    match_id: int,
    member_user_id: int,
    return_to_pool: bool = Query(False),
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a user from a match; a pair match is deleted instead."""
    try:
        result = await match_membership_service.remove_member(
            session, caller_from_user(user), match_id, member_user_id, return_to_pool
        )
        return {"success": True, **result}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("removing match member", e)


@router.post("/api/admin/matches/{match_id}/members/{member_user_id}/move")
async def move_member(
    match_id: int,
    member_user_id: int,
    payload: MoveMemberRequest,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Move a user from this match to another one."""
    try:
        result = await match_membership_service.move_member(
            session, caller_from_user(user), member_user_id, match_id, payload.to_match_id
        )
        return {"success": True, **result}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("moving match member", e)


@router.delete("/api/admin/matches/{match_id}")
async def delete_match(
    match_id: int,
    return_to_pool: bool = Query(False),
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a match, optionally putting its members back into the pool."""
    try:
        result = await match_membership_service.delete_match(
            session, caller_from_user(user), match_id, return_to_pool
        )
        return {"success": True, **result}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("deleting match", e)
