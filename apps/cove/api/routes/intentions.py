"""Intention route handlers."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cove.database.db import get_db_session
from cove.services import intention_service
from cove.services.exceptions import MatchingError
from cove.api.auth_dependencies import require_user
from cove.api.routes import limiter, http_error, internal_error
from cove.models.schemas import (
    IntentionCreate,
    IntentionCreateResponse,
    IntentionStatusResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/intention", status_code=201, response_model=IntentionCreateResponse)
@limiter.limit("10/minute")
async def create_intention(
    request: Request,
    payload: IntentionCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create the caller's intention and enter them into the matching pool."""
    try:
        return await intention_service.create_intention(session, user["id"], payload.chips)
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("creating intention", e)


@router.get("/api/intention/status", response_model=IntentionStatusResponse)
async def get_intention_status(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the caller's active intention, pool entry, and whether they have a match."""
    try:
        return await intention_service.get_status(session, user["id"])
    except Exception as e:
        raise internal_error("fetching intention status", e)


@router.delete("/api/intention/{intention_id}")
async def delete_intention(
    intention_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete one of the caller's intentions."""
    try:
        await intention_service.delete_intention(session, user["id"], intention_id)
        return {"success": True, "message": "Intention deleted successfully"}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("deleting intention", e)
