"""Match route handlers for members of a match."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cove.database.db import get_db_session
from cove.services import match_service
from cove.services.exceptions import MatchingError
from cove.api.auth_dependencies import require_user
from cove.api.routes import http_error, internal_error
from cove.models.schemas import AcceptMatchResponse, FeedbackCreate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/match/current")
async def get_current_match(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the caller's active match, with why it was made."""
    try:
        return await match_service.get_current_match(session, user["id"])
    except Exception as e:
        raise internal_error("fetching current match", e)


@router.post("/api/match/{match_id}/accept", response_model=AcceptMatchResponse)
async def accept_match(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept a pair match and open (or reuse) the thread between the two members."""
    try:
        return await match_service.accept_match(session, user["id"], match_id)
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("accepting match", e)


@router.post("/api/match/{match_id}/decline")
async def decline_match(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline a match."""
    try:
        result = await match_service.decline_match(session, user["id"], match_id)
        return {"success": True, **result}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("declining match", e)


@router.post("/api/match/{match_id}/feedback", status_code=201)
async def submit_feedback(
    match_id: int,
    payload: FeedbackCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Record the caller's feedback on a match."""
    try:
        feedback = await match_service.submit_feedback(
            session, user["id"], match_id, payload.matched_on, payload.was_accurate
        )
        return {"success": True, "feedback": feedback}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("submitting feedback", e)
