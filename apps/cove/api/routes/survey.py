"""Matching survey route handlers."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cove.database.db import get_db_session
from cove.services import survey_service
from cove.services.exceptions import MatchingError
from cove.api.auth_dependencies import require_user
from cove.api.routes import limiter, http_error, internal_error
from cove.models.schemas import SurveySubmitRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/survey")
@limiter.limit("30/minute")
async def submit_survey(
    request: Request,
    payload: SurveySubmitRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Save or update the caller's survey answers."""
    try:
        responses = [r.model_dump() for r in payload.responses]
        saved = await survey_service.submit_survey(session, user["id"], responses)
        return {"success": True, "responses": saved}
    except MatchingError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("saving survey", e)


@router.get("/api/survey")
async def get_survey(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the caller's survey answers."""
    try:
        responses = await survey_service.get_survey(session, user["id"])
        return {"responses": responses}
    except Exception as e:
        raise internal_error("fetching survey", e)
