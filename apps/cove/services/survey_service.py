"""
Survey service: the matching questionnaire a user fills in before pooling.
"""

from typing import Dict, List, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from cove.database.models import SurveyResponse
from cove.services.exceptions import BadRequestError
from cove.utils.datetime_utils import utcnow, to_iso
import logging

logger = logging.getLogger(__name__)


def _response_to_dict(response: SurveyResponse) -> Dict:
    return {
        "question_id": response.question_id,
        "value": response.value,
        "is_must_have": response.is_must_have,
        "created_at": to_iso(response.created_at),
        "updated_at": to_iso(response.updated_at),
    }


async def submit_survey(
    session: AsyncSession, user_id: int, responses: List[Dict[str, Any]]
) -> List[Dict]:
    """
    Save or update a user's survey answers (one row per question).

    Args:
        session: Database session
        user_id: User answering the survey
        responses: List of {question_id, value, is_must_have?}

    Returns:
        List of the saved answers

    Raises:
        BadRequestError: If responses is not a list or an answer lacks question_id/value
    """
    if not isinstance(responses, list):
        raise BadRequestError("Invalid request: responses array required")
    for response in responses:
        if (
            not isinstance(response, dict)
            or not response.get("question_id")
            or not response.get("value")
        ):
            raise BadRequestError("Invalid response: question_id and value required")

    question_ids = [r["question_id"] for r in responses]
    result = await session.execute(
        select(SurveyResponse).where(
            SurveyResponse.user_id == user_id,
            SurveyResponse.question_id.in_(question_ids),
        )
    )
    existing = {row.question_id: row for row in result.scalars().all()}

    saved = []
    for response in responses:
        is_must_have = bool(response.get("is_must_have", False))
        row = existing.get(response["question_id"])
        if row:
            row.value = response["value"]
            row.is_must_have = is_must_have
            row.updated_at = utcnow()
        else:
            row = SurveyResponse(
                user_id=user_id,
                question_id=response["question_id"],
                value=response["value"],
                is_must_have=is_must_have,
            )
            session.add(row)
            existing[row.question_id] = row
        saved.append(
            {
                "question_id": row.question_id,
                "value": row.value,
                "is_must_have": is_must_have,
            }
        )
    await session.flush()
    logger.info(f"Saved {len(saved)} survey responses for user {user_id}")
    return saved


async def get_survey(session: AsyncSession, user_id: int) -> List[Dict]:
    """Get a user's survey answers ordered by question."""
    result = await session.execute(
        select(SurveyResponse)
        .where(SurveyResponse.user_id == user_id)
        .order_by(SurveyResponse.question_id)
    )
    return [_response_to_dict(r) for r in result.scalars().all()]
