"""
Pydantic models for API request/response validation.
"""

from typing import Optional, List, Any
from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    message: str


class SurveyAnswer(BaseModel):
    """A single survey answer."""

    question_id: str
    value: str
    is_must_have: Optional[bool] = False


class SurveySubmitRequest(BaseModel):
    """Request to save survey answers."""

    responses: List[SurveyAnswer]


class IntentionCreate(BaseModel):
    """Request to create an intention.

    Chips are validated by the intention service so that malformed chips
    come back as 400 rather than 422.
    """

    chips: Any = None


class IntentionResponse(BaseModel):
    """Intention data."""

    id: int
    user_id: int
    parsed_json: dict
    status: str
    created_at: Optional[str] = None
    valid_until: Optional[str] = None


class PoolEntryResponse(BaseModel):
    """Pool entry data."""

    intention_id: int
    tier: int
    joined_at: Optional[str] = None
    next_batch_eta: Optional[str] = None


class IntentionCreateResponse(BaseModel):
    """Response from creating an intention."""

    intention: IntentionResponse
    pool_entry: Optional[PoolEntryResponse] = None
    next_batch_eta: str


class IntentionStatusResponse(BaseModel):
    """Current intention and pool status for the caller."""

    has_intention: bool
    intention: Optional[IntentionResponse] = None
    pool_entry: Optional[PoolEntryResponse] = None
    has_match: bool
    user_name: str


class FeedbackCreate(BaseModel):
    """Request to leave feedback on a match."""

    matched_on: Any = None
    was_accurate: Optional[bool] = None


class AcceptMatchResponse(BaseModel):
    """Response from accepting a match."""

    match_id: int
    status: str
    thread_id: int


class CreateMatchRequest(BaseModel):
    """Admin request to create a match."""

    user_ids: List[int]
    tier_used: Optional[int] = None
    score: Optional[float] = None


class AddMemberRequest(BaseModel):
    """Admin request to add a user to a match."""

    user_id: int


class MoveMemberRequest(BaseModel):
    """Admin request to move a user between matches."""

    to_match_id: int


class SetSuperadminRequest(BaseModel):
    """Admin request to grant or revoke superadmin rights."""

    is_superadmin: bool
