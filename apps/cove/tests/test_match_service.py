"""
Unit tests for match service.

Tests match creation, accept/decline transitions, thread linkage,
feedback, and the read-side views (current match and admin listing).
"""

import pytest
from sqlalchemy import select, func
from cove.services import match_service, thread_service
from cove.services.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from cove.database.models import (
    Intention,
    IntentionStatus,
    Match,
    MatchFeedback,
    MatchStatus,
    PoolEntry,
    Thread,
)
from cove.utils.datetime_utils import ensure_utc
from conftest import create_test_user


async def _pool_entry(db_session, intention_id):
    result = await db_session.execute(
        select(PoolEntry).where(PoolEntry.intention_id == intention_id)
    )
    return result.scalar_one_or_none()


async def _intention_status(db_session, intention_id):
    result = await db_session.execute(
        select(Intention.status).where(Intention.id == intention_id)
    )
    return result.scalar_one()


# ──────────────────────────────────────────────────────────────
# Create
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_match_consumes_pool_entries(db_session, users, check_invariants):
    match = await match_service.create_match(
        db_session, [users["alice"], users["bob"]], tier_used=1, score=0.82
    )

    assert match["group_size"] == 2
    assert match["status"] == "active"
    assert match["tier_used"] == 1
    assert match["score"] == pytest.approx(0.82)
    assert [m["user_id"] for m in match["members"]] == [users["alice"], users["bob"]]
    for member in match["members"]:
        assert await _pool_entry(db_session, member["intention_id"]) is None

    stored = await db_session.get(Match, match["id"])
    lifetime = ensure_utc(stored.expires_at) - ensure_utc(stored.created_at)
    assert lifetime.days == 7
    await check_invariants()


@pytest.mark.asyncio
async def test_create_match_needs_two_users(db_session, users):
    with pytest.raises(BadRequestError, match="At least 2 users"):
        await match_service.create_match(db_session, [users["alice"]])


@pytest.mark.asyncio
async def test_create_match_rejects_duplicate_users(db_session, users):
    with pytest.raises(BadRequestError):
        await match_service.create_match(db_session, [users["alice"], users["alice"]])


@pytest.mark.asyncio
async def test_create_match_unknown_user(db_session, users):
    with pytest.raises(NotFoundError, match="User 9999 not found"):
        await match_service.create_match(db_session, [users["alice"], 9999])


@pytest.mark.asyncio
async def test_create_match_user_without_intention(db_session, users):
    loner = await create_test_user(db_session, "+15555000001", "Loner")

    with pytest.raises(BadRequestError, match="does not have an active intention"):
        await match_service.create_match(db_session, [users["alice"], loner])

    result = await db_session.execute(select(func.count(Match.id)))
    assert result.scalar_one() == 0


@pytest.mark.asyncio
async def test_create_match_refuses_double_booking(db_session, users, check_invariants):
    await match_service.create_match(db_session, [users["alice"], users["bob"]])

    with pytest.raises(ConflictError, match="already part of active match"):
        await match_service.create_match(db_session, [users["alice"], users["carol"]])
    await check_invariants()


# ──────────────────────────────────────────────────────────────
# Accept
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_accept_match_links_thread_and_marks_intentions(db_session, users, check_invariants):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])

    result = await match_service.accept_match(db_session, users["alice"], match["id"])

    assert result["status"] == "accepted"
    assert result["thread_id"] is not None
    stored = await db_session.get(Match, match["id"])
    assert stored.status == MatchStatus.ACCEPTED.value
    assert stored.thread_id == result["thread_id"]
    for member in match["members"]:
        assert await _intention_status(db_session, member["intention_id"]) == "matched"
        assert await _pool_entry(db_session, member["intention_id"]) is None
    await check_invariants()


@pytest.mark.asyncio
async def test_accept_reuses_existing_thread(db_session, users):
    existing = await thread_service.find_or_create_direct_thread(
        db_session, users["bob"], users["alice"]
    )
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])

    result = await match_service.accept_match(db_session, users["bob"], match["id"])

    assert result["thread_id"] == existing
    count = await db_session.execute(select(func.count(Thread.id)))
    assert count.scalar_one() == 1


@pytest.mark.asyncio
async def test_accept_twice_returns_same_thread(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])
    first = await match_service.accept_match(db_session, users["alice"], match["id"])

    second = await match_service.accept_match(db_session, users["bob"], match["id"])
    assert second["thread_id"] == first["thread_id"]


@pytest.mark.asyncio
async def test_accept_group_match_unsupported(db_session, users):
    match = await match_service.create_match(
        db_session, [users["alice"], users["bob"], users["carol"]]
    )

    with pytest.raises(BadRequestError, match="Group matches"):
        await match_service.accept_match(db_session, users["alice"], match["id"])


@pytest.mark.asyncio
async def test_accept_by_non_member(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])

    with pytest.raises(ForbiddenError):
        await match_service.accept_match(db_session, users["carol"], match["id"])


@pytest.mark.asyncio
async def test_accept_missing_match(db_session, users):
    with pytest.raises(NotFoundError):
        await match_service.accept_match(db_session, users["alice"], 9999)


@pytest.mark.asyncio
async def test_accept_after_decline(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])
    await match_service.decline_match(db_session, users["bob"], match["id"])

    with pytest.raises(BadRequestError, match="declined"):
        await match_service.accept_match(db_session, users["alice"], match["id"])


# ──────────────────────────────────────────────────────────────
# Decline
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_decline_leaves_intentions_active_and_unpooled(db_session, users, check_invariants):
    """Declining does not put anyone back into the pool; the maintenance sweep does that."""
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])

    result = await match_service.decline_match(db_session, users["alice"], match["id"])

    assert result["status"] == "declined"
    for member in match["members"]:
        assert await _intention_status(db_session, member["intention_id"]) == "active"
        assert await _pool_entry(db_session, member["intention_id"]) is None
    await check_invariants()


@pytest.mark.asyncio
async def test_decline_twice_is_idempotent(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])
    await match_service.decline_match(db_session, users["alice"], match["id"])

    result = await match_service.decline_match(db_session, users["bob"], match["id"])
    assert result["status"] == "declined"


@pytest.mark.asyncio
async def test_decline_accepted_match(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])
    await match_service.accept_match(db_session, users["alice"], match["id"])

    with pytest.raises(BadRequestError, match="accepted"):
        await match_service.decline_match(db_session, users["bob"], match["id"])


@pytest.mark.asyncio
async def test_decline_by_non_member(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])

    with pytest.raises(ForbiddenError):
        await match_service.decline_match(db_session, users["carol"], match["id"])


@pytest.mark.asyncio
async def test_declined_members_can_be_matched_again(db_session, users, check_invariants):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])
    await match_service.decline_match(db_session, users["alice"], match["id"])

    second = await match_service.create_match(db_session, [users["alice"], users["carol"]])
    assert second["status"] == "active"
    await check_invariants()


# ──────────────────────────────────────────────────────────────
# Feedback
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_feedback_is_append_only(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])

    await match_service.submit_feedback(
        db_session, users["alice"], match["id"], ["Activity: Coffee"], was_accurate=True
    )
    await match_service.submit_feedback(db_session, users["alice"], match["id"], [])

    result = await db_session.execute(
        select(MatchFeedback).where(MatchFeedback.match_id == match["id"]).order_by(MatchFeedback.id)
    )
    rows = result.scalars().all()
    assert len(rows) == 2
    assert rows[0].matched_on == ["Activity: Coffee"]
    assert rows[0].was_accurate is True
    assert rows[1].was_accurate is None


@pytest.mark.asyncio
async def test_feedback_requires_list(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])

    with pytest.raises(BadRequestError):
        await match_service.submit_feedback(db_session, users["alice"], match["id"], "Coffee")


@pytest.mark.asyncio
async def test_feedback_by_non_member(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])

    with pytest.raises(ForbiddenError):
        await match_service.submit_feedback(db_session, users["carol"], match["id"], [])


@pytest.mark.asyncio
async def test_feedback_missing_match(db_session, users):
    with pytest.raises(NotFoundError):
        await match_service.submit_feedback(db_session, users["alice"], 9999, [])


# ──────────────────────────────────────────────────────────────
# Read side
# ──────────────────────────────────────────────────────────────


def test_derive_matched_on():
    chips = {"what": {"activities": ["Coffee", "Hiking"]}, "when": ["Sat"], "where": "SF"}
    other = {"what": {"activities": ["Coffee"]}, "when": ["Sat", "Sun"], "where": "SF"}

    assert match_service.derive_matched_on(chips, other, "Stanford") == [
        "Activity: Coffee",
        "Time: Sat",
        "Location: SF",
        "Alumni network: Stanford",
    ]


def test_derive_matched_on_nothing_shared():
    assert match_service.derive_matched_on({"where": "SF"}, {"where": "LA"}) == []
    assert match_service.derive_matched_on(None, None) == []


def test_relaxed_constraints_by_tier():
    assert match_service.relaxed_constraints(None) == []
    assert match_service.relaxed_constraints(0) == []
    assert match_service.relaxed_constraints(1) == ["Expanded search radius to adjacent areas"]
    assert len(match_service.relaxed_constraints(2)) == 2


@pytest.mark.asyncio
async def test_current_match_none(db_session, users):
    result = await match_service.get_current_match(db_session, users["alice"])
    assert result == {"has_match": False, "match": None}


@pytest.mark.asyncio
async def test_current_match_details(db_session, users):
    match = await match_service.create_match(
        db_session, [users["alice"], users["bob"]], tier_used=1
    )

    result = await match_service.get_current_match(db_session, users["alice"])

    assert result["has_match"] is True
    current = result["match"]
    assert current["id"] == match["id"]
    assert current["matched_user_id"] == users["bob"]
    assert current["user"]["name"] == "Bob"
    assert "phone_number" not in current["user"]
    assert "Activity: Live music, Coffee" in current["matched_on"]
    assert "Location: Palo Alto" in current["matched_on"]
    assert "Alumni network: Stanford" in current["matched_on"]
    assert current["relaxed_constraints"] == ["Expanded search radius to adjacent areas"]


@pytest.mark.asyncio
async def test_current_match_ignores_declined(db_session, users):
    match = await match_service.create_match(db_session, [users["alice"], users["bob"]])
    await match_service.decline_match(db_session, users["bob"], match["id"])

    result = await match_service.get_current_match(db_session, users["alice"])
    assert result["has_match"] is False


@pytest.mark.asyncio
async def test_list_matches(db_session, users):
    first = await match_service.create_match(db_session, [users["alice"], users["bob"]])
    second = await match_service.create_match(
        db_session, [users["carol"], users["dave"], users["eve"]]
    )

    result = await match_service.list_matches(db_session)

    assert result["count"] == 2
    ids = [m["id"] for m in result["matches"]]
    assert set(ids) == {first["id"], second["id"]}
    by_id = {m["id"]: m for m in result["matches"]}
    assert [m["name"] for m in by_id[second["id"]]["members"]] == ["Carol", "Dave", "Eve"]
    assert all(m["intention_id"] for m in by_id[first["id"]]["members"])


@pytest.mark.asyncio
async def test_list_matches_empty(db_session):
    assert await match_service.list_matches(db_session) == {"matches": [], "count": 0}
