#!/usr/bin/env python3
"""
Seed test users with profiles, survey answers and active intentions.

Every seeded user lands in the matching pool at tier 0, ready for a batch
run or a manual match from the admin panel. Re-running the script removes
the previous seed users (by phone number) first.

Usage:
    python scripts/seed_test_matching.py
"""

import asyncio
import json
import sys
from pathlib import Path

# Add apps/ to the path so we can import cove modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "apps"))

from sqlalchemy import select, delete  # noqa: E402
from cove.database.db import AsyncSessionLocal  # noqa: E402
from cove.database.models import (  # noqa: E402
    User,
    Profile,
    Intention,
    PoolEntry,
    Match,
    MatchMember,
    SurveyResponse,
)
from cove.services import intention_service, survey_service, user_service  # noqa: E402

TEST_USERS = [
    {
        "phone_number": "+15550000001",
        "name": "Alice Chen",
        "profile": {"age": 24, "gender": "female", "alma_mater": "Stanford", "city": "Palo Alto",
                    "bio": "Love live music and art walks"},
        "chips": {"what": {"intention": "friends", "activities": ["Live music", "Art walk"]},
                  "when": ["Sat evening", "Sun daytime"], "where": "Palo Alto"},
    },
    {
        "phone_number": "+15550000002",
        "name": "Bob Smith",
        "profile": {"age": 26, "gender": "male", "alma_mater": "Stanford", "city": "Palo Alto",
                    "bio": "Into indie music and coffee"},
        "chips": {"what": {"intention": "friends", "activities": ["Live music", "Coffee"]},
                  "when": ["Sat evening"], "where": "Palo Alto"},
    },
    {
        "phone_number": "+15550000003",
        "name": "Carol Lee",
        "profile": {"age": 23, "gender": "female", "alma_mater": "Berkeley", "city": "SF",
                    "bio": "Adventurous and outgoing"},
        "chips": {"what": {"intention": "friends", "activities": ["Outdoors", "Coffee"]},
                  "when": ["Fri evening", "Sat daytime"], "where": "SF"},
    },
    {
        "phone_number": "+15550000004",
        "name": "David Park",
        "profile": {"age": 28, "gender": "male", "alma_mater": "Stanford", "city": "Palo Alto",
                    "bio": "Looking for art and dinner buddies"},
        "chips": {"what": {"intention": "romantic", "activities": ["Art walk", "Dinner"]},
                  "when": ["Sat evening"], "where": "Palo Alto"},
    },
]


async def _remove_previous_seed(session):
    phones = [u["phone_number"] for u in TEST_USERS]
    result = await session.execute(select(User.id).where(User.phone_number.in_(phones)))
    user_ids = list(result.scalars().all())
    if not user_ids:
        return
    intention_ids = select(Intention.id).where(Intention.user_id.in_(user_ids))
    await session.execute(delete(PoolEntry).where(PoolEntry.intention_id.in_(intention_ids)))
    result = await session.execute(
        select(MatchMember.match_id).where(MatchMember.user_id.in_(user_ids))
    )
    match_ids = list(set(result.scalars().all()))
    await session.execute(delete(MatchMember).where(MatchMember.match_id.in_(match_ids)))
    await session.execute(delete(Match).where(Match.id.in_(match_ids)))
    await session.execute(delete(Intention).where(Intention.user_id.in_(user_ids)))
    await session.execute(delete(SurveyResponse).where(SurveyResponse.user_id.in_(user_ids)))
    await session.execute(delete(Profile).where(Profile.user_id.in_(user_ids)))
    await session.execute(delete(User).where(User.id.in_(user_ids)))
    await session.flush()
    print(f"🗑️  Removed {len(user_ids)} previous seed users")


async def seed():
    """Create the seed users in one transaction."""
    async with AsyncSessionLocal() as session:
        try:
            await _remove_previous_seed(session)
            for data in TEST_USERS:
                user_id = await user_service.create_user(
                    session, data["phone_number"], name=data["name"]
                )
                session.add(Profile(user_id=user_id, **data["profile"]))
                chips = data["chips"]
                await survey_service.submit_survey(
                    session,
                    user_id,
                    [
                        {"question_id": "alumni_network", "value": data["profile"]["alma_mater"]},
                        {"question_id": "city", "value": data["profile"]["city"]},
                        {"question_id": "activities",
                         "value": json.dumps(chips["what"]["activities"])},
                        {"question_id": "availability", "value": json.dumps(chips["when"])},
                    ],
                )
                result = await intention_service.create_intention(session, user_id, chips)
                print(f"👤 {data['name']} (user {user_id}) pooled with intention "
                      f"{result['intention']['id']}")
            await session.commit()
            print("✅ Seed complete")
        except Exception as e:
            await session.rollback()
            print(f"❌ Error seeding matching data: {e}")
            raise


if __name__ == "__main__":
    asyncio.run(seed())
