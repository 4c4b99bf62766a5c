"""
SQLAlchemy ORM models for the Cove matching backend.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    JSON,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from cove.database.db import Base
from cove.utils.datetime_utils import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite test database)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class IntentionStatus(str, enum.Enum):
    """Intention status enum."""

    ACTIVE = "active"
    MATCHED = "matched"
    EXPIRED = "expired"


class MatchStatus(str, enum.Enum):
    """Match status enum."""

    ACTIVE = "active"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class User(Base):
    """User accounts. Identity itself is resolved upstream from the bearer token."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=True)
    phone_number = Column(String, nullable=False, unique=True)
    is_superadmin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    profile = relationship("Profile", back_populates="user", uselist=False)

    __table_args__ = (Index("idx_users_phone", "phone_number"),)


class Profile(Base):
    """Public profile details shown to a match."""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    age = Column(Integer, nullable=True)
    gender = Column(String(20), nullable=True)
    bio = Column(Text, nullable=True)
    alma_mater = Column(String, nullable=True)
    city = Column(String, nullable=True)

    # Relationships
    user = relationship("User", back_populates="profile")


class SurveyResponse(Base):
    """One answer per (user, question) to the matching survey."""

    __tablename__ = "survey_responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(String(100), nullable=False)
    value = Column(Text, nullable=False)  # JSON-encoded string for multi-select questions
    is_must_have = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "question_id", name="uq_survey_response_user_question"),
    )


class Intention(Base):
    """A user's standing, time-boxed request to be matched."""

    __tablename__ = "intentions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    text = Column(Text, nullable=False, default="")  # Deprecated; preferences live in parsed_json
    parsed_json = Column(JSONType, nullable=False)
    status = Column(String(20), default=IntentionStatus.ACTIVE.value, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    valid_until = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    user = relationship("User")
    pool_entry = relationship(
        "PoolEntry", back_populates="intention", uselist=False, passive_deletes=True
    )

    __table_args__ = (
        # At most one active intention per user
        Index(
            "uq_intentions_user_active",
            "user_id",
            unique=True,
            postgresql_where=sa_text("status = 'active'"),
            sqlite_where=sa_text("status = 'active'"),
        ),
        Index("idx_intentions_user_status", "user_id", "status"),
    )


class PoolEntry(Base):
    """Membership of an active, unmatched intention in the matching pool."""

    __tablename__ = "pool_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    intention_id = Column(
        Integer, ForeignKey("intentions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    tier = Column(Integer, default=0, nullable=False)  # Search relaxation level used by the matcher
    joined_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    # Relationships
    intention = relationship("Intention", back_populates="pool_entry")

    __table_args__ = (
        CheckConstraint("tier >= 0", name="ck_pool_entries_tier_non_negative"),
        Index("idx_pool_entries_tier_joined", "tier", "joined_at"),
    )


class Match(Base):
    """A grouping of two or more users formed from pooled intentions."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_size = Column(Integer, nullable=False)
    score = Column(Float, nullable=True)
    tier_used = Column(Integer, nullable=True)
    status = Column(String(20), default=MatchStatus.ACTIVE.value, nullable=False)
    thread_id = Column(Integer, ForeignKey("threads.id"), nullable=True)  # Set on acceptance
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    members = relationship("MatchMember", back_populates="match", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("group_size >= 2", name="ck_matches_group_size_min"),
        Index("idx_matches_status", "status"),
    )


class MatchMember(Base):
    """Join table (Match ↔ User), pinning the intention that earned the place."""

    __tablename__ = "match_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    intention_id = Column(
        Integer, ForeignKey("intentions.id", ondelete="SET NULL"), nullable=True
    )  # Nulled when the owner deletes the intention

    # Relationships
    match = relationship("Match", back_populates="members")
    user = relationship("User")
    intention = relationship("Intention")

    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_match_member_match_user"),
        Index("idx_match_members_user", "user_id"),
        Index("idx_match_members_intention", "intention_id"),
    )


class MatchFeedback(Base):
    """Append-only feedback on why a match felt right (or not)."""

    __tablename__ = "match_feedback"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    matched_on = Column(JSONType, nullable=False)  # List of strings
    was_accurate = Column(Boolean, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_match_feedback_match", "match_id"),)


class Thread(Base):
    """Messaging thread; only its existence and membership matter here."""

    __tablename__ = "threads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    members = relationship("ThreadMember", back_populates="thread", passive_deletes=True)


class ThreadMember(Base):
    """Join table (Thread ↔ User)."""

    __tablename__ = "thread_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(Integer, ForeignKey("threads.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Relationships
    thread = relationship("Thread", back_populates="members")

    __table_args__ = (
        UniqueConstraint("thread_id", "user_id", name="uq_thread_member_thread_user"),
        Index("idx_thread_members_user", "user_id"),
    )
