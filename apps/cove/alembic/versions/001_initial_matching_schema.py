"""initial_matching_schema

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

Users, profiles, survey responses, intentions, pool entries, matches,
match members, match feedback, and the thread tables accepted matches link to.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(conn, table_name: str) -> bool:
    """Check if a table exists."""
    result = conn.execute(
        text(
            "SELECT EXISTS (SELECT FROM information_schema.tables WHERE table_name = :table_name)"
        ),
        {"table_name": table_name},
    )
    return result.scalar()


def _created_at():
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
    )


def upgrade() -> None:
    """Create the matching tables with indexes and constraints."""
    conn = op.get_bind()

    if not _table_exists(conn, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("phone_number", sa.String(), nullable=False),
            sa.Column("is_superadmin", sa.Boolean(), nullable=False, server_default=sa.false()),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("phone_number"),
        )
        op.create_index("idx_users_phone", "users", ["phone_number"])

    if not _table_exists(conn, "profiles"):
        op.create_table(
            "profiles",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("age", sa.Integer(), nullable=True),
            sa.Column("gender", sa.String(20), nullable=True),
            sa.Column("bio", sa.Text(), nullable=True),
            sa.Column("alma_mater", sa.String(), nullable=True),
            sa.Column("city", sa.String(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id"),
        )

    if not _table_exists(conn, "survey_responses"):
        op.create_table(
            "survey_responses",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("question_id", sa.String(100), nullable=False),
            sa.Column("value", sa.Text(), nullable=False),
            sa.Column("is_must_have", sa.Boolean(), nullable=False, server_default=sa.false()),
            _created_at(),
            sa.Column(
                "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
            ),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "question_id", name="uq_survey_response_user_question"),
        )

    if not _table_exists(conn, "threads"):
        op.create_table(
            "threads",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_table(
            "thread_members",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("thread_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["thread_id"], ["threads.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("thread_id", "user_id", name="uq_thread_member_thread_user"),
        )
        op.create_index("idx_thread_members_user", "thread_members", ["user_id"])

    if not _table_exists(conn, "intentions"):
        op.create_table(
            "intentions",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("text", sa.Text(), nullable=False, server_default=""),
            sa.Column("parsed_json", postgresql.JSONB(), nullable=False),
            sa.Column("status", sa.String(20), nullable=False, server_default="active"),
            _created_at(),
            sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        # At most one active intention per user
        op.create_index(
            "uq_intentions_user_active",
            "intentions",
            ["user_id"],
            unique=True,
            postgresql_where=text("status = 'active'"),
        )
        op.create_index("idx_intentions_user_status", "intentions", ["user_id", "status"])

    if not _table_exists(conn, "pool_entries"):
        op.create_table(
            "pool_entries",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("intention_id", sa.Integer(), nullable=False),
            sa.Column("tier", sa.Integer(), nullable=False, server_default="0"),
            sa.Column(
                "joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
            ),
            sa.ForeignKeyConstraint(["intention_id"], ["intentions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("intention_id"),
            sa.CheckConstraint("tier >= 0", name="ck_pool_entries_tier_non_negative"),
        )
        op.create_index("idx_pool_entries_tier_joined", "pool_entries", ["tier", "joined_at"])

    if not _table_exists(conn, "matches"):
        op.create_table(
            "matches",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("group_size", sa.Integer(), nullable=False),
            sa.Column("score", sa.Float(), nullable=True),
            sa.Column("tier_used", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(20), nullable=False, server_default="active"),
            sa.Column("thread_id", sa.Integer(), nullable=True),
            _created_at(),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["thread_id"], ["threads.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("group_size >= 2", name="ck_matches_group_size_min"),
        )
        op.create_index("idx_matches_status", "matches", ["status"])

    if not _table_exists(conn, "match_members"):
        op.create_table(
            "match_members",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("match_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("intention_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["match_id"], ["matches.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["intention_id"], ["intentions.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("match_id", "user_id", name="uq_match_member_match_user"),
        )
        op.create_index("idx_match_members_user", "match_members", ["user_id"])
        op.create_index("idx_match_members_intention", "match_members", ["intention_id"])

    if not _table_exists(conn, "match_feedback"):
        op.create_table(
            "match_feedback",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("match_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("matched_on", postgresql.JSONB(), nullable=False),
            sa.Column("was_accurate", sa.Boolean(), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["match_id"], ["matches.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_match_feedback_match", "match_feedback", ["match_id"])


def downgrade() -> None:
    """Drop the matching tables in dependency order."""
    conn = op.get_bind()

    for table_name in (
        "match_feedback",
        "match_members",
        "matches",
        "pool_entries",
        "intentions",
        "thread_members",
        "threads",
        "survey_responses",
        "profiles",
        "users",
    ):
        if _table_exists(conn, table_name):
            op.drop_table(table_name)
