"""Initial schema with all tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

This migration creates the complete Common Grounds database schema:
- Enums: friendship_status
- Tables: users, magic_links, sessions, friendships, classes, user_classes, class_messages
- Indexes: token expiry sweeps, friendship lookups, class board paging
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

friendship_status = sa.Enum("PENDING", "ACCEPTED", "REJECTED", "BLOCKED", name="friendship_status")


def upgrade() -> None:
    # ==========================================================================
    # USERS TABLE
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone_hash", sa.String(255), nullable=True),
        sa.Column("computing_id", sa.String(10), nullable=True),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("phone_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_computing_id", "users", ["computing_id"], unique=True)

    # ==========================================================================
    # MAGIC_LINKS / SESSIONS TABLES
    # ==========================================================================
    op.create_table(
        "magic_links",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("token_hash"),
    )
    op.create_index("ix_magic_links_user_id", "magic_links", ["user_id"])
    op.create_index("idx_magic_links_expires", "magic_links", ["expires_at"])

    op.create_table(
        "sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("token_hash"),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("idx_sessions_expires", "sessions", ["expires_at"])

    # ==========================================================================
    # FRIENDSHIPS TABLE
    # ==========================================================================
    op.create_table(
        "friendships",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("requester_id", sa.Uuid(), nullable=False),
        sa.Column("addressee_id", sa.Uuid(), nullable=False),
        sa.Column("pair_key", sa.String(73), nullable=False),
        sa.Column("status", friendship_status, nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["addressee_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("pair_key", name="unique_friendship_pair"),
        sa.CheckConstraint("requester_id <> addressee_id", name="no_self_friendship"),
    )
    op.create_index("idx_friendships_addressee_status", "friendships", ["addressee_id", "status"])
    op.create_index("idx_friendships_requester_status", "friendships", ["requester_id", "status"])

    # ==========================================================================
    # CLASSES / USER_CLASSES TABLES
    # ==========================================================================
    op.create_table(
        "classes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subject", sa.String(10), nullable=False),
        sa.Column("catalog_number", sa.String(10), nullable=False),
        sa.Column("term", sa.String(4), nullable=False),
        sa.Column("sis_class_number", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("instructor", sa.String(255), nullable=True),
        sa.Column("component", sa.String(20), nullable=True),
        sa.Column("class_section", sa.String(10), nullable=True),
        sa.Column("class_capacity", sa.Integer(), nullable=True),
        sa.Column("enrollment_available", sa.Integer(), nullable=True),
        sa.Column("days", sa.String(20), nullable=True),
        sa.Column("start_time", sa.String(20), nullable=True),
        sa.Column("end_time", sa.String(20), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "subject", "catalog_number", "term", "sis_class_number",
            name="unique_class_section",
        ),
    )
    op.create_index("idx_classes_lookup", "classes", ["subject", "catalog_number", "term"])

    op.create_table(
        "user_classes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("class_id", sa.Uuid(), nullable=False),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "class_id", name="unique_user_class"),
    )
    op.create_index("idx_user_classes_class", "user_classes", ["class_id"])

    # ==========================================================================
    # CLASS_MESSAGES TABLE
    # ==========================================================================
    op.create_table(
        "class_messages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("class_id", sa.Uuid(), nullable=False),
        sa.Column("parent_message_id", sa.Uuid(), nullable=True),
        sa.Column("anonymous_identifier", sa.String(32), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("flagged_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hidden", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_message_id"], ["class_messages.id"], ondelete="CASCADE"),
        sa.CheckConstraint("flagged_count >= 0", name="valid_flagged_count"),
    )
    op.create_index(
        "idx_class_messages_class_created",
        "class_messages",
        ["class_id", "hidden", "created_at"],
    )
    op.create_index("idx_class_messages_parent", "class_messages", ["parent_message_id"])


def downgrade() -> None:
    # Drop tables in reverse dependency order
    op.drop_table("class_messages")
    op.drop_table("user_classes")
    op.drop_table("classes")
    op.drop_table("friendships")
    op.drop_table("sessions")
    op.drop_table("magic_links")
    op.drop_table("users")

    friendship_status.drop(op.get_bind(), checkfirst=True)
