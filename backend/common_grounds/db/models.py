"""
SQLAlchemy 2.0 Models for Common Grounds.

Uses modern declarative syntax with Mapped[] type annotations.
All models use UUID primary keys and proper relationship definitions.
Column types stay portable (Uuid, DateTime(timezone=True)) so the same
metadata runs on PostgreSQL in production and SQLite in tests.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from common_grounds.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================


class FriendshipStatus(str, PyEnum):
    """Lifecycle state of a friendship edge."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    BLOCKED = "BLOCKED"


# =============================================================================
# MODELS
# =============================================================================


class User(Base):
    """
    Core user account, anchored to a verified university email.

    Created lazily on the first magic-link request.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    phone_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    computing_id: Mapped[Optional[str]] = mapped_column(
        String(10), unique=True, index=True, nullable=True
    )
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    phone_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    magic_links: Mapped[list["MagicLink"]] = relationship(
        "MagicLink", back_populates="user", passive_deletes=True
    )
    sessions: Mapped[list["Session"]] = relationship(
        "Session", back_populates="user", passive_deletes=True
    )
    enrollments: Mapped[list["UserClass"]] = relationship(
        "UserClass", back_populates="user", passive_deletes=True
    )


class MagicLink(Base):
    """
    Single-use login credential.

    Only sha256(token) is stored; the raw token lives in the emailed link.
    """

    __tablename__ = "magic_links"
    __table_args__ = (Index("idx_magic_links_expires", "expires_at"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="magic_links")


class Session(Base):
    """
    Server-side record backing a bearer credential.

    Deleting the row revokes the credential even though its signature is
    still valid.
    """

    __tablename__ = "sessions"
    __table_args__ = (Index("idx_sessions_expires", "expires_at"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="sessions")


class Friendship(Base):
    """
    Friend edge from requester to addressee.

    pair_key holds both user ids in sorted order, so the unordered pair is
    unique no matter who asked first.
    """

    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("pair_key", name="unique_friendship_pair"),
        CheckConstraint("requester_id <> addressee_id", name="no_self_friendship"),
        Index("idx_friendships_addressee_status", "addressee_id", "status"),
        Index("idx_friendships_requester_status", "requester_id", "status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    requester_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    addressee_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    pair_key: Mapped[str] = mapped_column(String(73), nullable=False)
    status: Mapped[FriendshipStatus] = mapped_column(
        Enum(FriendshipStatus, name="friendship_status"),
        default=FriendshipStatus.PENDING,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    requester: Mapped["User"] = relationship("User", foreign_keys=[requester_id])
    addressee: Mapped["User"] = relationship("User", foreign_keys=[addressee_id])

    @staticmethod
    def make_pair_key(user_a: UUID, user_b: UUID) -> str:
        first, second = sorted([str(user_a), str(user_b)])
        return f"{first}:{second}"

    def other_user_id(self, user_id: UUID) -> UUID:
        return self.addressee_id if self.requester_id == user_id else self.requester_id


class Class(Base):
    """
    Course section mirrored from the UVA SIS catalog.

    Upserted whenever a catalog search succeeds; served from here when the
    catalog is unreachable.
    """

    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint(
            "subject", "catalog_number", "term", "sis_class_number",
            name="unique_class_section",
        ),
        Index("idx_classes_lookup", "subject", "catalog_number", "term"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    subject: Mapped[str] = mapped_column(String(10), nullable=False)  # e.g., "CS"
    catalog_number: Mapped[str] = mapped_column(String(10), nullable=False)  # e.g., "2150"
    term: Mapped[str] = mapped_column(String(4), nullable=False)  # e.g., "1258"
    sis_class_number: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    instructor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    component: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # LEC, LAB, DIS
    class_section: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    class_capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    enrollment_available: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    days: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    start_time: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    end_time: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    enrollments: Mapped[list["UserClass"]] = relationship(
        "UserClass", back_populates="class_", passive_deletes=True
    )


class UserClass(Base):
    """Enrollment of a user in a class section."""

    __tablename__ = "user_classes"
    __table_args__ = (
        UniqueConstraint("user_id", "class_id", name="unique_user_class"),
        Index("idx_user_classes_class", "class_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    class_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False
    )
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="enrollments")
    class_: Mapped["Class"] = relationship("Class", back_populates="enrollments")


class ClassMessage(Base):
    """
    Anonymous post in a class board.

    user_id is kept for moderation and the author's own view only; it is
    never serialized to other readers.
    """

    __tablename__ = "class_messages"
    __table_args__ = (
        Index("idx_class_messages_class_created", "class_id", "hidden", "created_at"),
        Index("idx_class_messages_parent", "parent_message_id"),
        CheckConstraint("flagged_count >= 0", name="valid_flagged_count"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    class_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False
    )
    parent_message_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("class_messages.id", ondelete="CASCADE"), nullable=True
    )
    anonymous_identifier: Mapped[str] = mapped_column(String(32), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    flagged_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
