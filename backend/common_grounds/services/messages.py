"""
Anonymous class messaging.

Posts carry a per-class pseudonym derived from (user, class). Moderation is
crowd-sourced: once a message collects `flag_hide_threshold` flags it is
hidden for good.
"""

import logging
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from common_grounds.config import Settings
from common_grounds.db.models import ClassMessage, UserClass
from common_grounds.exceptions import NotEnrolledError, NotFoundError, ValidationError
from common_grounds.schemas.messages import (
    FlagResult,
    MessageListResponse,
    MessageRead,
    Pagination,
)
from common_grounds.services.security import derive_anonymous_identifier

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def sanitize_content(content: str, max_length: int) -> str:
    """
    Trim, enforce 1..max_length characters, then neutralize markup.

    Only angle brackets are escaped; this is not an HTML sanitizer.
    """
    trimmed = content.strip()
    if not trimmed or len(trimmed) > max_length:
        raise ValidationError(f"Message content must be between 1 and {max_length} characters")
    return trimmed.replace("<", "&lt;").replace(">", "&gt;")


class MessagesService:
    """Post, list and flag anonymous messages in a class."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def is_enrolled(self, db: AsyncSession, user_id: UUID, class_id: UUID) -> bool:
        result = await db.execute(
            select(UserClass.id).where(UserClass.user_id == user_id, UserClass.class_id == class_id)
        )
        return result.scalar_one_or_none() is not None

    async def post(
        self,
        db: AsyncSession,
        user_id: UUID,
        class_id: UUID,
        content: str,
        parent_message_id: UUID | None = None,
    ) -> MessageRead:
        """
        Create a message under the author's class pseudonym.

        Raises:
            NotEnrolledError: Author has no enrollment in the class
            ValidationError: Content empty or too long after trimming
            NotFoundError: Parent message missing or in another class
        """
        if not await self.is_enrolled(db, user_id, class_id):
            raise NotEnrolledError("You must be enrolled in this class to post messages")

        sanitized = sanitize_content(content, self.settings.message_max_length)

        if parent_message_id is not None:
            parent = await db.execute(
                select(ClassMessage.id).where(
                    ClassMessage.id == parent_message_id,
                    ClassMessage.class_id == class_id,
                )
            )
            if parent.scalar_one_or_none() is None:
                raise NotFoundError("Parent message not found")

        message = ClassMessage(
            user_id=user_id,
            class_id=class_id,
            anonymous_identifier=derive_anonymous_identifier(user_id, class_id),
            content=sanitized,
            parent_message_id=parent_message_id,
            flagged_count=0,
            hidden=False,
        )
        db.add(message)
        await db.commit()

        return MessageRead(
            id=message.id,
            class_id=message.class_id,
            anonymous_identifier=message.anonymous_identifier,
            content=message.content,
            parent_message_id=message.parent_message_id,
            created_at=message.created_at,
            reply_count=0,
            is_own_message=True,
        )

    async def list_messages(
        self,
        db: AsyncSession,
        class_id: UUID,
        viewer_id: UUID,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> MessageListResponse:
        """Visible messages for a class, newest first, with reply counts."""
        # 0 means "use the default"
        limit = max(1, min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))
        offset = max(0, offset)

        visible = (ClassMessage.class_id == class_id, ClassMessage.hidden.is_(False))

        reply = aliased(ClassMessage)
        reply_counts = (
            select(reply.parent_message_id.label("parent_id"), func.count(reply.id).label("reply_count"))
            .where(reply.parent_message_id.is_not(None), reply.hidden.is_(False))
            .group_by(reply.parent_message_id)
            .subquery()
        )

        rows = await db.execute(
            select(ClassMessage, func.coalesce(reply_counts.c.reply_count, 0))
            .outerjoin(reply_counts, reply_counts.c.parent_id == ClassMessage.id)
            .where(*visible)
            .order_by(ClassMessage.created_at.desc(), ClassMessage.id.desc())
            .limit(limit)
            .offset(offset)
        )
        messages = [
            MessageRead(
                id=message.id,
                class_id=message.class_id,
                anonymous_identifier=message.anonymous_identifier,
                content=message.content,
                parent_message_id=message.parent_message_id,
                created_at=message.created_at,
                reply_count=reply_count,
                is_own_message=message.user_id == viewer_id,
            )
            for message, reply_count in rows.all()
        ]

        total = (await db.execute(select(func.count(ClassMessage.id)).where(*visible))).scalar_one()

        return MessageListResponse(
            messages=messages,
            pagination=Pagination(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + len(messages) < total,
            ),
        )

    async def flag(self, db: AsyncSession, message_id: UUID, user_id: UUID) -> FlagResult:
        """
        Add one flag and hide the message once the threshold is reached.

        Increment and hide happen in a single UPDATE so concurrent flags are
        never lost. The same user may flag repeatedly; no per-user record is kept.

        Raises:
            NotFoundError: Message does not exist
        """
        threshold = self.settings.flag_hide_threshold
        result = await db.execute(
            update(ClassMessage)
            .where(ClassMessage.id == message_id)
            .values(
                flagged_count=ClassMessage.flagged_count + 1,
                hidden=case(
                    (ClassMessage.flagged_count + 1 >= threshold, True),
                    else_=ClassMessage.hidden,
                ),
            )
            .returning(ClassMessage.flagged_count, ClassMessage.hidden)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        if row is None:
            await db.rollback()
            raise NotFoundError("Message not found")
        await db.commit()

        flagged_count, hidden = row
        if hidden:
            logger.info("Message %s hidden after %d flags (last by %s)", message_id, flagged_count, user_id)
        return FlagResult(message_id=message_id, flagged_count=flagged_count, hidden=bool(hidden))
