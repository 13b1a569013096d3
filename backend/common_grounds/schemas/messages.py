"""Anonymous class message schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from common_grounds.schemas.base import BaseSchema


class MessageCreate(BaseSchema):
    content: str = Field(..., min_length=1, max_length=1000)
    parent_message_id: UUID | None = None


class MessagePublic(BaseSchema):
    """What every reader of the board sees. Never carries the author's user id."""

    id: UUID
    class_id: UUID
    anonymous_identifier: str
    content: str
    parent_message_id: UUID | None = None
    created_at: datetime
    reply_count: int = 0


class MessageRead(MessagePublic):
    is_own_message: bool = False


class Pagination(BaseSchema):
    total: int
    limit: int
    offset: int
    has_more: bool


class MessageListResponse(BaseSchema):
    messages: list[MessageRead]
    pagination: Pagination


class FlagResult(BaseSchema):
    message_id: UUID
    flagged_count: int
    hidden: bool
