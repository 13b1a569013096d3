"""Anonymous class message routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from common_grounds.api.deps import Container, CurrentUser, DbSession, limit_message_posts
from common_grounds.exceptions import NotEnrolledError
from common_grounds.schemas.messages import FlagResult, MessageCreate, MessageListResponse, MessageRead

router = APIRouter(prefix="/classes", tags=["messages"])


@router.get("/{class_id}/messages", response_model=MessageListResponse)
async def list_messages(
    class_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
    limit: int = Query(50),
    offset: int = Query(0),
) -> MessageListResponse:
    """Visible messages, newest first. Only enrolled students can read a board."""
    if not await container.messages.is_enrolled(db, current_user.id, class_id):
        raise NotEnrolledError("You must be enrolled in this class to view messages")
    return await container.messages.list_messages(db, class_id, current_user.id, limit, offset)


@router.post(
    "/{class_id}/messages",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_message_posts)],
)
async def create_message(
    class_id: UUID,
    data: MessageCreate,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> MessageRead:
    message = await container.messages.post(
        db, current_user.id, class_id, data.content, data.parent_message_id
    )
    await container.hub.broadcast_message(message)
    return message


@router.post("/messages/{message_id}/flag", response_model=FlagResult)
async def flag_message(
    message_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> FlagResult:
    """Report a message. Enough reports hide it permanently."""
    return await container.messages.flag(db, message_id, current_user.id)
