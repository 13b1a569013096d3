"""Friendship schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from common_grounds.db.models import FriendshipStatus
from common_grounds.schemas.base import BaseSchema
from common_grounds.schemas.classes import ClassRead
from common_grounds.schemas.user import UserSummary


class FriendRequestCreate(BaseSchema):
    """Target a user either by id or by computing id."""

    user_id: UUID | None = None
    computing_id: str | None = Field(None, min_length=1, max_length=10)

    @model_validator(mode="after")
    def require_target(self) -> "FriendRequestCreate":
        if self.user_id is None and not self.computing_id:
            raise ValueError("Either user_id or computing_id must be provided")
        return self


class FriendshipRead(BaseSchema):
    id: UUID
    status: FriendshipStatus
    created_at: datetime
    user: UserSummary


class FriendRead(BaseSchema):
    friendship_id: UUID
    friend: UserSummary
    created_at: datetime


class FriendListResponse(BaseSchema):
    friends: list[FriendRead]


class ReceivedRequest(BaseSchema):
    friendship_id: UUID
    from_user: UserSummary
    created_at: datetime


class SentRequest(BaseSchema):
    friendship_id: UUID
    to_user: UserSummary
    created_at: datetime


class PendingRequestsResponse(BaseSchema):
    received: list[ReceivedRequest]
    sent: list[SentRequest]


class CommonClassesResponse(BaseSchema):
    classes: list[ClassRead]


class FriendsInClassResponse(BaseSchema):
    friends: list[UserSummary]
