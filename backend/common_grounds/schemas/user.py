"""User schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from common_grounds.schemas.base import BaseSchema

PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"
COMPUTING_ID_PATTERN = r"^[a-zA-Z0-9]{3,10}$"


class UserRead(BaseSchema):
    """Public profile of the authenticated user."""

    id: UUID
    email: str
    email_verified: bool
    phone_verified: bool
    computing_id: str | None
    created_at: datetime
    updated_at: datetime


class UserSummary(BaseSchema):
    """What other users get to see."""

    id: UUID
    email: str
    computing_id: str | None


class UserSearchResult(UserSummary):
    is_friend: bool = False


class UserSearchResponse(BaseSchema):
    users: list[UserSearchResult]


class CompleteRegistrationRequest(BaseSchema):
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    computing_id: str | None = Field(None, pattern=COMPUTING_ID_PATTERN)


class UserUpdate(BaseSchema):
    """Schema for updating user profile."""

    computing_id: str | None = Field(None, pattern=COMPUTING_ID_PATTERN)
