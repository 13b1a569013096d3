"""Authentication schemas."""

from pydantic import Field

from common_grounds.schemas.base import BaseSchema
from common_grounds.schemas.user import UserRead


class MagicLinkRequest(BaseSchema):
    """Request schema for a login link."""

    email: str = Field(..., min_length=3, max_length=255)


class MagicLinkSentResponse(BaseSchema):
    success: bool = True
    message: str
    expires_in: int = Field(..., description="Link lifetime in seconds")


class TokenResponse(BaseSchema):
    """Response schema for successful authentication."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiry in seconds")
    user: UserRead
