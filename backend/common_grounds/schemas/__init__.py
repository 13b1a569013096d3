"""Pydantic schemas for API request/response validation."""

from common_grounds.schemas.auth import (
    MagicLinkRequest,
    MagicLinkSentResponse,
    TokenResponse,
)
from common_grounds.schemas.base import StatusResponse
from common_grounds.schemas.classes import (
    ClassRead,
    ClassSearchResponse,
    CurrentTermResponse,
    EnrolledClassListResponse,
    EnrolledClassRead,
    EnrollRequest,
)
from common_grounds.schemas.friends import (
    CommonClassesResponse,
    FriendListResponse,
    FriendRead,
    FriendRequestCreate,
    FriendsInClassResponse,
    FriendshipRead,
    PendingRequestsResponse,
    ReceivedRequest,
    SentRequest,
)
from common_grounds.schemas.messages import (
    FlagResult,
    MessageCreate,
    MessageListResponse,
    MessagePublic,
    MessageRead,
    Pagination,
)
from common_grounds.schemas.user import (
    CompleteRegistrationRequest,
    UserRead,
    UserSearchResponse,
    UserSearchResult,
    UserSummary,
    UserUpdate,
)

__all__ = [
    # Auth
    "MagicLinkRequest",
    "MagicLinkSentResponse",
    "TokenResponse",
    # Common
    "StatusResponse",
    # Classes
    "ClassRead",
    "ClassSearchResponse",
    "CurrentTermResponse",
    "EnrolledClassListResponse",
    "EnrolledClassRead",
    "EnrollRequest",
    # Friends
    "CommonClassesResponse",
    "FriendListResponse",
    "FriendRead",
    "FriendRequestCreate",
    "FriendsInClassResponse",
    "FriendshipRead",
    "PendingRequestsResponse",
    "ReceivedRequest",
    "SentRequest",
    # Messages
    "FlagResult",
    "MessageCreate",
    "MessageListResponse",
    "MessagePublic",
    "MessageRead",
    "Pagination",
    # User
    "CompleteRegistrationRequest",
    "UserRead",
    "UserSearchResponse",
    "UserSearchResult",
    "UserSummary",
    "UserUpdate",
]
