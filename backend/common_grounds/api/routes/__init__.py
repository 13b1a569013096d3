"""API routes package."""

from common_grounds.api.routes import (
    auth,
    classes,
    friends,
    messages,
    realtime,
    users,
)

__all__ = [
    "auth",
    "classes",
    "friends",
    "messages",
    "realtime",
    "users",
]
