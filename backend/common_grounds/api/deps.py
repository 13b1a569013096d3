"""
FastAPI Dependencies for the container, database sessions and authentication.

Key patterns:
1. get_container: services come from app.state, never from module globals
2. get_current_user: validates the credential against a live session row
3. No global "current user" state - always pass user ids explicitly

Security model:
- Credential read from the HttpOnly `access_token` cookie or an
  `Authorization: Bearer` header
- A valid signature alone is not enough; logout deletes the session row
- Ownership and enrollment checks live in the services
"""

from collections.abc import AsyncIterator
from typing import Annotated
from uuid import UUID

from fastapi import Cookie, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from common_grounds.container import AppContainer
from common_grounds.db.models import User
from common_grounds.exceptions import AuthenticationRequiredError, InvalidTokenError


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


Container = Annotated[AppContainer, Depends(get_container)]


async def get_db(container: Container) -> AsyncIterator[AsyncSession]:
    """
    Dependency that provides a database session.

    Commits when the handler returns, rolls back if it raises.
    """
    async with container.database.session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


async def get_token_from_request(
    authorization: Annotated[str | None, Header()] = None,
    access_token: Annotated[str | None, Cookie()] = None,
) -> str:
    """
    Extract the session credential from the request.

    Supports two methods (in order of preference):
    1. HttpOnly cookie named 'access_token' (set by /auth/verify)
    2. Authorization header: 'Bearer <token>'
    """
    if access_token:
        return access_token

    token = parse_bearer(authorization)
    if token:
        return token

    raise AuthenticationRequiredError("No token provided")


CurrentToken = Annotated[str, Depends(get_token_from_request)]


async def get_current_user(
    token: CurrentToken,
    db: DbSession,
    container: Container,
) -> User:
    """
    Validate the credential and return the current authenticated user.

        @router.get("/classes/my-classes")
        async def my_classes(current_user: CurrentUser): ...

    Raises 401 if the token is missing, malformed, expired, logged out, or
    its user no longer exists.
    """
    try:
        claims = await container.auth.validate_session(db, token)
    except InvalidTokenError as e:
        raise AuthenticationRequiredError("Invalid or expired token") from e

    user = await db.get(User, claims.user_id)
    if user is None:
        raise AuthenticationRequiredError("Invalid or expired token")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


# =============================================================================
# RATE LIMITS
# =============================================================================


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def limit_magic_link_requests(request: Request, container: Container) -> None:
    settings = container.settings
    await container.rate_limiter.hit(
        "magic-link",
        client_ip(request),
        limit=settings.magic_link_rate_limit,
        window_seconds=settings.magic_link_rate_window,
        message="Too many magic link requests. Please try again later.",
    )


async def limit_message_posts(class_id: UUID, current_user: CurrentUser, container: Container) -> None:
    settings = container.settings
    await container.rate_limiter.hit(
        "messages",
        f"{current_user.id}:{class_id}",
        limit=settings.message_rate_limit,
        window_seconds=settings.message_rate_window,
        message="Too many messages. Please slow down.",
    )
