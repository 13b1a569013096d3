"""
Authentication Routes

Endpoints:
- POST /auth/request-magic-link - Email a single-use login link
- GET /auth/verify/{token} - Exchange a magic link token for a session
- GET /auth/me - Get current user profile
- POST /auth/logout - Revoke the session and clear the cookie

Auth Flow:
1. Frontend POSTs an @virginia.edu address to /auth/request-magic-link
2. Backend stores sha256(token) and emails {frontend_url}/verify/{token}
3. Frontend calls /auth/verify/{token} with the token from the link
4. Backend consumes the link, opens a session row and returns a JWT
   (in an HttpOnly cookie and the response body)
"""

from fastapi import APIRouter, Depends, Response

from common_grounds.api.deps import (
    Container,
    CurrentToken,
    CurrentUser,
    DbSession,
    limit_magic_link_requests,
)
from common_grounds.config import Settings
from common_grounds.schemas.auth import MagicLinkRequest, MagicLinkSentResponse, TokenResponse
from common_grounds.schemas.base import StatusResponse
from common_grounds.schemas.user import UserRead

router = APIRouter(prefix="/auth", tags=["auth"])

COOKIE_NAME = "access_token"


def _cookie_options(settings: Settings) -> dict:
    # Cross-domain deployments (e.g., separate frontend host) need samesite="none" + secure
    return {
        "httponly": True,
        "secure": settings.cookie_cross_domain or settings.environment != "development",
        "samesite": "none" if settings.cookie_cross_domain else "lax",
    }


@router.post(
    "/request-magic-link",
    response_model=MagicLinkSentResponse,
    dependencies=[Depends(limit_magic_link_requests)],
)
async def request_magic_link(
    request: MagicLinkRequest,
    db: DbSession,
    container: Container,
) -> MagicLinkSentResponse:
    """Send a login link. Limited to a few requests per hour per IP."""
    await container.auth.request_magic_link(db, request.email)
    return MagicLinkSentResponse(
        message="Magic link sent! Check your email.",
        expires_in=container.settings.magic_link_expire_minutes * 60,
    )


@router.get("/verify/{token}", response_model=TokenResponse)
async def verify_magic_link(
    token: str,
    response: Response,
    db: DbSession,
    container: Container,
) -> TokenResponse:
    """Consume a magic link and open a session."""
    result = await container.auth.verify_magic_link(db, token)

    response.set_cookie(
        key=COOKIE_NAME,
        value=result.access_token,
        max_age=result.expires_in,
        **_cookie_options(container.settings),
    )

    return TokenResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
        user=UserRead.model_validate(result.user),
    )


@router.get("/me", response_model=UserRead)
async def get_me(current_user: CurrentUser) -> UserRead:
    """Get the current authenticated user's profile."""
    return UserRead.model_validate(current_user)


@router.post("/logout", response_model=StatusResponse)
async def logout(
    token: CurrentToken,
    response: Response,
    db: DbSession,
    container: Container,
) -> StatusResponse:
    """Delete the backing session so the credential stops working everywhere."""
    await container.auth.logout(db, token)
    response.delete_cookie(key=COOKIE_NAME, **_cookie_options(container.settings))
    return StatusResponse(message="Logged out successfully")
