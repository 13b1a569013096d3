"""User profile and user search routes."""

from fastapi import APIRouter, Query, Response

from common_grounds.api.deps import Container, CurrentUser, DbSession
from common_grounds.schemas.base import StatusResponse
from common_grounds.schemas.user import (
    CompleteRegistrationRequest,
    UserRead,
    UserSearchResponse,
    UserUpdate,
)

router = APIRouter(prefix="/users", tags=["users"])
search_router = APIRouter(prefix="/search", tags=["users"])


@router.post("/complete-registration", response_model=UserRead)
async def complete_registration(
    data: CompleteRegistrationRequest,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> UserRead:
    """Add a phone number and optional computing ID after first login."""
    return await container.users.complete_registration(
        db, current_user.id, data.phone_number, data.computing_id
    )


@router.get("/profile", response_model=UserRead)
async def get_profile(current_user: CurrentUser) -> UserRead:
    return UserRead.model_validate(current_user)


@router.put("/profile", response_model=UserRead)
async def update_profile(
    data: UserUpdate,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> UserRead:
    return await container.users.update_profile(db, current_user.id, data.computing_id)


@router.delete("/account", response_model=StatusResponse)
async def delete_account(
    current_user: CurrentUser,
    response: Response,
    db: DbSession,
    container: Container,
) -> StatusResponse:
    """Delete the account and everything tied to it."""
    await container.users.delete_account(db, current_user.id)
    response.delete_cookie(key="access_token")
    return StatusResponse(message="Account deleted successfully")


@search_router.get("/users", response_model=UserSearchResponse)
async def search_users(
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
    q: str = Query(..., description="Computing ID fragment or email prefix"),
) -> UserSearchResponse:
    users = await container.users.search(db, q, current_user.id)
    return UserSearchResponse(users=users)
