"""Friend request and friend list routes."""

from uuid import UUID

from fastapi import APIRouter, status

from common_grounds.api.deps import Container, CurrentUser, DbSession
from common_grounds.schemas.base import StatusResponse
from common_grounds.schemas.friends import (
    CommonClassesResponse,
    FriendListResponse,
    FriendRequestCreate,
    FriendshipRead,
    PendingRequestsResponse,
)

router = APIRouter(prefix="/friends", tags=["friends"])


@router.post("/request", response_model=FriendshipRead, status_code=status.HTTP_201_CREATED)
async def send_friend_request(
    data: FriendRequestCreate,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> FriendshipRead:
    """Send a request by user id or by computing ID."""
    target_id = data.user_id
    if target_id is None:
        target = await container.friends.resolve_handle(db, data.computing_id)
        target_id = target.id
    return await container.friends.send_request(db, current_user.id, target_id)


@router.get("", response_model=FriendListResponse)
async def list_friends(
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> FriendListResponse:
    friends = await container.friends.list_friends(db, current_user.id)
    return FriendListResponse(friends=friends)


@router.get("/requests", response_model=PendingRequestsResponse)
async def pending_requests(
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> PendingRequestsResponse:
    return await container.friends.pending_requests(db, current_user.id)


@router.put("/requests/{friendship_id}/accept", response_model=FriendshipRead)
async def accept_request(
    friendship_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> FriendshipRead:
    return await container.friends.accept(db, friendship_id, current_user.id)


@router.put("/requests/{friendship_id}/reject", response_model=StatusResponse)
async def reject_request(
    friendship_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> StatusResponse:
    await container.friends.reject(db, friendship_id, current_user.id)
    return StatusResponse(message="Friend request rejected")


@router.delete("/{friendship_id}", response_model=StatusResponse)
async def remove_friend(
    friendship_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> StatusResponse:
    await container.friends.remove(db, friendship_id, current_user.id)
    return StatusResponse(message="Friend removed successfully")


@router.get("/{friend_id}/common-classes", response_model=CommonClassesResponse)
async def common_classes(
    friend_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> CommonClassesResponse:
    classes = await container.friends.common_classes(db, current_user.id, friend_id)
    return CommonClassesResponse(classes=classes)
