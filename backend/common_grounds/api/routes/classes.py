"""Class search and enrollment routes."""

from uuid import UUID

from fastapi import APIRouter, status

from common_grounds.api.deps import Container, CurrentUser, DbSession
from common_grounds.exceptions import ValidationError
from common_grounds.schemas.base import StatusResponse
from common_grounds.schemas.classes import (
    ClassRead,
    ClassSearchResponse,
    CurrentTermResponse,
    EnrolledClassListResponse,
    EnrolledClassRead,
    EnrollRequest,
)
from common_grounds.schemas.friends import FriendsInClassResponse
from common_grounds.services.course_catalog import parse_class_input

router = APIRouter(prefix="/classes", tags=["classes"])


@router.get("/search", response_model=ClassSearchResponse)
async def search_classes(
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
    subject: str | None = None,
    catalog_number: str | None = None,
    term: str | None = None,
    q: str | None = None,
) -> ClassSearchResponse:
    """
    Search SIS for a course.

    Accepts either `subject` + `catalog_number` or a free-form `q` like "CS 2150".
    """
    if q and not (subject and catalog_number):
        parsed = parse_class_input(q)
        if parsed is None:
            raise ValidationError('Use the format "CS 2150"')
        subject, catalog_number = parsed
    if not subject or not catalog_number:
        raise ValidationError("Subject and catalog number are required")

    classes = await container.classes.search(db, subject, catalog_number, term)
    return ClassSearchResponse(classes=classes)


@router.get("/current-term", response_model=CurrentTermResponse)
async def get_current_term(container: Container) -> CurrentTermResponse:
    return CurrentTermResponse(term=container.classes.current_term())


@router.post("/enroll", response_model=EnrolledClassRead, status_code=status.HTTP_201_CREATED)
async def enroll(
    data: EnrollRequest,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> EnrolledClassRead:
    return await container.classes.enroll(
        db,
        current_user.id,
        data.subject,
        data.catalog_number,
        data.term,
        data.sis_class_number,
    )


@router.get("/my-classes", response_model=EnrolledClassListResponse)
async def my_classes(
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
    term: str | None = None,
) -> EnrolledClassListResponse:
    """List the current user's classes, newest enrollment first."""
    classes = await container.classes.list_for_user(db, current_user.id, term)
    return EnrolledClassListResponse(classes=classes)


@router.get("/{class_id}", response_model=ClassRead)
async def get_class(
    class_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> ClassRead:
    return await container.classes.get(db, class_id)


@router.delete("/{class_id}", response_model=StatusResponse)
async def drop_class(
    class_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> StatusResponse:
    await container.classes.drop(db, current_user.id, class_id)
    return StatusResponse(message="Class removed successfully")


@router.get("/{class_id}/friends", response_model=FriendsInClassResponse)
async def friends_in_class(
    class_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    container: Container,
) -> FriendsInClassResponse:
    """Accepted friends who are enrolled in this class."""
    friends = await container.friends.friends_in_class(db, current_user.id, class_id)
    return FriendsInClassResponse(friends=friends)
