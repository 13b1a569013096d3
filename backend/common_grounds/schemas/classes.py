"""Class/Course schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from common_grounds.schemas.base import BaseSchema


class ClassRead(BaseSchema):
    """A course section as mirrored from SIS."""

    id: UUID
    subject: str
    catalog_number: str
    term: str
    sis_class_number: str
    title: str
    instructor: str | None = None
    component: str | None = None
    class_section: str | None = None
    class_capacity: int | None = None
    enrollment_available: int | None = None
    days: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    location: str | None = None


class ClassSearchResponse(BaseSchema):
    classes: list[ClassRead]


class EnrollRequest(BaseSchema):
    """Schema for enrolling in a class section."""

    subject: str = Field(..., min_length=2, max_length=4)
    catalog_number: str = Field(..., min_length=4, max_length=4)
    term: str = Field(..., min_length=4, max_length=4)
    sis_class_number: str | None = Field(None, max_length=20)


class EnrolledClassRead(ClassRead):
    enrolled_at: datetime


class EnrolledClassListResponse(BaseSchema):
    classes: list[EnrolledClassRead]


class CurrentTermResponse(BaseSchema):
    term: str
