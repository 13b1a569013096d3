"""
Course lookup and enrollment.

Search results are read through Redis (24h) and mirrored into the classes
table, which doubles as the fallback when SIS is unreachable.
"""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from common_grounds.config import Settings
from common_grounds.db.models import Class, UserClass
from common_grounds.exceptions import AlreadyExistsError, NotFoundError, ServiceUnavailableError
from common_grounds.schemas.classes import ClassRead, EnrolledClassRead
from common_grounds.services.cache import (
    RedisCache,
    class_search_key,
    invalidate_enrollment_caches,
    user_classes_key,
)
from common_grounds.services.course_catalog import (
    CatalogUnavailableError,
    CourseCatalogClient,
    current_term,
)

logger = logging.getLogger(__name__)


class ClassesService:
    """Search the catalog and manage a user's enrollments."""

    def __init__(self, settings: Settings, cache: RedisCache, catalog: CourseCatalogClient):
        self.settings = settings
        self.cache = cache
        self.catalog = catalog

    def current_term(self) -> str:
        return current_term()

    # =========================================================================
    # SEARCH
    # =========================================================================

    async def search(
        self,
        db: AsyncSession,
        subject: str,
        catalog_number: str,
        term: str | None = None,
    ) -> list[ClassRead]:
        """
        Sections for SUBJECT NUMBER in a term (default: current term).

        Raises:
            ServiceUnavailableError: SIS failed and nothing is stored locally
        """
        subject = subject.strip().upper()
        catalog_number = catalog_number.strip()
        term = term or self.current_term()
        cache_key = class_search_key(subject, catalog_number, term)

        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return [ClassRead.model_validate(item) for item in cached]

        try:
            sections = await self.catalog.fetch_sections(subject, catalog_number, term)
        except CatalogUnavailableError as e:
            logger.error("UVA SIS API error for %s %s: %s", subject, catalog_number, e)
            stored = await self._stored_sections(db, subject, catalog_number, term)
            if stored:
                logger.info("Serving %d stored sections for %s %s", len(stored), subject, catalog_number)
                return [ClassRead.model_validate(c) for c in stored]
            raise ServiceUnavailableError(
                "Unable to fetch class data. Please try again later.", service="uva_sis"
            ) from e

        await self._upsert_sections(db, term, sections)
        stored = await self._stored_sections(db, subject, catalog_number, term)
        results = [ClassRead.model_validate(c) for c in stored]

        await self.cache.set_json(
            cache_key,
            [r.model_dump(mode="json") for r in results],
            self.settings.class_search_cache_ttl,
        )
        return results

    async def _stored_sections(
        self, db: AsyncSession, subject: str, catalog_number: str, term: str
    ) -> list[Class]:
        result = await db.execute(
            select(Class)
            .where(
                Class.subject == subject,
                Class.catalog_number == catalog_number,
                Class.term == term,
            )
            .order_by(Class.sis_class_number)
        )
        return list(result.scalars())

    async def _upsert_sections(
        self, db: AsyncSession, term: str, sections: list[dict[str, Any]]
    ) -> None:
        now = datetime.now(timezone.utc)
        for section in sections:
            result = await db.execute(
                select(Class).where(
                    Class.subject == section["subject"],
                    Class.catalog_number == section["catalog_number"],
                    Class.term == term,
                    Class.sis_class_number == section["sis_class_number"],
                )
            )
            existing = result.scalar_one_or_none()
            if existing is None:
                db.add(Class(term=term, last_synced_at=now, **section))
            else:
                for key, value in section.items():
                    setattr(existing, key, value)
                existing.last_synced_at = now

        try:
            await db.commit()
        except IntegrityError:
            # A concurrent search stored the same sections first
            await db.rollback()
            logger.debug("Concurrent upsert for term %s, keeping existing rows", term)

    # =========================================================================
    # ENROLLMENT
    # =========================================================================

    async def enroll(
        self,
        db: AsyncSession,
        user_id: UUID,
        subject: str,
        catalog_number: str,
        term: str,
        sis_class_number: str | None = None,
    ) -> EnrolledClassRead:
        """
        Enroll a user in a section, picking the requested one or the first.

        Raises:
            NotFoundError: SIS has no such class
            AlreadyExistsError: User is already enrolled in the section
        """
        sections = await self.search(db, subject, catalog_number, term)
        if not sections:
            raise NotFoundError("Class not found in UVA SIS")

        target = sections[0]
        if sis_class_number:
            target = next((s for s in sections if s.sis_class_number == sis_class_number), sections[0])

        existing = await db.execute(
            select(UserClass.id).where(UserClass.user_id == user_id, UserClass.class_id == target.id)
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyExistsError("Already enrolled in this class")

        enrollment = UserClass(user_id=user_id, class_id=target.id)
        db.add(enrollment)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise AlreadyExistsError("Already enrolled in this class") from e

        await invalidate_enrollment_caches(self.cache, user_id)
        logger.info("User %s enrolled in %s %s (%s)", user_id, target.subject, target.catalog_number, target.term)
        return EnrolledClassRead(**target.model_dump(), enrolled_at=enrollment.enrolled_at)

    async def list_for_user(
        self, db: AsyncSession, user_id: UUID, term: str | None = None
    ) -> list[EnrolledClassRead]:
        cache_key = user_classes_key(user_id, term)
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return [EnrolledClassRead.model_validate(item) for item in cached]

        query = (
            select(Class, UserClass.enrolled_at)
            .join(UserClass, UserClass.class_id == Class.id)
            .where(UserClass.user_id == user_id)
        )
        if term:
            query = query.where(Class.term == term)
        query = query.order_by(UserClass.enrolled_at.desc())

        result = await db.execute(query)
        classes = [
            EnrolledClassRead(**ClassRead.model_validate(cls).model_dump(), enrolled_at=enrolled_at)
            for cls, enrolled_at in result.all()
        ]

        await self.cache.set_json(
            cache_key,
            [c.model_dump(mode="json") for c in classes],
            self.settings.user_cache_ttl,
        )
        return classes

    async def drop(self, db: AsyncSession, user_id: UUID, class_id: UUID) -> None:
        result = await db.execute(
            delete(UserClass).where(UserClass.user_id == user_id, UserClass.class_id == class_id)
        )
        if not result.rowcount:
            await db.rollback()
            raise NotFoundError("Enrollment not found")
        await db.commit()
        await invalidate_enrollment_caches(self.cache, user_id)

    async def get(self, db: AsyncSession, class_id: UUID) -> ClassRead:
        result = await db.execute(select(Class).where(Class.id == class_id))
        cls = result.scalar_one_or_none()
        if cls is None:
            raise NotFoundError("Class not found")
        return ClassRead.model_validate(cls)
