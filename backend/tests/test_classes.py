"""Tests for the SIS catalog client and the classes service."""

import json
from datetime import date
from uuid import uuid4

import httpx
import pytest
from sqlalchemy import func, select

from conftest import TERM
from common_grounds.db.models import Class
from common_grounds.exceptions import AlreadyExistsError, NotFoundError, ServiceUnavailableError
from common_grounds.services.cache import class_search_key, common_classes_key, user_classes_key
from common_grounds.services.course_catalog import (
    CatalogUnavailableError,
    CourseCatalogClient,
    current_term,
    normalize_section,
    parse_class_input,
)

SIS_RECORD = {
    "subject": "CS",
    "catalog_nbr": "2150",
    "class_nbr": "15432",
    "descr": "Program & Data Representation",
    "instructor": "Bloomfield",
    "component": "LEC",
    "class_section": "001",
    "class_capacity": "300",
    "enrollment_available": 12,
    "days": "MoWe",
    "start_time": "14.00.00",
    "end_time": "15.15.00",
    "location": "Rice 130",
}


class TestTermAndInput:
    @pytest.mark.parametrize(
        "today,term",
        [
            (date(2026, 1, 10), "1262"),
            (date(2026, 5, 31), "1262"),
            (date(2026, 6, 1), "1268"),
            (date(2026, 12, 1), "1268"),
            (date(2030, 3, 1), "1302"),
        ],
    )
    def test_current_term(self, today, term):
        assert current_term(today) == term

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("CS 2150", ("CS", "2150")),
            ("cs2150", ("CS", "2150")),
            ("  math   3351 ", ("MATH", "3351")),
            ("C 2150", None),
            ("CS 215", None),
            ("COMPSCI 2150", None),
            ("", None),
        ],
    )
    def test_parse_class_input(self, value, expected):
        assert parse_class_input(value) == expected

    def test_normalize_section(self):
        section = normalize_section(SIS_RECORD)
        assert section["subject"] == "CS"
        assert section["catalog_number"] == "2150"
        assert section["sis_class_number"] == "15432"
        assert section["title"] == "Program & Data Representation"
        assert section["class_capacity"] == 300
        assert section["enrollment_available"] == 12


class TestCourseCatalogClient:
    def _client(self, settings, handler) -> CourseCatalogClient:
        return CourseCatalogClient(settings, httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    @pytest.mark.asyncio
    async def test_sends_query_params(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(dict(request.url.params))
            return httpx.Response(200, json=[SIS_RECORD])

        sections = await self._client(settings, handler).fetch_sections("cs", "2150", TERM)

        assert seen == {
            "institution": "UVA01",
            "term": TERM,
            "subject": "CS",
            "catalog_nbr": "2150",
            "page": "1",
        }
        assert [s["sis_class_number"] for s in sections] == ["15432"]

    @pytest.mark.asyncio
    async def test_non_list_payload_is_empty(self, settings):
        client = self._client(settings, lambda r: httpx.Response(200, json={"error": "nope"}))
        assert await client.fetch_sections("CS", "2150", TERM) == []

    @pytest.mark.asyncio
    async def test_skips_records_without_class_number(self, settings):
        record = dict(SIS_RECORD, class_nbr="")
        client = self._client(settings, lambda r: httpx.Response(200, json=[record, SIS_RECORD]))
        sections = await client.fetch_sections("CS", "2150", TERM)
        assert len(sections) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json=[]),
            httpx.Response(200, content=b"<html>not json</html>"),
        ],
    )
    async def test_bad_responses_raise(self, settings, response):
        client = self._client(settings, lambda r: response)
        with pytest.raises(CatalogUnavailableError):
            await client.fetch_sections("CS", "2150", TERM)

    @pytest.mark.asyncio
    async def test_timeout_raises(self, settings):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(CatalogUnavailableError):
            await self._client(settings, handler).fetch_sections("CS", "2150", TERM)


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_stores_and_caches(self, container, db_session, catalog, cache):
        catalog.add("CS", "2150", TERM, "10001")
        catalog.add("CS", "2150", TERM, "10002", component="LAB")

        results = await container.classes.search(db_session, "cs", "2150", TERM)

        assert [c.sis_class_number for c in results] == ["10001", "10002"]
        stored = (await db_session.execute(select(func.count()).select_from(Class))).scalar_one()
        assert stored == 2
        cached = json.loads(await cache.get(class_search_key("CS", "2150", TERM)))
        assert [c["sis_class_number"] for c in cached] == ["10001", "10002"]

    @pytest.mark.asyncio
    async def test_cache_hit_skips_catalog(self, container, db_session, catalog):
        catalog.add("CS", "2150", TERM, "10001")
        await container.classes.search(db_session, "CS", "2150", TERM)
        await container.classes.search(db_session, "CS", "2150", TERM)
        assert len(catalog.calls) == 1

    @pytest.mark.asyncio
    async def test_repeat_sync_updates_rows(self, container, db_session, catalog, cache):
        catalog.add("CS", "2150", TERM, "10001", instructor="Old")
        await container.classes.search(db_session, "CS", "2150", TERM)
        await cache.delete(class_search_key("CS", "2150", TERM))
        catalog.sections[("CS", "2150", TERM)][0]["instructor"] = "New"

        results = await container.classes.search(db_session, "CS", "2150", TERM)

        assert [c.instructor for c in results] == ["New"]
        stored = (await db_session.execute(select(func.count()).select_from(Class))).scalar_one()
        assert stored == 1

    @pytest.mark.asyncio
    async def test_defaults_to_current_term(self, container, db_session, catalog):
        await container.classes.search(db_session, "CS", "2150")
        assert catalog.calls == [("CS", "2150", current_term())]

    @pytest.mark.asyncio
    async def test_falls_back_to_stored_rows(self, container, db_session, catalog, make_class):
        """Should serve stored sections when SIS is down."""
        await make_class("CS", "2150", TERM, "10001")
        catalog.unavailable = True

        results = await container.classes.search(db_session, "CS", "2150", TERM)

        assert [c.sis_class_number for c in results] == ["10001"]

    @pytest.mark.asyncio
    async def test_unavailable_without_fallback(self, container, db_session, catalog):
        catalog.unavailable = True
        with pytest.raises(ServiceUnavailableError) as exc_info:
            await container.classes.search(db_session, "CS", "2150", TERM)
        assert exc_info.value.service == "uva_sis"


class TestEnrollment:
    @pytest.fixture
    async def alice(self, make_user):
        return await make_user("alice@virginia.edu", "abc1de")

    @pytest.mark.asyncio
    async def test_enroll_first_section(self, container, db_session, catalog, alice):
        catalog.add("CS", "2150", TERM, "10001")
        catalog.add("CS", "2150", TERM, "10002")

        enrolled = await container.classes.enroll(db_session, alice.id, "CS", "2150", TERM)

        assert enrolled.sis_class_number == "10001"
        assert enrolled.enrolled_at is not None

    @pytest.mark.asyncio
    async def test_enroll_requested_section(self, container, db_session, catalog, alice):
        catalog.add("CS", "2150", TERM, "10001")
        catalog.add("CS", "2150", TERM, "10002")

        enrolled = await container.classes.enroll(db_session, alice.id, "CS", "2150", TERM, "10002")

        assert enrolled.sis_class_number == "10002"

    @pytest.mark.asyncio
    async def test_enroll_unknown_class(self, container, db_session, alice):
        with pytest.raises(NotFoundError):
            await container.classes.enroll(db_session, alice.id, "CS", "9999", TERM)

    @pytest.mark.asyncio
    async def test_enroll_twice(self, container, db_session, catalog, alice):
        catalog.add("CS", "2150", TERM, "10001")
        await container.classes.enroll(db_session, alice.id, "CS", "2150", TERM)
        with pytest.raises(AlreadyExistsError):
            await container.classes.enroll(db_session, alice.id, "CS", "2150", TERM)

    @pytest.mark.asyncio
    async def test_list_and_drop(self, container, db_session, catalog, alice):
        catalog.add("CS", "2150", TERM, "10001")
        catalog.add("MATH", "3351", TERM, "20001")
        first = await container.classes.enroll(db_session, alice.id, "CS", "2150", TERM)
        second = await container.classes.enroll(db_session, alice.id, "MATH", "3351", TERM)

        listed = await container.classes.list_for_user(db_session, alice.id)
        assert {c.id for c in listed} == {first.id, second.id}

        await container.classes.drop(db_session, alice.id, first.id)

        listed = await container.classes.list_for_user(db_session, alice.id)
        assert [c.id for c in listed] == [second.id]

    @pytest.mark.asyncio
    async def test_list_filters_by_term(self, container, db_session, catalog, alice):
        catalog.add("CS", "2150", TERM, "10001")
        catalog.add("CS", "2150", "1262", "10001")
        await container.classes.enroll(db_session, alice.id, "CS", "2150", TERM)
        await container.classes.enroll(db_session, alice.id, "CS", "2150", "1262")

        listed = await container.classes.list_for_user(db_session, alice.id, "1262")

        assert [c.term for c in listed] == ["1262"]

    @pytest.mark.asyncio
    async def test_drop_missing_enrollment(self, container, db_session, make_class, alice):
        cls = await make_class()
        with pytest.raises(NotFoundError):
            await container.classes.drop(db_session, alice.id, cls.id)

    @pytest.mark.asyncio
    async def test_enroll_invalidates_user_caches(self, container, db_session, catalog, cache, alice):
        catalog.add("CS", "2150", TERM, "10001")
        await cache.set(user_classes_key(alice.id), "[]")
        await cache.set(user_classes_key(alice.id, TERM), "[]")
        await cache.set(common_classes_key(alice.id, "friend"), "[]")
        await cache.set(common_classes_key("friend", alice.id), "[]")
        await cache.set(user_classes_key("someone-else"), "[]")

        await container.classes.enroll(db_session, alice.id, "CS", "2150", TERM)

        assert await cache.get(user_classes_key(alice.id)) is None
        assert await cache.get(user_classes_key(alice.id, TERM)) is None
        assert await cache.get(common_classes_key(alice.id, "friend")) is None
        assert await cache.get(common_classes_key("friend", alice.id)) is None
        assert await cache.get(user_classes_key("someone-else")) == "[]"

    @pytest.mark.asyncio
    async def test_get_class(self, container, db_session, make_class):
        cls = await make_class()
        assert (await container.classes.get(db_session, cls.id)).subject == "CS"

        with pytest.raises(NotFoundError):
            await container.classes.get(db_session, uuid4())
