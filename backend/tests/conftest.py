"""Pytest configuration and fixtures."""

import os

# Settings() is instantiated when common_grounds.main is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from collections.abc import AsyncGenerator
from uuid import UUID

import fakeredis
import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from common_grounds.config import Settings
from common_grounds.container import AppContainer
from common_grounds.db.models import Class, User, UserClass
from common_grounds.db.session import Database
from common_grounds.exceptions import EmailDeliveryError
from common_grounds.main import create_app
from common_grounds.services.cache import RedisCache
from common_grounds.services.course_catalog import CatalogUnavailableError

TERM = "1268"


class RecordingEmailService:
    """Stands in for EmailService; remembers every link it was asked to send."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send_magic_link(self, email: str, token: str) -> None:
        if self.fail:
            raise EmailDeliveryError()
        self.sent.append((email, token))

    @property
    def last_token(self) -> str:
        return self.sent[-1][1]


class FakeCatalog:
    """Stands in for CourseCatalogClient with canned sections."""

    def __init__(self):
        self.sections: dict[tuple[str, str, str], list[dict]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.unavailable = False

    def add(self, subject: str, catalog_number: str, term: str, sis_class_number: str, **extra) -> None:
        section = {
            "subject": subject,
            "catalog_number": catalog_number,
            "sis_class_number": sis_class_number,
            "title": extra.pop("title", f"{subject} {catalog_number}"),
            "instructor": None,
            "component": "LEC",
            "class_section": "001",
            "class_capacity": None,
            "enrollment_available": None,
            "days": None,
            "start_time": None,
            "end_time": None,
            "location": None,
        }
        section.update(extra)
        self.sections.setdefault((subject, catalog_number, term), []).append(section)

    async def fetch_sections(self, subject: str, catalog_number: str, term: str) -> list[dict]:
        self.calls.append((subject, catalog_number, term))
        if self.unavailable:
            raise CatalogUnavailableError("SIS is down")
        return [dict(s) for s in self.sections.get((subject, catalog_number, term), [])]


@pytest.fixture
def settings(tmp_path) -> Settings:
    # A file (not :memory:) so concurrent sessions get separate connections
    return Settings(
        jwt_secret_key="test-secret-key",
        environment="development",
        database_url_override=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        redis_url="redis://localhost:6379/15",
        frontend_url="http://frontend.test",
        sis_api_url="https://sis.example.test/search",
        resend_api_key="re_test",
    )


@pytest.fixture
async def database(settings) -> AsyncGenerator[Database, None]:
    db = Database.from_settings(settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def db_session(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def cache(redis_client) -> RedisCache:
    return RedisCache(redis_client)


@pytest.fixture
def email_service() -> RecordingEmailService:
    return RecordingEmailService()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
async def container(settings, database, cache, email_service, catalog) -> AsyncGenerator[AppContainer, None]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    app_container = AppContainer.build(
        settings,
        database=database,
        cache=cache,
        http_client=http_client,
        email=email_service,
        catalog=catalog,
    )
    yield app_container
    await app_container.hub.stop()
    await http_client.aclose()


@pytest.fixture
async def client(container) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    app = create_app(container=container)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# DATA HELPERS
# =============================================================================


@pytest.fixture
def login(container, email_service):
    """Run the full magic-link flow; returns (user, access_token)."""

    async def _login(email: str) -> tuple[User, str]:
        async with container.database.session() as db:
            await container.auth.request_magic_link(db, email)
        async with container.database.session() as db:
            result = await container.auth.verify_magic_link(db, email_service.last_token)
        return result.user, result.access_token

    return _login


@pytest.fixture
def make_class(database):
    async def _make_class(
        subject: str = "CS",
        catalog_number: str = "2150",
        term: str = TERM,
        sis_class_number: str = "10001",
    ) -> Class:
        async with database.session() as db:
            cls = Class(
                subject=subject,
                catalog_number=catalog_number,
                term=term,
                sis_class_number=sis_class_number,
                title=f"{subject} {catalog_number}",
            )
            db.add(cls)
        return cls

    return _make_class


@pytest.fixture
def enroll(database):
    async def _enroll(user_id: UUID, class_id: UUID) -> None:
        async with database.session() as db:
            db.add(UserClass(user_id=user_id, class_id=class_id))

    return _enroll


@pytest.fixture
def make_user(database):
    async def _make_user(email: str, computing_id: str | None = None) -> User:
        async with database.session() as db:
            user = User(email=email, computing_id=computing_id, email_verified=True)
            db.add(user)
        return user

    return _make_user


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
