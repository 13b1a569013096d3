"""
Application container.

Owns every client with a connect/close lifecycle (database engine, Redis,
outbound HTTP) and the services built on top of them. Built once by the app
lifespan; tests construct one directly with fakes.
"""

import logging
from dataclasses import dataclass

import httpx

from common_grounds.config import Settings
from common_grounds.db.session import Database
from common_grounds.realtime import ClassChannelHub
from common_grounds.services.auth import AuthService
from common_grounds.services.cache import RedisCache
from common_grounds.services.classes import ClassesService
from common_grounds.services.course_catalog import CourseCatalogClient
from common_grounds.services.email import EmailService
from common_grounds.services.friends import FriendsService
from common_grounds.services.messages import MessagesService
from common_grounds.services.rate_limit import RateLimiter
from common_grounds.services.users import UsersService

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    settings: Settings
    database: Database
    cache: RedisCache
    http_client: httpx.AsyncClient
    email: EmailService
    catalog: CourseCatalogClient
    auth: AuthService
    messages: MessagesService
    classes: ClassesService
    friends: FriendsService
    users: UsersService
    rate_limiter: RateLimiter
    hub: ClassChannelHub

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        database: Database | None = None,
        cache: RedisCache | None = None,
        http_client: httpx.AsyncClient | None = None,
        email: EmailService | None = None,
        catalog: CourseCatalogClient | None = None,
    ) -> "AppContainer":
        """Wire services together; any collaborator may be supplied pre-built."""
        database = database or Database.from_settings(settings)
        cache = cache or RedisCache.from_url(settings.redis_url)
        http_client = http_client or httpx.AsyncClient()
        email = email or EmailService(settings, http_client)
        catalog = catalog or CourseCatalogClient(settings, http_client)

        return cls(
            settings=settings,
            database=database,
            cache=cache,
            http_client=http_client,
            email=email,
            catalog=catalog,
            auth=AuthService(settings, email),
            messages=MessagesService(settings),
            classes=ClassesService(settings, cache, catalog),
            friends=FriendsService(settings, cache),
            users=UsersService(settings, cache),
            rate_limiter=RateLimiter(cache),
            hub=ClassChannelHub(cache),
        )

    async def start(self) -> None:
        if not await self.cache.ping():
            logger.warning("Redis is unreachable; caching and rate limits are degraded")
        await self.hub.start()

        async with self.database.session() as db:
            links, sessions = await self.auth.purge_expired(db)
        if links or sessions:
            logger.info("Purged %d expired magic links and %d expired sessions", links, sessions)

    async def aclose(self) -> None:
        await self.hub.stop()
        await self.http_client.aclose()
        await self.cache.close()
        await self.database.dispose()
