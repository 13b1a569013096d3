"""Domain services and external integrations."""

from common_grounds.services.auth import AuthService, LoginResult
from common_grounds.services.cache import RedisCache
from common_grounds.services.classes import ClassesService
from common_grounds.services.course_catalog import CourseCatalogClient
from common_grounds.services.email import EmailService
from common_grounds.services.friends import FriendsService
from common_grounds.services.messages import MessagesService
from common_grounds.services.rate_limit import RateLimiter
from common_grounds.services.users import UsersService

__all__ = [
    "AuthService",
    "LoginResult",
    "RedisCache",
    "ClassesService",
    "CourseCatalogClient",
    "EmailService",
    "FriendsService",
    "MessagesService",
    "RateLimiter",
    "UsersService",
]
