"""User profile, registration completion, account deletion and search."""

import logging
import re
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from common_grounds.config import Settings
from common_grounds.db.models import (
    ClassMessage,
    Friendship,
    FriendshipStatus,
    MagicLink,
    Session,
    User,
    UserClass,
)
from common_grounds.exceptions import AlreadyExistsError, NotFoundError, ValidationError
from common_grounds.schemas.user import (
    COMPUTING_ID_PATTERN,
    PHONE_PATTERN,
    UserRead,
    UserSearchResult,
)
from common_grounds.services.cache import (
    RedisCache,
    invalidate_enrollment_caches,
    invalidate_friend_caches,
)
from common_grounds.services.security import hash_phone_number

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
MIN_QUERY_LENGTH = 2

_PHONE_RE = re.compile(PHONE_PATTERN)
_COMPUTING_ID_RE = re.compile(COMPUTING_ID_PATTERN)


def normalize_computing_id(computing_id: str) -> str:
    value = computing_id.strip()
    if not _COMPUTING_ID_RE.match(value):
        raise ValidationError("Computing ID must be 3-10 letters or digits")
    return value.lower()


class UsersService:
    def __init__(self, settings: Settings, cache: RedisCache):
        self.settings = settings
        self.cache = cache

    async def _get_user(self, db: AsyncSession, user_id: UUID) -> User:
        user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_profile(self, db: AsyncSession, user_id: UUID) -> UserRead:
        return UserRead.model_validate(await self._get_user(db, user_id))

    async def _save(self, db: AsyncSession, user: User) -> UserRead:
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise AlreadyExistsError("Computing ID is already taken") from e
        return UserRead.model_validate(user)

    async def complete_registration(
        self,
        db: AsyncSession,
        user_id: UUID,
        phone_number: str,
        computing_id: str | None = None,
    ) -> UserRead:
        """
        Attach a phone number (stored only as a bcrypt hash) and optional handle.

        Raises:
            ValidationError: Malformed phone number or handle
            AlreadyExistsError: Handle belongs to someone else
        """
        phone_number = phone_number.strip()
        if not _PHONE_RE.match(phone_number):
            raise ValidationError("Invalid phone number")

        user = await self._get_user(db, user_id)
        user.phone_hash = hash_phone_number(phone_number)
        # Numbers are not confirmed by SMS
        user.phone_verified = True
        if computing_id:
            user.computing_id = normalize_computing_id(computing_id)
        return await self._save(db, user)

    async def update_profile(
        self, db: AsyncSession, user_id: UUID, computing_id: str | None = None
    ) -> UserRead:
        user = await self._get_user(db, user_id)
        if computing_id is not None:
            user.computing_id = normalize_computing_id(computing_id)
        return await self._save(db, user)

    async def delete_account(self, db: AsyncSession, user_id: UUID) -> None:
        """
        Remove a user together with every row that references them.

        Replies to the user's messages go too, however deeply nested.
        """
        user = await self._get_user(db, user_id)

        friendships = await db.execute(
            select(Friendship).where(
                or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id)
            )
        )
        friend_ids = [
            f.other_user_id(user_id)
            for f in friendships.scalars()
            if f.status == FriendshipStatus.ACCEPTED
        ]

        message_ids = set(
            (await db.execute(select(ClassMessage.id).where(ClassMessage.user_id == user_id))).scalars()
        )
        frontier = set(message_ids)
        while frontier:
            children = set(
                (
                    await db.execute(
                        select(ClassMessage.id).where(ClassMessage.parent_message_id.in_(frontier))
                    )
                ).scalars()
            )
            frontier = children - message_ids
            message_ids |= children

        if message_ids:
            await db.execute(
                delete(ClassMessage)
                .where(ClassMessage.id.in_(message_ids))
                .execution_options(synchronize_session=False)
            )
        await db.execute(
            delete(Friendship)
            .where(or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id))
            .execution_options(synchronize_session=False)
        )
        for model in (UserClass, Session, MagicLink):
            await db.execute(
                delete(model).where(model.user_id == user_id).execution_options(synchronize_session=False)
            )
        await db.delete(user)
        await db.commit()

        await invalidate_enrollment_caches(self.cache, user_id)
        await invalidate_friend_caches(self.cache, user_id, *friend_ids)
        logger.info("Deleted account %s", user_id)

    async def search(self, db: AsyncSession, query: str, current_user_id: UUID) -> list[UserSearchResult]:
        """Match handle substrings or email prefixes, excluding the caller."""
        query = query.strip().lower()
        if len(query) < MIN_QUERY_LENGTH:
            raise ValidationError(f"Search query must be at least {MIN_QUERY_LENGTH} characters")

        result = await db.execute(
            select(User)
            .where(
                or_(
                    User.computing_id.icontains(query, autoescape=True),
                    User.email.istartswith(query, autoescape=True),
                ),
                User.id != current_user_id,
            )
            .order_by(User.email)
            .limit(SEARCH_LIMIT)
        )
        users = list(result.scalars())

        friendships = await db.execute(
            select(Friendship).where(
                Friendship.status == FriendshipStatus.ACCEPTED,
                or_(
                    Friendship.requester_id == current_user_id,
                    Friendship.addressee_id == current_user_id,
                ),
            )
        )
        friend_ids = {f.other_user_id(current_user_id) for f in friendships.scalars()}

        return [
            UserSearchResult(id=u.id, email=u.email, computing_id=u.computing_id, is_friend=u.id in friend_ids)
            for u in users
        ]
