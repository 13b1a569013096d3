"""Friend requests and the friend graph."""

import logging
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from common_grounds.config import Settings
from common_grounds.db.models import Class, Friendship, FriendshipStatus, User, UserClass
from common_grounds.exceptions import (
    AlreadyExistsError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)
from common_grounds.schemas.classes import ClassRead
from common_grounds.schemas.friends import (
    FriendRead,
    FriendshipRead,
    PendingRequestsResponse,
    ReceivedRequest,
    SentRequest,
)
from common_grounds.schemas.user import UserSummary
from common_grounds.services.cache import (
    RedisCache,
    common_classes_key,
    invalidate_friend_caches,
    user_friends_key,
)

logger = logging.getLogger(__name__)


class FriendsService:
    def __init__(self, settings: Settings, cache: RedisCache):
        self.settings = settings
        self.cache = cache

    async def _get_friendship(self, db: AsyncSession, friendship_id: UUID) -> Friendship:
        result = await db.execute(
            select(Friendship)
            .where(Friendship.id == friendship_id)
            .options(selectinload(Friendship.requester), selectinload(Friendship.addressee))
        )
        friendship = result.scalar_one_or_none()
        if friendship is None:
            raise NotFoundError("Friend request not found")
        return friendship

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def send_request(self, db: AsyncSession, from_user_id: UUID, to_user_id: UUID) -> FriendshipRead:
        """
        Ask `to_user_id` to be friends.

        A previously rejected pair is reopened as a fresh pending request.

        Raises:
            ValidationError: Request to self
            NotFoundError: Target user does not exist
            AlreadyExistsError: Already friends or request pending
            NotAuthorizedError: The pair is blocked
        """
        if from_user_id == to_user_id:
            raise ValidationError("Cannot send friend request to yourself")

        target = (await db.execute(select(User).where(User.id == to_user_id))).scalar_one_or_none()
        if target is None:
            raise NotFoundError("User not found")

        pair_key = Friendship.make_pair_key(from_user_id, to_user_id)
        result = await db.execute(select(Friendship).where(Friendship.pair_key == pair_key))
        friendship = result.scalar_one_or_none()

        if friendship is not None:
            if friendship.status == FriendshipStatus.ACCEPTED:
                raise AlreadyExistsError("Already friends")
            if friendship.status == FriendshipStatus.PENDING:
                raise AlreadyExistsError("Friend request already sent")
            if friendship.status == FriendshipStatus.BLOCKED:
                raise NotAuthorizedError("Cannot send friend request to this user")
            friendship.requester_id = from_user_id
            friendship.addressee_id = to_user_id
            friendship.status = FriendshipStatus.PENDING
        else:
            friendship = Friendship(
                requester_id=from_user_id,
                addressee_id=to_user_id,
                pair_key=pair_key,
                status=FriendshipStatus.PENDING,
            )
            db.add(friendship)

        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise AlreadyExistsError("Friend request already sent") from e

        logger.info("Friend request %s -> %s", from_user_id, to_user_id)
        return FriendshipRead(
            id=friendship.id,
            status=friendship.status,
            created_at=friendship.created_at,
            user=UserSummary.model_validate(target),
        )

    async def resolve_handle(self, db: AsyncSession, computing_id: str) -> User:
        result = await db.execute(select(User).where(User.computing_id == computing_id.strip().lower()))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def pending_requests(self, db: AsyncSession, user_id: UUID) -> PendingRequestsResponse:
        result = await db.execute(
            select(Friendship)
            .where(
                Friendship.status == FriendshipStatus.PENDING,
                or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
            )
            .options(selectinload(Friendship.requester), selectinload(Friendship.addressee))
            .order_by(Friendship.created_at.desc())
        )
        received: list[ReceivedRequest] = []
        sent: list[SentRequest] = []
        for f in result.scalars():
            if f.addressee_id == user_id:
                received.append(
                    ReceivedRequest(
                        friendship_id=f.id,
                        from_user=UserSummary.model_validate(f.requester),
                        created_at=f.created_at,
                    )
                )
            else:
                sent.append(
                    SentRequest(
                        friendship_id=f.id,
                        to_user=UserSummary.model_validate(f.addressee),
                        created_at=f.created_at,
                    )
                )
        return PendingRequestsResponse(received=received, sent=sent)

    async def _respond(
        self, db: AsyncSession, friendship_id: UUID, user_id: UUID, status: FriendshipStatus
    ) -> Friendship:
        friendship = await self._get_friendship(db, friendship_id)
        if friendship.addressee_id != user_id:
            raise NotAuthorizedError("Not authorized to respond to this request")
        if friendship.status != FriendshipStatus.PENDING:
            raise ValidationError("Friend request is not pending")
        friendship.status = status
        await db.commit()
        return friendship

    async def accept(self, db: AsyncSession, friendship_id: UUID, user_id: UUID) -> FriendshipRead:
        friendship = await self._respond(db, friendship_id, user_id, FriendshipStatus.ACCEPTED)
        await invalidate_friend_caches(self.cache, friendship.requester_id, friendship.addressee_id)
        return FriendshipRead(
            id=friendship.id,
            status=friendship.status,
            created_at=friendship.created_at,
            user=UserSummary.model_validate(friendship.requester),
        )

    async def reject(self, db: AsyncSession, friendship_id: UUID, user_id: UUID) -> None:
        await self._respond(db, friendship_id, user_id, FriendshipStatus.REJECTED)

    async def remove(self, db: AsyncSession, friendship_id: UUID, user_id: UUID) -> None:
        """Either party may end a friendship (or withdraw a request)."""
        friendship = await self._get_friendship(db, friendship_id)
        if user_id not in (friendship.requester_id, friendship.addressee_id):
            raise NotAuthorizedError("Not authorized to remove this friendship")
        requester_id, addressee_id = friendship.requester_id, friendship.addressee_id
        await db.delete(friendship)
        await db.commit()
        await invalidate_friend_caches(self.cache, requester_id, addressee_id)

    # =========================================================================
    # GRAPH QUERIES
    # =========================================================================

    async def list_friends(self, db: AsyncSession, user_id: UUID) -> list[FriendRead]:
        cache_key = user_friends_key(user_id)
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return [FriendRead.model_validate(item) for item in cached]

        result = await db.execute(
            select(Friendship)
            .where(
                Friendship.status == FriendshipStatus.ACCEPTED,
                or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
            )
            .options(selectinload(Friendship.requester), selectinload(Friendship.addressee))
            .order_by(Friendship.created_at.desc())
        )
        friends = [
            FriendRead(
                friendship_id=f.id,
                friend=UserSummary.model_validate(
                    f.addressee if f.requester_id == user_id else f.requester
                ),
                created_at=f.created_at,
            )
            for f in result.scalars()
        ]

        await self.cache.set_json(
            cache_key, [f.model_dump(mode="json") for f in friends], self.settings.user_cache_ttl
        )
        return friends

    async def common_classes(self, db: AsyncSession, user_id: UUID, friend_id: UUID) -> list[ClassRead]:
        """Classes both users are enrolled in."""
        cache_key = common_classes_key(user_id, friend_id)
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            return [ClassRead.model_validate(item) for item in cached]

        friend_enrollments = select(UserClass.class_id).where(UserClass.user_id == friend_id)
        result = await db.execute(
            select(Class)
            .join(UserClass, UserClass.class_id == Class.id)
            .where(UserClass.user_id == user_id, Class.id.in_(friend_enrollments))
            .order_by(Class.subject, Class.catalog_number)
        )
        classes = [ClassRead.model_validate(c) for c in result.scalars()]

        await self.cache.set_json(
            cache_key, [c.model_dump(mode="json") for c in classes], self.settings.user_cache_ttl
        )
        return classes

    async def friends_in_class(self, db: AsyncSession, user_id: UUID, class_id: UUID) -> list[UserSummary]:
        friends = await self.list_friends(db, user_id)
        friend_ids = [f.friend.id for f in friends]
        if not friend_ids:
            return []

        result = await db.execute(
            select(User)
            .join(UserClass, UserClass.user_id == User.id)
            .where(UserClass.class_id == class_id, User.id.in_(friend_ids))
            .order_by(User.email)
        )
        return [UserSummary.model_validate(u) for u in result.scalars()]
