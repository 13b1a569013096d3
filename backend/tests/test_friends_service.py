"""Tests for friend requests and friend-graph queries."""

from uuid import uuid4

import pytest
from sqlalchemy import select, update

from common_grounds.db.models import Friendship, FriendshipStatus
from common_grounds.exceptions import (
    AlreadyExistsError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)
from common_grounds.services.cache import common_classes_key, user_friends_key


@pytest.fixture
async def alice(make_user):
    return await make_user("alice@virginia.edu", "abc1de")


@pytest.fixture
async def bob(make_user):
    return await make_user("bob@virginia.edu", "xyz9wv")


@pytest.fixture
async def carol(make_user):
    return await make_user("carol@virginia.edu", "crl2ab")


@pytest.fixture
def make_friends(container, db_session):
    async def _make_friends(a, b):
        request = await container.friends.send_request(db_session, a.id, b.id)
        await container.friends.accept(db_session, request.id, b.id)
        return request.id

    return _make_friends


class TestSendRequest:
    @pytest.mark.asyncio
    async def test_creates_pending_request(self, container, db_session, alice, bob):
        request = await container.friends.send_request(db_session, alice.id, bob.id)

        assert request.status == FriendshipStatus.PENDING
        assert request.user.id == bob.id

        row = (await db_session.execute(select(Friendship))).scalar_one()
        assert row.requester_id == alice.id
        assert row.addressee_id == bob.id

    @pytest.mark.asyncio
    async def test_to_self(self, container, db_session, alice):
        with pytest.raises(ValidationError):
            await container.friends.send_request(db_session, alice.id, alice.id)

    @pytest.mark.asyncio
    async def test_unknown_user(self, container, db_session, alice):
        with pytest.raises(NotFoundError):
            await container.friends.send_request(db_session, alice.id, uuid4())

    @pytest.mark.asyncio
    async def test_duplicate_in_either_direction(self, container, db_session, alice, bob):
        """Should treat A->B and B->A as the same pair."""
        await container.friends.send_request(db_session, alice.id, bob.id)

        with pytest.raises(AlreadyExistsError):
            await container.friends.send_request(db_session, alice.id, bob.id)
        with pytest.raises(AlreadyExistsError):
            await container.friends.send_request(db_session, bob.id, alice.id)

    @pytest.mark.asyncio
    async def test_already_friends(self, container, db_session, alice, bob, make_friends):
        await make_friends(alice, bob)
        with pytest.raises(AlreadyExistsError, match="Already friends"):
            await container.friends.send_request(db_session, bob.id, alice.id)

    @pytest.mark.asyncio
    async def test_blocked_pair(self, container, db_session, alice, bob):
        await container.friends.send_request(db_session, alice.id, bob.id)
        await db_session.execute(update(Friendship).values(status=FriendshipStatus.BLOCKED))
        await db_session.commit()

        with pytest.raises(NotAuthorizedError):
            await container.friends.send_request(db_session, alice.id, bob.id)

    @pytest.mark.asyncio
    async def test_rejected_pair_can_be_reopened(self, container, db_session, alice, bob):
        """Should reuse the rejected row, now requested by the other side."""
        request = await container.friends.send_request(db_session, alice.id, bob.id)
        await container.friends.reject(db_session, request.id, bob.id)

        reopened = await container.friends.send_request(db_session, bob.id, alice.id)

        assert reopened.id == request.id
        assert reopened.status == FriendshipStatus.PENDING
        row = (
            await db_session.execute(select(Friendship).execution_options(populate_existing=True))
        ).scalar_one()
        assert row.requester_id == bob.id
        assert row.addressee_id == alice.id

    @pytest.mark.asyncio
    async def test_resolve_handle(self, container, db_session, bob):
        assert (await container.friends.resolve_handle(db_session, " XYZ9WV ")).id == bob.id
        with pytest.raises(NotFoundError):
            await container.friends.resolve_handle(db_session, "nobody")


class TestRespond:
    @pytest.mark.asyncio
    async def test_pending_lists_both_directions(self, container, db_session, alice, bob, carol):
        await container.friends.send_request(db_session, alice.id, bob.id)
        await container.friends.send_request(db_session, carol.id, alice.id)

        pending = await container.friends.pending_requests(db_session, alice.id)

        assert [r.to_user.id for r in pending.sent] == [bob.id]
        assert [r.from_user.id for r in pending.received] == [carol.id]

    @pytest.mark.asyncio
    async def test_only_addressee_may_accept(self, container, db_session, alice, bob, carol):
        request = await container.friends.send_request(db_session, alice.id, bob.id)

        for outsider in (alice, carol):
            with pytest.raises(NotAuthorizedError):
                await container.friends.accept(db_session, request.id, outsider.id)

    @pytest.mark.asyncio
    async def test_accept_returns_requester(self, container, db_session, alice, bob):
        request = await container.friends.send_request(db_session, alice.id, bob.id)

        accepted = await container.friends.accept(db_session, request.id, bob.id)

        assert accepted.status == FriendshipStatus.ACCEPTED
        assert accepted.user.id == alice.id

    @pytest.mark.asyncio
    async def test_cannot_respond_twice(self, container, db_session, alice, bob):
        request = await container.friends.send_request(db_session, alice.id, bob.id)
        await container.friends.reject(db_session, request.id, bob.id)

        with pytest.raises(ValidationError):
            await container.friends.accept(db_session, request.id, bob.id)

    @pytest.mark.asyncio
    async def test_unknown_request(self, container, db_session, bob):
        with pytest.raises(NotFoundError):
            await container.friends.accept(db_session, uuid4(), bob.id)

    @pytest.mark.asyncio
    async def test_accept_invalidates_both_friend_lists(self, container, db_session, cache, alice, bob):
        assert await container.friends.list_friends(db_session, alice.id) == []
        assert await container.friends.list_friends(db_session, bob.id) == []
        request = await container.friends.send_request(db_session, alice.id, bob.id)

        await container.friends.accept(db_session, request.id, bob.id)

        assert await cache.get(user_friends_key(alice.id)) is None
        assert await cache.get(user_friends_key(bob.id)) is None
        assert [f.friend.id for f in await container.friends.list_friends(db_session, alice.id)] == [bob.id]
        assert [f.friend.id for f in await container.friends.list_friends(db_session, bob.id)] == [alice.id]


class TestRemove:
    @pytest.mark.asyncio
    async def test_either_party_can_remove(self, container, db_session, alice, bob, make_friends):
        friendship_id = await make_friends(alice, bob)

        await container.friends.remove(db_session, friendship_id, bob.id)

        assert await container.friends.list_friends(db_session, alice.id) == []
        assert (await db_session.execute(select(Friendship))).scalar_one_or_none() is None

    @pytest.mark.asyncio
    async def test_outsider_cannot_remove(self, container, db_session, alice, bob, carol, make_friends):
        friendship_id = await make_friends(alice, bob)
        with pytest.raises(NotAuthorizedError):
            await container.friends.remove(db_session, friendship_id, carol.id)


class TestGraphQueries:
    @pytest.mark.asyncio
    async def test_common_classes(self, container, db_session, alice, bob, make_class, enroll, make_friends):
        shared = await make_class("CS", "2150", sis_class_number="10001")
        alice_only = await make_class("MATH", "3351", sis_class_number="20001")
        bob_only = await make_class("PHYS", "1425", sis_class_number="30001")
        await enroll(alice.id, shared.id)
        await enroll(alice.id, alice_only.id)
        await enroll(bob.id, shared.id)
        await enroll(bob.id, bob_only.id)
        await make_friends(alice, bob)

        common = await container.friends.common_classes(db_session, alice.id, bob.id)

        assert [c.id for c in common] == [shared.id]

    @pytest.mark.asyncio
    async def test_common_classes_cached_until_enrollment_changes(
        self, container, db_session, cache, alice, bob, enroll, make_class
    ):
        shared = await make_class("CS", "2150", sis_class_number="10001")
        await enroll(alice.id, shared.id)
        await enroll(bob.id, shared.id)
        await container.friends.common_classes(db_session, alice.id, bob.id)
        assert await cache.get(common_classes_key(alice.id, bob.id)) is not None

        await container.classes.drop(db_session, bob.id, shared.id)

        assert await cache.get(common_classes_key(alice.id, bob.id)) is None
        assert await container.friends.common_classes(db_session, alice.id, bob.id) == []

    @pytest.mark.asyncio
    async def test_friends_in_class(self, container, db_session, alice, bob, carol, make_class, enroll, make_friends):
        """Should list only accepted friends enrolled in the class."""
        cls = await make_class()
        await enroll(bob.id, cls.id)
        await enroll(carol.id, cls.id)
        await make_friends(alice, bob)
        await container.friends.send_request(db_session, alice.id, carol.id)

        friends = await container.friends.friends_in_class(db_session, alice.id, cls.id)

        assert [f.id for f in friends] == [bob.id]

    @pytest.mark.asyncio
    async def test_friends_in_class_without_friends(self, container, db_session, alice, make_class):
        cls = await make_class()
        assert await container.friends.friends_in_class(db_session, alice.id, cls.id) == []
