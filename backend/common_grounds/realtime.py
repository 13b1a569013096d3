"""
Realtime class rooms over WebSocket.

Every instance keeps its own local rooms (class id -> sockets). New messages
are published to Redis on `class:{class_id}:messages`; a pattern subscriber
on each instance fans them out to the local room, so a post on one instance
reaches sockets connected to any other.

Wire format, both directions: {"event": <name>, "data": {...}}.
"""

import asyncio
import json
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any
from uuid import UUID

from redis.exceptions import RedisError
from starlette.websockets import WebSocketDisconnect

from common_grounds.exceptions import CommonGroundsError, ValidationError
from common_grounds.schemas.messages import MessagePublic
from common_grounds.services.cache import RedisCache

if TYPE_CHECKING:
    from common_grounds.container import AppContainer

logger = logging.getLogger(__name__)

CHANNEL_PATTERN = "class:*:messages"
WS_AUTH_FAILED = 4401


def channel_for(class_id: Any) -> str:
    return f"class:{class_id}:messages"


def class_id_from_channel(channel: str) -> str | None:
    parts = channel.split(":")
    if len(parts) != 3 or parts[0] != "class" or parts[2] != "messages":
        return None
    return parts[1]


class ClassChannelHub:
    """Local room registry plus the Redis fan-out between instances."""

    def __init__(
        self,
        cache: RedisCache | None = None,
        poll_timeout: float = 1.0,
        retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
    ):
        self.cache = cache
        self.poll_timeout = poll_timeout
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self._rooms: dict[str, set[Any]] = defaultdict(set)
        self._listener: asyncio.Task | None = None
        self._pubsub = None

    # =========================================================================
    # ROOMS
    # =========================================================================

    def join(self, class_id: Any, websocket: Any) -> None:
        self._rooms[str(class_id)].add(websocket)

    def leave(self, class_id: Any, websocket: Any) -> None:
        room = self._rooms.get(str(class_id))
        if room is None:
            return
        room.discard(websocket)
        if not room:
            del self._rooms[str(class_id)]

    def disconnect(self, websocket: Any) -> None:
        for class_id in list(self._rooms):
            self.leave(class_id, websocket)

    def members(self, class_id: Any) -> set[Any]:
        return set(self._rooms.get(str(class_id), ()))

    def is_member(self, class_id: Any, websocket: Any) -> bool:
        return websocket in self._rooms.get(str(class_id), ())

    async def deliver(
        self, class_id: Any, event: str, data: dict[str, Any], exclude: Any = None
    ) -> int:
        """Send to local room members; sockets that fail are dropped. Returns sends."""
        payload = {"event": event, "data": data}
        sent = 0
        for websocket in self.members(class_id):
            if websocket is exclude:
                continue
            try:
                await websocket.send_json(payload)
                sent += 1
            except Exception as e:
                logger.info("Dropping socket after failed send: %s", e)
                self.disconnect(websocket)
        return sent

    # =========================================================================
    # FAN-OUT
    # =========================================================================

    async def broadcast_message(self, message: MessagePublic) -> None:
        """Announce a new message to every instance's room for its class."""
        data = {
            "class_id": str(message.class_id),
            "message": message.model_dump(mode="json", exclude={"is_own_message"}),
        }
        body = json.dumps({"event": "new-message", "data": data})

        if self.cache is not None:
            try:
                receivers = await self.cache.publish(channel_for(message.class_id), body)
            except RedisError as e:
                logger.warning("Publish failed, delivering locally only: %s", e)
            else:
                # Receivers may all be other instances; only skip local delivery
                # when this instance's own listener will pick the message up.
                if receivers and self.listening:
                    return
        await self.deliver(message.class_id, "new-message", data)

    @property
    def listening(self) -> bool:
        return self._pubsub is not None

    async def start(self) -> None:
        if self.cache is None or self._listener is not None:
            return
        self._pubsub = await self._subscribe()
        self._listener = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        if self._listener is None:
            return
        self._listener.cancel()
        try:
            await self._listener
        except asyncio.CancelledError:
            pass
        self._listener = None

    async def _subscribe(self):
        pubsub = self.cache.client.pubsub()
        try:
            await pubsub.psubscribe(CHANNEL_PATTERN)
        except RedisError as e:
            logger.warning("Realtime subscribe failed, delivering locally only: %s", e)
            await pubsub.aclose()
            return None
        logger.info("Realtime listener subscribed to %s", CHANNEL_PATTERN)
        return pubsub

    async def _listen(self) -> None:
        """Pump the subscription; resubscribe with backoff whenever Redis drops it."""
        delay = self.retry_delay
        while True:
            if self._pubsub is None:
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_retry_delay)
                self._pubsub = await self._subscribe()
                continue

            delay = self.retry_delay
            pubsub = self._pubsub
            try:
                while True:
                    message = await pubsub.get_message(
                        ignore_subscribe_messages=True, timeout=self.poll_timeout
                    )
                    if message is None or message.get("type") != "pmessage":
                        continue
                    await self._dispatch(message["channel"], message["data"])
            except RedisError as e:
                logger.error("Realtime listener lost its subscription: %s", e)
            finally:
                self._pubsub = None
                await pubsub.aclose()

    async def _dispatch(self, channel: str, raw: str) -> None:
        class_id = class_id_from_channel(channel)
        if class_id is None:
            return
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring undecodable payload on %s", channel)
            return
        await self.deliver(class_id, payload.get("event", "new-message"), payload.get("data", {}))


class ClassSocketSession:
    """One authenticated socket: reads client events and acts on them."""

    def __init__(self, websocket: Any, user_id: UUID, container: "AppContainer"):
        self.websocket = websocket
        self.user_id = user_id
        self.container = container
        self.hub = container.hub

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        await self.websocket.send_json({"event": event, "data": data})

    async def emit_error(self, error: CommonGroundsError | str) -> None:
        if isinstance(error, CommonGroundsError):
            await self.emit("error", error.to_dict())
        else:
            await self.emit("error", {"message": error})

    async def run(self) -> None:
        logger.info("Socket connected for user %s", self.user_id)
        try:
            while True:
                try:
                    frame = await self.websocket.receive_json()
                except ValueError:
                    await self.emit_error("Invalid message")
                    continue
                await self.handle(frame)
        except WebSocketDisconnect:
            pass
        finally:
            self.hub.disconnect(self.websocket)
            logger.info("Socket disconnected for user %s", self.user_id)

    async def handle(self, frame: Any) -> None:
        if not isinstance(frame, dict):
            await self.emit_error("Invalid message")
            return
        event = frame.get("event")
        data = frame.get("data") or {}
        handler = {
            "join-class": self.on_join_class,
            "leave-class": self.on_leave_class,
            "send-message": self.on_send_message,
            "typing": self.on_typing,
        }.get(event)
        if handler is None:
            await self.emit_error(f"Unknown event: {event}")
            return

        try:
            await handler(data)
        except CommonGroundsError as e:
            await self.emit_error(e)
        except Exception:
            logger.exception("Error handling %s for user %s", event, self.user_id)
            await self.emit_error(f"Failed to handle {event}")

    @staticmethod
    def _class_id(data: dict[str, Any]) -> UUID:
        try:
            return UUID(str(data.get("class_id")))
        except ValueError as e:
            raise ValidationError("class_id must be a UUID") from e

    async def on_join_class(self, data: dict[str, Any]) -> None:
        class_id = self._class_id(data)
        async with self.container.database.session() as db:
            enrolled = await self.container.messages.is_enrolled(db, self.user_id, class_id)
        if not enrolled:
            await self.emit_error("You must be enrolled in this class")
            return
        self.hub.join(class_id, self.websocket)
        logger.info("User %s joined class %s", self.user_id, class_id)
        await self.emit("joined-class", {"class_id": str(class_id)})

    async def on_leave_class(self, data: dict[str, Any]) -> None:
        class_id = self._class_id(data)
        self.hub.leave(class_id, self.websocket)
        logger.info("User %s left class %s", self.user_id, class_id)

    async def on_send_message(self, data: dict[str, Any]) -> None:
        class_id = self._class_id(data)
        parent = data.get("parent_message_id")
        try:
            parent_message_id = UUID(str(parent)) if parent else None
        except ValueError as e:
            raise ValidationError("parent_message_id must be a UUID") from e

        settings = self.container.settings
        await self.container.rate_limiter.hit(
            "messages",
            f"{self.user_id}:{class_id}",
            limit=settings.message_rate_limit,
            window_seconds=settings.message_rate_window,
            message="Too many messages. Please slow down.",
        )
        async with self.container.database.session() as db:
            message = await self.container.messages.post(
                db, self.user_id, class_id, str(data.get("content", "")), parent_message_id
            )
        await self.hub.broadcast_message(message)

    async def on_typing(self, data: dict[str, Any]) -> None:
        class_id = self._class_id(data)
        if not self.hub.is_member(class_id, self.websocket):
            return
        await self.hub.deliver(
            class_id,
            "user-typing",
            {"class_id": str(class_id), "is_typing": bool(data.get("is_typing", True))},
            exclude=self.websocket,
        )
