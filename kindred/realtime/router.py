"""
Kindred — Realtime Channel Router

Maps a user id to that user's open connections (one per device) and pushes
events to all of them.  Delivery is best-effort and at-most-once: with no
open connection the event is dropped, with no queue and no retry.  Clients
recover missed events by re-fetching from the Match Repository.

Two implementations share the ``ChannelRouter`` interface:

* ``InMemoryChannelRouter`` — a per-process connection table.
* ``RedisChannelRouter`` — fans events out over Redis pub/sub so a worker
  can reach users whose sockets live in another process.
"""

from __future__ import annotations

import abc
import uuid

import structlog
from pydantic import BaseModel

from kindred.realtime.connection import ChannelState, Connection

logger = structlog.get_logger("kindred.realtime.router")


class ChannelRouter(abc.ABC):
    """Injectable who-is-online registry with best-effort push."""

    @abc.abstractmethod
    async def join(self, user_id: uuid.UUID, connection: Connection) -> None:
        """Register ``connection`` under ``user_id``.  Idempotent."""

    @abc.abstractmethod
    async def leave(self, connection: Connection) -> None:
        """Close and deregister ``connection``.  Idempotent."""

    @abc.abstractmethod
    async def send(self, user_id: uuid.UUID, event: BaseModel) -> int:
        """Push ``event`` to every open connection of ``user_id``.

        Never raises and never waits on a client socket.
        """


class InMemoryChannelRouter(ChannelRouter):
    def __init__(self) -> None:
        self._rooms: dict[uuid.UUID, set[Connection]] = {}

    async def join(self, user_id: uuid.UUID, connection: Connection) -> None:
        newly_joined = connection.mark_joined(user_id)
        self._rooms.setdefault(user_id, set()).add(connection)
        if newly_joined:
            logger.info(
                "channel_joined",
                user_id=str(user_id),
                connection_id=connection.id,
                connections=len(self._rooms[user_id]),
            )

    async def leave(self, connection: Connection) -> None:
        connection.close()
        user_id = connection.user_id
        if user_id is None:
            return
        room = self._rooms.get(user_id)
        if room is None or connection not in room:
            return
        room.discard(connection)
        if not room:
            del self._rooms[user_id]
        logger.info("channel_left", user_id=str(user_id), connection_id=connection.id)

    async def send(self, user_id: uuid.UUID, event: BaseModel) -> int:
        return self.deliver(user_id, event.model_dump_json())

    def deliver(self, user_id: uuid.UUID, payload: str) -> int:
        """Queue an encoded event on each open connection of ``user_id``."""
        room = self._rooms.get(user_id)
        if not room:
            logger.debug("event_dropped_offline", user_id=str(user_id))
            return 0

        delivered = 0
        for connection in list(room):
            if connection.state is ChannelState.CLOSED:
                room.discard(connection)
                continue
            if connection.offer(payload):
                delivered += 1
            else:
                logger.warning(
                    "event_dropped_outbox_full",
                    user_id=str(user_id),
                    connection_id=connection.id,
                )
        if not room:
            del self._rooms[user_id]
        return delivered


class RedisChannelRouter(ChannelRouter):
    """Publishes events on ``kindred:user:<id>``; every process runs
    ``listen()`` and delivers to the sockets it holds."""

    CHANNEL_PREFIX = "kindred:user:"

    def __init__(self, redis, local: InMemoryChannelRouter | None = None) -> None:
        self._redis = redis
        self.local = local or InMemoryChannelRouter()

    @classmethod
    def channel_for(cls, user_id: uuid.UUID) -> str:
        return f"{cls.CHANNEL_PREFIX}{user_id}"

    async def join(self, user_id: uuid.UUID, connection: Connection) -> None:
        await self.local.join(user_id, connection)

    async def leave(self, connection: Connection) -> None:
        await self.local.leave(connection)

    async def send(self, user_id: uuid.UUID, event: BaseModel) -> int:
        """Publish the event.  Returns the number of subscribed processes."""
        try:
            receivers = await self._redis.publish(
                self.channel_for(user_id), event.model_dump_json()
            )
        except Exception as exc:
            logger.warning("redis_publish_failed", user_id=str(user_id), error=str(exc))
            return 0
        return int(receivers or 0)

    async def listen(self) -> None:
        """Subscriber loop; run as a background task for the app lifetime."""
        pubsub = self._redis.pubsub()
        await pubsub.psubscribe(f"{self.CHANNEL_PREFIX}*")
        logger.info("redis_channel_listener_started")
        try:
            async for message in pubsub.listen():
                self.dispatch(message)
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("redis_channel_listener_stopped")

    def dispatch(self, message: dict) -> int:
        """Deliver one pub/sub message to local connections."""
        if message.get("type") != "pmessage":
            return 0

        channel = message.get("channel")
        data = message.get("data")
        if isinstance(channel, bytes):
            channel = channel.decode()
        if isinstance(data, bytes):
            data = data.decode()

        try:
            user_id = uuid.UUID(channel[len(self.CHANNEL_PREFIX):])
        except (TypeError, ValueError):
            logger.warning("redis_channel_unparseable", channel=channel)
            return 0
        return self.local.deliver(user_id, data)
