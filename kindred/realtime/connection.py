"""
Kindred — Live connection with a bounded outbox.

A ``Connection`` wraps one transport (a WebSocket in production) and moves
through ``CONNECTING -> JOINED -> CLOSED``.  Events are queued with
``offer`` (never blocks) and written to the transport by ``pump``, so a slow
client can only lose its own events, never stall the sender.
"""

from __future__ import annotations

import asyncio
import enum
import uuid
from typing import Protocol

import structlog

from kindred.errors import ChannelStateError

logger = structlog.get_logger("kindred.realtime.connection")

DEFAULT_OUTBOX_SIZE = 100

_CLOSE = object()


class Transport(Protocol):
    async def send_text(self, data: str) -> None: ...


class ChannelState(str, enum.Enum):
    CONNECTING = "connecting"
    JOINED = "joined"
    CLOSED = "closed"


class Connection:
    def __init__(
        self,
        transport: Transport,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
        connection_id: str | None = None,
    ) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.state = ChannelState.CONNECTING
        self.user_id: uuid.UUID | None = None
        self._transport = transport
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)

    # ── State transitions ─────────────────────────────────────────────

    def mark_joined(self, user_id: uuid.UUID) -> bool:
        """Move to JOINED under ``user_id``.  Returns False if the connection
        was already joined as that user."""
        if self.state is ChannelState.CLOSED:
            raise ChannelStateError(f"Connection {self.id} is closed.")
        if self.state is ChannelState.JOINED:
            if self.user_id != user_id:
                raise ChannelStateError(
                    f"Connection {self.id} already joined as {self.user_id}."
                )
            return False
        self.user_id = user_id
        self.state = ChannelState.JOINED
        return True

    def close(self) -> None:
        if self.state is ChannelState.CLOSED:
            return
        self.state = ChannelState.CLOSED
        # Drop undelivered events so the sentinel always fits.
        while not self._outbox.empty():
            self._outbox.get_nowait()
        self._outbox.put_nowait(_CLOSE)

    @property
    def is_open(self) -> bool:
        return self.state is ChannelState.JOINED

    # ── Delivery ──────────────────────────────────────────────────────

    def offer(self, payload: str) -> bool:
        """Queue ``payload`` for delivery.  Returns False when the event is
        dropped (connection not joined or outbox full)."""
        if not self.is_open:
            return False
        try:
            self._outbox.put_nowait(payload)
        except asyncio.QueueFull:
            return False
        return True

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    async def _write(self, payload: str) -> bool:
        try:
            await self._transport.send_text(payload)
        except Exception as exc:
            logger.warning(
                "connection_send_failed",
                connection_id=self.id,
                user_id=str(self.user_id) if self.user_id else None,
                error=str(exc),
            )
            self.close()
            return False
        return True

    async def flush(self) -> int:
        """Write every queued payload now.  Returns the number written."""
        written = 0
        while not self._outbox.empty():
            item = self._outbox.get_nowait()
            if item is _CLOSE:
                self._outbox.put_nowait(_CLOSE)
                break
            if not await self._write(item):
                break
            written += 1
        return written

    async def pump(self) -> None:
        """Write queued payloads until the connection closes."""
        while True:
            item = await self._outbox.get()
            if item is _CLOSE:
                return
            if not await self._write(item):
                return

    def __repr__(self) -> str:
        return f"<Connection {self.id} user={self.user_id} state={self.state.value}>"
