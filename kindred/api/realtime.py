"""
Kindred — Realtime WebSocket endpoint.

Handshake: the client's first frame is ``{"type": "join", "user_id": ...}``;
the server registers the connection in the Channel Router and replies with
``{"type": "joined", ...}``.  After that the server only pushes events; any
client frames are read solely to notice disconnects.  Reconnecting means
opening a new socket and joining again.
"""

from __future__ import annotations

import asyncio
import contextlib

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from kindred.api.deps import get_channel_router
from kindred.config import get_settings
from kindred.realtime.connection import Connection
from kindred.realtime.router import ChannelRouter
from kindred.schemas.events import JoinedFrame, JoinFrame

logger = structlog.get_logger("kindred.api.realtime")

router = APIRouter()


async def _next_text(websocket: WebSocket) -> str | None:
    """Next client frame as text; None for a binary frame."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
    return message.get("text")


@router.websocket("/realtime")
async def realtime_channel(
    websocket: WebSocket,
    channels: ChannelRouter = Depends(get_channel_router),
) -> None:
    await websocket.accept()
    connection = Connection(websocket, outbox_size=get_settings().REALTIME_OUTBOX_SIZE)
    log = logger.bind(connection_id=connection.id)

    try:
        frame = JoinFrame.model_validate_json(await _next_text(websocket) or "")
    except WebSocketDisconnect:
        log.info("realtime_disconnected_before_join")
        return
    except ValidationError:
        log.warning("realtime_invalid_join_frame")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await channels.join(frame.user_id, connection)
    await websocket.send_text(
        JoinedFrame(user_id=frame.user_id, connection_id=connection.id).model_dump_json()
    )
    log = log.bind(user_id=str(frame.user_id))

    pump = asyncio.create_task(connection.pump())
    try:
        while True:
            await _next_text(websocket)
    except WebSocketDisconnect as exc:
        log.info("realtime_disconnected", code=exc.code)
    finally:
        await channels.leave(connection)
        if not pump.done():
            pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump
