"""
Kindred — Realtime event payloads.

Server → client pushes are a closed, tagged union discriminated on ``type``.
The join handshake frames live here too so both ends share one definition.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter

from kindred.schemas.match import MessageResponse, PublicProfile


class MatchCreated(BaseModel):
    type: Literal["match_created"] = "match_created"
    match_id: UUID
    matched_at: datetime
    counterpart: PublicProfile


class MessageCreated(BaseModel):
    type: Literal["message_created"] = "message_created"
    match_id: UUID
    message: MessageResponse


RealtimeEvent = Annotated[
    Union[MatchCreated, MessageCreated],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[RealtimeEvent] = TypeAdapter(RealtimeEvent)


def parse_event(raw: str | bytes | dict) -> MatchCreated | MessageCreated:
    """Decode a pushed event from its JSON text or an already-decoded dict."""
    if isinstance(raw, dict):
        return _event_adapter.validate_python(raw)
    return _event_adapter.validate_json(raw)


# ── Handshake frames ──────────────────────────────────────────────────


class JoinFrame(BaseModel):
    type: Literal["join"] = "join"
    user_id: UUID


class JoinedFrame(BaseModel):
    type: Literal["joined"] = "joined"
    user_id: UUID
    connection_id: str
