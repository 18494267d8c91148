"""
Kindred — API and event payload schemas for matches and messages.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from pydantic import BaseModel

from kindred.utils.timeutils import as_utc

if TYPE_CHECKING:
    from kindred.models import Match, Message, User


class PublicProfile(BaseModel):
    user_id: UUID
    display_name: str
    age: int
    gender: str
    location: Optional[str] = None
    bio: str = ""
    photos: list[str] = []

    @classmethod
    def from_user(cls, user: User) -> "PublicProfile":
        return cls(
            user_id=user.id,
            display_name=user.display_name,
            age=user.age,
            gender=user.gender,
            location=user.location,
            bio=user.bio or "",
            photos=[str(p) for p in (user.photos or [])],
        )


class LastMessage(BaseModel):
    message_id: UUID
    content: str
    sender_id: UUID
    timestamp: datetime
    seq: Optional[int] = None

    @classmethod
    def from_match(cls, match: Match) -> Optional["LastMessage"]:
        if match.last_message_id is None:
            return None
        return cls(
            message_id=match.last_message_id,
            content=match.last_message_content or "",
            sender_id=match.last_message_sender_id,
            timestamp=as_utc(match.last_message_at),
            seq=match.message_count,
        )


class MessageResponse(BaseModel):
    message_id: UUID
    match_id: UUID
    sender_id: UUID
    content: str
    seq: int
    timestamp: datetime
    is_read: bool = False

    @classmethod
    def from_model(cls, message: Message) -> "MessageResponse":
        return cls(
            message_id=message.id,
            match_id=message.match_id,
            sender_id=message.sender_id,
            content=message.content,
            seq=message.seq,
            timestamp=as_utc(message.created_at),
            is_read=message.is_read,
        )

    def as_last_message(self) -> LastMessage:
        return LastMessage(
            message_id=self.message_id,
            content=self.content,
            sender_id=self.sender_id,
            timestamp=self.timestamp,
            seq=self.seq,
        )


class MatchSummary(BaseModel):
    match_id: UUID
    users: list[UUID]
    matched_at: datetime
    is_active: bool = True

    @classmethod
    def from_model(cls, match: Match) -> "MatchSummary":
        return cls(
            match_id=match.id,
            users=[match.user_a_id, match.user_b_id],
            matched_at=as_utc(match.matched_at),
            is_active=match.is_active,
        )


class MatchListItem(BaseModel):
    match_id: UUID
    counterpart: PublicProfile
    matched_at: datetime
    last_message: Optional[LastMessage] = None

    @property
    def last_activity(self) -> datetime:
        if self.last_message is not None:
            return self.last_message.timestamp
        return self.matched_at


class LikeResponse(BaseModel):
    is_match: bool
    match: Optional[MatchSummary] = None


class DislikeResponse(BaseModel):
    ok: bool = True


class MessageCreate(BaseModel):
    content: str


class ReadReceiptResponse(BaseModel):
    updated: int
