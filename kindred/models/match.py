"""
Kindred — Match, Message and UserMatch models.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kindred.database import Base
from kindred.utils.timeutils import utcnow


def canonical_pair(
    user_id: uuid.UUID, other_id: uuid.UUID
) -> tuple[uuid.UUID, uuid.UUID, str]:
    """Return ``(lo, hi, pair_key)`` for an unordered pair of user ids."""
    lo, hi = sorted((user_id, other_id))
    return lo, hi, f"{lo}:{hi}"


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("pair_key", name="uq_match_pair"),
        CheckConstraint("user_a_id <> user_b_id", name="ck_match_distinct_users"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Canonical order: user_a_id < user_b_id
    user_a_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_b_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    pair_key: Mapped[str] = mapped_column(
        String(80), nullable=False, comment="lo:hi unordered pair key"
    )
    matched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deactivated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    message_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    # ── Denormalised last message ──────────────────────────────────
    last_message_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    last_message_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_sender_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    user_a: Mapped["User"] = relationship(
        "User", foreign_keys=[user_a_id], lazy="selectin"
    )
    user_b: Mapped["User"] = relationship(
        "User", foreign_keys=[user_b_id], lazy="selectin"
    )

    @property
    def participants(self) -> tuple[uuid.UUID, uuid.UUID]:
        return (self.user_a_id, self.user_b_id)

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: uuid.UUID) -> uuid.UUID:
        """Return the counterpart of ``user_id`` in this match."""
        if user_id == self.user_a_id:
            return self.user_b_id
        if user_id == self.user_b_id:
            return self.user_a_id
        raise ValueError(f"{user_id} is not a participant of match {self.id}")

    def __repr__(self) -> str:
        return (
            f"<Match {self.user_a_id} <-> {self.user_b_id} "
            f"active={self.is_active}>"
        )


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("match_id", "seq", name="uq_message_match_seq"),
        Index("ix_messages_match_created", "match_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    match_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    seq: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="1-based append order within the match"
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Message match={self.match_id} seq={self.seq} sender={self.sender_id}>"


class UserMatch(Base):
    """One side of a user's ``matches`` set; written in pairs with a Match."""

    __tablename__ = "user_matches"
    __table_args__ = (
        UniqueConstraint("user_id", "counterpart_id", name="uq_user_match"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    counterpart_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    match_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserMatch {self.user_id} -> {self.counterpart_id}>"
