"""
Kindred — Match Repository

Durable match records and their append-only message logs.

Writes (``append_message``, ``mark_read``, ``deactivate``) own their
transactions through ``run_in_transaction``; reads take the caller's session
so API routes can use the request-scoped ``get_db`` session.

Message ordering: each append takes ``seq = message_count + 1`` under a row
lock on the match, and ``(match_id, seq)`` is unique, so concurrent appends
serialise or collide and retry.  Timestamps are clamped to the previous
message's so the log is non-decreasing by time and equal to append order.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kindred.config import get_settings
from kindred.errors import ForbiddenError, InvalidContentError, NotFoundError
from kindred.models import Match, Message, UserMatch
from kindred.realtime.router import ChannelRouter
from kindred.schemas.events import MessageCreated
from kindred.schemas.match import LastMessage, MatchListItem, MessageResponse, PublicProfile
from kindred.services.transactions import run_in_transaction
from kindred.utils.timeutils import as_utc, utcnow

logger = structlog.get_logger("kindred.match_repository")


class MatchRepository:
    """Reads and writes matches and their messages."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        channels: ChannelRouter | None = None,
        max_message_length: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._channels = channels
        self._max_message_length = (
            max_message_length or get_settings().MESSAGE_MAX_LENGTH
        )

    # ══════════════════════════════════════════════════════════════════
    # Writes
    # ══════════════════════════════════════════════════════════════════

    async def append_message(
        self,
        match_id: uuid.UUID,
        sender_id: uuid.UUID,
        content: str,
    ) -> MessageResponse:
        """Append a message to an active match and notify the other
        participant.

        Raises
        ------
        InvalidContentError
            Empty (or whitespace-only) content, or longer than
            ``MESSAGE_MAX_LENGTH``.
        NotFoundError
            Match absent or inactive.
        ForbiddenError
            ``sender_id`` is not one of the two participants.
        """
        log = logger.bind(match_id=str(match_id), sender_id=str(sender_id))
        self._validate_content(content)

        async def work(session: AsyncSession) -> tuple[MessageResponse, uuid.UUID]:
            match = await self._load_for_participant(
                session, match_id, sender_id, for_update=True
            )

            now = utcnow()
            previous = as_utc(match.last_message_at)
            timestamp = max(now, previous) if previous is not None else now

            message = Message(
                id=uuid.uuid4(),
                match_id=match.id,
                sender_id=sender_id,
                seq=match.message_count + 1,
                content=content,
                is_read=False,
                created_at=timestamp,
            )
            session.add(message)

            match.message_count = message.seq
            match.last_message_id = message.id
            match.last_message_content = content
            match.last_message_sender_id = sender_id
            match.last_message_at = timestamp
            await session.flush()

            return MessageResponse.from_model(message), match.other_participant(sender_id)

        created, recipient_id = await run_in_transaction(
            self._session_factory, work, operation="append_message"
        )
        log.info("message_appended", message_id=str(created.message_id), seq=created.seq)

        await self._notify(recipient_id, MessageCreated(match_id=match_id, message=created))
        return created

    async def mark_read(self, match_id: uuid.UUID, reader_id: uuid.UUID) -> int:
        """Mark every unread message sent by the counterpart as read.
        Returns the number of messages updated."""

        async def work(session: AsyncSession) -> int:
            await self._load_for_participant(session, match_id, reader_id)
            result = await session.execute(
                update(Message)
                .where(
                    Message.match_id == match_id,
                    Message.sender_id != reader_id,
                    Message.is_read.is_(False),
                )
                .values(is_read=True, read_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

        updated = await run_in_transaction(
            self._session_factory, work, operation="mark_read"
        )
        logger.info(
            "messages_marked_read",
            match_id=str(match_id),
            reader_id=str(reader_id),
            updated=updated,
        )
        return updated

    async def deactivate(self, match_id: uuid.UUID, actor_id: uuid.UUID) -> bool:
        """Soft-unmatch: flag the match inactive and remove it from both
        users' match sets.  Returns False if it was already inactive."""

        async def work(session: AsyncSession) -> bool:
            match = await session.get(Match, match_id, with_for_update=True)
            if match is None:
                raise NotFoundError(f"Match {match_id} not found.")
            if not match.has_participant(actor_id):
                raise ForbiddenError("Not a participant of this match.")
            if not match.is_active:
                return False

            match.is_active = False
            match.deactivated_at = utcnow()
            match.deactivated_by = actor_id
            await session.execute(delete(UserMatch).where(UserMatch.match_id == match_id))
            return True

        changed = await run_in_transaction(
            self._session_factory, work, operation="deactivate_match"
        )
        logger.info(
            "match_deactivated",
            match_id=str(match_id),
            actor_id=str(actor_id),
            changed=changed,
        )
        return changed

    # ══════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════

    async def get_match(
        self,
        session: AsyncSession,
        match_id: uuid.UUID,
        viewer_id: uuid.UUID,
    ) -> MatchListItem:
        match = await self._load_for_participant(session, match_id, viewer_id)
        return self._list_item(match, viewer_id)

    async def get_messages(
        self,
        session: AsyncSession,
        match_id: uuid.UUID,
        reader_id: uuid.UUID,
    ) -> list[MessageResponse]:
        """Return the full message log in append order."""
        await self._load_for_participant(session, match_id, reader_id)
        result = await session.execute(
            select(Message).where(Message.match_id == match_id).order_by(Message.seq)
        )
        return [MessageResponse.from_model(m) for m in result.scalars().all()]

    async def list_matches(
        self,
        session: AsyncSession,
        user_id: uuid.UUID,
    ) -> list[MatchListItem]:
        """Active matches of ``user_id``, most recent activity first."""
        last_activity = func.coalesce(Match.last_message_at, Match.matched_at)
        stmt = (
            select(Match)
            .where(
                Match.is_active.is_(True),
                or_(Match.user_a_id == user_id, Match.user_b_id == user_id),
            )
            .order_by(last_activity.desc(), Match.id)
        )
        matches = (await session.execute(stmt)).scalars().all()
        items = [self._list_item(m, user_id) for m in matches]
        logger.debug("matches_listed", user_id=str(user_id), count=len(items))
        return items

    # ══════════════════════════════════════════════════════════════════
    # Helpers
    # ══════════════════════════════════════════════════════════════════

    def _validate_content(self, content: str) -> None:
        if not isinstance(content, str) or not content.strip():
            raise InvalidContentError("Message content must not be empty.")
        if len(content) > self._max_message_length:
            raise InvalidContentError(
                f"Message content exceeds {self._max_message_length} characters."
            )

    @staticmethod
    async def _load_for_participant(
        session: AsyncSession,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        for_update: bool = False,
    ) -> Match:
        stmt = select(Match).where(Match.id == match_id)
        if for_update:
            stmt = stmt.with_for_update()
        match = (await session.execute(stmt)).scalar_one_or_none()

        if match is None or not match.is_active:
            raise NotFoundError(f"Match {match_id} not found.")
        if not match.has_participant(user_id):
            raise ForbiddenError("Not a participant of this match.")
        return match

    @staticmethod
    def _list_item(match: Match, viewer_id: uuid.UUID) -> MatchListItem:
        counterpart = match.user_b if match.user_a_id == viewer_id else match.user_a
        return MatchListItem(
            match_id=match.id,
            counterpart=PublicProfile.from_user(counterpart),
            matched_at=as_utc(match.matched_at),
            last_message=LastMessage.from_match(match),
        )

    async def _notify(self, user_id: uuid.UUID, event: MessageCreated) -> None:
        if self._channels is None:
            return
        try:
            await self._channels.send(user_id, event)
        except Exception:
            logger.exception(
                "message_event_delivery_failed",
                match_id=str(event.match_id),
                user_id=str(user_id),
            )
