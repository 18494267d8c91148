"""
Kindred — Interest Store

Per-user like / dislike intent plus the derived ``matches`` set.

Each user holds at most one interest row per target; the most recent call
decides its kind, so a later dislike replaces an earlier like (and vice
versa).  Recording intent never touches the target's rows and never forms or
dissolves a match; that is the Match Engine's job.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kindred.errors import InvalidActorError, NotFoundError
from kindred.models import Interest, InterestKind, User, UserMatch
from kindred.services.transactions import run_in_transaction

logger = structlog.get_logger("kindred.interest_store")


def ensure_distinct(actor_id: uuid.UUID, target_id: uuid.UUID) -> None:
    if actor_id == target_id:
        raise InvalidActorError("A user cannot like or dislike themselves.")


async def ensure_users_exist(session: AsyncSession, *user_ids: uuid.UUID) -> dict[uuid.UUID, User]:
    """Load the given users or raise ``NotFoundError`` naming the missing ids."""
    result = await session.execute(select(User).where(User.id.in_(user_ids)))
    found = {user.id: user for user in result.scalars().all()}
    missing = [str(uid) for uid in user_ids if uid not in found]
    if missing:
        raise NotFoundError(f"User(s) not found: {', '.join(missing)}")
    return found


class InterestStore:
    """Reads and writes the like / dislike / match sets of users."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ── Writes ────────────────────────────────────────────────────────

    async def record_like(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> bool:
        """Add ``target_id`` to the actor's likes.  Returns True if the
        stored intent changed."""
        return await self._record(actor_id, target_id, InterestKind.LIKE)

    async def record_dislike(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> bool:
        """Add ``target_id`` to the actor's dislikes.  Returns True if the
        stored intent changed."""
        return await self._record(actor_id, target_id, InterestKind.DISLIKE)

    async def _record(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        kind: InterestKind,
    ) -> bool:
        ensure_distinct(actor_id, target_id)
        log = logger.bind(actor_id=str(actor_id), target_id=str(target_id), kind=kind.value)

        async def work(session: AsyncSession) -> bool:
            await ensure_users_exist(session, actor_id, target_id)

            stmt = select(Interest).where(
                Interest.actor_id == actor_id,
                Interest.target_id == target_id,
            )
            existing = (await session.execute(stmt)).scalar_one_or_none()

            if existing is None:
                session.add(Interest(actor_id=actor_id, target_id=target_id, kind=kind.value))
                await session.flush()
                return True
            if existing.kind != kind.value:
                existing.kind = kind.value
                return True
            return False

        changed = await run_in_transaction(
            self._session_factory, work, operation=f"record_{kind.value}"
        )
        log.info("interest_recorded", changed=changed)
        return changed

    # ── Reads ─────────────────────────────────────────────────────────

    @staticmethod
    async def has_liked(
        session: AsyncSession,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
    ) -> bool:
        """Return True if ``actor_id`` currently likes ``target_id``."""
        stmt = select(Interest.id).where(
            Interest.actor_id == actor_id,
            Interest.target_id == target_id,
            Interest.kind == InterestKind.LIKE.value,
        )
        return (await session.execute(stmt)).first() is not None

    @staticmethod
    async def likes_of(session: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
        return await InterestStore._targets(session, user_id, InterestKind.LIKE)

    @staticmethod
    async def dislikes_of(session: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
        return await InterestStore._targets(session, user_id, InterestKind.DISLIKE)

    @staticmethod
    async def matches_of(session: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
        stmt = select(UserMatch.counterpart_id).where(UserMatch.user_id == user_id)
        return set((await session.execute(stmt)).scalars().all())

    @staticmethod
    async def _targets(
        session: AsyncSession,
        user_id: uuid.UUID,
        kind: InterestKind,
    ) -> set[uuid.UUID]:
        stmt = select(Interest.target_id).where(
            Interest.actor_id == user_id,
            Interest.kind == kind.value,
        )
        return set((await session.execute(stmt)).scalars().all())
