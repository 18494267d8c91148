"""
Kindred — Match Engine

Turns likes into matches.  ``like`` runs in two steps:

  1. Record the like in its own committed transaction (Interest Store).
  2. In a second, retried transaction: if the target already likes the
     actor, create the Match and both ``user_matches`` rows together.

Committing the like before checking for the reciprocal one means that of two
simultaneous mutual likes at least one sees the other.  The unique
``pair_key`` on ``matches`` means at most one of them creates the Match; the
other collides, retries, finds the winner's match and reports it.

``MatchCreated`` events go out only after the transaction has committed, and
only from the call that created the match.  Delivery problems are logged and
never undo the match.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kindred.models import Match, User, UserMatch, canonical_pair
from kindred.realtime.router import ChannelRouter
from kindred.schemas.events import MatchCreated
from kindred.schemas.match import PublicProfile
from kindred.services.interest_store import InterestStore, ensure_distinct
from kindred.services.transactions import run_in_transaction
from kindred.utils.timeutils import as_utc

logger = structlog.get_logger("kindred.match_engine")

# Likes still running after their caller went away.
_inflight: set[asyncio.Task] = set()


def _settle(task: asyncio.Task) -> None:
    _inflight.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.info("like_failed", error=str(task.exception()))


@dataclass
class LikeOutcome:
    matched: bool
    match: Match | None = None
    created: bool = False
    profiles: dict[uuid.UUID, PublicProfile] = field(default_factory=dict, repr=False)


class MatchEngine:
    """Mutual-interest detection and match formation.

    Dependencies are injected at construction so the engine can be driven
    by the API layer, scripts or tests with different stores and routers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        channels: ChannelRouter,
        interests: InterestStore | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._channels = channels
        self._interests = interests or InterestStore(session_factory)

    # ── Public API ────────────────────────────────────────────────────

    async def like(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> LikeOutcome:
        """Record ``actor_id`` liking ``target_id`` and form a match if the
        like is reciprocated.

        Raises
        ------
        InvalidActorError
            ``actor_id == target_id``.
        NotFoundError
            Either user does not exist.
        ConflictError, TransientStorageError
            The match transaction failed on every attempt.
        """
        ensure_distinct(actor_id, target_id)

        # Once started, recording the like and the match check run to the end
        # even if the caller is cancelled (request timeout, client gone).
        task = asyncio.create_task(self._like(actor_id, target_id))
        _inflight.add(task)
        task.add_done_callback(_settle)
        return await asyncio.shield(task)

    async def dislike(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> None:
        """Record a dislike.  Never forms a match and never emits events."""
        ensure_distinct(actor_id, target_id)
        await self._interests.record_dislike(actor_id, target_id)
        logger.info("dislike_recorded", actor_id=str(actor_id), target_id=str(target_id))

    # ── Like pipeline ─────────────────────────────────────────────────

    async def _like(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> LikeOutcome:
        log = logger.bind(actor_id=str(actor_id), target_id=str(target_id))
        await self._interests.record_like(actor_id, target_id)

        async def work(session: AsyncSession) -> LikeOutcome:
            return await self._form_match(session, actor_id, target_id)

        outcome = await run_in_transaction(
            self._session_factory, work, operation="form_match"
        )

        if not outcome.matched:
            log.info("like_not_reciprocated")
            return outcome

        log.info(
            "like_matched",
            match_id=str(outcome.match.id),
            created=outcome.created,
        )
        if outcome.created:
            await self._announce(outcome)
        return outcome

    # ── Transaction body ──────────────────────────────────────────────

    async def _form_match(
        self,
        session: AsyncSession,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
    ) -> LikeOutcome:
        if not await InterestStore.has_liked(session, target_id, actor_id):
            return LikeOutcome(matched=False)

        lo, hi, pair_key = canonical_pair(actor_id, target_id)

        existing = (
            await session.execute(select(Match).where(Match.pair_key == pair_key))
        ).scalar_one_or_none()
        if existing is not None:
            if not existing.is_active:
                # An unmatched pair stays unmatched.
                return LikeOutcome(matched=False)
            return LikeOutcome(matched=True, match=existing, created=False)

        users = (
            await session.execute(select(User).where(User.id.in_((lo, hi))))
        ).scalars().all()
        profiles = {user.id: PublicProfile.from_user(user) for user in users}

        match = Match(id=uuid.uuid4(), user_a_id=lo, user_b_id=hi, pair_key=pair_key)
        session.add(match)
        session.add_all([
            UserMatch(user_id=lo, counterpart_id=hi, match_id=match.id),
            UserMatch(user_id=hi, counterpart_id=lo, match_id=match.id),
        ])
        await session.flush()

        return LikeOutcome(matched=True, match=match, created=True, profiles=profiles)

    # ── Event fan-out ─────────────────────────────────────────────────

    async def _announce(self, outcome: LikeOutcome) -> None:
        match = outcome.match
        for user_id in match.participants:
            counterpart_id = match.other_participant(user_id)
            counterpart = outcome.profiles.get(counterpart_id)
            if counterpart is None:
                logger.warning(
                    "match_event_missing_profile",
                    match_id=str(match.id),
                    user_id=str(counterpart_id),
                )
                continue
            event = MatchCreated(
                match_id=match.id,
                matched_at=as_utc(match.matched_at),
                counterpart=counterpart,
            )
            try:
                delivered = await self._channels.send(user_id, event)
            except Exception:
                logger.exception(
                    "match_event_delivery_failed",
                    match_id=str(match.id),
                    user_id=str(user_id),
                )
                continue
            logger.debug(
                "match_event_sent",
                match_id=str(match.id),
                user_id=str(user_id),
                delivered=delivered,
            )
