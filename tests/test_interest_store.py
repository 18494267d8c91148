"""Unit tests for InterestStore — like / dislike intent and derived match sets."""
import asyncio
import uuid

import pytest

from kindred.errors import InvalidActorError, NotFoundError
from kindred.models import Interest
from kindred.services.interest_store import InterestStore


@pytest.fixture
def store(session_factory):
    return InterestStore(session_factory)


class TestRecordIntent:

    @pytest.mark.asyncio
    async def test_like_is_recorded(self, store, session_factory, u1, u2):
        assert await store.record_like(u1, u2) is True

        async with session_factory() as session:
            assert await InterestStore.has_liked(session, u1, u2)
            assert not await InterestStore.has_liked(session, u2, u1)
            assert await InterestStore.likes_of(session, u1) == {u2}
            assert await InterestStore.likes_of(session, u2) == set()

    @pytest.mark.asyncio
    async def test_repeated_like_is_a_no_op(self, store, count_rows, u1, u2):
        await store.record_like(u1, u2)
        assert await store.record_like(u1, u2) is False
        assert await count_rows(Interest) == 1

    @pytest.mark.asyncio
    async def test_later_dislike_replaces_like(self, store, session_factory, count_rows, u1, u2):
        """One interest row per (actor, target); the latest call wins."""
        await store.record_like(u1, u2)
        assert await store.record_dislike(u1, u2) is True

        async with session_factory() as session:
            assert not await InterestStore.has_liked(session, u1, u2)
            assert await InterestStore.dislikes_of(session, u1) == {u2}
            assert await InterestStore.likes_of(session, u1) == set()
        assert await count_rows(Interest) == 1

    @pytest.mark.asyncio
    async def test_intent_never_touches_target_rows(self, store, count_rows, u1, u2):
        await store.record_like(u1, u2)
        assert await count_rows(Interest, Interest.actor_id == u2) == 0

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_likes_store_one_row(self, store, count_rows, u1, u2):
        await asyncio.gather(store.record_like(u1, u2), store.record_like(u1, u2))
        assert await count_rows(Interest) == 1


class TestValidation:

    @pytest.mark.asyncio
    async def test_self_like_rejected(self, store, count_rows, u1):
        with pytest.raises(InvalidActorError):
            await store.record_like(u1, u1)
        assert await count_rows(Interest) == 0

    @pytest.mark.asyncio
    async def test_self_dislike_rejected(self, store, u1):
        with pytest.raises(InvalidActorError):
            await store.record_dislike(u1, u1)

    @pytest.mark.asyncio
    async def test_unknown_target_is_not_found(self, store, count_rows, u1):
        with pytest.raises(NotFoundError):
            await store.record_like(u1, uuid.uuid4())
        assert await count_rows(Interest) == 0

    @pytest.mark.asyncio
    async def test_unknown_actor_is_not_found(self, store, u1):
        with pytest.raises(NotFoundError):
            await store.record_dislike(uuid.uuid4(), u1)

    def test_invalid_actor_is_a_forbidden_error(self):
        from kindred.errors import ForbiddenError

        assert issubclass(InvalidActorError, ForbiddenError)
        assert InvalidActorError.status_code == 400
