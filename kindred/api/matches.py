"""
Kindred — Matches API

Like / dislike, the caller's match list, and per-match chat.  All routes act
on behalf of the user in ``X-User-Id``; domain errors are rendered by the
exception handler registered in ``kindred.main``.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from kindred.api.deps import (
    get_current_user_id,
    get_match_engine,
    get_match_repository,
)
from kindred.database import get_db
from kindred.schemas.match import (
    DislikeResponse,
    LikeResponse,
    MatchListItem,
    MatchSummary,
    MessageCreate,
    MessageResponse,
    ReadReceiptResponse,
)
from kindred.services.match_engine import MatchEngine
from kindred.services.match_repository import MatchRepository

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST /like/{target_id} — Like a user, possibly forming a match
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/like/{target_id}",
    response_model=LikeResponse,
    summary="Like a user and learn whether it formed a match",
)
async def like_user(
    target_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
) -> LikeResponse:
    outcome = await engine.like(user_id, target_id)
    if not outcome.matched:
        return LikeResponse(is_match=False)
    return LikeResponse(is_match=True, match=MatchSummary.from_model(outcome.match))


# ──────────────────────────────────────────────────────────────────────────────
# POST /dislike/{target_id}
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/dislike/{target_id}",
    response_model=DislikeResponse,
    summary="Dislike a user",
)
async def dislike_user(
    target_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
) -> DislikeResponse:
    await engine.dislike(user_id, target_id)
    return DislikeResponse()


# ──────────────────────────────────────────────────────────────────────────────
# GET / — Active matches of the caller
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=list[MatchListItem],
    summary="List the caller's active matches",
)
async def list_matches(
    user_id: uuid.UUID = Depends(get_current_user_id),
    repository: MatchRepository = Depends(get_match_repository),
    db: AsyncSession = Depends(get_db),
) -> list[MatchListItem]:
    """Most recent activity first.  This is the source of truth clients
    re-fetch after reconnecting."""
    return await repository.list_matches(db, user_id)


@router.get(
    "/{match_id}",
    response_model=MatchListItem,
    summary="Get one of the caller's matches",
)
async def get_match(
    match_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repository: MatchRepository = Depends(get_match_repository),
    db: AsyncSession = Depends(get_db),
) -> MatchListItem:
    return await repository.get_match(db, match_id, user_id)


@router.delete(
    "/{match_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unmatch (soft-deactivate the match)",
)
async def unmatch(
    match_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repository: MatchRepository = Depends(get_match_repository),
) -> Response:
    await repository.deactivate(match_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ──────────────────────────────────────────────────────────────────────────────
# Messages
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{match_id}/messages",
    response_model=list[MessageResponse],
    summary="Read a match's messages in order",
)
async def get_messages(
    match_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repository: MatchRepository = Depends(get_match_repository),
    db: AsyncSession = Depends(get_db),
) -> list[MessageResponse]:
    return await repository.get_messages(db, match_id, user_id)


@router.post(
    "/{match_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    match_id: uuid.UUID,
    payload: MessageCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repository: MatchRepository = Depends(get_match_repository),
) -> MessageResponse:
    return await repository.append_message(match_id, user_id, payload.content)


@router.post(
    "/{match_id}/read",
    response_model=ReadReceiptResponse,
    summary="Mark the counterpart's messages as read",
)
async def mark_read(
    match_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repository: MatchRepository = Depends(get_match_repository),
) -> ReadReceiptResponse:
    updated = await repository.mark_read(match_id, user_id)
    return ReadReceiptResponse(updated=updated)
