"""
Kindred — FastAPI dependencies.

Identity comes from the upstream auth layer, which resolves the session and
forwards the user id in ``X-User-Id``; this service trusts it as given.
"""

from __future__ import annotations

import uuid

from fastapi import Depends, Header
from fastapi.requests import HTTPConnection
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kindred.database import get_session_factory
from kindred.realtime.router import ChannelRouter
from kindred.services.match_engine import MatchEngine
from kindred.services.match_repository import MatchRepository


def get_current_user_id(
    x_user_id: uuid.UUID = Header(..., alias="X-User-Id"),
) -> uuid.UUID:
    return x_user_id


def get_channel_router(connection: HTTPConnection) -> ChannelRouter:
    return connection.app.state.channels


def get_match_engine(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    channels: ChannelRouter = Depends(get_channel_router),
) -> MatchEngine:
    return MatchEngine(session_factory, channels)


def get_match_repository(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    channels: ChannelRouter = Depends(get_channel_router),
) -> MatchRepository:
    return MatchRepository(session_factory, channels)
