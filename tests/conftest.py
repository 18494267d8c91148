"""Shared pytest fixtures for Kindred tests."""
import os

# Settings are read when kindred.database is first imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("MATCH_TX_MAX_ATTEMPTS", "5")
os.environ.setdefault("TX_RETRY_BACKOFF_SECONDS", "0.01")

import itertools
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.pool import NullPool

from kindred.database import Base, build_engine, build_session_factory
from kindred.models import User
from kindred.realtime.connection import Connection
from kindred.realtime.router import InMemoryChannelRouter

_emails = itertools.count()


class RecordingTransport:
    """Stands in for a WebSocket; keeps every frame written to it."""

    def __init__(self):
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(data)


class BrokenTransport:
    async def send_text(self, data: str) -> None:
        raise ConnectionResetError("socket gone")


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'kindred.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def channels():
    return InMemoryChannelRouter()


@pytest.fixture
def make_user(session_factory):
    async def _make_user(display_name: str = "Test User", **fields) -> uuid.UUID:
        n = next(_emails)
        values = {
            "email": f"user{n}@kindred.test",
            "display_name": display_name,
            "age": 30,
            "gender": "female",
            "location": "London",
            "bio": f"Hello from {display_name}",
            "photos": [f"https://photos.kindred.test/{n}.jpg"],
        }
        values.update(fields)
        async with session_factory() as session:
            user = User(id=uuid.uuid4(), **values)
            session.add(user)
            await session.commit()
            return user.id

    return _make_user


@pytest.fixture
async def u1(make_user):
    return await make_user("Ada")


@pytest.fixture
async def u2(make_user):
    return await make_user("Grace")


@pytest.fixture
async def u3(make_user):
    return await make_user("Linus")


@pytest.fixture
def count_rows(session_factory):
    async def _count(model, *where) -> int:
        async with session_factory() as session:
            stmt = select(func.count()).select_from(model)
            if where:
                stmt = stmt.where(*where)
            return (await session.execute(stmt)).scalar_one()

    return _count


@pytest.fixture
def recording_transport():
    return RecordingTransport()


@pytest.fixture
def broken_transport():
    return BrokenTransport()


@pytest.fixture
def connect(channels):
    """Join a fresh recording connection for ``user_id``."""

    async def _connect(user_id, outbox_size: int = 100, router=None):
        transport = RecordingTransport()
        connection = Connection(transport, outbox_size=outbox_size)
        await (router or channels).join(user_id, connection)
        return connection, transport

    return _connect
