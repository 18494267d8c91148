"""HTTP and WebSocket tests against the FastAPI app.

Integration-style: the real routers, services and exception handler run
against a per-test SQLite database; only identity (``X-User-Id``) and the
channel router are supplied by the test.
"""
import uuid

import httpx
import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from kindred.api.deps import get_channel_router
from kindred.client.api import KindredClient
from kindred.client.view_model import MatchChatViewModel
from kindred.database import get_db, get_session_factory
from kindred.errors import ForbiddenError
from kindred.main import app
from kindred.schemas.events import parse_event


@pytest.fixture
def api_app(session_factory, channels):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_channel_router] = lambda: channels
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def http(api_app):
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def as_user(user_id):
    return {"X-User-Id": str(user_id)}


async def _match(http, a, b):
    await http.post(f"/api/v1/matches/like/{b}", headers=as_user(a))
    resp = await http.post(f"/api/v1/matches/like/{a}", headers=as_user(b))
    return resp.json()["match"]["match_id"]


class TestHealth:

    @pytest.mark.asyncio
    async def test_liveness(self, http):
        resp = await http.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}


class TestLikeEndpoints:

    @pytest.mark.asyncio
    async def test_like_flow(self, http, u1, u2):
        first = await http.post(f"/api/v1/matches/like/{u2}", headers=as_user(u1))
        assert first.status_code == 200
        assert first.json() == {"is_match": False, "match": None}

        second = await http.post(f"/api/v1/matches/like/{u1}", headers=as_user(u2))
        body = second.json()
        assert body["is_match"] is True
        assert set(body["match"]["users"]) == {str(u1), str(u2)}

    @pytest.mark.asyncio
    async def test_self_like_is_bad_request(self, http, u1):
        resp = await http.post(f"/api/v1/matches/like/{u1}", headers=as_user(u1))
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_actor"

    @pytest.mark.asyncio
    async def test_unknown_target_is_not_found(self, http, u1):
        resp = await http.post(f"/api/v1/matches/like/{uuid.uuid4()}", headers=as_user(u1))
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_dislike(self, http, u1, u2):
        resp = await http.post(f"/api/v1/matches/dislike/{u2}", headers=as_user(u1))
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_identity_header_is_required(self, http, u2):
        resp = await http.post(f"/api/v1/matches/like/{u2}")
        assert resp.status_code == 422


class TestMatchEndpoints:

    @pytest.mark.asyncio
    async def test_list_and_get_match(self, http, u1, u2):
        match_id = await _match(http, u1, u2)

        listed = (await http.get("/api/v1/matches", headers=as_user(u1))).json()
        assert [m["match_id"] for m in listed] == [match_id]
        assert listed[0]["counterpart"]["user_id"] == str(u2)
        assert listed[0]["last_message"] is None

        single = await http.get(f"/api/v1/matches/{match_id}", headers=as_user(u2))
        assert single.json()["counterpart"]["user_id"] == str(u1)

    @pytest.mark.asyncio
    async def test_outsider_cannot_view_match(self, http, u1, u2, u3):
        match_id = await _match(http, u1, u2)
        resp = await http.get(f"/api/v1/matches/{match_id}", headers=as_user(u3))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_unmatch(self, http, u1, u2):
        match_id = await _match(http, u1, u2)

        resp = await http.delete(f"/api/v1/matches/{match_id}", headers=as_user(u1))
        assert resp.status_code == 204

        assert (await http.get("/api/v1/matches", headers=as_user(u2))).json() == []
        gone = await http.get(f"/api/v1/matches/{match_id}/messages", headers=as_user(u2))
        assert gone.status_code == 404


class TestMessageEndpoints:

    @pytest.mark.asyncio
    async def test_send_and_read_messages(self, http, u1, u2):
        match_id = await _match(http, u1, u2)

        sent = await http.post(
            f"/api/v1/matches/{match_id}/messages",
            json={"content": "hi"},
            headers=as_user(u1),
        )
        assert sent.status_code == 201
        assert sent.json()["seq"] == 1

        log = (await http.get(f"/api/v1/matches/{match_id}/messages", headers=as_user(u2))).json()
        assert [m["content"] for m in log] == ["hi"]

        read = await http.post(f"/api/v1/matches/{match_id}/read", headers=as_user(u2))
        assert read.json() == {"updated": 1}

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, http, u1, u2):
        match_id = await _match(http, u1, u2)
        resp = await http.post(
            f"/api/v1/matches/{match_id}/messages",
            json={"content": "  "},
            headers=as_user(u1),
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "invalid_content"

    @pytest.mark.asyncio
    async def test_outsider_cannot_send_or_read(self, http, u1, u2, u3):
        match_id = await _match(http, u1, u2)

        send = await http.post(
            f"/api/v1/matches/{match_id}/messages",
            json={"content": "hey"},
            headers=as_user(u3),
        )
        read = await http.get(f"/api/v1/matches/{match_id}/messages", headers=as_user(u3))

        assert send.status_code == read.status_code == 403
        assert send.json()["code"] == "forbidden"

    @pytest.mark.asyncio
    async def test_unknown_match_is_not_found(self, http, u1):
        resp = await http.post(
            f"/api/v1/matches/{uuid.uuid4()}/messages",
            json={"content": "hi"},
            headers=as_user(u1),
        )
        assert resp.status_code == 404


class TestClientOverHttp:

    @pytest.mark.asyncio
    async def test_client_raises_domain_errors(self, http, u1, u2, u3):
        match_id = await _match(http, u1, u2)
        outsider = KindredClient("http://test", u3, http=http)

        with pytest.raises(ForbiddenError):
            await outsider.send_message(uuid.UUID(match_id), "hey")

    @pytest.mark.asyncio
    async def test_reconnect_and_refetch_matches_pushed_state(self, http, channels, connect, u1, u2):
        """A device that stays online and one that drops off and re-fetches
        end up with the same view."""
        online, online_transport = await connect(u1)
        offline, _ = await connect(u1)
        await channels.leave(offline)

        ada = KindredClient("http://test", u1, http=http)
        grace = KindredClient("http://test", u2, http=http)
        pushed_view = MatchChatViewModel(ada)
        await pushed_view.load()

        await grace.like(u1)
        result = await ada.like(u2)
        match_id = result.match.match_id
        await grace.send_message(match_id, "hi")
        await grace.send_message(match_id, "are you there?")

        await online.flush()
        for frame in online_transport.sent:
            pushed_view.apply(parse_event(frame))

        refetched_view = MatchChatViewModel(ada)
        await refetched_view.load()

        assert [m.model_dump() for m in pushed_view.matches] == [
            m.model_dump() for m in refetched_view.matches
        ]
        assert refetched_view.matches[0].last_message.content == "are you there?"


class TestRealtimeSocket:

    def test_join_then_receive_match_and_message(self, api_app, u1, u2):
        with TestClient(api_app) as client:
            with client.websocket_connect("/api/v1/realtime") as ws:
                ws.send_json({"type": "join", "user_id": str(u1)})
                joined = ws.receive_json()
                assert joined["type"] == "joined"
                assert joined["user_id"] == str(u1)

                client.post(f"/api/v1/matches/like/{u1}", headers=as_user(u2))
                client.post(f"/api/v1/matches/like/{u2}", headers=as_user(u1))
                created = ws.receive_json()
                assert created["type"] == "match_created"
                assert created["counterpart"]["user_id"] == str(u2)

                client.post(
                    f"/api/v1/matches/{created['match_id']}/messages",
                    json={"content": "hello"},
                    headers=as_user(u2),
                )
                pushed = ws.receive_json()
                assert pushed["type"] == "message_created"
                assert pushed["message"]["content"] == "hello"

    def test_invalid_join_frame_is_rejected(self, api_app):
        with TestClient(api_app) as client:
            with client.websocket_connect("/api/v1/realtime") as ws:
                ws.send_json({"type": "hello"})
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    ws.receive_json()
        assert exc_info.value.code == 1008

    def test_binary_frames_after_join_are_ignored(self, api_app, u1, u2):
        with TestClient(api_app) as client:
            with client.websocket_connect("/api/v1/realtime") as ws:
                ws.send_json({"type": "join", "user_id": str(u1)})
                assert ws.receive_json()["type"] == "joined"

                ws.send_bytes(b"\x00\x01")
                client.post(f"/api/v1/matches/like/{u1}", headers=as_user(u2))
                client.post(f"/api/v1/matches/like/{u2}", headers=as_user(u1))

                assert ws.receive_json()["type"] == "match_created"

    def test_binary_join_frame_is_rejected(self, api_app):
        with TestClient(api_app) as client:
            with client.websocket_connect("/api/v1/realtime") as ws:
                ws.send_bytes(b'{"type": "join"}')
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    ws.receive_json()
        assert exc_info.value.code == 1008
