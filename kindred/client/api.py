"""
Kindred — async HTTP client for the match API.

Wraps ``httpx.AsyncClient`` and turns responses into the same pydantic
models the server renders.  Error responses are raised as the matching
``KindredError`` subclass, so callers handle failures the same way on both
sides of the wire.
"""

from __future__ import annotations

import uuid

import httpx

from kindred.errors import (
    ChannelStateError,
    ConflictError,
    ForbiddenError,
    InvalidActorError,
    InvalidContentError,
    KindredError,
    NotFoundError,
    TransientStorageError,
)
from kindred.schemas.match import (
    LikeResponse,
    MatchListItem,
    MessageResponse,
    ReadReceiptResponse,
)

_ERRORS_BY_CODE: dict[str, type[KindredError]] = {
    cls.code: cls
    for cls in (
        NotFoundError,
        ForbiddenError,
        InvalidActorError,
        InvalidContentError,
        ConflictError,
        TransientStorageError,
        ChannelStateError,
    )
}

API_PREFIX = "/api/v1"


class KindredClient:
    """Acts as one user against a running Kindred server."""

    def __init__(
        self,
        base_url: str,
        user_id: uuid.UUID,
        http: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.user_id = user_id
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {"X-User-Id": str(user_id)}

    async def __aenter__(self) -> "KindredClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ── Interests ─────────────────────────────────────────────────────

    async def like(self, target_id: uuid.UUID) -> LikeResponse:
        data = await self._request("POST", f"/matches/like/{target_id}")
        return LikeResponse.model_validate(data)

    async def dislike(self, target_id: uuid.UUID) -> None:
        await self._request("POST", f"/matches/dislike/{target_id}")

    # ── Matches ───────────────────────────────────────────────────────

    async def list_matches(self) -> list[MatchListItem]:
        data = await self._request("GET", "/matches")
        return [MatchListItem.model_validate(item) for item in data]

    async def get_match(self, match_id: uuid.UUID) -> MatchListItem:
        data = await self._request("GET", f"/matches/{match_id}")
        return MatchListItem.model_validate(data)

    async def unmatch(self, match_id: uuid.UUID) -> None:
        await self._request("DELETE", f"/matches/{match_id}")

    # ── Messages ──────────────────────────────────────────────────────

    async def get_messages(self, match_id: uuid.UUID) -> list[MessageResponse]:
        data = await self._request("GET", f"/matches/{match_id}/messages")
        return [MessageResponse.model_validate(item) for item in data]

    async def send_message(self, match_id: uuid.UUID, content: str) -> MessageResponse:
        data = await self._request(
            "POST", f"/matches/{match_id}/messages", json={"content": content}
        )
        return MessageResponse.model_validate(data)

    async def mark_read(self, match_id: uuid.UUID) -> int:
        data = await self._request("POST", f"/matches/{match_id}/read")
        return ReadReceiptResponse.model_validate(data).updated

    # ── Transport ─────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs):
        response = await self._http.request(
            method, f"{API_PREFIX}{path}", headers=self._headers, **kwargs
        )
        if response.is_success:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()
        raise _to_error(response)


def _to_error(response: httpx.Response) -> Exception:
    try:
        body = response.json()
    except ValueError:
        body = {}
    code = body.get("code") if isinstance(body, dict) else None
    detail = body.get("detail") if isinstance(body, dict) else None
    error_cls = _ERRORS_BY_CODE.get(code)
    if error_cls is None:
        return httpx.HTTPStatusError(
            f"{response.status_code} from {response.request.url}: {detail or response.text}",
            request=response.request,
            response=response,
        )
    return error_cls(str(detail))
