"""
Kindred — Client Match/Chat view-model.

Keeps a local, ordered cache of the user's matches and of the message log of
every open thread, reconciling two sources:

* snapshots fetched from the API, which are the source of truth, and
* realtime pushes, which add to or advance the cache between loads.

Both sources may deliver the same item (a push racing a fetch), so every
merge is keyed by id and ignores duplicates.  Dropping every push and calling
``load`` again converges on the same state.
"""

from __future__ import annotations

import uuid

import structlog

from kindred.client.api import KindredClient
from kindred.schemas.events import MatchCreated, MessageCreated, parse_event
from kindred.schemas.match import LastMessage, MatchListItem, MessageResponse

logger = structlog.get_logger("kindred.client.view_model")


class MatchChatViewModel:
    def __init__(self, client: KindredClient) -> None:
        self._client = client
        self._matches: dict[uuid.UUID, MatchListItem] = {}
        self._threads: dict[uuid.UUID, dict[uuid.UUID, MessageResponse]] = {}
        # Matches pushed while a load is awaiting the API.
        self._pushed_during_load: set[uuid.UUID] | None = None

    # ── Snapshot ──────────────────────────────────────────────────────

    async def load(self) -> list[MatchListItem]:
        """Replace the cached match list with a fresh snapshot.

        Matches the server no longer lists (unmatched) are dropped along with
        their open threads.  A match pushed while the request was in flight
        is kept, since the server may have built its response before the
        match existed.
        """
        self._pushed_during_load = set()
        try:
            snapshot = await self._client.list_matches()
            pushed = self._pushed_during_load
        finally:
            self._pushed_during_load = None

        fresh = {item.match_id: item for item in snapshot}
        kept = {
            match_id: self._matches[match_id]
            for match_id in pushed
            if match_id not in fresh and match_id in self._matches
        }
        dropped = set(self._matches) - set(fresh) - set(kept)
        for match_id in dropped:
            self._threads.pop(match_id, None)
        self._matches = {**kept, **fresh}

        logger.debug(
            "matches_loaded",
            user_id=str(self._client.user_id),
            fetched=len(snapshot),
            kept_from_push=len(kept),
            dropped=len(dropped),
        )
        return self.matches

    @property
    def matches(self) -> list[MatchListItem]:
        """Matches ordered like the server listing: latest activity first."""
        items = sorted(self._matches.values(), key=lambda item: item.match_id)
        return sorted(items, key=lambda item: item.last_activity, reverse=True)

    def get(self, match_id: uuid.UUID) -> MatchListItem | None:
        return self._matches.get(match_id)

    # ── Pushes ────────────────────────────────────────────────────────

    def apply(self, event: MatchCreated | MessageCreated | str | bytes | dict) -> bool:
        """Merge one pushed event.  Returns True if the cache changed."""
        if not isinstance(event, (MatchCreated, MessageCreated)):
            event = parse_event(event)

        if isinstance(event, MatchCreated):
            return self._apply_match_created(event)
        return self._apply_message_created(event)

    def _apply_match_created(self, event: MatchCreated) -> bool:
        if event.match_id in self._matches:
            return False
        self._matches[event.match_id] = MatchListItem(
            match_id=event.match_id,
            counterpart=event.counterpart,
            matched_at=event.matched_at,
        )
        if self._pushed_during_load is not None:
            self._pushed_during_load.add(event.match_id)
        logger.info("match_added_from_push", match_id=str(event.match_id))
        return True

    def _apply_message_created(self, event: MessageCreated) -> bool:
        changed = self._merge_message(event.message)
        if event.match_id not in self._matches:
            # The match itself has not reached us yet; the next load fills it in.
            logger.debug("message_for_unknown_match", match_id=str(event.match_id))
        return changed

    # ── Threads ───────────────────────────────────────────────────────

    async def open_thread(self, match_id: uuid.UUID) -> list[MessageResponse]:
        """Start tracking a match's message log and fill it from the API."""
        self._threads.setdefault(match_id, {})
        for message in await self._client.get_messages(match_id):
            self._merge_message(message)
        return self.thread(match_id)

    def close_thread(self, match_id: uuid.UUID) -> None:
        self._threads.pop(match_id, None)

    def is_open(self, match_id: uuid.UUID) -> bool:
        return match_id in self._threads

    def thread(self, match_id: uuid.UUID) -> list[MessageResponse]:
        """Messages of an open thread in append order."""
        messages = self._threads.get(match_id, {})
        return sorted(messages.values(), key=lambda m: m.seq)

    async def send_message(self, match_id: uuid.UUID, content: str) -> MessageResponse:
        """Send a message and merge it locally; senders get no push of
        their own messages."""
        message = await self._client.send_message(match_id, content)
        self._merge_message(message)
        return message

    # ── Merging ───────────────────────────────────────────────────────

    def _merge_message(self, message: MessageResponse) -> bool:
        changed = False

        thread = self._threads.get(message.match_id)
        if thread is not None and message.message_id not in thread:
            thread[message.message_id] = message
            changed = True

        item = self._matches.get(message.match_id)
        if item is not None and _is_newer(message, item.last_message):
            self._matches[message.match_id] = item.model_copy(
                update={"last_message": message.as_last_message()}
            )
            changed = True

        return changed


def _is_newer(message: MessageResponse, current: LastMessage | None) -> bool:
    if current is None:
        return True
    if current.message_id == message.message_id:
        return False
    if current.seq is not None:
        return message.seq > current.seq
    return message.timestamp >= current.timestamp
