"""
Kindred — Domain error taxonomy.

Every error carries the HTTP status and machine-readable code the API layer
renders, so services raise domain errors and never ``HTTPException``.
"""

from __future__ import annotations


class KindredError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFoundError(KindredError):
    """A user or match does not exist (inactive matches count as absent)."""

    status_code = 404
    code = "not_found"


class ForbiddenError(KindredError):
    """The caller is not a participant of the match."""

    status_code = 403
    code = "forbidden"


class InvalidActorError(ForbiddenError):
    """A user tried to like or dislike themselves."""

    status_code = 400
    code = "invalid_actor"


class InvalidContentError(KindredError):
    """Message content is empty or longer than the configured maximum."""

    status_code = 422
    code = "invalid_content"


class ConflictError(KindredError):
    """A uniqueness conflict at the storage layer.

    Raised inside a transaction attempt and retried; only surfaces to
    callers once every attempt has collided.
    """

    status_code = 409
    code = "conflict"


class TransientStorageError(KindredError):
    """The database failed in a way that may succeed on retry."""

    status_code = 503
    code = "storage_unavailable"


class ChannelStateError(KindredError):
    """Illegal transition of a realtime connection."""

    status_code = 409
    code = "channel_state"
