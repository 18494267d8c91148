"""
Kindred — Retried unit-of-work helper.

``run_in_transaction`` opens a fresh session, runs ``work`` inside
``session.begin()`` and commits.  Storage-level failures are translated into
domain errors:

* ``IntegrityError``  -> ``ConflictError`` (a unique constraint lost a race)
* ``OperationalError`` / invalidated connections -> ``TransientStorageError``

Both are retried with exponential backoff, re-running ``work`` from scratch
in a new transaction, so a failed attempt never leaves partial writes.
Domain errors raised by ``work`` propagate immediately.
"""

from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kindred.config import get_settings
from kindred.errors import ConflictError, TransientStorageError

logger = structlog.get_logger("kindred.transactions")

T = TypeVar("T")

_RETRYABLE = (ConflictError, TransientStorageError)


async def _attempt(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    operation: str,
) -> T:
    async with session_factory() as session:
        try:
            async with session.begin():
                return await work(session)
        except IntegrityError as exc:
            raise ConflictError(
                f"{operation}: concurrent write violated a uniqueness constraint"
            ) from exc
        except OperationalError as exc:
            raise TransientStorageError(f"{operation}: {exc.orig}") from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise TransientStorageError(
                    f"{operation}: database connection lost"
                ) from exc
            raise


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    operation: str,
    max_attempts: int | None = None,
) -> T:
    """Run ``work(session)`` atomically, retrying the whole transaction on
    conflicts and transient storage failures.

    Parameters
    ----------
    session_factory:
        Factory producing a new ``AsyncSession`` per attempt.
    work:
        Coroutine function performing every read and write of the unit of
        work.  It must not commit; the helper does.
    operation:
        Name used in log events and error messages.
    max_attempts:
        Override for ``MATCH_TX_MAX_ATTEMPTS``.

    Raises
    ------
    ConflictError, TransientStorageError
        When every attempt failed.
    """
    settings = get_settings()
    attempts = max_attempts or settings.MATCH_TX_MAX_ATTEMPTS

    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(_RETRYABLE),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(
                multiplier=settings.TX_RETRY_BACKOFF_SECONDS,
                max=1,
            ),
            reraise=True,
        ):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                if attempt_number > 1:
                    logger.info(
                        "transaction_retry",
                        operation=operation,
                        attempt_number=attempt_number,
                    )
                return await _attempt(session_factory, work, operation)
    except _RETRYABLE as exc:
        logger.error(
            "transaction_retry_exhausted",
            operation=operation,
            attempts=attempts,
            error=exc.detail,
        )
        raise
