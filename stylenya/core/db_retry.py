"""Retries for research-run writes that hit a dropped database connection.

Only writes that are safe to replay go through here. A guarded status
transition replayed after its first attempt already committed matches no row
and reports ``False``; merging the cancel flag twice leaves the same JSON.
Run creation is not retried: a commit that landed before the connection
dropped would insert a second run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

logger = logging.getLogger(__name__)

_ResultT = TypeVar("_ResultT")

_CONNECTION_ERROR_MARKERS = (
    "connection is closed",
    "underlying connection is closed",
    "server closed the connection unexpectedly",
    "connection was closed",
    "connection reset by peer",
)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How often a run write is attempted and how long to back off between tries."""

    attempts: int = 3
    base_delay_seconds: float = 0.2

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_seconds * attempt

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        from stylenya.config import settings

        return cls(
            attempts=settings.database_write_attempts,
            base_delay_seconds=settings.database_retry_base_delay_seconds,
        )


def _causes(exc: BaseException) -> Iterator[BaseException]:
    # Follows explicit causes and the DBAPI error SQLAlchemy wraps (``orig``).
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        orig = getattr(current, "orig", None)
        current = orig if isinstance(orig, BaseException) else current.__cause__


def is_transient_connection_error(exc: BaseException) -> bool:
    """Return True when ``exc``, or anything it was raised from, is a dropped connection."""
    for error in _causes(exc):
        if isinstance(error, (InterfaceError, OperationalError)):
            return True
        if isinstance(error, DBAPIError) and error.connection_invalidated:
            return True
        lowered = str(error).lower()
        if any(marker in lowered for marker in _CONNECTION_ERROR_MARKERS):
            return True
    return False


async def retry_run_write(
    operation: Callable[[], Awaitable[_ResultT]],
    *,
    operation_name: str,
    run_id: str | None = None,
    policy: RetryPolicy | None = None,
) -> _ResultT:
    """Run a replay-safe write, retrying only on transient connection failures."""
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if not is_transient_connection_error(exc):
                raise
            extra = {
                "run_id": run_id,
                "operation": operation_name,
                "attempt": attempt,
                "max_attempts": policy.attempts,
            }
            if attempt >= policy.attempts:
                logger.error("Run write failed; database connection kept dropping", extra=extra)
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "Run write lost its database connection; retrying",
                extra={**extra, "delay_seconds": delay},
            )
            await asyncio.sleep(delay)
