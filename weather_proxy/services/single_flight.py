"""
In-process request coalescing.

While a call for a key is in flight, later callers for the same key await
the same task instead of starting their own. The entry is removed as soon
as the task finishes, so the next caller after completion starts a fresh
call. Coordination does not extend across processes.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

T = TypeVar("T")

logger = structlog.get_logger(__name__)


class SingleFlight:
    """Per-key coalescing of concurrent async calls"""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._flights: dict[str, asyncio.Task[Any]] = {}

    def __len__(self) -> int:
        return len(self._flights)

    async def do(
        self, key: str, fn: Callable[[], Awaitable[T]]
    ) -> tuple[T, bool]:
        """
        Run fn once per key among concurrent callers.

        Returns:
            Tuple of (result, shared) where shared is True if this caller
            joined a call started by someone else.

        A cancelled caller stops waiting but does not cancel the shared
        call; other waiters still receive its result.
        """
        async with self._lock:
            task = self._flights.get(key)
            shared = task is not None
            if task is None:
                task = asyncio.ensure_future(fn())
                self._flights[key] = task
                task.add_done_callback(lambda t: self._finish(key, t))

        result = await asyncio.shield(task)
        return result, shared

    def _finish(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._flights.get(key) is task:
            del self._flights[key]

        if task.cancelled():
            return

        # retrieve the exception so an unobserved failure is logged once
        # here instead of as "Task exception was never retrieved"
        error = task.exception()
        if error is not None:
            logger.debug(
                "flight_failed",
                key=key,
                error=str(error),
                error_type=type(error).__name__,
            )
