"""
RequestDeduplicator - Coalesces identical in-flight calls.

When several callers ask for the same verification at the same time, only
one backend call is made and every caller receives its outcome (result or
exception).
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class DeduplicatorStats:
    """Statistics for call coalescing."""

    total: int = 0  # calls actually made
    deduplicated: int = 0  # callers served by another caller's call
    in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        total = self.total + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_requests": self.total,
            "deduplicated": self.deduplicated,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }


class RequestDeduplicator:
    """
    Coalesces concurrent async calls sharing a key.

    Usage:
        dedup = RequestDeduplicator()
        result = await dedup.dedupe(
            options.cache_key(chain),
            lambda: fanout.call_one(chain, "verify_asset", verify),
        )

    A caller cancelled while waiting does not cancel the shared call.
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._lock = asyncio.Lock()
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(self, key: str, request_fn: Callable[[], Awaitable[T]]) -> T:
        """
        Join the in-flight call for key, or start one.

        Args:
            key: Identity of the call
            request_fn: Starts the call when none is in flight

        Returns:
            The shared call's result
        """
        async with self._lock:
            task = self._in_flight.get(key)
            if task is not None:
                self._stats.deduplicated += 1
                self._log(f"JOIN: {key}")
            else:
                self._stats.total += 1
                self._log(f"NEW: {key}")
                task = asyncio.create_task(self._run(key, request_fn))
                self._in_flight[key] = task

        return await asyncio.shield(task)

    async def _run(self, key: str, request_fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await request_fn()
        finally:
            async with self._lock:
                self._in_flight.pop(key, None)
            self._log(f"DONE: {key}")

    async def cancel_all(self) -> int:
        """Cancel all in-flight calls."""
        async with self._lock:
            tasks = list(self._in_flight.values())
            self._in_flight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            self._log(f"CANCEL_ALL: {len(tasks)} calls cancelled")
        return len(tasks)

    def get_stats(self) -> DeduplicatorStats:
        """Get coalescing statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")
