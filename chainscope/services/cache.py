"""
VerificationCache - TTL cache for successful verification results.

Features:
- Per-entry TTL (each verification request chooses its cache duration)
- Size-bounded with oldest-first eviction
- Invalidation by user and/or chain
- No stale reads: an access decision past its TTL is never served
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    stored_at: float
    ttl: float  # seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.stored_at + self.ttl


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class VerificationCache:
    """
    Async-compatible TTL cache keyed by ``make_key`` ("chain:user:...").

    Usage:
        cache = VerificationCache(max_size=1000)

        result = await cache.get(key)
        if result is None:
            result = await verify()
            await cache.set(key, result, ttl=300)

        await cache.invalidate(user="0xabc", chain="ethereum")
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry[Any]] = {}
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

    @staticmethod
    def make_key(
        chain: str, user: str, asset_id: str, kind: str, *qualifiers: Any
    ) -> str:
        """
        Build "chain:user:asset:kind[:qualifier...]".

        Qualifiers carry every other input of the decision (thresholds,
        contract, token), so a grant is only reused for an identical check.
        """
        return ":".join(str(part) for part in (chain, user, asset_id, kind, *qualifiers))

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""
        async with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key}")
                return None

            if entry.is_expired(self._clock()):
                del self._memory[key]
                self._stats.misses += 1
                self._stats.expirations += 1
                self._log(f"EXPIRED: {key}")
                return None

            self._stats.hits += 1
            self._log(f"HIT: {key}")
            return entry.data

    async def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        """
        Cache a value.

        Args:
            key: Cache key
            data: Value to cache
            ttl: Seconds to keep it (uses default if not specified)
        """
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            return

        async with self._lock:
            if len(self._memory) >= self._max_size and key not in self._memory:
                self._evict_oldest()

            self._memory[key] = CacheEntry(data=data, stored_at=self._clock(), ttl=ttl)
            self._log(f"SET: {key} (TTL: {ttl}s)")

    async def invalidate(self, user: str | None = None, chain: str | None = None) -> int:
        """
        Drop entries for a user and/or chain; with neither, drop everything.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            if user is None and chain is None:
                count = len(self._memory)
                self._memory.clear()
                self._log(f"CLEAR: {count} entries removed")
                return count

            def matches(key: str) -> bool:
                key_chain, key_user, _ = key.split(":", 2)
                return (chain is None or key_chain == chain) and (
                    user is None or key_user == user
                )

            keys_to_delete = [k for k in self._memory if matches(k)]
            for key in keys_to_delete:
                del self._memory[key]

            if keys_to_delete:
                self._log(
                    f"INVALIDATE: {len(keys_to_delete)} entries "
                    f"(user={user}, chain={chain})"
                )
            return len(keys_to_delete)

    def _purge_expired(self) -> int:
        now = self._clock()
        expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._memory[key]
        self._stats.expirations += len(expired_keys)
        return len(expired_keys)

    def _evict_oldest(self) -> None:
        # Expired entries go first; only then the oldest live one
        if self._purge_expired() or not self._memory:
            return
        oldest_key = min(self._memory, key=lambda k: self._memory[k].stored_at)
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key}")

    def __len__(self) -> int:
        return len(self._memory)

    def entries_by_chain(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for key in self._memory:
            chain = key.split(":", 1)[0]
            counts[chain] = counts.get(chain, 0) + 1
        return counts

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[VerificationCache] {message}")
