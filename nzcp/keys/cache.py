# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""In-memory TTL cache for resolved verification keys.

Entries are keyed by the key reference ``"{issuer}#{key_id}"`` and carry
an absolute expiry computed at insertion.  An entry is never modified
after insertion; a refresh replaces it wholesale, and when two
concurrent refreshes race the last write wins.

Concurrency-safe: all public coroutines acquire an ``asyncio.Lock``
before touching internal state.  The lock is created for the running
event loop and replaced when the cache is used from another loop (for
example one ``asyncio.run`` per request).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from nzcp.config import KEY_CACHE_TTL_SECONDS
from nzcp.keys.signature import VerificationKey

logger = logging.getLogger("nzcp.keys.cache")

__all__ = [
    "CachedKey",
    "KeyCache",
    "KeyCacheMetrics",
    "get_key_cache",
    "reset_key_cache",
]


@dataclass
class KeyCacheMetrics:
    """Monotonic counters for the lifetime of a cache instance."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    def to_dict(self) -> dict:
        return {"hits": self.hits, "misses": self.misses, "evictions": self.evictions}


@dataclass(frozen=True)
class CachedKey:
    key: VerificationKey
    expires_at: float


class KeyCache:
    """TTL cache of verification keys.

    Parameters
    ----------
    ttl_seconds : float
        Default time-to-live of an entry.
    clock : callable
        Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = KEY_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CachedKey] = {}
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._metrics = KeyCacheMetrics()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    async def get(self, reference: str) -> Optional[VerificationKey]:
        """Return the cached key for *reference*, or ``None`` if absent or expired."""
        async with self._loop_lock():
            entry = self._entries.get(reference)
            if entry is None:
                self._metrics.misses += 1
                return None

            if self._clock() >= entry.expires_at:
                logger.debug("Cached key '%s' expired", reference)
                del self._entries[reference]
                self._metrics.evictions += 1
                self._metrics.misses += 1
                return None

            self._metrics.hits += 1
            return entry.key

    async def put(
        self,
        reference: str,
        key: VerificationKey,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        """Store *key* under *reference*, replacing any existing entry."""
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        async with self._loop_lock():
            now = self._clock()
            self._purge_expired_locked(now)
            self._entries[reference] = CachedKey(key=key, expires_at=now + ttl)
            logger.debug("Cached key '%s' for %.0fs", reference, ttl)

    async def clear(self) -> None:
        async with self._loop_lock():
            self._entries.clear()

    def stats(self) -> dict:
        """Return a snapshot of cache metrics and current size."""
        d = self._metrics.to_dict()
        d["size"] = len(self._entries)
        return d

    def _loop_lock(self) -> asyncio.Lock:
        """Return the lock bound to the running event loop."""
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _purge_expired_locked(self, now: float) -> None:
        expired = [ref for ref, entry in self._entries.items() if now >= entry.expires_at]
        for ref in expired:
            del self._entries[ref]
            self._metrics.evictions += 1


# ======================================================================
# Module-level singleton
# ======================================================================

_key_cache: Optional[KeyCache] = None


def get_key_cache() -> KeyCache:
    """Return the process-wide key cache, creating it on first access."""
    global _key_cache
    if _key_cache is None:
        _key_cache = KeyCache(ttl_seconds=KEY_CACHE_TTL_SECONDS)
        logger.info("Created key cache (ttl=%.0fs)", KEY_CACHE_TTL_SECONDS)
    return _key_cache


def reset_key_cache() -> None:
    """Discard the process-wide key cache (for tests)."""
    global _key_cache
    _key_cache = None
