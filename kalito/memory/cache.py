"""Time-expiring cache of per-session store query results."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Hashable

from loguru import logger

from kalito.memory.types import CACHE_TTL_SECONDS, Message

# Sentinel for "model lookup cached as absent"
_NO_MODEL = object()


@dataclass
class CacheEntry:
    """A cached query result and the time it was written."""

    key: Hashable
    value: Any
    written_at: float


class SessionCache:
    """
    Caches message counts, recent-message slices and session models.

    Entries expire purely by age: a read returns a value only while
    ``now - written_at < ttl``. There is no size-based eviction and no
    automatic invalidation; callers that write messages, pins or summaries
    for a session must call ``invalidate`` for it. Fills that read the
    store before an invalidation and write after it are dropped when the
    caller passes the generation it read first.

    Safe for concurrent use from threads. The lock only guards dict
    operations, so it is never held while the store is queried.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Age at which an entry is treated as absent.
            clock: Monotonic time source (injectable for tests).
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # session_id -> shape key -> entry
        self._entries: dict[str, dict[Hashable, CacheEntry]] = {}
        # session_id -> number of invalidations; kept across clear()
        self._generations: dict[str, int] = {}
        self.hits = 0
        self.misses = 0

    # -- Generic access --------------------------------------------------

    def generation(self, session_id: str) -> int:
        """
        Current invalidation generation of a session.

        Read it before querying the store and pass it to ``put_*``; the
        write is dropped if the session was invalidated in between.
        """
        with self._lock:
            return self._generations.get(session_id, 0)

    def _get(self, session_id: str, key: Hashable) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(session_id, {}).get(key)
            if entry is None or now - entry.written_at >= self.ttl_seconds:
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def _put(self, session_id: str, key: Hashable, value: Any, generation: int | None) -> None:
        entry = CacheEntry(key=key, value=value, written_at=self._clock())
        with self._lock:
            if generation is not None and generation != self._generations.get(session_id, 0):
                logger.debug(f"Dropped stale cache fill {key} for session {session_id}")
                return
            self._entries.setdefault(session_id, {})[key] = entry

    # -- Recent messages -------------------------------------------------

    def get_recent(self, session_id: str, limit: int) -> list[Message] | None:
        """Return a cached recent-message slice, or None on miss."""
        value = self._get(session_id, ("recent", limit))
        return list(value) if value is not None else None

    def put_recent(
        self,
        session_id: str,
        limit: int,
        messages: list[Message],
        generation: int | None = None,
    ) -> None:
        """Cache a recent-message slice."""
        self._put(session_id, ("recent", limit), tuple(messages), generation)

    # -- Message count ---------------------------------------------------

    def get_count(self, session_id: str) -> int | None:
        """Return a cached message count, or None on miss."""
        return self._get(session_id, ("count",))

    def put_count(self, session_id: str, count: int, generation: int | None = None) -> None:
        """Cache a message count."""
        self._put(session_id, ("count",), count, generation)

    # -- Session model ---------------------------------------------------

    def get_model(self, session_id: str) -> tuple[bool, str | None]:
        """
        Look up the cached model for a session.

        Returns:
            (hit, model_id). ``model_id`` may be None on a hit when the
            session is known to have no model.
        """
        value = self._get(session_id, ("model",))
        if value is None:
            return False, None
        return True, None if value is _NO_MODEL else value

    def put_model(self, session_id: str, model_id: str | None, generation: int | None = None) -> None:
        """Cache the model associated with a session."""
        self._put(session_id, ("model",), model_id if model_id else _NO_MODEL, generation)

    # -- Maintenance -----------------------------------------------------

    def invalidate(self, session_id: str) -> None:
        """Drop every entry for a session regardless of query shape."""
        with self._lock:
            dropped = self._entries.pop(session_id, None)
            self._generations[session_id] = self._generations.get(session_id, 0) + 1
        if dropped:
            logger.debug(f"Invalidated {len(dropped)} cache entries for session {session_id}")

    def sweep(self) -> int:
        """
        Remove expired entries.

        Reads already ignore stale entries; this only reclaims memory.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        removed = 0
        with self._lock:
            for session_id in list(self._entries):
                shapes = self._entries[session_id]
                for key in [k for k, e in shapes.items() if now - e.written_at >= self.ttl_seconds]:
                    del shapes[key]
                    removed += 1
                if not shapes:
                    del self._entries[session_id]
        return removed

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(shapes) for shapes in self._entries.values())
