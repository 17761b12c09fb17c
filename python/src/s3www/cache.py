"""Time-bounded in-memory cache for directory-existence answers.

Entries expire after a fixed time-to-live and are treated as absent once
expired. A background asyncio task purges expired entries every cleanup
interval so memory stays bounded even for keys that are never read again.

The cache is shared by every request task. All access to the underlying
dict happens under a ``threading.Lock`` that is never held across an
``await``; get and set may be called from the event loop or from
worker threads.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

_MISSING = object()


class TTLCache:
    """Key/value cache with per-entry expiry.

    Attributes:
        ttl: Default time-to-live in seconds. ``<= 0`` means entries never expire.
        cleanup_interval: Seconds between background purges. ``<= 0`` disables
            the background task.
    """

    def __init__(
        self,
        ttl: float,
        cleanup_interval: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (value, expires_at); expires_at is None for no expiry
        self._items: dict[str, tuple[Any, float | None]] = {}
        self._cleanup_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _expiry(self, ttl: float | None) -> float | None:
        ttl = self.ttl if ttl is None else ttl
        if ttl <= 0:
            return None
        return self._clock() + ttl

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key``, or ``default`` if absent or expired."""
        with self._lock:
            item = self._items.get(key, _MISSING)
            if item is _MISSING:
                return default
            value, expires_at = item
            if expires_at is not None and self._clock() >= expires_at:
                del self._items[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``, replacing any previous entry.

        Args:
            key: Cache key.
            value: Value to store.
            ttl: Time-to-live override in seconds; defaults to ``self.ttl``.
        """
        expires_at = self._expiry(ttl)
        with self._lock:
            self._items[key] = (value, expires_at)

    def purge_expired(self) -> int:
        """Drop every expired entry.

        Returns:
            The number of entries removed.
        """
        now = self._clock()
        with self._lock:
            expired = [
                k for k, (_, exp) in self._items.items() if exp is not None and now >= exp
            ]
            for k in expired:
                del self._items[k]
        return len(expired)

    # -- background cleanup ---------------------------------------------------

    def start(self) -> None:
        """Start the periodic purge task on the running event loop."""
        if self._cleanup_task is not None or self.cleanup_interval <= 0:
            return
        self._cleanup_task = asyncio.create_task(self._periodic_cleanup())

    async def stop(self) -> None:
        """Cancel the periodic purge task and wait for it to finish."""
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    async def _periodic_cleanup(self) -> None:
        """Background task that purges expired entries until cancelled."""
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                removed = self.purge_expired()
                if removed:
                    logger.debug("Purged %d expired cache entries, %d remain", removed, len(self))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Cache cleanup failed")
