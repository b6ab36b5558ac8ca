"""Read-through caches for the timetable and catalogue repositories.

The bell trigger rebuilds its snapshot on every tick, so the rows behind it
are served from memory. Repository writes invalidate the keys they touch.
When PostgreSQL is unreachable a load falls back to the last value seen, even
if expired, so bells keep ringing from the last known timetable.
"""

import asyncio
import functools
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Distinguishes "not cached" from a cached None
_MISSING = object()

T = TypeVar("T")


class AsyncTTLCache:
    """Named TTL cache that also remembers the last value loaded per key."""

    def __init__(self, name: str, maxsize: int = 16, ttl: float = 30.0):
        self.name = name
        self._fresh: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._last_known: dict[str, Any] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def peek(self, key: str) -> Any:
        """Return the fresh value or ``_MISSING``."""
        return self._fresh.get(key, _MISSING)

    def last_known(self, key: str) -> Any:
        return self._last_known.get(key, _MISSING)

    def store(self, key: str, value: Any) -> None:
        self._fresh[key] = value
        self._last_known[key] = value

    def invalidate(self, *keys: str) -> None:
        """Force the next read of *keys* to hit the database."""
        for key in keys:
            self._fresh.pop(key, None)
        logger.debug(f"{self.name} cache invalidated: {', '.join(keys)}")

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        *,
        retry: int = 2,
        retry_delay: float = 0.5,
    ) -> T:
        value = self.peek(key)
        if value is not _MISSING:
            return value

        async with self._locks[key]:
            # Another waiter may have loaded it while we queued on the lock
            value = self.peek(key)
            if value is not _MISSING:
                return value

            error: Exception | None = None
            for attempt in range(1, retry + 1):
                try:
                    value = await loader()
                except Exception as exc:
                    error = exc
                    if attempt < retry:
                        logger.warning(
                            f"{self.name}: load {attempt}/{retry} of {key} failed: "
                            f"{type(exc).__name__}"
                        )
                        await asyncio.sleep(retry_delay * attempt)
                    continue
                self.store(key, value)
                return value

        stale = self.last_known(key)
        if stale is not _MISSING:
            logger.warning(f"{self.name}: serving last known {key} ({type(error).__name__})")
            return stale
        raise error  # type: ignore[misc]


def cached(cache: AsyncTTLCache, key: str, *, retry: int = 2, retry_delay: float = 0.5):
    """Route an async repository read through *cache* under a fixed *key*."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await cache.get_or_load(
                key, lambda: func(*args, **kwargs), retry=retry, retry_delay=retry_delay
            )

        return wrapper

    return decorator
