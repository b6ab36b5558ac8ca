"""Read-through cache with last-known fallback."""

import pytest

from bellhub.shared.cache import _MISSING, AsyncTTLCache, cached


class Loader:
    def __init__(self, cache: AsyncTTLCache) -> None:
        self.calls = 0
        self.fail = False

        @cached(cache, "value", retry=2, retry_delay=0)
        async def load() -> int:
            self.calls += 1
            if self.fail:
                raise ConnectionError("database down")
            return self.calls

        self.load = load


@pytest.mark.asyncio
async def test_fresh_value_is_served_from_cache():
    loader = Loader(AsyncTTLCache("test", ttl=60))

    assert await loader.load() == 1
    assert await loader.load() == 1
    assert loader.calls == 1


@pytest.mark.asyncio
async def test_invalidate_forces_reload():
    cache = AsyncTTLCache("test", ttl=60)
    loader = Loader(cache)
    await loader.load()

    cache.invalidate("value", "other")

    assert cache.peek("value") is _MISSING
    assert await loader.load() == 2


@pytest.mark.asyncio
async def test_last_known_value_served_when_loader_fails():
    cache = AsyncTTLCache("test", ttl=60)
    loader = Loader(cache)
    await loader.load()

    cache.invalidate("value")
    loader.fail = True

    assert await loader.load() == 1
    # One initial load plus two failed attempts
    assert loader.calls == 3


@pytest.mark.asyncio
async def test_failure_without_last_known_value_raises():
    cache = AsyncTTLCache("test", ttl=60)
    loader = Loader(cache)
    loader.fail = True

    with pytest.raises(ConnectionError):
        await loader.load()
    assert cache.last_known("value") is _MISSING
