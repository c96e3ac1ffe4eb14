from datetime import timedelta

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import NOW, FakeRedis
from richlink_api.models.preview_metadata import WebpageMetadata
from richlink_api.services.preview_url_cache_service import PreviewUrlCache, cache_key

URL = "https://example.com/page"


class UnavailableRedis:
    async def get(self, key):
        raise RedisConnectionError("redis is down")

    async def set(self, key, value, ex=None):
        raise RedisConnectionError("redis is down")

    async def delete(self, key):
        raise RedisConnectionError("redis is down")


def metadata(expires_in=timedelta(days=7)):
    return WebpageMetadata(
        title="Example",
        domain="example.com",
        url=URL,
        fetched_at=NOW,
        expires_at=NOW + expires_in,
    )


def test_cache_key_is_stable_and_namespaced():
    assert cache_key(URL) == cache_key(URL)
    assert cache_key(URL) != cache_key(URL + "?x=1")
    assert cache_key(URL).startswith("richlink:preview:")


@pytest.mark.asyncio
async def test_round_trip_with_ttl_matching_expiry(clock):
    redis = FakeRedis()
    cache = PreviewUrlCache(redis, clock=clock)

    await cache.set(URL, metadata(timedelta(hours=2)))

    assert redis.expiries[cache_key(URL)] == 7200
    assert await cache.get(URL) == metadata(timedelta(hours=2))


@pytest.mark.asyncio
async def test_expired_entries_are_misses(clock):
    redis = FakeRedis()
    cache = PreviewUrlCache(redis, clock=clock)
    await cache.set(URL, metadata(timedelta(hours=1)))

    clock.advance(timedelta(hours=2))

    assert await cache.get(URL) is None


@pytest.mark.asyncio
async def test_already_expired_metadata_is_not_written(clock):
    redis = FakeRedis()
    cache = PreviewUrlCache(redis, clock=clock)

    await cache.set(URL, metadata(timedelta(0)))

    assert redis.values == {}


@pytest.mark.asyncio
async def test_unreadable_entries_are_misses(clock):
    redis = FakeRedis()
    redis.values[cache_key(URL)] = b'{"type": "unknown"}'
    cache = PreviewUrlCache(redis, clock=clock)

    assert await cache.get(URL) is None


@pytest.mark.asyncio
async def test_invalidate_removes_entry(clock):
    redis = FakeRedis()
    cache = PreviewUrlCache(redis, clock=clock)
    await cache.set(URL, metadata())

    await cache.invalidate(URL)

    assert await cache.get(URL) is None


@pytest.mark.asyncio
async def test_redis_failures_degrade_to_misses(clock):
    cache = PreviewUrlCache(UnavailableRedis(), clock=clock)

    await cache.set(URL, metadata())
    await cache.invalidate(URL)
    assert await cache.get(URL) is None


@pytest.mark.asyncio
async def test_disabled_cache_never_touches_redis(clock):
    cache = PreviewUrlCache(UnavailableRedis(), enabled=False, clock=clock)

    await cache.set(URL, metadata())
    assert await cache.get(URL) is None
    assert not PreviewUrlCache(None).enabled
