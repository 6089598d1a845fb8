"""
Unit tests for the SnapshotService cache/upstream pipeline.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from service_garages.app.cache.store import LocalCacheStore
from service_garages.app.domain import build_demo_snapshot
from service_garages.app.etag import fingerprint
from service_garages.app.snapshot_service import CACHE_KEY, SnapshotService
from shared.errors import CacheStoreError, UpstreamError
from shared.metrics import MetricsCollector


NOW = datetime(2024, 5, 17, 8, 30, tzinfo=timezone.utc)
UPSTREAM_SNAPSHOT = {"updatedAt": "2024-05-17T08:29:00.000Z", "garages": [{"id": "dunav", "free": 120}]}


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def _upstream(*, return_value=None, side_effect=None):
    upstream = MagicMock()
    upstream.fetch_with_retry = AsyncMock(return_value=return_value, side_effect=side_effect)
    return upstream


def _failing_cache(get_error=None, set_error=None):
    cache = MagicMock()
    cache.backend = "redis"
    cache.get = AsyncMock(return_value=None, side_effect=get_error)
    cache.set = AsyncMock(return_value=None, side_effect=set_error)
    return cache


class TestSnapshotService:
    """Test cases for SnapshotService."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return LocalCacheStore(clock=clock)

    @pytest.mark.asyncio
    async def test_demo_fallback_is_cached(self, cache):
        """Test the demo snapshot is served on a miss and then hit from cache."""
        service = SnapshotService(cache, None, ttl_seconds=60, now=lambda: NOW)

        entry, status = await service.get_snapshot()

        assert status == "MISS"
        assert entry.body == build_demo_snapshot(NOW)
        assert entry.etag == fingerprint(entry.body)

        again, status = await service.get_snapshot()
        assert status == "HIT"
        assert again.etag == entry.etag
        assert again.body == entry.body

    @pytest.mark.asyncio
    async def test_cache_entry_written_with_ttl(self):
        """Test the entry is stored under the fixed key with the configured TTL."""
        cache = _failing_cache()
        service = SnapshotService(cache, None, ttl_seconds=45, now=lambda: NOW)

        entry, _ = await service.get_snapshot()

        cache.set.assert_awaited_once_with(CACHE_KEY, {"etag": entry.etag, "body": entry.body}, 45)

    @pytest.mark.asyncio
    async def test_upstream_snapshot_normalized_and_cached(self, cache):
        """Test an upstream bare list is wrapped and stamped before caching."""
        garages = [{"id": "dunav", "free": 120}]
        upstream = _upstream(return_value=garages)
        service = SnapshotService(cache, upstream, now=lambda: NOW)

        entry, status = await service.get_snapshot()

        assert status == "MISS"
        assert entry.body == {"updatedAt": "2024-05-17T08:30:00.000Z", "garages": garages}
        assert (await cache.get(CACHE_KEY)) == entry.to_dict()

    @pytest.mark.asyncio
    async def test_upstream_snapshot_passed_through(self, cache):
        """Test a well-formed upstream snapshot is cached verbatim."""
        service = SnapshotService(cache, _upstream(return_value=UPSTREAM_SNAPSHOT))

        entry, _ = await service.get_snapshot()

        assert entry.body == UPSTREAM_SNAPSHOT
        assert entry.etag == fingerprint(UPSTREAM_SNAPSHOT)

    @pytest.mark.asyncio
    async def test_hit_skips_upstream(self, cache):
        """Test a cached entry is served without calling the upstream."""
        upstream = _upstream(return_value=UPSTREAM_SNAPSHOT)
        service = SnapshotService(cache, upstream)

        await service.get_snapshot()
        await service.get_snapshot()

        assert upstream.fetch_with_retry.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_entry_triggers_refetch(self, cache, clock):
        """Test TTL expiry sends the next request back to the upstream."""
        upstream = _upstream(return_value=UPSTREAM_SNAPSHOT)
        service = SnapshotService(cache, upstream, ttl_seconds=60)

        await service.get_snapshot()
        clock.now += 61
        _, status = await service.get_snapshot()

        assert status == "MISS"
        assert upstream.fetch_with_retry.await_count == 2

    @pytest.mark.asyncio
    async def test_upstream_failure_writes_nothing(self, cache):
        """Test exhausted retries propagate and leave the cache empty."""
        upstream = _upstream(side_effect=UpstreamError("Upstream 503", status_code=503))
        service = SnapshotService(cache, upstream)

        with pytest.raises(UpstreamError):
            await service.get_snapshot()

        assert await cache.get(CACHE_KEY) is None

    @pytest.mark.asyncio
    async def test_upstream_failure_keeps_prior_entry(self, cache, clock):
        """Test a failed refresh never overwrites the previous valid entry."""
        service = SnapshotService(cache, _upstream(return_value=UPSTREAM_SNAPSHOT), ttl_seconds=60)
        first, _ = await service.get_snapshot()

        clock.now += 30
        service.upstream = _upstream(side_effect=UpstreamError("Upstream 500"))
        entry, status = await service.get_snapshot()

        assert status == "HIT"
        assert entry == first

    @pytest.mark.asyncio
    async def test_cache_read_error_propagates_by_default(self):
        """Test a cache outage fails the request when not failing open."""
        cache = _failing_cache(get_error=CacheStoreError("Redis GET failed: down"))
        upstream = _upstream(return_value=UPSTREAM_SNAPSHOT)
        service = SnapshotService(cache, upstream)

        with pytest.raises(CacheStoreError):
            await service.get_snapshot()

        upstream.fetch_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_write_error_propagates_by_default(self):
        """Test a failed write fails the request when not failing open."""
        cache = _failing_cache(set_error=CacheStoreError("Redis SETEX failed: down"))
        service = SnapshotService(cache, _upstream(return_value=UPSTREAM_SNAPSHOT))

        with pytest.raises(CacheStoreError):
            await service.get_snapshot()

    @pytest.mark.asyncio
    async def test_fail_open_treats_cache_errors_as_miss(self):
        """Test fail-open serves a fresh snapshot despite cache read and write errors."""
        cache = _failing_cache(
            get_error=CacheStoreError("Redis GET failed: down"),
            set_error=CacheStoreError("Redis SETEX failed: down"),
        )
        upstream = _upstream(return_value=UPSTREAM_SNAPSHOT)
        service = SnapshotService(cache, upstream, fail_open=True)

        entry, status = await service.get_snapshot()

        assert status == "MISS"
        assert entry.body == UPSTREAM_SNAPSHOT
        upstream.fetch_with_retry.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_cached_payload_is_a_miss(self):
        """Test stored values without an etag/body pair are ignored."""
        cache = _failing_cache()
        cache.get.return_value = {"body": UPSTREAM_SNAPSHOT}
        service = SnapshotService(cache, _upstream(return_value=UPSTREAM_SNAPSHOT))

        _, status = await service.get_snapshot()

        assert status == "MISS"

    @pytest.mark.asyncio
    async def test_concurrent_misses_fetch_independently_by_default(self, cache):
        """Test concurrent misses each call the upstream without coalescing."""
        release = asyncio.Event()

        async def slow_fetch():
            await release.wait()
            return UPSTREAM_SNAPSHOT

        upstream = MagicMock()
        upstream.fetch_with_retry = AsyncMock(side_effect=slow_fetch)
        service = SnapshotService(cache, upstream)

        tasks = [asyncio.create_task(service.get_snapshot()) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert upstream.fetch_with_retry.await_count == 3
        assert {status for _, status in results} == {"MISS"}
        assert len({entry.etag for entry, _ in results}) == 1

    @pytest.mark.asyncio
    async def test_coalesced_misses_fetch_once(self, cache):
        """Test coalescing lets one request fetch while the others hit the fresh entry."""
        release = asyncio.Event()

        async def slow_fetch():
            await release.wait()
            return UPSTREAM_SNAPSHOT

        upstream = MagicMock()
        upstream.fetch_with_retry = AsyncMock(side_effect=slow_fetch)
        service = SnapshotService(cache, upstream, coalesce_misses=True)

        tasks = [asyncio.create_task(service.get_snapshot()) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert upstream.fetch_with_retry.await_count == 1
        assert sorted(status for _, status in results) == ["HIT", "HIT", "MISS"]
        assert len({entry.etag for entry, _ in results}) == 1

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, cache):
        """Test hit/miss and upstream outcomes are counted."""
        metrics = MetricsCollector("garages")
        service = SnapshotService(cache, _upstream(return_value=UPSTREAM_SNAPSHOT), metrics=metrics)

        await service.get_snapshot()
        await service.get_snapshot()

        registry = metrics.registry
        assert registry.get_sample_value("cache_misses_total", {"cache_type": "local"}) == 1.0
        assert registry.get_sample_value("cache_hits_total", {"cache_type": "local"}) == 1.0
        assert registry.get_sample_value("upstream_fetch_total", {"status": "ok"}) == 1.0
        assert registry.get_sample_value("snapshot_garages") == 1.0
