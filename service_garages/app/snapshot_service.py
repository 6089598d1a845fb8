"""
Snapshot service: cache lookup, upstream or demo fetch, cache population.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from shared.errors import CacheStoreError, UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from service_garages.app.adapters.upstream_client import UpstreamClient
from service_garages.app.cache.store import CacheStore
from service_garages.app.domain.snapshot import (
    CacheEntry,
    build_demo_snapshot,
    normalize_snapshot,
    utc_now,
)


CACHE_KEY = "garages:v1"
CACHE_HIT = "HIT"
CACHE_MISS = "MISS"


class SnapshotService:
    """Coordinates the cache store and the upstream feed for the garage snapshot."""

    def __init__(
        self,
        cache: CacheStore,
        upstream: Optional[UpstreamClient] = None,
        *,
        ttl_seconds: int = 60,
        fail_open: bool = False,
        coalesce_misses: bool = False,
        metrics: Optional[MetricsCollector] = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.cache = cache
        self.upstream = upstream
        self.ttl_seconds = ttl_seconds
        self.fail_open = fail_open
        self.coalesce_misses = coalesce_misses
        self.metrics = metrics
        self._now = now
        self._miss_lock = asyncio.Lock()
        self.logger = get_logger("garages.snapshot")

    async def get_snapshot(self) -> Tuple[CacheEntry, str]:
        """
        Return the current snapshot entry and its cache status.

        The status is "HIT" when the entry came from the cache and "MISS"
        when it was fetched (or synthesized) for this call. Upstream
        failures and, unless the service fails open, cache store failures
        propagate to the caller. Nothing is cached unless the fetch fully
        succeeded.
        """
        entry = await self._read_cache()
        if entry is not None:
            self._count("cache_hits_total")
            return entry, CACHE_HIT

        if not self.coalesce_misses:
            self._count("cache_misses_total")
            return await self._refresh(), CACHE_MISS

        async with self._miss_lock:
            # Another request may have filled the cache while we waited.
            entry = await self._read_cache()
            if entry is not None:
                self._count("cache_hits_total")
                return entry, CACHE_HIT

            self._count("cache_misses_total")
            return await self._refresh(), CACHE_MISS

    async def _refresh(self) -> CacheEntry:
        """Fetch a new snapshot, fingerprint it and write it to the cache."""
        body = await self._load_body()
        entry = CacheEntry.for_body(body)
        await self._write_cache(entry)

        garages = body.get("garages")
        if self.metrics and isinstance(garages, list):
            self.metrics.set_gauge("snapshot_garages", len(garages))
        return entry

    async def _load_body(self) -> Dict[str, Any]:
        if self.upstream is None:
            self.logger.debug("No upstream configured, serving demo snapshot")
            return build_demo_snapshot(self._now())

        try:
            if self.metrics:
                with self.metrics.time_operation("upstream_fetch_duration_seconds"):
                    raw = await self.upstream.fetch_with_retry()
            else:
                raw = await self.upstream.fetch_with_retry()
        except UpstreamError:
            self._count_upstream("error")
            raise

        self._count_upstream("ok")
        return normalize_snapshot(raw, self._now())

    async def _read_cache(self) -> Optional[CacheEntry]:
        try:
            payload = await self.cache.get(CACHE_KEY)
        except CacheStoreError as exc:
            if not self.fail_open:
                raise
            self.logger.error(
                "Cache read failed, treating as miss",
                key=CACHE_KEY,
                backend=self.cache.backend,
                error=str(exc),
                exc_info=exc,
            )
            return None

        if payload is None:
            return None

        entry = CacheEntry.from_dict(payload)
        if entry is None:
            self.logger.warning("Ignoring cache payload without etag/body", key=CACHE_KEY)
        return entry

    async def _write_cache(self, entry: CacheEntry) -> None:
        try:
            await self.cache.set(CACHE_KEY, entry.to_dict(), self.ttl_seconds)
        except CacheStoreError as exc:
            if not self.fail_open:
                raise
            self.logger.error(
                "Cache write failed, serving uncached snapshot",
                key=CACHE_KEY,
                backend=self.cache.backend,
                error=str(exc),
                exc_info=exc,
            )

    def _count(self, metric_name: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, cache_type=self.cache.backend)

    def _count_upstream(self, status: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("upstream_fetch_total", status=status)
