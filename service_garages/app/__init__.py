"""
Garages Service package for the ParkHero proxy.

The service answers a single resource, the garage availability snapshot:
- Caching: Redis when configured, otherwise an in-process TTL store
- Conditional requests: SHA-1 ETags checked against If-None-Match
- Upstream access: retried HTTP fetch with linear backoff, or demo data

Structure:
- app.main: FastAPI app and routes.
- app.snapshot_service: cache/upstream orchestration for one request.
- app.cache: Cache store interface and backends.
- app.adapters: HTTP client for the upstream feed.
- app.domain: Snapshot model, demo data and normalization.
- app.etag: Content fingerprints.
"""
