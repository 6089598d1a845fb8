"""
Garages service for the ParkHero proxy.
"""

from typing import Optional

from fastapi import Header, Response
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import ProxyException

from service_garages.app.adapters.upstream_client import UpstreamClient
from service_garages.app.cache.store import create_cache_store
from service_garages.app.snapshot_service import CACHE_HIT, SnapshotService


class GaragesService(BaseService):
    """Serves the cached garage availability snapshot."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("garages", config)

        self.cache_store = create_cache_store(self.config.redis_url)

        self.upstream_client: Optional[UpstreamClient] = None
        if self.config.upstream_url:
            self.upstream_client = UpstreamClient(
                self.config.upstream_url,
                auth_token=self.config.upstream_auth,
                retries=self.config.retries,
                base_delay=self.config.retry_base_delay,
                timeout=self.config.upstream_timeout,
            )

        self.snapshot_service = SnapshotService(
            self.cache_store,
            self.upstream_client,
            ttl_seconds=self.config.cache_ttl,
            fail_open=self.config.cache_fail_open,
            coalesce_misses=self.config.coalesce_misses,
            metrics=self.metrics,
        )

        @self.app.on_event("startup")
        async def _startup():
            self.logger.info(
                "ParkHero proxy up",
                port=self.config.port,
                cache_backend=self.cache_store.backend,
                upstream_configured=self.upstream_client is not None,
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            if self.upstream_client:
                await self.upstream_client.close()
            await self.cache_store.close()

        self._setup_garage_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.garages_service = self

    def _setup_garage_routes(self):
        """Set up snapshot routes."""

        @self.app.get("/api/garages")
        async def get_garages(if_none_match: Optional[str] = Header(None)):
            """Return the garage availability snapshot, honouring If-None-Match on cache hits."""
            try:
                entry, cache_status = await self.snapshot_service.get_snapshot()
            except ProxyException as exc:
                self.logger.error(
                    "garages failed",
                    code=exc.code,
                    error=str(exc),
                    details=exc.details,
                    exc_info=exc,
                )
                self.metrics.record_error(exc.code)
                return JSONResponse(status_code=502, content=exc.to_response().model_dump())

            headers = {"X-Cache": cache_status, "ETag": entry.etag}
            if cache_status == CACHE_HIT and if_none_match == entry.etag:
                return Response(status_code=304, headers=headers)

            return JSONResponse(content=entry.body, headers=headers)


def create_app(config: Optional[ServiceConfig] = None):
    """Create garages service application."""
    service = GaragesService(config)
    return service.app


def main():
    """Run the garages service with configuration from the environment."""
    GaragesService().run()


if __name__ == "__main__":
    main()
