"""
Mock upstream garage availability feed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse, PlainTextResponse

from shared.logging import get_logger


@dataclass
class MockFeedState:
    """Behaviour knobs for the mock feed."""
    garages: List[Dict[str, Any]] = field(default_factory=list)
    # "snapshot" -> {updatedAt, garages}; "list" -> bare garage list; "other" -> unrelated object
    shape: str = "snapshot"
    failures_remaining: int = 0
    failure_status: int = 503
    required_auth: Optional[str] = None
    requests: int = 0


class MockUpstreamServer:
    """Mock upstream serving garage availability at /garages."""

    def __init__(self, port: int = 9100, state: Optional[MockFeedState] = None):
        self.port = port
        self.logger = get_logger("mock.upstream")
        self.app = FastAPI(title="Mock Garage Feed", version="1.0.0")
        self.state = state or MockFeedState(garages=self._default_garages())
        self._setup_routes()

    @staticmethod
    def _default_garages() -> List[Dict[str, Any]]:
        return [
            {
                "id": "dunav",
                "name": "Dunav",
                "lat": 44.82163,
                "lng": 20.46434,
                "capacity": 400,
                "free": 120,
                "address": "Cara Dušana 11",
                "type": "garage",
            },
            {
                "id": "vukov-spomenik",
                "name": "Vukov spomenik",
                "lat": 44.80577,
                "lng": 20.47891,
                "capacity": 200,
                "free": 0,
                "address": "Bulevar kralja Aleksandra 77",
                "type": "lot",
            },
        ]

    def _setup_routes(self):
        """Set up mock routes."""

        @self.app.get("/garages")
        async def garages(authorization: Optional[str] = Header(None)):
            self.state.requests += 1

            if self.state.required_auth and authorization != self.state.required_auth:
                return JSONResponse(status_code=401, content={"error": "unauthorized"})

            if self.state.failures_remaining > 0:
                self.state.failures_remaining -= 1
                self.logger.info("Injecting upstream failure", status=self.state.failure_status)
                return PlainTextResponse("upstream unavailable", status_code=self.state.failure_status)

            if self.state.shape == "list":
                return self.state.garages
            if self.state.shape == "other":
                return {"status": "ok"}
            return {
                "updatedAt": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
                "garages": self.state.garages,
            }

        @self.app.get("/health")
        async def health():
            return {"status": "ok", "requests": self.state.requests}


def create_app():
    """Create mock upstream application."""
    server = MockUpstreamServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=9100)
