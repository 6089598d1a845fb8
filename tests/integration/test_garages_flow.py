"""
Integration tests for the garages flow against the mock upstream feed.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from mocks.upstream.server import MockFeedState, MockUpstreamServer
from service_garages.app.adapters.upstream_client import UpstreamClient
from service_garages.app.etag import fingerprint
from service_garages.app.main import create_app
from shared.config import get_config


UPSTREAM_URL = "http://upstream.test/garages"


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


class TestGaragesFlow:
    """End-to-end flow: proxy -> retrying client -> mock feed."""

    @pytest.fixture
    def upstream(self):
        return MockUpstreamServer()

    @pytest.fixture
    def sleep(self):
        return RecordingSleep()

    @pytest.fixture
    def client(self, upstream, sleep):
        app = create_app(get_config(
            "garages",
            upstream_url=UPSTREAM_URL,
            upstream_auth="Bearer feed-token",
            redis_url=None,
            retries=3,
            retry_base_delay=0.3,
        ))
        service = app.state.garages_service
        upstream.state.required_auth = "Bearer feed-token"

        wired = UpstreamClient(
            UPSTREAM_URL,
            auth_token=service.config.upstream_auth,
            retries=service.config.retries,
            base_delay=service.config.retry_base_delay,
            transport=httpx.ASGITransport(app=upstream.app),
            sleep=sleep,
        )
        service.upstream_client = wired
        service.snapshot_service.upstream = wired
        return TestClient(app)

    def test_snapshot_round_trip_with_conditional_revalidation(self, client, upstream):
        """Test miss, hit, then 304 without touching the upstream again."""
        first = client.get("/api/garages")

        assert first.status_code == 200
        assert first.headers["X-Cache"] == "MISS"
        body = first.json()
        assert [garage["id"] for garage in body["garages"]] == ["dunav", "vukov-spomenik"]
        assert first.headers["ETag"] == fingerprint(body)

        second = client.get("/api/garages", headers={"If-None-Match": first.headers["ETag"]})

        assert second.status_code == 304
        assert second.headers["X-Cache"] == "HIT"
        assert upstream.state.requests == 1

    def test_recovers_after_transient_failures(self, client, upstream, sleep):
        """Test two failures then success follows the linear backoff schedule."""
        upstream.state.failures_remaining = 2

        response = client.get("/api/garages")

        assert response.status_code == 200
        assert response.headers["X-Cache"] == "MISS"
        assert upstream.state.requests == 3
        assert sleep.delays == pytest.approx([0.3, 0.6])

    def test_persistent_failure_returns_502_then_recovers(self, client, upstream, sleep):
        """Test exhausted retries give 502 and do not poison the cache."""
        upstream.state.failures_remaining = 3

        failed = client.get("/api/garages")

        assert failed.status_code == 502
        assert failed.json() == {"error": "Upstream error", "detail": "Upstream 503"}
        assert upstream.state.requests == 3

        recovered = client.get("/api/garages")

        assert recovered.status_code == 200
        assert recovered.headers["X-Cache"] == "MISS"
        assert upstream.state.requests == 4

    def test_bare_list_feed_is_wrapped(self, client, upstream):
        """Test a list-shaped feed becomes a stamped snapshot."""
        upstream.state.shape = "list"

        body = client.get("/api/garages").json()

        assert list(body) == ["updatedAt", "garages"]
        assert body["updatedAt"].endswith("Z")
        assert len(body["garages"]) == 2

    def test_unrecognized_feed_yields_empty_snapshot(self, client, upstream):
        """Test an unexpected object shape is normalized, not treated as an error."""
        upstream.state.shape = "other"

        response = client.get("/api/garages")

        assert response.status_code == 200
        assert response.json()["garages"] == []

    def test_wrong_token_is_rejected_upstream(self, client, upstream):
        """Test upstream auth failures surface as 502 after retries."""
        upstream.state.required_auth = "Bearer other"

        response = client.get("/api/garages")

        assert response.status_code == 502
        assert response.json()["detail"] == "Upstream 401"


def test_mock_feed_standalone():
    """Test the mock feed serves snapshots and injects failures on demand."""
    server = MockUpstreamServer(state=MockFeedState(garages=[{"id": "a"}], failures_remaining=1, failure_status=500))
    client = TestClient(server.app)

    assert client.get("/garages").status_code == 500
    ok = client.get("/garages")
    assert ok.status_code == 200
    assert ok.json()["garages"] == [{"id": "a"}]
    assert client.get("/health").json()["requests"] == 2
