"""
Upstream garage feed client.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from shared.errors import UpstreamError
from shared.logging import get_logger
from shared.retry import RetryConfig, retry_async


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


class UpstreamClient:
    """Fetches the raw availability document from the configured upstream."""

    def __init__(
        self,
        url: str,
        *,
        auth_token: str = "",
        retries: int = 3,
        base_delay: float = 0.3,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.auth_token = auth_token
        self.logger = get_logger("garages.upstream")
        self.retry_config = RetryConfig(
            max_attempts=retries,
            base_delay=base_delay,
            backoff_strategy="linear",
            jitter=False,
        )
        self._sleep = sleep
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = self.auth_token
        return headers

    async def fetch_with_retry(self) -> Any:
        """
        Return the parsed upstream body.

        Transport failures, non-2xx answers and bodies that are not strict JSON
        (including bare NaN or Infinity) all count as
        failed attempts. Between attempts the client waits
        ``base_delay * attempt`` seconds; once every attempt has failed the
        last UpstreamError is raised.
        """
        return await retry_async(
            self._fetch_once,
            exceptions=(UpstreamError,),
            config=self.retry_config,
            sleep=self._sleep,
            name="upstream_fetch",
        )

    async def _fetch_once(self) -> Any:
        try:
            response = await self._client.get(self.url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"Upstream request failed: {exc.__class__.__name__}: {exc}",
                details={"url": self.url},
            ) from exc

        if not response.is_success:
            raise UpstreamError(
                f"Upstream {response.status_code}",
                status_code=response.status_code,
                details={"url": self.url},
            )

        try:
            data = json.loads(response.content, parse_constant=_reject_constant)
        except ValueError as exc:
            raise UpstreamError(
                f"Upstream returned invalid JSON: {exc}",
                status_code=response.status_code,
                details={"url": self.url},
            ) from exc

        self.logger.debug("Upstream snapshot retrieved", url=self.url, status_code=response.status_code)
        return data
