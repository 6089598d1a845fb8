"""
Shared error handling for the ParkHero proxy.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error envelope returned to clients."""

    error: str
    detail: str


class ProxyException(Exception):
    """Base exception for proxy services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, error: str = "Upstream error") -> ErrorResponse:
        """Convert to the client-facing error envelope."""
        return ErrorResponse(error=error, detail=self.message)


class ExternalServiceError(ProxyException):
    """External service errors."""

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        details: Optional[Dict[str, Any]] = None,
        code: str = "EXTERNAL_SERVICE_ERROR",
    ):
        self.service = service
        super().__init__(code, message, details)


class UpstreamError(ExternalServiceError):
    """The upstream garage feed failed, answered non-2xx, or sent an unparsable body."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        super().__init__("upstream", message, details, code="UPSTREAM_ERROR")


class CacheStoreError(ExternalServiceError):
    """The cache backend could not be reached or rejected an operation."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("cache", message, details, code="CACHE_STORE_ERROR")
