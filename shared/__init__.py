"""
Shared utilities for the ParkHero proxy.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and the client error envelope
- retry: Backoff calculation and async retry loop
- base_service: FastAPI app skeleton with health, metrics and middleware

Do not import from service_* packages into shared/.
"""
