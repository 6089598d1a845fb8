"""
Shared configuration management for the ParkHero proxy.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream feed
    upstream_url: Optional[str] = Field(default=None)
    upstream_auth: str = Field(default="")
    upstream_timeout: float = Field(default=10.0, gt=0)
    retries: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.3, ge=0)

    # Cache
    cache_ttl: int = Field(default=60, ge=1)
    redis_url: Optional[str] = Field(default=None)
    cache_fail_open: bool = Field(default=False)
    coalesce_misses: bool = Field(default=False)

    # Security
    cors_origin: str = Field(default="*")

    @property
    def allowed_origins(self) -> List[str]:
        """Parse CORS_ORIGIN into the list handed to the CORS middleware."""
        origins = [origin.strip() for origin in self.cors_origin.split(",") if origin.strip()]
        if not origins or "*" in origins:
            return ["*"]
        return origins


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 8080
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, **kwargs):
        super().__init__(service_name=service_name, **kwargs)


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
