"""
Shared configuration management for the Tatakai gateway.
"""

import json
from typing import Dict, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SERVERLESS_ENVIRONMENTS = ("vercel", "cloudflare-workers", "aws-lambda")


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    app_env: str = Field(default="development")
    log_level: str = Field(default="info")
    log_format: Literal["json", "console"] = Field(default="json")
    deployment_env: str = Field(default="nodejs")

    # Remote store
    redis_url: Optional[str] = Field(default=None)
    redis_key_prefix: str = Field(default="tatakai:")
    redis_timeout_seconds: float = Field(default=2.0, gt=0)

    # Response cache
    cache_ttl_seconds: int = Field(default=300, ge=0)
    cache_route_policies: Dict[str, int] = Field(default_factory=dict)
    cache_max_entries: int = Field(default=1000, ge=1)
    cache_sweep_interval_seconds: float = Field(default=60.0, ge=0)
    cache_single_flight: bool = Field(default=False)

    # Rate limiting
    rate_limit_max_requests: int = Field(default=100, ge=1)
    rate_limit_window_ms: int = Field(default=60000, ge=1)
    api_hostname: Optional[str] = Field(default=None)

    # HTTP surface
    cors_allowed_origins: str = Field(default="*")
    shutdown_grace_seconds: int = Field(default=10, ge=0)

    @field_validator("redis_url", "api_hostname", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cache_route_policies")
    @classmethod
    def _check_policies(cls, value: Dict[str, int]) -> Dict[str, int]:
        for prefix, ttl in value.items():
            if not prefix.startswith("/"):
                raise ValueError(f"route policy prefix must start with '/': {prefix!r}")
            if ttl < 0:
                raise ValueError(f"route policy TTL must be non-negative: {prefix!r}={ttl}")
        return value

    @property
    def is_public_deployment(self) -> bool:
        """Rate limiting is only enforced when the API is hosted publicly."""
        return bool(self.api_hostname)

    @property
    def is_serverless(self) -> bool:
        return self.deployment_env.lower() in SERVERLESS_ENVIRONMENTS

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "gateway"
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4000)

    # Upstream content sources, name -> base URL
    source_urls: Dict[str, str] = Field(default_factory=dict)
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("source_urls", mode="before")
    @classmethod
    def _parse_sources(cls, value):
        if isinstance(value, str):
            return json.loads(value) if value.strip() else {}
        return value


def get_config(service_name: str = "gateway", **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
