"""
Shared configuration management for the Flag Gateway.
"""

from typing import Optional

from pydantic import Field, ValidationError as PydanticValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Origin credentials
    cloudinary_cloud_name: str = Field(min_length=1)
    cloudinary_api_key: str = Field(min_length=1)
    cloudinary_api_secret: str = Field(min_length=1)

    # Origin delivery
    origin_base_url: str = Field(default="https://res.cloudinary.com")
    flag_folder: str = Field(default="flags")
    flag_format: str = Field(default="svg")
    signed_url_ttl_seconds: int = Field(default=12 * 60 * 60, gt=0)
    origin_verify: bool = Field(default=False)
    origin_timeout_seconds: float = Field(default=5.0, gt=0)
    origin_retry_attempts: int = Field(default=3, ge=1)
    origin_retry_base_delay: float = Field(default=0.5, ge=0)

    # Cache
    cache_ttl_seconds: int = Field(default=12 * 60 * 60 - 5 * 60, gt=0)
    cache_grace_seconds: int = Field(default=5 * 60, ge=0)
    max_cached_items: int = Field(default=500, ge=1)

    # Rate limiting
    rate_limit_window_seconds: int = Field(default=15 * 60, gt=0)
    rate_limit_max: int = Field(default=100, ge=1)
    rate_limit_key_strategy: str = Field(default="ip", pattern="^(ip|ip_user_agent)$")
    rate_limit_backend: str = Field(default="memory", pattern="^(memory|redis)$")
    redis_url: str = Field(default="redis://localhost:6379/0")
    # Forwarding headers are client-supplied; honour them only behind a proxy that sets them
    trust_proxy_headers: bool = Field(default=False)

    # Request handling
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    # Country name lookup (unset means only two-letter codes are accepted)
    country_lookup_url: Optional[str] = Field(default=None)

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: str = Field(default="http://localhost:4317")

    @model_validator(mode="after")
    def _check_signature_outlives_cache(self) -> "BaseConfig":
        # A stale entry may be served until ttl + grace, the signature must still hold then.
        if self.cache_ttl_seconds + self.cache_grace_seconds > self.signed_url_ttl_seconds:
            raise ValueError(
                "cache_ttl_seconds + cache_grace_seconds must not exceed signed_url_ttl_seconds"
            )
        return self


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = Field(default=3000)
    host: str = "0.0.0.0"


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Build and validate configuration for a service.

    Raises ConfigurationError when a required setting is missing or the
    settings are inconsistent; callers must not serve traffic in that case.
    """
    try:
        return ServiceConfig(service_name=service_name, **overrides)
    except PydanticValidationError as exc:
        fields = [".".join(str(part) for part in error["loc"]) or "settings" for error in exc.errors()]
        raise ConfigurationError(
            f"Invalid configuration for {service_name}",
            details={"fields": fields, "errors": [error["msg"] for error in exc.errors()]},
        ) from exc
