"""
Shared configuration management for the Cache Access Layer.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias=AliasChoices("CACHE_ENV", "env"))
    log_level: str = Field(default="info", validation_alias=AliasChoices("CACHE_LOG_LEVEL", "log_level"))

    # Backing store
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URI", "redis_url"),
    )
    # Seconds; 0 or less disables the process-wide default expiry
    redis_expiration: int = Field(
        default=0,
        validation_alias=AliasChoices("REDIS_EXPIRATION", "redis_expiration"),
    )
    redis_socket_timeout: float = Field(
        default=5.0,
        validation_alias=AliasChoices("REDIS_SOCKET_TIMEOUT", "redis_socket_timeout"),
    )

    # Diagnostic routes
    diagnostic_key: str = Field(
        default="faisal",
        validation_alias=AliasChoices("CACHE_DIAGNOSTIC_KEY", "diagnostic_key"),
    )

    @property
    def default_ttl(self):
        """Default expiry applied by the cache store, or None when disabled."""
        return self.redis_expiration if self.redis_expiration > 0 else None


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
