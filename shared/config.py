"""
Shared configuration management for the print-ops resource access layer.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Settings read once at construction from the environment or ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DASHBOARD_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # API
    api_base_url: str = Field(default="http://localhost:8000/api")
    api_timeout: float = Field(default=30.0, gt=0)
    show_api_logs: bool = Field(default=False)

    # Resource client cache defaults
    cache_ttl: float = Field(default=300.0, ge=0)
    cache_max_size: int = Field(default=1000, gt=0)
    cache_enabled: bool = Field(default=True)

    # Retry defaults
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)

    # Credential storage; None keeps credentials in memory only
    storage_path: Optional[str] = Field(default=None)

    # Registry
    health_check_timeout: float = Field(default=5.0, gt=0)


class ServiceConfig(BaseConfig):
    """Configuration for one named consumer of the access layer."""

    service_name: str = "dashboard"


@lru_cache(maxsize=None)
def get_config(service_name: str = "dashboard") -> ServiceConfig:
    """Get configuration for a named consumer."""
    return ServiceConfig(service_name=service_name)
