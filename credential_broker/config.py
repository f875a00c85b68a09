"""
Centralized configuration management for the credential broker.

This module provides a unified configuration system with support for:
- Environment variables
- Retry and cache tuning
- Validation using Pydantic
"""

import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_CRM_API_VERSION,
    DEFAULT_CRM_AUTH_URL,
    DEFAULT_CRM_BASE_URL,
    DEFAULT_FALLBACK_KEYWORDS,
    DEFAULT_SECRET_NAME,
    DEFAULT_WORKSPACE_ID,
    SESSION_EXPIRY_HOURS,
    EnvironmentVariable,
    LogLevel,
)


class DatabaseConfig(BaseModel):
    """Connection-status storage configuration."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.DATABASE_URL.value, "sqlite:///./credential_broker.db"
        ),
        description="Database connection string",
    )
    workspace_id: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.WORKSPACE_ID.value, DEFAULT_WORKSPACE_ID
        ),
        description="Key under which this workspace's connection status is stored",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class AwsConfig(BaseModel):
    """Cloud secret-store access through the local CLI."""

    profile: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AWS_PROFILE.value, ""),
        description="Configured named profile; empty means try the fallbacks only",
    )
    region: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AWS_REGION.value, ""),
        description="Configured region; empty means ask the CLI",
    )
    cli_path: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AWS_CLI_PATH.value, "aws"),
        description="AWS CLI executable",
    )
    command_timeout: float = Field(default=30.0, gt=0, description="CLI timeout (seconds)")
    session_expiry_hours: int = Field(
        default=SESSION_EXPIRY_HOURS, gt=0, description="Assumed SSO session lifetime for status display"
    )


class SecretConfig(BaseModel):
    """Where to find the CRM credential secret."""

    name: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.SECRET_NAME.value, DEFAULT_SECRET_NAME
        ),
        description="Configured secret name",
    )
    fallback_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_FALLBACK_KEYWORDS),
        description="Keywords tried in order when the name does not match",
    )


class CrmConfig(BaseModel):
    """CRM backend endpoints."""

    auth_url: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.CRM_AUTH_URL.value, DEFAULT_CRM_AUTH_URL
        ),
        description="OAuth2 token endpoint",
    )
    base_url: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.CRM_BASE_URL.value, DEFAULT_CRM_BASE_URL
        ),
        description="Instance base URL for REST calls",
    )
    api_version: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.CRM_API_VERSION.value, DEFAULT_CRM_API_VERSION
        ),
        description="REST API version segment",
    )
    health_url: Optional[str] = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.CRM_HEALTH_URL.value),
        description="Optional health endpoint",
    )
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout (seconds)")
    health_check_timeout: float = Field(
        default=5.0, gt=0, description="Timeout for the health probe (seconds)"
    )

    @property
    def query_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/services/data/{self.api_version}/query"


class RetryConfig(BaseModel):
    """Token acquisition retry policy."""

    max_attempts: int = Field(default=3, ge=1, description="Attempt budget")
    base_delay: float = Field(default=1.0, ge=0, description="Base backoff delay (seconds)")
    max_delay: float = Field(default=10.0, ge=0, description="Backoff cap (seconds)")
    jitter_ratio: float = Field(
        default=0.1, ge=0, le=1, description="Upper bound of random jitter as a fraction"
    )


class CacheConfig(BaseModel):
    """Access token cache."""

    token_ttl_ms: int = Field(
        default=30 * 60 * 1000, gt=0, description="Access token lifetime (milliseconds)"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.DEBUG.value, "false").lower()
        == "true",
        description="Debug mode",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    aws: AwsConfig = Field(default_factory=AwsConfig)
    secret: SecretConfig = Field(default_factory=SecretConfig)
    crm: CrmConfig = Field(default_factory=CrmConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    custom: Dict[str, Any] = Field(default_factory=dict, description="Custom configuration values")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self.custom.get(key, default)

    def set_custom(self, key: str, value: Any) -> None:
        """Set a custom configuration value."""
        self.custom[key] = value


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
