"""Configuration for Logfire observability."""

import os

from pydantic import BaseModel, Field


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class ObservabilityConfig(BaseModel):
    """Configuration for Logfire observability."""

    # Connection
    token: str | None = Field(default_factory=lambda: os.getenv("LOGFIRE_TOKEN") or None)
    service_name: str = "library-circulation"
    environment: str = Field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    # Behavior
    enabled: bool = Field(default_factory=lambda: _env_flag("LOGFIRE_ENABLED", "true"))
    console_output: bool = Field(default_factory=lambda: _env_flag("LOGFIRE_CONSOLE", "false"))
    send_to_logfire: bool = Field(default_factory=lambda: _env_flag("LOGFIRE_SEND", "false"))


class ProductionConfig(ObservabilityConfig):
    console_output: bool = False
    send_to_logfire: bool = True


class DevelopmentConfig(ObservabilityConfig):
    console_output: bool = True
    send_to_logfire: bool = False  # no token required locally


def get_environment_config() -> ObservabilityConfig:
    """Get configuration based on environment."""
    env = os.getenv("ENVIRONMENT", "development")

    if env == "production":
        return ProductionConfig()
    if env == "development":
        return DevelopmentConfig()
    return ObservabilityConfig()
