"""Logfire observability for the library circulation server."""

import logging

import logfire

from .config import ObservabilityConfig, get_environment_config
from .decorators import trace_tool

logger = logging.getLogger(__name__)


def initialize_observability(config: ObservabilityConfig | None = None) -> ObservabilityConfig:
    """Initialize Logfire with configuration."""
    config = config or get_environment_config()

    if not config.enabled:
        logger.debug("Observability disabled via configuration")
        return config

    logfire.configure(
        token=config.token,
        service_name=config.service_name,
        environment=config.environment,
        send_to_logfire=config.send_to_logfire,
        console=None if config.console_output else False,
    )
    logger.debug(
        "Logfire configured (environment=%s, send=%s)", config.environment, config.send_to_logfire
    )
    return config


__all__ = [
    "ObservabilityConfig",
    "initialize_observability",
    "trace_tool",
]
