"""Configuration management.

Handles YAML configuration loading, environment overrides and logging setup.
"""

from llmgate.config.exceptions import ConfigurationError
from llmgate.config.loader import (
    APIConfig,
    GatewayConfig,
    LoggingConfig,
    UpstreamConfig,
    load_config,
    setup_logging,
)

__all__ = [
    "APIConfig",
    "ConfigurationError",
    "GatewayConfig",
    "LoggingConfig",
    "UpstreamConfig",
    "load_config",
    "setup_logging",
]
