"""Configuration loader for llmgate."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from llmgate.config.exceptions import ConfigurationError
from llmgate.constitution.models import PolicyConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class UpstreamConfig(BaseModel):
    """Configuration for the upstream LLM provider."""
    api_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    timeout_seconds: float = Field(default=120.0, gt=0)

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class APIConfig(BaseModel):
    """API server configuration."""
    host: str = "0.0.0.0"
    port: int = Field(default=3700, ge=1, le=65535)
    gateway_api_key: Optional[str] = None
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size_mb: int = 50
    backup_count: int = 5
    enable_console_logging: bool = True

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return level


class GatewayConfig(BaseModel):
    """Main llmgate configuration."""

    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    constitution: PolicyConfig = Field(default_factory=PolicyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    rules_file: Optional[str] = None

    def public_view(self) -> Dict[str, Any]:
        """Effective configuration without any key material."""
        return {
            "upstream": {
                "api_url": self.upstream.api_url,
                "model": self.upstream.model,
                "api_key_configured": bool(self.upstream.api_key),
                "timeout_seconds": self.upstream.timeout_seconds,
            },
            "api": {
                "host": self.api.host,
                "port": self.api.port,
                "auth_required": bool(self.api.gateway_api_key),
                "cors_origins": list(self.api.cors_origins),
            },
            "constitution": self.constitution.to_dict(),
            "logging": {"level": self.logging.level, "file_path": self.logging.file_path},
            "rules_file": self.rules_file,
        }


def load_config(config_path: Optional[Union[str, Path]] = None) -> GatewayConfig:
    """Load llmgate configuration from file and environment variables.

    Args:
        config_path: Path to configuration file. Defaults to config.yaml in current directory.

    Returns:
        GatewayConfig instance with loaded configuration

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    # Load base configuration from file
    config_data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {config_path}")
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config file {config_path}: {e}", config_path=str(config_path))
        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping", config_path=str(config_path))
    else:
        logger.info(f"Config file {config_path} not found, using defaults")

    # Override with environment variables
    config_data = _apply_environment_overrides(config_data)

    try:
        config = GatewayConfig.model_validate(config_data)
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ConfigurationError(f"Invalid configuration: {e}", config_path=str(config_path))

    logger.info("Configuration validated successfully")
    return config


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config_data.get(name)
    if not isinstance(section, dict):
        section = {}
        config_data[name] = section
    return section


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")


def _env_flag(name: str, default: bool) -> Optional[bool]:
    """Parse a boolean variable; unrecognized values fall back to ``default``."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    value = raw.strip().lower()
    if default:
        return value not in _FALSE_VALUES
    return value in _TRUE_VALUES


def _apply_environment_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration.

    Args:
        config_data: Base configuration data from file

    Returns:
        Configuration data with environment overrides applied
    """
    # Upstream provider
    if os.getenv("LLM_API_URL"):
        _section(config_data, "upstream")["api_url"] = os.getenv("LLM_API_URL")
    if os.getenv("LLM_MODEL"):
        _section(config_data, "upstream")["model"] = os.getenv("LLM_MODEL")
    if os.getenv("LLM_API_KEY"):
        _section(config_data, "upstream")["api_key"] = os.getenv("LLM_API_KEY")

    timeout_ms = _env_int("REQUEST_TIMEOUT_MS")
    if timeout_ms is not None:
        _section(config_data, "upstream")["timeout_seconds"] = timeout_ms / 1000.0

    # API server
    if os.getenv("GATEWAY_API_KEY"):
        _section(config_data, "api")["gateway_api_key"] = os.getenv("GATEWAY_API_KEY")

    port = _env_int("PORT")
    if port is not None:
        _section(config_data, "api")["port"] = port

    # Logging level override
    if os.getenv("LOG_LEVEL"):
        _section(config_data, "logging")["level"] = os.getenv("LOG_LEVEL")

    # Constitution policy
    constitution = _section(config_data, "constitution")

    enabled = _env_flag("CONSTITUTION_ENABLED", default=False)
    if enabled is not None:
        constitution["enabled"] = enabled

    for name, key in (("CONSTITUTION_DOMAIN", "domain"), ("CONSTITUTION_MODE", "mode")):
        if os.getenv(name):
            constitution[key] = os.getenv(name)

    for name, key in (
        ("CONSTITUTION_SYSTEM_PROMPT", "system_prompt"),
        ("CONSTITUTION_VALIDATE_INPUT", "validate_input"),
        ("CONSTITUTION_VALIDATE_OUTPUT", "validate_output"),
        ("CONSTITUTION_LOG_VIOLATIONS", "log_violations"),
    ):
        flag = _env_flag(name, default=True)
        if flag is not None:
            constitution[key] = flag

    rate_limit = _env_int("CONSTITUTION_RATE_LIMIT")
    if rate_limit is not None:
        constitution["rate_limit"] = rate_limit

    if os.getenv("CONSTITUTION_RULES_FILE"):
        config_data["rules_file"] = os.getenv("CONSTITUTION_RULES_FILE")

    return config_data


def setup_logging(config: GatewayConfig) -> None:
    """Set up logging based on configuration.

    Args:
        config: llmgate configuration instance
    """
    import logging.handlers

    formatter = logging.Formatter(config.logging.format)
    handlers: List[logging.Handler] = []

    # Add file handler with rotation
    if config.logging.file_path:
        log_file = Path(config.logging.file_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=config.logging.max_file_size_mb * 1024 * 1024,
            backupCount=config.logging.backup_count,
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Add console handler if enabled
    if config.logging.enable_console_logging:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.logging.level))
    root_logger.handlers = handlers

    logger.info("Logging configured successfully")
