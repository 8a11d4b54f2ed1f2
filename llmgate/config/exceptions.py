"""Configuration-related exceptions."""

from typing import Optional

from llmgate.exceptions import LLMGateError


class ConfigurationError(LLMGateError):
    """Error in configuration loading or validation."""
    DEFAULT_CODE = "CONFIG_ERROR"

    def __init__(self, message: str, config_path: Optional[str] = None, error_code: Optional[str] = None):
        super().__init__(message, error_code or self.DEFAULT_CODE)
        self.config_path = config_path
