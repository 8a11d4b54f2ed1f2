"""Base exception classes for llmgate."""

from typing import Optional


class LLMGateError(Exception):
    """Base exception for all llmgate errors."""
    DEFAULT_CODE = "LLMGATE_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.DEFAULT_CODE
