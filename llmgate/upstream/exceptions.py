"""Upstream transport exceptions."""

from typing import Optional

from llmgate.exceptions import LLMGateError


class UpstreamError(LLMGateError):
    """The upstream provider could not be reached or failed."""
    DEFAULT_CODE = "UPSTREAM_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message, error_code or self.DEFAULT_CODE)
        self.status_code = status_code


class UpstreamTimeoutError(UpstreamError):
    """The upstream exchange did not complete within the timeout."""
    DEFAULT_CODE = "UPSTREAM_TIMEOUT"


class UpstreamResponseError(UpstreamError):
    """The upstream provider returned a body that is not valid JSON."""
    DEFAULT_CODE = "UPSTREAM_BAD_RESPONSE"
