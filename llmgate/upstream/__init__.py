"""Upstream provider transport.

The HTTP client lives in ``llmgate.upstream.client``.
"""

from llmgate.upstream.exceptions import UpstreamError, UpstreamResponseError, UpstreamTimeoutError
from llmgate.upstream.models import UpstreamReply

__all__ = [
    "UpstreamError",
    "UpstreamReply",
    "UpstreamResponseError",
    "UpstreamTimeoutError",
]
