"""Upstream reply contract."""

from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional


@dataclass
class UpstreamReply:
    """Reply of one upstream exchange.

    Exactly one of ``body`` (parsed JSON) or ``chunks`` (raw streamed bytes)
    is set.
    """
    status_code: int = 200
    body: Optional[Dict[str, Any]] = None
    chunks: Optional[AsyncIterator[bytes]] = None

    @property
    def streamed(self) -> bool:
        return self.chunks is not None
