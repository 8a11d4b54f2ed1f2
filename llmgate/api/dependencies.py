"""Request dependencies: gateway state, authentication, identity, rate limiting."""

import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Optional, Protocol

from fastapi import Depends, Request, status

from llmgate.api.errors import APIError
from llmgate.config.loader import GatewayConfig
from llmgate.constitution.pipeline import EnforcementPipeline
from llmgate.upstream.models import UpstreamReply

logger = logging.getLogger(__name__)


class Upstream(Protocol):
    """Anything that can forward chat and text completions."""

    def chat_completions(self, payload: Dict[str, Any]) -> Awaitable[UpstreamReply]: ...

    def completions(self, payload: Dict[str, Any]) -> Awaitable[UpstreamReply]: ...


@dataclass
class GatewayState:
    """Per-application objects shared by every request."""
    config: GatewayConfig
    pipeline: EnforcementPipeline
    upstream: Upstream
    started_at: float = field(default_factory=time.time)


def get_gateway(request: Request) -> GatewayState:
    """Get the gateway state of the running application."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise APIError(status.HTTP_503_SERVICE_UNAVAILABLE, "Gateway not initialized", "server_error")
    return gateway


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


def require_api_key(request: Request, gateway: GatewayState = Depends(get_gateway)) -> None:
    """Reject the request unless it carries the gateway key (when one is set)."""
    expected = gateway.config.api.gateway_api_key
    if not expected:
        return

    candidates = [_bearer_token(request), request.headers.get("x-api-key", "").strip()]
    for candidate in candidates:
        if candidate and secrets.compare_digest(candidate.encode(), expected.encode()):
            return

    logger.warning(
        f"Unauthorized request {request.method} {request.url.path}",
        extra={"client": request.client.host if request.client else None},
    )
    raise APIError(
        status.HTTP_401_UNAUTHORIZED,
        "Unauthorized: provide a valid key via Authorization: Bearer <key> or x-api-key header",
        "authentication_error",
    )


def client_identity(request: Request) -> str:
    """First X-Forwarded-For entry, else the client host, else ``unknown``."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_error(gateway: GatewayState) -> APIError:
    return APIError(
        status.HTTP_429_TOO_MANY_REQUESTS,
        f"Rate limit exceeded: max {gateway.config.constitution.rate_limit} requests/minute",
        "rate_limit_error",
    )


def enforce_rate_limit(
    identity: str = Depends(client_identity),
    gateway: GatewayState = Depends(get_gateway),
) -> str:
    """Admission check for routes that bypass the enforcement pipeline."""
    if not gateway.pipeline.admit(identity):
        raise rate_limit_error(gateway)
    return identity


async def read_json_body(request: Request) -> Dict[str, Any]:
    """Parse the request body as a JSON object; an empty body is ``{}``."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid JSON body", "invalid_request_error")
    if not isinstance(body, dict):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Request body must be a JSON object", "invalid_request_error")
    return body
