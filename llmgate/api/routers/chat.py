"""OpenAI-compatible completion routes.

Chat completions run through the enforcement pipeline. Text completions and
the model list are rate limited but otherwise passed through.
"""

import asyncio
import logging
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from llmgate.api.dependencies import (
    GatewayState,
    client_identity,
    enforce_rate_limit,
    get_gateway,
    rate_limit_error,
    read_json_body,
    require_api_key,
)
from llmgate.api.errors import APIError
from llmgate.constitution.pipeline import PipelineState
from llmgate.upstream.exceptions import UpstreamError, UpstreamTimeoutError
from llmgate.upstream.models import UpstreamReply

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Completions"], dependencies=[Depends(require_api_key)])

STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def with_default_model(body: Dict[str, Any], model: str) -> Dict[str, Any]:
    """Copy of ``body`` with the configured model filled in when missing."""
    return {**body, "model": body.get("model") or model}


def upstream_error(exc: Exception) -> APIError:
    if isinstance(exc, UpstreamTimeoutError):
        return APIError(status.HTTP_504_GATEWAY_TIMEOUT, f"Upstream error: {exc}", "api_error")
    return APIError(status.HTTP_502_BAD_GATEWAY, f"Upstream error: {exc}", "api_error")


def relay(reply_status: int, reply_body: Any, chunks: Any) -> Response:
    if chunks is not None:
        return StreamingResponse(
            chunks,
            status_code=reply_status,
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )
    return JSONResponse(status_code=reply_status, content=reply_body)


@router.post("/chat/completions")
async def chat_completions(
    request: Request,
    identity: str = Depends(client_identity),
    gateway: GatewayState = Depends(get_gateway),
):
    """Chat completion through every constitution layer."""
    body = await read_json_body(request)
    payload = with_default_model(body, gateway.config.upstream.model)

    if not isinstance(payload.get("messages"), list):
        raise APIError(status.HTTP_400_BAD_REQUEST, '"messages" array is required', "invalid_request_error")
    if not all(isinstance(m, dict) and isinstance(m.get("role"), str) for m in payload["messages"]):
        raise APIError(
            status.HTTP_400_BAD_REQUEST,
            'Each message must be an object with a string "role"',
            "invalid_request_error",
        )

    outcome = await gateway.pipeline.process(
        payload,
        identity,
        gateway.upstream.chat_completions,
        timeout=gateway.config.upstream.timeout_seconds,
    )

    if outcome.state is PipelineState.RATE_LIMITED:
        raise rate_limit_error(gateway)
    if outcome.state is PipelineState.UPSTREAM_FAILED:
        raise upstream_error(outcome.error)

    logger.info(f"chat/completions finished: {outcome.state.value}", extra={"identity": identity})
    return relay(outcome.status_code, outcome.body, outcome.chunks)


@router.post("/completions")
async def completions(
    request: Request,
    identity: str = Depends(enforce_rate_limit),
    gateway: GatewayState = Depends(get_gateway),
):
    """Text completion pass-through; no constitution layers apply."""
    body = await read_json_body(request)
    payload = with_default_model(body, gateway.config.upstream.model)

    if not payload.get("prompt"):
        raise APIError(status.HTTP_400_BAD_REQUEST, '"prompt" is required', "invalid_request_error")

    logger.info(f"completions model={payload['model']} stream={payload.get('stream') is True}")

    try:
        reply: UpstreamReply = await asyncio.wait_for(
            gateway.upstream.completions(payload),
            gateway.config.upstream.timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.error("Upstream completions request timed out")
        raise upstream_error(UpstreamTimeoutError(
            f"Upstream request timed out after {gateway.config.upstream.timeout_seconds}s"
        ))
    except UpstreamError as e:
        logger.error(f"Upstream request failed: {e}")
        raise upstream_error(e)

    return relay(reply.status_code, reply.body, reply.chunks)


@router.get("/models")
async def list_models(
    identity: str = Depends(enforce_rate_limit),
    gateway: GatewayState = Depends(get_gateway),
):
    """The configured model in OpenAI list form."""
    return {
        "object": "list",
        "data": [
            {
                "id": gateway.config.upstream.model,
                "object": "model",
                "created": int(time.time()),
                "owned_by": "llmgate",
            }
        ],
    }
