"""Public status routes: health, info, constitution introspection, metrics."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response

from llmgate import __version__
from llmgate.api.dependencies import GatewayState, get_gateway
from llmgate.constitution.prompts import HARD_RULES

router = APIRouter(tags=["Status"])

ENDPOINTS = [
    "POST /v1/chat/completions",
    "POST /v1/completions",
    "GET  /v1/models",
    "GET  /v1/constitution",
    "GET  /health",
    "GET  /info",
    "GET  /metrics",
]


def format_uptime(ms: int) -> str:
    """Largest two units of an uptime, e.g. ``2h 5m``."""
    seconds = ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


@router.get("/health")
async def health(gateway: GatewayState = Depends(get_gateway)):
    """Health check endpoint."""
    uptime_ms = int((time.time() - gateway.started_at) * 1000)
    return {
        "status": "ok",
        "uptime_ms": uptime_ms,
        "uptime_human": format_uptime(uptime_ms),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/info")
async def info(gateway: GatewayState = Depends(get_gateway)):
    """Public gateway description; never includes keys."""
    policy = gateway.config.constitution
    return {
        "name": "llmgate",
        "version": __version__,
        "description": "OpenAI-compatible LLM gateway with a constitutional safety layer",
        "model": gateway.config.upstream.model,
        "provider_url": gateway.config.upstream.api_url,
        "constitution": {
            "enabled": policy.enabled,
            "domain": policy.domain.value,
            "mode": policy.mode.value,
            "layers": {
                "systemPrompt": policy.system_prompt,
                "inputValidation": policy.validate_input,
                "outputValidation": policy.validate_output,
                "rateLimiting": policy.rate_limit > 0,
            },
        },
        "endpoints": ENDPOINTS,
    }


@router.get("/v1/constitution")
async def constitution(gateway: GatewayState = Depends(get_gateway)):
    """Constitution configuration, hard rules, layers and live counters."""
    policy = gateway.config.constitution
    return {
        "name": "llmgate constitutional safety layer",
        "version": __version__,
        "enabled": policy.enabled,
        "config": policy.to_dict(),
        "hardRules": [f"{i}. {rule}" for i, rule in enumerate(HARD_RULES, start=1)],
        "layers": [
            {"id": 1, "name": "System Prompt Injection", "phase": "pre-generation", "enabled": policy.system_prompt},
            {"id": 2, "name": "Input Pattern Validation", "phase": "pre-generation", "enabled": policy.validate_input},
            {"id": 3, "name": "Output Pattern Validation", "phase": "post-generation", "enabled": policy.validate_output},
            {"id": 4, "name": "Request Rate Limiting", "phase": "abuse-prevention", "enabled": policy.rate_limit > 0},
        ],
        "stats": gateway.pipeline.stats.to_dict(),
    }


@router.get("/metrics")
async def metrics(gateway: GatewayState = Depends(get_gateway)):
    """Prometheus metrics endpoint."""
    payload, content_type = gateway.pipeline.stats.render()
    return Response(content=payload, media_type=content_type)
