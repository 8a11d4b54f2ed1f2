"""FastAPI application for the llmgate gateway.

Builds the application around one enforcement pipeline, one upstream client
and one set of counters, and runs the rate-limit sweep in the background.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from llmgate import __version__
from llmgate.api.dependencies import GatewayState, Upstream
from llmgate.api.errors import register_error_handlers
from llmgate.api.routers import chat_router, status_router
from llmgate.config.loader import GatewayConfig, load_config
from llmgate.constitution.metrics import ConstitutionStats
from llmgate.constitution.patterns import load_rule_set
from llmgate.constitution.pipeline import EnforcementPipeline
from llmgate.constitution.rate_limiter import SWEEP_INTERVAL_SECONDS, FixedWindowRateLimiter
from llmgate.upstream.client import UpstreamClient

logger = logging.getLogger(__name__)


async def sweep_rate_limits(limiter: FixedWindowRateLimiter, interval: float = SWEEP_INTERVAL_SECONDS) -> None:
    """Periodically drop stale rate-limit windows."""
    while True:
        await asyncio.sleep(interval)
        removed = limiter.sweep()
        if removed:
            logger.info(f"Removed {removed} stale rate-limit entries")


def build_pipeline(config: GatewayConfig) -> EnforcementPipeline:
    policy = config.constitution
    rules = load_rule_set(config.rules_file) if config.rules_file else None
    return EnforcementPipeline(
        policy,
        stats=ConstitutionStats(),
        limiter=FixedWindowRateLimiter(limit=policy.rate_limit, enabled=policy.enabled),
        rules=rules,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    gateway: GatewayState = app.state.gateway
    policy = gateway.config.constitution

    # Startup
    logger.info(
        f"Starting llmgate {__version__}: upstream={gateway.config.upstream.api_url} "
        f"model={gateway.config.upstream.model} constitution={'on' if policy.enabled else 'off'} "
        f"domain={policy.domain.value} mode={policy.mode.value}"
    )
    if not gateway.config.api.gateway_api_key:
        logger.warning("GATEWAY_API_KEY is not set: the gateway is open to any caller")

    sweeper = asyncio.create_task(sweep_rate_limits(gateway.pipeline.limiter))

    yield

    # Shutdown
    logger.info("Shutting down llmgate...")
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper

    close = getattr(gateway.upstream, "close", None)
    if close is not None:
        await close()


def create_app(config: Optional[GatewayConfig] = None, upstream: Optional[Upstream] = None) -> FastAPI:
    """Create the gateway application.

    Args:
        config: Gateway configuration, loaded from file and environment when omitted
        upstream: Upstream transport, an httpx client for the configured provider when omitted
    """
    config = config or load_config()

    app = FastAPI(
        title="llmgate",
        version=__version__,
        description="OpenAI-compatible LLM gateway with a constitutional safety layer",
        lifespan=lifespan,
    )
    app.state.gateway = GatewayState(
        config=config,
        pipeline=build_pipeline(config),
        upstream=upstream or UpstreamClient(config.upstream),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "x-api-key"],
    )

    register_error_handlers(app)
    app.include_router(status_router)
    app.include_router(chat_router)

    return app
