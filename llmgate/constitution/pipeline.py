"""
Enforcement pipeline for chat-completion requests.

Runs one request through admission, prompt injection, input scoring, the
upstream exchange, output scoring and crisis augmentation, and reports the
terminal state it reached. Safety violations are outcomes, never exceptions.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional

from llmgate.constitution.metrics import ConstitutionStats, StatEvent
from llmgate.constitution.models import Decision, Mode, PolicyConfig, Verdict
from llmgate.constitution.patterns import RuleSet
from llmgate.constitution.prompts import content_as_text, inject_system_prompt
from llmgate.constitution.rate_limiter import FixedWindowRateLimiter
from llmgate.constitution.responses import (
    annotate_output,
    append_crisis_resources,
    assistant_content,
    build_blocked_response,
)
from llmgate.constitution.scorer import score
from llmgate.upstream.exceptions import UpstreamError, UpstreamTimeoutError
from llmgate.upstream.models import UpstreamReply

logger = logging.getLogger(__name__)

Exchange = Callable[[Dict[str, Any]], Awaitable[UpstreamReply]]


class PipelineState(str, Enum):
    """Terminal states of one pipeline run."""

    RATE_LIMITED = "rate_limited"
    BLOCKED_ON_INPUT = "blocked_on_input"
    BLOCKED_ON_OUTPUT = "blocked_on_output"
    PASSED_CLEAN = "passed_clean"
    PASSED_ANNOTATED = "passed_annotated"
    PASSED_CRISIS_AUGMENTED = "passed_crisis_augmented"
    UPSTREAM_FAILED = "upstream_failed"


@dataclass
class PipelineOutcome:
    """What the caller should send back for one request."""
    state: PipelineState
    status_code: int = 200
    body: Optional[Dict[str, Any]] = None
    chunks: Optional[AsyncIterator[bytes]] = None
    error: Optional[Exception] = None
    input_verdict: Optional[Verdict] = None
    output_verdict: Optional[Verdict] = None
    crisis: bool = False

    @property
    def streamed(self) -> bool:
        return self.chunks is not None


def decide(verdict: Verdict, mode: Mode) -> Decision:
    """Single mode dispatch shared by input and output scoring."""
    if verdict.safe:
        return Decision.PASS
    mode = Mode(mode)
    if mode is Mode.BLOCK:
        return Decision.SUBSTITUTE
    if mode is Mode.WARN:
        return Decision.ANNOTATE
    return Decision.PASS


def user_text(messages: Any) -> str:
    """Content of every user message joined with single spaces."""
    if not isinstance(messages, list):
        return ""
    return " ".join(
        content_as_text(message.get("content"))
        for message in messages
        if isinstance(message, dict) and message.get("role") == "user"
    )


class EnforcementPipeline:
    """Applies a constitution policy to chat-completion exchanges.

    Counters and rate-limit state are injected so each gateway instance owns
    its own.
    """

    def __init__(
        self,
        policy: PolicyConfig,
        stats: Optional[ConstitutionStats] = None,
        limiter: Optional[FixedWindowRateLimiter] = None,
        rules: Optional[RuleSet] = None,
    ):
        self.policy = policy
        self.stats = stats or ConstitutionStats()
        self.limiter = limiter or FixedWindowRateLimiter(limit=policy.rate_limit, enabled=policy.enabled)
        self.rules = rules

    def admit(self, identity: str) -> bool:
        """Rate-limit check for any gated route."""
        if self.limiter.admit(identity):
            return True
        self.stats.increment(StatEvent.RATE_LIMITED)
        logger.warning(
            f"Rate limit exceeded for {identity}",
            extra={"identity": identity, "limit": self.policy.rate_limit},
        )
        return False

    def score(self, text: Optional[str]) -> Verdict:
        return score(text, self.policy, self.rules)

    async def process(
        self,
        request: Mapping[str, Any],
        identity: str,
        exchange: Exchange,
        timeout: Optional[float] = None,
    ) -> PipelineOutcome:
        """
        Run one chat-completion request through every enforcement layer.

        Args:
            request: Chat-completion payload with a ``messages`` list
            identity: Client identity for rate limiting
            exchange: Coroutine function sending the payload upstream
            timeout: Seconds to wait for the exchange, None waits forever

        Returns:
            PipelineOutcome describing the terminal state and response
        """
        policy = self.policy

        # Admission
        if not self.admit(identity):
            return PipelineOutcome(state=PipelineState.RATE_LIMITED, status_code=429)

        payload = dict(request)

        # Prompt injection
        if policy.enabled and policy.system_prompt:
            payload["messages"] = inject_system_prompt(payload.get("messages") or [], policy.domain)
            self.stats.increment(StatEvent.SYSTEM_PROMPTS_INJECTED)

        # Input scoring
        crisis = False
        input_verdict = None
        if policy.enabled and policy.validate_input:
            input_verdict = self.score(user_text(request.get("messages")))
            self.stats.increment(StatEvent.TOTAL_VALIDATED)

            if input_verdict.has_crisis_signal:
                crisis = True
                self._record_crisis("input")

            if not input_verdict.safe:
                self._log_violations("input", input_verdict)
                if decide(input_verdict, policy.mode) is Decision.SUBSTITUTE:
                    self.stats.increment(StatEvent.INPUT_BLOCKED)
                    substitute = build_blocked_response(input_verdict, policy.domain, policy.mode, "input")
                    return self._finish(
                        PipelineOutcome(
                            state=PipelineState.BLOCKED_ON_INPUT,
                            body=substitute,
                            input_verdict=input_verdict,
                        ),
                        crisis,
                    )
                self.stats.increment(StatEvent.INPUT_WARNINGS)

        logger.info(
            f"chat/completions model={payload.get('model')} stream={payload.get('stream') is True} "
            f"messages={len(payload.get('messages') or [])}"
        )

        # Upstream exchange
        try:
            reply = await asyncio.wait_for(exchange(payload), timeout)
        except asyncio.TimeoutError:
            error = UpstreamTimeoutError(f"Upstream request timed out after {timeout}s")
            logger.error(f"Upstream request failed: {error}")
            return PipelineOutcome(
                state=PipelineState.UPSTREAM_FAILED,
                status_code=504,
                error=error,
                input_verdict=input_verdict,
                crisis=crisis,
            )
        except Exception as e:
            logger.error(f"Upstream request failed: {e}")
            status_code = 504 if isinstance(e, UpstreamTimeoutError) else 502
            error = e if isinstance(e, UpstreamError) else UpstreamError(str(e))
            return PipelineOutcome(
                state=PipelineState.UPSTREAM_FAILED,
                status_code=status_code,
                error=error,
                input_verdict=input_verdict,
                crisis=crisis,
            )

        # Streamed replies are relayed verbatim
        if reply.streamed:
            return PipelineOutcome(
                state=PipelineState.PASSED_CLEAN,
                status_code=reply.status_code,
                chunks=reply.chunks,
                input_verdict=input_verdict,
                crisis=crisis,
            )

        outcome = PipelineOutcome(
            state=PipelineState.PASSED_CLEAN,
            status_code=reply.status_code,
            body=reply.body,
            input_verdict=input_verdict,
        )

        # Output scoring
        content = assistant_content(reply.body)
        if policy.enabled and policy.validate_output and content:
            output_verdict = self.score(content)
            outcome.output_verdict = output_verdict
            self.stats.increment(StatEvent.TOTAL_VALIDATED)

            if output_verdict.has_crisis_signal:
                crisis = True
                self._record_crisis("output")

            if not output_verdict.safe:
                self._log_violations("output", output_verdict)
                decision = decide(output_verdict, policy.mode)
                if decision is Decision.SUBSTITUTE:
                    self.stats.increment(StatEvent.OUTPUT_BLOCKED)
                    outcome.state = PipelineState.BLOCKED_ON_OUTPUT
                    outcome.status_code = 200
                    outcome.body = build_blocked_response(output_verdict, policy.domain, policy.mode, "output")
                elif decision is Decision.ANNOTATE:
                    self.stats.increment(StatEvent.OUTPUT_WARNINGS)
                    outcome.state = PipelineState.PASSED_ANNOTATED
                    outcome.body = annotate_output(reply.body, output_verdict, policy.mode)

        return self._finish(outcome, crisis)

    def _finish(self, outcome: PipelineOutcome, crisis: bool) -> PipelineOutcome:
        """Crisis augmentation, applied to whatever response is final."""
        outcome.crisis = crisis
        if not crisis or assistant_content(outcome.body) is None:
            return outcome

        outcome.body = append_crisis_resources(outcome.body)
        if outcome.state in (PipelineState.PASSED_CLEAN, PipelineState.PASSED_ANNOTATED):
            outcome.state = PipelineState.PASSED_CRISIS_AUGMENTED
        return outcome

    def _record_crisis(self, stage: str) -> None:
        self.stats.increment(StatEvent.CRISIS_DETECTED)
        if self.policy.log_violations:
            logger.warning(
                f"Crisis signal detected in {stage}",
                extra={"stage": stage, "domain": self.policy.domain.value},
            )

    def _log_violations(self, stage: str, verdict: Verdict) -> None:
        if not self.policy.log_violations:
            return

        if self.policy.mode is Mode.LOG:
            logger.info(f"Constitution {stage} violations (log mode): {verdict.summary()}")
            return

        logger.warning(
            f"Constitution {stage} violations detected: {len(verdict.violations)} "
            f"(mode={self.policy.mode.value}, confidence={verdict.confidence})",
            extra={
                "stage": stage,
                "mode": self.policy.mode.value,
                "violations": [v.to_dict() for v in verdict.violations],
                "confidence": verdict.confidence,
            },
        )
