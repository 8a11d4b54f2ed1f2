"""Global test fixtures for the llmgate test suite."""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional

import pytest

from llmgate.config.loader import APIConfig, GatewayConfig, UpstreamConfig
from llmgate.constitution.models import PolicyConfig
from llmgate.upstream.models import UpstreamReply

SAFE_REPLY = "Some people find a short evening walk helpful. This is not medical advice."
UNSAFE_REPLY = "You have sleep apnea — take 5mg melatonin"
CRISIS_TEXT = "I want to kill myself"

GATEWAY_ENV_VARS = [
    "LLM_API_URL",
    "LLM_MODEL",
    "LLM_API_KEY",
    "REQUEST_TIMEOUT_MS",
    "GATEWAY_API_KEY",
    "PORT",
    "LOG_LEVEL",
    "CONSTITUTION_ENABLED",
    "CONSTITUTION_DOMAIN",
    "CONSTITUTION_MODE",
    "CONSTITUTION_SYSTEM_PROMPT",
    "CONSTITUTION_VALIDATE_INPUT",
    "CONSTITUTION_VALIDATE_OUTPUT",
    "CONSTITUTION_LOG_VIOLATIONS",
    "CONSTITUTION_RATE_LIMIT",
    "CONSTITUTION_RULES_FILE",
]


# ==========================================
# Pytest Configuration
# ==========================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


# ==========================================
# Fake Upstream Provider
# ==========================================

def chat_body(content: Optional[str], model: str = "gpt-4o-mini") -> Dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
        "usage": {"prompt_tokens": 10, "completion_tokens": 10, "total_tokens": 20},
    }


class FakeUpstream:
    """In-memory upstream provider recording every forwarded payload."""

    def __init__(self):
        self.chat_calls: List[Dict[str, Any]] = []
        self.completion_calls: List[Dict[str, Any]] = []
        self.status_code = 200
        self.body: Dict[str, Any] = chat_body(SAFE_REPLY)
        self.chunks: Optional[List[bytes]] = None
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.closed = False

    def reply_with(self, content: Optional[str], status_code: int = 200) -> "FakeUpstream":
        self.body = chat_body(content)
        self.status_code = status_code
        return self

    def reply_with_body(self, body: Dict[str, Any], status_code: int = 200) -> "FakeUpstream":
        self.body = body
        self.status_code = status_code
        return self

    def stream(self, chunks: List[bytes]) -> "FakeUpstream":
        self.chunks = chunks
        return self

    def fail_with(self, error: Exception) -> "FakeUpstream":
        self.error = error
        return self

    async def chat_completions(self, payload: Dict[str, Any]) -> UpstreamReply:
        self.chat_calls.append(payload)
        return await self._reply()

    async def completions(self, payload: Dict[str, Any]) -> UpstreamReply:
        self.completion_calls.append(payload)
        return await self._reply()

    async def close(self) -> None:
        self.closed = True

    async def _reply(self) -> UpstreamReply:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.chunks is not None:
            return UpstreamReply(status_code=self.status_code, chunks=self._iterate(self.chunks))
        return UpstreamReply(status_code=self.status_code, body=self.body)

    @staticmethod
    async def _iterate(chunks: List[bytes]) -> AsyncIterator[bytes]:
        for chunk in chunks:
            yield chunk


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


# ==========================================
# Policies and Configuration
# ==========================================

@pytest.fixture
def make_policy():
    """Factory for enabled policies; keyword arguments override defaults."""
    def _make(**overrides) -> PolicyConfig:
        values = {"enabled": True}
        values.update(overrides)
        return PolicyConfig(**values)
    return _make


@pytest.fixture
def make_config(make_policy):
    """Factory for gateway configurations around a policy."""
    def _make(gateway_api_key: Optional[str] = None, timeout_seconds: float = 5.0, **policy) -> GatewayConfig:
        return GatewayConfig(
            upstream=UpstreamConfig(
                api_url="https://upstream.test/v1",
                model="gpt-4o-mini",
                api_key="sk-upstream-secret",
                timeout_seconds=timeout_seconds,
            ),
            api=APIConfig(gateway_api_key=gateway_api_key),
            constitution=make_policy(**policy),
        )
    return _make


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every gateway environment variable for the test."""
    for name in GATEWAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
