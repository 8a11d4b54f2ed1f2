"""Integration tests for the gateway HTTP API.

Runs the full FastAPI application against an in-memory upstream and checks
the public contract: authentication, validation, enforcement outcomes,
pass-through routes, error envelopes and introspection endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from llmgate.api.main import create_app
from llmgate.constitution.models import Domain
from llmgate.constitution.prompts import CRISIS_RESOURCES, SAFE_ALTERNATIVES, SYSTEM_PROMPTS
from llmgate.upstream.exceptions import UpstreamError

pytestmark = pytest.mark.integration

UNSAFE_REPLY = "You have sleep apnea — take 5mg melatonin"


@pytest.fixture
def gateway(make_config, fake_upstream):
    """Factory for a running test client; keyword arguments go to make_config."""
    clients = []

    def _start(**options):
        app = create_app(make_config(**options), upstream=fake_upstream)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _start

    for client in clients:
        client.__exit__(None, None, None)


def _chat(content, **extra):
    return {"messages": [{"role": "user", "content": content}], **extra}


def _content(response):
    return response.json()["choices"][0]["message"]["content"]


# ============================================================================
# Status Endpoints
# ============================================================================

class TestStatusEndpoints:

    def test_health(self, gateway):
        response = gateway().get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["uptime_ms"] >= 0
        assert data["uptime_human"].endswith("s")
        assert "timestamp" in data

    def test_health_is_public(self, gateway):
        assert gateway(gateway_api_key="gw-secret").get("/health").status_code == 200

    def test_info_has_no_secrets(self, gateway):
        response = gateway(gateway_api_key="gw-secret", domain="wearables", mode="block").get("/info")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "llmgate"
        assert data["model"] == "gpt-4o-mini"
        assert data["constitution"]["domain"] == "wearables"
        assert data["constitution"]["mode"] == "block"
        assert "POST /v1/chat/completions" in data["endpoints"]
        assert "sk-upstream-secret" not in response.text
        assert "gw-secret" not in response.text

    def test_constitution_introspection(self, gateway):
        client = gateway(gateway_api_key="gw-secret", mode="block")
        client.post("/v1/chat/completions", json=_chat("You have insomnia"), headers={"x-api-key": "gw-secret"})

        response = client.get("/v1/constitution")

        assert response.status_code == 200
        data = response.json()
        assert data["enabled"] is True
        assert data["config"]["mode"] == "block"
        assert data["config"]["rateLimit"] == "60/min"
        assert data["hardRules"][0].startswith("1. ")
        assert len(data["hardRules"]) == 5
        assert [layer["id"] for layer in data["layers"]] == [1, 2, 3, 4]
        assert data["stats"]["inputBlocked"] == 1
        assert data["stats"]["totalValidated"] == 1

    def test_metrics(self, gateway):
        client = gateway(mode="block")
        client.post("/v1/chat/completions", json=_chat("You have insomnia"))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'llmgate_constitution_events_total{event="input_blocked"} 1.0' in response.text

    def test_unknown_route(self, gateway):
        response = gateway().get("/v2/nothing")

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "not_found"
        assert "GET /v2/nothing" in response.json()["error"]["message"]


# ============================================================================
# Authentication
# ============================================================================

class TestAuthentication:

    def test_missing_key(self, gateway, fake_upstream):
        response = gateway(gateway_api_key="gw-secret").post("/v1/chat/completions", json=_chat("hi"))

        assert response.status_code == 401
        assert response.json()["error"]["type"] == "authentication_error"
        assert fake_upstream.chat_calls == []

    def test_wrong_key(self, gateway):
        response = gateway(gateway_api_key="gw-secret").post(
            "/v1/chat/completions",
            json=_chat("hi"),
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    def test_bearer_token(self, gateway):
        response = gateway(gateway_api_key="gw-secret").post(
            "/v1/chat/completions",
            json=_chat("hi"),
            headers={"Authorization": "Bearer gw-secret"},
        )
        assert response.status_code == 200

    def test_api_key_header(self, gateway):
        response = gateway(gateway_api_key="gw-secret").get("/v1/models", headers={"x-api-key": "gw-secret"})
        assert response.status_code == 200

    def test_open_gateway_without_key(self, gateway):
        assert gateway().get("/v1/models").status_code == 200


# ============================================================================
# Chat Completions
# ============================================================================

class TestChatCompletions:

    def test_passes_clean_reply(self, gateway, fake_upstream):
        response = gateway(domain="wearables").post("/v1/chat/completions", json=_chat("How did I sleep?"))

        assert response.status_code == 200
        assert _content(response) == fake_upstream.body["choices"][0]["message"]["content"]

        forwarded = fake_upstream.chat_calls[0]
        assert forwarded["model"] == "gpt-4o-mini"
        assert forwarded["messages"][0] == {"role": "system", "content": SYSTEM_PROMPTS[Domain.WEARABLES]}

    def test_client_model_is_kept(self, gateway, fake_upstream):
        gateway().post("/v1/chat/completions", json=_chat("hi", model="llama3"))
        assert fake_upstream.chat_calls[0]["model"] == "llama3"

    def test_invalid_json(self, gateway, fake_upstream):
        client = gateway()
        response = client.post(
            "/v1/chat/completions",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "invalid_request_error"
        assert fake_upstream.chat_calls == []

    def test_missing_messages(self, gateway, fake_upstream):
        client = gateway(rate_limit=1)

        first = client.post("/v1/chat/completions", json={"model": "gpt-4o-mini"})
        second = client.post("/v1/chat/completions", json={"messages": "hello"})

        assert first.status_code == 400
        assert second.status_code == 400
        assert '"messages" array is required' in first.json()["error"]["message"]
        # Rejected requests never reach admission
        assert client.post("/v1/chat/completions", json=_chat("hi")).status_code == 200

    @pytest.mark.parametrize("messages", [
        ["hello", {"role": "user", "content": "hi"}],
        [{"content": "no role"}],
        [{"role": 7, "content": "hi"}],
        [None],
    ])
    def test_malformed_message_entries(self, gateway, fake_upstream, messages):
        client = gateway(rate_limit=1)

        response = client.post("/v1/chat/completions", json={"messages": messages})

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "invalid_request_error"
        assert fake_upstream.chat_calls == []
        assert client.get("/v1/constitution").json()["stats"]["totalValidated"] == 0
        assert client.post("/v1/chat/completions", json=_chat("hi")).status_code == 200

    def test_input_block(self, gateway, fake_upstream):
        response = gateway(mode="block", domain="wearables").post(
            "/v1/chat/completions", json=_chat(UNSAFE_REPLY)
        )

        assert response.status_code == 200
        assert _content(response) == SAFE_ALTERNATIVES[Domain.WEARABLES]
        assert response.json()["_constitution"]["stage"] == "input"
        assert fake_upstream.chat_calls == []

    def test_output_block(self, gateway, fake_upstream):
        fake_upstream.reply_with(UNSAFE_REPLY)

        response = gateway(mode="block", domain="wearables").post(
            "/v1/chat/completions", json=_chat("How did I sleep?")
        )

        assert response.status_code == 200
        data = response.json()
        assert _content(response) == SAFE_ALTERNATIVES[Domain.WEARABLES]
        assert data["model"] == "llmgate-safety-layer"
        assert data["_constitution"]["blocked"] is True
        assert data["_constitution"]["violations"] == 2

    def test_output_warn(self, gateway, fake_upstream):
        fake_upstream.reply_with(UNSAFE_REPLY)

        response = gateway(mode="warn").post("/v1/chat/completions", json=_chat("How did I sleep?"))

        assert _content(response) == UNSAFE_REPLY
        assert response.json()["_constitution"]["outputValidation"]["safe"] is False

    def test_crisis_resources(self, gateway):
        response = gateway(mode="block").post("/v1/chat/completions", json=_chat("I want to kill myself"))

        assert response.status_code == 200
        assert _content(response).endswith(CRISIS_RESOURCES)
        assert response.json()["_constitution"]["crisisResourcesAppended"] is True

    def test_disabled_constitution(self, gateway, fake_upstream):
        fake_upstream.reply_with(UNSAFE_REPLY)

        response = gateway(enabled=False).post("/v1/chat/completions", json=_chat(UNSAFE_REPLY))

        assert _content(response) == UNSAFE_REPLY
        assert "_constitution" not in response.json()
        assert fake_upstream.chat_calls[0]["messages"] == [{"role": "user", "content": UNSAFE_REPLY}]

    def test_upstream_status_is_relayed(self, gateway, fake_upstream):
        fake_upstream.reply_with_body({"error": {"message": "quota exceeded"}}, status_code=429)

        response = gateway().post("/v1/chat/completions", json=_chat("hi"))

        assert response.status_code == 429
        assert response.json() == {"error": {"message": "quota exceeded"}}

    def test_streaming_relay(self, gateway, fake_upstream):
        chunks = [b'data: {"choices":[{"delta":{"content":"You have insomnia"}}]}\n\n', b"data: [DONE]\n\n"]
        fake_upstream.stream(chunks)

        response = gateway(mode="block").post("/v1/chat/completions", json=_chat("hi", stream=True))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.content == b"".join(chunks)

    def test_upstream_failure(self, gateway, fake_upstream):
        fake_upstream.fail_with(UpstreamError("connection refused"))

        response = gateway().post("/v1/chat/completions", json=_chat("hi"))

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["type"] == "api_error"
        assert "connection refused" in error["message"]

    def test_upstream_timeout(self, gateway, fake_upstream):
        fake_upstream.delay = 1.0

        response = gateway(timeout_seconds=0.05).post("/v1/chat/completions", json=_chat("hi"))

        assert response.status_code == 504
        assert response.json()["error"]["type"] == "api_error"


# ============================================================================
# Rate Limiting
# ============================================================================

class TestRateLimiting:

    def test_chat_rate_limit(self, gateway, fake_upstream):
        client = gateway(rate_limit=2)

        statuses = [client.post("/v1/chat/completions", json=_chat("hi")).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        assert len(fake_upstream.chat_calls) == 2

    def test_rate_limit_envelope(self, gateway):
        client = gateway(rate_limit=1)
        client.post("/v1/chat/completions", json=_chat("hi"))

        response = client.post("/v1/chat/completions", json=_chat("hi"))

        error = response.json()["error"]
        assert error["type"] == "rate_limit_error"
        assert "max 1 requests/minute" in error["message"]

    def test_forwarded_for_identity(self, gateway):
        client = gateway(rate_limit=1)

        first = client.post("/v1/chat/completions", json=_chat("hi"), headers={"X-Forwarded-For": "10.0.0.1, 10.0.0.9"})
        second = client.post("/v1/chat/completions", json=_chat("hi"), headers={"X-Forwarded-For": "10.0.0.2"})
        third = client.post("/v1/chat/completions", json=_chat("hi"), headers={"X-Forwarded-For": "10.0.0.1"})

        assert (first.status_code, second.status_code, third.status_code) == (200, 200, 429)

    def test_limit_is_shared_across_routes(self, gateway):
        client = gateway(rate_limit=2)

        client.get("/v1/models")
        client.post("/v1/completions", json={"prompt": "Once upon a time"})

        assert client.post("/v1/chat/completions", json=_chat("hi")).status_code == 429

    def test_disabled_constitution_is_not_limited(self, gateway):
        client = gateway(enabled=False, rate_limit=1)

        assert [client.get("/v1/models").status_code for _ in range(3)] == [200, 200, 200]

    def test_rate_limited_counter(self, gateway):
        client = gateway(rate_limit=1)
        client.get("/v1/models")
        client.get("/v1/models")

        assert client.get("/v1/constitution").json()["stats"]["rateLimited"] == 1


# ============================================================================
# Pass-through Routes
# ============================================================================

class TestPassThroughRoutes:

    def test_models(self, gateway):
        response = gateway().get("/v1/models")

        data = response.json()
        assert data["object"] == "list"
        assert data["data"][0]["id"] == "gpt-4o-mini"
        assert data["data"][0]["owned_by"] == "llmgate"

    def test_completions(self, gateway, fake_upstream):
        fake_upstream.reply_with_body({"choices": [{"text": "there was a gateway"}]})

        response = gateway(mode="block").post("/v1/completions", json={"prompt": "You have insomnia"})

        assert response.status_code == 200
        assert response.json() == {"choices": [{"text": "there was a gateway"}]}
        assert fake_upstream.completion_calls[0] == {"prompt": "You have insomnia", "model": "gpt-4o-mini"}

    def test_completions_requires_prompt(self, gateway, fake_upstream):
        response = gateway().post("/v1/completions", json={"model": "gpt-4o-mini"})

        assert response.status_code == 400
        assert fake_upstream.completion_calls == []

    def test_completions_upstream_failure(self, gateway, fake_upstream):
        fake_upstream.fail_with(UpstreamError("bad gateway"))

        response = gateway().post("/v1/completions", json={"prompt": "hi"})

        assert response.status_code == 502


class TestLifespan:

    def test_upstream_closed_on_shutdown(self, make_config, fake_upstream):
        with TestClient(create_app(make_config(), upstream=fake_upstream)) as client:
            client.get("/health")
            assert fake_upstream.closed is False

        assert fake_upstream.closed is True
