import logging

import httpx
import pytest

from govairn.config import Settings
from govairn.infrastructure.llm.completion_gateway import CompletionGateway, CompletionStatus

MESSAGES = [
    {"role": "system", "content": "Respond with JSON."},
    {"role": "user", "content": "Analyze proposal 1."},
]


@pytest.mark.asyncio
async def test_successful_completion(make_gateway, completion_server):
    server = completion_server({"decision": "for"})
    gateway = make_gateway(server)

    outcome = await gateway.complete(MESSAGES)

    assert outcome.status == CompletionStatus.OK
    assert outcome.text == '{"decision": "for"}'
    assert outcome.attempts == 1
    body = server.requests[0]
    assert body["model"] == "gpt-4o-mini"
    assert body["temperature"] == 0.7
    assert body["max_tokens"] == 1000
    assert body["response_format"] == {"type": "json_object"}
    assert body["messages"] == MESSAGES
    assert gateway.stats == {"network_calls": 1, "cache_hits": 0, "failures": 0}


@pytest.mark.asyncio
async def test_cache_hit_skips_network(make_gateway, completion_server, clock):
    server = completion_server({"decision": "for"})
    gateway = make_gateway(server)

    await gateway.complete(MESSAGES)
    second = await gateway.complete(MESSAGES)

    assert second.status == CompletionStatus.CACHED
    assert second.from_cache
    assert len(server.requests) == 1
    assert gateway.stats == {"network_calls": 1, "cache_hits": 1, "failures": 0}

    clock.advance(24 * 60 * 60 + 1)
    third = await gateway.complete(MESSAGES)
    assert third.status == CompletionStatus.OK
    assert len(server.requests) == 2


@pytest.mark.asyncio
async def test_retries_transient_status_with_linear_backoff(make_gateway, completion_server, sleep):
    server = completion_server(httpx.Response(503), httpx.Response(500), {"decision": "against"})
    gateway = make_gateway(server)

    outcome = await gateway.complete(MESSAGES)

    assert outcome.status == CompletionStatus.OK
    assert outcome.attempts == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_unavailable_after_exhausting_retries(make_gateway, completion_server, sleep):
    server = completion_server(httpx.Response(503))
    gateway = make_gateway(server)

    outcome = await gateway.complete(MESSAGES)

    assert outcome.status == CompletionStatus.UNAVAILABLE
    assert not outcome.available
    assert outcome.error == "HTTP 503"
    assert len(server.requests) == 3
    assert sleep.delays == [1.0, 2.0]
    assert gateway.stats == {"network_calls": 3, "cache_hits": 0, "failures": 1}


@pytest.mark.asyncio
async def test_transport_error_is_retried(make_gateway, completion_server):
    server = completion_server(httpx.ConnectError("connection refused"))
    gateway = make_gateway(server)

    outcome = await gateway.complete(MESSAGES)

    assert outcome.status == CompletionStatus.UNAVAILABLE
    assert "ConnectError" in outcome.error
    assert gateway.network_calls == 3


@pytest.mark.asyncio
async def test_client_error_is_not_retried(make_gateway, completion_server, sleep):
    server = completion_server(httpx.Response(401, json={"error": "bad key"}))
    gateway = make_gateway(server)

    outcome = await gateway.complete(MESSAGES)

    assert outcome.status == CompletionStatus.UNAVAILABLE
    assert len(server.requests) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_unexpected_body_is_unavailable(make_gateway, completion_server):
    server = completion_server(httpx.Response(200, json={"choices": []}))
    gateway = make_gateway(server)

    outcome = await gateway.complete(MESSAGES)

    assert outcome.status == CompletionStatus.UNAVAILABLE
    assert "no choices" in outcome.error


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"choices": [{"message": "hello"}]},
    {"choices": ["hello"]},
    {"choices": {"message": {"content": "hi"}}},
    {"choices": [{"message": {"content": 42}}]},
    ["not", "an", "object"],
])
async def test_malformed_envelope_is_unavailable(make_gateway, completion_server, sleep, payload):
    server = completion_server(httpx.Response(200, json=payload))
    gateway = make_gateway(server)

    outcome = await gateway.complete(MESSAGES)

    assert outcome.status == CompletionStatus.UNAVAILABLE
    assert outcome.error.startswith("invalid response body")
    assert len(server.requests) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_any_2xx_is_success(make_gateway, completion_server):
    server = completion_server(
        httpx.Response(201, json={"choices": [{"message": {"content": '{"decision": "for"}'}}]})
    )
    gateway = make_gateway(server)

    outcome = await gateway.complete(MESSAGES)

    assert outcome.status == CompletionStatus.OK
    assert outcome.text == '{"decision": "for"}'


@pytest.mark.asyncio
async def test_missing_api_key(make_gateway, completion_server):
    server = completion_server({"decision": "for"})
    gateway = make_gateway(server, api_key="  ")

    outcome = await gateway.complete(MESSAGES)

    assert outcome.status == CompletionStatus.UNAVAILABLE
    assert server.requests == []
    assert gateway.failures == 1


@pytest.mark.asyncio
async def test_markup_is_stripped(make_gateway, completion_server):
    server = completion_server("# Verdict\n**Decision**: for")
    gateway = make_gateway(server)

    outcome = await gateway.complete(MESSAGES)

    assert outcome.text == "Verdict\nDecision: for"


@pytest.mark.asyncio
async def test_rate_limit_is_advisory(make_gateway, completion_server, caplog):
    server = completion_server({"decision": "for"})
    gateway = make_gateway(server, rate_limit_per_minute=2)

    with caplog.at_level(logging.WARNING):
        outcomes = [
            await gateway.complete([{"role": "user", "content": f"proposal {i}"}])
            for i in range(3)
        ]

    assert all(o.status == CompletionStatus.OK for o in outcomes)
    assert len(server.requests) == 3
    assert "LLM rate limit exceeded: 3 calls" in caplog.text


@pytest.mark.asyncio
async def test_rate_window_rolls(make_gateway, completion_server, clock, caplog):
    server = completion_server({"decision": "for"})
    gateway = make_gateway(server, rate_limit_per_minute=1)

    with caplog.at_level(logging.WARNING):
        await gateway.complete([{"role": "user", "content": "a"}])
        clock.advance(61)
        await gateway.complete([{"role": "user", "content": "b"}])

    assert "rate limit exceeded" not in caplog.text


@pytest.mark.asyncio
async def test_max_tokens_never_exceed_ceiling(make_gateway, completion_server):
    server = completion_server({"decision": "for"})
    gateway = make_gateway(server, json_mode=False)

    await gateway.complete(MESSAGES, max_tokens=5000, temperature=0.2)

    body = server.requests[0]
    assert body["max_tokens"] == 1500
    assert body["temperature"] == 0.2
    assert "response_format" not in body


@pytest.mark.asyncio
async def test_fake_async_client(monkeypatch):
    """The gateway opens a client per request; a patched AsyncClient is honoured."""
    captured = {}

    class FakeResponse:
        status_code = 200
        is_success = True

        def json(self):
            return {"choices": [{"message": {"content": '{"decision": "abstain"}'}}]}

    class FakeClient:
        def __init__(self, *args, **kwargs):
            captured["timeout"] = kwargs.get("timeout")

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def post(self, url, headers=None, json=None):
            captured["url"] = url
            captured["auth"] = headers["Authorization"]
            return FakeResponse()

    import govairn.infrastructure.llm.completion_gateway as gateway_module
    monkeypatch.setattr(gateway_module.httpx, "AsyncClient", FakeClient)

    gateway = CompletionGateway(api_key="sk-live-abcdefghijklmnop", base_url="https://llm.local/v1/", timeout_seconds=5.0)
    outcome = await gateway.complete(MESSAGES)

    assert outcome.text == '{"decision": "abstain"}'
    assert captured == {
        "timeout": 5.0,
        "url": "https://llm.local/v1/chat/completions",
        "auth": "Bearer sk-live-abcdefghijklmnop",
    }


def test_from_settings():
    settings = Settings(
        OPENAI_API_KEY="sk-settings",
        LLM_MODEL="gpt-4o-mini",
        LLM_RETRY_ATTEMPTS=5,
        LLM_RETRY_BACKOFF_SECONDS=0.5,
        LLM_MAX_TOKENS=4000,
        COMPLETION_CACHE_TTL_SECONDS=60,
    )
    gateway = CompletionGateway.from_settings(settings)

    assert gateway.api_key == "sk-settings"
    assert gateway.retry_policy.max_attempts == 5
    assert gateway.retry_policy.delay_for(2) == 1.0
    assert gateway.max_tokens == 1500
    assert gateway.cache.ttl_seconds == 60
    assert gateway.rate_window.limit == 10
