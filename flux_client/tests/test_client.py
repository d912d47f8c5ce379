"""AsyncClient wiring: headers, retries, streaming and settings."""
from __future__ import annotations

import json

import httpx
import pytest

from flux_client import AsyncClient, ClientSettings, RequestOptions
from flux_client.base.errors import ApiError, ErrorCode
from flux_client.config.defaults import API_VERSION

SSE_BODY = (
    b'event: message_start\ndata: {"type":"message_start","message":{"id":"msg_s","model":"m","usage":{"input_tokens":3}}}\n\n'
    b'event: content_block_start\ndata: {"index":0,"content_block":{"type":"text","text":""}}\n\n'
    b'event: content_block_delta\ndata: {"index":0,"delta":{"type":"text_delta","text":"Hello"}}\n\n'
    b'event: content_block_delta\ndata: {"index":0,"delta":{"type":"text_delta","text":" there"}}\n\n'
    b'event: content_block_stop\ndata: {"index":0}\n\n'
    b'event: message_delta\ndata: {"delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":2}}\n\n'
    b'event: message_stop\ndata: {"type":"message_stop"}\n\n'
)


class _Server:
    """Scripted MockTransport handler recording every request."""

    def __init__(self, responses) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _client(server: _Server, fake_clock=None, **settings) -> AsyncClient:
    settings.setdefault("api_key", "sk-live-123")
    settings.setdefault("base_url", "https://api.example.test")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    return AsyncClient(
        ClientSettings(**settings),
        http_client=http_client,
        sleep=fake_clock.sleep if fake_clock is not None else None,
    )


def test_build_headers_defaults_betas_and_overrides():
    client = _client(_Server([]), beta_features=("files-api-2025-04-14",))
    headers = client.build_headers(
        RequestOptions(headers={"User-Agent": "custom/1"}, beta_features=("pdfs-2024-09-25",))
    )
    assert headers["Authorization"] == "Bearer sk-live-123"  # nosec B101
    assert headers["anthropic-version"] == API_VERSION  # nosec B101
    assert headers["Content-Type"] == "application/json"  # nosec B101
    assert headers["anthropic-beta"] == "files-api-2025-04-14,pdfs-2024-09-25"  # nosec B101
    assert headers["User-Agent"] == "custom/1"  # nosec B101


def test_admin_requests_need_admin_key():
    client = _client(_Server([]))
    with pytest.raises(ApiError) as ei:
        client.build_headers(RequestOptions(admin=True))
    assert ei.value.code is ErrorCode.AUTH  # nosec B101

    admin = _client(_Server([]), admin_key="sk-admin-1")
    assert admin.build_headers(RequestOptions(admin=True))["Authorization"] == "Bearer sk-admin-1"  # nosec B101


def test_build_url_prefixes_api_version_path():
    client = _client(_Server([]), base_url="https://api.example.test/")
    assert client.build_url("messages") == "https://api.example.test/v1/messages"  # nosec B101
    assert client.build_url("/models") == "https://api.example.test/v1/models"  # nosec B101


def test_invalid_settings_are_rejected():
    with pytest.raises(ApiError) as ei:
        AsyncClient(ClientSettings(api_key=""))
    assert ei.value.code is ErrorCode.CLIENT_ERROR  # nosec B101


@pytest.mark.asyncio
async def test_request_retries_server_errors(fake_clock):
    server = _Server([httpx.Response(503, text="unavailable"), httpx.Response(200, json={"id": "msg_1"})])
    async with _client(server, fake_clock) as client:
        result = await client.request("GET", "/models/m", endpoint="models")
    assert result.response.json() == {"id": "msg_1"}  # nosec B101
    assert result.attempt_count == 2  # nosec B101
    assert len(fake_clock.sleeps) == 1  # nosec B101
    assert len(server.requests) == 2  # nosec B101
    assert client.limiters.get("models").stats().total_requests == 2  # nosec B101


@pytest.mark.asyncio
async def test_no_retry_option_makes_one_attempt(fake_clock):
    server = _Server([httpx.Response(503, text="unavailable")])
    client = _client(server, fake_clock)
    with pytest.raises(ApiError) as ei:
        await client.request("GET", "/models", options=RequestOptions(no_retry=True))
    assert ei.value.code is ErrorCode.SERVER_ERROR  # nosec B101
    assert ei.value.attempt_count == 1  # nosec B101
    assert fake_clock.sleeps == []  # nosec B101


@pytest.mark.asyncio
async def test_create_message_posts_json_with_default_model(fake_clock):
    server = _Server([httpx.Response(200, json={"id": "msg_2", "content": []})])
    client = _client(server, fake_clock, default_model="model-x")
    body = await client.create_message({"max_tokens": 16, "messages": [], "stream": True})
    assert body["id"] == "msg_2"  # nosec B101
    sent = json.loads(server.requests[0].content)
    assert sent == {"model": "model-x", "max_tokens": 16, "messages": []}  # nosec B101
    assert server.requests[0].url.path == "/v1/messages"  # nosec B101


@pytest.mark.asyncio
async def test_stream_message_yields_typed_events(fake_clock):
    server = _Server([httpx.Response(200, content=SSE_BODY, headers={"content-type": "text/event-stream"})])
    client = _client(server, fake_clock)
    stream = await client.stream_message({"max_tokens": 8, "messages": []})
    async with stream:
        text = await stream.collect_text()
    assert text == "Hello there"  # nosec B101
    request = server.requests[0]
    assert json.loads(request.content)["stream"] is True  # nosec B101
    assert request.headers["accept"] == "text/event-stream"  # nosec B101


@pytest.mark.asyncio
async def test_stream_establishment_is_retried(fake_clock):
    server = _Server(
        [
            httpx.Response(529, json={"error": {"type": "overloaded_error", "message": "busy"}}),
            httpx.Response(200, content=SSE_BODY),
        ]
    )
    message = await _client(server, fake_clock).collect_message({"messages": []})
    assert message.id == "msg_s"  # nosec B101
    assert message.text == "Hello there"  # nosec B101
    assert message.usage.input_tokens == 3 and message.usage.output_tokens == 2  # nosec B101
    assert len(server.requests) == 2  # nosec B101


@pytest.mark.asyncio
async def test_stream_auth_failure_is_not_retried(fake_clock):
    server = _Server([httpx.Response(401, json={"error": {"type": "authentication_error", "message": "no"}})])
    with pytest.raises(ApiError) as ei:
        await _client(server, fake_clock).stream_message({"messages": []})
    assert ei.value.code is ErrorCode.AUTH  # nosec B101
    assert len(server.requests) == 1  # nosec B101


def test_from_env_reads_anthropic_variables(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env-1")
    monkeypatch.setenv("ANTHROPIC_MAX_RETRIES", "0")
    client = AsyncClient.from_env(enable_rate_limiting=False)
    assert client.settings.api_key == "sk-env-1"  # nosec B101
    assert client.settings.max_attempts == 1  # nosec B101
    assert client.limiters is None  # nosec B101


def test_feature_flags_map_to_beta_headers():
    client = _client(_Server([]), beta_features=("custom-beta",))
    options = RequestOptions(enable_prompt_caching=True, enable_files_api=True, beta_features=("files-api-2025-04-14",))
    headers = client.build_headers(options)
    assert headers["anthropic-beta"] == "custom-beta,files-api-2025-04-14,prompt-caching-2024-07-31"  # nosec B101
    assert RequestOptions(enable_pdf_support=True, enable_1m_context=True).feature_betas() == (  # nosec B101
        "pdfs-2024-09-25",
        "context-1m-2025-08-07",
    )
    assert "anthropic-beta" not in _client(_Server([])).build_headers()  # nosec B101


@pytest.mark.asyncio
async def test_stream_read_timeout_follows_idle_timeout(fake_clock):
    server = _Server([httpx.Response(200, content=SSE_BODY, headers={"content-type": "text/event-stream"})])
    client = _client(server, fake_clock, timeout=15.0)
    stream = await client.stream_message({"max_tokens": 8, "messages": []}, idle_timeout=90.0)
    async with stream:
        await stream.collect_text()
    timeouts = server.requests[0].extensions["timeout"]
    assert timeouts["read"] == 90.0  # nosec B101
    assert timeouts["write"] == 15.0  # nosec B101
