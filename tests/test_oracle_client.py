import asyncio

import aiohttp
import pytest

from config import OracleConfig
from oracle_client import (
    OracleError,
    build_request,
    describe_error,
    extract_content,
    is_auth_error,
    request_completion,
)


def _oracle(provider="openai"):
    return OracleConfig(
        name="claude" if provider == "anthropic" else "openai",
        provider=provider,
        endpoint="https://oracle.invalid/v1",
        api_key="secret",
        model="test-model",
        timeout=2.0,
    )


class _FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._body = body

    async def json(self, content_type=None):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    async def text(self):
        return str(self._body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, *, json, headers, timeout):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def test_openai_request_shape():
    payload, headers = build_request(_oracle(), system="sys", prompt="hello")

    assert payload["response_format"] == {"type": "json_object"}
    assert payload["messages"][0] == {"role": "system", "content": "sys"}
    assert headers["Authorization"] == "Bearer secret"

    summary_payload, _ = build_request(_oracle(), system="sys", prompt="hello", summary=True)
    assert "response_format" not in summary_payload


def test_anthropic_request_shape():
    payload, headers = build_request(_oracle("anthropic"), system="sys", prompt="hello")

    assert payload["system"] == "sys"
    assert payload["messages"] == [{"role": "user", "content": "hello"}]
    assert payload["max_tokens"] == 1500
    assert headers["x-api-key"] == "secret"
    assert headers["anthropic-version"] == "2023-06-01"


def test_extract_content_per_provider():
    openai_body = {"choices": [{"message": {"content": "{\"a\": 1}"}}]}
    anthropic_body = {"content": [{"type": "text", "text": "hi"}]}

    assert extract_content("openai", openai_body) == "{\"a\": 1}"
    assert extract_content("anthropic", anthropic_body) == "hi"
    assert extract_content("openai", {"choices": []}) == ""
    assert extract_content("anthropic", "garbage") == ""


def test_auth_error_detection():
    assert is_auth_error(401, None)
    assert is_auth_error(400, {"error": {"message": "Invalid API Key", "code": "invalid_api_key"}})
    assert not is_auth_error(500, {"error": {"message": "overloaded"}})
    assert describe_error({"error": {"message": "slow down", "code": "rate_limited"}}) == "rate_limited: slow down"


def test_request_completion_returns_content():
    session = _FakeSession(_FakeResponse(200, {"choices": [{"message": {"content": "ok"}}]}))

    text = asyncio.run(request_completion(session, _oracle(), system="s", prompt="p"))

    assert text == "ok"
    assert session.calls[0]["url"] == "https://oracle.invalid/v1"
    assert session.calls[0]["timeout"].total == 2.0


def test_request_completion_http_errors():
    auth = _FakeSession(_FakeResponse(401, {"error": {"message": "bad key"}}))
    server = _FakeSession(_FakeResponse(503, {"error": {"message": "overloaded", "type": "overloaded_error"}}))

    with pytest.raises(OracleError, match="authentication failed"):
        asyncio.run(request_completion(auth, _oracle(), system="s", prompt="p"))
    with pytest.raises(OracleError, match="HTTP 503: overloaded_error: overloaded"):
        asyncio.run(request_completion(server, _oracle("anthropic"), system="s", prompt="p"))


def test_request_completion_timeout_and_transport_errors():
    slow = _FakeSession(error=asyncio.TimeoutError())
    broken = _FakeSession(error=aiohttp.ClientConnectionError("reset"))

    with pytest.raises(OracleError, match="timed out"):
        asyncio.run(request_completion(slow, _oracle(), system="s", prompt="p"))
    with pytest.raises(OracleError, match="transport error"):
        asyncio.run(request_completion(broken, _oracle(), system="s", prompt="p"))


def test_request_completion_rejects_empty_content():
    session = _FakeSession(_FakeResponse(200, {"choices": [{"message": {"content": ""}}]}))

    with pytest.raises(OracleError, match="empty content"):
        asyncio.run(request_completion(session, _oracle(), system="s", prompt="p"))
