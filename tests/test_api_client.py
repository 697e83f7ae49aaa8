"""
Completion Client Tests
-----------------------
HTTP behaviour is exercised with httpx.MockTransport; no network.
"""

import json

import httpx
import pytest

from api.client import APIConfig, CompletionClient, LLMClientError


def _client(monkeypatch, handler, key="sk-test"):
    if key is None:
        monkeypatch.delenv("TEST_LLM_KEY", raising=False)
    else:
        monkeypatch.setenv("TEST_LLM_KEY", key)
    config = APIConfig(base_url="https://llm.example/v1", model="m", api_key_env="TEST_LLM_KEY")
    return CompletionClient(config, transport=httpx.MockTransport(handler))


class TestComplete:

    def test_returns_message_content(self, monkeypatch):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"choices": [{"message": {"content": '{"steps": []}'}}]})

        client = _client(monkeypatch, handler)

        assert client.complete("plan this") == '{"steps": []}'
        [request] = requests
        assert str(request.url) == "https://llm.example/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "m"
        assert body["messages"] == [{"role": "user", "content": "plan this"}]

    def test_missing_key(self, monkeypatch):
        client = _client(monkeypatch, lambda r: httpx.Response(200), key=None)

        assert not client.is_configured
        with pytest.raises(LLMClientError, match="API key not configured"):
            client.complete("x")

    @pytest.mark.parametrize("status,message", [
        (401, "Authentication failed"),
        (429, "Rate limit exceeded"),
        (500, "Unexpected status: 500"),
    ])
    def test_http_errors(self, monkeypatch, status, message):
        client = _client(monkeypatch, lambda r: httpx.Response(status))

        with pytest.raises(LLMClientError, match=message) as exc_info:
            client.complete("x")
        assert exc_info.value.status_code == status

    def test_malformed_body(self, monkeypatch):
        client = _client(monkeypatch, lambda r: httpx.Response(200, json={"choices": []}))

        with pytest.raises(LLMClientError, match="Malformed"):
            client.complete("x")

    def test_network_error(self, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(monkeypatch, handler)

        with pytest.raises(LLMClientError, match="Network error"):
            client.complete("x")
