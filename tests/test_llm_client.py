"""
LLM Client Tests
================
Transport-level tests with httpx.MockTransport and a fake Anthropic client.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import anthropic
import httpx
import pytest

from quickinsight.config import AppConfig
from quickinsight.errors import ModelClientError
from quickinsight.utils.llm_client import LLMClient, create_llm_client

MESSAGES = [
    {"role": "system", "content": "Classify the question."},
    {"role": "user", "content": "top 10 products"},
]


def _client(handler, **kwargs):
    kwargs.setdefault("endpoint", "http://llm.local/v1/")
    kwargs.setdefault("model", "test-model")
    return LLMClient(provider="openai", transport=httpx.MockTransport(handler), **kwargs)


def _completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


class TestOpenAICompatible:
    """POST {endpoint}/chat/completions."""

    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return _completion('{"queryType": "topn"}')

        text = await _client(handler, api_key="secret").chat(MESSAGES, temperature=0.1, max_tokens=64)

        assert text == '{"queryType": "topn"}'
        assert seen["url"] == "http://llm.local/v1/chat/completions"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["messages"] == MESSAGES
        assert seen["body"]["temperature"] == 0.1
        assert seen["body"]["max_tokens"] == 64

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return _completion("ok")

        await _client(handler).chat(MESSAGES)
        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = _client(lambda request: httpx.Response(500, text="upstream down"))

        with pytest.raises(ModelClientError, match="500"):
            await client.chat(MESSAGES)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(200, text="not json"),
    ])
    async def test_malformed_body(self, response):
        with pytest.raises(ModelClientError, match="Malformed"):
            await _client(lambda request: response).chat(MESSAGES)

    @pytest.mark.asyncio
    async def test_empty_content(self):
        with pytest.raises(ModelClientError, match="Empty"):
            await _client(lambda request: _completion("")).chat(MESSAGES)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ModelClientError, match="connection refused"):
            await _client(handler).chat(MESSAGES)

    @pytest.mark.asyncio
    async def test_missing_endpoint(self):
        with pytest.raises(ModelClientError, match="LLM_ENDPOINT"):
            await _client(lambda request: _completion("ok"), endpoint="").chat(MESSAGES)


class TestClaude:
    """Anthropic provider through a fake SDK client."""

    @pytest.fixture
    def fake_anthropic(self, monkeypatch):
        create = AsyncMock(return_value=SimpleNamespace(content=[
            SimpleNamespace(type="text", text="kpi_single"),
        ]))
        monkeypatch.setattr(
            anthropic, "AsyncAnthropic",
            lambda **kwargs: SimpleNamespace(messages=SimpleNamespace(create=create)),
        )
        return create

    @pytest.mark.asyncio
    async def test_success(self, fake_anthropic):
        client = LLMClient(provider="anthropic", api_key="key", model="claude-test")

        assert await client.chat(MESSAGES) == "kpi_single"

        kwargs = fake_anthropic.call_args.kwargs
        assert kwargs["system"] == "Classify the question."
        assert kwargs["messages"] == [{"role": "user", "content": "top 10 products"}]
        assert kwargs["model"] == "claude-test"

    @pytest.mark.asyncio
    async def test_missing_key(self, fake_anthropic):
        with pytest.raises(ModelClientError, match="not configured"):
            await LLMClient(provider="anthropic").chat(MESSAGES)
        fake_anthropic.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_response(self, fake_anthropic):
        fake_anthropic.return_value = SimpleNamespace(content=[])

        with pytest.raises(ModelClientError, match="Empty"):
            await LLMClient(provider="anthropic", api_key="key").chat(MESSAGES)


class TestCreateClient:
    def test_not_configured(self):
        assert create_llm_client() is None

    def test_openai_from_config(self, monkeypatch):
        monkeypatch.setattr(AppConfig, "LLM_ENDPOINT", "http://llm.local/v1")
        monkeypatch.setattr(AppConfig, "LLM_MODEL", "local-model")

        client = create_llm_client()

        assert client.provider == "openai"
        assert client.endpoint == "http://llm.local/v1"
        assert client.model == "local-model"

    def test_anthropic_from_config(self, monkeypatch):
        monkeypatch.setattr(AppConfig, "LLM_PROVIDER", "anthropic")
        monkeypatch.setattr(AppConfig, "CLAUDE_API_KEY", "key")

        client = create_llm_client()

        assert client.provider == "anthropic"
        assert client.model == AppConfig.CLAUDE_MODEL
