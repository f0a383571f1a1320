"""Unit tests for the backend handles and the default client factory.

HTTP traffic goes through ``httpx.MockTransport``; LiteLLM calls are patched.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from chatbridge.errors import BackendError, ConfigurationError
from chatbridge.providers.llm import (
    LiteLLMProvider,
    LlmApiProvider,
    create_client,
    validate_endpoint,
)
from chatbridge.providers.llm.base import Message

ENDPOINT = "https://llm.example.com/v1"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _openai_body(content="hello", usage=True):
    body = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    if usage:
        body["usage"] = {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}
    return body


def _llmapi(handler) -> LlmApiProvider:
    return LlmApiProvider(
        ENDPOINT,
        "gpt-4o",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreateClient:
    @pytest.mark.parametrize("endpoint", ["", "not a url", "ftp://x.example.com", "/relative"])
    def test_rejects_malformed_endpoint(self, endpoint):
        with pytest.raises(ConfigurationError):
            create_client(endpoint, "gpt-4o", None)

    def test_accepts_https_endpoint(self):
        assert validate_endpoint(ENDPOINT) == ENDPOINT

    def test_rejects_empty_model(self):
        with pytest.raises(ConfigurationError):
            create_client(ENDPOINT, "", None)

    def test_rejects_unknown_adapter(self):
        with pytest.raises(ConfigurationError, match="Unknown backend adapter"):
            create_client(ENDPOINT, "gpt-4o", None, adapter="carrier-pigeon")

    def test_builds_litellm_handle(self):
        client = create_client(ENDPOINT, "gpt-4o", "key", api_version="2024-10-21")
        assert isinstance(client, LiteLLMProvider)
        assert client.endpoint == ENDPOINT
        assert client.model_deployment == "gpt-4o"

    @pytest.mark.asyncio
    async def test_builds_rest_handle(self):
        client = create_client(ENDPOINT, "gpt-4o", "key", adapter="openai")
        try:
            assert isinstance(client, LlmApiProvider)
        finally:
            await client.aclose()


# ---------------------------------------------------------------------------
# OpenAI-compatible REST handle
# ---------------------------------------------------------------------------


class TestLlmApiProvider:
    @pytest.mark.asyncio
    async def test_successful_completion(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_openai_body("hi there"))

        client = _llmapi(handler)
        try:
            result = await client.complete(
                [Message.system("P"), Message.user("hello")], max_output_tokens=1
            )
        finally:
            await client.aclose()

        assert result.text == "hi there"
        assert (result.prompt_tokens, result.completion_tokens, result.total_tokens) == (3, 2, 5)
        assert seen["url"] == f"{ENDPOINT}/chat/completions"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {
            "model": "gpt-4o",
            "messages": [
                {"role": "system", "content": "P"},
                {"role": "user", "content": "hello"},
            ],
            "max_tokens": 1,
        }

    @pytest.mark.asyncio
    async def test_omits_max_tokens_by_default(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_openai_body())

        client = _llmapi(handler)
        try:
            await client.complete([Message.user("hello")])
        finally:
            await client.aclose()

        assert "max_tokens" not in seen["body"]

    @pytest.mark.asyncio
    async def test_missing_usage_and_content(self):
        client = _llmapi(lambda request: httpx.Response(200, json=_openai_body(None, usage=False)))
        try:
            result = await client.complete([Message.user("hello")])
        finally:
            await client.aclose()

        assert result.text is None
        assert result.prompt_tokens is None
        assert result.total_tokens is None

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = _llmapi(
            lambda request: httpx.Response(429, json={"error": {"message": "slow down"}})
        )
        try:
            with pytest.raises(BackendError) as exc_info:
                await client.complete([Message.user("hello")])
        finally:
            await client.aclose()

        assert exc_info.value.status_code == 429
        assert "slow down" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_no_choices(self):
        client = _llmapi(lambda request: httpx.Response(200, json={"choices": []}))
        try:
            with pytest.raises(BackendError, match="no choices"):
                await client.complete([Message.user("hello")])
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _llmapi(handler)
        try:
            with pytest.raises(BackendError) as exc_info:
                await client.complete([Message.user("hello")])
        finally:
            await client.aclose()

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


# ---------------------------------------------------------------------------
# LiteLLM handle
# ---------------------------------------------------------------------------


def _litellm_response(content="hi there"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5),
    )


class TestLiteLLMProvider:
    @pytest.mark.asyncio
    async def test_completion_call(self):
        client = LiteLLMProvider(ENDPOINT, "gpt-4o", api_key="key", api_version="2024-10-21")

        with patch(
            "chatbridge.providers.llm.litellm_provider.litellm.acompletion",
            new=AsyncMock(return_value=_litellm_response()),
        ) as mock_acompletion:
            result = await client.complete([Message.user("hello")], max_output_tokens=1)

        mock_acompletion.assert_awaited_once_with(
            model="azure/gpt-4o",
            messages=[{"role": "user", "content": "hello"}],
            api_base=ENDPOINT,
            max_tokens=1,
            api_key="key",
            api_version="2024-10-21",
        )
        assert result.text == "hi there"
        assert result.total_tokens == 5

    @pytest.mark.asyncio
    async def test_failure_wrapped_in_backend_error(self):
        client = LiteLLMProvider(ENDPOINT, "gpt-4o")

        with patch(
            "chatbridge.providers.llm.litellm_provider.litellm.acompletion",
            new=AsyncMock(side_effect=RuntimeError("network down")),
        ):
            with pytest.raises(BackendError) as exc_info:
                await client.complete([Message.user("hello")])

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_parse_empty_choices(self):
        with pytest.raises(BackendError):
            LiteLLMProvider._parse_response(SimpleNamespace(choices=[], usage=None))

    def test_parse_missing_usage(self):
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=""))], usage=None
        )
        result = LiteLLMProvider._parse_response(response)
        assert result.text is None
        assert result.prompt_tokens is None
