"""Direct HTTP-based completion handle (OpenAI-compatible API).

Talks to any OpenAI-compatible chat/completions endpoint (Groq, Together,
OpenRouter, vLLM, local models, etc.) via raw HTTP.  Unlike a one-shot
request, the handle owns a long-lived ``httpx.AsyncClient`` so connections
are pooled across every request that shares the same connection config.
"""

from __future__ import annotations

import json

import httpx
from loguru import logger

from chatbridge.constants import HTTP_TIMEOUT
from chatbridge.errors import BackendError
from chatbridge.providers.llm.base import BaseLLMProvider, CompletionResult, Message


class LlmApiProvider(BaseLLMProvider):
    """Completion handle that calls an OpenAI-compatible REST API directly."""

    name: str = "llmapi"

    def __init__(
        self,
        endpoint: str,
        model_deployment: str,
        api_key: str | None = None,
        default_headers: dict[str, str] | None = None,
        timeout: float = HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(endpoint, model_deployment)
        self._url = f"{endpoint.rstrip('/')}/chat/completions"

        headers = dict(default_headers or {})
        headers["Content-Type"] = "application/json"
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def complete(
        self,
        messages: list[Message],
        max_output_tokens: int | None = None,
    ) -> CompletionResult:
        params: dict = {
            "model": self.model_deployment,
            "messages": [m.to_dict() for m in messages],
        }
        if max_output_tokens is not None:
            params["max_tokens"] = max_output_tokens

        logger.debug(
            "LlmApi request | url={} model={} msgs={}",
            self._url,
            self.model_deployment,
            len(messages),
        )

        try:
            response = await self._client.post(self._url, json=params)
        except httpx.HTTPError as exc:
            logger.error("LLM API request failed: {}", exc)
            raise BackendError(f"LLM API request to {self._url} failed: {exc}") from exc

        # --- Surface provider errors clearly ---
        if response.status_code >= 400:
            try:
                error_body = response.json()
            except ValueError:
                error_body = response.text

            error_msg = (
                f"LLM API {response.status_code} {response.reason_phrase} "
                f"for model='{self.model_deployment}' at {self._url}: {error_body}"
            )
            logger.error(error_msg)
            raise BackendError(error_msg, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("LLM API returned invalid JSON: {}", exc)
            raise BackendError(f"LLM API returned invalid JSON: {exc}") from exc

        return self._parse_response(data)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal: parse the OpenAI-compatible JSON response
    # ------------------------------------------------------------------
    @staticmethod
    def _parse_response(data: dict) -> CompletionResult:
        """Convert a raw OpenAI-style JSON dict → ``CompletionResult``."""

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise BackendError(
                f"LLM API returned no choices: {json.dumps(data)[:500]}"
            )

        message = choices[0].get("message") or {}
        content = message.get("content") or None

        # --- Usage ---
        raw_usage = data.get("usage")
        if not isinstance(raw_usage, dict):
            raw_usage = {}

        result = CompletionResult(
            text=content,
            prompt_tokens=raw_usage.get("prompt_tokens"),
            completion_tokens=raw_usage.get("completion_tokens"),
            total_tokens=raw_usage.get("total_tokens"),
            raw_response=data,
        )

        logger.debug(
            "LlmApi response | content_len={} usage={}/{}/{}",
            len(content) if content else 0,
            result.prompt_tokens,
            result.completion_tokens,
            result.total_tokens,
        )

        return result
