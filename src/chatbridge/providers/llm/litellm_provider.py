"""LiteLLM-backed completion handle.

LiteLLM gives us a single ``acompletion`` call that fans out to 100+
providers (Azure OpenAI, OpenAI, Anthropic, Ollama …).  This module
converts our ``Message`` dataclasses into the OpenAI-style dicts that
LiteLLM expects, and maps its errors onto ``BackendError``.
"""

from __future__ import annotations

import litellm
from loguru import logger

from chatbridge.errors import BackendError
from chatbridge.providers.llm.base import BaseLLMProvider, CompletionResult, Message


class LiteLLMProvider(BaseLLMProvider):
    """Concrete provider that delegates to ``litellm.acompletion``."""

    name: str = "litellm"

    def __init__(
        self,
        endpoint: str,
        model_deployment: str,
        api_key: str | None = None,
        api_version: str | None = None,
        provider_prefix: str = "azure",
    ) -> None:
        """Bind the handle to one deployment.

        LiteLLM reads keys from env vars automatically
        (``AZURE_API_KEY``, ``OPENAI_API_KEY``, …) when ``api_key`` is None.
        ``provider_prefix`` selects the LiteLLM route, so the deployment is
        addressed as ``"<prefix>/<model_deployment>"``.
        """
        super().__init__(endpoint, model_deployment)
        self._api_key = api_key
        self._api_version = api_version
        self._model = f"{provider_prefix}/{model_deployment}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def complete(
        self,
        messages: list[Message],
        max_output_tokens: int | None = None,
    ) -> CompletionResult:
        kwargs: dict = {
            "model": self._model,
            "messages": [m.to_dict() for m in messages],
            "api_base": self.endpoint,
        }
        if max_output_tokens is not None:
            kwargs["max_tokens"] = max_output_tokens
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_version:
            kwargs["api_version"] = self._api_version

        logger.debug(
            "LiteLLM request | model={} msgs={} max_tokens={}",
            self._model,
            len(messages),
            max_output_tokens,
        )

        try:
            response = await litellm.acompletion(**kwargs)
        except litellm.exceptions.AuthenticationError as exc:
            logger.error("LiteLLM auth error for model={}: {}", self._model, exc)
            raise BackendError(
                f"Authentication failed for {self._model}: {exc}",
                status_code=getattr(exc, "status_code", None),
            ) from exc
        except litellm.exceptions.RateLimitError as exc:
            logger.warning("LiteLLM rate-limited for model={}: {}", self._model, exc)
            raise BackendError(
                f"Rate limited for {self._model}: {exc}",
                status_code=getattr(exc, "status_code", None),
            ) from exc
        except Exception as exc:
            logger.error("LiteLLM call failed for model={}: {}", self._model, exc)
            raise BackendError(
                f"Completion failed for {self._model}: {exc}",
                status_code=getattr(exc, "status_code", None),
            ) from exc

        return self._parse_response(response)

    # ------------------------------------------------------------------
    # Internal: read the LiteLLM ModelResponse
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_response(response) -> CompletionResult:
        """Convert a LiteLLM ``ModelResponse`` → ``CompletionResult``."""
        if not getattr(response, "choices", None):
            raise BackendError("LLM returned no choices")

        assistant_msg = response.choices[0].message
        content = getattr(assistant_msg, "content", None) or None

        raw_usage = getattr(response, "usage", None)
        prompt_tokens = getattr(raw_usage, "prompt_tokens", None)
        completion_tokens = getattr(raw_usage, "completion_tokens", None)
        total_tokens = getattr(raw_usage, "total_tokens", None)

        logger.debug(
            "LiteLLM response | content_len={} usage={}/{}/{}",
            len(content) if content else 0,
            prompt_tokens,
            completion_tokens,
            total_tokens,
        )

        return CompletionResult(
            text=content,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            raw_response=response,
        )
