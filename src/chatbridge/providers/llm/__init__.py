from typing import Any
from urllib.parse import urlparse

from chatbridge.errors import ConfigurationError

from .base import (
    BaseLLMProvider,
    CompletionResult,
    Message,
    Role,
)
from .litellm_provider import LiteLLMProvider
from .llmapi_provider import LlmApiProvider

__all__ = [
    "BaseLLMProvider",
    "CompletionResult",
    "LiteLLMProvider",
    "LlmApiProvider",
    "Message",
    "Role",
    "create_client",
    "validate_endpoint",
]


def validate_endpoint(endpoint: str) -> str:
    """Reject anything that is not an absolute http(s) URL."""
    parsed = urlparse(endpoint or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Invalid backend endpoint: {endpoint!r}")
    return endpoint


def create_client(
    endpoint: str,
    model_deployment: str,
    credential: Any,
    adapter: str = "litellm",
    **options: Any,
) -> BaseLLMProvider:
    """Default client factory used by ``ClientCache``.

    Args:
        endpoint:         Backend base URL.
        model_deployment: Deployment / model name.
        credential:       API key (or None to let the adapter use its own
                          ambient credentials).
        adapter:          ``"litellm"`` or ``"openai"`` (raw REST).
        **options:        Adapter-specific keyword arguments.
    """
    validate_endpoint(endpoint)
    if not model_deployment:
        raise ConfigurationError("Model deployment must not be empty")

    if adapter == "litellm":
        return LiteLLMProvider(endpoint, model_deployment, api_key=credential, **options)
    if adapter == "openai":
        return LlmApiProvider(endpoint, model_deployment, api_key=credential, **options)
    raise ConfigurationError(f"Unknown backend adapter: {adapter!r}")
