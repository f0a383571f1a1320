"""Chat service — the request pipeline between callers and the backend.

Per ``send_message`` call:
    1. Resolve the effective connection config (explicit or default)
    2. Fetch the backend handle from the ClientCache
    3. Open the session handle and record the user message
    4. Build the truncated outbound payload
    5. Call the backend (outside every lock) and time it
    6. Record the assistant reply and return the response with metrics

History is append-only: a failed or cancelled call leaves the user
message in place with no assistant reply. A conversation cleared while
its call is in flight drops the reply; the response is still returned.
"""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass

from loguru import logger

from chatbridge.client_cache import ClientCache, ClientFactory
from chatbridge.config import AppConfig, ChatSettings, ConnectionConfig
from chatbridge.constants import (
    ENDPOINT_NOT_CONFIGURED,
    NO_RESPONSE_PLACEHOLDER,
    PING_MAX_OUTPUT_TOKENS,
    PING_PROBE_TEXT,
)
from chatbridge.errors import ConfigurationError
from chatbridge.providers.llm import create_client
from chatbridge.providers.llm.base import Message
from chatbridge.session.store import SessionStore


@dataclass(frozen=True)
class ChatResponse:
    """Reply plus usage and latency metrics for one completion."""

    content: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    response_time_ms: int
    model: str


@dataclass(frozen=True)
class ServiceInfo:
    """Diagnostic snapshot of the default backend configuration."""

    endpoint: str
    model_deployment: str
    is_configured: bool
    configuration_error: str | None


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ChatService:
    """Orchestrates ping and chat requests against a completion backend."""

    def __init__(
        self,
        settings: ChatSettings,
        client_cache: ClientCache,
        session_store: SessionStore | None = None,
        default_config: ConnectionConfig | None = None,
        configuration_error: str | None = None,
    ) -> None:
        self._settings = settings
        self._clients = client_cache
        self._sessions = session_store or SessionStore(
            settings.system_prompt, settings.max_conversation_messages
        )
        self._default_config = default_config
        self._configuration_error = configuration_error

        if default_config is None:
            self._configuration_error = (
                configuration_error or "No default connection config is set."
            )
            logger.error("Configuration error: {}", self._configuration_error)
            return

        try:
            self._clients.get_or_create(default_config)
        except ConfigurationError as exc:
            self._configuration_error = f"Failed to initialize AI client: {exc}"
            logger.error("Failed to initialize ChatService: {}", exc)
            return

        logger.info(
            "ChatService initialized successfully with endpoint: {}",
            default_config.endpoint,
        )

    @classmethod
    def from_config(
        cls, config: AppConfig, factory: ClientFactory | None = None
    ) -> "ChatService":
        """Build the service, its cache and its store from an ``AppConfig``."""
        backend = config.backend
        if factory is None:
            options = dict(backend.extra)
            if backend.adapter == "litellm":
                options.setdefault("api_version", backend.api_version)
            factory = functools.partial(create_client, adapter=backend.adapter, **options)

        return cls(
            settings=config.chat,
            client_cache=ClientCache(factory, credential=backend.api_key),
            default_config=config.default_connection,
            configuration_error=config.configuration_error,
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return self._default_config is not None and self._configuration_error is None

    @property
    def configuration_error(self) -> str | None:
        return self._configuration_error

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    def get_default_config(self) -> ConnectionConfig | None:
        return self._default_config

    def get_service_info(self) -> ServiceInfo:
        default = self._default_config
        return ServiceInfo(
            endpoint=default.endpoint if default else ENDPOINT_NOT_CONFIGURED,
            model_deployment=(
                default.model_deployment if default else self._settings.default_model
            ),
            is_configured=self.is_configured,
            configuration_error=self._configuration_error,
        )

    def resolve_config(self, config: ConnectionConfig | None = None) -> ConnectionConfig:
        """Return ``config`` if given, else the default.

        Raises:
            ConfigurationError: neither is usable.
        """
        if config is not None:
            return config
        if not self.is_configured:
            raise ConfigurationError(
                self._configuration_error or "Chat client is not configured."
            )
        return self._default_config

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def get_history(self, session_id: str) -> list[Message]:
        return self._sessions.get_history(session_id)

    def clear_conversation(self, session_id: str) -> None:
        self._sessions.clear(session_id)
        logger.info("Cleared conversation: {}", session_id)

    async def aclose(self) -> None:
        """Release every cached backend handle."""
        await self._clients.aclose()

    # ------------------------------------------------------------------
    # Backend calls
    # ------------------------------------------------------------------

    async def ping(self, config: ConnectionConfig | None = None) -> int:
        """Send a one-token probe and return the round trip in milliseconds."""
        try:
            effective = self.resolve_config(config)
            client = self._clients.get_or_create(effective)
        except ConfigurationError as exc:
            logger.error("Ping failed: {}", exc)
            raise

        start = time.perf_counter()
        try:
            await client.complete(
                [Message.user(PING_PROBE_TEXT)],
                max_output_tokens=PING_MAX_OUTPUT_TOKENS,
            )
        except asyncio.CancelledError:
            logger.warning("Ping cancelled after {}ms", _elapsed_ms(start))
            raise
        except Exception as exc:
            logger.error("Ping failed after {}ms: {}", _elapsed_ms(start), exc)
            raise

        latency = _elapsed_ms(start)
        logger.info("Ping successful. Latency: {}ms", latency)
        return latency

    async def send_message(
        self,
        session_id: str,
        text: str,
        config: ConnectionConfig | None = None,
    ) -> ChatResponse:
        """Append ``text`` to the session, ask the backend, record the reply."""
        try:
            effective = self.resolve_config(config)
            client = self._clients.get_or_create(effective)
        except ConfigurationError as exc:
            logger.error(
                "Cannot send message for conversation {}: {}", session_id, exc
            )
            raise

        conversation = self._sessions.open(session_id)
        conversation.append_user(text)
        payload = conversation.outbound_payload()

        start = time.perf_counter()
        try:
            result = await client.complete(payload)
        except asyncio.CancelledError:
            logger.warning(
                "Chat completion cancelled for conversation {} after {}ms",
                session_id,
                _elapsed_ms(start),
            )
            raise
        except Exception as exc:
            logger.error(
                "Error during chat completion for conversation {} after {}ms: {}",
                session_id,
                _elapsed_ms(start),
                exc,
            )
            raise
        elapsed = _elapsed_ms(start)

        content = result.text or NO_RESPONSE_PLACEHOLDER
        conversation.append_assistant(content)

        response = ChatResponse(
            content=content,
            prompt_tokens=result.prompt_tokens or 0,
            completion_tokens=result.completion_tokens or 0,
            total_tokens=result.total_tokens or 0,
            response_time_ms=elapsed,
            model=effective.model_deployment,
        )

        logger.info(
            "Chat completion successful. ConversationId: {}, Tokens: {}/{}/{}, "
            "Latency: {}ms",
            session_id,
            response.prompt_tokens,
            response.completion_tokens,
            response.total_tokens,
            elapsed,
        )
        return response
