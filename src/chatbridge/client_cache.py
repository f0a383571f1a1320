"""Reusable backend handles, one per connection config.

Handles live for the life of the process: nothing is evicted or refreshed
here, and a handle whose calls keep failing stays cached.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from loguru import logger

from chatbridge.config import ConnectionConfig
from chatbridge.providers.llm.base import BaseLLMProvider

# (endpoint, model_deployment, credential) -> handle
ClientFactory = Callable[[str, str, Any], BaseLLMProvider]


class ClientCache:
    """Maps a ``ConnectionConfig`` to a lazily created backend handle."""

    def __init__(self, factory: ClientFactory, credential: Any = None) -> None:
        self._factory = factory
        self._credential = credential
        self._clients: dict[tuple[str, str], BaseLLMProvider] = {}
        self._lock = threading.Lock()

    def get_or_create(self, config: ConnectionConfig) -> BaseLLMProvider:
        """Return the handle for ``config``, building it on first request.

        The factory runs under the lock so a burst of first-time requests
        for the same key builds exactly one handle. Factories must not do
        network I/O. If the factory raises, nothing is cached.
        """
        key = config.cache_key
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                logger.debug(
                    "Creating backend client for {} ({})",
                    config.endpoint,
                    config.model_deployment,
                )
                client = self._factory(
                    config.endpoint, config.model_deployment, self._credential
                )
                self._clients[key] = client
            return client

    async def aclose(self) -> None:
        """Close every cached handle and empty the cache (shutdown only)."""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()

        first_error: Exception | None = None
        for client in clients:
            try:
                await client.aclose()
            except Exception as exc:
                logger.error("Failed to close backend client {}: {}", client, exc)
                first_error = first_error or exc

        logger.debug("Closed {} backend client(s)", len(clients))
        if first_error is not None:
            raise first_error

    def __contains__(self, config: ConnectionConfig) -> bool:
        with self._lock:
            return config.cache_key in self._clients

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
