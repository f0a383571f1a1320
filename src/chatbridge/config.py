"""Runtime configuration loader for chatbridge.

Loads an optional config.json once, resolves secret references from
environment variables, and exposes typed dataclasses via get_config().

Secret Resolution
-----------------
Values in config.json that look like ``UPPER_SNAKE_CASE`` strings
(e.g. ``"AZURE_AI_FOUNDRY_ENDPOINT"``) are treated as env-var references
and resolved from ``os.environ``. Without a config file the same
references are used as defaults, so a plain ``.env`` is enough.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from chatbridge.constants import (
    CONFIG_FILENAME,
    DEFAULT_ADAPTER,
    DEFAULT_API_VERSION,
    DEFAULT_MAX_CONVERSATION_MESSAGES,
    DEFAULT_MODEL_DEPLOYMENT,
    DEFAULT_SYSTEM_PROMPT,
    ENV_API_KEY,
    ENV_CONFIG_PATH,
    ENV_ENDPOINT,
    ENV_MODEL_DEPLOYMENT,
)
from chatbridge.errors import ConfigurationError

# Pattern to detect env-var-style values: UPPER_SNAKE_CASE with optional digits
_ENV_VAR_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]{2,}$")


# ──────────────────────────────────────────────────────────────────────
# Secret Resolution
# ──────────────────────────────────────────────────────────────────────


def resolve_secret(value: str) -> str | None:
    """Resolve a potential secret reference.

    If ``value`` looks like an env-var name (UPPER_SNAKE_CASE),
    resolve it from os.environ.

    Returns:
        The resolved secret string, or None if not found.
    """
    if not isinstance(value, str) or not value:
        return value

    if _ENV_VAR_PATTERN.match(value):
        resolved = os.environ.get(value)
        if resolved is None:
            logger.warning(
                "Secret reference '{}' not found in environment. "
                "Set it in .env or export it.",
                value,
            )
        return resolved

    # Literal value (not an env-var reference)
    return value


# ──────────────────────────────────────────────────────────────────────
# Config Dataclasses
# ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionConfig:
    """Identifies a backend target: endpoint plus model deployment."""

    endpoint: str
    model_deployment: str

    @property
    def cache_key(self) -> tuple[str, str]:
        """Composite key, distinct for every (endpoint, model) pair."""
        return (self.endpoint, self.model_deployment)


@dataclass(frozen=True)
class ChatSettings:
    """Conversation behaviour shared by every session."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_conversation_messages: int = DEFAULT_MAX_CONVERSATION_MESSAGES
    default_model: str = DEFAULT_MODEL_DEPLOYMENT


@dataclass(frozen=True)
class BackendConfig:
    """Default backend target plus the credential used to reach it."""

    endpoint: str | None = None           # Already resolved from env
    model_deployment: str = DEFAULT_MODEL_DEPLOYMENT
    api_key: str | None = None            # Already resolved from env
    adapter: str = DEFAULT_ADAPTER
    api_version: str = DEFAULT_API_VERSION
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Root config object holding all resolved configuration."""

    chat: ChatSettings
    backend: BackendConfig

    @property
    def default_connection(self) -> ConnectionConfig | None:
        """The process-wide default target, or None when no endpoint is set."""
        if not self.backend.endpoint:
            return None
        return ConnectionConfig(
            endpoint=self.backend.endpoint,
            model_deployment=self.backend.model_deployment,
        )

    @property
    def configuration_error(self) -> str | None:
        """Why there is no default target, if there isn't one."""
        if self.default_connection is None:
            return f"{ENV_ENDPOINT} environment variable is not set."
        return None


# ──────────────────────────────────────────────────────────────────────
# Config Loading
# ──────────────────────────────────────────────────────────────────────

_config: AppConfig | None = None


def _find_config_file() -> Path | None:
    """Walk up from this file looking for configs/config.json."""
    current = Path(__file__).resolve().parent
    for _ in range(10):  # safety limit
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def _load_raw_config(path: Path | None) -> dict[str, Any]:
    """Load and return the raw config.json dict ({} when there is none)."""
    if path is None:
        env_path = os.environ.get(ENV_CONFIG_PATH)
        path = Path(env_path) if env_path else _find_config_file()

    if path is None:
        logger.debug("No config file found, using environment defaults")
        return {}

    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Could not read config file {path}: {exc}") from exc

    logger.info("Loaded config from {}", path)
    return data


def _parse_config(raw: dict[str, Any]) -> AppConfig:
    """Parse raw config dict into typed AppConfig."""

    # --- Chat ---
    chat_raw = raw.get("chat", {})
    max_messages = chat_raw.get(
        "max_conversation_messages", DEFAULT_MAX_CONVERSATION_MESSAGES
    )
    if not isinstance(max_messages, int) or max_messages < 0:
        raise ConfigurationError(
            f"max_conversation_messages must be an integer >= 0, got {max_messages!r}"
        )

    # --- Backend ---
    backend_raw = raw.get("backend", {})
    model_deployment = (
        resolve_secret(backend_raw.get("model_deployment", ENV_MODEL_DEPLOYMENT))
        or DEFAULT_MODEL_DEPLOYMENT
    )

    chat = ChatSettings(
        system_prompt=chat_raw.get("system_prompt", DEFAULT_SYSTEM_PROMPT),
        max_conversation_messages=max_messages,
        default_model=model_deployment,
    )

    backend = BackendConfig(
        endpoint=resolve_secret(backend_raw.get("endpoint", ENV_ENDPOINT)) or None,
        model_deployment=model_deployment,
        api_key=resolve_secret(backend_raw.get("api_key", ENV_API_KEY)),
        adapter=backend_raw.get("adapter", DEFAULT_ADAPTER),
        api_version=backend_raw.get("api_version", DEFAULT_API_VERSION),
        extra={
            k: v for k, v in backend_raw.items()
            if k not in {"endpoint", "model_deployment", "api_key", "adapter", "api_version"}
        },
    )

    return AppConfig(chat=chat, backend=backend)


def get_config(path: str | Path | None = None, *, reload: bool = False) -> AppConfig:
    """Return the singleton AppConfig, loading it on first call.

    Args:
        path:   Explicit config.json location (overrides discovery).
        reload: Force re-read from disk (useful for testing).
    """
    global _config

    if _config is None or reload:
        from dotenv import load_dotenv

        load_dotenv()  # populate os.environ from .env

        raw = _load_raw_config(Path(path) if path is not None else None)
        _config = _parse_config(raw)
        logger.debug(
            "Config loaded: endpoint={} model={} adapter={}",
            _config.backend.endpoint or "<unset>",
            _config.backend.model_deployment,
            _config.backend.adapter,
        )

    return _config
