"""Exception types raised across the chatbridge boundary.

Callers can tell configuration problems (never retryable, raised before
any backend call) apart from backend failures (raised after the request
has already touched session history). Cancellation is signalled with the
standard ``asyncio.CancelledError``.
"""

from __future__ import annotations


class ChatBridgeError(Exception):
    """Base class for all chatbridge errors."""


class ConfigurationError(ChatBridgeError):
    """No usable connection config, or a config that cannot build a client."""


class BackendError(ChatBridgeError):
    """The remote completion call failed.

    Attributes:
        status_code: HTTP status returned by the backend, when there was one.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
