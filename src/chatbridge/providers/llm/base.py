from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Conversation Messages
# ---------------------------------------------------------------------------


class Role(str, Enum):
    """Message roles; values are the OpenAI wire names."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """One turn in the conversation history.

    Roles follow the OpenAI convention used by LiteLLM:
        * ``system``    – the fixed instruction seeded into every session.
        * ``user``      – end-user input.
        * ``assistant`` – model output.

    Attributes:
        role:    Who produced the message.
        content: Text payload.
    """

    role: Role
    content: str

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(Role.ASSISTANT, content)

    def to_dict(self) -> dict[str, str]:
        """OpenAI-format message dict."""
        return {"role": self.role.value, "content": self.content}


# ---------------------------------------------------------------------------
# Completion Result
# ---------------------------------------------------------------------------


@dataclass
class CompletionResult:
    """Unified result returned by every provider.

    Attributes:
        text:              The model's reply (``None`` when the backend sent
                           no content).
        prompt_tokens:     Input token count, ``None`` if not reported.
        completion_tokens: Output token count, ``None`` if not reported.
        total_tokens:      Total token count, ``None`` if not reported.
        raw_response:      The unprocessed provider response for debugging.
    """

    text: str | None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    raw_response: Any = None


# ---------------------------------------------------------------------------
# Abstract Provider
# ---------------------------------------------------------------------------


class BaseLLMProvider(ABC):
    """Interface every completion back-end handle must implement.

    A provider instance is bound to one endpoint and model deployment and
    is meant to be reused across requests (see ``ClientCache``).
    Constructors must not perform network I/O.
    """

    name: str = "base"

    def __init__(self, endpoint: str, model_deployment: str) -> None:
        self.endpoint = endpoint
        self.model_deployment = model_deployment

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        max_output_tokens: int | None = None,
    ) -> CompletionResult:
        """Send a conversation to the backend and return its reply.

        Args:
            messages:          Ordered outbound payload (system first).
            max_output_tokens: Cap on generated tokens; ``None`` leaves it
                               to the backend.

        Returns:
            A ``CompletionResult``.

        Raises:
            BackendError: transport, auth, rate-limit or malformed-response
                failure.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources held by the handle (no-op by default)."""
        return None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(endpoint={self.endpoint!r}, "
            f"model_deployment={self.model_deployment!r})"
        )
