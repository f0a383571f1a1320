"""In-memory session store — conversation history per session id.

Each session is a list of ``Message`` objects whose first element is the
system instruction:
    [System(prompt), User(...), Assistant(...), ...]

The full history is kept for the life of the session; only the outbound
payload handed to the backend is bounded (see ``truncate``).

A single ``threading.Lock`` guards the session map and every list
mutation. It is held only for the dict/list operation itself and never
across an ``await``, so callers may be asyncio tasks or OS threads.
A request that spans a backend call holds a ``Conversation`` handle from
``open`` and appends through it, so clearing the id mid-flight cannot
redirect its writes into a re-seeded session.
"""

from __future__ import annotations

import threading

from loguru import logger

from chatbridge.errors import ConfigurationError
from chatbridge.providers.llm.base import Message


def truncate(history: list[Message], max_messages: int) -> list[Message]:
    """Bound ``history`` to the system message plus the last ``max_messages``.

    Returns a new list; ``history`` is left untouched.
    """
    if len(history) <= max_messages + 1:
        return list(history)
    if max_messages == 0:
        return [history[0]]
    return [history[0], *history[-max_messages:]]


class Conversation:
    """Live handle on one session's history.

    Appends go to the list this handle was opened on, never back through
    the session id. After ``SessionStore.clear`` the handle is detached:
    its writes no longer reach the store, and a session re-seeded under the
    same id starts from a fresh list.
    """

    def __init__(
        self,
        session_id: str,
        system_prompt: str,
        max_messages: int,
        lock: threading.Lock,
    ) -> None:
        self.session_id = session_id
        self._messages = [Message.system(system_prompt)]
        self._max_messages = max_messages
        self._lock = lock
        self._detached = False

    @property
    def detached(self) -> bool:
        with self._lock:
            return self._detached

    def append_user(self, text: str) -> None:
        self._append(Message.user(text))

    def append_assistant(self, text: str) -> None:
        self._append(Message.assistant(text))

    def outbound_payload(self, max_messages: int | None = None) -> list[Message]:
        """Truncated view of this history to send to the backend."""
        limit = self._max_messages if max_messages is None else max_messages
        with self._lock:
            payload = truncate(self._messages, limit)

        logger.debug(
            "Session {} | outbound payload {} message(s)",
            self.session_id,
            len(payload),
        )
        return payload

    def snapshot(self) -> list[Message]:
        with self._lock:
            return list(self._messages)

    def _append(self, message: Message) -> None:
        with self._lock:
            self._messages.append(message)
            total = len(self._messages)
            detached = self._detached

        if detached:
            logger.debug(
                "Session {} was cleared, {} message not kept",
                self.session_id,
                message.role.value,
            )
            return
        logger.trace(
            "Session {} | added {} message (total: {})",
            self.session_id,
            message.role.value,
            total,
        )


class SessionStore:
    """Manages per-session conversation history in memory."""

    def __init__(self, system_prompt: str, max_messages: int) -> None:
        """
        Args:
            system_prompt: Instruction seeded as the first message of
                           every new session.
            max_messages:  Non-system messages included in the outbound
                           payload (0 sends only the system message).
        """
        if max_messages < 0:
            raise ConfigurationError(
                f"max_messages must be >= 0, got {max_messages}"
            )
        self._sessions: dict[str, Conversation] = {}
        self._lock = threading.Lock()
        self._system_prompt = system_prompt
        self._max_messages = max_messages

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def open(self, session_id: str) -> Conversation:
        """Return the live handle for a session, seeding it on first use."""
        with self._lock:
            conversation = self._sessions.get(session_id)
            created = conversation is None
            if created:
                conversation = Conversation(
                    session_id, self._system_prompt, self._max_messages, self._lock
                )
                self._sessions[session_id] = conversation

        if created:
            logger.debug("Session {} created", session_id)
        return conversation

    def get_or_create(self, session_id: str) -> list[Message]:
        """Return the session history (copy), seeding it on first use."""
        return self.open(session_id).snapshot()

    def append_user(self, session_id: str, text: str) -> None:
        self._lookup(session_id).append_user(text)

    def append_assistant(self, session_id: str, text: str) -> None:
        self._lookup(session_id).append_assistant(text)

    def build_outbound_payload(
        self, session_id: str, max_messages: int | None = None
    ) -> list[Message]:
        """Return the truncated view of the session to send to the backend.

        Args:
            session_id:   An existing session.
            max_messages: Override for the store's configured bound.

        Raises:
            KeyError: the session does not exist.
        """
        return self._lookup(session_id).outbound_payload(max_messages)

    def get_history(self, session_id: str) -> list[Message]:
        """Return the full message history for a session (copy, never creates)."""
        with self._lock:
            conversation = self._sessions.get(session_id)
        return conversation.snapshot() if conversation is not None else []

    def clear(self, session_id: str) -> None:
        """Drop a session entirely; clearing an unknown id is a no-op."""
        with self._lock:
            removed = self._sessions.pop(session_id, None)
            if removed is not None:
                removed._detached = True
        if removed is not None:
            logger.debug("Session {} cleared", session_id)

    @property
    def active_sessions(self) -> int:
        """Number of sessions with stored history."""
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def _lookup(self, session_id: str) -> Conversation:
        with self._lock:
            conversation = self._sessions.get(session_id)
        if conversation is None:
            raise KeyError(
                f"Session {session_id!r} does not exist; call get_or_create first"
            )
        return conversation
