"""Unit tests for SessionStore and the truncation policy."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from chatbridge.errors import ConfigurationError
from chatbridge.providers.llm.base import Message, Role
from chatbridge.session.store import SessionStore, truncate


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    return SessionStore(system_prompt="P", max_messages=2)


def _history(n_turns: int) -> list[Message]:
    """System message followed by ``n_turns`` alternating user/assistant turns."""
    msgs = [Message.system("P")]
    for i in range(n_turns):
        msgs.append(Message.user(f"u{i}") if i % 2 == 0 else Message.assistant(f"a{i}"))
    return msgs


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestGetOrCreate:
    def test_seeds_system_message(self, store):
        history = store.get_or_create("s1")
        assert history == [Message(Role.SYSTEM, "P")]

    def test_existing_session_is_returned(self, store):
        store.get_or_create("s1")
        store.append_user("s1", "hello")
        history = store.get_or_create("s1")
        assert [m.content for m in history] == ["P", "hello"]

    def test_returns_a_copy(self, store):
        history = store.get_or_create("s1")
        history.append(Message.user("sneaky"))
        assert store.get_history("s1") == [Message.system("P")]

    def test_separate_sessions(self, store):
        store.get_or_create("s1")
        store.get_or_create("s2")
        store.append_user("s1", "msg1")

        assert len(store.get_history("s1")) == 2
        assert len(store.get_history("s2")) == 1
        assert store.active_sessions == 2

    def test_concurrent_first_use_seeds_once(self, store):
        workers = 16
        barrier = threading.Barrier(workers)

        def _call():
            barrier.wait()
            return store.get_or_create("shared")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: _call(), range(workers)))

        assert all(r == [Message.system("P")] for r in results)
        assert store.get_history("shared") == [Message.system("P")]
        assert store.active_sessions == 1


class TestAppend:
    def test_append_requires_existing_session(self, store):
        with pytest.raises(KeyError):
            store.append_user("missing", "hello")
        with pytest.raises(KeyError):
            store.append_assistant("missing", "hi")
        assert "missing" not in store

    def test_append_order(self, store):
        store.get_or_create("s1")
        store.append_user("s1", "hello")
        store.append_assistant("s1", "hi there")

        roles = [m.role for m in store.get_history("s1")]
        assert roles == [Role.SYSTEM, Role.USER, Role.ASSISTANT]

    def test_concurrent_appends_are_not_lost(self, store):
        store.get_or_create("s1")

        def _append(worker: int):
            for i in range(100):
                store.append_user("s1", f"{worker}-{i}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(_append, range(8)))

        history = store.get_history("s1")
        assert len(history) == 1 + 8 * 100
        assert history[0].role is Role.SYSTEM


class TestClear:
    def test_clear_then_reseed(self, store):
        store.get_or_create("x")
        store.append_user("x", "hello")
        store.append_assistant("x", "hi")

        store.clear("x")
        assert "x" not in store
        assert store.get_or_create("x") == [Message.system("P")]

    def test_open_returns_live_handle(self, store):
        conversation = store.open("s1")
        assert store.open("s1") is conversation

        conversation.append_user("hello")
        assert store.get_history("s1") == [Message.system("P"), Message.user("hello")]

    def test_cleared_handle_is_detached(self, store):
        conversation = store.open("x")
        store.clear("x")
        store.get_or_create("x")

        conversation.append_assistant("late reply")

        assert conversation.detached
        assert not store.open("x").detached
        assert store.get_history("x") == [Message.system("P")]

    def test_clear_unknown_is_noop(self, store):
        store.clear("never-seen")
        assert store.active_sessions == 0

    def test_get_history_does_not_create(self, store):
        assert store.get_history("ghost") == []
        assert "ghost" not in store


class TestTruncation:
    def test_at_bound_is_unchanged(self):
        history = _history(2)  # N + 1 messages for N = 2
        assert truncate(history, 2) == history

    def test_one_over_bound_drops_oldest(self):
        history = _history(3)  # N + 2 messages
        result = truncate(history, 2)
        assert len(result) == 3
        assert result[0] == history[0]
        assert result[1:] == history[-2:]

    def test_zero_keeps_only_system(self):
        assert truncate(_history(5), 0) == [Message.system("P")]

    def test_does_not_mutate_input(self):
        history = _history(6)
        snapshot = list(history)
        truncate(history, 2)
        assert history == snapshot

    def test_payload_recomputed_from_full_history(self, store):
        store.get_or_create("s1")
        for i in range(5):
            store.append_user("s1", f"msg {i}")

        first = store.build_outbound_payload("s1")
        assert [m.content for m in first] == ["P", "msg 3", "msg 4"]

        store.append_assistant("s1", "reply")
        second = store.build_outbound_payload("s1")
        assert [m.content for m in second] == ["P", "msg 4", "reply"]

        # Full history is retained
        assert len(store.get_history("s1")) == 7

    def test_payload_override_bound(self, store):
        store.get_or_create("s1")
        for i in range(4):
            store.append_user("s1", f"msg {i}")
        payload = store.build_outbound_payload("s1", max_messages=10)
        assert len(payload) == 5

    def test_payload_unknown_session(self, store):
        with pytest.raises(KeyError):
            store.build_outbound_payload("missing")

    def test_negative_bound_rejected(self):
        with pytest.raises(ConfigurationError):
            SessionStore(system_prompt="P", max_messages=-1)
