"""Tests for WorkflowStateStore.

Tests cover:
- create() idempotence and unsupported workflow types
- get() / require() for unknown sessions
- mutate() commit-on-success semantics
- Concurrent mutation of one session
- destroy() and restore()
"""

import threading
import time

import pytest
from conftest import complete_and_advance, complete_phase

from makalah.config import WorkflowType
from makalah.workflow.errors import CorruptStateError, TransitionError, TransitionResult


class TestCreate:
    """Tests for create()."""

    def test_creates_fresh_state(self, store):
        result = store.create("chat-1")
        assert result.ok is True
        assert result.details == {"created": True}
        assert result.state.current_phase == 1
        assert store.get("chat-1") is result.state

    def test_create_is_idempotent(self, store, engine, gate):
        store.create("chat-1")
        store.mutate(
            "chat-1", lambda s: TransitionResult.success(complete_and_advance(engine, gate, s))
        )
        progressed = store.get("chat-1")
        assert progressed.current_phase == 2

        again = store.create("chat-1")
        assert again.ok is True
        assert again.state is progressed
        assert "created" not in again.details

    def test_existing_type_wins(self, store):
        store.create("chat-1", WorkflowType.FREE_CONVERSATION)
        result = store.create("chat-1", WorkflowType.ACADEMIC_8_PHASE)
        assert result.state.type == "free-conversation"

    def test_on_create_runs_under_session_lock(self, store):
        held = []

        def on_create(state):
            held.append(store._session_locks[state.session_id].locked())

        store.create("chat-1", on_create=on_create)
        store.create("chat-1", on_create=lambda s: held.append("again"))
        assert held == [True]

    def test_unknown_type_rejected(self, store):
        result = store.create("chat-1", "thesis-12-phase")
        assert result.ok is False
        assert result.error == TransitionError.UNSUPPORTED_WORKFLOW_TYPE
        assert "chat-1" not in store


class TestLookup:
    """Tests for get() and require()."""

    def test_get_unknown(self, store):
        assert store.get("missing") is None

    def test_require_unknown(self, store):
        result = store.require("missing")
        assert result.ok is False
        assert result.error == TransitionError.UNKNOWN_SESSION
        assert result.state is None

    def test_sessions_are_independent(self, store, gate):
        store.create("a")
        store.create("b")
        store.mutate("a", lambda s: gate.record_tool_use(s, 1, "web_search"))
        assert store.get("a").tools_used_in(1) == {"web_search"}
        assert store.get("b").tools_used_in(1) == frozenset()
        assert sorted(store.session_ids()) == ["a", "b"]
        assert len(store) == 2


class TestMutate:
    """Tests for mutate()."""

    def test_unknown_session(self, store, engine):
        result = store.mutate("missing", engine.advance)
        assert result.error == TransitionError.UNKNOWN_SESSION

    def test_commits_on_success(self, store, gate):
        store.create("chat-1")
        result = store.mutate("chat-1", lambda s: gate.record_tool_use(s, 1, "web_search"))
        assert store.get("chat-1") is result.state

    def test_rejection_leaves_state(self, store, engine):
        before = store.create("chat-1").state
        result = store.mutate("chat-1", engine.advance)
        assert result.error == TransitionError.PHASE_NOT_COMPLETE
        assert store.get("chat-1") is before

    def test_exception_leaves_state(self, store):
        before = store.create("chat-1").state

        def explode(state):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.mutate("chat-1", explode)
        assert store.get("chat-1") is before

    def test_foreign_state_rejected(self, store):
        store.create("chat-1")
        other = store.create("chat-2").state

        with pytest.raises(ValueError, match="chat-2"):
            store.mutate("chat-1", lambda s: TransitionResult.success(other))

    def test_concurrent_tool_recording(self, store, gate):
        """Concurrent mutations of one session never lose an update."""
        store.create("chat-1")
        tools = [f"tool_{i}" for i in range(50)]
        barrier = threading.Barrier(len(tools))

        def record(tool):
            barrier.wait()
            store.mutate("chat-1", lambda s: gate.record_tool_use(s, 1, tool))

        threads = [threading.Thread(target=record, args=(tool,)) for tool in tools]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.get("chat-1").tools_used_in(1) == set(tools)

    def test_concurrent_complete_and_advance(self, store, engine, gate):
        """Only one of several racing advance calls moves the cursor."""
        store.create("chat-1")
        store.mutate("chat-1", lambda s: TransitionResult.success(complete_phase(engine, gate, s)))
        results = []
        barrier = threading.Barrier(10)

        def advance():
            barrier.wait()
            results.append(store.mutate("chat-1", engine.advance))

        threads = [threading.Thread(target=advance) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(r.ok for r in results) == 1
        assert store.get("chat-1").current_phase == 2


class TestDestroyAndRestore:
    """Tests for destroy() and restore()."""

    def test_destroy(self, store):
        store.create("chat-1")
        final = store.destroy("chat-1")
        assert final.session_id == "chat-1"
        assert store.get("chat-1") is None
        assert store.destroy("chat-1") is None

    def test_create_after_destroy_starts_fresh(self, store, gate):
        store.create("chat-1")
        store.mutate("chat-1", lambda s: gate.record_tool_use(s, 1, "web_search"))
        store.destroy("chat-1")
        assert store.create("chat-1").state.tool_usage == {}

    def test_restore(self, store, academic_state):
        result = store.restore(academic_state)
        assert result.ok is True
        assert store.get("session-1") is academic_state

    def test_restore_does_not_override_memory(self, store, academic_state):
        live = store.create("session-1").state
        result = store.restore(academic_state)
        assert result.state is live

    def test_restore_corrupt_state_raises(self, store, academic_state):
        corrupt = academic_state.model_copy(update={"completed_phases": frozenset({3})})
        with pytest.raises(CorruptStateError, match="ahead of cursor"):
            store.restore(corrupt)
        assert "session-1" not in store

    def test_on_destroy_runs_before_session_is_released(self, store):
        store.create("chat-1")
        seen = []

        def on_destroy(state):
            lock = store._session_locks[state.session_id]
            seen.append((state.session_id, state.session_id in store, lock.locked()))

        store.destroy("chat-1", on_destroy=on_destroy)
        assert seen == [("chat-1", True, True)]
        assert "chat-1" not in store

    def test_mutation_waiting_on_destroyed_lock(self, store, gate):
        """A mutation queued on a discarded lock runs under the new session's lock."""
        store.create("chat-1")
        stale_lock = store._session_locks["chat-1"]
        held = []
        results = []

        def record(state):
            held.append(store._session_locks["chat-1"].locked())
            return gate.record_tool_use(state, 1, "web_search")

        stale_lock.acquire()
        worker = threading.Thread(target=lambda: results.append(store.mutate("chat-1", record)))
        worker.start()
        time.sleep(0.05)

        # Discard the session while the worker waits, then start it again
        with store._lock:
            store._states.pop("chat-1")
            store._session_locks.pop("chat-1")
        store.create("chat-1")
        stale_lock.release()
        worker.join()

        assert results[0].ok is True
        assert held == [True]
        assert store._session_locks["chat-1"] is not stale_lock
        assert store.get("chat-1").tools_used_in(1) == {"web_search"}
