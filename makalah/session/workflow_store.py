"""Workflow State Store.

Process-wide, session-keyed store of WorkflowState records with an explicit
lifecycle: create, get, mutate, destroy.

Mutations for one session are serialized by a per-session lock, because
mark_complete and advance read then write the same record and concurrent chat
turns could otherwise race. Different sessions never share a lock; the
registry lock only guards the dictionaries and is held for dict operations.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from makalah.config import ChatMode, WorkflowType
from makalah.workflow.errors import CorruptStateError, TransitionError, TransitionResult
from makalah.workflow.transition_engine import PhaseTransitionEngine, get_transition_engine
from makalah.workflow.workflow_state import WorkflowState, create_workflow_state

logger = logging.getLogger(__name__)

Mutation = Callable[[WorkflowState], TransitionResult]


class WorkflowStateStore:
    """In-memory store of per-session workflow state.

    Args:
        engine: Transition engine used for catalog resolution
    """

    def __init__(self, engine: PhaseTransitionEngine | None = None) -> None:
        self.engine = engine or get_transition_engine()
        self._states: dict[str, WorkflowState] = {}
        self._session_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    @contextmanager
    def _session_lock(self, session_id: str, create: bool = True) -> Iterator[bool]:
        """Hold the session's registered lock for the duration of the block.

        A lock that destroy() unregistered while this thread waited on it is
        released and the current one is looked up again, so at most one
        thread ever works on a session's state.

        Yields:
            True while holding the lock; False if the session has no lock and
            ``create`` is False
        """
        while True:
            with self._lock:
                lock = self._session_locks.get(session_id)
                if lock is None:
                    if not create:
                        break
                    lock = self._session_locks[session_id] = threading.Lock()

            lock.acquire()
            with self._lock:
                current = self._session_locks.get(session_id) is lock
            if current:
                try:
                    yield True
                finally:
                    lock.release()
                return
            lock.release()

        yield False

    def _commit(self, state: WorkflowState) -> None:
        """Install a state. Caller must hold the session lock."""
        with self._lock:
            self._states[state.session_id] = state

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create(
        self,
        session_id: str,
        workflow_type: WorkflowType | str = WorkflowType.ACADEMIC_8_PHASE,
        chat_mode: ChatMode | None = None,
        on_create: Callable[[WorkflowState], None] | None = None,
    ) -> TransitionResult:
        """Create the workflow for a session.

        Idempotent: if the session already has a workflow, it is returned
        unchanged and progress is never reset.

        Args:
            session_id: Chat session identifier
            workflow_type: Workflow type to start
            chat_mode: Chat mode the session was opened in
            on_create: Called with the new state while the session lock is
                still held, before any other operation can see the session.
                Not called for existing sessions.

        Returns:
            TransitionResult with the (new or existing) state, or
            UNSUPPORTED_WORKFLOW_TYPE for unknown workflow types
        """
        try:
            workflow_type = WorkflowType(workflow_type)
        except ValueError:
            logger.warning(f"Session '{session_id}' requested unknown workflow '{workflow_type}'")
            return TransitionResult.failure(
                TransitionError.UNSUPPORTED_WORKFLOW_TYPE,
                f"Unknown workflow type '{workflow_type}'. Valid types: {WorkflowType.values()}",
                workflow_type=str(workflow_type),
            )

        with self._session_lock(session_id):
            existing = self.get(session_id)
            if existing is not None:
                if existing.type != workflow_type.value:
                    logger.warning(
                        f"Session '{session_id}' already runs '{existing.type}', "
                        f"ignoring request for '{workflow_type}'"
                    )
                return TransitionResult.success(existing, "Session already exists")

            state = create_workflow_state(session_id, workflow_type, chat_mode=chat_mode)
            self._commit(state)
            if on_create is not None:
                on_create(state)

        logger.info(f"Created '{workflow_type}' workflow for session '{session_id}'")
        return TransitionResult(
            ok=True, state=state, message="Session created", details={"created": True}
        )

    def get(self, session_id: str) -> WorkflowState | None:
        """Get the current state of a session, or None if unknown."""
        with self._lock:
            return self._states.get(session_id)

    def require(self, session_id: str) -> TransitionResult:
        """Like get(), but reports a missing session as UNKNOWN_SESSION."""
        state = self.get(session_id)
        if state is None:
            return TransitionResult.failure(
                TransitionError.UNKNOWN_SESSION, f"No workflow for session '{session_id}'"
            )
        return TransitionResult.success(state)

    def mutate(self, session_id: str, fn: Mutation) -> TransitionResult:
        """Apply a transition under the session's exclusive lock.

        ``fn`` receives the current state and returns a TransitionResult. The
        returned state is committed only when the result is ok; readers see
        either the old state or the new one, never anything in between.
        Exceptions raised by ``fn`` propagate and nothing is committed.

        Args:
            session_id: Session to mutate
            fn: Transition to apply

        Returns:
            The TransitionResult from ``fn``, or UNKNOWN_SESSION
        """
        with self._session_lock(session_id, create=False) as held:
            if not held:
                return self.require(session_id)

            state = self.get(session_id)
            if state is None:
                return self.require(session_id)

            result = fn(state)
            if result.ok and result.state is not None and result.state is not state:
                if result.state.session_id != session_id:
                    raise ValueError(
                        f"Transition for session '{session_id}' returned state for "
                        f"'{result.state.session_id}'"
                    )
                self._commit(result.state)
            return result

    def destroy(
        self,
        session_id: str,
        on_destroy: Callable[[WorkflowState], None] | None = None,
    ) -> WorkflowState | None:
        """Discard a session's workflow at session end.

        Args:
            session_id: Session to discard
            on_destroy: Called with the final state while the session lock is
                still held, before the session can be created again

        Returns:
            The final state, or None if the session was unknown
        """
        state = None
        with self._session_lock(session_id, create=False) as held:
            if held:
                state = self.get(session_id)
                if state is not None and on_destroy is not None:
                    on_destroy(state)
                with self._lock:
                    self._states.pop(session_id, None)
                    self._session_locks.pop(session_id, None)

        if state is not None:
            logger.info(
                f"Destroyed workflow for session '{session_id}' at phase "
                f"{state.current_phase}/{state.max_phases}"
            )
        return state

    def restore(self, state: WorkflowState) -> TransitionResult:
        """Install a previously persisted state (session resume).

        An existing in-memory state for the session wins; it is returned
        unchanged.

        Raises:
            CorruptStateError: If the state breaks catalog invariants
        """
        if state.workflow_type is None:
            return TransitionResult.failure(
                TransitionError.UNSUPPORTED_WORKFLOW_TYPE,
                f"Unknown workflow type '{state.type}'",
                state=state,
            )

        violations = state.integrity_violations(self.engine.catalog_for(state))
        if violations:
            snapshot = state.snapshot()
            logger.error(
                f"Refusing to restore session '{state.session_id}': {violations}. "
                f"State snapshot: {snapshot}"
            )
            raise CorruptStateError("; ".join(violations), snapshot=snapshot)

        with self._session_lock(state.session_id):
            existing = self.get(state.session_id)
            if existing is not None:
                return TransitionResult.success(existing, "Session already exists")
            self._commit(state)

        logger.info(
            f"Restored session '{state.session_id}' at phase "
            f"{state.current_phase}/{state.max_phases}"
        )
        return TransitionResult.success(state, "Session restored")

    # =========================================================================
    # Introspection
    # =========================================================================

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._states)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._states

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


# =============================================================================
# Module-level singleton for convenience
# =============================================================================

_store: WorkflowStateStore | None = None


def get_workflow_store() -> WorkflowStateStore:
    """Get the process-wide WorkflowStateStore."""
    global _store
    if _store is None:
        _store = WorkflowStateStore()
    return _store
