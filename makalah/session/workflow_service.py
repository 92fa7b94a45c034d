"""Workflow service used by the chat orchestrator.

Single entry point for a chat turn: start or resume the session's workflow,
record tool calls, ask the gate, claim phase completion, advance, and read the
derived views for the agent prompt and the UI.

Composition:
    WorkflowStateStore           per-session state + locking
    PhaseTransitionEngine        mark_complete / advance / derived views
    ToolGate                     tool admission + usage log
    WorkflowHistory              started / finished sessions
    WorkflowSnapshotRepository   optional, written after every mutation
"""

import logging
from collections.abc import Iterable

from makalah.config import ChatMode, WorkflowSettings, WorkflowType
from makalah.session.snapshot_repository import WorkflowSnapshotRepository
from makalah.session.workflow_history import WorkflowHistory
from makalah.session.workflow_store import Mutation, WorkflowStateStore
from makalah.workflow.errors import TransitionResult
from makalah.workflow.progress_view import WorkflowProgressView, build_progress_view
from makalah.workflow.prompt_context import generate_workflow_prompt_context
from makalah.workflow.tool_gate import ToolGate
from makalah.workflow.transition_engine import PhaseTransitionEngine
from makalah.workflow.trigger_detection import detect_workflow_trigger
from makalah.workflow.workflow_state import WorkflowState

logger = logging.getLogger(__name__)


class AcademicWorkflowService:
    """Orchestrator-facing facade over the workflow core.

    Args:
        store: Workflow state store (a private one is created if omitted)
        history: Workflow history
        snapshots: Snapshot repository; None disables persistence
    """

    def __init__(
        self,
        store: WorkflowStateStore | None = None,
        history: WorkflowHistory | None = None,
        snapshots: WorkflowSnapshotRepository | None = None,
    ) -> None:
        self.store = store or WorkflowStateStore()
        self.engine: PhaseTransitionEngine = self.store.engine
        self.gate = ToolGate(self.engine)
        self.history = history or WorkflowHistory()
        self.snapshots = snapshots

    @classmethod
    def from_settings(cls, settings: WorkflowSettings | None = None) -> "AcademicWorkflowService":
        """Build a service from environment settings."""
        settings = settings or WorkflowSettings.from_env()
        settings.apply_logging()
        snapshots = None
        if settings.snapshot_dir:
            snapshots = WorkflowSnapshotRepository(settings.snapshot_dir)
        return cls(history=WorkflowHistory(settings.history_limit), snapshots=snapshots)

    def _mutate(self, session_id: str, fn: Mutation) -> TransitionResult:
        """Mutate through the store, persisting inside the session lock."""

        def apply(state: WorkflowState) -> TransitionResult:
            result = fn(state)
            if self.snapshots and result.ok and result.state is not state:
                self.snapshots.save(result.state)
            return result

        return self.store.mutate(session_id, apply)

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def start_session(
        self,
        session_id: str,
        chat_mode: ChatMode | None,
        user_query: str = "",
        is_first_message: bool = True,
        workflow_type: WorkflowType | str | None = None,
    ) -> TransitionResult:
        """Start the session's workflow, or return the existing one.

        Without an explicit ``workflow_type`` the type is chosen by trigger
        detection on the user's query.
        """
        existing = self.store.get(session_id)
        if existing is not None:
            return TransitionResult.success(existing, "Session already exists")

        if workflow_type is None:
            decision = detect_workflow_trigger(chat_mode, user_query, is_first_message)
            workflow_type = decision.workflow_type
            logger.info(f"Session '{session_id}' trigger detection: {decision.reasoning}")

        return self.store.create(
            session_id, workflow_type, chat_mode=chat_mode, on_create=self._on_session_created
        )

    def _on_session_created(self, state: WorkflowState) -> None:
        """Record history and the first snapshot under the session lock."""
        self.history.record_start(state.session_id, state.type, state.started_at)
        if self.snapshots:
            self.snapshots.save(state)

    def resume_session(self, session_id: str) -> TransitionResult:
        """Return the in-memory workflow or restore it from its snapshot."""
        existing = self.store.get(session_id)
        if existing is not None:
            return TransitionResult.success(existing)

        state = self.snapshots.load(session_id) if self.snapshots else None
        if state is None:
            return self.store.require(session_id)
        return self.store.restore(state)

    def end_session(self, session_id: str) -> WorkflowState | None:
        """Discard the session's workflow and its snapshot."""
        state = self.store.destroy(session_id, on_destroy=self._on_session_destroyed)
        if state is None and self.snapshots:
            self.snapshots.delete(session_id)
        return state

    def _on_session_destroyed(self, state: WorkflowState) -> None:
        self.history.record_finish(state.session_id, state.current_phase, success=state.is_finished)
        if self.snapshots:
            self.snapshots.delete(state.session_id)

    def get_state(self, session_id: str) -> WorkflowState | None:
        return self.store.get(session_id)

    # =========================================================================
    # Turn operations
    # =========================================================================

    def record_tool_use(
        self, session_id: str, tool_id: str, phase_ordinal: int | None = None
    ) -> TransitionResult:
        """Record a tool call, in the current phase unless told otherwise."""
        return self._mutate(
            session_id,
            lambda state: self.gate.record_tool_use(
                state, state.current_phase if phase_ordinal is None else phase_ordinal, tool_id
            ),
        )

    def is_tool_admitted(self, session_id: str, tool_id: str) -> bool:
        """Gate decision; sessions without a workflow are not gated."""
        state = self.store.get(session_id)
        if state is None:
            return True
        return self.gate.is_tool_admitted(state, tool_id)

    def start_phase(self, session_id: str) -> TransitionResult:
        return self._mutate(session_id, self.engine.start_phase)

    def update_phase_progress(
        self,
        session_id: str,
        ordinal: int,
        artifacts: Iterable[str] = (),
        quality: float | None = None,
    ) -> TransitionResult:
        artifacts = tuple(artifacts)
        return self._mutate(
            session_id,
            lambda state: self.engine.update_phase_progress(state, ordinal, artifacts, quality),
        )

    def complete_phase(
        self,
        session_id: str,
        ordinal: int,
        artifacts: Iterable[str] = (),
        quality: float | None = None,
    ) -> TransitionResult:
        """Claim a phase complete; records history when the last phase is done."""
        artifacts = tuple(artifacts)
        result = self._mutate(
            session_id,
            lambda state: self.engine.mark_complete(state, ordinal, artifacts, quality),
        )
        if result.ok and result.state.is_finished:
            self.history.record_finish(session_id, result.state.current_phase, success=True)
        return result

    def advance(self, session_id: str) -> TransitionResult:
        return self._mutate(session_id, self.engine.advance)

    # =========================================================================
    # Read-only views
    # =========================================================================

    def required_tools_remaining(self, session_id: str) -> frozenset[str]:
        state = self.store.get(session_id)
        if state is None:
            return frozenset()
        return self.engine.required_tools_remaining(state)

    def percent_complete(self, session_id: str) -> int:
        state = self.store.get(session_id)
        return self.engine.percent_complete(state) if state else 0

    def progress_view(self, session_id: str) -> WorkflowProgressView | None:
        return build_progress_view(self.store.get(session_id), self.engine)

    def prompt_context(
        self,
        session_id: str,
        discipline: str | None = None,
        academic_level: str | None = None,
    ) -> str:
        return generate_workflow_prompt_context(
            self.store.get(session_id), self.engine, discipline, academic_level
        )

