"""Tool-Gate Evaluator.

Decides whether the agent may invoke a tool given the session's current phase
and keeps the per-phase log of tools actually used.

The gate is a whitelist by phase, not a sandbox: a tool that appears in some
phase's required tools is only admitted while that phase is current, and any
tool no phase requires is always admitted.

Usage logs are phase-scoped. Using ``web_search`` in phase 1 does not count
towards phase 2's requirement for ``web_search``.
"""

import logging

from makalah.workflow.errors import TransitionError, TransitionResult
from makalah.workflow.transition_engine import PhaseTransitionEngine, get_transition_engine
from makalah.workflow.workflow_state import WorkflowState

logger = logging.getLogger(__name__)


class ToolGate:
    """Phase-aware tool admission and usage recording.

    Args:
        engine: Transition engine used for catalog resolution and clock
    """

    def __init__(self, engine: PhaseTransitionEngine | None = None):
        self.engine = engine or get_transition_engine()

    def record_tool_use(
        self, state: WorkflowState, phase_ordinal: int, tool_id: str
    ) -> TransitionResult:
        """Append a tool to a phase's usage log.

        Recording the same tool twice for the same phase returns the input
        state unchanged. The phase must exist and must not be ahead of the
        cursor. Recording marks the phase as started.

        Args:
            state: Current workflow state
            phase_ordinal: Phase the tool was used in
            tool_id: Tool identifier (e.g. "web_search")

        Returns:
            TransitionResult with the updated state
        """
        if not state.is_active:
            return TransitionResult.failure(
                TransitionError.UNSUPPORTED_WORKFLOW_TYPE,
                f"Workflow type '{state.type}' does not track tool usage",
                state=state,
            )

        catalog = self.engine.catalog_for(state)
        if not catalog.contains(phase_ordinal) or phase_ordinal > state.current_phase:
            logger.warning(
                f"Session '{state.session_id}' recorded '{tool_id}' for phase {phase_ordinal} "
                f"while at phase {state.current_phase}"
            )
            return TransitionResult.failure(
                TransitionError.WRONG_PHASE,
                f"Tool usage can only be recorded for phases 1..{state.current_phase}",
                state=state,
                requested_phase=phase_ordinal,
            )

        used = state.tools_used_in(phase_ordinal)
        if tool_id in used:
            return TransitionResult.success(state, f"'{tool_id}' already recorded")

        new_state = state.with_tool_used(phase_ordinal, tool_id)
        if not new_state.progress_for(phase_ordinal).started:
            new_state = new_state.with_progress(
                phase_ordinal, started=True, started_at=self.engine.now()
            )

        logger.debug(f"Session '{state.session_id}' used '{tool_id}' in phase {phase_ordinal}")
        return TransitionResult.success(new_state, f"Recorded '{tool_id}' for phase {phase_ordinal}")

    def is_tool_admitted(self, state: WorkflowState, tool_id: str) -> bool:
        """Check whether the agent may call ``tool_id`` right now.

        Returns:
            True if the tool is required by the current phase, is not gated
            by any phase, or the workflow is not engine-driven
        """
        if not state.is_active:
            return True

        catalog = self.engine.catalog_for(state)
        if tool_id not in catalog.all_required_tools():
            return True

        admitted = tool_id in self.engine.current_phase_view(state).required_tools
        if not admitted:
            logger.debug(
                f"Session '{state.session_id}' denied '{tool_id}' in phase {state.current_phase}"
            )
        return admitted

    def admitted_tools(self, state: WorkflowState) -> frozenset[str]:
        """Gated tools admitted in the current phase."""
        if not state.is_active:
            return frozenset()
        return self.engine.current_phase_view(state).required_tools
