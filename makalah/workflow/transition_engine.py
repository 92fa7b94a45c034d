"""Phase Transition Engine.

Validates and applies phase transitions on a WorkflowState and computes the
derived views (current phase, percent complete, remaining tools) read by the
agent and the UI.

Transitions follow a two-step protocol per phase:

    mark_complete(state, k)   Phase k -> Phase k (adds k to completed set)
    advance(state)            Phase k -> Phase k+1

Completion and advancement are separate so the orchestrator can confirm with
the user before moving on. The cursor never moves backwards and completed
phases stay completed; there is no regression operation.

Every operation validates fully before building a new state. A rejection
returns a TransitionResult carrying the untouched input state.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from makalah.workflow.errors import (
    CatalogValidationError,
    CorruptStateError,
    TransitionError,
    TransitionResult,
)
from makalah.workflow.phase_catalog import PhaseCatalog, PhaseDefinition, get_phase_catalog
from makalah.workflow.workflow_state import WorkflowState, utc_now

logger = logging.getLogger(__name__)

CatalogResolver = Callable[[str], PhaseCatalog]


def percent_complete(state: WorkflowState) -> int:
    """Percentage of phases completed, rounded half up (1 of 8 -> 13)."""
    if state.max_phases <= 0:
        return 0
    completed = min(len(state.completed_phases), state.max_phases)
    return (200 * completed + state.max_phases) // (2 * state.max_phases)


def remaining_phases(state: WorkflowState) -> int:
    """Number of phases not yet completed."""
    return max(state.max_phases - len(state.completed_phases), 0)


class PhaseTransitionEngine:
    """Applies validated transitions to workflow states.

    Args:
        catalog_resolver: Maps a workflow type string to its PhaseCatalog.
            Defaults to the bundled catalogs.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        catalog_resolver: CatalogResolver | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._resolve = catalog_resolver or get_phase_catalog
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # Catalog resolution and guards
    # =========================================================================

    def catalog_for(self, state: WorkflowState) -> PhaseCatalog:
        """Resolve the catalog for a state's workflow type.

        Raises:
            CorruptStateError: If the state's type has no catalog
        """
        try:
            return self._resolve(state.type)
        except (KeyError, ValueError) as e:
            raise self._corrupt(state, f"No phase catalog for workflow type '{state.type}'") from e

    def _corrupt(self, state: WorkflowState, message: str) -> CorruptStateError:
        snapshot = state.snapshot()
        logger.error(
            f"Corrupt workflow state for session '{state.session_id}': {message}. "
            f"State snapshot: {snapshot}"
        )
        return CorruptStateError(message, snapshot=snapshot)

    def _reject(
        self, state: WorkflowState, error: TransitionError, message: str, **details
    ) -> TransitionResult:
        logger.warning(f"Session '{state.session_id}' rejected ({error}): {message}")
        return TransitionResult.failure(error, message, state=state, **details)

    def _inactive(self, state: WorkflowState) -> TransitionResult | None:
        if state.is_active:
            return None
        return self._reject(
            state,
            TransitionError.UNSUPPORTED_WORKFLOW_TYPE,
            f"Workflow type '{state.type}' is not driven by the phase engine",
            workflow_type=state.type,
        )

    def _definition(self, state: WorkflowState, ordinal: int) -> PhaseDefinition:
        definition = self.catalog_for(state).definition_of(ordinal)
        if definition is None:
            raise self._corrupt(state, f"Phase {ordinal} has no catalog entry")
        return definition

    # =========================================================================
    # Derived views (pure)
    # =========================================================================

    def current_phase_view(self, state: WorkflowState) -> PhaseDefinition:
        """Resolve the cursor through the catalog.

        Raises:
            CorruptStateError: If the current phase has no catalog entry
        """
        return self._definition(state, state.current_phase)

    def percent_complete(self, state: WorkflowState) -> int:
        return percent_complete(state)

    def remaining_phases(self, state: WorkflowState) -> int:
        return remaining_phases(state)

    def next_phase(self, state: WorkflowState) -> PhaseDefinition | None:
        """The phase after the cursor, or None when at the last phase."""
        if state.current_phase >= state.max_phases:
            return None
        return self.catalog_for(state).next_phase(state.current_phase)

    def required_tools_remaining(self, state: WorkflowState) -> frozenset[str]:
        """Required tools of the current phase not yet used in that phase.

        Empty for inactive workflows and once the workflow is finished.
        """
        if not state.is_active or state.is_finished:
            return frozenset()
        definition = self.current_phase_view(state)
        return definition.required_tools - state.tools_used_in(state.current_phase)

    # =========================================================================
    # Transitions
    # =========================================================================

    def start_phase(self, state: WorkflowState) -> TransitionResult:
        """Mark the current phase as started (idempotent)."""
        if rejection := self._inactive(state):
            return rejection
        self.current_phase_view(state)

        if state.progress_for(state.current_phase).started:
            return TransitionResult.success(state, "Phase already started")

        new_state = state.with_progress(state.current_phase, started=True, started_at=self._clock())
        logger.info(f"Session '{state.session_id}' started phase {state.current_phase}")
        return TransitionResult.success(new_state, f"Started phase {state.current_phase}")

    def mark_complete(
        self,
        state: WorkflowState,
        ordinal: int,
        artifacts: Iterable[str] = (),
        quality: float | None = None,
    ) -> TransitionResult:
        """Record that the current phase is done.

        Only the phase under the cursor may be completed, and only after all
        of its required tools were used in that phase. Does not advance.

        Args:
            state: Current workflow state
            ordinal: Phase the orchestrator claims is complete
            artifacts: Artifact identifiers produced in the phase
            quality: Optional quality score in [0, 1]

        Returns:
            TransitionResult with WRONG_PHASE or TOOLS_INCOMPLETE on rejection
        """
        if rejection := self._inactive(state):
            return rejection

        if ordinal != state.current_phase:
            return self._reject(
                state,
                TransitionError.WRONG_PHASE,
                f"Only the current phase {state.current_phase} can be completed, got {ordinal}",
                expected_phase=state.current_phase,
                requested_phase=ordinal,
            )

        definition = self.current_phase_view(state)

        if ordinal in state.completed_phases:
            return TransitionResult.success(state, f"Phase {ordinal} already completed")

        if not definition.completion_criteria:
            raise CatalogValidationError(
                f"Phase {ordinal} of '{state.type}' has no completion criteria"
            )

        missing = definition.required_tools - state.tools_used_in(ordinal)
        if missing:
            return self._reject(
                state,
                TransitionError.TOOLS_INCOMPLETE,
                f"Phase {ordinal} requires tools that were not used: {sorted(missing)}",
                missing_tools=sorted(missing),
            )

        now = self._clock()
        progress = state.progress_for(ordinal)
        started_at = progress.started_at or state.started_at
        merged_artifacts = tuple(dict.fromkeys([*progress.artifacts, *artifacts]))

        new_state = state.with_progress(
            ordinal,
            started=True,
            started_at=started_at,
            completed=True,
            completed_at=now,
            duration_seconds=max((now - started_at).total_seconds(), 0.0),
            artifacts=merged_artifacts,
            quality=quality if quality is not None else progress.quality,
        ).model_copy(update={"completed_phases": state.completed_phases | {ordinal}})

        logger.info(
            f"Session '{state.session_id}' completed phase {ordinal} ({definition.name}), "
            f"{percent_complete(new_state)}% complete"
        )
        return TransitionResult.success(new_state, f"Completed phase {ordinal}")

    def advance(self, state: WorkflowState) -> TransitionResult:
        """Move the cursor to the next phase.

        Requires the current phase to be completed. Fails with
        WORKFLOW_FINISHED once the last phase is completed.
        """
        if rejection := self._inactive(state):
            return rejection

        self.current_phase_view(state)

        if state.current_phase not in state.completed_phases:
            return self._reject(
                state,
                TransitionError.PHASE_NOT_COMPLETE,
                f"Phase {state.current_phase} must be completed before advancing",
                current_phase=state.current_phase,
            )

        if state.current_phase >= state.max_phases:
            return self._reject(
                state,
                TransitionError.WORKFLOW_FINISHED,
                f"Workflow finished at phase {state.current_phase}/{state.max_phases}",
            )

        next_ordinal = state.current_phase + 1
        self._definition(state, next_ordinal)

        progress = state.progress_for(next_ordinal)
        new_state = state.model_copy(update={"current_phase": next_ordinal})
        if not progress.started:
            new_state = new_state.with_progress(next_ordinal, started=True, started_at=self._clock())

        logger.info(
            f"Session '{state.session_id}' advanced to phase {next_ordinal}/{state.max_phases}"
        )
        return TransitionResult.success(new_state, f"Advanced to phase {next_ordinal}")

    def update_phase_progress(
        self,
        state: WorkflowState,
        ordinal: int,
        artifacts: Iterable[str] = (),
        quality: float | None = None,
    ) -> TransitionResult:
        """Attach artifacts or a quality score to a phase at or behind the cursor.

        Never changes completion status.
        """
        if rejection := self._inactive(state):
            return rejection

        catalog = self.catalog_for(state)
        if not catalog.contains(ordinal) or ordinal > state.current_phase:
            return self._reject(
                state,
                TransitionError.WRONG_PHASE,
                f"Progress can only be recorded for phases 1..{state.current_phase}, got {ordinal}",
                requested_phase=ordinal,
            )
        if quality is not None and not 0.0 <= quality <= 1.0:
            raise ValueError(f"quality must be within [0, 1], got {quality}")

        progress = state.progress_for(ordinal)
        changes: dict = {"artifacts": tuple(dict.fromkeys([*progress.artifacts, *artifacts]))}
        if quality is not None:
            changes["quality"] = quality
        if not progress.started:
            changes.update(started=True, started_at=self._clock())

        return TransitionResult.success(
            state.with_progress(ordinal, **changes), f"Updated progress for phase {ordinal}"
        )


# =============================================================================
# Module-level singleton for convenience
# =============================================================================

_engine: PhaseTransitionEngine | None = None


def get_transition_engine() -> PhaseTransitionEngine:
    """Get the shared PhaseTransitionEngine instance."""
    global _engine
    if _engine is None:
        _engine = PhaseTransitionEngine()
    return _engine
