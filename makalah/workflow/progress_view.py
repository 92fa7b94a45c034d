"""Read-only progress projection for the presentation layer.

The UI renders a WorkflowProgressView once per frame. Building a view never
mutates the workflow state, and nothing in this module offers a way to.
"""

from dataclasses import dataclass, field

from makalah.config import PhaseStatus, WorkflowType
from makalah.workflow.transition_engine import PhaseTransitionEngine, get_transition_engine
from makalah.workflow.workflow_state import WorkflowState


@dataclass(frozen=True)
class PhaseTile:
    """One cell of the phase grid."""

    phase: int
    short_name: str  # first two words of the phase name
    status: PhaseStatus
    started: bool


@dataclass(frozen=True)
class WorkflowProgressView:
    """Everything the progress panel displays for one session."""

    session_id: str
    percent_complete: int
    current_phase: int
    max_phases: int
    completed_count: int
    phase_name: str
    phase_description: str
    required_tools: list[str] = field(default_factory=list)
    expected_outputs: list[str] = field(default_factory=list)
    completion_criteria: list[str] = field(default_factory=list)
    tiles: list[PhaseTile] = field(default_factory=list)
    is_finished: bool = False


def _tile_status(state: WorkflowState, ordinal: int) -> PhaseStatus:
    if ordinal in state.completed_phases:
        return PhaseStatus.COMPLETED
    if ordinal == state.current_phase:
        return PhaseStatus.CURRENT
    return PhaseStatus.PENDING


def build_progress_view(
    state: WorkflowState | None,
    engine: PhaseTransitionEngine | None = None,
) -> WorkflowProgressView | None:
    """Project a workflow state into display data.

    Args:
        state: Session workflow state
        engine: Transition engine override

    Returns:
        WorkflowProgressView, or None when there is nothing to show (no
        state, inactive workflow, or not an academic workflow)
    """
    if state is None or not state.is_active:
        return None
    if state.workflow_type != WorkflowType.ACADEMIC_8_PHASE:
        return None

    engine = engine or get_transition_engine()
    catalog = engine.catalog_for(state)
    phase = engine.current_phase_view(state)

    tiles = [
        PhaseTile(
            phase=definition.phase,
            short_name=" ".join(definition.name.split(" ")[:2]),
            status=_tile_status(state, definition.phase),
            started=state.progress_for(definition.phase).started,
        )
        for definition in catalog
    ]

    return WorkflowProgressView(
        session_id=state.session_id,
        percent_complete=engine.percent_complete(state),
        current_phase=state.current_phase,
        max_phases=state.max_phases,
        completed_count=len(state.completed_phases),
        phase_name=phase.name,
        phase_description=phase.description,
        required_tools=sorted(engine.required_tools_remaining(state)),
        expected_outputs=list(phase.expected_outputs),
        completion_criteria=list(phase.completion_criteria),
        tiles=tiles,
        is_finished=state.is_finished,
    )
