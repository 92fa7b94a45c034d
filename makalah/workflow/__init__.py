"""Academic workflow phase state machine.

This package provides the phase catalog, the per-session workflow state
model, the transition engine and the tool gate, plus the derived views read
by the agent prompt and the UI.
"""

from .errors import (
    CatalogValidationError,
    CorruptStateError,
    TransitionError,
    TransitionResult,
)
from .phase_catalog import (
    PhaseCatalog,
    PhaseDefinition,
    get_academic_catalog,
    get_phase_catalog,
    load_phase_catalog,
)
from .progress_view import PhaseTile, WorkflowProgressView, build_progress_view
from .prompt_context import generate_workflow_prompt_context
from .tool_gate import ToolGate
from .transition_engine import (
    PhaseTransitionEngine,
    get_transition_engine,
    percent_complete,
    remaining_phases,
)
from .trigger_detection import TriggerDecision, detect_workflow_trigger, should_trigger_workflow
from .workflow_state import PhaseProgress, WorkflowState, create_workflow_state

__all__ = [
    "CatalogValidationError",
    "CorruptStateError",
    "PhaseCatalog",
    "PhaseDefinition",
    "PhaseProgress",
    "PhaseTile",
    "PhaseTransitionEngine",
    "ToolGate",
    "TransitionError",
    "TransitionResult",
    "TriggerDecision",
    "WorkflowProgressView",
    "WorkflowState",
    "build_progress_view",
    "create_workflow_state",
    "detect_workflow_trigger",
    "generate_workflow_prompt_context",
    "get_academic_catalog",
    "get_phase_catalog",
    "get_transition_engine",
    "load_phase_catalog",
    "percent_complete",
    "remaining_phases",
    "should_trigger_workflow",
]
