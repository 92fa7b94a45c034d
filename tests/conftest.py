"""Shared test fixtures and helpers.

Centralizes the engine, store and state boilerplate used across the workflow
test modules.
"""

from datetime import UTC, datetime, timedelta

import pytest

from makalah.config import WorkflowType
from makalah.session.workflow_store import WorkflowStateStore
from makalah.workflow.phase_catalog import PhaseCatalog, PhaseDefinition, get_academic_catalog
from makalah.workflow.tool_gate import ToolGate
from makalah.workflow.transition_engine import PhaseTransitionEngine
from makalah.workflow.workflow_state import WorkflowState, create_workflow_state


class FakeClock:
    """Deterministic clock that moves forward one minute per call."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(minutes=1)):
        self.current = start or datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
        self.step = step

    def __call__(self) -> datetime:
        self.current += self.step
        return self.current


def complete_phase(engine: PhaseTransitionEngine, gate: ToolGate, state: WorkflowState):
    """Use every required tool of the current phase and mark it complete.

    Returns:
        The state after mark_complete (cursor unchanged)
    """
    definition = engine.current_phase_view(state)
    for tool in sorted(definition.required_tools):
        state = gate.record_tool_use(state, state.current_phase, tool).state
    result = engine.mark_complete(state, state.current_phase)
    assert result.ok, result.message
    return result.state


def complete_and_advance(engine: PhaseTransitionEngine, gate: ToolGate, state: WorkflowState):
    """Complete the current phase and move the cursor to the next one."""
    state = complete_phase(engine, gate, state)
    result = engine.advance(state)
    assert result.ok, result.message
    return result.state


def make_catalog(*definitions: PhaseDefinition, require_criteria: bool = True) -> PhaseCatalog:
    """Build an academic-typed catalog from explicit definitions."""
    return PhaseCatalog(WorkflowType.ACADEMIC_8_PHASE, list(definitions), require_criteria)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    """Engine over the bundled catalogs with a deterministic clock."""
    return PhaseTransitionEngine(clock=clock)


@pytest.fixture
def gate(engine):
    return ToolGate(engine)


@pytest.fixture
def store(engine):
    """A private store (never the process-wide singleton)."""
    return WorkflowStateStore(engine)


@pytest.fixture
def catalog():
    return get_academic_catalog()


@pytest.fixture
def academic_state():
    """Fresh academic workflow at phase 1."""
    return create_workflow_state("session-1", WorkflowType.ACADEMIC_8_PHASE)


@pytest.fixture
def free_state():
    """Fresh free-conversation workflow."""
    return create_workflow_state("session-free", WorkflowType.FREE_CONVERSATION)
