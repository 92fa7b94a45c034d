"""Pydantic models for per-session workflow state.

A WorkflowState is the single source of truth for one chat session's position
in its workflow. Models are frozen: every transition builds a new state with
``model_copy(update=...)`` so a rejected transition can never leave a
half-applied record behind. The per-phase mappings are exposed as read-only
views, so a reader holding a state cannot change it in place.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from makalah.config import ENGINE_WORKFLOW_TYPES, ChatMode, WorkflowType
from makalah.workflow.phase_catalog import PhaseCatalog, get_phase_catalog


def utc_now() -> datetime:
    return datetime.now(UTC)


class PhaseProgress(BaseModel):
    """Partial progress within one phase.

    Tracks whether work on the phase has begun and, once completed, what it
    produced and how long it took.
    """

    model_config = ConfigDict(frozen=True)

    started: bool = False
    completed: bool = False
    artifacts: tuple[str, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: float | None = None
    quality: float | None = Field(default=None, ge=0.0, le=1.0)


class WorkflowState(BaseModel):
    """Workflow record for one chat session.

    ``type`` is kept as a plain string so that states carrying a workflow type
    this build does not know about can still be loaded; such states are simply
    inactive for the engine.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    type: str
    current_phase: int = 1
    max_phases: int
    completed_phases: frozenset[int] = frozenset()
    phase_progress: Mapping[int, PhaseProgress] = Field(default_factory=dict, validate_default=True)
    tool_usage: Mapping[int, frozenset[str]] = Field(default_factory=dict, validate_default=True)
    chat_mode: ChatMode | None = None
    started_at: datetime = Field(default_factory=utc_now)

    @field_validator("phase_progress", "tool_usage", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping) -> Mapping:
        return MappingProxyType(dict(value))

    @field_serializer("phase_progress")
    def _serialize_progress(self, value: Mapping[int, PhaseProgress]) -> dict[int, PhaseProgress]:
        return dict(sorted(value.items()))

    @field_serializer("completed_phases")
    def _serialize_completed(self, value: frozenset[int]) -> list[int]:
        return sorted(value)

    @field_serializer("tool_usage")
    def _serialize_tool_usage(self, value: Mapping[int, frozenset[str]]) -> dict[int, list[str]]:
        return {ordinal: sorted(tools) for ordinal, tools in sorted(value.items())}

    # =========================================================================
    # Derived views
    # =========================================================================

    @property
    def workflow_type(self) -> WorkflowType | None:
        """The recognized workflow type, or None for unknown discriminators."""
        try:
            return WorkflowType(self.type)
        except ValueError:
            return None

    @property
    def drives_engine(self) -> bool:
        return self.workflow_type in ENGINE_WORKFLOW_TYPES

    @property
    def is_active(self) -> bool:
        """True iff the type drives the engine and the cursor is in range."""
        return self.drives_engine and self.current_phase <= self.max_phases

    @property
    def is_finished(self) -> bool:
        """True once the last phase has been completed."""
        return self.current_phase == self.max_phases and self.max_phases in self.completed_phases

    def progress_for(self, ordinal: int) -> PhaseProgress:
        return self.phase_progress.get(ordinal) or PhaseProgress()

    def tools_used_in(self, ordinal: int) -> frozenset[str]:
        return self.tool_usage.get(ordinal, frozenset())

    # =========================================================================
    # Copy helpers (used by engine and gate only)
    # =========================================================================

    def with_progress(self, ordinal: int, **changes: Any) -> "WorkflowState":
        """Return a copy with one phase's progress record updated."""
        progress = self.progress_for(ordinal).model_copy(update=changes)
        phase_progress = MappingProxyType({**self.phase_progress, ordinal: progress})
        return self.model_copy(update={"phase_progress": phase_progress})

    def with_tool_used(self, ordinal: int, tool_id: str) -> "WorkflowState":
        """Return a copy with a tool added to one phase's usage log."""
        used = self.tools_used_in(ordinal) | {tool_id}
        tool_usage = MappingProxyType({**self.tool_usage, ordinal: used})
        return self.model_copy(update={"tool_usage": tool_usage})

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe dict of the full state, for logs and persistence."""
        return self.model_dump(mode="json")

    # =========================================================================
    # Integrity
    # =========================================================================

    def integrity_violations(self, catalog: PhaseCatalog) -> list[str]:
        """List every way this state breaks the catalog's invariants.

        Returns:
            Human-readable violation descriptions (empty when consistent)
        """
        violations: list[str] = []

        if self.max_phases != catalog.max_phases:
            violations.append(
                f"max_phases={self.max_phases} but catalog defines {catalog.max_phases}"
            )
        if not catalog.contains(self.current_phase):
            violations.append(f"current_phase={self.current_phase} has no catalog entry")

        unknown_completed = sorted(o for o in self.completed_phases if not catalog.contains(o))
        if unknown_completed:
            violations.append(f"completed phases without catalog entry: {unknown_completed}")

        ahead = sorted(o for o in self.completed_phases if o > self.current_phase)
        if ahead:
            violations.append(f"completed phases ahead of cursor {self.current_phase}: {ahead}")

        unknown_keys = sorted(
            o for o in {*self.phase_progress, *self.tool_usage} if not catalog.contains(o)
        )
        if unknown_keys:
            violations.append(f"progress/tool records without catalog entry: {unknown_keys}")

        return violations


def create_workflow_state(
    session_id: str,
    workflow_type: WorkflowType | str = WorkflowType.ACADEMIC_8_PHASE,
    chat_mode: ChatMode | None = None,
    catalog: PhaseCatalog | None = None,
) -> WorkflowState:
    """Build the initial state for a new session.

    Academic workflows start at phase 1 with nothing started or completed.
    Free conversation starts with its single phase already open.

    Args:
        session_id: Chat session identifier
        workflow_type: Workflow type to start
        chat_mode: Chat mode the session was opened in
        catalog: Catalog override (defaults to the bundled one for the type)

    Returns:
        Fresh WorkflowState

    Raises:
        ValueError: If the workflow type is unknown
    """
    workflow_type = WorkflowType(workflow_type)
    catalog = catalog or get_phase_catalog(workflow_type)
    now = utc_now()

    open_immediately = not catalog.drives_engine
    progress = {
        phase.phase: PhaseProgress(
            started=open_immediately, started_at=now if open_immediately else None
        )
        for phase in catalog
    }

    return WorkflowState(
        session_id=session_id,
        type=workflow_type.value,
        current_phase=1,
        max_phases=catalog.max_phases,
        phase_progress=progress,
        chat_mode=chat_mode,
        started_at=now,
    )
