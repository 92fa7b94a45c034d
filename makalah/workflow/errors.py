"""Error taxonomy for workflow transitions.

Expected rejections (wrong phase, missing tools, finished workflow, ...) are
returned as TransitionResult values so the orchestrator can decide what to
tell the user. Integrity faults that indicate a corrupt catalog or state are
raised as exceptions and must be treated as fatal for the session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from makalah.workflow.workflow_state import WorkflowState


class TransitionError(StrEnum):
    """Typed rejection codes returned by engine, gate and store operations."""

    PHASE_NOT_COMPLETE = "phase_not_complete"
    WORKFLOW_FINISHED = "workflow_finished"
    WRONG_PHASE = "wrong_phase"
    TOOLS_INCOMPLETE = "tools_incomplete"
    CORRUPT_STATE = "corrupt_state"
    UNKNOWN_SESSION = "unknown_session"
    UNSUPPORTED_WORKFLOW_TYPE = "unsupported_workflow_type"


@dataclass
class TransitionResult:
    """Result of a state operation.

    Attributes:
        ok: Whether the operation succeeded
        state: The new state on success, the unchanged state on rejection
            (None when no state exists, e.g. unknown session)
        error: Rejection code when ok is False
        message: Human-readable summary message
        details: Extra context (missing tools, expected phase, ...)
    """

    ok: bool
    state: WorkflowState | None = None
    error: TransitionError | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, state: WorkflowState, message: str = "") -> TransitionResult:
        return cls(ok=True, state=state, message=message)

    @classmethod
    def failure(
        cls,
        error: TransitionError,
        message: str,
        state: WorkflowState | None = None,
        **details: Any,
    ) -> TransitionResult:
        return cls(ok=False, state=state, error=error, message=message, details=details)


class CatalogValidationError(ValueError):
    """Raised when a phase catalog fails its startup validation."""


class CorruptStateError(RuntimeError):
    """Raised when a workflow state violates catalog referential integrity.

    Carries a snapshot of the offending state for diagnosis. Never repaired
    automatically.
    """

    error = TransitionError.CORRUPT_STATE

    def __init__(self, message: str, snapshot: dict[str, Any] | None = None):
        super().__init__(message)
        self.snapshot = snapshot or {}
