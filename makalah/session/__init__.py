"""Session-level workflow management.

This module provides the per-session state store, workflow history, snapshot
persistence and the AcademicWorkflowService facade used by the chat
orchestrator.
"""

from makalah.session.snapshot_repository import WorkflowSnapshotRepository
from makalah.session.workflow_history import WorkflowHistory, WorkflowHistoryEntry
from makalah.session.workflow_service import AcademicWorkflowService
from makalah.session.workflow_store import WorkflowStateStore, get_workflow_store

__all__ = [
    "AcademicWorkflowService",
    "WorkflowHistory",
    "WorkflowHistoryEntry",
    "WorkflowSnapshotRepository",
    "WorkflowStateStore",
    "get_workflow_store",
]
