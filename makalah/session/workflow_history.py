"""Workflow history for the current process.

Keeps a newest-first list of workflow sessions (started, finished, abandoned)
capped at a fixed number of entries.
"""

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from makalah.config import DEFAULT_HISTORY_LIMIT
from makalah.workflow.workflow_state import utc_now

logger = logging.getLogger(__name__)


@dataclass
class WorkflowHistoryEntry:
    """One workflow session in history."""

    session_id: str
    workflow_type: str
    started_at: datetime
    completed_at: datetime | None = None
    final_phase: int = 1
    success: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        return data


class WorkflowHistory:
    """Thread-safe, capped history of workflow sessions.

    Args:
        max_entries: Maximum number of entries kept (oldest dropped first)
    """

    def __init__(self, max_entries: int = DEFAULT_HISTORY_LIMIT) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self._entries: list[WorkflowHistoryEntry] = []
        self._lock = threading.Lock()

    def record_start(
        self,
        session_id: str,
        workflow_type: str,
        started_at: datetime | None = None,
    ) -> WorkflowHistoryEntry:
        """Record that a workflow session started."""
        entry = WorkflowHistoryEntry(
            session_id=session_id,
            workflow_type=str(workflow_type),
            started_at=started_at or utc_now(),
        )
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self.max_entries :]
        return entry

    def record_finish(
        self,
        session_id: str,
        final_phase: int,
        success: bool,
        completed_at: datetime | None = None,
    ) -> WorkflowHistoryEntry | None:
        """Close the most recent open entry for a session.

        Returns:
            The updated entry, or None if the session has no open entry
        """
        with self._lock:
            for entry in self._entries:
                if entry.session_id == session_id and entry.completed_at is None:
                    entry.completed_at = completed_at or utc_now()
                    entry.final_phase = final_phase
                    entry.success = success
                    logger.info(
                        f"Workflow history: session '{session_id}' "
                        f"{'finished' if success else 'ended'} at phase {final_phase}"
                    )
                    return entry
        return None

    def entries(self) -> list[WorkflowHistoryEntry]:
        """Entries newest first."""
        with self._lock:
            return list(self._entries)

    def for_session(self, session_id: str) -> list[WorkflowHistoryEntry]:
        with self._lock:
            return [e for e in self._entries if e.session_id == session_id]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
