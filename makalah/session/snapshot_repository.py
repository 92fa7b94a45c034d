"""YAML snapshots of workflow state for session resume.

Each session is stored as one file in the snapshot directory:

    snapshots/
    ├── <safe_session_id>-<digest>.yaml
    └── ...

Example snapshot:
    session_id: chat-42
    type: academic-8-phase
    current_phase: 2
    max_phases: 8
    completed_phases: [1]
    tool_usage:
      1: [web_search]
    ...

The in-memory store stays the source of truth; snapshots only let a restarted
process pick a session up where it left off.
"""

import hashlib
import logging
import re
import threading
from pathlib import Path

import yaml
from pydantic import ValidationError

from makalah.config import SNAPSHOT_SUFFIX
from makalah.workflow.workflow_state import WorkflowState

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class WorkflowSnapshotRepository:
    """Reads and writes per-session workflow snapshots.

    Args:
        base_dir: Directory holding snapshot files (created if missing)
    """

    def __init__(self, base_dir: Path | str) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, session_id: str) -> Path:
        """Snapshot file path for a session.

        Unsafe characters are replaced and a digest of the raw id is appended,
        so distinct session ids never share a file.
        """
        safe_name = _UNSAFE_FILENAME_CHARS.sub("_", session_id)
        digest = hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:12]
        return self.base_dir / f"{safe_name}-{digest}{SNAPSHOT_SUFFIX}"

    def exists(self, session_id: str) -> bool:
        return self.path_for(session_id).exists()

    def save(self, state: WorkflowState) -> Path:
        """Write a state snapshot, replacing any previous one.

        The file is written to a temporary path first and then moved into
        place so readers never see a partial snapshot.
        """
        path = self.path_for(state.session_id)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        content = yaml.safe_dump(state.snapshot(), sort_keys=False, allow_unicode=True)

        with self._lock:
            tmp_path.write_text(content, encoding="utf-8")
            tmp_path.replace(path)

        logger.debug(f"Saved workflow snapshot for session '{state.session_id}' to {path}")
        return path

    def load(self, session_id: str) -> WorkflowState | None:
        """Load a session's snapshot.

        Returns:
            The stored WorkflowState, or None if missing or unreadable
        """
        path = self.path_for(session_id)
        if not path.exists():
            return None

        with self._lock:
            content = path.read_text(encoding="utf-8")

        try:
            data = yaml.safe_load(content) or {}
            state = WorkflowState.model_validate(data)
        except (yaml.YAMLError, ValidationError) as e:
            logger.warning(f"Corrupted workflow snapshot {path}, ignoring: {e}")
            return None

        if state.session_id != session_id:
            logger.warning(
                f"Snapshot {path} belongs to session '{state.session_id}', "
                f"not '{session_id}'; ignoring"
            )
            return None
        return state

    def delete(self, session_id: str) -> bool:
        """Remove a session's snapshot.

        A file that belongs to a different session is left in place.

        Returns:
            True if a file was removed
        """
        path = self.path_for(session_id)
        with self._lock:
            if not path.exists():
                return False
            owner = self._stored_session_id(path)
            if owner is not None and owner != session_id:
                logger.warning(
                    f"Snapshot {path} belongs to session '{owner}', not '{session_id}'; "
                    f"not deleting"
                )
                return False
            path.unlink()
        return True

    def _stored_session_id(self, path: Path) -> str | None:
        """Session id recorded in a snapshot file, or None if unreadable."""
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError:
            return None
        if not isinstance(data, dict):
            return None
        return data.get("session_id")
