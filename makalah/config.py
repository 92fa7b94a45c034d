"""Centralized configuration for the Makalah workflow core.

This module provides a single source of truth for workflow constants and
environment-backed settings, eliminating hardcoded values scattered across
the codebase.

Design Principles:
- Enums for type-safe workflow types, chat modes and phase statuses
- Trigger-detection thresholds defined declaratively
- Runtime settings read once from the environment (.env supported)
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum, StrEnum
from pathlib import Path

# =============================================================================
# Enums for Type Safety
# =============================================================================


class WorkflowType(StrEnum):
    """Workflow types a chat session can run under.

    Only ACADEMIC_8_PHASE drives the phase engine. FREE_CONVERSATION is a
    recognized type whose workflow is never active.
    """

    ACADEMIC_8_PHASE = "academic-8-phase"
    FREE_CONVERSATION = "free-conversation"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid workflow type values as strings."""
        return [wf.value for wf in cls]


class ChatMode(StrEnum):
    """Chat modes selected by the user when a session starts."""

    FORMAL = "formal"
    CASUAL = "casual"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid chat mode values as strings."""
        return [mode.value for mode in cls]


class PhaseStatus(Enum):
    """Display status of a phase relative to the session cursor."""

    COMPLETED = "completed"
    CURRENT = "current"
    PENDING = "pending"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid status values as strings."""
        return [status.value for status in cls]


# Workflow types whose catalogs drive the transition engine
ENGINE_WORKFLOW_TYPES = frozenset({WorkflowType.ACADEMIC_8_PHASE})


# =============================================================================
# Workflow Trigger Detection
# =============================================================================

# Keyword tiers used to score a formal-mode query (Indonesian + English)
STRONG_ACADEMIC_KEYWORDS = (
    "makalah",
    "skripsi",
    "thesis",
    "dissertation",
    "penelitian",
    "research paper",
    "artikel jurnal",
    "conference paper",
    "publikasi ilmiah",
)

MEDIUM_ACADEMIC_KEYWORDS = (
    "literature review",
    "tinjauan pustaka",
    "referensi",
    "sitasi",
    "citation",
    "metodologi",
    "methodology",
    "analisis",
    "framework teoritis",
    "kerangka teori",
)

WEAK_ACADEMIC_KEYWORDS = (
    "paper",
    "artikel",
    "tugas",
    "assignment",
    "report",
    "laporan",
)

# Flat keyword list for the quick boolean check
ACADEMIC_KEYWORDS = (
    "makalah",
    "skripsi",
    "thesis",
    "penelitian",
    "research",
    "paper",
    "artikel",
    "jurnal",
    "conference",
    "publikasi",
    "citation",
    "referensi",
    "literature",
    "review",
    "analisis",
    "methodology",
    "teori",
    "framework",
)

STRONG_KEYWORD_WEIGHT = 0.8
MEDIUM_KEYWORD_WEIGHT = 0.5
WEAK_KEYWORD_WEIGHT = 0.3

# First message of a formal session needs stronger evidence
FIRST_MESSAGE_TRIGGER_THRESHOLD = 0.6
FOLLOW_UP_TRIGGER_THRESHOLD = 0.4


# =============================================================================
# Session Configuration
# =============================================================================

# Keep the last N workflow sessions in history
DEFAULT_HISTORY_LIMIT = 50

# Snapshot files written per session
SNAPSHOT_SUFFIX = ".yaml"


# =============================================================================
# Runtime Settings
# =============================================================================


@dataclass(frozen=True)
class WorkflowSettings:
    """Runtime settings resolved from the environment.

    Attributes:
        snapshot_dir: Directory for session snapshots, or None to disable
        history_limit: Maximum number of workflow history entries kept
        log_level: Logging level name for the makalah logger
    """

    snapshot_dir: Path | None = None
    history_limit: int = DEFAULT_HISTORY_LIMIT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "WorkflowSettings":
        """Load settings from environment variables.

        Reads ``.env`` first (if present) without overriding variables that
        are already set.

        Args:
            env_file: Optional explicit path to a .env file

        Returns:
            WorkflowSettings instance
        """
        from dotenv import load_dotenv

        load_dotenv(env_file)

        snapshot_dir = os.environ.get("MAKALAH_SNAPSHOT_DIR")
        history_limit = os.environ.get("MAKALAH_HISTORY_LIMIT")

        return cls(
            snapshot_dir=Path(snapshot_dir) if snapshot_dir else None,
            history_limit=int(history_limit) if history_limit else DEFAULT_HISTORY_LIMIT,
            log_level=os.environ.get("MAKALAH_LOG_LEVEL", "INFO").upper(),
        )

    def apply_logging(self) -> None:
        """Set the package logger level from settings."""
        logging.getLogger("makalah").setLevel(self.log_level)
