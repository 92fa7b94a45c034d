"""Phase Catalog for academic workflows.

This module provides a single source of truth for phase metadata: the fixed,
ordered list of phases a workflow type moves through, the tools each phase
requires, and the checklist that must be satisfied before a phase can be
claimed complete.

Design Principles:
- Immutable: PhaseDefinition is frozen, the catalog never changes after load
- Validated once: ordinal contiguity and criteria are checked at load time,
  never on each lookup
- Data-driven: catalogs live in bundled YAML files, one per workflow type

Workflow Types:
- ACADEMIC_8_PHASE: Topic/Scope -> Research Notes -> Literature Review ->
  Outline -> First Draft -> Citations/References -> Final Draft -> Final Paper
- FREE_CONVERSATION: one open phase, never driven by the engine
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from makalah.config import ENGINE_WORKFLOW_TYPES, WorkflowType
from makalah.workflow.errors import CatalogValidationError

logger = logging.getLogger(__name__)

CATALOG_DIR = Path(__file__).parent / "catalogs"

CATALOG_FILES: dict[WorkflowType, str] = {
    WorkflowType.ACADEMIC_8_PHASE: "academic_8_phase.yaml",
    WorkflowType.FREE_CONVERSATION: "free_conversation.yaml",
}


@dataclass(frozen=True)
class PhaseDefinition:
    """Immutable definition of one workflow phase."""

    phase: int  # 1-based ordinal, unique within a catalog
    name: str
    description: str
    required_tools: frozenset[str] = field(default_factory=frozenset)
    expected_outputs: tuple[str, ...] = ()
    completion_criteria: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        """Convert to a plain dict (sorted tool list) for serialization."""
        return {
            "phase": self.phase,
            "name": self.name,
            "description": self.description,
            "required_tools": sorted(self.required_tools),
            "expected_outputs": list(self.expected_outputs),
            "completion_criteria": list(self.completion_criteria),
        }


class PhaseCatalog:
    """Ordered, read-only table of phases for one workflow type.

    Usage:
        catalog = get_phase_catalog(WorkflowType.ACADEMIC_8_PHASE)

        # Lookup by ordinal
        phase = catalog.definition_of(3)

        # Iterate in order
        for phase in catalog:
            print(phase.name)
    """

    def __init__(
        self,
        workflow_type: WorkflowType,
        phases: list[PhaseDefinition],
        require_criteria: bool = True,
    ):
        """Initialize the catalog.

        Args:
            workflow_type: Workflow type this catalog describes
            phases: Phase definitions (any order, sorted by ordinal here)
            require_criteria: Whether every phase must list completion criteria
        """
        self.workflow_type = workflow_type
        self.require_criteria = require_criteria
        self._phases = tuple(sorted(phases, key=lambda p: p.phase))
        self._by_ordinal: dict[int, PhaseDefinition] = {p.phase: p for p in self._phases}
        self._gated_tools = frozenset(tool for p in self._phases for tool in p.required_tools)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self) -> None:
        """Check catalog integrity.

        Raises:
            CatalogValidationError: If ordinals are not a contiguous 1..N
                sequence, contain duplicates, the catalog is empty, or a
                phase has no completion criteria while criteria are required
        """
        if not self._phases:
            raise CatalogValidationError(f"Catalog '{self.workflow_type}' defines no phases")

        ordinals = [p.phase for p in self._phases]
        if len(set(ordinals)) != len(ordinals):
            duplicates = sorted({o for o in ordinals if ordinals.count(o) > 1})
            raise CatalogValidationError(
                f"Catalog '{self.workflow_type}' has duplicate phase ordinals: {duplicates}"
            )

        expected = list(range(1, len(ordinals) + 1))
        if ordinals != expected:
            raise CatalogValidationError(
                f"Catalog '{self.workflow_type}' ordinals must be contiguous 1..{len(ordinals)}, "
                f"got {ordinals}"
            )

        if self.require_criteria:
            empty = [p.phase for p in self._phases if not p.completion_criteria]
            if empty:
                raise CatalogValidationError(
                    f"Catalog '{self.workflow_type}' phases without completion criteria: {empty}"
                )

    # =========================================================================
    # Lookup Methods
    # =========================================================================

    def definition_of(self, ordinal: int) -> PhaseDefinition | None:
        """Get phase definition by ordinal, returning None if not found."""
        return self._by_ordinal.get(ordinal)

    def get(self, ordinal: int) -> PhaseDefinition:
        """Get phase definition by ordinal.

        Raises:
            ValueError: If ordinal not found
        """
        if ordinal not in self._by_ordinal:
            raise ValueError(
                f"Unknown phase ordinal: {ordinal}. Valid ordinals: {self.ordinals()}"
            )
        return self._by_ordinal[ordinal]

    def next_phase(self, ordinal: int) -> PhaseDefinition | None:
        """Get the phase following ``ordinal``, or None at the end."""
        return self._by_ordinal.get(ordinal + 1)

    def contains(self, ordinal: int) -> bool:
        return ordinal in self._by_ordinal

    # =========================================================================
    # Collection Methods
    # =========================================================================

    @property
    def max_phases(self) -> int:
        return len(self._phases)

    def all_phases(self) -> list[PhaseDefinition]:
        """Get all phases in workflow order."""
        return list(self._phases)

    def ordinals(self) -> list[int]:
        return [p.phase for p in self._phases]

    def all_required_tools(self) -> frozenset[str]:
        """Union of required tools across all phases (the gated tool set)."""
        return self._gated_tools

    @property
    def drives_engine(self) -> bool:
        """Whether the transition engine operates on this workflow type."""
        return self.workflow_type in ENGINE_WORKFLOW_TYPES

    def __len__(self) -> int:
        return len(self._phases)

    def __iter__(self):
        return iter(self._phases)


# =============================================================================
# Loading
# =============================================================================


def _parse_phase(data: dict) -> PhaseDefinition:
    return PhaseDefinition(
        phase=int(data["phase"]),
        name=data.get("name", ""),
        description=data.get("description", ""),
        required_tools=frozenset(data.get("required_tools") or []),
        expected_outputs=tuple(data.get("expected_outputs") or []),
        completion_criteria=tuple(data.get("completion_criteria") or []),
    )


def load_phase_catalog(catalog_path: Path, require_criteria: bool | None = None) -> PhaseCatalog:
    """Load and validate a phase catalog from a YAML file.

    Args:
        catalog_path: Path to catalog YAML
        require_criteria: Override the non-empty criteria rule. Defaults to
            True for workflow types that drive the engine.

    Returns:
        Validated PhaseCatalog

    Raises:
        FileNotFoundError: If the file does not exist
        CatalogValidationError: If the catalog is malformed
    """
    if not catalog_path.exists():
        raise FileNotFoundError(f"Phase catalog not found: {catalog_path}")

    with open(catalog_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    try:
        workflow_type = WorkflowType(data.get("workflow_type"))
    except ValueError as e:
        raise CatalogValidationError(
            f"Unknown workflow_type in {catalog_path.name}: {data.get('workflow_type')!r}"
        ) from e

    try:
        phases = [_parse_phase(p) for p in data.get("phases") or []]
    except (KeyError, TypeError, ValueError) as e:
        raise CatalogValidationError(f"Malformed phase entry in {catalog_path.name}: {e}") from e

    if require_criteria is None:
        require_criteria = workflow_type in ENGINE_WORKFLOW_TYPES

    catalog = PhaseCatalog(workflow_type, phases, require_criteria=require_criteria)
    catalog.validate()

    logger.info(f"Loaded phase catalog '{workflow_type}' with {len(catalog)} phases")
    return catalog


# =============================================================================
# Module-level cache for convenience
# =============================================================================

_catalogs: dict[WorkflowType, PhaseCatalog] = {}


def get_phase_catalog(workflow_type: WorkflowType | str) -> PhaseCatalog:
    """Get the bundled catalog for a workflow type (loaded once per process).

    Raises:
        ValueError: If the workflow type has no bundled catalog
    """
    workflow_type = WorkflowType(workflow_type)
    if workflow_type not in _catalogs:
        _catalogs[workflow_type] = load_phase_catalog(CATALOG_DIR / CATALOG_FILES[workflow_type])
    return _catalogs[workflow_type]


def get_academic_catalog() -> PhaseCatalog:
    """Get the academic 8-phase catalog."""
    return get_phase_catalog(WorkflowType.ACADEMIC_8_PHASE)
