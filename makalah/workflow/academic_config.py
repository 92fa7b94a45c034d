"""Academic workflow configuration.

Discipline-specific phase customizations, academic-level word-count targets
and citation styles, loaded from the bundled ``academic_config.yaml``. Used to
personalize phase descriptions shown to the agent.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

from makalah.workflow.phase_catalog import PhaseDefinition

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "academic_config.yaml"


class PhaseCustomization(BaseModel):
    """Discipline-specific guidance for one phase."""

    tools: list[str] = Field(default_factory=list)
    prompts: list[str] = Field(default_factory=list)
    expected_outputs: list[str] = Field(default_factory=list)


class DisciplineConfig(BaseModel):
    phase_customizations: dict[int, PhaseCustomization] = Field(default_factory=dict)


class AcademicLevelConfig(BaseModel):
    complexity: Literal["basic", "intermediate", "advanced"]
    word_count_targets: dict[int, int] = Field(default_factory=dict)
    quality_criteria: list[str] = Field(default_factory=list)


class CitationStyle(BaseModel):
    format: str
    examples: list[str] = Field(default_factory=list)


class AcademicWorkflowConfig(BaseModel):
    """Complete academic configuration for the 8-phase workflow."""

    disciplines: dict[str, DisciplineConfig] = Field(default_factory=dict)
    academic_levels: dict[str, AcademicLevelConfig] = Field(default_factory=dict)
    citation_styles: dict[str, CitationStyle] = Field(default_factory=dict)

    def customization_for(self, discipline: str, ordinal: int) -> PhaseCustomization | None:
        config = self.disciplines.get(discipline)
        if config is None:
            return None
        return config.phase_customizations.get(ordinal)

    def word_count_target(self, academic_level: str, ordinal: int) -> int | None:
        level = self.academic_levels.get(academic_level)
        if level is None:
            return None
        return level.word_count_targets.get(ordinal)


def load_academic_config(config_path: Path | None = None) -> AcademicWorkflowConfig:
    """Load academic configuration from YAML.

    Args:
        config_path: Path to config YAML. Defaults to bundled config.

    Returns:
        Validated AcademicWorkflowConfig
    """
    config_path = config_path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Academic config not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    config = AcademicWorkflowConfig.model_validate(data)
    logger.info(
        f"Loaded academic config: {len(config.disciplines)} disciplines, "
        f"{len(config.academic_levels)} levels, {len(config.citation_styles)} citation styles"
    )
    return config


@lru_cache(maxsize=1)
def get_academic_config() -> AcademicWorkflowConfig:
    """Get the bundled academic configuration (loaded once)."""
    return load_academic_config()


def personalized_phase_description(
    phase: PhaseDefinition,
    discipline: str | None = None,
    academic_level: str | None = None,
    config: AcademicWorkflowConfig | None = None,
) -> str:
    """Extend a phase description with discipline focus and word-count target.

    Unknown disciplines or levels are ignored.

    Args:
        phase: Phase to describe
        discipline: Discipline key (e.g. "computer-science")
        academic_level: Level key (e.g. "graduate")
        config: Config override (defaults to bundled config)

    Returns:
        Description text
    """
    config = config or get_academic_config()
    description = phase.description

    if discipline:
        customization = config.customization_for(discipline, phase.phase)
        if customization and customization.prompts:
            description += (
                f"\n\nFocus khusus untuk {discipline}: {', '.join(customization.prompts)}"
            )

    if academic_level:
        target_words = config.word_count_target(academic_level, phase.phase)
        if target_words:
            description += f"\n\nTarget kata ({academic_level}): ~{target_words} kata"

    return description
