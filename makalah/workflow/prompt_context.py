"""Workflow context block for the agent's system prompt.

The block tells the conversational agent which phase the session is in, what
the phase must produce and which tools to use. Text is in Indonesian to match
the rest of the system prompt.
"""

from makalah.workflow.academic_config import personalized_phase_description
from makalah.workflow.transition_engine import PhaseTransitionEngine, get_transition_engine
from makalah.workflow.workflow_state import WorkflowState


def generate_workflow_prompt_context(
    state: WorkflowState | None,
    engine: PhaseTransitionEngine | None = None,
    discipline: str | None = None,
    academic_level: str | None = None,
) -> str:
    """Build the workflow section of the system prompt.

    Args:
        state: Session workflow state (None when no workflow exists)
        engine: Transition engine override
        discipline: Discipline key used to personalize the phase description
        academic_level: Academic level key used for the word-count target

    Returns:
        Prompt text, or "" for missing or inactive workflows
    """
    if state is None or not state.is_active:
        return ""

    engine = engine or get_transition_engine()
    phase = engine.current_phase_view(state)
    required_tools = sorted(phase.required_tools)
    description = phase.description
    if discipline or academic_level:
        description = personalized_phase_description(phase, discipline, academic_level)

    lines = [
        "KONTEKS WORKFLOW AKADEMIK:",
        f"- Fase saat ini: {state.current_phase}/{state.max_phases} - {phase.name}",
        f"- Progress keseluruhan: {engine.percent_complete(state)}%",
        f"- Deskripsi fase: {description}",
        f"- Tools yang diperlukan: {', '.join(required_tools)}",
        f"- Kriteria penyelesaian: {'; '.join(phase.completion_criteria)}",
        f"- Output yang diharapkan: {', '.join(phase.expected_outputs)}",
        "",
        "INSTRUKSI WORKFLOW:",
        f"- Fokus pada penyelesaian fase {state.current_phase} sesuai kriteria yang ditetapkan",
        "- Gunakan tools yang diperlukan untuk mencapai output yang diharapkan",
        "- Berikan guidance jelas untuk transisi ke fase berikutnya",
        "- Pastikan kualitas akademik sesuai standar institusi",
    ]

    remaining = engine.required_tools_remaining(state)
    if remaining:
        lines.append(f"- Tools yang belum digunakan di fase ini: {', '.join(sorted(remaining))}")
    if state.is_finished:
        lines.append("- Semua fase telah selesai; bantu finalisasi dan submission")

    return "\n".join(lines) + "\n"
