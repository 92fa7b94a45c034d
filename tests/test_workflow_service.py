"""Tests for AcademicWorkflowService - the orchestrator-facing facade.

Tests cover:
- start_session() with trigger detection and explicit types
- The tool/complete/advance turn cycle through the service
- History and snapshot side effects
- resume_session() from snapshots
- Settings-based construction
"""

import pytest

from makalah.config import ChatMode, WorkflowSettings, WorkflowType
from makalah.session.snapshot_repository import WorkflowSnapshotRepository
from makalah.session.workflow_history import WorkflowHistory
from makalah.session.workflow_service import AcademicWorkflowService
from makalah.session.workflow_store import WorkflowStateStore
from makalah.workflow.errors import TransitionError


@pytest.fixture
def snapshots(tmp_path):
    return WorkflowSnapshotRepository(tmp_path / "snapshots")


@pytest.fixture
def service(store, snapshots):
    """Service over a private store with snapshot persistence."""
    return AcademicWorkflowService(store=store, history=WorkflowHistory(), snapshots=snapshots)


def _finish_phase(service, session_id):
    for tool in sorted(service.required_tools_remaining(session_id)):
        service.record_tool_use(session_id, tool)
    state = service.get_state(session_id)
    return service.complete_phase(session_id, state.current_phase)


class TestStartSession:
    """Tests for start_session()."""

    def test_formal_academic_query_starts_workflow(self, service):
        result = service.start_session("chat-1", ChatMode.FORMAL, "Saya ingin menulis makalah")
        assert result.ok is True
        assert result.state.type == "academic-8-phase"
        assert result.state.chat_mode == ChatMode.FORMAL

    def test_casual_mode_starts_free_conversation(self, service):
        result = service.start_session("chat-1", ChatMode.CASUAL, "Saya ingin menulis makalah")
        assert result.state.type == "free-conversation"
        assert service.prompt_context("chat-1") == ""
        assert service.progress_view("chat-1") is None

    def test_explicit_type(self, service):
        result = service.start_session(
            "chat-1", ChatMode.CASUAL, workflow_type=WorkflowType.ACADEMIC_8_PHASE
        )
        assert result.state.type == "academic-8-phase"

    def test_unknown_type(self, service):
        result = service.start_session("chat-1", ChatMode.FORMAL, workflow_type="poetry")
        assert result.error == TransitionError.UNSUPPORTED_WORKFLOW_TYPE

    def test_records_history_once(self, service):
        service.start_session("chat-1", ChatMode.FORMAL, "skripsi")
        service.start_session("chat-1", ChatMode.FORMAL, "skripsi")
        assert len(service.history.for_session("chat-1")) == 1

    def test_writes_snapshot(self, service, snapshots):
        service.start_session("chat-1", ChatMode.FORMAL, "skripsi")
        assert snapshots.exists("chat-1")

    def test_first_snapshot_written_under_session_lock(self, service, snapshots, monkeypatch):
        """The initial snapshot can never land after a later turn's snapshot."""
        held = []
        save = snapshots.save

        def checked_save(state):
            held.append(service.store._session_locks[state.session_id].locked())
            return save(state)

        monkeypatch.setattr(snapshots, "save", checked_save)
        service.start_session("chat-1", ChatMode.FORMAL, "skripsi")
        service.record_tool_use("chat-1", "web_search")

        assert held == [True, True]
        assert snapshots.load("chat-1").tools_used_in(1) == {"web_search"}


class TestTurnCycle:
    """Tool recording, gating, completion and advancement through the service."""

    def test_gate_and_complete(self, service):
        service.start_session("chat-1", ChatMode.FORMAL, "penelitian")
        assert service.is_tool_admitted("chat-1", "web_search") is True
        assert service.is_tool_admitted("chat-1", "cite_manager") is False

        early = service.complete_phase("chat-1", 1)
        assert early.error == TransitionError.TOOLS_INCOMPLETE

        service.record_tool_use("chat-1", "web_search")
        result = service.complete_phase("chat-1", 1, artifacts=["topic"])
        assert result.ok is True
        assert service.percent_complete("chat-1") == 13

        advanced = service.advance("chat-1")
        assert advanced.state.current_phase == 2
        assert service.required_tools_remaining("chat-1") == {"web_search", "artifact_store"}

    def test_unknown_session(self, service):
        assert service.advance("missing").error == TransitionError.UNKNOWN_SESSION
        assert service.record_tool_use("missing", "web_search").error == (
            TransitionError.UNKNOWN_SESSION
        )
        assert service.is_tool_admitted("missing", "cite_manager") is True
        assert service.percent_complete("missing") == 0
        assert service.required_tools_remaining("missing") == frozenset()

    def test_progress_updates(self, service):
        service.start_session("chat-1", ChatMode.FORMAL, "makalah")
        assert service.start_phase("chat-1").state.progress_for(1).started is True
        result = service.update_phase_progress("chat-1", 1, ["outline-v0"], quality=0.4)
        assert result.state.progress_for(1).artifacts == ("outline-v0",)

    def test_explicit_phase_zero_rejected(self, service):
        service.start_session("chat-1", ChatMode.FORMAL, "makalah")
        result = service.record_tool_use("chat-1", "web_search", phase_ordinal=0)

        assert result.ok is False
        assert result.error == TransitionError.WRONG_PHASE
        assert service.get_state("chat-1").tool_usage == {}

    def test_explicit_earlier_phase(self, service):
        service.start_session("chat-1", ChatMode.FORMAL, "makalah")
        _finish_phase(service, "chat-1")
        service.advance("chat-1")

        result = service.record_tool_use("chat-1", "cite_manager", phase_ordinal=1)
        assert result.state.tools_used_in(1) == {"web_search", "cite_manager"}
        assert result.state.tools_used_in(2) == frozenset()

    def test_snapshot_tracks_mutations(self, service, snapshots):
        service.start_session("chat-1", ChatMode.FORMAL, "makalah")
        service.record_tool_use("chat-1", "web_search")
        assert snapshots.load("chat-1").tools_used_in(1) == {"web_search"}

    def test_full_workflow_records_success(self, service):
        service.start_session("chat-1", ChatMode.FORMAL, "makalah")
        for _ in range(7):
            assert _finish_phase(service, "chat-1").ok
            assert service.advance("chat-1").ok
        assert _finish_phase(service, "chat-1").ok

        assert service.advance("chat-1").error == TransitionError.WORKFLOW_FINISHED
        entry = service.history.for_session("chat-1")[0]
        assert entry.success is True
        assert entry.final_phase == 8
        assert service.progress_view("chat-1").is_finished is True

    def test_prompt_context(self, service):
        service.start_session("chat-1", ChatMode.FORMAL, "makalah")
        assert "Fase saat ini: 1/8" in service.prompt_context("chat-1")


class TestResumeAndEnd:
    """Tests for resume_session() and end_session()."""

    def test_resume_from_snapshot(self, snapshots, engine):
        first = AcademicWorkflowService(store=WorkflowStateStore(engine), snapshots=snapshots)
        first.start_session("chat-1", ChatMode.FORMAL, "makalah")
        first.record_tool_use("chat-1", "web_search")
        first.complete_phase("chat-1", 1)

        restarted = AcademicWorkflowService(store=WorkflowStateStore(engine), snapshots=snapshots)
        assert restarted.get_state("chat-1") is None

        result = restarted.resume_session("chat-1")
        assert result.ok is True
        assert result.state.completed_phases == frozenset({1})
        assert restarted.advance("chat-1").state.current_phase == 2

    def test_resume_unknown(self, service):
        assert service.resume_session("missing").error == TransitionError.UNKNOWN_SESSION

    def test_resume_in_memory(self, service):
        started = service.start_session("chat-1", ChatMode.FORMAL, "makalah").state
        assert service.resume_session("chat-1").state is started

    def test_end_session(self, service, snapshots):
        service.start_session("chat-1", ChatMode.FORMAL, "makalah")
        final = service.end_session("chat-1")

        assert final.current_phase == 1
        assert service.get_state("chat-1") is None
        assert not snapshots.exists("chat-1")
        entry = service.history.for_session("chat-1")[0]
        assert entry.success is False
        assert entry.completed_at is not None

    def test_end_session_keeps_similar_session_snapshot(self, service, snapshots):
        service.start_session("chat:1", ChatMode.FORMAL, "makalah")
        service.record_tool_use("chat:1", "web_search")
        service.start_session("chat_1", ChatMode.FORMAL, "makalah")

        service.end_session("chat_1")
        assert snapshots.load("chat:1").tools_used_in(1) == {"web_search"}


class TestFromSettings:
    """Tests for settings-based construction."""

    def test_from_settings(self, tmp_path):
        settings = WorkflowSettings(snapshot_dir=tmp_path / "snaps", history_limit=5)
        service = AcademicWorkflowService.from_settings(settings)
        assert service.history.max_entries == 5
        assert service.snapshots.base_dir == tmp_path / "snaps"

    def test_from_settings_without_snapshots(self):
        service = AcademicWorkflowService.from_settings(WorkflowSettings())
        assert service.snapshots is None
