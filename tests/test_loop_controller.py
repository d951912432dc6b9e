"""
Tests for QualityLoopController session lifecycle.

The consultant is replaced by a scripted stub returning a fixed sequence
of overall scores, so every scenario is deterministic.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from emailcraft.errors import AnalysisFailed, InvalidRequest, SessionNotFound
from emailcraft.loop import InMemorySessionStore, QualityLoopController, create_quality_loop_controller
from emailcraft.models import CompletionReason, SessionStatus
from emailcraft.utils.config import ConsultantConfig, Settings


def controller_for(consultant) -> QualityLoopController:
    return QualityLoopController(consultant, store=InMemorySessionStore())


class TestLoopOutcomes:

    @pytest.mark.asyncio
    async def test_max_iterations(self, scripted_consultant, sample_request):
        controller = controller_for(scripted_consultant([50, 68, 69]))
        session = await controller.run_quality_loop(sample_request)

        assert len(session.iterations) == 3
        assert session.current_status == SessionStatus.COMPLETED
        assert session.completion_reason == CompletionReason.MAX_ITERATIONS_REACHED
        assert not session.success
        assert session.final_score == pytest.approx(69.0)
        assert session.total_improvement == pytest.approx(19.0)
        assert [i.score_improvement for i in session.iterations] == pytest.approx([0.0, 18.0, 1.0])
        assert session.session_end is not None

    @pytest.mark.asyncio
    async def test_gate_passed(self, scripted_consultant, sample_request):
        controller = controller_for(scripted_consultant([50, 75]))
        session = await controller.run_quality_loop(sample_request)

        assert len(session.iterations) == 2
        assert session.current_status == SessionStatus.COMPLETED
        assert session.completion_reason == CompletionReason.QUALITY_GATE_PASSED
        assert session.success
        assert session.total_improvement == pytest.approx(25.0)

    @pytest.mark.asyncio
    async def test_critical_score_escalates(self, scripted_consultant, sample_request):
        controller = controller_for(scripted_consultant([20]))
        session = await controller.run_quality_loop(sample_request)

        assert len(session.iterations) == 1
        assert session.current_status == SessionStatus.ESCALATED
        assert session.completion_reason == CompletionReason.CRITICAL_ISSUES
        assert session.escalation_required

    @pytest.mark.asyncio
    async def test_diminishing_returns(self, scripted_consultant, sample_request):
        consultant = scripted_consultant([72, 72.5], loop_config=ConsultantConfig(quality_gate_threshold=80))
        session = await controller_for(consultant).run_quality_loop(sample_request)

        assert len(session.iterations) == 2
        assert session.current_status == SessionStatus.ESCALATED
        assert session.completion_reason == CompletionReason.DIMINISHING_RETURNS

    @pytest.mark.asyncio
    async def test_failed_iteration(self, scripted_consultant, sample_request):
        consultant = scripted_consultant([50, AnalysisFailed("visual scorer returned no JSON")])
        session = await controller_for(consultant).run_quality_loop(sample_request)

        assert session.current_status == SessionStatus.FAILED
        assert session.completion_reason == CompletionReason.ITERATION_FAILED
        failed = session.iterations[-1]
        assert not failed.success
        assert failed.final_score == 0.0
        assert failed.initial_score == pytest.approx(50.0)
        assert "no JSON" in failed.error_message
        # Score of the last good iteration is kept
        assert session.final_score == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_finished_session_removed(self, scripted_consultant, sample_request):
        controller = controller_for(scripted_consultant([80]))
        session = await controller.run_quality_loop(sample_request)

        assert await controller.store.get(session.session_id) is None
        with pytest.raises(SessionNotFound):
            await controller.get_session(session.session_id)


class TestIterationRequests:

    @pytest.mark.asyncio
    async def test_history_passed_to_consultant(self, scripted_consultant, sample_request):
        consultant = scripted_consultant([50, 60, 65])
        await controller_for(consultant).run_quality_loop(sample_request)

        first, second, third = consultant.requests
        assert first.iteration_count == 0
        assert first.previous_analysis is None
        assert second.iteration_count == 1
        assert second.previous_analysis.overall_score == pytest.approx(50.0)
        assert len(third.improvement_history) == 2
        assert third.session_id == first.session_id
        # The original request is left untouched
        assert sample_request.iteration_count == 0


class TestApprovals:

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, scripted_consultant, sample_request):
        consultant = scripted_consultant([50, 60, 75], pending=[["content_cta"]])
        controller = controller_for(consultant)

        session = await controller.run_quality_loop(sample_request)
        assert session.current_status == SessionStatus.REQUIRES_APPROVAL
        assert session.iterations[-1].pending_approvals == ["content_cta"]

        active = await controller.get_active_sessions()
        assert [s["session_id"] for s in active] == [session.session_id]
        assert active[0]["pending_approvals"] == ["content_cta"]

        session = await controller.continue_quality_loop(
            session.session_id, user_approvals={"content_cta": True}
        )
        assert len(session.iterations) == 2
        assert session.current_status == SessionStatus.IN_PROGRESS
        assert consultant.requests[1].user_approvals == {"content_cta": True}

        session = await controller.continue_quality_loop(session.session_id)
        assert session.current_status == SessionStatus.COMPLETED
        assert session.success
        # Approvals persist across iterations
        assert consultant.requests[2].user_approvals == {"content_cta": True}

    @pytest.mark.asyncio
    async def test_approvals_given_up_front(self, scripted_consultant, sample_request):
        consultant = scripted_consultant([50, 75], pending=[["content_cta"]])
        session = await controller_for(consultant).run_quality_loop(
            sample_request, user_approvals={"content_cta": True}
        )

        assert session.success
        assert len(session.iterations) == 2
        assert consultant.requests[0].user_approvals == {"content_cta": True}
        assert sample_request.user_approvals == {}

    @pytest.mark.asyncio
    async def test_continue_without_decision_stays_paused(self, scripted_consultant, sample_request):
        consultant = scripted_consultant([50, 60], pending=[["content_cta"]])
        controller = controller_for(consultant)

        session = await controller.run_quality_loop(sample_request)
        session = await controller.continue_quality_loop(session.session_id)

        assert session.current_status == SessionStatus.REQUIRES_APPROVAL
        assert len(session.iterations) == 1
        assert len(consultant.requests) == 1

    @pytest.mark.asyncio
    async def test_complete_on_request(self, scripted_consultant, sample_request):
        controller = controller_for(scripted_consultant([50], pending=[["content_cta"]]))
        session = await controller.run_quality_loop(sample_request)

        session = await controller.complete_quality_loop(session.session_id)
        assert session.current_status == SessionStatus.COMPLETED
        assert session.completion_reason == CompletionReason.USER_REQUESTED
        assert not session.success
        assert await controller.get_active_sessions() == []


async def approve_all(command) -> bool:
    return True


class TestApprovalCallbacks:

    @pytest.mark.asyncio
    async def test_callback_reaches_every_iteration_through_serializing_store(
        self, scripted_consultant, sample_request, serializing_store
    ):
        consultant = scripted_consultant([50, 55, 60])
        sample_request.approval_callback = approve_all
        controller = QualityLoopController(consultant, store=serializing_store)

        session = await controller.run_quality_loop(sample_request)

        assert len(session.iterations) == 3
        assert [r.approval_callback for r in consultant.requests] == [approve_all] * 3
        assert controller._approval_callbacks == {}

    @pytest.mark.asyncio
    async def test_callback_given_on_continue_is_remembered(
        self, scripted_consultant, sample_request, serializing_store
    ):
        consultant = scripted_consultant([50, 55, 60], pending=[["content_cta"]])
        controller = QualityLoopController(consultant, store=serializing_store)

        session = await controller.start_quality_loop(sample_request)
        assert consultant.requests[0].approval_callback is None

        session = await controller.continue_quality_loop(
            session.session_id,
            user_approvals={"content_cta": False},
            approval_callback=approve_all,
        )
        session = await controller.continue_quality_loop(session.session_id)

        assert consultant.requests[1].approval_callback is approve_all
        assert consultant.requests[2].approval_callback is approve_all

    @pytest.mark.asyncio
    async def test_callback_dropped_when_session_ends(self, scripted_consultant, sample_request):
        sample_request.approval_callback = approve_all
        controller = controller_for(scripted_consultant([50], pending=[["content_cta"]]))

        session = await controller.start_quality_loop(sample_request)
        assert session.session_id in controller._approval_callbacks

        await controller.complete_quality_loop(session.session_id)
        assert controller._approval_callbacks == {}


class TestSessionManagement:

    @pytest.mark.asyncio
    async def test_invalid_request(self, scripted_consultant, sample_request):
        sample_request.topic = "  "
        with pytest.raises(InvalidRequest) as exc_info:
            await controller_for(scripted_consultant([50])).start_quality_loop(sample_request)
        assert exc_info.value.details["missing"] == ["topic"]

    @pytest.mark.asyncio
    async def test_duplicate_session_id(self, scripted_consultant, sample_request):
        controller = controller_for(scripted_consultant([50, 50], pending=[["content_cta"]]))
        await controller.start_quality_loop(sample_request, session_id="ql_fixed")

        with pytest.raises(InvalidRequest, match="already exists"):
            await controller.start_quality_loop(sample_request, session_id="ql_fixed")

    @pytest.mark.asyncio
    async def test_unknown_session(self, scripted_consultant):
        controller = controller_for(scripted_consultant([]))
        with pytest.raises(SessionNotFound):
            await controller.continue_quality_loop("ql_missing")
        with pytest.raises(SessionNotFound):
            await controller.get_session_status("ql_missing")

    @pytest.mark.asyncio
    async def test_concurrent_continues_serialize(self, scripted_consultant, sample_request):
        controller = controller_for(scripted_consultant([50, 55, 60]))
        session = await controller.start_quality_loop(sample_request)

        await asyncio.gather(
            controller.continue_quality_loop(session.session_id),
            controller.continue_quality_loop(session.session_id),
        )

        assert [i.iteration_number for i in session.iterations] == [1, 2, 3]
        assert session.completion_reason == CompletionReason.MAX_ITERATIONS_REACHED

    @pytest.mark.asyncio
    async def test_session_status(self, scripted_consultant, sample_request):
        controller = controller_for(scripted_consultant([50, 60], pending=[["content_cta"]]))
        session = await controller.start_quality_loop(sample_request)

        status = await controller.get_session_status(session.session_id)
        assert status["status"] == "requires_approval"
        assert status["iterations"] == 1
        assert status["email_topic"] == sample_request.topic

    @pytest.mark.asyncio
    async def test_analytics(self, scripted_consultant, sample_request):
        consultant = scripted_consultant([50, 75, 20])
        controller = controller_for(consultant)

        await controller.run_quality_loop(sample_request)
        await controller.run_quality_loop(sample_request)

        analytics = controller.get_analytics()
        assert analytics["total_sessions"] == 2
        assert analytics["finished_sessions"] == 2
        assert analytics["successful_sessions"] == 1
        assert analytics["escalated_sessions"] == 1
        assert analytics["total_iterations"] == 3
        assert analytics["quality_gate_pass_rate"] == 0.5
        assert analytics["completion_reasons"] == {
            "quality_gate_passed": 1,
            "critical_issues": 1,
        }
        assert len(analytics["recent_sessions"]) == 2


class TestFactory:

    def test_uses_memory_store_without_redis(self, scripted_consultant):
        settings = Settings(REDIS_URL=None, _env_file=None)
        consultant = scripted_consultant([])
        controller = create_quality_loop_controller(consultant=consultant, settings=settings)

        assert isinstance(controller.store, InMemorySessionStore)
        assert controller.config is consultant.config


class TestClose:

    @pytest.mark.asyncio
    async def test_closes_consultant_and_store(self, scripted_consultant):
        consultant = scripted_consultant([])
        consultant.close = AsyncMock()
        store = InMemorySessionStore()
        store.close = AsyncMock()

        async with QualityLoopController(consultant, store=store):
            pass

        consultant.close.assert_awaited_once()
        store.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resources_without_close_are_skipped(self, scripted_consultant):
        await controller_for(scripted_consultant([])).close()
