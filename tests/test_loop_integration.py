"""
End-to-end tests for the quality loop.

The controller drives a real AIQualityConsultant (analyzer, recommendation
engine, command generator, executor) over a ToolRegistry. Only the dimension
scorers are scripted, one score per consultation.
"""

import pytest
from typing import Any, Dict, List

from emailcraft.analyzer import QualityAnalyzer
from emailcraft.commands import ActionExecutor, CommandGenerator
from emailcraft.consultant import AIQualityConsultant
from emailcraft.errors import AnalysisFailed
from emailcraft.loop import InMemorySessionStore, QualityLoopController
from emailcraft.models import CompletionReason, Dimension, DimensionScore, SessionStatus
from emailcraft.recommendations import RecommendationEngine
from emailcraft.tools import ToolRegistry
from emailcraft.utils.config import ConsultantConfig


pytestmark = pytest.mark.integration

MANUAL_IDS = ["emotion_urgency", "content_cta", "brand_tone"]


class SequenceScorer:
    """Returns the next scripted score per call; an Exception step is raised."""

    def __init__(self, dimension: Dimension, steps: List[Any]):
        self.dimension = dimension
        self.steps = list(steps)

    async def score(self, context) -> DimensionScore:
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        return DimensionScore(dimension=self.dimension, score=float(step))


def sequence_scorers(*steps, **overrides: List[Any]) -> List[SequenceScorer]:
    return [SequenceScorer(d, overrides.get(d.value, steps)) for d in Dimension]


class RecordingTools(ToolRegistry):
    """ToolRegistry whose handlers record the parameters they receive."""

    def __init__(self):
        super().__init__()
        self.patch_calls: List[Dict[str, Any]] = []
        self.copy_calls: List[Dict[str, Any]] = []
        self.register("patch_html", self._patch_html)
        self.register("generate_copy", self._generate_copy)

    async def _patch_html(self, params):
        self.patch_calls.append(params)
        return {"html_content": f"<html>{params['target']}</html>"}

    async def _generate_copy(self, params):
        self.copy_calls.append(params)
        return {"text": f"New {params.get('focus', 'copy')}"}


@pytest.fixture
def tools() -> RecordingTools:
    return RecordingTools()


@pytest.fixture
def build_consultant(tools):
    def _build(scorers, **overrides) -> AIQualityConsultant:
        config = ConsultantConfig().with_overrides(**overrides)
        return AIQualityConsultant(
            analyzer=QualityAnalyzer(scorers, config),
            recommendation_engine=RecommendationEngine(config),
            command_generator=CommandGenerator(config),
            executor=ActionExecutor(tools, config, pause_seconds=0, retry_delay=0),
            config=config,
        )

    return _build


class TestApprovalFlow:

    @pytest.mark.asyncio
    async def test_pauses_for_manual_commands(self, build_consultant, sample_request):
        controller = QualityLoopController(build_consultant(sequence_scorers(60)))

        session = await controller.run_quality_loop(sample_request)

        assert session.current_status == SessionStatus.REQUIRES_APPROVAL
        assert len(session.iterations) == 1
        iteration = session.iterations[0]
        assert iteration.pending_approvals == MANUAL_IDS
        assert iteration.recommendations_applied == ["visual_colors", "tech_accessibility"]
        assert session.current_html == "<html>image_alt_text</html>"

        active = await controller.get_active_sessions()
        assert active[0]["pending_approvals"] == MANUAL_IDS

    @pytest.mark.asyncio
    async def test_resume_after_approvals_until_gate(self, build_consultant, tools, sample_request):
        controller = QualityLoopController(build_consultant(sequence_scorers(60, 65, 75)))
        session = await controller.run_quality_loop(sample_request)

        session = await controller.continue_quality_loop(
            session.session_id,
            user_approvals={rec_id: True for rec_id in MANUAL_IDS},
        )

        assert len(session.iterations) == 2
        assert session.current_status == SessionStatus.IN_PROGRESS
        second = session.iterations[1]
        assert second.pending_approvals == []
        assert set(MANUAL_IDS) <= set(second.recommendations_applied)
        assert tools.copy_calls

        session = await controller.continue_quality_loop(session.session_id)

        assert session.current_status == SessionStatus.COMPLETED
        assert session.completion_reason == CompletionReason.QUALITY_GATE_PASSED
        assert session.success
        assert session.final_score == pytest.approx(75.0)
        assert session.total_improvement == pytest.approx(15.0)
        # Gate already passed, so the last consultation ran no tools
        assert session.iterations[2].execution_results == []

    @pytest.mark.asyncio
    async def test_updated_html_feeds_next_patch(self, build_consultant, tools, sample_request, sample_html):
        controller = QualityLoopController(build_consultant(sequence_scorers(60, 65)))
        session = await controller.run_quality_loop(sample_request)
        first_iteration_calls = len(tools.patch_calls)

        await controller.continue_quality_loop(
            session.session_id,
            user_approvals={rec_id: False for rec_id in MANUAL_IDS},
        )

        assert first_iteration_calls == 2
        assert all(c["current_html"] == sample_html for c in tools.patch_calls[:2])
        later = tools.patch_calls[first_iteration_calls:]
        assert later
        assert all(c["current_html"] == "<html>image_alt_text</html>" for c in later)

    @pytest.mark.asyncio
    async def test_updated_html_survives_serializing_store(
        self, build_consultant, tools, sample_request, serializing_store
    ):
        controller = QualityLoopController(
            build_consultant(sequence_scorers(60, 65)),
            store=serializing_store,
        )
        session = await controller.run_quality_loop(sample_request)

        await controller.continue_quality_loop(
            session.session_id,
            user_approvals={rec_id: False for rec_id in MANUAL_IDS},
        )

        later = tools.patch_calls[2:]
        assert later
        assert all(c["current_html"] == "<html>image_alt_text</html>" for c in later)

    @pytest.mark.asyncio
    async def test_approval_callback_answers_manual_commands(self, build_consultant, tools, sample_request):
        asked = []

        async def approve(command) -> bool:
            asked.append(command.recommendation_id)
            return command.recommendation_id != "brand_tone"

        sample_request.approval_callback = approve
        controller = QualityLoopController(build_consultant(sequence_scorers(60, 75)))

        session = await controller.run_quality_loop(sample_request)

        assert asked == MANUAL_IDS
        first = session.iterations[0]
        assert first.pending_approvals == []
        assert "brand_tone" not in first.recommendations_applied
        assert session.success


class TestFailures:

    @pytest.mark.asyncio
    async def test_analysis_failure_fails_session(self, build_consultant, sample_request):
        scorers = sequence_scorers(
            60, 65,
            visual_appeal=[60, AnalysisFailed("visual scorer returned no JSON")],
        )
        controller = QualityLoopController(build_consultant(scorers))

        session = await controller.run_quality_loop(
            sample_request,
            user_approvals={rec_id: True for rec_id in MANUAL_IDS},
        )

        assert session.current_status == SessionStatus.FAILED
        assert session.completion_reason == CompletionReason.ITERATION_FAILED
        assert not session.success
        failed = session.iterations[-1]
        assert len(session.iterations) == 2
        assert not failed.success
        assert "visual_appeal" in failed.error_message
        assert session.final_score == pytest.approx(60.0)
        assert await controller.get_active_sessions() == []


class TestLiveConfig:

    @pytest.mark.asyncio
    async def test_controller_follows_consultant_config_updates(
        self, build_consultant, fake_scorers, sample_request
    ):
        consultant = build_consultant(fake_scorers(75))
        controller = QualityLoopController(consultant, store=InMemorySessionStore())

        consultant.update_config(quality_gate_threshold=80)
        session = await controller.run_quality_loop(sample_request)

        assert controller.config.quality_gate_threshold == 80
        assert not session.iterations[0].consultant_response.analysis.quality_gate_passed
        assert session.completion_reason != CompletionReason.QUALITY_GATE_PASSED
        assert not session.success

    def test_explicit_config_kept(self, build_consultant, fake_scorers):
        consultant = build_consultant(fake_scorers(75))
        controller = QualityLoopController(consultant, config=ConsultantConfig(quality_gate_threshold=60))

        consultant.update_config(quality_gate_threshold=80)

        assert controller.config.quality_gate_threshold == 60
