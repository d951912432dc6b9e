"""
Tests for QualityAnalyzer: parallel scoring and result assembly.
"""

import pytest

from emailcraft.analyzer import QualityAnalyzer, create_quality_analyzer
from emailcraft.errors import AnalysisFailed
from emailcraft.utils.config import ConsultantConfig


class TestAnalyzerSetup:

    def test_requires_every_dimension(self, fake_scorers):
        scorers = fake_scorers()[:4]
        with pytest.raises(ValueError, match="brand_alignment"):
            QualityAnalyzer(scorers)

    def test_rejects_duplicate_dimension(self, fake_scorers):
        scorers = fake_scorers()
        with pytest.raises(ValueError, match="More than one"):
            QualityAnalyzer(scorers + scorers[:1])

    def test_factory_builds_claude_agents(self, mock_claude_client):
        analyzer = create_quality_analyzer(ConsultantConfig(), client=mock_claude_client)
        assert len(analyzer.scorers) == 5


class TestAnalyze:

    @pytest.mark.asyncio
    async def test_combines_scores(self, fake_scorers, sample_request):
        analyzer = QualityAnalyzer(fake_scorers(80, content_quality=60))
        result = await analyzer.analyze(sample_request)

        # 60 * 0.25 + 80 * 0.75
        assert result.overall_score == pytest.approx(75.0)
        assert result.quality_grade == "B"
        assert result.quality_gate_passed is True
        assert result.dimension_scores["content_quality"] == 60.0
        assert result.improvement_potential == pytest.approx(20.0)
        assert result.max_achievable_score == pytest.approx(0.25 * 80 + 0.75 * 95)
        assert result.recommendations == ()
        assert set(result.dimension_details) == set(result.dimension_scores)

    @pytest.mark.asyncio
    async def test_gate_uses_config_threshold(self, fake_scorers, sample_request):
        analyzer = QualityAnalyzer(fake_scorers(75), ConsultantConfig(quality_gate_threshold=80))
        result = await analyzer.analyze(sample_request)
        assert result.quality_gate_passed is False

    @pytest.mark.asyncio
    async def test_all_scorers_called_once(self, fake_scorers, sample_request):
        scorers = fake_scorers()
        await QualityAnalyzer(scorers).analyze(sample_request)
        assert all(s.calls == 1 for s in scorers)

    @pytest.mark.asyncio
    async def test_any_failure_raises(self, fake_scorers, sample_request):
        scorers = fake_scorers(errors={
            "visual_appeal": AnalysisFailed("no JSON"),
            "brand_alignment": RuntimeError("boom"),
        })
        with pytest.raises(AnalysisFailed) as exc_info:
            await QualityAnalyzer(scorers).analyze(sample_request)

        failures = exc_info.value.details["failures"]
        assert set(failures) == {"visual_appeal", "brand_alignment"}
        # Remaining scorers still ran
        assert all(s.calls == 1 for s in scorers)

    @pytest.mark.asyncio
    async def test_analyzed_elements(self, fake_scorers, sample_request):
        sample_request.subject_line = "An extremely long subject line that certainly exceeds fifty characters"
        result = await QualityAnalyzer(fake_scorers()).analyze(sample_request)

        elements = {e.element_id: e for e in result.analyzed_elements}
        assert elements["subject"].score == 60.0
        assert elements["subject"].issues
        # Sample asset has no alt text
        assert elements["email_images"].score == 70.0

    @pytest.mark.asyncio
    async def test_short_subject_scores_well(self, fake_scorers, sample_request):
        sample_request.assets_used = []
        result = await QualityAnalyzer(fake_scorers()).analyze(sample_request)

        elements = {e.element_id: e for e in result.analyzed_elements}
        assert elements["subject"].score == 85.0
        assert "email_images" not in elements
