"""
Tests for the dimension scoring agents.

Covers prompt building, reply parsing and failure handling. The Claude
client is mocked throughout.
"""

import pytest

from emailcraft.agents import (
    AGENT_CLASSES,
    AnalysisContext,
    ContentQualityAgent,
    TechnicalComplianceAgent,
    VisualAppealAgent,
    get_agent_by_name,
    get_all_agents,
)
from emailcraft.errors import AnalysisFailed
from emailcraft.models import Dimension


@pytest.fixture
def context(sample_request) -> AnalysisContext:
    return AnalysisContext.from_request(sample_request)


class TestAgentRegistry:

    def test_one_agent_per_dimension(self, mock_claude_client):
        agents = get_all_agents(mock_claude_client)
        assert len(agents) == len(AGENT_CLASSES) == 5
        assert {a.dimension for a in agents} == set(Dimension)

    def test_get_agent_by_name(self, mock_claude_client):
        agent = get_agent_by_name("visual_appeal", mock_claude_client)
        assert isinstance(agent, VisualAppealAgent)
        assert get_agent_by_name("nonexistent", mock_claude_client) is None

    def test_temperature_override(self, mock_claude_client):
        agent = ContentQualityAgent(mock_claude_client, temperature=0.0)
        assert agent.temperature == 0.0
        assert ContentQualityAgent(mock_claude_client).temperature == 0.3


class TestAnalysisContext:

    def test_from_request(self, sample_request):
        context = AnalysisContext.from_request(sample_request)
        assert context.topic == "Summer flights to Antalya"
        assert context.subject_line == "Summer in Antalya from 8 900 RUB"
        assert context.previous_score is None
        assert context.iteration == 0

    def test_subject_from_metadata(self, sample_request):
        sample_request.subject_line = None
        sample_request.content_metadata = {"subject": "From metadata"}
        assert AnalysisContext.from_request(sample_request).subject_line == "From metadata"

    def test_every_prompt_renders(self, mock_claude_client, context):
        for agent in get_all_agents(mock_claude_client):
            prompt = agent._prepare_prompt(context)
            assert agent.display_name.upper() in prompt
            assert "Summer in Antalya" in prompt


class TestScoring:

    @pytest.mark.asyncio
    async def test_score_parses_json(self, mock_claude_client, make_claude_response, context):
        mock_claude_client.analyze_with_retry.return_value = make_claude_response(
            '{"score": 82.5, "issues": ["Long subject"], "insights": ["Clear CTA"]}'
        )
        result = await ContentQualityAgent(mock_claude_client).score(context)

        assert result.dimension == Dimension.CONTENT_QUALITY
        assert result.score == 82.5
        assert result.issues == ["Long subject"]
        assert result.insights == ["Clear CTA"]

    @pytest.mark.asyncio
    async def test_score_parses_fenced_json(self, mock_claude_client, make_claude_response, context):
        mock_claude_client.analyze_with_retry.return_value = make_claude_response(
            'Here is my review:\n```json\n{"score": 64, "issues": "Low contrast"}\n```'
        )
        result = await TechnicalComplianceAgent(mock_claude_client).score(context)

        assert result.score == 64.0
        assert result.issues == ["Low contrast"]

    @pytest.mark.asyncio
    async def test_score_parses_embedded_object(self, mock_claude_client, make_claude_response, context):
        mock_claude_client.analyze_with_retry.return_value = make_claude_response(
            'Score follows {"score": "71", "insights": []} thanks'
        )
        result = await ContentQualityAgent(mock_claude_client).score(context)
        assert result.score == 71.0

    @pytest.mark.asyncio
    async def test_score_clamped(self, mock_claude_client, make_claude_response, context):
        mock_claude_client.analyze_with_retry.return_value = make_claude_response('{"score": 140}')
        result = await ContentQualityAgent(mock_claude_client).score(context)
        assert result.score == 100.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("output", [
        "I cannot score this email.",
        '{"issues": ["no score here"]}',
        '{"score": "high"}',
        '{"score": true}',
        '{"score": NaN}',
        "",
    ])
    async def test_unusable_output_raises(self, mock_claude_client, make_claude_response, context, output):
        mock_claude_client.analyze_with_retry.return_value = make_claude_response(output)
        with pytest.raises(AnalysisFailed) as exc_info:
            await ContentQualityAgent(mock_claude_client).score(context)
        assert exc_info.value.details["dimension"] == "content_quality"

    @pytest.mark.asyncio
    async def test_api_failure_raises(self, mock_claude_client, make_claude_response, context):
        mock_claude_client.analyze_with_retry.return_value = make_claude_response(
            "", success=False, error="overloaded"
        )
        with pytest.raises(AnalysisFailed, match="overloaded"):
            await ContentQualityAgent(mock_claude_client).score(context)

    @pytest.mark.asyncio
    async def test_screenshots_only_for_visual(self, mock_claude_client, sample_request):
        sample_request.screenshots = ["iVBORw0KGgo="]
        context = AnalysisContext.from_request(sample_request)

        await VisualAppealAgent(mock_claude_client).score(context)
        assert mock_claude_client.analyze_with_retry.call_args.kwargs["images"] == ["iVBORw0KGgo="]

        await ContentQualityAgent(mock_claude_client).score(context)
        assert mock_claude_client.analyze_with_retry.call_args.kwargs["images"] is None
