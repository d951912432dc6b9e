"""
Recommendation Reasoning Writer

Optional Claude-backed writer that replaces the templated reasoning of a
recommendation with a short explanation tailored to the analysis.
"""

import logging
from typing import TYPE_CHECKING

from ..errors import RecommendationGenerationFailed
from ..models import QualityAnalysisResult, Recommendation

if TYPE_CHECKING:
    from ..analyzer.client import ClaudeClient

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You explain email improvement recommendations to marketers.
Answer in at most two plain sentences. No markdown."""

PROMPT_TEMPLATE = """Recommendation: {title}
Problem: {description}
Dimension: {dimension} (score {score:.1f})
Known issues: {issues}
Overall email score: {overall:.1f} ({grade})

Explain why this change should help."""


class ClaudeReasoningWriter:
    """Writes recommendation reasoning with Claude."""

    MAX_OUTPUT_TOKENS = 200

    def __init__(self, client: "ClaudeClient", temperature: float = 0.3):
        self.client = client
        self.temperature = temperature

    async def write_reasoning(
        self,
        recommendation: Recommendation,
        analysis: QualityAnalysisResult,
    ) -> str:
        """
        Raises:
            RecommendationGenerationFailed: the call failed or returned nothing
        """
        prompt = PROMPT_TEMPLATE.format(
            title=recommendation.title,
            description=recommendation.description,
            dimension=recommendation.dimension.value,
            score=analysis.dimension_scores.get(recommendation.dimension.value, 0.0),
            issues="; ".join(recommendation.problem_details.get("issues", [])) or "none listed",
            overall=analysis.overall_score,
            grade=analysis.quality_grade,
        )

        response = await self.client.analyze_with_retry(
            prompt=prompt,
            system=SYSTEM_PROMPT,
            max_tokens=self.MAX_OUTPUT_TOKENS,
            temperature=self.temperature,
        )

        text = response.content.strip() if response.success else ""
        if not text:
            logger.error(f"Reasoning writer failed for {recommendation.id}: {response.error}")
            raise RecommendationGenerationFailed(
                f"Could not write reasoning for {recommendation.id}",
                {"recommendation_id": recommendation.id, "error": response.error},
            )
        return text
