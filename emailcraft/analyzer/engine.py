"""
Quality Analyzer

Runs the five dimension scorers concurrently and combines them into a
QualityAnalysisResult.

Workflow:
1. Build AnalysisContext from the request
2. Score all dimensions in parallel (asyncio.gather barrier)
3. Combine: weighted score, grade, confidence, improvement potential
4. Inspect individual elements (subject line, images)

A scorer is any object with a `dimension` attribute and an
`async score(context) -> DimensionScore` method.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..agents import AnalysisContext, get_all_agents
from ..errors import AnalysisFailed
from ..models import (
    AnalyzedElement,
    ConsultantRequest,
    Dimension,
    DimensionScore,
    QualityAnalysisResult,
)
from ..quality.scoring import (
    calculate_confidence_level,
    calculate_max_achievable_score,
    calculate_overall_score,
    determine_quality_grade,
    estimate_improvement_potential,
    is_gate_passed,
)
from ..utils.config import ConsultantConfig
from .client import ClaudeClient

logger = logging.getLogger(__name__)


SUBJECT_LINE_MAX_LENGTH = 50


class QualityAnalyzer:
    """
    Combines per-dimension scores into one analysis snapshot.

    Usage:
        analyzer = QualityAnalyzer(scorers, config)
        result = await analyzer.analyze(request)
    """

    def __init__(self, scorers: Sequence[Any], config: Optional[ConsultantConfig] = None):
        """
        Args:
            scorers: One scorer per Dimension
            config: Consultant configuration (gate threshold, brand)
        """
        self.config = config or ConsultantConfig()
        self.scorers = list(scorers)

        covered = {s.dimension for s in self.scorers}
        missing = [d.value for d in Dimension if d not in covered]
        if missing:
            raise ValueError(f"No scorer for dimensions: {', '.join(missing)}")
        if len(covered) != len(self.scorers):
            raise ValueError("More than one scorer per dimension")

        logger.info(f"QualityAnalyzer initialized with {len(self.scorers)} scorers")

    async def analyze(self, request: ConsultantRequest) -> QualityAnalysisResult:
        """
        Score the email in the request.

        Raises:
            AnalysisFailed: any dimension could not be scored
        """
        start_time = datetime.now()
        context = AnalysisContext.from_request(request, brand=self.config.brand)

        logger.info(
            f"Analyzing '{request.topic}' (iteration {request.iteration_count}, "
            f"{len(request.html_content)} chars)"
        )

        outcomes = await asyncio.gather(
            *(scorer.score(context) for scorer in self.scorers),
            return_exceptions=True,
        )

        details: Dict[str, DimensionScore] = {}
        failures: Dict[str, str] = {}
        for scorer, outcome in zip(self.scorers, outcomes):
            name = scorer.dimension.value
            if isinstance(outcome, DimensionScore):
                details[name] = outcome
            elif isinstance(outcome, Exception):
                logger.error(f"Scorer {name} failed: {outcome}")
                failures[name] = str(outcome)
            else:
                raise outcome

        if failures:
            raise AnalysisFailed(
                f"Failed to score {len(failures)} dimension(s): {', '.join(sorted(failures))}",
                {"failures": failures},
            )

        scores = {name: d.score for name, d in details.items()}
        overall = calculate_overall_score(scores)
        potential = estimate_improvement_potential(scores)

        result = QualityAnalysisResult(
            overall_score=overall,
            quality_grade=determine_quality_grade(overall),
            dimension_scores=scores,
            quality_gate_passed=is_gate_passed(overall, self.config.quality_gate_threshold),
            improvement_potential=potential,
            confidence_level=calculate_confidence_level(scores.values()),
            max_achievable_score=calculate_max_achievable_score(scores),
            estimated_final_score=min(100.0, overall + potential),
            dimension_details=details,
            analyzed_elements=tuple(self._analyze_elements(context)),
            analysis_time=(datetime.now() - start_time).total_seconds(),
        )

        logger.info(
            f"Analysis complete: {overall:.1f} ({result.quality_grade}), "
            f"gate {'passed' if result.quality_gate_passed else 'failed'}"
        )
        return result

    def _analyze_elements(self, context: AnalysisContext) -> List[AnalyzedElement]:
        elements = []

        if context.subject_line:
            too_long = len(context.subject_line) > SUBJECT_LINE_MAX_LENGTH
            elements.append(AnalyzedElement(
                element_type="subject_line",
                element_id="subject",
                current_value=context.subject_line,
                score=60.0 if too_long else 85.0,
                issues=["Subject line longer than 50 characters"] if too_long else [],
                suggestions=["Shorten to 45 characters or fewer"] if too_long else [],
            ))

        if context.assets:
            names = [str(a.get("name") or a.get("url") or "") for a in context.assets]
            missing_alt = [n for n, a in zip(names, context.assets) if not a.get("alt")]
            elements.append(AnalyzedElement(
                element_type="image",
                element_id="email_images",
                current_value=", ".join(n for n in names if n),
                score=70.0 if missing_alt else 80.0,
                issues=[f"{len(missing_alt)} image(s) without alt text"] if missing_alt else [],
                suggestions=["Add descriptive alt text"] if missing_alt else [],
            ))

        return elements


def create_quality_analyzer(
    config: Optional[ConsultantConfig] = None,
    client: Optional[ClaudeClient] = None,
    api_key: Optional[str] = None,
) -> QualityAnalyzer:
    """
    Build an analyzer backed by the Claude dimension agents.

    Args:
        config: Consultant configuration
        client: Existing Claude client (created from api_key otherwise)
        api_key: Anthropic API key
    """
    config = config or ConsultantConfig()
    client = client or ClaudeClient(api_key=api_key, model=config.ai_model)
    agents = get_all_agents(client, temperature=config.analysis_temperature)
    return QualityAnalyzer(agents, config)
