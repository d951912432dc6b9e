"""
Recommendation Engine

Turns a QualityAnalysisResult into a prioritized, deterministic list of
Recommendations. Rules are registered once and evaluated in a fixed order;
each rule yields at most one recommendation whose id is the rule key.

Guarantees:
- Every dimension below 80 yields at least one recommendation
- Every dimension below the critical threshold also yields a critical_review
- Same analysis + request -> same ordered list
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from ..commands.safety import is_safe_for_auto_execution
from ..errors import RecommendationGenerationFailed
from ..models import (
    COMPLEXITY_RANK,
    PRIORITY_RANK,
    AgentCommand,
    ConsultantRequest,
    Dimension,
    ExecutionComplexity,
    Priority,
    QualityAnalysisResult,
    Recommendation,
    RecommendationCategory,
    RecommendationType,
)
from ..quality.scoring import TARGET_DIMENSION_SCORE
from ..utils.config import ConsultantConfig

logger = logging.getLogger(__name__)


SUBJECT_LINE_MAX_LENGTH = 50
SUBJECT_LINE_TARGET_LENGTH = 45
NEGATIVE_ASSET_MARKERS = ("neutral", "sad", "upset", "angry", "tired")

ESTIMATED_TIME = {
    ExecutionComplexity.SIMPLE: 30,
    ExecutionComplexity.MODERATE: 60,
    ExecutionComplexity.COMPLEX: 120,
}


@dataclass
class RecommendationRule:
    """A registered rule. `condition` decides, `parameters` builds the command."""
    key: str
    dimension: Dimension
    type: RecommendationType
    priority: Priority
    tool: str
    title: str
    description: str
    estimated_improvement: float
    confidence: float
    complexity: ExecutionComplexity
    condition: Callable[[Dict[str, float], ConsultantRequest], bool]
    parameters: Callable[[ConsultantRequest], Dict[str, Any]]
    fallback_only: bool = False  # fires only if the dimension has no other rec


# ============================================================================
# CONDITION HELPERS
# ============================================================================

def _below(dimension: Dimension, threshold: float):
    return lambda scores, request: scores[dimension.value] < threshold


def _subject_line(request: ConsultantRequest) -> str:
    return request.subject_line or request.content_metadata.get("subject", "") or ""


def _negative_assets(request: ConsultantRequest) -> List[str]:
    names = []
    for asset in request.assets_used:
        name = str(asset.get("name") or asset.get("file_name") or "").lower()
        if any(marker in name for marker in NEGATIVE_ASSET_MARKERS):
            names.append(name)
    return names


def _render_score(request: ConsultantRequest) -> Optional[float]:
    results = request.render_test_results
    for key in ("score", "compatibility_score", "overall_score"):
        if isinstance(results.get(key), (int, float)):
            return float(results[key])
    return None


class RecommendationEngine:
    """
    Rule-based recommendation generator.

    An optional writer (any object with
    `async write_reasoning(recommendation, analysis) -> str`) may rewrite the
    reasoning text of each recommendation.
    """

    def __init__(self, config: Optional[ConsultantConfig] = None, writer: Optional[Any] = None):
        self.config = config or ConsultantConfig()
        self.writer = writer
        self.rules: List[RecommendationRule] = []
        self._register_default_rules()

    def register_rule(self, rule: RecommendationRule):
        if any(r.key == rule.key for r in self.rules):
            raise ValueError(f"Duplicate rule key: {rule.key}")
        self.rules.append(rule)

    def _register_default_rules(self):
        """Register the default rule set, grouped by dimension."""

        # Content
        self.register_rule(RecommendationRule(
            key="content_subject",
            dimension=Dimension.CONTENT_QUALITY,
            type=RecommendationType.CONTENT,
            priority=Priority.HIGH,
            tool="generate_copy",
            title="Shorten the subject line",
            description="Subject line is longer than 50 characters and may be truncated",
            estimated_improvement=8,
            confidence=0.9,
            complexity=ExecutionComplexity.SIMPLE,
            condition=lambda s, r: (
                s[Dimension.CONTENT_QUALITY.value] < TARGET_DIMENSION_SCORE
                and len(_subject_line(r)) > SUBJECT_LINE_MAX_LENGTH
            ),
            parameters=lambda r: {
                "focus": "subject_line",
                "max_length": SUBJECT_LINE_TARGET_LENGTH,
                "current_text": _subject_line(r),
            },
        ))
        self.register_rule(RecommendationRule(
            key="content_cta",
            dimension=Dimension.CONTENT_QUALITY,
            type=RecommendationType.CONTENT,
            priority=Priority.MEDIUM,
            tool="generate_copy",
            title="Strengthen the call-to-action",
            description="Weak content score suggests an unclear call-to-action",
            estimated_improvement=12,
            confidence=0.8,
            complexity=ExecutionComplexity.SIMPLE,
            condition=_below(Dimension.CONTENT_QUALITY, 70),
            parameters=lambda r: {"focus": "call_to_action", "max_length": 30},
        ))
        self.register_rule(RecommendationRule(
            key="content_general",
            dimension=Dimension.CONTENT_QUALITY,
            type=RecommendationType.CONTENT,
            priority=Priority.MEDIUM,
            tool="generate_copy",
            title="Tighten the body copy",
            description="Body copy could be clearer and more scannable",
            estimated_improvement=6,
            confidence=0.75,
            complexity=ExecutionComplexity.SIMPLE,
            condition=_below(Dimension.CONTENT_QUALITY, TARGET_DIMENSION_SCORE),
            parameters=lambda r: {"focus": "body_copy", "max_length": 200},
            fallback_only=True,
        ))

        # Visual
        self.register_rule(RecommendationRule(
            key="visual_emotion",
            dimension=Dimension.VISUAL_APPEAL,
            type=RecommendationType.VISUAL,
            priority=Priority.HIGH,
            tool="get_figma_assets",
            title="Replace neutral imagery with upbeat assets",
            description="Promotional email uses neutral or sad imagery",
            estimated_improvement=15,
            confidence=0.85,
            complexity=ExecutionComplexity.SIMPLE,
            condition=lambda s, r: (
                s[Dimension.VISUAL_APPEAL.value] < TARGET_DIMENSION_SCORE
                and r.campaign_type == "promotional"
                and bool(_negative_assets(r))
            ),
            parameters=lambda r: {
                "tags": ["happy", "bright", r.campaign_type],
                "emotion": "happy",
                "exclude": _negative_assets(r),
            },
        ))
        self.register_rule(RecommendationRule(
            key="visual_colors",
            dimension=Dimension.VISUAL_APPEAL,
            type=RecommendationType.VISUAL,
            priority=Priority.MEDIUM,
            tool="patch_html",
            title="Apply the brand colour scheme",
            description="Colours are inconsistent or low-contrast",
            estimated_improvement=8,
            confidence=0.9,
            complexity=ExecutionComplexity.SIMPLE,
            condition=_below(Dimension.VISUAL_APPEAL, 70),
            parameters=lambda r: {"target": "color_scheme"},
        ))
        self.register_rule(RecommendationRule(
            key="visual_general",
            dimension=Dimension.VISUAL_APPEAL,
            type=RecommendationType.VISUAL,
            priority=Priority.MEDIUM,
            tool="get_figma_assets",
            title="Find a stronger hero image",
            description="Imagery does not carry the campaign",
            estimated_improvement=7,
            confidence=0.7,
            complexity=ExecutionComplexity.SIMPLE,
            condition=_below(Dimension.VISUAL_APPEAL, TARGET_DIMENSION_SCORE),
            parameters=lambda r: {"search": r.topic, "category": "hero"},
            fallback_only=True,
        ))

        # Technical
        self.register_rule(RecommendationRule(
            key="tech_accessibility",
            dimension=Dimension.TECHNICAL_COMPLIANCE,
            type=RecommendationType.ACCESSIBILITY,
            priority=Priority.MEDIUM,
            tool="patch_html",
            title="Add descriptive alt text",
            description="Images need alt text for screen readers and blocked images",
            estimated_improvement=5,
            confidence=0.95,
            complexity=ExecutionComplexity.SIMPLE,
            condition=_below(Dimension.TECHNICAL_COMPLIANCE, 85),
            parameters=lambda r: {"target": "image_alt_text"},
        ))
        self.register_rule(RecommendationRule(
            key="tech_compatibility",
            dimension=Dimension.TECHNICAL_COMPLIANCE,
            type=RecommendationType.TECHNICAL,
            priority=Priority.HIGH,
            tool="patch_html",
            title="Fix email client compatibility",
            description="Render tests show problems in some email clients",
            estimated_improvement=10,
            confidence=0.8,
            complexity=ExecutionComplexity.MODERATE,
            condition=lambda s, r: (
                _render_score(r) is not None and _render_score(r) < 80
            ),
            parameters=lambda r: {"target": "email_compatibility"},
        ))

        # Emotional
        self.register_rule(RecommendationRule(
            key="emotion_urgency",
            dimension=Dimension.EMOTIONAL_RESONANCE,
            type=RecommendationType.EMOTIONAL,
            priority=Priority.HIGH,
            tool="generate_copy",
            title="Add urgency around the offer",
            description="Prices are shown without a reason to act now",
            estimated_improvement=18,
            confidence=0.85,
            complexity=ExecutionComplexity.MODERATE,
            condition=lambda s, r: (
                s[Dimension.EMOTIONAL_RESONANCE.value] < 75 and bool(r.prices)
            ),
            parameters=lambda r: {"focus": "urgency_scarcity", "max_length": 60},
        ))
        self.register_rule(RecommendationRule(
            key="emotion_general",
            dimension=Dimension.EMOTIONAL_RESONANCE,
            type=RecommendationType.EMOTIONAL,
            priority=Priority.MEDIUM,
            tool="generate_copy",
            title="Sharpen the emotional hook",
            description="Copy states facts but does not motivate",
            estimated_improvement=9,
            confidence=0.75,
            complexity=ExecutionComplexity.MODERATE,
            condition=_below(Dimension.EMOTIONAL_RESONANCE, TARGET_DIMENSION_SCORE),
            parameters=lambda r: {"focus": "emotional_hook", "max_length": 120},
            fallback_only=True,
        ))

        # Brand
        self.register_rule(RecommendationRule(
            key="brand_tone",
            dimension=Dimension.BRAND_ALIGNMENT,
            type=RecommendationType.CONTENT,
            priority=Priority.MEDIUM,
            tool="generate_copy",
            title="Align copy with the brand voice",
            description="Tone drifts from the brand guidelines",
            estimated_improvement=10,
            confidence=0.8,
            complexity=ExecutionComplexity.MODERATE,
            condition=_below(Dimension.BRAND_ALIGNMENT, TARGET_DIMENSION_SCORE),
            parameters=lambda r: {"focus": "brand_tone", "max_length": 150},
        ))

    # =========================================================================
    # GENERATION
    # =========================================================================

    async def generate_recommendations(
        self,
        analysis: QualityAnalysisResult,
        request: ConsultantRequest,
    ) -> List[Recommendation]:
        """
        Generate the prioritized recommendation list.

        Raises:
            RecommendationGenerationFailed: a rule or the writer failed
        """
        try:
            recommendations = self._apply_rules(analysis, request)
            recommendations.extend(self._critical_reviews(analysis))
            recommendations = self.prioritize(recommendations)[: self.config.max_recommendations]

            if self.writer is not None:
                recommendations = [
                    replace(rec, reasoning=await self.writer.write_reasoning(rec, analysis))
                    for rec in recommendations
                ]
        except RecommendationGenerationFailed:
            raise
        except Exception as e:
            logger.error(f"Recommendation generation failed: {e}")
            raise RecommendationGenerationFailed(
                f"Recommendation generation failed: {e}",
                {"error_type": type(e).__name__},
            ) from e

        logger.info(
            f"Generated {len(recommendations)} recommendations "
            f"(overall {analysis.overall_score:.1f})"
        )
        return recommendations

    def _apply_rules(
        self,
        analysis: QualityAnalysisResult,
        request: ConsultantRequest,
    ) -> List[Recommendation]:
        scores = analysis.dimension_scores
        results: List[Recommendation] = []
        covered = set()

        for rule in self.rules:
            if rule.fallback_only and rule.dimension in covered:
                continue
            if not rule.condition(scores, request):
                continue
            results.append(self._build(rule, analysis, request))
            covered.add(rule.dimension)

        return results

    def _build(
        self,
        rule: RecommendationRule,
        analysis: QualityAnalysisResult,
        request: ConsultantRequest,
    ) -> Recommendation:
        command = AgentCommand(
            tool=rule.tool,
            parameters=rule.parameters(request),
            recommendation_id=rule.key,
            expected_result=rule.title,
        )
        auto = (
            is_safe_for_auto_execution(command)
            and rule.confidence >= self.config.auto_execute_threshold
        )
        score = analysis.dimension_scores[rule.dimension.value]

        return Recommendation(
            id=rule.key,
            dimension=rule.dimension,
            type=rule.type,
            priority=rule.priority,
            category=(
                RecommendationCategory.AUTO_EXECUTE if auto
                else RecommendationCategory.MANUAL_APPROVAL
            ),
            title=rule.title,
            description=rule.description,
            reasoning=(
                f"{rule.dimension.value} scored {score:.1f}; "
                f"expected gain {rule.estimated_improvement:.0f} points"
            ),
            agent_command=command,
            estimated_improvement=rule.estimated_improvement,
            confidence=rule.confidence,
            execution_complexity=rule.complexity,
            estimated_time=ESTIMATED_TIME[rule.complexity],
            problem_details=self._problem_details(analysis, rule.dimension),
        )

    def _critical_reviews(self, analysis: QualityAnalysisResult) -> List[Recommendation]:
        reviews = []
        threshold = self.config.critical_issue_threshold

        for dimension in Dimension:
            score = analysis.dimension_scores[dimension.value]
            if score >= threshold:
                continue
            key = f"critical_{dimension.value}"
            reviews.append(Recommendation(
                id=key,
                dimension=dimension,
                type=_REVIEW_TYPES[dimension],
                priority=Priority.CRITICAL,
                category=RecommendationCategory.CRITICAL_REVIEW,
                title=f"Critical review: {dimension.value.replace('_', ' ')}",
                description=f"Score {score:.1f} is below the critical threshold {threshold:.0f}",
                reasoning="Automatic fixes are unlikely to recover this dimension alone",
                agent_command=AgentCommand(
                    tool="render_test",
                    parameters={"scope": "full_review", "dimension": dimension.value},
                    recommendation_id=key,
                    expected_result="Detailed review report",
                ),
                estimated_improvement=min(30.0, TARGET_DIMENSION_SCORE - score),
                confidence=0.7,
                execution_complexity=ExecutionComplexity.COMPLEX,
                estimated_time=ESTIMATED_TIME[ExecutionComplexity.COMPLEX],
                problem_details=self._problem_details(analysis, dimension),
            ))
        return reviews

    @staticmethod
    def _problem_details(analysis: QualityAnalysisResult, dimension: Dimension) -> Dict[str, Any]:
        details = analysis.dimension_details.get(dimension.value)
        return {
            "dimension_score": analysis.dimension_scores[dimension.value],
            "issues": list(details.issues[:3]) if details else [],
        }

    @staticmethod
    def prioritize(recommendations: List[Recommendation]) -> List[Recommendation]:
        """Priority, then gain, then confidence, then simplicity, then id."""
        return sorted(
            recommendations,
            key=lambda r: (
                -PRIORITY_RANK[r.priority],
                -r.estimated_improvement,
                -r.confidence,
                COMPLEXITY_RANK[r.execution_complexity],
                r.id,
            ),
        )


_REVIEW_TYPES = {
    Dimension.CONTENT_QUALITY: RecommendationType.CONTENT,
    Dimension.VISUAL_APPEAL: RecommendationType.VISUAL,
    Dimension.TECHNICAL_COMPLIANCE: RecommendationType.TECHNICAL,
    Dimension.EMOTIONAL_RESONANCE: RecommendationType.EMOTIONAL,
    Dimension.BRAND_ALIGNMENT: RecommendationType.CONTENT,
}
