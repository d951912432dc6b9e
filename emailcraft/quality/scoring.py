"""
Quality Scoring

Weighted composite scoring over the five email quality dimensions.

Weights (sum to 1.0):
    content_quality       0.25
    visual_appeal         0.25
    technical_compliance  0.20
    emotional_resonance   0.15
    brand_alignment       0.15

Grades: A >= 85, B >= 75, C >= 65, D >= 60, F otherwise.
"""

import logging
import math
from typing import Dict, Iterable, Mapping

from ..models import Dimension

logger = logging.getLogger(__name__)


DIMENSION_WEIGHTS: Dict[Dimension, float] = {
    Dimension.CONTENT_QUALITY: 0.25,
    Dimension.VISUAL_APPEAL: 0.25,
    Dimension.TECHNICAL_COMPLIANCE: 0.20,
    Dimension.EMOTIONAL_RESONANCE: 0.15,
    Dimension.BRAND_ALIGNMENT: 0.15,
}

GRADE_THRESHOLDS = (
    (85.0, "A"),
    (75.0, "B"),
    (65.0, "C"),
    (60.0, "D"),
)

# Dimensions at or above this are considered healthy
TARGET_DIMENSION_SCORE = 80.0

MIN_IMPROVEMENT_POTENTIAL = 5.0
MAX_IMPROVEMENT_POTENTIAL = 30.0
MIN_CONFIDENCE = 60.0
MAX_DIMENSION_UPLIFT = 20.0
MAX_ACHIEVABLE_DIMENSION_SCORE = 95.0


def _weighted(scores: Mapping[str, float]) -> float:
    missing = [d.value for d in DIMENSION_WEIGHTS if d.value not in scores]
    if missing:
        raise ValueError(f"Missing dimension scores: {', '.join(missing)}")
    return sum(scores[d.value] * w for d, w in DIMENSION_WEIGHTS.items())


def calculate_overall_score(scores: Mapping[str, float]) -> float:
    """
    Weighted average of dimension scores (not rounded).

    Args:
        scores: Mapping of dimension name to score (0-100)

    Returns:
        Overall score in [0, 100]
    """
    return _weighted(scores)


def determine_quality_grade(score: float) -> str:
    """Map an overall score to a letter grade."""
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def calculate_confidence_level(scores: Iterable[float]) -> float:
    """
    Confidence drops as dimension scores disagree.

    max(60, min(100, 100 - 2 * population stddev))
    """
    values = list(scores)
    if not values:
        return MIN_CONFIDENCE
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    stddev = math.sqrt(variance)
    return max(MIN_CONFIDENCE, min(100.0, 100.0 - 2 * stddev))


def estimate_improvement_potential(scores: Mapping[str, float]) -> float:
    """
    Average gap to 80 across weak dimensions, clamped to [5, 30].

    Returns the minimum when no dimension is below 80.
    """
    gaps = [
        TARGET_DIMENSION_SCORE - s
        for s in scores.values()
        if s < TARGET_DIMENSION_SCORE
    ]
    if not gaps:
        return MIN_IMPROVEMENT_POTENTIAL
    average_gap = sum(gaps) / len(gaps)
    return min(MAX_IMPROVEMENT_POTENTIAL, max(MIN_IMPROVEMENT_POTENTIAL, average_gap))


def calculate_max_achievable_score(scores: Mapping[str, float]) -> float:
    """Weighted score with every dimension lifted by 20, capped at 95."""
    lifted = {
        name: min(MAX_ACHIEVABLE_DIMENSION_SCORE, s + MAX_DIMENSION_UPLIFT)
        for name, s in scores.items()
    }
    return _weighted(lifted)


def is_gate_passed(score: float, threshold: float) -> bool:
    return score >= threshold
