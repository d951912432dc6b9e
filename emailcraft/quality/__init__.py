"""
Quality Scoring

Composite scoring, grading and confidence math for email analysis.
"""

from .scoring import (
    DIMENSION_WEIGHTS,
    calculate_confidence_level,
    calculate_max_achievable_score,
    calculate_overall_score,
    determine_quality_grade,
    estimate_improvement_potential,
    is_gate_passed,
)

__all__ = [
    "DIMENSION_WEIGHTS",
    "calculate_overall_score",
    "determine_quality_grade",
    "calculate_confidence_level",
    "estimate_improvement_potential",
    "calculate_max_achievable_score",
    "is_gate_passed",
]
