"""
Recommendations

Rule-based recommendation engine and optional Claude reasoning writer.
"""

from .engine import RecommendationEngine, RecommendationRule
from .writer import ClaudeReasoningWriter

__all__ = [
    "RecommendationEngine",
    "RecommendationRule",
    "ClaudeReasoningWriter",
]
