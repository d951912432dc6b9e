"""
Analysis Engine

Claude client and the five-dimension quality analyzer.
"""

from .client import AnalysisResponse, ClaudeClient, TokenUsage
from .engine import QualityAnalyzer, create_quality_analyzer

__all__ = [
    "ClaudeClient",
    "AnalysisResponse",
    "TokenUsage",
    "QualityAnalyzer",
    "create_quality_analyzer",
]
