"""
Dimension Scoring Agents

Five agents, one per quality dimension:

1. ContentQualityAgent - copy, subject line, call-to-action
2. VisualAppealAgent - layout, imagery, colour (uses screenshots)
3. TechnicalComplianceAgent - rendering, accessibility, size
4. EmotionalResonanceAgent - mood, urgency, relevance
5. BrandAlignmentAgent - tone, values, identity

Usage:
    from emailcraft.agents import get_all_agents

    agents = get_all_agents(claude_client)
    score = await agents[0].score(context)
"""

from typing import List, Optional, TYPE_CHECKING

from .base import AnalysisContext, BaseDimensionAgent
from .brand_alignment import BrandAlignmentAgent
from .content_quality import ContentQualityAgent
from .emotional_resonance import EmotionalResonanceAgent
from .technical_compliance import TechnicalComplianceAgent
from .visual_appeal import VisualAppealAgent

if TYPE_CHECKING:
    from ..analyzer.client import ClaudeClient

AGENT_CLASSES = [
    ContentQualityAgent,
    VisualAppealAgent,
    TechnicalComplianceAgent,
    EmotionalResonanceAgent,
    BrandAlignmentAgent,
]


def get_all_agents(
    client: "ClaudeClient",
    temperature: Optional[float] = None,
) -> List[BaseDimensionAgent]:
    """Create one agent per dimension sharing a client."""
    return [cls(client, temperature=temperature) for cls in AGENT_CLASSES]


def get_agent_by_name(
    name: str,
    client: "ClaudeClient",
    temperature: Optional[float] = None,
) -> Optional[BaseDimensionAgent]:
    """Create the agent for a dimension name, or None if unknown."""
    for cls in AGENT_CLASSES:
        agent = cls(client, temperature=temperature)
        if agent.name == name:
            return agent
    return None


__all__ = [
    "AnalysisContext",
    "BaseDimensionAgent",
    "ContentQualityAgent",
    "VisualAppealAgent",
    "TechnicalComplianceAgent",
    "EmotionalResonanceAgent",
    "BrandAlignmentAgent",
    "AGENT_CLASSES",
    "get_all_agents",
    "get_agent_by_name",
]
