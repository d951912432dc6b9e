"""
Emotional Resonance Agent

Scores how strongly the email motivates the reader: mood of imagery,
urgency around offers and prices, and personal relevance.
"""

import logging
from typing import List

from ..models import Dimension
from .base import BaseDimensionAgent

logger = logging.getLogger(__name__)


class EmotionalResonanceAgent(BaseDimensionAgent):

    @property
    def dimension(self) -> Dimension:
        return Dimension.EMOTIONAL_RESONANCE

    @property
    def display_name(self) -> str:
        return "Emotional Resonance Agent"

    @property
    def evaluation_criteria(self) -> List[str]:
        return [
            "Mood of copy and imagery fits the campaign",
            "Offers create honest urgency or scarcity",
            "Reader benefit is concrete and personal",
        ]

    @property
    def analysis_prompt_template(self) -> str:
        return """## Campaign
Topic: {topic}
Type: {campaign_type}
Audience: {target_audience}

## Prices
{prices_json}

## Assets used
{assets_json}

## HTML (excerpt)
{html_excerpt}
"""
