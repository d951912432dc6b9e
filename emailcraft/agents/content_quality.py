"""
Content Quality Agent

Scores the copy of an email:
- Subject line clarity and length
- Body readability and structure
- Call-to-action strength and placement
- Relevance to the campaign topic
"""

import logging
from typing import List

from ..models import Dimension
from .base import BaseDimensionAgent

logger = logging.getLogger(__name__)


class ContentQualityAgent(BaseDimensionAgent):
    """Content Quality Agent - judges the written content of the email."""

    @property
    def dimension(self) -> Dimension:
        return Dimension.CONTENT_QUALITY

    @property
    def display_name(self) -> str:
        return "Content Quality Agent"

    @property
    def evaluation_criteria(self) -> List[str]:
        return [
            "Subject line is specific and at most ~50 characters",
            "Body copy is scannable, concise and free of errors",
            "Call-to-action is clear, visible and action-oriented",
            "Content matches the campaign topic and audience",
        ]

    @property
    def analysis_prompt_template(self) -> str:
        return """## Campaign
Topic: {topic}
Type: {campaign_type}
Audience: {target_audience}
Language: {language}

## Subject line
{subject_line}

## HTML ({html_length} chars, excerpt)
{html_excerpt}

Previous overall score: {previous_score} (iteration {iteration})
"""
