"""
Brand Alignment Agent

Scores consistency with the configured brand profile: tone of voice,
values, colours, and things the brand avoids.
"""

import logging
from typing import List

from ..models import Dimension
from .base import BaseDimensionAgent

logger = logging.getLogger(__name__)


class BrandAlignmentAgent(BaseDimensionAgent):
    """Brand Alignment Agent - compares the email with the brand profile."""

    @property
    def dimension(self) -> Dimension:
        return Dimension.BRAND_ALIGNMENT

    @property
    def display_name(self) -> str:
        return "Brand Alignment Agent"

    @property
    def evaluation_criteria(self) -> List[str]:
        return [
            "Tone of voice matches the brand",
            "Messaging reflects brand values",
            "Colours and visual identity are consistent",
            "Nothing on the brand's avoid list appears",
        ]

    @property
    def analysis_prompt_template(self) -> str:
        return """## Brand
Name: {brand_name}
Tone: {brand_tone}
Values: {brand_values}
Avoid: {brand_avoid}
Colours: {brand_colors}

## Email tone
{tone}

## HTML (excerpt)
{html_excerpt}
"""
