"""
Visual Appeal Agent

Scores layout, imagery and colour. Rendered screenshots, when supplied,
are attached to the request so the model sees the email as a reader would.
"""

import logging
from typing import List

from ..models import Dimension
from .base import BaseDimensionAgent

logger = logging.getLogger(__name__)


class VisualAppealAgent(BaseDimensionAgent):
    """Visual Appeal Agent - judges layout, imagery and colour harmony."""

    uses_screenshots = True

    @property
    def dimension(self) -> Dimension:
        return Dimension.VISUAL_APPEAL

    @property
    def display_name(self) -> str:
        return "Visual Appeal Agent"

    @property
    def evaluation_criteria(self) -> List[str]:
        return [
            "Visual hierarchy guides the eye to the call-to-action",
            "Images are relevant and match the campaign mood",
            "Colour palette is harmonious and on-brand",
            "Spacing and typography are consistent",
        ]

    @property
    def analysis_prompt_template(self) -> str:
        return """## Campaign
Topic: {topic}
Type: {campaign_type}

## Assets used
{assets_json}

## Brand colours
{brand_colors}

## HTML ({html_length} chars, excerpt)
{html_excerpt}
"""
