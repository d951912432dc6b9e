"""
Technical Compliance Agent

Scores email-client compatibility and accessibility:
- Table-based, inline-styled markup
- Image alt text and contrast
- Render test results across clients
"""

import logging
from typing import List

from ..models import Dimension
from .base import BaseDimensionAgent

logger = logging.getLogger(__name__)


class TechnicalComplianceAgent(BaseDimensionAgent):
    """Technical Compliance Agent - checks markup, accessibility and rendering."""

    @property
    def dimension(self) -> Dimension:
        return Dimension.TECHNICAL_COMPLIANCE

    @property
    def display_name(self) -> str:
        return "Technical Compliance Agent"

    @property
    def evaluation_criteria(self) -> List[str]:
        return [
            "Markup renders in major clients (Gmail, Outlook, Apple Mail)",
            "All images have meaningful alt text",
            "Text contrast meets WCAG AA",
            "File size stays under 100KB",
        ]

    @property
    def analysis_prompt_template(self) -> str:
        return """## Render test results
{render_json}

## Source
MJML available: {has_mjml}
HTML size: {html_length} chars

## HTML (excerpt)
{html_excerpt}
"""
