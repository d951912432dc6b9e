"""
Base Agent Class for Email Quality Scoring

Each quality dimension is scored by one agent. Agents share:
- The analysis context built from a ConsultantRequest
- Prompt interpolation from a per-agent template
- Defensive JSON parsing of the {score, issues, insights} reply

Architecture:
    BaseDimensionAgent (abstract)
    ├── ContentQualityAgent
    ├── VisualAppealAgent
    ├── TechnicalComplianceAgent
    ├── EmotionalResonanceAgent
    └── BrandAlignmentAgent

There is no fallback score: a failed call or an unusable reply raises
AnalysisFailed so the caller never mistakes a guess for a measurement.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from ..errors import AnalysisFailed
from ..models import ConsultantRequest, Dimension, DimensionScore
from ..utils.config import BrandProfile
from ..utils.parsing import extract_json_object

if TYPE_CHECKING:
    from ..analyzer.client import ClaudeClient

logger = logging.getLogger(__name__)


HTML_EXCERPT_CHARS = 4000


# ============================================================================
# ANALYSIS CONTEXT
# ============================================================================

@dataclass
class AnalysisContext:
    """Everything a dimension agent may look at."""
    html_content: str
    topic: str
    subject_line: str = ""
    target_audience: str = "general audience"
    campaign_type: str = "promotional"
    language: str = "en"
    tone: str = ""
    mjml_source: Optional[str] = None
    screenshots: List[str] = field(default_factory=list)
    assets: List[Dict[str, Any]] = field(default_factory=list)
    prices: List[Dict[str, Any]] = field(default_factory=list)
    render_test_results: Dict[str, Any] = field(default_factory=dict)
    previous_score: Optional[float] = None
    iteration: int = 0
    brand: BrandProfile = field(default_factory=BrandProfile)

    @classmethod
    def from_request(
        cls,
        request: ConsultantRequest,
        brand: Optional[BrandProfile] = None,
    ) -> "AnalysisContext":
        subject = request.subject_line or request.content_metadata.get("subject", "")
        return cls(
            html_content=request.html_content,
            topic=request.topic,
            subject_line=subject or "",
            target_audience=request.target_audience or "general audience",
            campaign_type=request.campaign_type,
            language=request.language,
            tone=request.tone or request.content_metadata.get("tone", ""),
            mjml_source=request.mjml_source,
            screenshots=list(request.screenshots),
            assets=list(request.assets_used),
            prices=list(request.prices),
            render_test_results=dict(request.render_test_results),
            previous_score=(
                request.previous_analysis.overall_score
                if request.previous_analysis else None
            ),
            iteration=request.iteration_count,
            brand=brand or BrandProfile(),
        )

    def prompt_fields(self) -> Dict[str, Any]:
        """Values available to prompt templates."""
        return {
            "topic": self.topic,
            "subject_line": self.subject_line or "(none)",
            "target_audience": self.target_audience,
            "campaign_type": self.campaign_type,
            "language": self.language,
            "tone": self.tone or "(unspecified)",
            "html_excerpt": self.html_content[:HTML_EXCERPT_CHARS],
            "html_length": len(self.html_content),
            "has_mjml": "yes" if self.mjml_source else "no",
            "assets_json": json.dumps(self.assets, ensure_ascii=False) if self.assets else "[]",
            "prices_json": json.dumps(self.prices, ensure_ascii=False) if self.prices else "[]",
            "render_json": (
                json.dumps(self.render_test_results, ensure_ascii=False)
                if self.render_test_results else "{}"
            ),
            "previous_score": (
                f"{self.previous_score:.1f}" if self.previous_score is not None else "n/a"
            ),
            "iteration": self.iteration,
            "brand_name": self.brand.name,
            "brand_tone": self.brand.tone,
            "brand_values": ", ".join(self.brand.values),
            "brand_avoid": ", ".join(self.brand.avoid),
            "brand_colors": ", ".join(f"{k} {v}" for k, v in self.brand.colors.items()),
        }


# ============================================================================
# BASE AGENT
# ============================================================================

SYSTEM_PROMPT = """You are a senior email marketing quality reviewer.
You score one quality dimension of an HTML email on a 0-100 scale.

Respond with a single JSON object and nothing else:
{"score": <number 0-100>, "issues": [<short strings>], "insights": [<short strings>]}
"""


class BaseDimensionAgent(ABC):
    """
    Abstract base for the dimension scorers.

    Subclasses provide the dimension, a display name, evaluation criteria
    and a prompt template with {placeholders} from AnalysisContext.prompt_fields().
    """

    MAX_OUTPUT_TOKENS = 1000
    TEMPERATURE = 0.3

    # Agents that look at rendered screenshots set this
    uses_screenshots = False

    def __init__(self, client: "ClaudeClient", temperature: Optional[float] = None):
        """
        Initialize agent with Claude client.

        Args:
            client: ClaudeClient instance for API calls
            temperature: Sampling temperature override
        """
        self.client = client
        self.temperature = self.TEMPERATURE if temperature is None else temperature

    @property
    @abstractmethod
    def dimension(self) -> Dimension:
        """Dimension this agent scores."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        pass

    @property
    @abstractmethod
    def evaluation_criteria(self) -> List[str]:
        """Criteria listed in the prompt."""
        pass

    @property
    @abstractmethod
    def analysis_prompt_template(self) -> str:
        pass

    @property
    def name(self) -> str:
        return self.dimension.value

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def _prepare_prompt(self, context: AnalysisContext) -> str:
        criteria = "\n".join(f"- {c}" for c in self.evaluation_criteria)
        body = self.analysis_prompt_template.format(**context.prompt_fields())
        return f"# {self.display_name.upper()}\n\nEvaluate:\n{criteria}\n\n{body}"

    async def score(self, context: AnalysisContext) -> DimensionScore:
        """
        Score one dimension.

        Raises:
            AnalysisFailed: API call failed or reply had no usable score
        """
        logger.info(f"[{self.name}] Scoring...")
        prompt = self._prepare_prompt(context)

        images = context.screenshots if self.uses_screenshots else None
        response = await self.client.analyze_with_retry(
            prompt=prompt,
            system=self.system_prompt,
            max_tokens=self.MAX_OUTPUT_TOKENS,
            temperature=self.temperature,
            images=images or None,
        )

        if not response.success:
            logger.error(f"[{self.name}] API call failed: {response.error}")
            raise AnalysisFailed(
                f"{self.display_name} call failed: {response.error}",
                {"dimension": self.name},
            )

        result = self._parse_output(response.content)
        logger.info(f"[{self.name}] Score {result.score:.1f}")
        return result

    def _parse_output(self, raw_output: str) -> DimensionScore:
        parsed = extract_json_object(raw_output)
        if parsed is None:
            raise AnalysisFailed(
                f"{self.display_name} returned no JSON object",
                {"dimension": self.name, "raw_output": raw_output[:500]},
            )

        score = _to_score(parsed.get("score"))
        if score is None:
            raise AnalysisFailed(
                f"{self.display_name} returned no numeric score",
                {"dimension": self.name, "parsed": parsed},
            )

        return DimensionScore(
            dimension=self.dimension,
            score=score,
            issues=_string_list(parsed.get("issues")),
            insights=_string_list(parsed.get("insights")),
        )


def _to_score(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return score if math.isfinite(score) else None


def _string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]
