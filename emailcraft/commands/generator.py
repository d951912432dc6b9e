"""
Command Generator

Converts recommendations into validated, enriched, ordered AgentCommands.

Steps per recommendation:
1. Enrich tool parameters from the request and brand profile
2. Derive timeout and retry budget from complexity, type and confidence
3. Attach a fallback strategy where a cheaper alternative exists
4. Validate; invalid commands are logged and dropped

Commands are finally ordered by tool priority: asset search, copy,
rendering, patching, validation. Unknown tools go last.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from ..errors import CommandValidationFailed
from ..models import (
    AgentCommand,
    ConsultantRequest,
    ExecutionComplexity,
    Recommendation,
    RecommendationType,
)
from ..utils.config import ConsultantConfig

logger = logging.getLogger(__name__)


TOOL_PRIORITY = {
    "get_figma_assets": 1,
    "generate_copy": 2,
    "render_mjml": 3,
    "patch_html": 4,
    "render_test": 5,
}
UNKNOWN_TOOL_PRIORITY = 999

BASE_TIMEOUT = 30
MAX_TIMEOUT = 300
MAX_RETRIES = 5
MAX_ASSET_TAGS = 10
MIN_COPY_LENGTH = 5
MAX_COPY_LENGTH = 200

COMPLEXITY_MULTIPLIER = {
    ExecutionComplexity.SIMPLE: 1.0,
    ExecutionComplexity.MODERATE: 1.5,
    ExecutionComplexity.COMPLEX: 2.0,
}

TYPE_MULTIPLIER = {
    RecommendationType.VISUAL: 1.5,
    RecommendationType.CONTENT: 1.2,
    RecommendationType.TECHNICAL: 1.0,
    RecommendationType.EMOTIONAL: 1.3,
    RecommendationType.ACCESSIBILITY: 0.8,
}

WCAG_AA_CONTRAST = 4.5


def calculate_timeout(recommendation: Recommendation) -> int:
    """ceil(30 x complexity multiplier x type multiplier)"""
    return math.ceil(
        BASE_TIMEOUT
        * COMPLEXITY_MULTIPLIER[recommendation.execution_complexity]
        * TYPE_MULTIPLIER[recommendation.type]
    )


def calculate_max_retries(confidence: float) -> int:
    """Confident fixes get fewer retries; shaky ones get more."""
    if confidence >= 0.9:
        return 1
    if confidence >= 0.8:
        return 2
    if confidence >= 0.7:
        return 3
    return 2


def tool_priority(tool: str) -> int:
    return TOOL_PRIORITY.get(tool, UNKNOWN_TOOL_PRIORITY)


def validation_errors(command: AgentCommand) -> List[str]:
    """List every reason a command is invalid (empty when valid)."""
    errors = []
    params = command.parameters

    if not command.tool:
        errors.append("missing tool")
    if params is None or not isinstance(params, dict):
        errors.append("missing parameters")
        return errors
    if command.timeout > MAX_TIMEOUT:
        errors.append(f"timeout {command.timeout}s exceeds {MAX_TIMEOUT}s")
    if command.max_retries > MAX_RETRIES:
        errors.append(f"max_retries {command.max_retries} exceeds {MAX_RETRIES}")

    if command.tool == "get_figma_assets":
        tags = params.get("tags") or []
        if not (tags or params.get("search") or params.get("category")):
            errors.append("asset search needs tags, search or category")
        if len(tags) > MAX_ASSET_TAGS:
            errors.append(f"more than {MAX_ASSET_TAGS} tags")

    elif command.tool == "generate_copy":
        if not params.get("focus"):
            errors.append("copy generation needs a focus")
        max_length = params.get("max_length")
        if max_length is not None and (
            not isinstance(max_length, (int, float))
            or not MIN_COPY_LENGTH <= max_length <= MAX_COPY_LENGTH
        ):
            errors.append(
                f"max_length {max_length} outside [{MIN_COPY_LENGTH}, {MAX_COPY_LENGTH}]"
            )

    elif command.tool == "patch_html":
        if not params.get("target"):
            errors.append("patch needs a target")

    return errors


def validate_command(command: AgentCommand) -> bool:
    return not validation_errors(command)


def ensure_valid(command: AgentCommand) -> AgentCommand:
    """
    Raises:
        CommandValidationFailed: command is invalid
    """
    errors = validation_errors(command)
    if errors:
        raise CommandValidationFailed(
            f"Invalid {command.tool or 'unknown'} command: {'; '.join(errors)}",
            {"recommendation_id": command.recommendation_id, "errors": errors},
        )
    return command


class CommandGenerator:
    """Builds executable commands from recommendations."""

    def __init__(self, config: Optional[ConsultantConfig] = None):
        self.config = config or ConsultantConfig()

    def generate_commands(
        self,
        recommendations: List[Recommendation],
        request: ConsultantRequest,
    ) -> List[AgentCommand]:
        """
        Generate commands for all recommendations.

        Invalid commands are dropped; the rest keep their relative order
        within the same tool priority.
        """
        commands = []
        for rec in recommendations:
            try:
                commands.append(ensure_valid(self.generate_command(rec, request)))
            except CommandValidationFailed as e:
                logger.warning(f"Dropping command for {rec.id}: {e.message}")

        commands.sort(key=lambda c: tool_priority(c.tool))
        logger.info(f"Generated {len(commands)}/{len(recommendations)} commands")
        return commands

    def generate_command(
        self,
        recommendation: Recommendation,
        request: ConsultantRequest,
    ) -> AgentCommand:
        base = recommendation.agent_command
        parameters = self._enrich_parameters(base.tool, dict(base.parameters), request)

        return AgentCommand(
            tool=base.tool,
            parameters=parameters,
            recommendation_id=recommendation.id,
            max_retries=calculate_max_retries(recommendation.confidence),
            timeout=calculate_timeout(recommendation),
            expected_result=base.expected_result or recommendation.title,
            success_criteria=list(base.success_criteria) or [recommendation.description],
            fallback_strategy=self._fallback_for(recommendation, parameters, request),
        )

    # =========================================================================
    # ENRICHMENT
    # =========================================================================

    def _enrich_parameters(
        self,
        tool: str,
        params: Dict[str, Any],
        request: ConsultantRequest,
    ) -> Dict[str, Any]:
        if tool == "get_figma_assets":
            return self._enrich_asset_search(params)
        if tool == "generate_copy":
            return self._enrich_copy(params, request)
        if tool == "patch_html":
            return self._enrich_patch(params, request)
        if tool == "render_mjml":
            return self._enrich_render(params, request)
        if tool == "render_test":
            params.setdefault("html_content", request.html_content)
            return params
        return params

    @staticmethod
    def _enrich_asset_search(params: Dict[str, Any]) -> Dict[str, Any]:
        emotion = params.get("emotion")
        if emotion:
            params.setdefault("emotional_tags", [emotion, f"{emotion}_people"])
        params.setdefault("min_quality", "high")
        params.setdefault("format_preference", ["png", "svg"])
        return params

    def _enrich_copy(self, params: Dict[str, Any], request: ConsultantRequest) -> Dict[str, Any]:
        brand = self.config.brand
        params.setdefault("topic", request.topic)
        params.setdefault("current_tone", request.tone or brand.tone)
        params.setdefault("language", request.language)

        focus = params.get("focus")
        if focus == "subject_line" and params.get("max_length"):
            params.setdefault("target_length", params["max_length"])
        if focus == "urgency_scarcity" and request.prices:
            params.setdefault("price_context", list(request.prices))

        params.setdefault("brand_guidelines", {
            "name": brand.name,
            "tone": brand.tone,
            "values": list(brand.values),
            "avoid": list(brand.avoid),
        })
        return params

    def _enrich_patch(self, params: Dict[str, Any], request: ConsultantRequest) -> Dict[str, Any]:
        params.setdefault("current_html", request.html_content)
        target = params.get("target")

        if target == "color_scheme":
            params.setdefault("brand_colors", dict(self.config.brand.colors))
            params.setdefault("accessibility_level", "AA")
            params.setdefault("min_contrast_ratio", WCAG_AA_CONTRAST)
        elif target == "image_alt_text":
            params.setdefault("context", {
                "topic": request.topic,
                "campaign_type": request.campaign_type,
                "language": request.language,
            })
        return params

    @staticmethod
    def _enrich_render(params: Dict[str, Any], request: ConsultantRequest) -> Dict[str, Any]:
        if request.mjml_source:
            params.setdefault("mjml_source", request.mjml_source)
        params.setdefault("minify", True)
        params.setdefault("validation_level", "strict")
        params.setdefault("responsive", True)
        params.setdefault("mobile_first", True)
        return params

    # =========================================================================
    # FALLBACKS
    # =========================================================================

    def _fallback_for(
        self,
        recommendation: Recommendation,
        params: Dict[str, Any],
        request: ConsultantRequest,
    ) -> Optional[AgentCommand]:
        tool = recommendation.agent_command.tool

        if tool == "get_figma_assets":
            # Broader search with relaxed quality filter
            tags = list(params.get("tags") or [])[:2]
            fallback_params = {"min_quality": "medium", "format_preference": ["png", "jpg", "svg"]}
            if tags:
                fallback_params["tags"] = tags
            else:
                fallback_params["search"] = request.topic
            return AgentCommand(
                tool=tool,
                parameters=fallback_params,
                recommendation_id=recommendation.id,
                max_retries=1,
                timeout=calculate_timeout(recommendation),
                expected_result="Any suitable asset",
            )

        if (
            tool == "patch_html"
            and params.get("target") == "email_compatibility"
            and request.mjml_source
        ):
            # Re-rendering from source often fixes client quirks
            return AgentCommand(
                tool="render_mjml",
                parameters=self._enrich_render({}, request),
                recommendation_id=recommendation.id,
                max_retries=1,
                timeout=BASE_TIMEOUT,
                expected_result="Freshly rendered HTML",
            )

        return None
