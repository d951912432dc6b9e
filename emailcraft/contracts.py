"""
Stage Contexts

Typed payloads exchanged with the neighbouring pipeline stages:

    design stage  --DesignToQualityContext-->   quality loop
    quality loop  --QualityToDeliveryContext--> delivery stage

Both carry a `stage` discriminator and are validated at the boundary;
unknown fields are rejected. parse_stage_context turns a raw payload into
the right model or raises InvalidRequest.
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import InvalidRequest
from .models import ConsultantRequest, QualityLoopSession
from .utils.config import ConsultantConfig

logger = logging.getLogger(__name__)


MAX_EMAIL_SIZE_BYTES = 102400
MAX_RENDER_TIME_MS = 1000


class _StageModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ============================================================================
# SHARED PARTS
# ============================================================================

class ContentPackage(_StageModel):
    """Copy produced by the content stage."""
    subject: str = Field(..., min_length=1, max_length=100)
    preheader: str = Field(..., min_length=1, max_length=150)
    body: str = Field(..., min_length=10, max_length=5000)
    cta: str = Field(..., min_length=1, max_length=50)
    language: Literal["en", "ru"] = "en"
    tone: str = Field("friendly", min_length=1)


class CampaignContext(_StageModel):
    topic: str = Field(..., min_length=1)
    target_audience: str = Field(..., min_length=1)
    campaign_type: Literal["promotional", "informational", "newsletter", "transactional"] = "promotional"
    urgency_level: Literal["low", "medium", "high", "critical"] = "medium"


# ============================================================================
# DESIGN -> QUALITY
# ============================================================================

class EmailPackage(_StageModel):
    html_content: str = Field(..., min_length=100)
    mjml_source: Optional[str] = None
    inline_css: str = ""
    asset_urls: List[str] = Field(default_factory=list)


class RenderingMetadata(_StageModel):
    template_type: str = Field(..., min_length=1)
    file_size_bytes: int = Field(..., gt=0, le=MAX_EMAIL_SIZE_BYTES)
    render_time_ms: float = Field(..., gt=0, le=MAX_RENDER_TIME_MS)
    optimization_applied: List[str] = Field(default_factory=list)


class DesignToQualityContext(_StageModel):
    """Input handed from the design stage to the quality loop."""
    stage: Literal["design_to_quality"] = "design_to_quality"
    email_package: EmailPackage
    rendering_metadata: RenderingMetadata
    campaign: CampaignContext
    original_content: ContentPackage
    screenshots: List[str] = Field(default_factory=list)
    assets_used: List[Dict[str, Any]] = Field(default_factory=list)
    prices: List[Dict[str, Any]] = Field(default_factory=list)
    render_test_results: Dict[str, Any] = Field(default_factory=dict)
    trace_id: UUID
    timestamp: datetime


# ============================================================================
# QUALITY -> DELIVERY
# ============================================================================

class QualityPackage(_StageModel):
    validated_html: str = Field(..., min_length=100)
    quality_score: float = Field(..., ge=0, le=100)
    quality_grade: Literal["A", "B", "C", "D", "F"]
    validation_status: Literal["passed", "passed_with_warnings", "failed"]
    optimized_assets: List[str] = Field(default_factory=list)


class QualityReport(_StageModel):
    session_id: str
    iterations: int = Field(..., ge=1)
    dimension_scores: Dict[str, float]
    total_improvement: float
    completion_reason: Optional[str] = None
    applied_recommendations: List[str] = Field(default_factory=list)


class QualityToDeliveryContext(_StageModel):
    """Output handed from the quality loop to the delivery stage."""
    stage: Literal["quality_to_delivery"] = "quality_to_delivery"
    quality_package: QualityPackage
    quality_report: QualityReport
    original_content: Optional[ContentPackage] = None
    trace_id: UUID
    timestamp: datetime


StageContext = Annotated[
    Union[DesignToQualityContext, QualityToDeliveryContext],
    Field(discriminator="stage"),
]

_stage_adapter = TypeAdapter(StageContext)


def parse_stage_context(
    payload: Union[Dict[str, Any], str, bytes],
) -> Union[DesignToQualityContext, QualityToDeliveryContext]:
    """
    Validate a raw stage payload (dict or JSON).

    Raises:
        InvalidRequest: payload does not match any stage context
    """
    try:
        if isinstance(payload, (str, bytes)):
            return _stage_adapter.validate_json(payload)
        return _stage_adapter.validate_python(payload)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        logger.warning(f"Rejected stage context with {len(errors)} error(s)")
        raise InvalidRequest("Invalid stage context", {"errors": errors}) from e


# ============================================================================
# CONVERSIONS
# ============================================================================

def request_from_design_context(
    context: DesignToQualityContext,
    user_id: Optional[str] = None,
) -> ConsultantRequest:
    """Build the loop's request from a design-stage handoff."""
    content = context.original_content
    return ConsultantRequest(
        html_content=context.email_package.html_content,
        topic=context.campaign.topic,
        mjml_source=context.email_package.mjml_source,
        subject_line=content.subject,
        target_audience=context.campaign.target_audience,
        campaign_type=context.campaign.campaign_type,
        language=content.language,
        tone=content.tone,
        screenshots=list(context.screenshots),
        assets_used=list(context.assets_used),
        prices=list(context.prices),
        content_metadata={
            "subject": content.subject,
            "preheader": content.preheader,
            "cta": content.cta,
            "template_type": context.rendering_metadata.template_type,
            "file_size_bytes": context.rendering_metadata.file_size_bytes,
        },
        render_test_results=dict(context.render_test_results),
        user_id=user_id,
        trace_id=str(context.trace_id),
    )


def delivery_context_from_session(
    session: QualityLoopSession,
    config: ConsultantConfig,
    original_content: Optional[ContentPackage] = None,
) -> QualityToDeliveryContext:
    """
    Build the delivery handoff from a finished session.

    Raises:
        InvalidRequest: the session did not pass the quality gate
    """
    if not session.success or session.final_score < config.quality_gate_threshold:
        raise InvalidRequest(
            f"Session {session.session_id} did not pass the quality gate",
            {
                "session_id": session.session_id,
                "final_score": session.final_score,
                "threshold": config.quality_gate_threshold,
            },
        )

    last = session.iterations[-1]
    analysis = last.consultant_response.analysis if last.consultant_response else None
    failed_commands = [
        r for i in session.iterations for r in i.execution_results if not r.success
    ]
    return QualityToDeliveryContext(
        quality_package=QualityPackage(
            validated_html=session.current_html or session.initial_request.html_content,
            quality_score=session.final_score,
            quality_grade=analysis.quality_grade if analysis else "F",
            validation_status="passed_with_warnings" if failed_commands else "passed",
            optimized_assets=[
                str(a.get("url")) for a in session.initial_request.assets_used if a.get("url")
            ],
        ),
        quality_report=QualityReport(
            session_id=session.session_id,
            iterations=len(session.iterations),
            dimension_scores=dict(analysis.dimension_scores) if analysis else {},
            total_improvement=session.total_improvement,
            completion_reason=(
                session.completion_reason.value if session.completion_reason else None
            ),
            applied_recommendations=[
                rec_id for i in session.iterations for rec_id in i.recommendations_applied
            ],
        ),
        original_content=original_content,
        trace_id=_trace_uuid(session.initial_request.trace_id),
        timestamp=datetime.now(),
    )


def _trace_uuid(trace_id: Optional[str]) -> UUID:
    if trace_id:
        try:
            return UUID(trace_id)
        except ValueError:
            logger.warning(f"Trace id {trace_id} is not a UUID, issuing a new one")
    return uuid4()
