"""
Core data model for the email quality loop.

Scores, recommendations, commands, execution results, iterations and
sessions. Everything serializes through to_dict/from_dict so a session
can be persisted as JSON and restored.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .errors import InvalidRequest


# ============================================================================
# ENUMS
# ============================================================================

class Dimension(str, Enum):
    """Quality dimensions scored by the analyzer."""
    CONTENT_QUALITY = "content_quality"
    VISUAL_APPEAL = "visual_appeal"
    TECHNICAL_COMPLIANCE = "technical_compliance"
    EMOTIONAL_RESONANCE = "emotional_resonance"
    BRAND_ALIGNMENT = "brand_alignment"


class RecommendationType(str, Enum):
    CONTENT = "content"
    VISUAL = "visual"
    TECHNICAL = "technical"
    EMOTIONAL = "emotional"
    ACCESSIBILITY = "accessibility"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_RANK = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class RecommendationCategory(str, Enum):
    AUTO_EXECUTE = "auto_execute"
    MANUAL_APPROVAL = "manual_approval"
    CRITICAL_REVIEW = "critical_review"


class ExecutionComplexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


COMPLEXITY_RANK = {
    ExecutionComplexity.SIMPLE: 1,
    ExecutionComplexity.MODERATE: 2,
    ExecutionComplexity.COMPLEX: 3,
}


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    REQUIRES_APPROVAL = "requires_approval"
    ESCALATED = "escalated"


TERMINAL_STATUSES = (
    SessionStatus.COMPLETED,
    SessionStatus.FAILED,
    SessionStatus.ESCALATED,
)


class CompletionReason(str, Enum):
    """Why a loop (or a single consultation) stopped."""
    QUALITY_GATE_PASSED = "quality_gate_passed"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    TIME_BUDGET_EXHAUSTED = "time_budget_exhausted"
    DIMINISHING_RETURNS = "diminishing_returns"
    CRITICAL_ISSUES = "critical_issues"
    ITERATION_FAILED = "iteration_failed"
    USER_REQUESTED = "user_requested"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================================================
# ANALYSIS
# ============================================================================

@dataclass
class DimensionScore:
    """Score for one quality dimension."""
    dimension: Dimension
    score: float
    issues: List[str] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.score = max(0.0, min(100.0, float(self.score)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dimension": self.dimension.value,
            "score": self.score,
            "issues": list(self.issues),
            "insights": list(self.insights),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DimensionScore":
        return cls(
            dimension=Dimension(data["dimension"]),
            score=data["score"],
            issues=list(data.get("issues", [])),
            insights=list(data.get("insights", [])),
        )


@dataclass
class AnalyzedElement:
    """A single template element inspected during analysis."""
    element_type: str
    element_id: str
    current_value: str
    score: float
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "element_type": self.element_type,
            "element_id": self.element_id,
            "current_value": self.current_value,
            "score": self.score,
            "issues": list(self.issues),
            "suggestions": list(self.suggestions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalyzedElement":
        return cls(
            element_type=data["element_type"],
            element_id=data["element_id"],
            current_value=data.get("current_value", ""),
            score=data.get("score", 0.0),
            issues=list(data.get("issues", [])),
            suggestions=list(data.get("suggestions", [])),
        )


# ============================================================================
# COMMANDS AND RECOMMENDATIONS
# ============================================================================

@dataclass
class AgentCommand:
    """A concrete tool invocation derived from a recommendation."""
    tool: str
    parameters: Dict[str, Any]
    recommendation_id: str = ""
    max_retries: int = 2
    timeout: int = 30
    expected_result: str = ""
    success_criteria: List[str] = field(default_factory=list)
    fallback_strategy: Optional["AgentCommand"] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "parameters": dict(self.parameters),
            "recommendation_id": self.recommendation_id,
            "max_retries": self.max_retries,
            "timeout": self.timeout,
            "expected_result": self.expected_result,
            "success_criteria": list(self.success_criteria),
            "fallback_strategy": (
                self.fallback_strategy.to_dict() if self.fallback_strategy else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentCommand":
        fallback = data.get("fallback_strategy")
        return cls(
            tool=data["tool"],
            parameters=dict(data.get("parameters") or {}),
            recommendation_id=data.get("recommendation_id", ""),
            max_retries=data.get("max_retries", 2),
            timeout=data.get("timeout", 30),
            expected_result=data.get("expected_result", ""),
            success_criteria=list(data.get("success_criteria", [])),
            fallback_strategy=cls.from_dict(fallback) if fallback else None,
        )


@dataclass
class Recommendation:
    """An actionable improvement proposal."""
    id: str
    dimension: Dimension
    type: RecommendationType
    priority: Priority
    category: RecommendationCategory
    title: str
    description: str
    reasoning: str
    agent_command: AgentCommand
    estimated_improvement: float
    confidence: float
    execution_complexity: ExecutionComplexity = ExecutionComplexity.SIMPLE
    estimated_time: int = 30
    problem_details: Dict[str, Any] = field(default_factory=dict)

    @property
    def requires_approval(self) -> bool:
        return self.category != RecommendationCategory.AUTO_EXECUTE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "dimension": self.dimension.value,
            "type": self.type.value,
            "priority": self.priority.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "reasoning": self.reasoning,
            "agent_command": self.agent_command.to_dict(),
            "estimated_improvement": self.estimated_improvement,
            "confidence": self.confidence,
            "execution_complexity": self.execution_complexity.value,
            "estimated_time": self.estimated_time,
            "problem_details": dict(self.problem_details),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recommendation":
        return cls(
            id=data["id"],
            dimension=Dimension(data["dimension"]),
            type=RecommendationType(data["type"]),
            priority=Priority(data["priority"]),
            category=RecommendationCategory(data["category"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            reasoning=data.get("reasoning", ""),
            agent_command=AgentCommand.from_dict(data["agent_command"]),
            estimated_improvement=data.get("estimated_improvement", 0.0),
            confidence=data.get("confidence", 0.0),
            execution_complexity=ExecutionComplexity(
                data.get("execution_complexity", "simple")
            ),
            estimated_time=data.get("estimated_time", 30),
            problem_details=dict(data.get("problem_details", {})),
        )


@dataclass(frozen=True)
class QualityAnalysisResult:
    """
    Immutable snapshot of one analysis.

    overall_score is the unrounded weighted average of dimension_scores.
    Attaching recommendations produces a new snapshot via dataclasses.replace.
    """
    overall_score: float
    quality_grade: str
    dimension_scores: Dict[str, float]
    quality_gate_passed: bool
    improvement_potential: float
    confidence_level: float
    max_achievable_score: float = 0.0
    estimated_final_score: float = 0.0
    recommendations: Tuple[Recommendation, ...] = ()
    dimension_details: Dict[str, DimensionScore] = field(default_factory=dict)
    analyzed_elements: Tuple[AnalyzedElement, ...] = ()
    analysis_time: float = 0.0
    auto_executable_count: int = 0
    manual_approval_count: int = 0
    critical_issues_count: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "quality_grade": self.quality_grade,
            "dimension_scores": dict(self.dimension_scores),
            "quality_gate_passed": self.quality_gate_passed,
            "improvement_potential": self.improvement_potential,
            "confidence_level": self.confidence_level,
            "max_achievable_score": self.max_achievable_score,
            "estimated_final_score": self.estimated_final_score,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "dimension_details": {
                k: v.to_dict() for k, v in self.dimension_details.items()
            },
            "analyzed_elements": [e.to_dict() for e in self.analyzed_elements],
            "analysis_time": self.analysis_time,
            "auto_executable_count": self.auto_executable_count,
            "manual_approval_count": self.manual_approval_count,
            "critical_issues_count": self.critical_issues_count,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualityAnalysisResult":
        return cls(
            overall_score=data["overall_score"],
            quality_grade=data["quality_grade"],
            dimension_scores=dict(data["dimension_scores"]),
            quality_gate_passed=data["quality_gate_passed"],
            improvement_potential=data.get("improvement_potential", 0.0),
            confidence_level=data.get("confidence_level", 0.0),
            max_achievable_score=data.get("max_achievable_score", 0.0),
            estimated_final_score=data.get("estimated_final_score", 0.0),
            recommendations=tuple(
                Recommendation.from_dict(r) for r in data.get("recommendations", [])
            ),
            dimension_details={
                k: DimensionScore.from_dict(v)
                for k, v in data.get("dimension_details", {}).items()
            },
            analyzed_elements=tuple(
                AnalyzedElement.from_dict(e) for e in data.get("analyzed_elements", [])
            ),
            analysis_time=data.get("analysis_time", 0.0),
            auto_executable_count=data.get("auto_executable_count", 0),
            manual_approval_count=data.get("manual_approval_count", 0),
            critical_issues_count=data.get("critical_issues_count", 0),
            timestamp=_parse_datetime(data.get("timestamp")) or datetime.now(),
        )


# ============================================================================
# EXECUTION
# ============================================================================

@dataclass
class ExecutionResult:
    """Outcome of one command. `command` is always the original command."""
    recommendation_id: str
    command: AgentCommand
    success: bool
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    score_impact: float = 0.0
    execution_time: float = 0.0
    attempts: int = 0
    used_fallback: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendation_id": self.recommendation_id,
            "command": self.command.to_dict(),
            "success": self.success,
            "result": self.result,
            "error_message": self.error_message,
            "score_impact": self.score_impact,
            "execution_time": self.execution_time,
            "attempts": self.attempts,
            "used_fallback": self.used_fallback,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionResult":
        return cls(
            recommendation_id=data["recommendation_id"],
            command=AgentCommand.from_dict(data["command"]),
            success=data["success"],
            result=data.get("result"),
            error_message=data.get("error_message"),
            score_impact=data.get("score_impact", 0.0),
            execution_time=data.get("execution_time", 0.0),
            attempts=data.get("attempts", 0),
            used_fallback=data.get("used_fallback", False),
            timestamp=_parse_datetime(data.get("timestamp")) or datetime.now(),
        )


@dataclass
class ExecutionPlan:
    """Ordered plan of recommendation ids for one iteration."""
    auto_execute: List[str] = field(default_factory=list)
    manual_approval: List[str] = field(default_factory=list)
    critical_review: List[str] = field(default_factory=list)
    deferred: List[str] = field(default_factory=list)
    execution_order: List[str] = field(default_factory=list)
    estimated_total_time: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "auto_execute": list(self.auto_execute),
            "manual_approval": list(self.manual_approval),
            "critical_review": list(self.critical_review),
            "deferred": list(self.deferred),
            "execution_order": list(self.execution_order),
            "estimated_total_time": self.estimated_total_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionPlan":
        return cls(
            auto_execute=list(data.get("auto_execute", [])),
            manual_approval=list(data.get("manual_approval", [])),
            critical_review=list(data.get("critical_review", [])),
            deferred=list(data.get("deferred", [])),
            execution_order=list(data.get("execution_order", [])),
            estimated_total_time=data.get("estimated_total_time", 0),
        )


@dataclass
class NextAction:
    """Suggested next step for the caller."""
    action_type: str  # auto_execute, request_approval, escalate, complete
    description: str
    recommendation_ids: List[str] = field(default_factory=list)
    priority: str = Priority.MEDIUM.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type,
            "description": self.description,
            "recommendation_ids": list(self.recommendation_ids),
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NextAction":
        return cls(
            action_type=data["action_type"],
            description=data.get("description", ""),
            recommendation_ids=list(data.get("recommendation_ids", [])),
            priority=data.get("priority", Priority.MEDIUM.value),
        )


@dataclass
class LoopDecision:
    """Result of the continuation policy."""
    should_continue: bool
    status: SessionStatus
    reason: str
    completion_reason: Optional[CompletionReason] = None
    escalation_required: bool = False
    success: bool = False
    next_iteration_focus: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "should_continue": self.should_continue,
            "status": self.status.value,
            "reason": self.reason,
            "completion_reason": (
                self.completion_reason.value if self.completion_reason else None
            ),
            "escalation_required": self.escalation_required,
            "success": self.success,
            "next_iteration_focus": self.next_iteration_focus,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoopDecision":
        reason = data.get("completion_reason")
        return cls(
            should_continue=data["should_continue"],
            status=SessionStatus(data["status"]),
            reason=data.get("reason", ""),
            completion_reason=CompletionReason(reason) if reason else None,
            escalation_required=data.get("escalation_required", False),
            success=data.get("success", False),
            next_iteration_focus=data.get("next_iteration_focus"),
        )


# ============================================================================
# REQUEST / RESPONSE
# ============================================================================

ApprovalCallback = Callable[[AgentCommand], Awaitable[Optional[bool]]]
ProgressCallback = Callable[[str, float], None]


@dataclass
class ConsultantRequest:
    """Artifact under review plus campaign and iteration context."""
    html_content: str
    topic: str
    mjml_source: Optional[str] = None
    subject_line: Optional[str] = None
    target_audience: Optional[str] = None
    campaign_type: str = "promotional"
    language: str = "en"
    tone: Optional[str] = None
    screenshots: List[str] = field(default_factory=list)
    assets_used: List[Dict[str, Any]] = field(default_factory=list)
    prices: List[Dict[str, Any]] = field(default_factory=list)
    content_metadata: Dict[str, Any] = field(default_factory=dict)
    render_test_results: Dict[str, Any] = field(default_factory=dict)

    # Iteration context
    previous_analysis: Optional[QualityAnalysisResult] = None
    iteration_count: int = 0
    improvement_history: List["ImprovementIteration"] = field(default_factory=list)
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    user_approvals: Dict[str, bool] = field(default_factory=dict)
    trace_id: Optional[str] = None

    # Not serialized
    approval_callback: Optional[ApprovalCallback] = field(
        default=None, repr=False, compare=False
    )
    progress_callback: Optional[ProgressCallback] = field(
        default=None, repr=False, compare=False
    )

    def validate(self) -> None:
        """Raise InvalidRequest when required fields are missing."""
        missing = []
        if not self.html_content or not self.html_content.strip():
            missing.append("html_content")
        if not self.topic or not self.topic.strip():
            missing.append("topic")
        if missing:
            raise InvalidRequest(
                f"Missing required fields: {', '.join(missing)}",
                {"missing": missing},
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "html_content": self.html_content,
            "topic": self.topic,
            "mjml_source": self.mjml_source,
            "subject_line": self.subject_line,
            "target_audience": self.target_audience,
            "campaign_type": self.campaign_type,
            "language": self.language,
            "tone": self.tone,
            "screenshots": list(self.screenshots),
            "assets_used": list(self.assets_used),
            "prices": list(self.prices),
            "content_metadata": dict(self.content_metadata),
            "render_test_results": dict(self.render_test_results),
            "previous_analysis": (
                self.previous_analysis.to_dict() if self.previous_analysis else None
            ),
            "iteration_count": self.iteration_count,
            "improvement_history": [i.to_dict() for i in self.improvement_history],
            "session_id": self.session_id,
            "user_id": self.user_id,
            "user_approvals": dict(self.user_approvals),
            "trace_id": self.trace_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsultantRequest":
        previous = data.get("previous_analysis")
        return cls(
            html_content=data.get("html_content", ""),
            topic=data.get("topic", ""),
            mjml_source=data.get("mjml_source"),
            subject_line=data.get("subject_line"),
            target_audience=data.get("target_audience"),
            campaign_type=data.get("campaign_type", "promotional"),
            language=data.get("language", "en"),
            tone=data.get("tone"),
            screenshots=list(data.get("screenshots", [])),
            assets_used=list(data.get("assets_used", [])),
            prices=list(data.get("prices", [])),
            content_metadata=dict(data.get("content_metadata", {})),
            render_test_results=dict(data.get("render_test_results", {})),
            previous_analysis=(
                QualityAnalysisResult.from_dict(previous) if previous else None
            ),
            iteration_count=data.get("iteration_count", 0),
            improvement_history=[
                ImprovementIteration.from_dict(i)
                for i in data.get("improvement_history", [])
            ],
            session_id=data.get("session_id"),
            user_id=data.get("user_id"),
            user_approvals=dict(data.get("user_approvals", {})),
            trace_id=data.get("trace_id"),
        )


@dataclass
class ConsultantResponse:
    """Output of one consultation pass."""
    analysis: QualityAnalysisResult
    execution_plan: ExecutionPlan
    next_actions: List[NextAction]
    decision: LoopDecision
    commands: List[AgentCommand] = field(default_factory=list)
    execution_results: List[ExecutionResult] = field(default_factory=list)
    pending_approvals: List[str] = field(default_factory=list)
    projected_score: float = 0.0
    updated_html: Optional[str] = None
    response_time: float = 0.0

    @property
    def should_continue(self) -> bool:
        return self.decision.should_continue

    @property
    def completion_reason(self) -> Optional[CompletionReason]:
        return self.decision.completion_reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis": self.analysis.to_dict(),
            "execution_plan": self.execution_plan.to_dict(),
            "next_actions": [a.to_dict() for a in self.next_actions],
            "decision": self.decision.to_dict(),
            "commands": [c.to_dict() for c in self.commands],
            "execution_results": [r.to_dict() for r in self.execution_results],
            "pending_approvals": list(self.pending_approvals),
            "projected_score": self.projected_score,
            "updated_html": self.updated_html,
            "response_time": self.response_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsultantResponse":
        return cls(
            analysis=QualityAnalysisResult.from_dict(data["analysis"]),
            execution_plan=ExecutionPlan.from_dict(data.get("execution_plan", {})),
            next_actions=[NextAction.from_dict(a) for a in data.get("next_actions", [])],
            decision=LoopDecision.from_dict(data["decision"]),
            commands=[AgentCommand.from_dict(c) for c in data.get("commands", [])],
            execution_results=[
                ExecutionResult.from_dict(r) for r in data.get("execution_results", [])
            ],
            pending_approvals=list(data.get("pending_approvals", [])),
            projected_score=data.get("projected_score", 0.0),
            updated_html=data.get("updated_html"),
            response_time=data.get("response_time", 0.0),
        )


# ============================================================================
# LOOP
# ============================================================================

@dataclass
class ImprovementIteration:
    """One pass of analyze -> recommend -> execute."""
    iteration_number: int
    initial_score: float
    final_score: float
    score_improvement: float
    success: bool
    execution_results: List[ExecutionResult] = field(default_factory=list)
    recommendations_applied: List[str] = field(default_factory=list)
    pending_approvals: List[str] = field(default_factory=list)
    projected_score: float = 0.0
    error_message: Optional[str] = None
    total_time: float = 0.0
    consultant_response: Optional[ConsultantResponse] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration_number": self.iteration_number,
            "initial_score": self.initial_score,
            "final_score": self.final_score,
            "score_improvement": self.score_improvement,
            "success": self.success,
            "execution_results": [r.to_dict() for r in self.execution_results],
            "recommendations_applied": list(self.recommendations_applied),
            "pending_approvals": list(self.pending_approvals),
            "projected_score": self.projected_score,
            "error_message": self.error_message,
            "total_time": self.total_time,
            "consultant_response": (
                self.consultant_response.to_dict() if self.consultant_response else None
            ),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImprovementIteration":
        response = data.get("consultant_response")
        return cls(
            iteration_number=data["iteration_number"],
            initial_score=data["initial_score"],
            final_score=data["final_score"],
            score_improvement=data["score_improvement"],
            success=data["success"],
            execution_results=[
                ExecutionResult.from_dict(r) for r in data.get("execution_results", [])
            ],
            recommendations_applied=list(data.get("recommendations_applied", [])),
            pending_approvals=list(data.get("pending_approvals", [])),
            projected_score=data.get("projected_score", 0.0),
            error_message=data.get("error_message"),
            total_time=data.get("total_time", 0.0),
            consultant_response=(
                ConsultantResponse.from_dict(response) if response else None
            ),
            timestamp=_parse_datetime(data.get("timestamp")) or datetime.now(),
        )


@dataclass
class QualityLoopSession:
    """A multi-iteration improvement session."""
    session_id: str
    email_topic: str
    initial_request: ConsultantRequest
    user_id: Optional[str] = None
    iterations: List[ImprovementIteration] = field(default_factory=list)
    current_status: SessionStatus = SessionStatus.NOT_STARTED
    final_score: float = 0.0
    total_improvement: float = 0.0
    completion_reason: Optional[CompletionReason] = None
    escalation_required: bool = False
    success: bool = False
    current_html: Optional[str] = None
    user_approvals: Dict[str, bool] = field(default_factory=dict)
    session_start: datetime = field(default_factory=datetime.now)
    session_end: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.current_status not in TERMINAL_STATUSES

    @property
    def total_execution_time(self) -> float:
        return sum(i.total_time for i in self.iterations)

    def calculate_total_improvement(self) -> float:
        """Last final score minus first initial score."""
        if not self.iterations:
            return 0.0
        return self.iterations[-1].final_score - self.iterations[0].initial_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "email_topic": self.email_topic,
            "initial_request": self.initial_request.to_dict(),
            "user_id": self.user_id,
            "iterations": [i.to_dict() for i in self.iterations],
            "current_status": self.current_status.value,
            "final_score": self.final_score,
            "total_improvement": self.total_improvement,
            "completion_reason": (
                self.completion_reason.value if self.completion_reason else None
            ),
            "escalation_required": self.escalation_required,
            "success": self.success,
            "current_html": self.current_html,
            "user_approvals": dict(self.user_approvals),
            "session_start": self.session_start.isoformat(),
            "session_end": _format_datetime(self.session_end),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualityLoopSession":
        reason = data.get("completion_reason")
        return cls(
            session_id=data["session_id"],
            email_topic=data["email_topic"],
            initial_request=ConsultantRequest.from_dict(data["initial_request"]),
            user_id=data.get("user_id"),
            iterations=[
                ImprovementIteration.from_dict(i) for i in data.get("iterations", [])
            ],
            current_status=SessionStatus(data.get("current_status", "not_started")),
            final_score=data.get("final_score", 0.0),
            total_improvement=data.get("total_improvement", 0.0),
            completion_reason=CompletionReason(reason) if reason else None,
            escalation_required=data.get("escalation_required", False),
            success=data.get("success", False),
            current_html=data.get("current_html"),
            user_approvals=dict(data.get("user_approvals", {})),
            session_start=_parse_datetime(data.get("session_start")) or datetime.now(),
            session_end=_parse_datetime(data.get("session_end")),
        )
