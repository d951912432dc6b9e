"""
AI Quality Consultant

Single-pass orchestration of one improvement iteration:

    analyze -> recommend -> generate commands -> execute -> plan -> decide

The consultant holds no session state; the loop controller feeds it the
iteration history. Every collaborator is injected, so tests can swap the
analyzer or tool invoker without touching module globals.
"""

import logging
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .analyzer.client import ClaudeClient
from .analyzer.engine import QualityAnalyzer, create_quality_analyzer
from .commands.executor import ActionExecutor, ExecutionContext, ExecutionPartition
from .commands.generator import CommandGenerator
from .errors import ConsultantError
from .loop.policy import LoopState, decide_continuation
from .models import (
    ConsultantRequest,
    ConsultantResponse,
    ExecutionPlan,
    ExecutionResult,
    LoopDecision,
    NextAction,
    Priority,
    QualityAnalysisResult,
    Recommendation,
    RecommendationCategory,
)
from .recommendations.engine import RecommendationEngine
from .recommendations.writer import ClaudeReasoningWriter
from .tools.http import HttpToolInvoker
from .utils.config import ConsultantConfig, Settings, get_settings

logger = logging.getLogger(__name__)


HTML_RESULT_KEYS = ("html_content", "html")


class AIQualityConsultant:
    """
    Facade over analyzer, recommendation engine, command generator and executor.

    Usage:
        consultant = create_consultant()
        response = await consultant.consult_on_quality(request)
    """

    def __init__(
        self,
        analyzer: QualityAnalyzer,
        recommendation_engine: RecommendationEngine,
        command_generator: CommandGenerator,
        executor: ActionExecutor,
        config: Optional[ConsultantConfig] = None,
    ):
        self.config = config or ConsultantConfig()
        self.analyzer = analyzer
        self.recommendation_engine = recommendation_engine
        self.command_generator = command_generator
        self.executor = executor
        self._sync_config()

        self._consultations = 0
        self._gate_passes = 0
        self._score_sum = 0.0
        self._errors: Dict[str, int] = {}

    # =========================================================================
    # MAIN ENTRY POINT
    # =========================================================================

    async def consult_on_quality(self, request: ConsultantRequest) -> ConsultantResponse:
        """
        Run one consultation pass.

        Raises:
            InvalidRequest: html_content or topic missing
            AnalysisFailed: a dimension could not be scored
            RecommendationGenerationFailed: recommendation rules failed
        """
        start = time.monotonic()
        try:
            response = await self._consult(request, start)
        except ConsultantError as e:
            self._errors[e.code] = self._errors.get(e.code, 0) + 1
            logger.error(f"Consultation failed [{e.code}]: {e.message}")
            raise

        self._consultations += 1
        self._score_sum += response.analysis.overall_score
        if response.analysis.quality_gate_passed:
            self._gate_passes += 1
        return response

    async def _consult(self, request: ConsultantRequest, start: float) -> ConsultantResponse:
        request.validate()
        logger.info(
            f"Consulting on '{request.topic}' "
            f"(iteration {request.iteration_count + 1}, session {request.session_id or '-'})"
        )
        self._progress(request, "Analyzing email", 10)

        analysis = await self.analyzer.analyze(request)

        if analysis.quality_gate_passed or request.iteration_count >= self.config.max_iterations:
            return self._completion_response(request, analysis, start)

        # Recommend
        self._progress(request, "Generating recommendations", 30)
        recommendations = await self.recommendation_engine.generate_recommendations(analysis, request)
        analysis = replace(
            analysis,
            recommendations=tuple(recommendations),
            auto_executable_count=_count(recommendations, RecommendationCategory.AUTO_EXECUTE),
            manual_approval_count=_count(recommendations, RecommendationCategory.MANUAL_APPROVAL),
            critical_issues_count=_count(recommendations, RecommendationCategory.CRITICAL_REVIEW),
        )

        # Commands
        self._progress(request, "Preparing commands", 50)
        commands = self.command_generator.generate_commands(recommendations, request)
        partition = self.executor.partition(commands, recommendations)

        # Execute
        results: List[ExecutionResult] = []
        if commands:
            self._progress(request, "Executing commands", 60)
            results = await self.executor.execute_commands(
                commands,
                recommendations,
                ExecutionContext(
                    session_id=request.session_id,
                    iteration_number=request.iteration_count + 1,
                    user_approvals=dict(request.user_approvals),
                    approval_callback=request.approval_callback,
                    progress_callback=request.progress_callback,
                ),
            )

        executed_ids = {r.recommendation_id for r in results}
        pending = [c.recommendation_id for c in partition.manual if c.recommendation_id not in executed_ids]
        projected = min(
            100.0,
            analysis.overall_score + sum(r.score_impact for r in results if r.success),
        )

        plan = self.build_execution_plan(recommendations, partition)
        decision = decide_continuation(
            self._loop_state(request, analysis, pending, start),
            self.config,
        )
        self._progress(request, "Done", 100)

        return ConsultantResponse(
            analysis=analysis,
            execution_plan=plan,
            next_actions=self._next_actions(recommendations, plan, pending, results, decision),
            decision=decision,
            commands=commands,
            execution_results=results,
            pending_approvals=pending,
            projected_score=projected,
            updated_html=_updated_html(results),
            response_time=time.monotonic() - start,
        )

    def _completion_response(
        self,
        request: ConsultantRequest,
        analysis: QualityAnalysisResult,
        start: float,
    ) -> ConsultantResponse:
        decision = decide_continuation(self._loop_state(request, analysis, [], start), self.config)
        logger.info(f"No further work: {decision.reason}")
        return ConsultantResponse(
            analysis=analysis,
            execution_plan=ExecutionPlan(),
            next_actions=[NextAction(action_type="complete", description=decision.reason)],
            decision=decision,
            projected_score=analysis.overall_score,
            response_time=time.monotonic() - start,
        )

    # =========================================================================
    # PLANNING
    # =========================================================================

    def build_execution_plan(
        self,
        recommendations: List[Recommendation],
        partition: ExecutionPartition,
    ) -> ExecutionPlan:
        """Order: auto fixes, then manual approvals, then critical reviews."""
        by_id = {r.id: r for r in recommendations}
        auto = [c.recommendation_id for c in partition.auto]
        deferred = [c.recommendation_id for c in partition.deferred]
        manual = [
            c.recommendation_id for c in partition.manual
            if by_id.get(c.recommendation_id) is None
            or by_id[c.recommendation_id].category != RecommendationCategory.CRITICAL_REVIEW
        ]
        critical = [
            c.recommendation_id for c in partition.manual
            if c.recommendation_id in by_id
            and by_id[c.recommendation_id].category == RecommendationCategory.CRITICAL_REVIEW
        ]
        order = auto + manual + critical
        total_time = sum(by_id[i].estimated_time for i in order if i in by_id)

        return ExecutionPlan(
            auto_execute=auto,
            manual_approval=manual,
            critical_review=critical,
            deferred=deferred,
            execution_order=order,
            estimated_total_time=min(total_time, self.config.max_total_execution_time),
        )

    def _next_actions(
        self,
        recommendations: List[Recommendation],
        plan: ExecutionPlan,
        pending: List[str],
        results: List[ExecutionResult],
        decision: LoopDecision,
    ) -> List[NextAction]:
        actions = []

        if plan.auto_execute:
            done = sum(1 for r in results if r.success and r.recommendation_id in plan.auto_execute)
            if self.config.enable_auto_execution:
                description = f"Applied {done}/{len(plan.auto_execute)} automatic fixes"
            else:
                description = f"{len(plan.auto_execute)} automatic fixes ready (auto-execution disabled)"
            actions.append(NextAction(
                action_type="auto_execute",
                description=description,
                recommendation_ids=list(plan.auto_execute),
            ))

        if pending:
            actions.append(NextAction(
                action_type="request_approval",
                description=f"{len(pending)} recommendation(s) need approval",
                recommendation_ids=list(pending),
                priority=Priority.HIGH.value,
            ))

        critical = [r.id for r in recommendations if r.category == RecommendationCategory.CRITICAL_REVIEW]
        if critical or decision.escalation_required:
            actions.append(NextAction(
                action_type="escalate",
                description="Critical quality issues need human review",
                recommendation_ids=critical,
                priority=Priority.CRITICAL.value,
            ))

        if decision.completion_reason is not None and not decision.escalation_required:
            actions.append(NextAction(action_type="complete", description=decision.reason))

        return actions

    def _loop_state(
        self,
        request: ConsultantRequest,
        analysis: QualityAnalysisResult,
        pending: List[str],
        start: float,
    ) -> LoopState:
        history = request.improvement_history
        if history:
            previous_score: Optional[float] = history[-1].final_score
        elif request.previous_analysis is not None:
            previous_score = request.previous_analysis.overall_score
        else:
            previous_score = None

        current_gain = analysis.overall_score - previous_score if previous_score is not None else 0.0
        return LoopState(
            current_score=analysis.overall_score,
            iteration_count=request.iteration_count + 1,
            score_improvements=[i.score_improvement for i in history] + [current_gain],
            dimension_scores=dict(analysis.dimension_scores),
            pending_approvals=list(pending),
            elapsed_time=sum(i.total_time for i in history) + (time.monotonic() - start),
        )

    # =========================================================================
    # RESULTS / CONFIG / ANALYTICS
    # =========================================================================

    @staticmethod
    def process_improvement_results(results: List[ExecutionResult]) -> Dict[str, Any]:
        """Summarize execution results of an iteration."""
        successful = [r for r in results if r.success]
        return {
            "total": len(results),
            "successful": len(successful),
            "failed": len(results) - len(successful),
            "used_fallback": sum(1 for r in results if r.used_fallback),
            "estimated_score_impact": sum(r.score_impact for r in successful),
            "applied": [r.recommendation_id for r in successful],
            "errors": {
                r.recommendation_id: r.error_message for r in results if not r.success
            },
        }

    def get_config(self) -> ConsultantConfig:
        return self.config

    def update_config(self, **overrides: Any) -> ConsultantConfig:
        """Replace config fields and propagate to all components."""
        self.config = self.config.with_overrides(**overrides)
        self._sync_config()
        logger.info(f"Consultant config updated: {', '.join(sorted(overrides))}")
        return self.config

    def _sync_config(self):
        for component in (self.analyzer, self.recommendation_engine, self.command_generator, self.executor):
            component.config = self.config

    def get_analytics(self) -> Dict[str, Any]:
        return {
            "consultations": self._consultations,
            "quality_gate_passes": self._gate_passes,
            "average_score": self._score_sum / self._consultations if self._consultations else 0.0,
            "errors_by_code": dict(self._errors),
        }

    async def close(self):
        """Close the tool invoker if it holds a connection."""
        close = getattr(self.executor.invoker, "close", None)
        if close is not None:
            await close()

    @staticmethod
    def _progress(request: ConsultantRequest, stage: str, percent: float):
        if request.progress_callback is None:
            return
        try:
            request.progress_callback(stage, percent)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")


def _count(recommendations: List[Recommendation], category: RecommendationCategory) -> int:
    return sum(1 for r in recommendations if r.category == category)


def _updated_html(results: List[ExecutionResult]) -> Optional[str]:
    html = None
    for result in results:
        if not result.success or not isinstance(result.result, dict):
            continue
        for key in HTML_RESULT_KEYS:
            if isinstance(result.result.get(key), str) and result.result[key]:
                html = result.result[key]
                break
    return html


# ============================================================================
# FACTORY
# ============================================================================

def create_consultant(
    config: Optional[ConsultantConfig] = None,
    settings: Optional[Settings] = None,
    invoker: Optional[Any] = None,
    client: Optional[ClaudeClient] = None,
    use_reasoning_writer: bool = False,
    pause_seconds: float = 0.5,
) -> AIQualityConsultant:
    """
    Build a consultant from settings.

    Args:
        config: Consultant configuration (from settings if omitted)
        settings: Application settings (cached environment settings if omitted)
        invoker: Tool invoker (HTTP tool service from settings if omitted)
        client: Claude client (created from settings if omitted)
        use_reasoning_writer: Let Claude write recommendation reasoning
        pause_seconds: Pause between auto-executed commands

    Raises:
        ValueError: no tool invoker and no TOOL_SERVICE_URL configured
    """
    settings = settings or get_settings()
    config = config or ConsultantConfig.from_settings(settings)

    if invoker is None:
        if not settings.TOOL_SERVICE_URL:
            raise ValueError("No tool invoker given and TOOL_SERVICE_URL not set")
        invoker = HttpToolInvoker(
            settings.TOOL_SERVICE_URL,
            api_key=settings.TOOL_SERVICE_API_KEY,
            timeout=settings.TOOL_SERVICE_TIMEOUT,
        )

    client = client or ClaudeClient(api_key=settings.ANTHROPIC_API_KEY, model=config.ai_model)
    writer = ClaudeReasoningWriter(client, temperature=config.analysis_temperature) if use_reasoning_writer else None

    return AIQualityConsultant(
        analyzer=create_quality_analyzer(config, client=client),
        recommendation_engine=RecommendationEngine(config, writer=writer),
        command_generator=CommandGenerator(config),
        executor=ActionExecutor(invoker, config, pause_seconds=pause_seconds),
        config=config,
    )
