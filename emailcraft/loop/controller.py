"""
Quality Loop Controller

Drives multi-iteration improvement sessions on top of the consultant.

Lifecycle:
    start_quality_loop     -> create session, run iteration 1, decide
    continue_quality_loop  -> decide, run next iteration, decide again
    complete_quality_loop  -> close a session on request
    run_quality_loop       -> start and continue until the loop stops

Session status after each decision:
    gate passed               -> completed (success)
    max iterations / time     -> completed (reason recorded)
    escalation                -> escalated
    approvals outstanding     -> requires_approval (session stays active)
    iteration raised an error -> failed

Finished sessions are removed from the store and recorded in analytics.
"""

import logging
import secrets
import time
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import InvalidRequest, SessionNotFound
from ..models import (
    ApprovalCallback,
    CompletionReason,
    ConsultantRequest,
    ImprovementIteration,
    QualityLoopSession,
    SessionStatus,
)
from ..utils.config import ConsultantConfig
from .analytics import QualityLoopAnalytics
from .policy import LoopState, decide_continuation
from .store import InMemorySessionStore, RedisSessionStore, SessionStore

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    return f"ql_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class QualityLoopController:
    """
    Session manager for the iterative quality loop.

    Usage:
        controller = QualityLoopController(consultant)
        session = await controller.start_quality_loop(request)
        while session.current_status == SessionStatus.IN_PROGRESS:
            session = await controller.continue_quality_loop(session.session_id)
    """

    def __init__(
        self,
        consultant: Any,
        config: Optional[ConsultantConfig] = None,
        store: Optional[SessionStore] = None,
        analytics: Optional[QualityLoopAnalytics] = None,
    ):
        """
        Args:
            consultant: Object with `async consult_on_quality(request)`
            config: Loop configuration. When omitted the consultant's current
                config is read on every decision, so update_config on the
                consultant applies to the loop as well.
            store: Session store (in-memory by default)
            analytics: Analytics collector
        """
        self.consultant = consultant
        self._config = config
        self._default_config = ConsultantConfig()
        self.store = store or InMemorySessionStore()
        self.analytics = analytics or QualityLoopAnalytics()
        # Callbacks are not serializable; they stay in this process.
        self._approval_callbacks: Dict[str, ApprovalCallback] = {}

    @property
    def config(self) -> ConsultantConfig:
        if self._config is not None:
            return self._config
        return getattr(self.consultant, "config", None) or self._default_config

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def start_quality_loop(
        self,
        request: ConsultantRequest,
        session_id: Optional[str] = None,
    ) -> QualityLoopSession:
        """
        Create a session and run its first iteration.

        Raises:
            InvalidRequest: request is incomplete or the session id is taken
        """
        request.validate()
        session_id = session_id or request.session_id or generate_session_id()

        async with self.store.lock(session_id):
            if await self.store.get(session_id) is not None:
                raise InvalidRequest(f"Session {session_id} already exists", {"session_id": session_id})

            session = QualityLoopSession(
                session_id=session_id,
                email_topic=request.topic,
                initial_request=request,
                user_id=request.user_id,
                current_status=SessionStatus.IN_PROGRESS,
                current_html=request.html_content,
                user_approvals=dict(request.user_approvals),
            )
            self.analytics.record_session_start(session)
            logger.info(f"Starting quality loop {session_id} for '{request.topic}'")

            if request.approval_callback is not None:
                self._approval_callbacks[session_id] = request.approval_callback
            await self._run_iteration(session, request.approval_callback)
            await self._persist(session)

        return session

    async def continue_quality_loop(
        self,
        session_id: str,
        user_approvals: Optional[Dict[str, bool]] = None,
        approval_callback: Optional[ApprovalCallback] = None,
    ) -> QualityLoopSession:
        """
        Run the next iteration if the policy allows it.

        Args:
            session_id: Active session id
            user_approvals: Decisions keyed by recommendation id (kept for the session)
            approval_callback: Asked for manual commands without a recorded decision;
                remembered for later iterations of the session in this process

        Raises:
            SessionNotFound: no active session with this id
        """
        async with self.store.lock(session_id):
            session = await self._get_active(session_id)
            session.user_approvals.update(user_approvals or {})
            if approval_callback is not None:
                self._approval_callbacks[session_id] = approval_callback

            decision = decide_continuation(self._loop_state(session), self.config)
            if not decision.should_continue:
                logger.info(f"Session {session_id} not continued: {decision.reason}")
                self._apply_decision(session, decision)
                await self._persist(session)
                return session

            session.current_status = SessionStatus.IN_PROGRESS
            await self._run_iteration(session, self._approval_callbacks.get(session_id))
            await self._persist(session)

        return session

    async def complete_quality_loop(
        self,
        session_id: str,
        reason: CompletionReason = CompletionReason.USER_REQUESTED,
    ) -> QualityLoopSession:
        """Close an active session without running more iterations."""
        async with self.store.lock(session_id):
            session = await self._get_active(session_id)
            self._finalize(
                session,
                SessionStatus.COMPLETED,
                reason,
                success=session.final_score >= self.config.quality_gate_threshold,
            )
            await self._persist(session)
        return session

    async def run_quality_loop(
        self,
        request: ConsultantRequest,
        user_approvals: Optional[Dict[str, bool]] = None,
        session_id: Optional[str] = None,
    ) -> QualityLoopSession:
        """Start a loop and continue until it stops or needs approval."""
        if user_approvals:
            request = replace(request, user_approvals={**request.user_approvals, **user_approvals})
        session = await self.start_quality_loop(request, session_id=session_id)
        while session.current_status == SessionStatus.IN_PROGRESS:
            session = await self.continue_quality_loop(
                session.session_id,
                approval_callback=request.approval_callback,
            )
        return session

    async def get_session(self, session_id: str) -> QualityLoopSession:
        return await self._get_active(session_id)

    async def get_session_status(self, session_id: str) -> Dict[str, Any]:
        session = await self._get_active(session_id)
        return self._summary(session)

    async def get_active_sessions(self) -> List[Dict[str, Any]]:
        return [self._summary(s) for s in await self.store.list_active()]

    def get_analytics(self) -> Dict[str, Any]:
        return self.analytics.get_analytics()

    async def close(self):
        """Release the consultant's tool client and the session store connection."""
        for resource in (self.consultant, self.store):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # =========================================================================
    # ITERATION
    # =========================================================================

    async def _run_iteration(
        self,
        session: QualityLoopSession,
        approval_callback: Optional[ApprovalCallback],
    ):
        number = len(session.iterations) + 1
        previous = session.iterations[-1] if session.iterations else None
        request = self._iteration_request(session, approval_callback)
        start = time.monotonic()

        logger.info(f"[{session.session_id}] Iteration {number}/{self.config.max_iterations}")

        try:
            response = await self.consultant.consult_on_quality(request)
        except Exception as e:
            logger.error(f"[{session.session_id}] Iteration {number} failed: {e}")
            initial = previous.final_score if previous else 0.0
            session.iterations.append(ImprovementIteration(
                iteration_number=number,
                initial_score=initial,
                final_score=0.0,
                score_improvement=0.0,
                success=False,
                error_message=str(e),
                total_time=time.monotonic() - start,
            ))
            self.analytics.record_iteration(session)
            self._finalize(session, SessionStatus.FAILED, CompletionReason.ITERATION_FAILED)
            return

        score = response.analysis.overall_score
        initial = previous.final_score if previous else score
        results = response.execution_results

        session.iterations.append(ImprovementIteration(
            iteration_number=number,
            initial_score=initial,
            final_score=score,
            score_improvement=score - initial,
            success=True,
            execution_results=list(results),
            recommendations_applied=[r.recommendation_id for r in results if r.success],
            pending_approvals=list(response.pending_approvals),
            projected_score=response.projected_score,
            total_time=time.monotonic() - start,
            consultant_response=response,
        ))
        if response.updated_html:
            session.current_html = response.updated_html
        session.final_score = score
        session.total_improvement = session.calculate_total_improvement()
        self.analytics.record_iteration(session)

        logger.info(
            f"[{session.session_id}] Iteration {number}: {initial:.1f} -> {score:.1f}, "
            f"{len(session.iterations[-1].recommendations_applied)} applied, "
            f"{len(response.pending_approvals)} pending"
        )

        decision = decide_continuation(self._loop_state(session), self.config)
        self._apply_decision(session, decision)

    def _iteration_request(
        self,
        session: QualityLoopSession,
        approval_callback: Optional[ApprovalCallback],
    ) -> ConsultantRequest:
        last = session.iterations[-1] if session.iterations else None
        previous_analysis = (
            last.consultant_response.analysis
            if last is not None and last.consultant_response is not None
            else None
        )
        base = session.initial_request
        return replace(
            base,
            html_content=session.current_html or base.html_content,
            previous_analysis=previous_analysis,
            iteration_count=len(session.iterations),
            improvement_history=list(session.iterations),
            session_id=session.session_id,
            user_approvals=dict(session.user_approvals),
            approval_callback=approval_callback,
        )

    # =========================================================================
    # DECISIONS
    # =========================================================================

    def _loop_state(self, session: QualityLoopSession) -> LoopState:
        last = session.iterations[-1] if session.iterations else None
        dimension_scores: Dict[str, float] = {}
        pending: List[str] = []
        if last is not None:
            if last.consultant_response is not None:
                dimension_scores = dict(last.consultant_response.analysis.dimension_scores)
            pending = [p for p in last.pending_approvals if p not in session.user_approvals]

        return LoopState(
            current_score=session.final_score,
            iteration_count=len(session.iterations),
            score_improvements=[i.score_improvement for i in session.iterations],
            dimension_scores=dimension_scores,
            pending_approvals=pending,
            elapsed_time=session.total_execution_time,
        )

    def _apply_decision(self, session: QualityLoopSession, decision):
        if decision.should_continue:
            session.current_status = SessionStatus.IN_PROGRESS
            logger.info(
                f"[{session.session_id}] Continuing, focus: {decision.next_iteration_focus}"
            )
        elif decision.status == SessionStatus.REQUIRES_APPROVAL:
            session.current_status = SessionStatus.REQUIRES_APPROVAL
            logger.info(f"[{session.session_id}] {decision.reason}")
        else:
            self._finalize(
                session,
                decision.status,
                decision.completion_reason,
                success=decision.success,
                escalation_required=decision.escalation_required,
            )

    def _finalize(
        self,
        session: QualityLoopSession,
        status: SessionStatus,
        reason: Optional[CompletionReason],
        success: bool = False,
        escalation_required: bool = False,
    ):
        session.current_status = status
        session.completion_reason = reason
        session.success = success
        session.escalation_required = escalation_required
        session.session_end = datetime.now()
        self.analytics.record_session_complete(session)

        logger.info(
            f"[{session.session_id}] Finished: {status.value} "
            f"({reason.value if reason else 'no reason'}), "
            f"final score {session.final_score:.1f}, "
            f"improvement {session.total_improvement:+.1f}"
        )

    async def _persist(self, session: QualityLoopSession):
        if session.is_active:
            await self.store.save(session)
        else:
            self._approval_callbacks.pop(session.session_id, None)
            await self.store.delete(session.session_id)

    async def _get_active(self, session_id: str) -> QualityLoopSession:
        session = await self.store.get(session_id)
        if session is None or not session.is_active:
            raise SessionNotFound(f"No active session {session_id}", {"session_id": session_id})
        return session

    @staticmethod
    def _summary(session: QualityLoopSession) -> Dict[str, Any]:
        return {
            "session_id": session.session_id,
            "email_topic": session.email_topic,
            "status": session.current_status.value,
            "iterations": len(session.iterations),
            "final_score": session.final_score,
            "total_improvement": session.total_improvement,
            "completion_reason": (
                session.completion_reason.value if session.completion_reason else None
            ),
            "escalation_required": session.escalation_required,
            "pending_approvals": (
                list(session.iterations[-1].pending_approvals) if session.iterations else []
            ),
            "session_start": session.session_start.isoformat(),
        }


# ============================================================================
# FACTORY
# ============================================================================

def create_quality_loop_controller(
    consultant: Optional[Any] = None,
    store: Optional[SessionStore] = None,
    **consultant_kwargs,
) -> QualityLoopController:
    """
    Build a controller, creating the consultant and store from settings.

    Uses a RedisSessionStore when REDIS_URL is configured.
    """
    from ..consultant import create_consultant
    from ..utils.config import get_settings

    settings = consultant_kwargs.get("settings") or get_settings()
    consultant = consultant or create_consultant(**consultant_kwargs)

    if store is None and settings.REDIS_URL:
        store = RedisSessionStore.from_url(
            settings.REDIS_URL,
            ttl_seconds=settings.SESSION_TTL_SECONDS,
        )

    return QualityLoopController(consultant, store=store)
