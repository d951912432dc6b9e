"""
Loop Continuation Policy

The single place that decides whether an improvement loop keeps going.
Both the consultant (per consultation) and the loop controller (per
session) call decide_continuation.

Rules, first match wins:
1. Score at or above the quality gate -> stop, success
2. Iteration budget used up -> stop (escalate if still critical)
3. Execution time budget used up -> stop
4. Last two iterations improved less than 1 point in total -> stop, escalate
5. Score below the critical threshold -> stop, escalate
6. Manual approvals outstanding -> pause until the caller decides
7. Otherwise continue, focusing on the weakest dimension
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models import CompletionReason, LoopDecision, SessionStatus
from ..utils.config import ConsultantConfig

logger = logging.getLogger(__name__)


DIMINISHING_RETURNS_WINDOW = 2
DIMINISHING_RETURNS_MIN_GAIN = 1.0


@dataclass
class LoopState:
    """Snapshot of loop progress fed to the policy."""
    current_score: float
    iteration_count: int
    score_improvements: List[float] = field(default_factory=list)
    dimension_scores: Dict[str, float] = field(default_factory=dict)
    pending_approvals: List[str] = field(default_factory=list)
    elapsed_time: float = 0.0

    @property
    def lowest_dimension(self) -> Optional[str]:
        if not self.dimension_scores:
            return None
        return min(self.dimension_scores, key=lambda d: self.dimension_scores[d])


def decide_continuation(state: LoopState, config: ConsultantConfig) -> LoopDecision:
    """Apply the continuation rules in priority order."""
    score = state.current_score

    if score >= config.quality_gate_threshold:
        return LoopDecision(
            should_continue=False,
            status=SessionStatus.COMPLETED,
            reason=f"Quality gate passed ({score:.1f} >= {config.quality_gate_threshold:.0f})",
            completion_reason=CompletionReason.QUALITY_GATE_PASSED,
            success=True,
        )

    if state.iteration_count >= config.max_iterations:
        critical = score < config.critical_issue_threshold
        return LoopDecision(
            should_continue=False,
            status=SessionStatus.ESCALATED if critical else SessionStatus.COMPLETED,
            reason=f"Maximum iterations reached ({state.iteration_count})",
            completion_reason=CompletionReason.MAX_ITERATIONS_REACHED,
            escalation_required=critical,
        )

    if state.elapsed_time >= config.max_total_execution_time:
        return LoopDecision(
            should_continue=False,
            status=SessionStatus.COMPLETED,
            reason=(
                f"Execution time budget exhausted "
                f"({state.elapsed_time:.0f}s >= {config.max_total_execution_time}s)"
            ),
            completion_reason=CompletionReason.TIME_BUDGET_EXHAUSTED,
        )

    recent = state.score_improvements[-DIMINISHING_RETURNS_WINDOW:]
    if (
        state.iteration_count >= DIMINISHING_RETURNS_WINDOW
        and len(recent) == DIMINISHING_RETURNS_WINDOW
        and sum(recent) < DIMINISHING_RETURNS_MIN_GAIN
    ):
        return LoopDecision(
            should_continue=False,
            status=SessionStatus.ESCALATED,
            reason=f"Diminishing returns (last {DIMINISHING_RETURNS_WINDOW} iterations gained {sum(recent):.1f})",
            completion_reason=CompletionReason.DIMINISHING_RETURNS,
            escalation_required=True,
        )

    if score < config.critical_issue_threshold:
        return LoopDecision(
            should_continue=False,
            status=SessionStatus.ESCALATED,
            reason=f"Critical quality issues ({score:.1f} < {config.critical_issue_threshold:.0f})",
            completion_reason=CompletionReason.CRITICAL_ISSUES,
            escalation_required=True,
        )

    if state.pending_approvals:
        return LoopDecision(
            should_continue=False,
            status=SessionStatus.REQUIRES_APPROVAL,
            reason=f"Awaiting approval for {len(state.pending_approvals)} recommendation(s)",
            next_iteration_focus=state.lowest_dimension,
        )

    return LoopDecision(
        should_continue=True,
        status=SessionStatus.IN_PROGRESS,
        reason=f"Score {score:.1f} below gate, continuing",
        next_iteration_focus=state.lowest_dimension,
    )
