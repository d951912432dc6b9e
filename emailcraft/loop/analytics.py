"""
Quality Loop Analytics

In-process aggregate statistics over finished loop sessions.
"""

import logging
from collections import Counter, deque
from typing import Any, Deque, Dict

from ..models import QualityLoopSession

logger = logging.getLogger(__name__)


RECENT_SESSIONS_LIMIT = 10


class QualityLoopAnalytics:
    """Counts and averages across completed sessions."""

    def __init__(self):
        self.total_sessions = 0
        self.finished_sessions = 0
        self.successful_sessions = 0
        self.escalated_sessions = 0
        self.total_iterations = 0
        self._improvement_sum = 0.0
        self._iteration_count_sum = 0
        self._session_time_sum = 0.0
        self._completion_reasons: Counter = Counter()
        self._recent: Deque[Dict[str, Any]] = deque(maxlen=RECENT_SESSIONS_LIMIT)

    def record_session_start(self, session: QualityLoopSession):
        self.total_sessions += 1

    def record_iteration(self, session: QualityLoopSession):
        self.total_iterations += 1

    def record_session_complete(self, session: QualityLoopSession):
        self.finished_sessions += 1
        if session.success:
            self.successful_sessions += 1
        if session.escalation_required:
            self.escalated_sessions += 1

        self._improvement_sum += session.total_improvement
        self._iteration_count_sum += len(session.iterations)
        if session.session_end:
            self._session_time_sum += (session.session_end - session.session_start).total_seconds()

        reason = session.completion_reason.value if session.completion_reason else "unknown"
        self._completion_reasons[reason] += 1

        self._recent.append({
            "session_id": session.session_id,
            "email_topic": session.email_topic,
            "status": session.current_status.value,
            "completion_reason": reason,
            "iterations": len(session.iterations),
            "final_score": session.final_score,
            "total_improvement": session.total_improvement,
            "success": session.success,
        })
        logger.debug(f"Recorded completion of {session.session_id} ({reason})")

    def get_analytics(self) -> Dict[str, Any]:
        finished = self.finished_sessions
        return {
            "total_sessions": self.total_sessions,
            "finished_sessions": finished,
            "successful_sessions": self.successful_sessions,
            "escalated_sessions": self.escalated_sessions,
            "total_iterations": self.total_iterations,
            "average_iterations": self._iteration_count_sum / finished if finished else 0.0,
            "average_improvement": self._improvement_sum / finished if finished else 0.0,
            "average_session_time": self._session_time_sum / finished if finished else 0.0,
            "quality_gate_pass_rate": self.successful_sessions / finished if finished else 0.0,
            "completion_reasons": dict(self._completion_reasons),
            "recent_sessions": list(self._recent),
        }
