"""
Quality Loop

Iterative improvement sessions: continuation policy, controller,
session storage and analytics.
"""

from .analytics import QualityLoopAnalytics
from .controller import (
    QualityLoopController,
    create_quality_loop_controller,
    generate_session_id,
)
from .policy import LoopState, decide_continuation
from .store import InMemorySessionStore, RedisSessionStore, SessionStore

__all__ = [
    "QualityLoopController",
    "create_quality_loop_controller",
    "generate_session_id",
    "LoopState",
    "decide_continuation",
    "QualityLoopAnalytics",
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
]
