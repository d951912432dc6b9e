"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules.
"""

import json
import pytest
from typing import Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock, MagicMock

from emailcraft.analyzer.client import AnalysisResponse, TokenUsage
from emailcraft.loop import InMemorySessionStore
from emailcraft.models import (
    ConsultantRequest,
    ConsultantResponse,
    Dimension,
    DimensionScore,
    ExecutionPlan,
    LoopDecision,
    QualityAnalysisResult,
    QualityLoopSession,
    SessionStatus,
)
from emailcraft.quality.scoring import (
    calculate_confidence_level,
    calculate_max_achievable_score,
    calculate_overall_score,
    determine_quality_grade,
    estimate_improvement_potential,
)
from emailcraft.utils.config import ConsultantConfig


SAMPLE_HTML = """<!DOCTYPE html>
<html>
<body>
  <table role="presentation" width="600">
    <tr><td><img src="https://cdn.example.com/antalya.png"></td></tr>
    <tr><td><h1>Summer in Antalya</h1><p>Flights from 8 900 RUB.</p></td></tr>
    <tr><td><a href="https://example.com/sale">Book now</a></td></tr>
  </table>
</body>
</html>"""


# ============================================================================
# Configuration / Request Fixtures
# ============================================================================

@pytest.fixture
def config() -> ConsultantConfig:
    """Default consultant configuration."""
    return ConsultantConfig()


@pytest.fixture
def sample_html() -> str:
    return SAMPLE_HTML


@pytest.fixture
def sample_request() -> ConsultantRequest:
    """Typical promotional email request."""
    return ConsultantRequest(
        html_content=SAMPLE_HTML,
        topic="Summer flights to Antalya",
        subject_line="Summer in Antalya from 8 900 RUB",
        target_audience="families",
        campaign_type="promotional",
        language="en",
        assets_used=[
            {"name": "antalya_beach.png", "url": "https://cdn.example.com/antalya.png"},
        ],
        prices=[{"route": "MOW-AYT", "price": 8900, "currency": "RUB"}],
    )


# ============================================================================
# Analysis Fixtures
# ============================================================================

def uniform_scores(value: float, **overrides: float) -> Dict[str, float]:
    scores = {d.value: float(value) for d in Dimension}
    scores.update(overrides)
    return scores


@pytest.fixture
def make_scores() -> Callable[..., Dict[str, float]]:
    """Factory: make_scores(70, visual_appeal=40) -> dimension score dict."""
    return uniform_scores


@pytest.fixture
def make_analysis(config) -> Callable[..., QualityAnalysisResult]:
    """Factory building an analysis snapshot from dimension scores."""

    def _make(
        scores: Union[float, Dict[str, float]],
        threshold: Optional[float] = None,
    ) -> QualityAnalysisResult:
        if not isinstance(scores, dict):
            scores = uniform_scores(scores)
        overall = calculate_overall_score(scores)
        gate = config.quality_gate_threshold if threshold is None else threshold
        potential = estimate_improvement_potential(scores)
        return QualityAnalysisResult(
            overall_score=overall,
            quality_grade=determine_quality_grade(overall),
            dimension_scores=dict(scores),
            quality_gate_passed=overall >= gate,
            improvement_potential=potential,
            confidence_level=calculate_confidence_level(scores.values()),
            max_achievable_score=calculate_max_achievable_score(scores),
            estimated_final_score=min(100.0, overall + potential),
            dimension_details={
                name: DimensionScore(dimension=Dimension(name), score=s, issues=[f"{name} issue"])
                for name, s in scores.items()
            },
        )

    return _make


class FakeScorer:
    """Dimension scorer returning a fixed score or raising."""

    def __init__(self, dimension: Dimension, score: float = 70.0, error: Optional[Exception] = None):
        self.dimension = dimension
        self._score = score
        self._error = error
        self.calls = 0

    async def score(self, context) -> DimensionScore:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return DimensionScore(dimension=self.dimension, score=self._score)


@pytest.fixture
def fake_scorers() -> Callable[..., List[FakeScorer]]:
    """Factory: fake_scorers(70, visual_appeal=40, errors={...})."""

    def _make(default: float = 70.0, errors: Optional[Dict[str, Exception]] = None, **scores: float):
        errors = errors or {}
        return [
            FakeScorer(d, scores.get(d.value, default), errors.get(d.value))
            for d in Dimension
        ]

    return _make


# ============================================================================
# Consultant Stub
# ============================================================================

class ScriptedConsultant:
    """
    Stands in for AIQualityConsultant in loop tests.

    Each consultation returns the next scripted overall score (uniform across
    dimensions). An Exception in the script is raised instead.
    """

    def __init__(self, script, config: ConsultantConfig, pending: Optional[List[List[str]]] = None):
        self.script = list(script)
        self.config = config
        self.pending = list(pending or [])
        self.requests: List[ConsultantRequest] = []

    async def consult_on_quality(self, request: ConsultantRequest) -> ConsultantResponse:
        self.requests.append(request)
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step

        scores = uniform_scores(step)
        overall = calculate_overall_score(scores)
        pending = self.pending.pop(0) if self.pending else []
        pending = [p for p in pending if p not in request.user_approvals]
        analysis = QualityAnalysisResult(
            overall_score=overall,
            quality_grade=determine_quality_grade(overall),
            dimension_scores=scores,
            quality_gate_passed=overall >= self.config.quality_gate_threshold,
            improvement_potential=estimate_improvement_potential(scores),
            confidence_level=calculate_confidence_level(scores.values()),
        )
        return ConsultantResponse(
            analysis=analysis,
            execution_plan=ExecutionPlan(manual_approval=list(pending)),
            next_actions=[],
            decision=LoopDecision(
                should_continue=False,
                status=SessionStatus.COMPLETED,
                reason="scripted",
            ),
            pending_approvals=pending,
            projected_score=overall,
        )


@pytest.fixture
def scripted_consultant(config) -> Callable[..., ScriptedConsultant]:
    def _make(script, pending=None, loop_config: Optional[ConsultantConfig] = None):
        return ScriptedConsultant(script, loop_config or config, pending)

    return _make


# ============================================================================
# Session Store
# ============================================================================

class SerializingStore(InMemorySessionStore):
    """Keeps only JSON snapshots, the way RedisSessionStore does."""

    async def get(self, session_id):
        raw = self._sessions.get(session_id)
        return None if raw is None else QualityLoopSession.from_dict(json.loads(raw))

    async def save(self, session):
        self._sessions[session.session_id] = json.dumps(session.to_dict())

    async def list_active(self):
        sessions = [await self.get(session_id) for session_id in self._sessions]
        return [s for s in sessions if s.is_active]


@pytest.fixture
def serializing_store() -> SerializingStore:
    return SerializingStore()


# ============================================================================
# Mock API Client
# ============================================================================

def claude_response(content: str, success: bool = True, error: Optional[str] = None) -> AnalysisResponse:
    return AnalysisResponse(
        content=content,
        usage=TokenUsage(input_tokens=100, output_tokens=50),
        model="claude-test",
        stop_reason="end_turn" if success else "error",
        success=success,
        error=error,
    )


@pytest.fixture
def make_claude_response() -> Callable[..., AnalysisResponse]:
    return claude_response


@pytest.fixture
def mock_claude_client():
    """Mock Claude API client."""
    client = MagicMock()
    client.analyze_with_retry = AsyncMock(
        return_value=claude_response('{"score": 75, "issues": [], "insights": []}')
    )
    client.get_usage_summary = MagicMock(return_value={
        "total_tokens": 10000,
        "cost_usd": 0.50,
    })
    return client


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
