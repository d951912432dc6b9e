"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.

Settings holds process-wide values (API keys, service URLs). ConsultantConfig
is the plain options object handed to each component; it can be built from
Settings or constructed directly in tests.
"""

from dataclasses import dataclass, field, fields, replace
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Claude API (Required for analysis)
    ANTHROPIC_API_KEY: Optional[str] = None
    CLAUDE_MODEL: str = "claude-sonnet-4-20250514"

    # Tool service (Optional - commands cannot run without an invoker)
    TOOL_SERVICE_URL: Optional[str] = None
    TOOL_SERVICE_API_KEY: Optional[str] = None
    TOOL_SERVICE_TIMEOUT: float = 60.0

    # Redis (Optional - sessions are kept in memory otherwise)
    REDIS_URL: Optional[str] = None
    SESSION_TTL_SECONDS: int = 86400

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Quality loop
    QUALITY_GATE_THRESHOLD: float = 70.0
    AUTO_EXECUTE_THRESHOLD: float = 0.8
    CRITICAL_ISSUE_THRESHOLD: float = 30.0
    MAX_ITERATIONS: int = 3
    MAX_AUTO_EXECUTE_PER_ITERATION: int = 5
    MAX_TOTAL_EXECUTION_TIME: int = 300
    MAX_RECOMMENDATIONS: int = 10
    ENABLE_AUTO_EXECUTION: bool = True
    ANALYSIS_TEMPERATURE: float = 0.3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()


@dataclass
class BrandProfile:
    """Brand guidelines used for brand scoring and copy/colour commands."""
    name: str = "Kupibilet"
    tone: str = "friendly"
    values: List[str] = field(default_factory=lambda: ["reliability", "simplicity", "value"])
    avoid: List[str] = field(default_factory=lambda: ["aggressive discounts", "jargon"])
    colors: Dict[str, str] = field(default_factory=lambda: {
        "primary": "#4BFF7E",
        "secondary": "#FF6B35",
        "accent": "#E6F3FF",
        "neutral": "#F5F5F5",
        "text": "#333333",
    })


@dataclass
class ConsultantConfig:
    """Options for the consultant and quality loop."""
    quality_gate_threshold: float = 70.0
    auto_execute_threshold: float = 0.8
    critical_issue_threshold: float = 30.0
    max_iterations: int = 3
    max_auto_execute_per_iteration: int = 5
    max_total_execution_time: int = 300
    max_recommendations: int = 10
    enable_auto_execution: bool = True
    ai_model: str = "claude-sonnet-4-20250514"
    analysis_temperature: float = 0.3
    brand: BrandProfile = field(default_factory=BrandProfile)

    def __post_init__(self):
        if not 0 <= self.quality_gate_threshold <= 100:
            raise ValueError("quality_gate_threshold must be within 0-100")
        if not 0 <= self.critical_issue_threshold <= self.quality_gate_threshold:
            raise ValueError("critical_issue_threshold must be within 0-quality_gate_threshold")
        if not 0 <= self.auto_execute_threshold <= 1:
            raise ValueError("auto_execute_threshold must be within 0-1")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.max_auto_execute_per_iteration < 0:
            raise ValueError("max_auto_execute_per_iteration must not be negative")
        if self.max_total_execution_time <= 0:
            raise ValueError("max_total_execution_time must be positive")
        if self.max_recommendations < 1:
            raise ValueError("max_recommendations must be at least 1")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ConsultantConfig":
        settings = settings or get_settings()
        return cls(
            quality_gate_threshold=settings.QUALITY_GATE_THRESHOLD,
            auto_execute_threshold=settings.AUTO_EXECUTE_THRESHOLD,
            critical_issue_threshold=settings.CRITICAL_ISSUE_THRESHOLD,
            max_iterations=settings.MAX_ITERATIONS,
            max_auto_execute_per_iteration=settings.MAX_AUTO_EXECUTE_PER_ITERATION,
            max_total_execution_time=settings.MAX_TOTAL_EXECUTION_TIME,
            max_recommendations=settings.MAX_RECOMMENDATIONS,
            enable_auto_execution=settings.ENABLE_AUTO_EXECUTION,
            ai_model=settings.CLAUDE_MODEL,
            analysis_temperature=settings.ANALYSIS_TEMPERATURE,
        )

    def with_overrides(self, **overrides: Any) -> "ConsultantConfig":
        """Return a copy with the given fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config options: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quality_gate_threshold": self.quality_gate_threshold,
            "auto_execute_threshold": self.auto_execute_threshold,
            "critical_issue_threshold": self.critical_issue_threshold,
            "max_iterations": self.max_iterations,
            "max_auto_execute_per_iteration": self.max_auto_execute_per_iteration,
            "max_total_execution_time": self.max_total_execution_time,
            "max_recommendations": self.max_recommendations,
            "enable_auto_execution": self.enable_auto_execution,
            "ai_model": self.ai_model,
            "analysis_temperature": self.analysis_temperature,
            "brand": self.brand.name,
        }
