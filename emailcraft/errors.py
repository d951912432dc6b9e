"""
Error taxonomy for the quality consultant.

Every failure that crosses a component boundary is a ConsultantError
subclass carrying a stable machine-readable code. Tool invokers raise
ToolInvocationError; the executor decides whether the code is critical.
"""

from typing import Any, Dict, Optional


class ConsultantError(Exception):
    """Base error for all consultant components."""

    code = "CONSULTANT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class AnalysisFailed(ConsultantError):
    """A dimension scorer failed or returned unusable output."""

    code = "ANALYSIS_FAILED"


class RecommendationGenerationFailed(ConsultantError):
    """Recommendation rules or the reasoning writer failed."""

    code = "RECOMMENDATION_GENERATION_FAILED"


class CommandValidationFailed(ConsultantError):
    """A generated command did not pass validation."""

    code = "COMMAND_VALIDATION_FAILED"


class CommandExecutionFailed(ConsultantError):
    """A command failed in a way that must stop the current batch."""

    code = "COMMAND_EXECUTION_FAILED"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        critical: bool = False,
    ):
        super().__init__(message, details)
        self.critical = critical


class InvalidRequest(ConsultantError):
    """Request or stage context is missing required fields."""

    code = "INVALID_REQUEST"


class SessionNotFound(InvalidRequest):
    """No active session with the given id."""


class ToolInvocationError(Exception):
    """Raised by tool invokers when a tool call fails."""

    def __init__(self, message: str, code: str = "TOOL_ERROR", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


# Codes that stop an auto-execution batch and skip retries.
CRITICAL_ERROR_CODES = (
    "AUTHENTICATION_FAILED",
    "RATE_LIMIT_EXCEEDED",
    "SYSTEM_UNAVAILABLE",
)


def is_critical_error(error: BaseException) -> bool:
    """
    Check whether an error is a critical tool failure.

    Errors carrying a code are judged by the code alone, since their message
    may quote a remote error body. Uncoded errors fall back to the message.
    """
    code = getattr(error, "code", None)
    if code:
        return code in CRITICAL_ERROR_CODES
    message = str(error)
    return any(c in message for c in CRITICAL_ERROR_CODES)
