"""
Commands

Generation, validation and execution of tool commands.
"""

from .executor import (
    ActionExecutor,
    ExecutionContext,
    ExecutionPartition,
    calculate_score_impact,
)
from .generator import (
    CommandGenerator,
    calculate_max_retries,
    calculate_timeout,
    ensure_valid,
    validate_command,
    validation_errors,
)
from .safety import is_safe_for_auto_execution

__all__ = [
    "CommandGenerator",
    "ActionExecutor",
    "ExecutionContext",
    "ExecutionPartition",
    "calculate_timeout",
    "calculate_max_retries",
    "calculate_score_impact",
    "validate_command",
    "validation_errors",
    "ensure_valid",
    "is_safe_for_auto_execution",
]
