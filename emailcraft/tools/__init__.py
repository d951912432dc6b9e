"""
Tool Invokers

Objects with `async invoke(command) -> dict` used by the ActionExecutor.
"""

from .http import HttpToolInvoker
from .registry import ToolRegistry

__all__ = ["HttpToolInvoker", "ToolRegistry"]
