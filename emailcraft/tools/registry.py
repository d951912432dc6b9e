"""
Tool Registry

In-process tool invoker: maps tool names to async handlers. Useful for
embedding the loop next to the tool implementations and for tests.

Usage:
    registry = ToolRegistry()
    registry.register("patch_html", patch_html_handler)
    result = await registry.invoke(command)
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List

from ..errors import ToolInvocationError
from ..models import AgentCommand

logger = logging.getLogger(__name__)


ToolHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class ToolRegistry:
    """Dispatches commands to registered async handlers."""

    def __init__(self):
        self._handlers: Dict[str, ToolHandler] = {}

    def register(self, name: str, handler: ToolHandler):
        """Register (or replace) the handler for a tool name."""
        if name in self._handlers:
            logger.warning(f"Replacing handler for tool {name}")
        self._handlers[name] = handler

    def unregister(self, name: str):
        self._handlers.pop(name, None)

    @property
    def tools(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    async def invoke(self, command: AgentCommand) -> Dict[str, Any]:
        """
        Raises:
            ToolInvocationError: no handler is registered for the tool
        """
        handler = self._handlers.get(command.tool)
        if handler is None:
            raise ToolInvocationError(f"Unknown tool: {command.tool}", code="UNKNOWN_TOOL")

        logger.debug(f"Invoking {command.tool} for {command.recommendation_id}")
        result = await handler(dict(command.parameters))
        return result if isinstance(result, dict) else {"result": result}
