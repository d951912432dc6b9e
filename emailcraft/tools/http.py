"""
HTTP Tool Invoker

Calls a remote tool service over HTTP:

    POST {base_url}/tools/{tool}
    {"tool": "...", "parameters": {...}, "recommendation_id": "..."}

Retries and timeouts are owned by the ActionExecutor, so this client makes
exactly one request per invocation and maps failures to error codes the
executor understands.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ToolInvocationError
from ..models import AgentCommand

logger = logging.getLogger(__name__)


STATUS_CODE_ERRORS = {
    401: "AUTHENTICATION_FAILED",
    403: "AUTHENTICATION_FAILED",
    429: "RATE_LIMIT_EXCEEDED",
    502: "SYSTEM_UNAVAILABLE",
    503: "SYSTEM_UNAVAILABLE",
    504: "SYSTEM_UNAVAILABLE",
}


class HttpToolInvoker:
    """
    Async client for a remote tool service.

    Usage:
        async with HttpToolInvoker("https://tools.internal", api_key="...") as invoker:
            result = await invoker.invoke(command)
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize tool service client.

        Args:
            base_url: Tool service root URL
            api_key: Bearer token (optional)
            timeout: Transport-level timeout in seconds
            transport: Custom httpx transport (tests)
        """
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        self._closed = False

    async def invoke(self, command: AgentCommand) -> Dict[str, Any]:
        """
        Invoke one tool.

        Raises:
            ToolInvocationError: transport failure or error status
        """
        if self._closed:
            raise ToolInvocationError("Client has been closed", code="CLIENT_CLOSED")

        payload = {
            "tool": command.tool,
            "parameters": command.parameters,
            "recommendation_id": command.recommendation_id,
        }

        try:
            response = await self._client.post(f"/tools/{command.tool}", json=payload)
        except httpx.TimeoutException as e:
            raise ToolInvocationError(f"Request timed out: {e}", code="TOOL_TIMEOUT") from e
        except httpx.RequestError as e:
            raise ToolInvocationError(f"Request failed: {e}", code="TOOL_UNREACHABLE") from e

        if response.status_code >= 400:
            code = STATUS_CODE_ERRORS.get(response.status_code, "TOOL_ERROR")
            detail = _error_detail(response)
            logger.warning(f"Tool {command.tool} returned {response.status_code}: {detail}")
            raise ToolInvocationError(
                f"Tool {command.tool} error {response.status_code} ({code}): {detail}",
                code=code,
                status_code=response.status_code,
            )

        data = response.json() if response.content else {}
        return data if isinstance(data, dict) else {"result": data}

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        return str(data.get("error") or data.get("detail") or data)
    return str(data)
