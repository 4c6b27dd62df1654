"""
Tool execution client.

Tools (send an email, create an issue, search the web...) run on an external
tool-execution service on behalf of an authenticated user.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging

import httpx
from pydantic import BaseModel

from nodeflow.engine.errors import ProviderConfigurationError


logger = logging.getLogger(__name__)


class ToolExecutionResult(BaseModel):
    """Outcome reported by the tool service."""

    successful: bool = True
    data: Any = None
    error: Optional[str] = None


class ToolClient(ABC):
    """Capability interface the tool node calls."""

    @abstractmethod
    async def execute(
        self,
        action: str,
        *,
        user_id: str,
        arguments: Dict[str, Any],
    ) -> ToolExecutionResult:
        """Run ``action`` for ``user_id`` with the given arguments."""


class HttpToolClient(ToolClient):
    """
    REST client for a Composio-style tool service.

    Usage:
        client = HttpToolClient(api_key="...", base_url="https://backend.composio.dev")
        result = await client.execute("GITHUB_STAR_REPO", user_id="u1", arguments={...})
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://backend.composio.dev",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ProviderConfigurationError("Tool API key not provided")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def execute(
        self,
        action: str,
        *,
        user_id: str,
        arguments: Dict[str, Any],
    ) -> ToolExecutionResult:
        logger.info(f"Executing tool action {action} for user {user_id}")
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.post(
                f"/api/v3/tools/execute/{action}",
                json={"user_id": user_id, "arguments": arguments},
                headers={"x-api-key": self.api_key},
            )
            response.raise_for_status()
            body = response.json()

        if not isinstance(body, dict):
            return ToolExecutionResult(data=body)
        return ToolExecutionResult(
            successful=bool(body.get("successful", True)),
            data=body.get("data", body),
            error=body.get("error"),
        )
