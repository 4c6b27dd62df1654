"""
Client factories.

The engine never builds provider clients from ambient configuration. A
``ClientFactory`` is handed to it per run, carrying whatever credentials that
run is allowed to use.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from nodeflow.clients.llm import PROVIDERS, LLMProvider
from nodeflow.clients.tools import HttpToolClient, ToolClient
from nodeflow.engine.errors import UnsupportedProviderError


SUPPORTED_PROVIDERS = tuple(PROVIDERS)


class ClientFactory(ABC):
    """Builds the collaborator clients node executors call."""

    @abstractmethod
    def llm(
        self,
        provider: str,
        model: Optional[str] = None,
        *,
        timeout: float = 60.0,
        options: Optional[Dict[str, Any]] = None,
    ) -> LLMProvider:
        ...

    @abstractmethod
    def tools(self, *, timeout: float = 60.0) -> ToolClient:
        ...


class HttpClientFactory(ClientFactory):
    """
    Factory for the REST-backed clients.

    Args:
        api_keys: Credentials for this run, keyed ``<provider>_api_key``
            (``openai_api_key``...) and ``tool_api_key`` / ``composio_api_key``
        tool_base_url: Base URL of the tool-execution service
        transport: Optional httpx transport shared by every client
    """

    def __init__(
        self,
        api_keys: Optional[Dict[str, str]] = None,
        tool_base_url: str = "https://backend.composio.dev",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_keys = dict(api_keys or {})
        self.tool_base_url = tool_base_url
        self._transport = transport

    def llm(
        self,
        provider: str,
        model: Optional[str] = None,
        *,
        timeout: float = 60.0,
        options: Optional[Dict[str, Any]] = None,
    ) -> LLMProvider:
        provider_cls = PROVIDERS.get(provider)
        if provider_cls is None:
            raise UnsupportedProviderError(
                f"Unsupported model provider: {provider}. "
                f"Supported providers: {list(SUPPORTED_PROVIDERS)}"
            )
        options = options or {}
        return provider_cls(
            api_key=self.api_keys.get(f"{provider}_api_key"),
            model=model,
            timeout=timeout,
            temperature=options.get("temperature"),
            max_tokens=options.get("maxTokens"),
            transport=self._transport,
        )

    def tools(self, *, timeout: float = 60.0) -> ToolClient:
        return HttpToolClient(
            api_key=self.api_keys.get("tool_api_key") or self.api_keys.get("composio_api_key"),
            base_url=self.tool_base_url,
            timeout=timeout,
            transport=self._transport,
        )
