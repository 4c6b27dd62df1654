"""
Clients package - adapters for the model and tool providers nodes call.
"""

from nodeflow.clients.llm import (
    LLMProvider,
    LLMResponse,
    OpenAIProvider,
    AnthropicProvider,
    GoogleProvider,
)
from nodeflow.clients.tools import ToolClient, ToolExecutionResult, HttpToolClient
from nodeflow.clients.factory import ClientFactory, HttpClientFactory, SUPPORTED_PROVIDERS

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "OpenAIProvider",
    "AnthropicProvider",
    "GoogleProvider",
    "ToolClient",
    "ToolExecutionResult",
    "HttpToolClient",
    "ClientFactory",
    "HttpClientFactory",
    "SUPPORTED_PROVIDERS",
]
