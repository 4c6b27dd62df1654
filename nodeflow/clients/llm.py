"""
LLM provider clients.

Each provider exposes the same ``invoke(messages)`` capability. OpenAI and
Anthropic go through their official async SDKs; Gemini is called over REST
with httpx. Tests and embedders substitute their own ``LLMProvider``.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import anthropic
import httpx
import openai
from pydantic import BaseModel, Field

from nodeflow.engine.errors import ProviderConfigurationError
from nodeflow.engine.state import Message


class LLMResponse(BaseModel):
    """Normalized response from any provider."""

    content: str
    model: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class LLMProvider(ABC):
    """Capability interface the LLM node calls."""

    name: str = "llm"

    @abstractmethod
    async def invoke(self, messages: List[Message]) -> LLMResponse:
        """Send the conversation and return the assistant reply."""


class ConfiguredLLMProvider(LLMProvider):
    """Shared construction for the bundled providers."""

    name = "configured"
    default_model = ""

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        timeout: float = 60.0,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ProviderConfigurationError(f"{self.name} API key not provided")
        self.api_key = api_key
        self.model = model or self.default_model
        self.timeout = timeout
        self.base_url = base_url
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._transport = transport

    def _http_client(self) -> Optional[httpx.AsyncClient]:
        """An httpx client over the injected transport, or None for the SDK default."""
        if self._transport is None:
            return None
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)


class OpenAIProvider(ConfiguredLLMProvider):
    """OpenAI chat completions."""

    name = "openai"
    default_model = "gpt-4o"

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.max_tokens is not None:
            params["max_tokens"] = self.max_tokens

        # Retries are handled by the engine's retry policy
        async with openai.AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
            http_client=self._http_client(),
        ) as client:
            response = await client.chat.completions.create(**params)

        content = response.choices[0].message.content or ""
        return LLMResponse(content=content, model=response.model or self.model, raw=response.model_dump())


class AnthropicProvider(ConfiguredLLMProvider):
    """Anthropic messages API. System prompts travel outside the message list."""

    name = "anthropic"
    default_model = "claude-3-5-sonnet-20240620"

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        system, turns = _split_system(messages)
        params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens or 1024,
            "messages": [{"role": m.role, "content": m.content} for m in turns],
        }
        if system:
            params["system"] = system
        if self.temperature is not None:
            params["temperature"] = self.temperature

        async with anthropic.AsyncAnthropic(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
            http_client=self._http_client(),
        ) as client:
            response = await client.messages.create(**params)

        content = "".join(block.text for block in response.content if block.type == "text")
        return LLMResponse(content=content, model=response.model or self.model, raw=response.model_dump())


class GoogleProvider(ConfiguredLLMProvider):
    """Gemini generateContent over REST."""

    name = "google"
    default_model = "gemini-1.5-pro-latest"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        system, turns = _split_system(messages)
        payload: Dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if m.role == "assistant" else "user",
                    "parts": [{"text": m.content}],
                }
                for m in turns
            ],
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        generation_config: Dict[str, Any] = {}
        if self.temperature is not None:
            generation_config["temperature"] = self.temperature
        if self.max_tokens is not None:
            generation_config["maxOutputTokens"] = self.max_tokens
        if generation_config:
            payload["generationConfig"] = generation_config

        async with httpx.AsyncClient(
            base_url=(self.base_url or self.default_base_url).rstrip("/"),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.post(
                f"/models/{self.model}:generateContent",
                json=payload,
                params={"key": self.api_key},
            )
            response.raise_for_status()
            data = response.json()

        candidates = data.get("candidates") or [{}]
        parts = candidates[0].get("content", {}).get("parts", [])
        content = "".join(part.get("text", "") for part in parts)
        return LLMResponse(content=content, model=self.model, raw=data)


def _split_system(messages: List[Message]) -> Tuple[str, List[Message]]:
    system = "\n\n".join(m.content for m in messages if m.role == "system")
    return system, [m for m in messages if m.role != "system"]


PROVIDERS: Dict[str, type] = {
    OpenAIProvider.name: OpenAIProvider,
    AnthropicProvider.name: AnthropicProvider,
    GoogleProvider.name: GoogleProvider,
}
