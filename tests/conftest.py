"""
Shared fixtures: stub collaborators injected through the client factory.
"""

from typing import Any, Dict, List, Optional, Tuple
import asyncio

import pytest

from nodeflow.clients.factory import ClientFactory
from nodeflow.clients.llm import LLMProvider, LLMResponse
from nodeflow.clients.tools import ToolClient, ToolExecutionResult
from nodeflow.engine.context import RunOptions
from nodeflow.engine.definition import WorkflowDefinition
from nodeflow.engine.retry import RetryPolicy
from nodeflow.engine.state import Message


class StubLLM(LLMProvider):
    """Replies with canned responses; raises queued errors first."""

    def __init__(
        self,
        responses: Optional[List[str]] = None,
        errors: Optional[List[Exception]] = None,
        delay: float = 0.0,
    ):
        self.responses = list(responses or ["Hello"])
        self.errors = list(errors or [])
        self.delay = delay
        self.calls: List[List[Message]] = []

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        self.calls.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return LLMResponse(content=self.responses[index], model="stub-model")


class StubToolClient(ToolClient):
    def __init__(self, result: Optional[ToolExecutionResult] = None):
        self.result = result or ToolExecutionResult(successful=True, data={"items": [1, 2, 3]})
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    async def execute(self, action: str, *, user_id: str, arguments: Dict[str, Any]) -> ToolExecutionResult:
        self.calls.append((action, user_id, arguments))
        return self.result


class StubClientFactory(ClientFactory):
    def __init__(self, llm: Optional[StubLLM] = None, tools: Optional[StubToolClient] = None):
        self.llm_client = llm or StubLLM()
        self.tool_client = tools or StubToolClient()
        self.requested: List[Tuple[str, Optional[str]]] = []

    def llm(self, provider, model=None, *, timeout=60.0, options=None) -> LLMProvider:
        self.requested.append((provider, model))
        return self.llm_client

    def tools(self, *, timeout=60.0) -> ToolClient:
        return self.tool_client


def make_definition(nodes: List[Tuple[str, str]], edges: List[Tuple[str, str]], **configs) -> WorkflowDefinition:
    """Build a definition from (id, type) pairs and (source, target) pairs."""
    return WorkflowDefinition.model_validate({
        "nodes": [
            {"id": node_id, "type": kind, "config": configs.get(node_id, {})}
            for node_id, kind in nodes
        ],
        "edges": [{"source": s, "target": t} for s, t in edges],
    })


@pytest.fixture
def llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def tool_client() -> StubToolClient:
    return StubToolClient()


@pytest.fixture
def clients(llm, tool_client) -> StubClientFactory:
    return StubClientFactory(llm, tool_client)


@pytest.fixture
def fast_options() -> RunOptions:
    """Run options with millisecond retry delays."""
    return RunOptions(llm_retry=RetryPolicy(max_retries=2, base_delay_ms=1, max_delay_ms=5))


@pytest.fixture
def chat_definition() -> WorkflowDefinition:
    return make_definition(
        [("in", "input"), ("llm", "llm"), ("out", "output")],
        [("in", "llm"), ("llm", "out")],
    )
