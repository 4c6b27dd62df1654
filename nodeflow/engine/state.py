"""
Execution State and Reducer.

The execution state is threaded through every node of a run. Nodes never
modify it: they return a partial ``StateUpdate`` and ``merge_state`` folds
that update into a brand new state value.
"""

from typing import Any, Dict, List, Literal, Optional
from datetime import datetime, timezone
import uuid

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


def utc_now() -> str:
    """Current time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class Message(BaseModel):
    """One conversation turn."""

    role: Literal["system", "user", "assistant"]
    content: str


class NodeResult(BaseModel):
    """
    The record a node leaves behind in ``node_results``.

    Exactly one of ``result`` / ``error`` is meaningful. LLM results also carry
    the provider and model, tool results the action that ran.
    """

    kind: str
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    timestamp: str = Field(default_factory=utc_now)
    provider: Optional[str] = None
    model: Optional[str] = None
    action: Optional[str] = None
    success: Optional[bool] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ExecutionState(BaseModel):
    """
    The shared state of a single workflow run.

    Attributes:
        conversation: Ordered messages exchanged so far
        current_input: The text the run is working on
        current_output: The most recent node output
        node_results: One record per executed node
        execution_log: Human-readable progress lines
        error: User-facing message of the latest node failure
        metadata: Run metadata (start/end time, duration, workflow id...)
    """

    conversation: List[Message] = Field(default_factory=list)
    current_input: Optional[str] = None
    current_output: Optional[str] = None
    node_results: Dict[str, NodeResult] = Field(default_factory=dict)
    execution_log: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @property
    def last_log_line(self) -> Optional[str]:
        return self.execution_log[-1] if self.execution_log else None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation using wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


class StateUpdate(BaseModel):
    """A partial state. ``None`` means the field is not part of the update."""

    conversation: Optional[List[Message]] = None
    current_input: Optional[str] = None
    current_output: Optional[str] = None
    node_results: Optional[Dict[str, NodeResult]] = None
    execution_log: Optional[List[str]] = None
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


def merge_state(previous: ExecutionState, update: StateUpdate) -> ExecutionState:
    """
    Combine a partial update with the previous state.

    List fields append, scalar fields are overridden when the update supplies
    a value, and map fields are shallow-merged with the update winning.
    """
    return ExecutionState(
        conversation=previous.conversation + (update.conversation or []),
        execution_log=previous.execution_log + (update.execution_log or []),
        current_input=_override(previous.current_input, update.current_input),
        current_output=_override(previous.current_output, update.current_output),
        error=_override(previous.error, update.error),
        node_results={**previous.node_results, **(update.node_results or {})},
        metadata={**previous.metadata, **(update.metadata or {})},
    )


def _override(previous: Optional[str], value: Optional[str]) -> Optional[str]:
    return value if value is not None else previous


def initial_state(input_text: Optional[str], workflow_id: Optional[str] = None) -> ExecutionState:
    """Create the fresh state a run starts from."""
    return ExecutionState(
        current_input=input_text,
        execution_log=["Starting workflow execution"],
        metadata={
            "startTime": utc_now(),
            "workflowId": workflow_id or f"workflow_{uuid.uuid4().hex[:12]}",
        },
    )
