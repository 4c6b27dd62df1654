"""
Workflow Definition Models.

A workflow definition is the immutable description of nodes and edges
supplied by the caller. It carries no execution logic; the graph builder
validates it and the engine runs it.
"""

from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel


class NodeKind(str, Enum):
    """Closed set of node kinds a workflow can contain."""
    INPUT = "input"
    LLM = "llm"
    TOOL = "tool"
    AGENT = "agent"
    OUTPUT = "output"

    @classmethod
    def _missing_(cls, value: object) -> Optional["NodeKind"]:
        # Tags produced by the visual editor
        aliases = {
            "custominput": cls.INPUT,
            "composio": cls.TOOL,
            "customoutput": cls.OUTPUT,
        }
        if isinstance(value, str):
            return aliases.get(value.lower()) or cls.__members__.get(value.upper())
        return None


class WorkflowNode(BaseModel):
    """
    A single processing node.

    Attributes:
        id: Unique identifier within the definition
        type: The node kind, used to pick an executor
        config: Arbitrary per-node configuration (provider, prompts, mappings...)
    """

    id: str = Field(..., min_length=1, description="Unique node identifier")
    type: NodeKind = Field(..., description="Kind of node")
    config: Dict[str, Any] = Field(default_factory=dict, description="Node configuration")

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "id": "llm_1",
                "type": "llm",
                "config": {
                    "provider": "openai",
                    "model": "gpt-4o",
                    "systemPrompt": "You are a helpful assistant.",
                },
            }
        }

    @model_validator(mode="before")
    @classmethod
    def _accept_editor_data(cls, values: Any) -> Any:
        """Editor payloads carry node configuration under ``data``."""
        if isinstance(values, dict) and "config" not in values and "data" in values:
            values = {**values, "config": values["data"] or {}}
        return values

    @property
    def label(self) -> str:
        return str(self.config.get("label") or self.id)


class WorkflowEdge(BaseModel):
    """A directed connection from ``source`` to ``target``."""

    id: str = ""
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @model_validator(mode="after")
    def _default_id(self) -> "WorkflowEdge":
        if not self.id:
            self.id = f"{self.source}->{self.target}"
        return self


class WorkflowDefinition(BaseModel):
    """Nodes plus edges, exactly as supplied by the caller."""

    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        frozen = True

    def nodes_of_kind(self, kind: NodeKind) -> List[WorkflowNode]:
        return [n for n in self.nodes if n.type == kind]
