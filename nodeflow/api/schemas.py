"""
Pydantic Schemas for API Request/Response Models.

These schemas define the structure of data flowing through the API,
providing automatic validation and documentation. Wire names are camelCase.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from nodeflow.engine.definition import WorkflowDefinition, WorkflowEdge, WorkflowNode
from nodeflow.engine.errors import ErrorReport


class _CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ============================================================
# Execution Schemas
# ============================================================

class ExecutionConfig(_CamelModel):
    """Per-request credentials and identity."""
    api_keys: Dict[str, str] = Field(
        default_factory=dict,
        description="Provider keys, e.g. openai_api_key, composio_api_key",
    )
    user_id: Optional[str] = Field(None, description="Pre-authenticated user id")


class ExecutionOptionsRequest(_CamelModel):
    """Optional engine switches; omitted values fall back to server defaults."""
    halt_on_node_error: Optional[bool] = None
    stream_node_logs: Optional[bool] = None


class ExecuteRequest(_CamelModel):
    """Request to execute a workflow."""
    nodes: List[WorkflowNode] = Field(..., description="Nodes of the workflow")
    edges: List[WorkflowEdge] = Field(default_factory=list, description="Directed edges")
    input: str = Field("", description="The run input")
    config: ExecutionConfig = Field(default_factory=ExecutionConfig)
    options: ExecutionOptionsRequest = Field(default_factory=ExecutionOptionsRequest)

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "nodes": [
                    {"id": "in", "type": "input", "config": {}},
                    {"id": "llm", "type": "llm", "config": {"provider": "openai", "model": "gpt-4o"}},
                    {"id": "out", "type": "output", "config": {}},
                ],
                "edges": [
                    {"source": "in", "target": "llm"},
                    {"source": "llm", "target": "out"},
                ],
                "input": "Hello",
                "config": {"apiKeys": {"openai_api_key": "sk-..."}, "userId": "user-123"},
            }
        }

    def definition(self) -> WorkflowDefinition:
        return WorkflowDefinition(nodes=self.nodes, edges=self.edges)


class TemplateExecuteRequest(_CamelModel):
    """Request to execute a predefined workflow."""
    input: str = Field("", description="The run input")
    config: ExecutionConfig = Field(default_factory=ExecutionConfig)
    options: ExecutionOptionsRequest = Field(default_factory=ExecutionOptionsRequest)


# ============================================================
# Workflow Schemas
# ============================================================

class ValidateRequest(_CamelModel):
    """A workflow to validate without running it."""
    nodes: List[WorkflowNode]
    edges: List[WorkflowEdge] = Field(default_factory=list)


class ValidateResponse(_CamelModel):
    """Outcome of validating a workflow."""
    valid: bool
    entry_points: List[str] = Field(default_factory=list)
    exit_points: List[str] = Field(default_factory=list)
    waves: List[List[str]] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    mermaid_diagram: Optional[str] = None
    error: Optional[ErrorReport] = None


class TemplateInfo(_CamelModel):
    """A predefined workflow."""
    name: str
    description: str
    node_count: int
    nodes: List[str]
    requires_user_id: bool = False


class TemplateListResponse(_CamelModel):
    templates: List[TemplateInfo]
    total: int


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[Any] = None
