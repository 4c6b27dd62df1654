"""
Predefined Workflows.

Ready-made workflow definitions that can be run by name through the API:

1. chat-assistant: input → llm → output
2. tool-assistant: input → llm → tool → output

The tool-assisted workflow has the model phrase a tool query (a web search by
default) and returns what the tool found.
"""

from typing import Callable, Dict, List, Optional
from dataclasses import dataclass

from nodeflow.engine.definition import NodeKind, WorkflowDefinition, WorkflowEdge, WorkflowNode


@dataclass
class WorkflowTemplate:
    """A named factory for a workflow definition."""
    name: str
    description: str
    factory: Callable[..., WorkflowDefinition]

    def build(self, **kwargs) -> WorkflowDefinition:
        return self.factory(**kwargs)

    @property
    def requires_user_id(self) -> bool:
        return bool(self.build().nodes_of_kind(NodeKind.TOOL))

    def to_dict(self) -> Dict[str, object]:
        definition = self.build()
        return {
            "name": self.name,
            "description": self.description,
            "node_count": len(definition.nodes),
            "nodes": [n.id for n in definition.nodes],
            "requires_user_id": self.requires_user_id,
        }


_template_registry: Dict[str, WorkflowTemplate] = {}


def template(name: str, description: str = ""):
    """
    Decorator to register a workflow template.

    Usage:
        @template("my-flow", "Does something useful")
        def my_flow() -> WorkflowDefinition:
            ...
    """
    def decorator(func: Callable[..., WorkflowDefinition]) -> Callable[..., WorkflowDefinition]:
        _template_registry[name] = WorkflowTemplate(
            name=name,
            description=description or (func.__doc__ or "").strip(),
            factory=func,
        )
        return func

    return decorator


def get_template(name: str) -> Optional[WorkflowTemplate]:
    return _template_registry.get(name)


def list_templates() -> List[WorkflowTemplate]:
    return list(_template_registry.values())


def _chain(nodes: List[WorkflowNode]) -> WorkflowDefinition:
    edges = [
        WorkflowEdge(source=source.id, target=target.id)
        for source, target in zip(nodes, nodes[1:])
    ]
    return WorkflowDefinition(nodes=nodes, edges=edges)


# ============================================================
# Templates
# ============================================================

@template("chat-assistant", "Single-turn chat: the input goes straight to a language model")
def create_chat_workflow(
    provider: str = "openai",
    model: Optional[str] = None,
    system_prompt: str = "You are a helpful assistant.",
) -> WorkflowDefinition:
    """
    Create the chat assistant workflow.

    ```
    input → llm → output
    ```
    """
    return _chain([
        WorkflowNode(id="input", type=NodeKind.INPUT, config={"label": "User input"}),
        WorkflowNode(
            id="assistant",
            type=NodeKind.LLM,
            config={
                "label": "Assistant",
                "provider": provider,
                "model": model,
                "systemPrompt": system_prompt,
            },
        ),
        WorkflowNode(id="output", type=NodeKind.OUTPUT, config={"label": "Answer"}),
    ])


@template("tool-assistant", "Turns the input into a tool query, runs the tool and returns its result")
def create_tool_workflow(
    action: str = "COMPOSIO_SEARCH_TAVILY_SEARCH",
    provider: str = "openai",
    model: Optional[str] = None,
) -> WorkflowDefinition:
    """
    Create the tool-assisted workflow.

    ```
    input → llm → tool → output
    ```

    The model rewrites the request as a search query; the tool receives it as
    ``query`` together with the recent conversation as ``context``.
    """
    return _chain([
        WorkflowNode(id="input", type=NodeKind.INPUT, config={"label": "User input"}),
        WorkflowNode(
            id="planner",
            type=NodeKind.LLM,
            config={
                "label": "Query planner",
                "provider": provider,
                "model": model,
                "systemPrompt": "Rewrite the user's request as a concise web search query. Reply with the query only.",
            },
        ),
        WorkflowNode(
            id="search",
            type=NodeKind.TOOL,
            config={"label": "Search", "toolAction": action},
        ),
        WorkflowNode(id="output", type=NodeKind.OUTPUT, config={"label": "Results"}),
    ])
