"""
Node Executors.

One executor per node kind. An executor receives the node, the state snapshot
it should work from and the run context, and returns a NodeOutcome: the
partial state to merge plus the log lines it produced.

Expected failures (provider errors, missing credentials, a tool reporting
failure) are folded into the outcome. Anything an executor raises is a bug
and the engine treats it as run-fatal.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass, field
import json
import logging

from nodeflow.engine.context import RunContext
from nodeflow.engine.definition import NodeKind, WorkflowNode
from nodeflow.engine.errors import (
    ErrorReport,
    ExecutionCancelled,
    MissingUserIdError,
    ToolExecutionError,
    classify_error,
    create_error_report,
)
from nodeflow.engine.retry import with_retry
from nodeflow.engine.state import ExecutionState, Message, NodeResult, StateUpdate


logger = logging.getLogger(__name__)


@dataclass
class NodeOutcome:
    """What a node hands back to the engine."""
    update: StateUpdate
    log: List[str] = field(default_factory=list)
    failed: bool = False
    report: Optional[ErrorReport] = None

    def as_update(self) -> StateUpdate:
        """The partial state including this node's log lines."""
        return self.update.model_copy(
            update={"execution_log": (self.update.execution_log or []) + self.log}
        )


NodeExecutor = Callable[[WorkflowNode, ExecutionState, RunContext], Awaitable[NodeOutcome]]


# Dispatch table: one executor per node kind
_executor_registry: Dict[NodeKind, NodeExecutor] = {}


def register_executor(kind: NodeKind) -> Callable[[NodeExecutor], NodeExecutor]:
    """
    Decorator registering the executor for a node kind.

    Usage:
        @register_executor(NodeKind.AGENT)
        async def run_agent(node, state, ctx) -> NodeOutcome:
            ...
    """
    def decorator(func: NodeExecutor) -> NodeExecutor:
        _executor_registry[kind] = func
        return func

    return decorator


def registered_executors() -> Dict[NodeKind, NodeExecutor]:
    """A copy of the dispatch table."""
    return dict(_executor_registry)


def _timeout(node: WorkflowNode, default: float) -> float:
    value = node.config.get("timeout")
    return float(value) if value else default


# ============================================================
# Executors
# ============================================================

@register_executor(NodeKind.INPUT)
async def execute_input(node: WorkflowNode, state: ExecutionState, ctx: RunContext) -> NodeOutcome:
    """Seed the conversation with the run input, or the node's default value."""
    default = node.config.get("defaultValue", node.config.get("query"))
    effective = state.current_input or (str(default) if default is not None else "")

    return NodeOutcome(
        update=StateUpdate(
            current_input=effective,
            conversation=[Message(role="user", content=effective)],
            node_results={node.id: NodeResult(kind="input", result=effective)},
        ),
        log=[f"Processing input node: {node.id}"],
    )


@register_executor(NodeKind.LLM)
async def execute_llm(node: WorkflowNode, state: ExecutionState, ctx: RunContext) -> NodeOutcome:
    """Call the configured language model with the conversation so far."""
    log = [f"Processing LLM node: {node.id}"]
    provider_name = str(node.config.get("provider") or node.config.get("modelProvider") or "openai").lower()
    raw_model = node.config.get("model") or node.config.get("modelName")
    model = str(raw_model) if raw_model is not None else None

    def on_retry(attempt: int, error: Exception) -> None:
        log.append(f"LLM call attempt {attempt} failed: {error}")

    try:
        provider = ctx.clients.llm(
            provider_name,
            model,
            timeout=_timeout(node, ctx.options.llm_timeout),
            options=node.config,
        )

        messages = list(state.conversation)
        system_prompt = node.config.get("systemPrompt")
        if system_prompt:
            messages.insert(0, Message(role="system", content=str(system_prompt)))

        response = await with_retry(
            lambda: ctx.cancel.guard(provider.invoke(messages)),
            ctx.options.llm_retry,
            on_retry=on_retry,
            sleep=ctx.cancel.sleep,
        )
    except ExecutionCancelled:
        raise
    except Exception as e:
        error = classify_error(e, node.id, NodeKind.LLM.value)
        report = create_error_report(error, {"provider": provider_name, "model": model})
        logger.error(f"LLM node {node.id} failed: {error.kind.value}: {e}")
        return NodeOutcome(
            update=StateUpdate(
                error=report.user_message,
                node_results={
                    node.id: NodeResult(
                        kind="llm",
                        error=report.to_dict(),
                        provider=provider_name,
                        model=model,
                    )
                },
            ),
            log=log + [f"LLM node failed: {error.message}"],
            failed=True,
            report=report,
        )

    return NodeOutcome(
        update=StateUpdate(
            conversation=[Message(role="assistant", content=response.content)],
            current_output=response.content,
            node_results={
                node.id: NodeResult(
                    kind="llm",
                    result=response.content,
                    provider=provider_name,
                    model=model or response.model,
                )
            },
        ),
        log=log + ["LLM response generated successfully"],
    )


@register_executor(NodeKind.TOOL)
async def execute_tool(node: WorkflowNode, state: ExecutionState, ctx: RunContext) -> NodeOutcome:
    """Run an external tool action on behalf of the run's user."""
    log = [f"Processing tool node: {node.id}"]
    action = str(node.config.get("toolAction") or node.config.get("action") or "")

    try:
        if not (ctx.user_id or "").strip():
            raise MissingUserIdError(
                "UserId is required but not provided. Users must be pre-authenticated."
            )

        arguments = extract_tool_input(state, node.config)

        if action:
            client = ctx.clients.tools(timeout=_timeout(node, ctx.options.tool_timeout))
            result = await ctx.cancel.guard(
                client.execute(action, user_id=ctx.user_id, arguments=arguments)
            )
            if not result.successful:
                raise ToolExecutionError(result.error or f"Tool action {action} reported a failure")
            data = result.data
        else:
            data = f"No tool action specified. Available input: {json.dumps(arguments, default=str)}"
    except ExecutionCancelled:
        raise
    except Exception as e:
        error = classify_error(e, node.id, NodeKind.TOOL.value)
        report = create_error_report(error, {"action": action})
        logger.warning(f"Tool node {node.id} failed: {error.kind.value}: {e}")
        return NodeOutcome(
            update=StateUpdate(
                current_output=f"Tool execution failed: {error.message}",
                error=report.user_message,
                node_results={
                    node.id: NodeResult(
                        kind="tool",
                        error=report.to_dict(),
                        action=action or None,
                        success=False,
                    )
                },
            ),
            log=log + [f"Tool node failed: {error.message}"],
            failed=True,
            report=report,
        )

    return NodeOutcome(
        update=StateUpdate(
            current_output=data if isinstance(data, str) else json.dumps(data, default=str),
            node_results={
                node.id: NodeResult(kind="tool", result=data, action=action or None, success=True)
            },
        ),
        log=log + ["Tool executed successfully"],
    )


@register_executor(NodeKind.AGENT)
async def execute_agent(node: WorkflowNode, state: ExecutionState, ctx: RunContext) -> NodeOutcome:
    """
    Placeholder agent that echoes the current input.

    A real LLM + tool composite plugs in through the same signature, either
    by registering it for NodeKind.AGENT or by passing
    ``executors={NodeKind.AGENT: ...}`` to the engine.
    """
    result = f"Agent {node.id} processed: {state.current_input}"
    return NodeOutcome(
        update=StateUpdate(
            current_output=result,
            node_results={node.id: NodeResult(kind="agent", result=result)},
        ),
        log=[f"Processing agent node: {node.id}", "Agent executed successfully"],
    )


@register_executor(NodeKind.OUTPUT)
async def execute_output(node: WorkflowNode, state: ExecutionState, ctx: RunContext) -> NodeOutcome:
    return NodeOutcome(
        update=StateUpdate(
            node_results={node.id: NodeResult(kind="output", result=state.current_output)},
        ),
        log=[f"Processing output node: {node.id}", "Workflow completed successfully"],
    )


# ============================================================
# Tool input extraction
# ============================================================

def extract_tool_input(state: ExecutionState, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Work out the arguments for a tool call.

    ``inputMapping`` wins: each value is a ``state.<path>`` or
    ``nodeResults.<path>`` lookup, anything else is taken literally. Next
    comes ``parameters``, whose entries are literals or ``{"source": ...}``
    specs. Without either, the tool gets the latest output as ``query`` and
    the last three conversation turns as ``context``.
    """
    mapping = config.get("inputMapping")
    if mapping:
        view = _state_view(state)
        resolved: Dict[str, Any] = {}
        for key, source in mapping.items():
            if isinstance(source, str) and source.startswith("state."):
                resolved[key] = get_nested_value(view, source[len("state."):])
            elif isinstance(source, str) and source.startswith("nodeResults."):
                resolved[key] = get_nested_value(view["nodeResults"], source[len("nodeResults."):])
            else:
                resolved[key] = source
        return resolved

    parameters = config.get("parameters")
    if parameters:
        return {name: _resolve_parameter(spec, state) for name, spec in parameters.items()}

    return {
        "query": state.current_output or state.current_input or "",
        "context": "\n".join(message.content for message in state.conversation[-3:]),
    }


def _resolve_parameter(spec: Any, state: ExecutionState) -> Any:
    if not isinstance(spec, dict):
        return spec
    source = spec.get("source")
    if source == "currentOutput":
        return state.current_output
    if source == "currentInput":
        return state.current_input
    if source == "literal":
        return spec.get("value")
    return spec.get("defaultValue", "")


def _state_view(state: ExecutionState) -> Dict[str, Any]:
    """The state as plain data, addressable by snake_case or camelCase keys."""
    return {
        **state.model_dump(mode="json"),
        **state.model_dump(mode="json", by_alias=True),
    }


def get_nested_value(obj: Any, path: str) -> Any:
    """Follow a dotted path through dicts and lists; None when any step is missing."""
    current = obj
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return None
        if current is None:
            return None
    return current
