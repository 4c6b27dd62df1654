"""
Engine package - Core workflow execution components.
"""

from nodeflow.engine.definition import NodeKind, WorkflowNode, WorkflowEdge, WorkflowDefinition
from nodeflow.engine.state import ExecutionState, StateUpdate, Message, NodeResult, merge_state
from nodeflow.engine.graph import ExecutableGraph, build_graph
from nodeflow.engine.errors import (
    WorkflowError,
    ErrorReport,
    ErrorKind,
    WorkflowValidationError,
    GraphBuildError,
    ExecutionCancelled,
    classify_error,
    create_error_report,
)
from nodeflow.engine.retry import RetryPolicy, with_retry
from nodeflow.engine.context import RunConfig, RunOptions, RunContext, CancelToken
from nodeflow.engine.nodes import NodeOutcome, register_executor
from nodeflow.engine.events import EventKind, StreamEvent
from nodeflow.engine.executor import (
    WorkflowEngine,
    ExecutionResult,
    ExecutionStream,
    ExecutionPlan,
    plan_execution,
)

__all__ = [
    "NodeKind",
    "WorkflowNode",
    "WorkflowEdge",
    "WorkflowDefinition",
    "ExecutionState",
    "StateUpdate",
    "Message",
    "NodeResult",
    "merge_state",
    "ExecutableGraph",
    "build_graph",
    "WorkflowError",
    "ErrorReport",
    "ErrorKind",
    "WorkflowValidationError",
    "GraphBuildError",
    "ExecutionCancelled",
    "classify_error",
    "create_error_report",
    "RetryPolicy",
    "with_retry",
    "RunConfig",
    "RunOptions",
    "RunContext",
    "CancelToken",
    "NodeOutcome",
    "register_executor",
    "EventKind",
    "StreamEvent",
    "WorkflowEngine",
    "ExecutionResult",
    "ExecutionStream",
    "ExecutionPlan",
    "plan_execution",
]
