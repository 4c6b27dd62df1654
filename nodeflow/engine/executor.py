"""
Async Workflow Executor.

Runs a workflow definition through its node executors. A single scheduler
produces an ordered sequence of StreamEvents; streaming callers consume it
directly and batch callers drain it and receive the final ExecutionResult.
Both modes therefore share ordering, fan-out and error-halting behaviour.
"""

from typing import Any, AsyncGenerator, Dict, List, Mapping, Optional
from dataclasses import dataclass, field
import logging
import time

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from nodeflow.engine.context import CancelToken, RunConfig, RunContext, RunOptions
from nodeflow.engine.definition import NodeKind, WorkflowDefinition, WorkflowNode
from nodeflow.engine.errors import (
    ErrorReport,
    ExecutionCancelled,
    GraphBuildError,
    classify_error,
    create_error_report,
)
from nodeflow.engine.events import EventKind, StreamEvent
from nodeflow.engine.graph import ExecutableGraph, build_graph
from nodeflow.engine.nodes import NodeExecutor, NodeOutcome, registered_executors
from nodeflow.engine.state import ExecutionState, StateUpdate, initial_state, merge_state, utc_now


logger = logging.getLogger(__name__)


class ExecutionResult(BaseModel):
    """Result of a batch run."""

    success: bool
    data: ExecutionState
    timestamp: str = Field(default_factory=utc_now)
    error: Optional[ErrorReport] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class ExecutionPlan:
    """
    Node ids grouped into waves.

    Every node in a wave has had all of its reachable predecessors executed
    in earlier waves. Nodes in the same wave see the same input state.
    """
    waves: List[List[str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def order(self) -> List[str]:
        return [node_id for wave in self.waves for node_id in wave]


def plan_execution(graph: ExecutableGraph) -> ExecutionPlan:
    """
    Order the reachable part of the graph with Kahn's algorithm.

    A node is released only once every reachable predecessor has been
    released, so fan-in nodes wait for all of their inputs. Within a wave,
    nodes keep their definition order.

    Raises:
        GraphBuildError: If reachable nodes can never be released (a cycle)
    """
    position = {node_id: i for i, node_id in enumerate(graph.nodes)}
    in_degree = {
        node_id: sum(1 for source in graph.predecessors(node_id) if source in graph.reachable)
        for node_id in graph.reachable
    }

    plan = ExecutionPlan(skipped=graph.unreachable)
    wave = sorted((n for n, degree in in_degree.items() if degree == 0), key=position.get)
    released = 0

    while wave:
        plan.waves.append(wave)
        released += len(wave)
        ready = set()
        for node_id in wave:
            for target in graph.successors(node_id):
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    ready.add(target)
        wave = sorted(ready, key=position.get)

    if released < len(graph.reachable):
        stuck = sorted((n for n, d in in_degree.items() if d > 0), key=position.get)
        raise GraphBuildError(f"Workflow contains a cycle involving nodes: {stuck}")

    return plan


@dataclass
class _RunRecord:
    """Where the scheduler leaves the final state and any run-fatal failure."""
    state: Optional[ExecutionState] = None
    failure: Optional[ErrorReport] = None
    finished: bool = False


class ExecutionStream:
    """
    Pull-based stream of events for one run.

    Nothing executes between pulls. ``cancel()`` / ``aclose()`` trip the run's
    cancel token, so an in-flight provider call or retry sleep is abandoned
    instead of leaking.

    Usage:
        async with engine.stream("hello") as events:
            async for event in events:
                print(event.kind, event.payload)
    """

    def __init__(
        self,
        events: AsyncGenerator[StreamEvent, None],
        record: _RunRecord,
        cancel: CancelToken,
    ):
        self._events = events
        self._record = record
        self._cancel = cancel

    def __aiter__(self) -> "ExecutionStream":
        return self

    async def __anext__(self) -> StreamEvent:
        return await self._events.__anext__()

    async def __aenter__(self) -> "ExecutionStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def finished(self) -> bool:
        return self._record.finished

    def cancel(self) -> None:
        self._cancel.cancel()

    async def aclose(self) -> None:
        if not self._record.finished:
            self._cancel.cancel()
        await self._events.aclose()

    def result(self) -> Optional[ExecutionResult]:
        """The batch-style result, available once the stream is exhausted."""
        state = self._record.state
        if state is None:
            return None
        failure = self._record.failure
        return ExecutionResult(
            success=failure is None and state.error is None,
            data=state,
            error=failure,
        )


class WorkflowEngine:
    """
    Async workflow engine.

    Executes a workflow definition against a single textual input:
    - Validates the graph and plans waves (Kahn's algorithm)
    - Runs nodes one at a time through the executor registry
    - Threads state through the reducer
    - Halts on node errors only when asked to
    - Never raises from its entry points

    Usage:
        engine = WorkflowEngine(definition, RunConfig(user_id="u1"), clients=factory)
        result = await engine.run("hi")

        async with engine.stream("hi") as events:
            async for event in events:
                ...
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        config: Optional[RunConfig] = None,
        clients: Optional[Any] = None,
        options: Optional[RunOptions] = None,
        executors: Optional[Mapping[NodeKind, NodeExecutor]] = None,
    ):
        """
        Initialize the engine.

        Args:
            definition: The workflow to run
            config: Credentials and user identity for this run
            clients: ClientFactory producing LLM/tool clients; defaults to the
                REST clients built from ``config.api_keys``
            options: Behaviour switches (halting, log streaming, retries, timeouts)
            executors: Per-kind overrides of the executor registry
        """
        self.definition = definition
        self.config = config or RunConfig()
        self.options = options or RunOptions()
        if clients is None:
            from nodeflow.clients.factory import HttpClientFactory
            clients = HttpClientFactory(self.config.api_keys)
        self.clients = clients
        self.executors: Dict[NodeKind, NodeExecutor] = {**registered_executors(), **(executors or {})}

    async def run(self, input_text: str) -> ExecutionResult:
        """
        Execute the workflow and return the final result.

        Args:
            input_text: The run input

        Returns:
            ExecutionResult; failures are reported inside it, never raised
        """
        stream = self.stream(input_text)
        try:
            async with stream:
                async for _ in stream:
                    pass
        except Exception as e:
            logger.exception(f"Workflow execution failed: {e}")
            report = create_error_report(classify_error(e), self._context())
            partial = stream.result()
            return ExecutionResult(
                success=False,
                data=partial.data if partial else initial_state(input_text),
                error=report,
            )

        result = stream.result()
        if result is None:
            # Only reachable when the stream was closed before it produced a state
            report = create_error_report(classify_error(ExecutionCancelled("Execution was cancelled")))
            return ExecutionResult(success=False, data=initial_state(input_text), error=report)
        return result

    def stream(self, input_text: str) -> ExecutionStream:
        """Start a run and return its event stream."""
        record = _RunRecord()
        cancel = CancelToken()
        return ExecutionStream(self._events(input_text, record, cancel), record, cancel)

    def plan(self) -> ExecutionPlan:
        """Validate the definition and return its execution plan."""
        return plan_execution(build_graph(self.definition))

    def _context(self, **extra: Any) -> Dict[str, Any]:
        return {
            "nodeCount": len(self.definition.nodes),
            "edgeCount": len(self.definition.edges),
            **extra,
        }

    async def _events(
        self,
        input_text: str,
        record: _RunRecord,
        cancel: CancelToken,
    ) -> AsyncGenerator[StreamEvent, None]:
        started = time.monotonic()
        state = initial_state(input_text)
        ctx = RunContext(config=self.config, options=self.options, clients=self.clients, cancel=cancel)

        yield StreamEvent(kind=EventKind.LOG, payload="Starting workflow execution...")

        try:
            graph = build_graph(self.definition)
            plan = plan_execution(graph)
        except Exception as e:
            logger.error(f"Workflow rejected: {e}")
            error = classify_error(e)
            report = create_error_report(
                error,
                self._context(workflowId=state.metadata.get("workflowId"), reason=str(e)),
            )
            yield self._fail(state, report, started, record)
            return

        if plan.skipped:
            state = merge_state(state, StateUpdate(
                execution_log=[f"Skipping nodes not reachable from any input node: {plan.skipped}"]
            ))

        for wave in plan.waves:
            # Fan-out: every node of a wave starts from the same state
            snapshot = state

            for node_id in wave:
                node = graph.nodes[node_id]
                yield StreamEvent(kind=EventKind.NODE_START, payload={
                    "nodeId": node.id,
                    "nodeType": node.type.value,
                    "nodeName": node.label,
                })

                try:
                    outcome = await self._execute_node(node, snapshot, ctx)
                    merged = merge_state(state, outcome.as_update())
                    result = merged.node_results.get(node.id)
                    completed = StreamEvent(kind=EventKind.NODE_COMPLETE, payload={
                        "nodeId": node.id,
                        "result": result.model_dump(mode="json", by_alias=True) if result else None,
                        "currentOutput": merged.current_output,
                    })
                except Exception as e:
                    if isinstance(e, ExecutionCancelled):
                        logger.info(f"Execution cancelled at node '{node.id}'")
                    else:
                        logger.exception(f"Node {node.id} raised: {e}")
                    error = classify_error(e, node.id, node.type.value)
                    report = create_error_report(error, self._context())
                    state = merge_state(state, StateUpdate(
                        execution_log=[f"Node {node.id} failed: {e}"],
                    ))
                    yield self._fail(state, report, started, record, node_id=node.id)
                    return

                state = merged
                yield completed

                if self.options.stream_node_logs and state.last_log_line:
                    yield StreamEvent(kind=EventKind.LOG, payload=state.last_log_line)

                if outcome.failed and self.options.halt_on_node_error:
                    report = outcome.report or create_error_report(
                        classify_error(RuntimeError(state.error or "Node failed"), node.id, node.type.value)
                    )
                    yield self._fail(state, report, started, record, node_id=node.id)
                    return

        duration = _elapsed_ms(started)
        state = merge_state(state, StateUpdate(metadata={"endTime": utc_now(), "duration": duration}))
        record.state = state
        record.finished = True
        logger.info(f"Workflow {state.metadata.get('workflowId')} completed in {duration}ms")

        yield StreamEvent(kind=EventKind.COMPLETE, payload={
            "state": state.to_dict(),
            "duration": duration,
        })

    async def _execute_node(
        self,
        node: WorkflowNode,
        state: ExecutionState,
        ctx: RunContext,
    ) -> NodeOutcome:
        ctx.cancel.raise_if_cancelled()
        executor = self.executors.get(node.type)
        if executor is None:
            raise LookupError(f"No executor registered for node kind '{node.type.value}'")

        logger.info(f"Executing node: {node.id} ({node.type.value})")
        outcome = await executor(node, state, ctx)
        if not isinstance(outcome, NodeOutcome):
            raise TypeError(
                f"Executor for node '{node.id}' returned {type(outcome).__name__}, expected NodeOutcome"
            )
        return outcome

    def _fail(
        self,
        state: ExecutionState,
        report: ErrorReport,
        started: float,
        record: _RunRecord,
        node_id: Optional[str] = None,
    ) -> StreamEvent:
        """Record a run-fatal failure and build the matching error event."""
        final = merge_state(state, StateUpdate(
            error=report.user_message,
            execution_log=[f"Execution failed: {report.error.message}"],
            metadata={
                "errorReport": report.to_dict(),
                "endTime": utc_now(),
                "duration": _elapsed_ms(started),
            },
        ))
        record.state = final
        record.failure = report
        record.finished = True

        payload: Dict[str, Any] = {
            "error": report.user_message,
            "report": report.to_dict(),
            "state": final.to_dict(),
        }
        if node_id:
            payload["nodeId"] = node_id
        return StreamEvent(kind=EventKind.ERROR, payload=payload)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
