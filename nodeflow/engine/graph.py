"""
Graph Builder for Workflow Engine.

Turns a caller-supplied WorkflowDefinition into an ExecutableGraph: a
validated, indexed view of the same nodes and edges that the engine can
traverse. Ordering is left to the engine so batch and streaming runs share
one validated graph.
"""

from typing import Dict, List, Set
from dataclasses import dataclass, field
import logging

from nodeflow.engine.definition import NodeKind, WorkflowDefinition, WorkflowEdge, WorkflowNode
from nodeflow.engine.errors import GraphBuildError


logger = logging.getLogger(__name__)


@dataclass
class ExecutableGraph:
    """
    A validated workflow graph.

    Attributes:
        nodes: node id -> node, in definition order
        outgoing: node id -> edges leaving that node
        incoming: node id -> edges entering that node
        entry_points: ids of all Input nodes
        exit_points: ids of all Output nodes
        reachable: ids reachable from at least one Input node
    """

    nodes: Dict[str, WorkflowNode]
    outgoing: Dict[str, List[WorkflowEdge]] = field(default_factory=dict)
    incoming: Dict[str, List[WorkflowEdge]] = field(default_factory=dict)
    entry_points: List[str] = field(default_factory=list)
    exit_points: List[str] = field(default_factory=list)
    reachable: Set[str] = field(default_factory=set)

    def successors(self, node_id: str) -> List[str]:
        return [edge.target for edge in self.outgoing.get(node_id, [])]

    def predecessors(self, node_id: str) -> List[str]:
        return [edge.source for edge in self.incoming.get(node_id, [])]

    @property
    def unreachable(self) -> List[str]:
        return [node_id for node_id in self.nodes if node_id not in self.reachable]

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the graph."""
        lines = ["graph TD"]

        for node_id, node in self.nodes.items():
            label = node.label.replace('"', "'")
            if node.type == NodeKind.INPUT:
                lines.append(f'    {node_id}(["{label}"])')
            elif node.type == NodeKind.OUTPUT:
                lines.append(f'    {node_id}[["{label}"]]')
            else:
                lines.append(f'    {node_id}["{label} ({node.type.value})"]')

        for edges in self.outgoing.values():
            for edge in edges:
                lines.append(f"    {edge.source} --> {edge.target}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ExecutableGraph(nodes={list(self.nodes)}, "
            f"entry={self.entry_points}, exit={self.exit_points})"
        )


def build_graph(definition: WorkflowDefinition) -> ExecutableGraph:
    """
    Validate a definition and index it for execution.

    Args:
        definition: The workflow as supplied by the caller

    Returns:
        The executable graph

    Raises:
        GraphBuildError: If node ids collide, an edge points at an unknown
            node, an Input or Output node is missing, or no Output node can
            be reached from an Input node
    """
    nodes: Dict[str, WorkflowNode] = {}
    for node in definition.nodes:
        if node.id in nodes:
            raise GraphBuildError(f"Duplicate node id '{node.id}'")
        nodes[node.id] = node

    graph = ExecutableGraph(
        nodes=nodes,
        outgoing={node_id: [] for node_id in nodes},
        incoming={node_id: [] for node_id in nodes},
    )

    for edge in definition.edges:
        if edge.source not in nodes:
            raise GraphBuildError(
                f"Edge '{edge.id}' references unknown source node '{edge.source}'"
            )
        if edge.target not in nodes:
            raise GraphBuildError(
                f"Edge '{edge.id}' references unknown target node '{edge.target}'"
            )
        graph.outgoing[edge.source].append(edge)
        graph.incoming[edge.target].append(edge)

    graph.entry_points = [n.id for n in definition.nodes if n.type == NodeKind.INPUT]
    graph.exit_points = [n.id for n in definition.nodes if n.type == NodeKind.OUTPUT]

    if not graph.entry_points:
        raise GraphBuildError("Workflow must contain at least one input node")
    if not graph.exit_points:
        raise GraphBuildError("Workflow must contain at least one output node")

    graph.reachable = _reachable_from(graph, graph.entry_points)
    if not any(node_id in graph.reachable for node_id in graph.exit_points):
        raise GraphBuildError("No output node is reachable from any input node")

    if graph.unreachable:
        logger.debug(f"Nodes not reachable from any input: {graph.unreachable}")

    return graph


def _reachable_from(graph: ExecutableGraph, starts: List[str]) -> Set[str]:
    reachable: Set[str] = set()
    to_visit = list(starts)

    while to_visit:
        node_id = to_visit.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        to_visit.extend(graph.successors(node_id))

    return reachable
