"""Structural validation for Dialogue Forge graphs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Sequence

from .model import (
    ConditionalBlockType,
    ConditionalNode,
    ForgeGraph,
    NodeType,
    StructuralNode,
)

IssueSeverity = Literal["error", "warning"]
IssueType = Literal[
    "missing_start",
    "orphaned_node",
    "dangling_edge",
    "invalid_conditional",
    "disconnected_subgraph",
    "invalid_hierarchy",
]

# Expected parent type for each structural child type.
HIERARCHY_PARENTS = {
    NodeType.CHAPTER: NodeType.ACT,
    NodeType.PAGE: NodeType.CHAPTER,
}


@dataclass(frozen=True)
class GraphValidationIssue:
    type: IssueType
    message: str
    severity: IssueSeverity
    node_ids: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class GraphValidationResult:
    valid: bool
    errors: Sequence[GraphValidationIssue]
    warnings: Sequence[GraphValidationIssue]

    def all_issues(self) -> list[GraphValidationIssue]:
        return list(self.errors) + list(self.warnings)


def _reachable(graph: ForgeGraph, start: Optional[str]) -> set[str]:
    seen: set[str] = set()
    stack = [start] if start else []
    while stack:
        node_id = stack.pop()
        if node_id in seen:
            continue
        node = graph.get_node(node_id)
        if node is None:
            continue
        seen.add(node_id)
        stack.extend(graph.successors(node))
    return seen


def _check_conditional(node: ConditionalNode) -> Optional[str]:
    if not node.blocks:
        return f"Conditional node {node.id} has no blocks"
    if node.blocks[0].block_type is not ConditionalBlockType.IF:
        return f"Conditional node {node.id} must start with an if block"
    else_positions = [
        index
        for index, block in enumerate(node.blocks)
        if block.block_type is ConditionalBlockType.ELSE
    ]
    if len(else_positions) > 1:
        return f"Conditional node {node.id} has more than one else block"
    if else_positions and else_positions[0] != len(node.blocks) - 1:
        return f"Conditional node {node.id} has an else block that is not last"
    return None


def validate_graph(graph: ForgeGraph) -> GraphValidationResult:
    """Report structural problems without raising."""
    errors: list[GraphValidationIssue] = []
    warnings: list[GraphValidationIssue] = []

    if not graph.nodes:
        return GraphValidationResult(valid=True, errors=(), warnings=())

    if not graph.has_valid_start():
        errors.append(
            GraphValidationIssue(
                type="missing_start",
                message=f"Start node {graph.start_node_id!r} does not exist",
                severity="error",
            )
        )

    dangling = [
        edge.id
        for edge in graph.edges
        if not graph.has_node(edge.source) or not graph.has_node(edge.target)
    ]
    for node in graph.nodes:
        for target in node.data_successors():
            if not graph.has_node(target):
                dangling.append(f"{node.id}->{target}")
    if dangling:
        errors.append(
            GraphValidationIssue(
                type="dangling_edge",
                message=f"Found {len(dangling)} reference(s) to missing nodes",
                severity="error",
                node_ids=tuple(dangling),
            )
        )

    if len(graph.nodes) > 1:
        referenced = {edge.target for edge in graph.edges}
        for node in graph.nodes:
            referenced.update(node.data_successors())
        orphaned = [
            node.id
            for node in graph.nodes
            if node.id not in referenced and node.id != graph.start_node_id
        ]
        if orphaned:
            errors.append(
                GraphValidationIssue(
                    type="orphaned_node",
                    message=f"Found {len(orphaned)} disconnected node(s)",
                    severity="error",
                    node_ids=tuple(orphaned),
                )
            )

    for node in graph.nodes:
        if isinstance(node, ConditionalNode):
            problem = _check_conditional(node)
            if problem:
                errors.append(
                    GraphValidationIssue(
                        type="invalid_conditional",
                        message=problem,
                        severity="error",
                        node_ids=(node.id,),
                    )
                )

    if graph.has_valid_start():
        reachable = _reachable(graph, graph.start_node_id)
        unreachable = [node.id for node in graph.nodes if node.id not in reachable]
        if unreachable:
            warnings.append(
                GraphValidationIssue(
                    type="disconnected_subgraph",
                    message=f"{len(unreachable)} node(s) are unreachable from the start node",
                    severity="warning",
                    node_ids=tuple(unreachable),
                )
            )

    for node in graph.nodes:
        expected = HIERARCHY_PARENTS.get(node.node_type)
        if expected is None:
            continue
        parent_edges = graph.incoming_edges(node.id)
        if not parent_edges:
            continue
        parent = graph.get_node(parent_edges[0].source)
        if parent is not None and parent.node_type is not expected:
            name = node.title if isinstance(node, StructuralNode) and node.title else node.id
            article = "an" if expected is NodeType.ACT else "a"
            warnings.append(
                GraphValidationIssue(
                    type="invalid_hierarchy",
                    message=(
                        f"{node.node_type.value.title()} \"{name}\" is not connected to "
                        f"{article} {expected.value.title()}"
                    ),
                    severity="warning",
                    node_ids=(node.id,),
                )
            )

    return GraphValidationResult(
        valid=not errors, errors=tuple(errors), warnings=tuple(warnings)
    )


__all__ = [
    "IssueSeverity",
    "IssueType",
    "GraphValidationIssue",
    "GraphValidationResult",
    "validate_graph",
]
