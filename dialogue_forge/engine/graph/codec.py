"""Conversion between stored graph documents and the graph model."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from ..errors import GraphDecodeError
from .model import (
    NODE_CLASSES,
    BaseNode,
    CharacterNode,
    Choice,
    Condition,
    ConditionalBlock,
    ConditionalBlockType,
    ConditionalNode,
    ConditionOperator,
    EdgeKind,
    EndNodeRef,
    ForgeEdge,
    ForgeGraph,
    GraphKind,
    NodePosition,
    NodePresentation,
    NodeType,
    PlayerNode,
    RuntimeDirective,
    StoryletCall,
    StoryletCallMode,
    StoryletNode,
    StructuralNode,
)

logger = logging.getLogger(__name__)

# Legacy editor node types that map onto storylet calls.
LEGACY_CALL_TYPES = {
    "DETOUR": StoryletCallMode.DETOUR_RETURN,
    "JUMP": StoryletCallMode.JUMP,
}

STRUCTURAL_REF_KEYS = {
    NodeType.ACT: "actId",
    NodeType.CHAPTER: "chapterId",
    NodeType.PAGE: "pageId",
}


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Ignoring unparseable timestamp %r", value)
        return None


def _strings(raw: Any) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(str(item) for item in raw)


def _conditions_from_list(raw: Any) -> tuple[Condition, ...]:
    conditions = []
    for entry in raw or []:
        try:
            operator = ConditionOperator(entry["operator"])
        except (KeyError, ValueError):
            logger.debug("Skipping condition with unknown operator: %r", entry)
            continue
        conditions.append(
            Condition(flag=str(entry.get("flag", "")), operator=operator, value=entry.get("value"))
        )
    return tuple(conditions)


def _conditions_to_list(conditions: Sequence[Condition]) -> list[dict[str, Any]]:
    result = []
    for condition in conditions:
        entry: dict[str, Any] = {"flag": condition.flag, "operator": condition.operator.value}
        if condition.value is not None:
            entry["value"] = condition.value
        result.append(entry)
    return result


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def _choice_from_dict(raw: dict[str, Any]) -> Choice:
    return Choice(
        id=str(raw["id"]),
        text=str(raw.get("text", "")),
        next_node_id=raw.get("nextNodeId") or None,
        conditions=_conditions_from_list(raw.get("conditions")),
        set_flags=_strings(raw.get("setFlags")),
    )


def _block_from_dict(raw: dict[str, Any]) -> ConditionalBlock:
    return ConditionalBlock(
        id=str(raw["id"]),
        block_type=ConditionalBlockType(raw.get("type", "if")),
        conditions=_conditions_from_list(raw.get("condition")),
        speaker=raw.get("speaker"),
        character_id=raw.get("characterId"),
        content=raw.get("content"),
        next_node_id=raw.get("nextNodeId") or None,
        set_flags=_strings(raw.get("setFlags")),
    )


def _call_from_dict(raw: dict[str, Any], mode_hint: Optional[StoryletCallMode]) -> StoryletCall:
    mode = raw.get("mode") or (mode_hint.value if mode_hint else StoryletCallMode.JUMP.value)
    return_graph = raw.get("returnGraphId")
    return StoryletCall(
        mode=StoryletCallMode(mode),
        target_graph_id=int(raw["targetGraphId"]),
        target_start_node_id=raw.get("targetStartNodeId") or None,
        return_node_id=raw.get("returnNodeId") or None,
        return_graph_id=int(return_graph) if return_graph is not None else None,
    )


def _presentation_from_dict(raw: Any) -> Optional[NodePresentation]:
    if not raw:
        return None
    return NodePresentation(
        image_id=raw.get("imageId"),
        background_id=raw.get("backgroundId"),
        portrait_id=raw.get("portraitId"),
    )


def _directives_from_list(raw: Any) -> tuple[RuntimeDirective, ...]:
    directives = []
    for entry in raw or []:
        if not entry.get("type"):
            continue
        directives.append(
            RuntimeDirective(
                type=str(entry["type"]),
                ref_id=entry.get("refId"),
                payload=dict(entry.get("payload") or {}),
                apply_mode=entry.get("applyMode"),
                priority=entry.get("priority"),
            )
        )
    return tuple(directives)


def node_from_dict(raw: dict[str, Any], flow_type: Optional[str] = None) -> BaseNode:
    """Decode one node from the flat ``flow.nodes[].data`` shape."""
    if not isinstance(raw, dict):
        raise GraphDecodeError("Node entry must be an object")
    node_id = raw.get("id")
    if not node_id:
        raise GraphDecodeError("Node entry is missing an id")
    try:
        return _decode_node(raw, str(node_id), flow_type)
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise GraphDecodeError(f"Node {node_id} is malformed: {exc!r}") from exc


def _decode_node(raw: dict[str, Any], node_id: str, flow_type: Optional[str]) -> BaseNode:
    raw_type = str(raw.get("type") or flow_type or "").upper()
    mode_hint = LEGACY_CALL_TYPES.get(raw_type)
    if mode_hint is not None:
        raw_type = NodeType.STORYLET.value
    try:
        node_type = NodeType(raw_type)
    except ValueError as exc:
        raise GraphDecodeError(f"Node {node_id} has unknown type {raw_type!r}") from exc

    position = raw.get("position")
    common: dict[str, Any] = {
        "id": str(node_id),
        "label": raw.get("label"),
        "set_flags": _strings(raw.get("setFlags")),
        "default_next_node_id": raw.get("defaultNextNodeId") or None,
        "presentation": _presentation_from_dict(raw.get("presentation")),
        "runtime_directives": _directives_from_list(raw.get("runtimeDirectives")),
        "position": NodePosition(float(position["x"]), float(position["y"])) if position else None,
    }
    if node_type is NodeType.CHARACTER:
        return CharacterNode(
            speaker=raw.get("speaker"),
            character_id=raw.get("characterId"),
            content=raw.get("content") or "",
            **common,
        )
    if node_type is NodeType.PLAYER:
        return PlayerNode(
            choices=tuple(_choice_from_dict(choice) for choice in raw.get("choices") or []),
            **common,
        )
    if node_type is NodeType.CONDITIONAL:
        return ConditionalNode(
            blocks=tuple(_block_from_dict(block) for block in raw.get("conditionalBlocks") or []),
            **common,
        )
    if node_type is NodeType.STORYLET:
        raw_call = raw.get("storyletCall")
        if not raw_call or raw_call.get("targetGraphId") is None:
            raise GraphDecodeError(f"Storylet node {node_id} has no target graph")
        return StoryletNode(call=_call_from_dict(raw_call, mode_hint), **common)
    cls = NODE_CLASSES[node_type]
    if issubclass(cls, StructuralNode):
        ref = raw.get(STRUCTURAL_REF_KEYS[node_type])
        return cls(title=raw.get("title"), ref_id=int(ref) if ref is not None else None, **common)
    return cls(**common)


def directive_to_dict(directive: RuntimeDirective) -> dict[str, Any]:
    return _drop_none(
        {
            "type": directive.type,
            "refId": directive.ref_id,
            "payload": dict(directive.payload) or None,
            "applyMode": directive.apply_mode,
            "priority": directive.priority,
        }
    )


def node_to_dict(node: BaseNode) -> dict[str, Any]:
    """Encode a node into the flat ``flow.nodes[].data`` shape."""
    data: dict[str, Any] = {
        "id": node.id,
        "type": node.node_type.value,
        "label": node.label,
        "setFlags": list(node.set_flags) or None,
        "defaultNextNodeId": node.default_next_node_id,
    }
    if isinstance(node, CharacterNode):
        data.update(speaker=node.speaker, characterId=node.character_id, content=node.content)
    elif isinstance(node, PlayerNode):
        data["choices"] = [
            _drop_none(
                {
                    "id": choice.id,
                    "text": choice.text,
                    "nextNodeId": choice.next_node_id,
                    "conditions": _conditions_to_list(choice.conditions) or None,
                    "setFlags": list(choice.set_flags) or None,
                }
            )
            for choice in node.choices
        ]
    elif isinstance(node, ConditionalNode):
        data["conditionalBlocks"] = [
            _drop_none(
                {
                    "id": block.id,
                    "type": block.block_type.value,
                    "condition": _conditions_to_list(block.conditions) or None,
                    "speaker": block.speaker,
                    "characterId": block.character_id,
                    "content": block.content,
                    "nextNodeId": block.next_node_id,
                    "setFlags": list(block.set_flags) or None,
                }
            )
            for block in node.blocks
        ]
    elif isinstance(node, StoryletNode):
        data["storyletCall"] = _drop_none(
            {
                "mode": node.call.mode.value,
                "targetGraphId": node.call.target_graph_id,
                "targetStartNodeId": node.call.target_start_node_id,
                "returnNodeId": node.call.return_node_id,
                "returnGraphId": node.call.return_graph_id,
            }
        )
    elif isinstance(node, StructuralNode):
        data["title"] = node.title
        data[STRUCTURAL_REF_KEYS[node.node_type]] = node.ref_id
    if node.presentation is not None:
        data["presentation"] = _drop_none(
            {
                "imageId": node.presentation.image_id,
                "backgroundId": node.presentation.background_id,
                "portraitId": node.presentation.portrait_id,
            }
        )
    if node.runtime_directives:
        data["runtimeDirectives"] = [directive_to_dict(directive) for directive in node.runtime_directives]
    return _drop_none(data)


def graph_from_dict(doc: dict[str, Any]) -> ForgeGraph:
    """Decode a stored graph document into a ForgeGraph."""
    if not isinstance(doc, dict):
        raise GraphDecodeError("Graph document must be an object")
    if "id" not in doc:
        raise GraphDecodeError("Graph document is missing an id")
    try:
        return _decode_graph(doc)
    except GraphDecodeError:
        raise
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise GraphDecodeError(f"Graph {doc.get('id')} is malformed: {exc!r}") from exc


def _project_id(project: Any) -> Optional[int]:
    """Accept a bare id or a relationship object such as ``{"id": 3}``."""
    if isinstance(project, dict):
        project = project.get("id")
    return int(project) if project is not None else None


def _decode_graph(doc: dict[str, Any]) -> ForgeGraph:
    flow = doc.get("flow") or {}
    nodes = []
    for entry in flow.get("nodes") or []:
        data = dict(entry.get("data") or {})
        data.setdefault("id", entry.get("id"))
        if entry.get("position") and "position" not in data:
            data["position"] = entry["position"]
        nodes.append(node_from_dict(data, flow_type=entry.get("type")))
    edges = []
    for entry in flow.get("edges") or []:
        try:
            kind = EdgeKind(entry.get("kind") or EdgeKind.FLOW.value)
        except ValueError:
            kind = EdgeKind.FLOW
        edges.append(
            ForgeEdge(
                id=str(entry.get("id") or f"{entry['source']}->{entry['target']}"),
                source=str(entry["source"]),
                target=str(entry["target"]),
                kind=kind,
                label=entry.get("label"),
            )
        )
    end_refs = tuple(
        EndNodeRef(node_id=str(ref["nodeId"]), exit_key=ref.get("exitKey"))
        for ref in doc.get("endNodeIds") or []
    )
    project = doc.get("project")
    return ForgeGraph(
        id=int(doc["id"]),
        kind=GraphKind(doc.get("kind") or GraphKind.NARRATIVE.value),
        title=str(doc.get("title") or f"Graph {doc['id']}"),
        start_node_id=doc.get("startNodeId") or None,
        nodes=tuple(nodes),
        edges=tuple(edges),
        end_node_ids=end_refs,
        project_id=_project_id(project),
        compiled_script=doc.get("compiledYarn"),
        created_at=_parse_datetime(doc.get("createdAt")),
        updated_at=_parse_datetime(doc.get("updatedAt")),
    )


def graph_to_dict(graph: ForgeGraph) -> dict[str, Any]:
    """Encode a ForgeGraph into the stored document shape."""
    flow_nodes = []
    for node in graph.nodes:
        entry: dict[str, Any] = {
            "id": node.id,
            "type": node.node_type.value,
            "data": node_to_dict(node),
        }
        if node.position is not None:
            entry["position"] = {"x": node.position.x, "y": node.position.y}
        flow_nodes.append(entry)
    flow_edges = [
        _drop_none(
            {
                "id": edge.id,
                "source": edge.source,
                "target": edge.target,
                "kind": edge.kind.value,
                "label": edge.label,
            }
        )
        for edge in graph.edges
    ]
    return {
        "id": graph.id,
        "project": graph.project_id,
        "kind": graph.kind.value,
        "title": graph.title,
        "startNodeId": graph.start_node_id,
        "endNodeIds": [
            _drop_none({"nodeId": ref.node_id, "exitKey": ref.exit_key})
            for ref in graph.end_node_ids
        ],
        "flow": {"nodes": flow_nodes, "edges": flow_edges},
        "compiledYarn": graph.compiled_script,
        "createdAt": graph.created_at.isoformat() if graph.created_at else None,
        "updatedAt": graph.updated_at.isoformat() if graph.updated_at else None,
    }


__all__ = [
    "directive_to_dict",
    "node_from_dict",
    "node_to_dict",
    "graph_from_dict",
    "graph_to_dict",
]
