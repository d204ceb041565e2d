"""Graph data model for Dialogue Forge."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional, Sequence, Union

FlagValue = Union[bool, int, float, str]


class NodeType(str, Enum):
    CHARACTER = "CHARACTER"
    PLAYER = "PLAYER"
    CONDITIONAL = "CONDITIONAL"
    STORYLET = "STORYLET"
    END = "END"
    ACT = "ACT"
    CHAPTER = "CHAPTER"
    PAGE = "PAGE"


STRUCTURAL_NODE_TYPES = frozenset({NodeType.ACT, NodeType.CHAPTER, NodeType.PAGE})


class GraphKind(str, Enum):
    NARRATIVE = "NARRATIVE"
    STORYLET = "STORYLET"


class EdgeKind(str, Enum):
    FLOW = "FLOW"
    CHOICE = "CHOICE"
    CONDITION = "CONDITION"
    DEFAULT = "DEFAULT"
    VISUAL = "VISUAL"


class ConditionalBlockType(str, Enum):
    IF = "if"
    ELSE_IF = "elseif"
    ELSE = "else"


class StoryletCallMode(str, Enum):
    JUMP = "JUMP"
    DETOUR_RETURN = "DETOUR_RETURN"


class ConditionOperator(str, Enum):
    IS_SET = "is_set"
    IS_NOT_SET = "is_not_set"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"


@dataclass(frozen=True)
class Condition:
    flag: str
    operator: ConditionOperator
    value: Optional[FlagValue] = None


@dataclass(frozen=True)
class Choice:
    id: str
    text: str
    next_node_id: Optional[str] = None
    conditions: Sequence[Condition] = field(default_factory=tuple)
    set_flags: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class ConditionalBlock:
    id: str
    block_type: ConditionalBlockType
    conditions: Sequence[Condition] = field(default_factory=tuple)
    speaker: Optional[str] = None
    character_id: Optional[str] = None
    content: Optional[str] = None
    next_node_id: Optional[str] = None
    set_flags: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class StoryletCall:
    mode: StoryletCallMode
    target_graph_id: int
    target_start_node_id: Optional[str] = None
    return_node_id: Optional[str] = None
    return_graph_id: Optional[int] = None


@dataclass(frozen=True)
class NodePresentation:
    image_id: Optional[str] = None
    background_id: Optional[str] = None
    portrait_id: Optional[str] = None


@dataclass(frozen=True)
class RuntimeDirective:
    type: str
    ref_id: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)
    apply_mode: Optional[str] = None
    priority: Optional[int] = None


@dataclass(frozen=True)
class NodePosition:
    x: float
    y: float


@dataclass(frozen=True, kw_only=True)
class BaseNode:
    """Fields shared by every node variant."""

    node_type: ClassVar[NodeType]

    id: str
    label: Optional[str] = None
    set_flags: Sequence[str] = field(default_factory=tuple)
    default_next_node_id: Optional[str] = None
    presentation: Optional[NodePresentation] = None
    runtime_directives: Sequence[RuntimeDirective] = field(default_factory=tuple)
    position: Optional[NodePosition] = None

    def data_successors(self) -> list[str]:
        """Successor ids declared in node data, in declaration order."""
        return [self.default_next_node_id] if self.default_next_node_id else []


@dataclass(frozen=True, kw_only=True)
class CharacterNode(BaseNode):
    node_type: ClassVar[NodeType] = NodeType.CHARACTER

    speaker: Optional[str] = None
    character_id: Optional[str] = None
    content: str = ""


@dataclass(frozen=True, kw_only=True)
class PlayerNode(BaseNode):
    node_type: ClassVar[NodeType] = NodeType.PLAYER

    choices: Sequence[Choice] = field(default_factory=tuple)

    def data_successors(self) -> list[str]:
        targets = [choice.next_node_id for choice in self.choices if choice.next_node_id]
        return targets + super().data_successors()


@dataclass(frozen=True, kw_only=True)
class ConditionalNode(BaseNode):
    node_type: ClassVar[NodeType] = NodeType.CONDITIONAL

    blocks: Sequence[ConditionalBlock] = field(default_factory=tuple)

    def data_successors(self) -> list[str]:
        targets = [block.next_node_id for block in self.blocks if block.next_node_id]
        return targets + super().data_successors()


@dataclass(frozen=True, kw_only=True)
class StoryletNode(BaseNode):
    node_type: ClassVar[NodeType] = NodeType.STORYLET

    call: StoryletCall

    def data_successors(self) -> list[str]:
        targets = super().data_successors()
        # A detour return inside the same graph is a local successor too.
        if (
            self.call.return_node_id
            and self.call.return_graph_id is None
            and self.call.return_node_id not in targets
        ):
            targets.append(self.call.return_node_id)
        return targets


@dataclass(frozen=True, kw_only=True)
class EndNode(BaseNode):
    node_type: ClassVar[NodeType] = NodeType.END


@dataclass(frozen=True, kw_only=True)
class StructuralNode(BaseNode):
    """Act/chapter/page marker used for narrative hierarchy only."""

    title: Optional[str] = None
    ref_id: Optional[int] = None


@dataclass(frozen=True, kw_only=True)
class ActNode(StructuralNode):
    node_type: ClassVar[NodeType] = NodeType.ACT


@dataclass(frozen=True, kw_only=True)
class ChapterNode(StructuralNode):
    node_type: ClassVar[NodeType] = NodeType.CHAPTER


@dataclass(frozen=True, kw_only=True)
class PageNode(StructuralNode):
    node_type: ClassVar[NodeType] = NodeType.PAGE


ForgeNode = Union[
    CharacterNode,
    PlayerNode,
    ConditionalNode,
    StoryletNode,
    EndNode,
    ActNode,
    ChapterNode,
    PageNode,
]

NODE_CLASSES: dict[NodeType, type] = {
    NodeType.CHARACTER: CharacterNode,
    NodeType.PLAYER: PlayerNode,
    NodeType.CONDITIONAL: ConditionalNode,
    NodeType.STORYLET: StoryletNode,
    NodeType.END: EndNode,
    NodeType.ACT: ActNode,
    NodeType.CHAPTER: ChapterNode,
    NodeType.PAGE: PageNode,
}


@dataclass(frozen=True)
class ForgeEdge:
    id: str
    source: str
    target: str
    kind: EdgeKind = EdgeKind.FLOW
    label: Optional[str] = None


@dataclass(frozen=True)
class EndNodeRef:
    node_id: str
    exit_key: Optional[str] = None


@dataclass(frozen=True)
class ForgeGraph:
    """A directed graph of narrative nodes with a designated start node."""

    id: int
    kind: GraphKind
    title: str
    start_node_id: Optional[str]
    nodes: Sequence[BaseNode] = field(default_factory=tuple)
    edges: Sequence[ForgeEdge] = field(default_factory=tuple)
    end_node_ids: Sequence[EndNodeRef] = field(default_factory=tuple)
    project_id: Optional[int] = None
    compiled_script: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    _index: dict[str, BaseNode] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        index: dict[str, BaseNode] = {}
        for node in self.nodes:
            # First declaration wins for duplicated ids.
            index.setdefault(node.id, node)
        object.__setattr__(self, "_index", index)

    @property
    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def get_node(self, node_id: Optional[str]) -> Optional[BaseNode]:
        if node_id is None:
            return None
        return self._index.get(node_id)

    def has_node(self, node_id: Optional[str]) -> bool:
        return node_id is not None and node_id in self._index

    def outgoing_edges(self, node_id: str) -> list[ForgeEdge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def incoming_edges(self, node_id: str) -> list[ForgeEdge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def next_node_id(self, node: BaseNode) -> Optional[str]:
        """Default successor: explicit data default, else the first outgoing edge."""
        if node.default_next_node_id:
            return node.default_next_node_id
        for edge in self.outgoing_edges(node.id):
            return edge.target
        return None

    def successors(self, node: BaseNode) -> list[str]:
        """All successor ids of a node: data successors plus the default."""
        ordered: list[str] = []
        candidates = node.data_successors()
        default = self.next_node_id(node)
        if default:
            candidates.append(default)
        for candidate in candidates:
            if candidate not in ordered:
                ordered.append(candidate)
        return ordered

    def has_valid_start(self) -> bool:
        return self.has_node(self.start_node_id)


__all__ = [
    "FlagValue",
    "NodeType",
    "STRUCTURAL_NODE_TYPES",
    "GraphKind",
    "EdgeKind",
    "ConditionalBlockType",
    "StoryletCallMode",
    "ConditionOperator",
    "Condition",
    "Choice",
    "ConditionalBlock",
    "StoryletCall",
    "NodePresentation",
    "RuntimeDirective",
    "NodePosition",
    "BaseNode",
    "CharacterNode",
    "PlayerNode",
    "ConditionalNode",
    "StoryletNode",
    "EndNode",
    "StructuralNode",
    "ActNode",
    "ChapterNode",
    "PageNode",
    "ForgeNode",
    "NODE_CLASSES",
    "ForgeEdge",
    "EndNodeRef",
    "ForgeGraph",
]
