"""Graph model, persistence codec and validation."""

from .codec import graph_from_dict, graph_to_dict, node_from_dict, node_to_dict
from .model import (
    NODE_CLASSES,
    STRUCTURAL_NODE_TYPES,
    ActNode,
    BaseNode,
    ChapterNode,
    CharacterNode,
    Choice,
    Condition,
    ConditionalBlock,
    ConditionalBlockType,
    ConditionalNode,
    ConditionOperator,
    EdgeKind,
    EndNode,
    EndNodeRef,
    FlagValue,
    ForgeEdge,
    ForgeGraph,
    ForgeNode,
    GraphKind,
    NodePosition,
    NodePresentation,
    NodeType,
    PageNode,
    PlayerNode,
    RuntimeDirective,
    StoryletCall,
    StoryletCallMode,
    StoryletNode,
    StructuralNode,
)
from .validation import GraphValidationIssue, GraphValidationResult, validate_graph

__all__ = [
    "NODE_CLASSES",
    "STRUCTURAL_NODE_TYPES",
    "ActNode",
    "BaseNode",
    "ChapterNode",
    "CharacterNode",
    "Choice",
    "Condition",
    "ConditionalBlock",
    "ConditionalBlockType",
    "ConditionalNode",
    "ConditionOperator",
    "EdgeKind",
    "EndNode",
    "EndNodeRef",
    "FlagValue",
    "ForgeEdge",
    "ForgeGraph",
    "ForgeNode",
    "GraphKind",
    "NodePosition",
    "NodePresentation",
    "NodeType",
    "PageNode",
    "PlayerNode",
    "RuntimeDirective",
    "StoryletCall",
    "StoryletCallMode",
    "StoryletNode",
    "StructuralNode",
    "graph_from_dict",
    "graph_to_dict",
    "node_from_dict",
    "node_to_dict",
    "GraphValidationIssue",
    "GraphValidationResult",
    "validate_graph",
]
