"""Render a graph as dialogue script text."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from ..graph.model import (
    BaseNode,
    CharacterNode,
    ConditionalNode,
    EndNode,
    ForgeGraph,
    PlayerNode,
    StoryletCallMode,
    StoryletNode,
    StructuralNode,
)
from .builder import NodeBlockBuilder
from .commands import instruction_survives_script, remove_set_commands

logger = logging.getLogger(__name__)

STORYLET_COMMANDS = {
    StoryletCallMode.JUMP: "storylet",
    StoryletCallMode.DETOUR_RETURN: "detour",
}


@dataclass
class ExportDiagnostics:
    stripped_presentation: list[str] = field(default_factory=list)
    stripped_directives: list[str] = field(default_factory=list)
    stripped_structural: list[str] = field(default_factory=list)
    unreadable_flags: list[str] = field(default_factory=list)
    ambiguous_speakers: list[str] = field(default_factory=list)

    @property
    def has_losses(self) -> bool:
        return bool(
            self.stripped_presentation
            or self.stripped_directives
            or self.stripped_structural
            or self.unreadable_flags
            or self.ambiguous_speakers
        )


def _flag_instructions(node: BaseNode) -> list[str]:
    instructions = list(node.set_flags)
    if isinstance(node, PlayerNode):
        for choice in node.choices:
            instructions.extend(choice.set_flags)
    elif isinstance(node, ConditionalNode):
        for block in node.blocks:
            instructions.extend(block.set_flags)
    return instructions


def _reads_as_speaker(content: Optional[str]) -> bool:
    """Speakerless text whose line would be split at a colon on import."""
    for line in remove_set_commands(content).split("\n"):
        prefix, sep, _ = line.partition(":")
        if sep and prefix.strip():
            return True
    return False


def _speakerless_texts(node: BaseNode) -> list[Optional[str]]:
    if isinstance(node, CharacterNode) and not node.speaker:
        return [node.content]
    if isinstance(node, ConditionalNode):
        return [block.content for block in node.blocks if not block.speaker]
    return []


def prepare_graph_for_export(graph: ForgeGraph) -> tuple[list[BaseNode], ExportDiagnostics]:
    """Drop editor-only data the script format cannot carry."""
    diagnostics = ExportDiagnostics()
    prepared: list[BaseNode] = []
    for node in graph.nodes:
        if node.presentation is not None:
            diagnostics.stripped_presentation.append(node.id)
        if node.runtime_directives:
            diagnostics.stripped_directives.append(node.id)
        node = replace(node, presentation=None, runtime_directives=(), position=None)
        if isinstance(node, StructuralNode):
            if node.title is not None or node.ref_id is not None:
                diagnostics.stripped_structural.append(node.id)
            node = replace(node, title=None, ref_id=None)
        for instruction in _flag_instructions(node):
            if not instruction_survives_script(instruction):
                diagnostics.unreadable_flags.append(f"{node.id}: {instruction}")
        if any(_reads_as_speaker(text) for text in _speakerless_texts(node)):
            diagnostics.ambiguous_speakers.append(node.id)
        prepared.append(node)

    if diagnostics.unreadable_flags:
        logger.warning(
            "Export of graph %s writes flags the script cannot read back: %s",
            graph.id,
            ", ".join(diagnostics.unreadable_flags),
        )
    if diagnostics.ambiguous_speakers:
        logger.warning(
            "Export of graph %s has narration that will import with a speaker: %s",
            graph.id,
            ", ".join(diagnostics.ambiguous_speakers),
        )
    if diagnostics.stripped_presentation or diagnostics.stripped_directives or diagnostics.stripped_structural:
        logger.info(
            "Export of graph %s drops presentation on %d node(s), directives on %d, structural titles on %d",
            graph.id,
            len(diagnostics.stripped_presentation),
            len(diagnostics.stripped_directives),
            len(diagnostics.stripped_structural),
        )
    return prepared, diagnostics


def _storylet_args(node: StoryletNode) -> str:
    args = str(node.call.target_graph_id)
    if node.call.target_start_node_id:
        args += f" {node.call.target_start_node_id}"
    return args


def _return_args(node: StoryletNode) -> str:
    args = node.call.return_node_id or ""
    if node.call.return_graph_id is not None:
        args += f" {node.call.return_graph_id}"
    return args


def render_node(graph: ForgeGraph, node: BaseNode) -> str:
    tags = node.node_type.value.lower() if isinstance(node, StructuralNode) else None
    block = NodeBlockBuilder(node.id).start_node(tags)
    next_node_id = graph.next_node_id(node)

    if isinstance(node, CharacterNode):
        block.add_content(node.content, node.speaker)
        block.add_flags(node.set_flags)
    elif isinstance(node, PlayerNode):
        block.add_flags(node.set_flags)
        block.add_choices(node.choices)
    elif isinstance(node, ConditionalNode):
        block.add_flags(node.set_flags)
        block.add_conditional_blocks(node.blocks)
    elif isinstance(node, StoryletNode):
        block.add_flags(node.set_flags)
        block.add_command(STORYLET_COMMANDS[node.call.mode], _storylet_args(node))
        if node.call.return_node_id:
            block.add_command("return", _return_args(node))
    elif isinstance(node, EndNode):
        block.add_flags(node.set_flags)
        block.add_command("stop")
    else:
        block.add_flags(node.set_flags)

    block.add_next_node(next_node_id)
    return block.end_node()


def export_graph(graph: ForgeGraph) -> str:
    """Export ``graph`` as script text, start node first."""
    nodes, _ = prepare_graph_for_export(graph)
    nodes.sort(key=lambda node: node.id != graph.start_node_id)
    return "".join(render_node(graph, node) for node in nodes)


__all__ = [
    "STORYLET_COMMANDS",
    "ExportDiagnostics",
    "prepare_graph_for_export",
    "render_node",
    "export_graph",
]
