"""Dialogue script export and import."""

from .builder import NodeBlockBuilder, ScriptTextBuilder
from .commands import (
    SetCommand,
    extract_set_commands,
    format_content,
    format_flags_as_set_commands,
    format_set_command,
    instruction_to_set_command,
    parse_set_command,
    remove_set_commands,
)
from .exporter import ExportDiagnostics, export_graph, prepare_graph_for_export, render_node
from .importer import ScriptBlock, import_graph, node_from_block, parse_script_blocks

__all__ = [
    "NodeBlockBuilder",
    "ScriptTextBuilder",
    "SetCommand",
    "extract_set_commands",
    "format_content",
    "format_flags_as_set_commands",
    "format_set_command",
    "instruction_to_set_command",
    "parse_set_command",
    "remove_set_commands",
    "ExportDiagnostics",
    "export_graph",
    "prepare_graph_for_export",
    "render_node",
    "ScriptBlock",
    "import_graph",
    "node_from_block",
    "parse_script_blocks",
]
