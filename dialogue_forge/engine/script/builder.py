"""Text builders for the dialogue script format."""

from __future__ import annotations

from typing import Optional, Sequence

from ..conditions import format_conditions
from ..graph.model import Choice, ConditionalBlock, ConditionalBlockType
from .commands import extract_set_commands, format_content, format_flags_as_set_commands, remove_set_commands

NODE_TITLE_PREFIX = "title: "
NODE_TAGS_HEADER = "tags"
NODE_SEPARATOR = "---"
NODE_END = "==="
OPTION_PREFIX = "-> "
CHOICE_ID_TAG = "#id:"
INDENT = "    "


class ScriptTextBuilder:
    """Line-level writer; every method appends one or more whole lines."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    def add_node_title(self, node_id: str) -> "ScriptTextBuilder":
        self._lines.append(f"{NODE_TITLE_PREFIX}{node_id}\n")
        return self

    def add_node_header(self, name: str, value: str) -> "ScriptTextBuilder":
        self._lines.append(f"{name}: {value}\n")
        return self

    def add_node_separator(self) -> "ScriptTextBuilder":
        self._lines.append(f"{NODE_SEPARATOR}\n")
        return self

    def add_line(self, content: str, speaker: Optional[str] = None, indent: int = 0) -> "ScriptTextBuilder":
        prefix = INDENT * indent
        for line in format_content(content, speaker).split("\n"):
            self._lines.append(f"{prefix}{line}\n")
        return self

    def add_option(self, text: str, choice_id: Optional[str] = None, indent: int = 0) -> "ScriptTextBuilder":
        tag = f" {CHOICE_ID_TAG}{choice_id}" if choice_id else ""
        self._lines.append(f"{INDENT * indent}{OPTION_PREFIX}{text}{tag}\n")
        return self

    def add_command(self, command: str, args: Optional[str] = None, indent: int = 0) -> "ScriptTextBuilder":
        suffix = f" {args}" if args else ""
        self._lines.append(f"{INDENT * indent}<<{command}{suffix}>>\n")
        return self

    def add_conditional_block(self, block_type: str, condition: str = "") -> "ScriptTextBuilder":
        if block_type == ConditionalBlockType.ELSE.value:
            return self.add_command("else")
        return self.add_command(block_type, condition or None)

    def add_end_conditional(self) -> "ScriptTextBuilder":
        return self.add_command("endif")

    def add_jump(self, target_node_id: str, indent: int = 0) -> "ScriptTextBuilder":
        return self.add_command("jump", target_node_id, indent)

    def add_raw(self, text: str, indent: int = 0) -> "ScriptTextBuilder":
        self._lines.append(f"{INDENT * indent}{text}\n")
        return self

    def add_node_end(self) -> "ScriptTextBuilder":
        self._lines.append(f"{NODE_END}\n\n")
        return self

    def build(self) -> str:
        return "".join(self._lines)

    def clear(self) -> None:
        self._lines = []

    @property
    def line_count(self) -> int:
        return len(self._lines)


class NodeBlockBuilder:
    """Builds one complete ``title: ... --- ... ===`` node block."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        self.builder = ScriptTextBuilder()

    def start_node(self, tags: Optional[str] = None) -> "NodeBlockBuilder":
        self.builder.add_node_title(self.node_id)
        if tags:
            self.builder.add_node_header(NODE_TAGS_HEADER, tags)
        self.builder.add_node_separator()
        return self

    def add_content(self, content: Optional[str], speaker: Optional[str] = None, indent: int = 0) -> "NodeBlockBuilder":
        if not content:
            return self
        # Inline <<set>> commands move onto their own lines after the text.
        commands = extract_set_commands(content)
        clean = remove_set_commands(content) if commands else content
        if clean.strip():
            self.builder.add_line(clean, speaker, indent)
        for command in commands:
            self.builder.add_raw(command, indent)
        return self

    def add_flags(self, instructions: Sequence[str], indent: int = 0) -> "NodeBlockBuilder":
        for command in format_flags_as_set_commands(instructions):
            self.builder.add_raw(command, indent)
        return self

    def add_conditional_blocks(self, blocks: Sequence[ConditionalBlock]) -> "NodeBlockBuilder":
        for block in blocks:
            if block.block_type is ConditionalBlockType.ELSE:
                self.builder.add_conditional_block(block.block_type.value)
            else:
                self.builder.add_conditional_block(
                    block.block_type.value, format_conditions(block.conditions)
                )
            self.add_content(block.content, block.speaker, indent=1)
            self.add_flags(block.set_flags, indent=1)
            if block.next_node_id:
                self.builder.add_jump(block.next_node_id, indent=1)
        if blocks:
            self.builder.add_end_conditional()
        return self

    def add_choices(self, choices: Sequence[Choice]) -> "NodeBlockBuilder":
        for choice in choices:
            if choice.conditions:
                self.builder.add_conditional_block("if", format_conditions(choice.conditions))
            self.builder.add_option(choice.text.replace("\n", " "), choice.id)
            self.add_flags(choice.set_flags, indent=1)
            if choice.next_node_id:
                self.builder.add_jump(choice.next_node_id, indent=1)
            if choice.conditions:
                self.builder.add_end_conditional()
        return self

    def add_command(self, command: str, args: Optional[str] = None) -> "NodeBlockBuilder":
        self.builder.add_command(command, args)
        return self

    def add_next_node(self, next_node_id: Optional[str]) -> "NodeBlockBuilder":
        if next_node_id:
            self.builder.add_jump(next_node_id)
        return self

    def end_node(self) -> str:
        self.builder.add_node_end()
        return self.builder.build()


__all__ = [
    "NODE_TITLE_PREFIX",
    "NODE_TAGS_HEADER",
    "NODE_SEPARATOR",
    "NODE_END",
    "OPTION_PREFIX",
    "CHOICE_ID_TAG",
    "INDENT",
    "ScriptTextBuilder",
    "NodeBlockBuilder",
]
