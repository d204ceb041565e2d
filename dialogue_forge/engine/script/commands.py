"""``<<set>>`` command helpers and content formatting for dialogue scripts."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from ..conditions import format_literal, parse_literal, to_number
from ..flags import parse_set_instruction
from ..graph.model import FlagValue

SET_COMMAND_PATTERN = re.compile(r"<<set\s+\$(\w+)\s*([+\-*/=]+)\s*(.+?)>>")
SET_OPERATORS = ("=", "+=", "-=", "*=", "/=")


@dataclass(frozen=True)
class SetCommand:
    flag: str
    operator: str
    value: FlagValue

    def to_instruction(self) -> str:
        """Render as a node flag-write instruction (``gold+=5``)."""
        if self.operator == "=" and self.value is True:
            return self.flag
        return f"{self.flag}{self.operator}{format_literal(self.value)}"


def parse_set_command(text: str) -> Optional[SetCommand]:
    """Parse the first ``<<set $flag op value>>`` in ``text``."""
    match = SET_COMMAND_PATTERN.search(text or "")
    if not match:
        return None
    flag, operator, raw_value = match.groups()
    if operator not in SET_OPERATORS:
        return None
    value = parse_literal(raw_value)
    if operator != "=" and (isinstance(value, bool) or to_number(value) is None):
        return None
    return SetCommand(flag=flag, operator=operator, value=value)


def format_set_command(flag: str, value: FlagValue = True, operator: str = "=") -> str:
    return f"<<set ${flag} {operator} {format_literal(value)}>>"


def instruction_to_set_command(instruction: str) -> Optional[str]:
    """Render a flag-write instruction as a ``<<set>>`` command."""
    write = parse_set_instruction(instruction)
    if write is None:
        return None
    return format_set_command(write.name, write.value, write.operator)


def instruction_survives_script(instruction: str) -> bool:
    """True when the instruction exports to a ``<<set>>`` command that parses back."""
    command = instruction_to_set_command(instruction)
    return command is not None and parse_set_command(command) is not None


def format_flags_as_set_commands(instructions: Iterable[str]) -> list[str]:
    commands = []
    for instruction in instructions:
        command = instruction_to_set_command(instruction)
        if command is not None:
            commands.append(command)
    return commands


def extract_set_commands(content: Optional[str]) -> list[str]:
    if not content:
        return []
    return [match.group(0) for match in SET_COMMAND_PATTERN.finditer(content)]


def remove_set_commands(content: Optional[str]) -> str:
    if not content:
        return ""
    return SET_COMMAND_PATTERN.sub("", content).strip()


def format_content(content: str, speaker: Optional[str] = None) -> str:
    """Prefix every line of ``content`` with ``speaker:`` when a speaker is given."""
    if not speaker:
        return content
    return "\n".join(f"{speaker}: {line}" for line in content.split("\n"))


__all__ = [
    "SET_COMMAND_PATTERN",
    "SET_OPERATORS",
    "SetCommand",
    "parse_set_command",
    "format_set_command",
    "instruction_to_set_command",
    "instruction_survives_script",
    "format_flags_as_set_commands",
    "extract_set_commands",
    "remove_set_commands",
    "format_content",
]
