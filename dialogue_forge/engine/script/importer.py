"""Parse dialogue script text back into a graph."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ..conditions import parse_condition
from ..graph.model import (
    BaseNode,
    CharacterNode,
    Choice,
    Condition,
    ConditionalBlock,
    ConditionalBlockType,
    ConditionalNode,
    EdgeKind,
    EndNode,
    EndNodeRef,
    ForgeEdge,
    ForgeGraph,
    GraphKind,
    NODE_CLASSES,
    NodeType,
    PlayerNode,
    StoryletCall,
    StoryletCallMode,
    StoryletNode,
)
from .builder import CHOICE_ID_TAG, NODE_END, NODE_SEPARATOR
from .commands import parse_set_command

logger = logging.getLogger(__name__)

COMMAND_PATTERN = re.compile(r"^<<(\w+)(?:\s+(.*?))?\s*>>$")
OPTION_PATTERN = re.compile(r"^->\s*(.*)$")
CHOICE_ID_PATTERN = re.compile(rf"\s*{re.escape(CHOICE_ID_TAG)}(\S+)\s*$")
HEADER_PATTERN = re.compile(r"^(\w+):\s*(.*)$")

CALL_MODES = {
    "storylet": StoryletCallMode.JUMP,
    "detour": StoryletCallMode.DETOUR_RETURN,
}

STRUCTURAL_TAGS = {
    NodeType.ACT.value.lower(): NodeType.ACT,
    NodeType.CHAPTER.value.lower(): NodeType.CHAPTER,
    NodeType.PAGE.value.lower(): NodeType.PAGE,
}


@dataclass
class ScriptBlock:
    node_id: str
    headers: dict[str, str] = field(default_factory=dict)
    lines: list[str] = field(default_factory=list)


def parse_script_blocks(text: str) -> list[ScriptBlock]:
    """Split script text into ``title: ... --- ... ===`` blocks."""
    blocks: list[ScriptBlock] = []
    headers: dict[str, str] = {}
    body: Optional[list[str]] = None

    def flush() -> None:
        title = headers.get("title", "").strip()
        if title:
            blocks.append(ScriptBlock(node_id=title, headers=dict(headers), lines=list(body or [])))
        elif body:
            logger.debug("Skipping script block without a title")

    for raw_line in (text or "").splitlines():
        stripped = raw_line.strip()
        if body is None:
            if stripped == NODE_SEPARATOR:
                body = []
                continue
            match = HEADER_PATTERN.match(stripped)
            if match:
                headers[match.group(1)] = match.group(2)
            continue
        if stripped == NODE_END:
            flush()
            headers, body = {}, None
            continue
        body.append(raw_line.rstrip())

    if body is not None:
        flush()
    return blocks


def _command(line: str) -> Optional[tuple[str, str]]:
    match = COMMAND_PATTERN.match(line.strip())
    if not match:
        return None
    return match.group(1), (match.group(2) or "").strip()


def _is_indented(line: str) -> bool:
    return line[:1] in (" ", "\t")


def _split_speaker(line: str) -> tuple[Optional[str], str]:
    speaker, sep, text = line.partition(":")
    if sep and speaker.strip():
        return speaker.strip(), text.strip()
    return None, line.strip()


class _TextAccumulator:
    """Collects ``Speaker: text`` lines into one speaker and multi-line content."""

    def __init__(self) -> None:
        self.speaker: Optional[str] = None
        self.lines: list[str] = []

    def add(self, line: str) -> None:
        speaker, text = _split_speaker(line)
        if speaker is None:
            self.lines.append(text)
        elif self.speaker is None and not self.lines:
            self.speaker = speaker
            self.lines.append(text)
        elif speaker == self.speaker:
            self.lines.append(text)
        else:
            self.lines.append(line.strip())

    @property
    def content(self) -> Optional[str]:
        return "\n".join(self.lines) if self.lines else None


def _add_set(line: str, target: list[str]) -> None:
    command = parse_set_command(line)
    if command is None:
        logger.debug("Skipping malformed set command: %s", line.strip())
        return
    target.append(command.to_instruction())


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


def _storylet_call(lines: Iterable[str]) -> Optional[StoryletCall]:
    mode: Optional[StoryletCallMode] = None
    target_graph_id: Optional[int] = None
    start_node_id: Optional[str] = None
    return_node_id: Optional[str] = None
    return_graph_id: Optional[int] = None
    for line in lines:
        command = _command(line)
        if command is None:
            continue
        name, args = command
        parts = args.split()
        if name in CALL_MODES and parts:
            graph_id = _parse_int(parts[0])
            if graph_id is None:
                logger.warning("Ignoring %s command with non-numeric graph id: %s", name, args)
                continue
            mode, target_graph_id = CALL_MODES[name], graph_id
            start_node_id = parts[1] if len(parts) > 1 else None
        elif name == "return" and parts:
            return_node_id = parts[0]
            return_graph_id = _parse_int(parts[1]) if len(parts) > 1 else None
    if mode is None or target_graph_id is None:
        return None
    return StoryletCall(
        mode=mode,
        target_graph_id=target_graph_id,
        target_start_node_id=start_node_id,
        return_node_id=return_node_id,
        return_graph_id=return_graph_id,
    )


def _character_node(block: ScriptBlock) -> CharacterNode:
    text = _TextAccumulator()
    flags: list[str] = []
    next_node_id: Optional[str] = None
    for line in block.lines:
        if not line.strip():
            continue
        command = _command(line)
        if command is None:
            text.add(line)
        elif command[0] == "set":
            _add_set(line, flags)
        elif command[0] == "jump":
            next_node_id = command[1] or None
    return CharacterNode(
        id=block.node_id,
        speaker=text.speaker,
        content=text.content or "",
        set_flags=tuple(flags),
        default_next_node_id=next_node_id,
    )


def _player_node(block: ScriptBlock) -> PlayerNode:
    choices: list[Choice] = []
    flags: list[str] = []
    next_node_id: Optional[str] = None
    pending_conditions: tuple[Condition, ...] = ()
    current: Optional[dict[str, Any]] = None

    def finish() -> None:
        nonlocal current
        if current is not None:
            choices.append(
                Choice(
                    id=current["id"] or f"{block.node_id}_choice_{len(choices)}",
                    text=current["text"],
                    next_node_id=current["next"],
                    conditions=current["conditions"],
                    set_flags=tuple(current["flags"]),
                )
            )
            current = None

    for line in block.lines:
        stripped = line.strip()
        if not stripped:
            continue
        option = OPTION_PATTERN.match(stripped)
        if option:
            finish()
            text = option.group(1)
            tag = CHOICE_ID_PATTERN.search(text)
            current = {
                "id": tag.group(1) if tag else None,
                "text": CHOICE_ID_PATTERN.sub("", text).strip(),
                "next": None,
                "conditions": pending_conditions,
                "flags": [],
            }
            continue
        command = _command(line)
        if command is None:
            logger.debug("Ignoring text line in player node %s: %s", block.node_id, stripped)
            continue
        name, args = command
        owned = current is not None and _is_indented(line)
        if name == "if":
            finish()
            pending_conditions = tuple(parse_condition(args))
        elif name == "endif":
            finish()
            pending_conditions = ()
        elif name == "set":
            if not owned:
                finish()
            _add_set(line, current["flags"] if owned else flags)
        elif name == "jump":
            if owned:
                current["next"] = args or None
            else:
                finish()
                next_node_id = args or None
    finish()
    return PlayerNode(
        id=block.node_id,
        choices=tuple(choices),
        set_flags=tuple(flags),
        default_next_node_id=next_node_id,
    )


BLOCK_COMMANDS = {
    "if": ConditionalBlockType.IF,
    "elseif": ConditionalBlockType.ELSE_IF,
    "else": ConditionalBlockType.ELSE,
}


def _conditional_node(block: ScriptBlock) -> ConditionalNode:
    blocks: list[ConditionalBlock] = []
    flags: list[str] = []
    next_node_id: Optional[str] = None
    current: Optional[dict[str, Any]] = None

    def finish() -> None:
        nonlocal current
        if current is not None:
            text: _TextAccumulator = current["text"]
            blocks.append(
                ConditionalBlock(
                    id=f"{block.node_id}_block_{len(blocks)}",
                    block_type=current["type"],
                    conditions=current["conditions"],
                    speaker=text.speaker,
                    content=text.content,
                    next_node_id=current["next"],
                    set_flags=tuple(current["flags"]),
                )
            )
            current = None

    for line in block.lines:
        if not line.strip():
            continue
        command = _command(line)
        if command is None:
            if current is not None:
                current["text"].add(line)
            else:
                logger.debug("Ignoring text outside a branch in %s: %s", block.node_id, line.strip())
            continue
        name, args = command
        if name in BLOCK_COMMANDS:
            finish()
            block_type = BLOCK_COMMANDS[name]
            current = {
                "type": block_type,
                "conditions": () if block_type is ConditionalBlockType.ELSE else tuple(parse_condition(args)),
                "text": _TextAccumulator(),
                "next": None,
                "flags": [],
            }
        elif name == "endif":
            finish()
        elif name == "set":
            _add_set(line, current["flags"] if current is not None else flags)
        elif name == "jump":
            if current is not None:
                current["next"] = args or None
            else:
                next_node_id = args or None
    finish()
    return ConditionalNode(
        id=block.node_id,
        blocks=tuple(blocks),
        set_flags=tuple(flags),
        default_next_node_id=next_node_id,
    )


def _flags_and_jump(block: ScriptBlock) -> tuple[list[str], Optional[str]]:
    flags: list[str] = []
    next_node_id: Optional[str] = None
    for line in block.lines:
        command = _command(line)
        if command is None:
            continue
        if command[0] == "set":
            _add_set(line, flags)
        elif command[0] == "jump":
            next_node_id = command[1] or None
    return flags, next_node_id


def node_from_block(block: ScriptBlock) -> BaseNode:
    """Infer the node type of one block and build the node."""
    structural = next(
        (STRUCTURAL_TAGS[tag] for tag in block.headers.get("tags", "").lower().split() if tag in STRUCTURAL_TAGS),
        None,
    )
    if structural is not None:
        flags, next_node_id = _flags_and_jump(block)
        return NODE_CLASSES[structural](
            id=block.node_id, set_flags=tuple(flags), default_next_node_id=next_node_id
        )
    names = {command[0] for command in map(_command, block.lines) if command}
    if "stop" in names:
        flags, next_node_id = _flags_and_jump(block)
        return EndNode(id=block.node_id, set_flags=tuple(flags), default_next_node_id=next_node_id)
    if names & set(CALL_MODES):
        call = _storylet_call(block.lines)
        if call is not None:
            flags, next_node_id = _flags_and_jump(block)
            return StoryletNode(
                id=block.node_id,
                call=call,
                set_flags=tuple(flags),
                default_next_node_id=next_node_id,
            )
    if any(OPTION_PATTERN.match(line.strip()) for line in block.lines):
        return _player_node(block)
    if "if" in names:
        return _conditional_node(block)
    return _character_node(block)


def _edges_for(node: BaseNode, known: set[str]) -> list[ForgeEdge]:
    edges: list[ForgeEdge] = []

    def add(target: Optional[str], kind: EdgeKind, label: Optional[str] = None) -> None:
        if target and target in known:
            edges.append(
                ForgeEdge(
                    id=f"{node.id}-{kind.value.lower()}-{len(edges)}",
                    source=node.id,
                    target=target,
                    kind=kind,
                    label=label,
                )
            )

    if isinstance(node, PlayerNode):
        for choice in node.choices:
            add(choice.next_node_id, EdgeKind.CHOICE, choice.text)
        add(node.default_next_node_id, EdgeKind.DEFAULT)
    elif isinstance(node, ConditionalNode):
        for branch in node.blocks:
            add(branch.next_node_id, EdgeKind.CONDITION, branch.block_type.value)
        add(node.default_next_node_id, EdgeKind.DEFAULT)
    elif not isinstance(node, EndNode):
        for target in node.data_successors():
            add(target, EdgeKind.FLOW)
    return edges


def import_graph(
    text: str,
    *,
    title: str = "Imported Dialogue",
    graph_id: int = 0,
    kind: GraphKind = GraphKind.STORYLET,
) -> ForgeGraph:
    """Build a graph from script text; the first block is the start node."""
    nodes: list[BaseNode] = []
    seen: set[str] = set()
    for block in parse_script_blocks(text):
        if block.node_id in seen:
            logger.warning("Duplicate script node %s ignored", block.node_id)
            continue
        seen.add(block.node_id)
        nodes.append(node_from_block(block))

    edges = [edge for node in nodes for edge in _edges_for(node, seen)]
    graph = ForgeGraph(
        id=graph_id,
        kind=kind,
        title=title,
        start_node_id=nodes[0].id if nodes else None,
        nodes=tuple(nodes),
        edges=tuple(edges),
        end_node_ids=tuple(EndNodeRef(node_id=node.id) for node in nodes if isinstance(node, EndNode)),
    )
    logger.debug("Imported %d node(s) and %d edge(s) from script", len(nodes), len(edges))
    return graph


__all__ = [
    "ScriptBlock",
    "parse_script_blocks",
    "node_from_block",
    "import_graph",
]
