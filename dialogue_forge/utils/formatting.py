"""Utility helpers for rendering playback output as chat text."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence

from ..engine.conditions import format_literal
from ..engine.graph.model import FlagValue, ForgeGraph
from ..engine.runner.events import RunnerChoice, RunnerEvent, RunnerEventType

END_MARKER = "🏁 THE END"


def format_choices(choices: Sequence[RunnerChoice]) -> str:
    """Numbered choice menu; players reply with the number."""
    if not choices:
        return "(no choices available)"
    return "\n".join(f"{index}. {choice.text}" for index, choice in enumerate(choices, start=1))


def format_updates(updates: Mapping[str, FlagValue]) -> str:
    pairs = ", ".join(f"{name} = {format_literal(value)}" for name, value in updates.items())
    return f"(set {pairs})"


def format_event(event: RunnerEvent, *, show_system: bool = False) -> Optional[str]:
    """Render one runner event, or None when it has nothing to show."""
    if event.type is RunnerEventType.LINE:
        content = event.content or ""
        return f"{event.speaker}: {content}" if event.speaker else content
    if event.type is RunnerEventType.CHOICES:
        return format_choices(event.choices or ())
    if event.type is RunnerEventType.END:
        return END_MARKER
    if event.type is RunnerEventType.ERROR:
        return f"⚠️ {event.code}: {event.message}"
    if not show_system:
        return None
    if event.type is RunnerEventType.SET_VARIABLES:
        return format_updates(event.updates or {})
    if event.type is RunnerEventType.ENTER_NODE:
        return f"[{event.node_type or 'NODE'} {event.node_id}]"
    if event.type is RunnerEventType.WAIT_FOR_USER:
        return "(/next to continue)"
    return None


def format_transcript(events: Iterable[RunnerEvent], *, show_system: bool = False) -> str:
    lines = [format_event(event, show_system=show_system) for event in events]
    return "\n".join(line for line in lines if line)


def format_flags(snapshot: Mapping[str, FlagValue]) -> str:
    if not snapshot:
        return "No flags set."
    return "\n".join(f"{name} = {format_literal(snapshot[name])}" for name in sorted(snapshot))


def format_graph_list(graphs: Sequence[ForgeGraph]) -> str:
    if not graphs:
        return "No graphs stored yet. Upload a .json graph or a .yarn script."
    return "\n".join(f"#{graph.id} {graph.title} ({graph.kind.value.lower()})" for graph in graphs)


__all__ = [
    "END_MARKER",
    "format_choices",
    "format_updates",
    "format_event",
    "format_transcript",
    "format_flags",
    "format_graph_list",
]
