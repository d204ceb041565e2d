"""Utility helpers."""

from .formatting import (
    END_MARKER,
    format_choices,
    format_event,
    format_flags,
    format_graph_list,
    format_transcript,
    format_updates,
)

__all__ = [
    "END_MARKER",
    "format_choices",
    "format_event",
    "format_flags",
    "format_graph_list",
    "format_transcript",
    "format_updates",
]
