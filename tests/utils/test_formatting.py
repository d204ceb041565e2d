from __future__ import annotations

from dialogue_forge.engine.graph import ForgeGraph, GraphKind
from dialogue_forge.engine.runner import RunnerChoice, RunnerEvent, RunnerEventType
from dialogue_forge.utils import (
    END_MARKER,
    format_event,
    format_flags,
    format_graph_list,
    format_transcript,
)


def event(event_type: RunnerEventType, **payload) -> RunnerEvent:
    return RunnerEvent(type=event_type, graph_id=1, node_id="n1", timestamp=0, **payload)


def test_transcript_hides_system_events_by_default() -> None:
    events = [
        event(RunnerEventType.SET_VARIABLES, updates={"gold": 5}),
        event(RunnerEventType.ENTER_NODE, node_type="CHARACTER"),
        event(RunnerEventType.LINE, speaker="Mira", content="Hello."),
        event(RunnerEventType.WAIT_FOR_USER, reason="advance"),
    ]
    assert format_transcript(events) == "Mira: Hello."
    verbose = format_transcript(events, show_system=True)
    assert verbose.splitlines() == [
        "(set gold = 5)",
        "[CHARACTER n1]",
        "Mira: Hello.",
        "(/next to continue)",
    ]


def test_choices_end_and_errors() -> None:
    choices = (RunnerChoice(id="a", text="Yes"), RunnerChoice(id="b", text="No"))
    assert format_event(event(RunnerEventType.CHOICES, choices=choices)) == "1. Yes\n2. No"
    assert format_event(event(RunnerEventType.CHOICES, choices=())) == "(no choices available)"
    assert format_event(event(RunnerEventType.END)) == END_MARKER
    error = event(RunnerEventType.ERROR, code="NODE_NOT_FOUND", message="Node x not found in graph 1")
    assert format_event(error) == "⚠️ NODE_NOT_FOUND: Node x not found in graph 1"


def test_narration_without_speaker() -> None:
    assert format_event(event(RunnerEventType.LINE, content="Rain falls.")) == "Rain falls."


def test_format_flags_sorted() -> None:
    assert format_flags({}) == "No flags set."
    assert format_flags({"name": "Mira", "gold": 3, "met": True}) == 'gold = 3\nmet = true\nname = "Mira"'


def test_format_graph_list() -> None:
    graphs = [ForgeGraph(id=4, kind=GraphKind.STORYLET, title="Side Quest", start_node_id=None)]
    assert format_graph_list(graphs) == "#4 Side Quest (storylet)"
    assert format_graph_list([]).startswith("No graphs stored yet")
