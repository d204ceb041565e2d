from __future__ import annotations

import json
from pathlib import Path

import pytest

from dialogue_forge.engine.graph import (
    ActNode,
    CharacterNode,
    ConditionalNode,
    ConditionOperator,
    EdgeKind,
    EndNode,
    ForgeGraph,
    GraphKind,
    NodePresentation,
    PlayerNode,
    RuntimeDirective,
    StoryletCall,
    StoryletCallMode,
    StoryletNode,
    graph_from_dict,
)
from dialogue_forge.engine.runner import GraphRunner, RunnerEventType, RunnerStatus
from dialogue_forge.engine.script import (
    NodeBlockBuilder,
    SetCommand,
    export_graph,
    extract_set_commands,
    format_content,
    format_flags_as_set_commands,
    format_set_command,
    import_graph,
    parse_script_blocks,
    parse_set_command,
    prepare_graph_for_export,
    remove_set_commands,
)

SAMPLE = Path(__file__).resolve().parents[2] / "assets" / "graphs" / "merchant.json"


def merchant() -> ForgeGraph:
    return graph_from_dict(json.loads(SAMPLE.read_text(encoding="utf-8")))


def successor_sets(graph: ForgeGraph) -> dict[str, set[str]]:
    return {node.id: set(graph.successors(node)) for node in graph.nodes}


def test_export_then_import_keeps_successors() -> None:
    graph = merchant()
    imported = import_graph(export_graph(graph))
    assert imported.node_ids == graph.node_ids
    assert successor_sets(imported) == successor_sets(graph)
    assert imported.start_node_id == "greet"
    assert [ref.node_id for ref in imported.end_node_ids] == ["farewell"]


def test_export_drops_presentation_data() -> None:
    text = export_graph(merchant())
    assert "bg_market" not in text
    assert "mira_smile" not in text
    imported = import_graph(text)
    assert all(node.presentation is None for node in imported.nodes)
    assert all(not node.runtime_directives for node in imported.nodes)


def test_export_renders_script_lines() -> None:
    text = export_graph(merchant())
    assert text.startswith("title: greet\n---\nMira: Traveller! Care to see my wares?\n")
    assert "<<set $met_mira = true>>\n<<jump offer>>\n===\n" in text
    assert "<<if $reputation >= 3>>\n-> That price is robbery. #id:haggle\n" in text
    assert "    <<set $gold -= 8>>\n" in text
    assert "<<elseif $gold >= 10>>\n" in text
    assert "title: farewell\n---\n<<stop>>\n===\n" in text


def test_imported_nodes_carry_choices_and_branches() -> None:
    imported = import_graph(export_graph(merchant()), title="Merchant", graph_id=5)
    assert imported.id == 5
    assert imported.title == "Merchant"
    assert imported.kind is GraphKind.STORYLET

    greet = imported.get_node("greet")
    assert isinstance(greet, CharacterNode)
    assert greet.speaker == "Mira"
    assert greet.set_flags == ("met_mira",)

    offer = imported.get_node("offer")
    assert isinstance(offer, PlayerNode)
    assert [choice.id for choice in offer.choices] == ["buy", "haggle", "leave"]
    haggle = offer.choices[1]
    assert haggle.text == "That price is robbery."
    assert haggle.conditions[0].operator is ConditionOperator.GREATER_EQUAL
    assert haggle.set_flags == ("wants_lantern", "haggled")
    assert offer.choices[0].conditions == ()

    check = imported.get_node("check_gold")
    assert isinstance(check, ConditionalNode)
    assert [block.block_type.value for block in check.blocks] == ["if", "elseif", "else"]
    assert check.blocks[0].set_flags == ("gold-=8", "has_lantern")
    assert check.blocks[2].content == "Come back when your purse is heavier."
    assert check.blocks[2].speaker == "Mira"

    assert isinstance(imported.get_node("farewell"), EndNode)
    choice_edges = [edge for edge in imported.edges if edge.kind is EdgeKind.CHOICE]
    assert len(choice_edges) == 3


def test_storylet_calls_round_trip() -> None:
    graph = ForgeGraph(
        id=1,
        kind=GraphKind.NARRATIVE,
        title="Calls",
        start_node_id="detour",
        nodes=(
            StoryletNode(
                id="detour",
                call=StoryletCall(
                    mode=StoryletCallMode.DETOUR_RETURN,
                    target_graph_id=7,
                    target_start_node_id="intro",
                    return_node_id="after",
                ),
            ),
            CharacterNode(id="after", content="Back.", default_next_node_id="leap"),
            StoryletNode(id="leap", call=StoryletCall(mode=StoryletCallMode.JUMP, target_graph_id=8)),
        ),
    )
    text = export_graph(graph)
    assert "<<detour 7 intro>>" in text
    assert "<<return after>>" in text
    assert "<<storylet 8>>" in text

    imported = import_graph(text)
    detour = imported.get_node("detour")
    assert isinstance(detour, StoryletNode)
    assert detour.call == graph.get_node("detour").call
    leap = imported.get_node("leap")
    assert isinstance(leap, StoryletNode)
    assert leap.call.mode is StoryletCallMode.JUMP
    assert leap.call.target_start_node_id is None
    assert successor_sets(imported) == successor_sets(graph)


def test_prepare_graph_reports_losses() -> None:
    graph = ForgeGraph(
        id=1,
        kind=GraphKind.NARRATIVE,
        title="Losses",
        start_node_id="line",
        nodes=(
            ActNode(id="act", title="Act One", ref_id=3),
            CharacterNode(
                id="line",
                content="Hello",
                presentation=NodePresentation(portrait_id="p1"),
                runtime_directives=(RuntimeDirective(type="CAMERA"),),
            ),
        ),
    )
    nodes, diagnostics = prepare_graph_for_export(graph)
    assert [node.id for node in nodes] == ["act", "line"]
    assert nodes[0].title is None and nodes[0].ref_id is None
    assert nodes[1].presentation is None
    assert nodes[1].runtime_directives == ()
    assert diagnostics.stripped_structural == ["act"]
    assert diagnostics.stripped_presentation == ["line"]
    assert diagnostics.stripped_directives == ["line"]
    assert diagnostics.unreadable_flags == []
    assert diagnostics.has_losses


def test_structural_nodes_pass_through_export() -> None:
    graph = ForgeGraph(
        id=1,
        kind=GraphKind.NARRATIVE,
        title="Acts",
        start_node_id="a",
        nodes=(
            CharacterNode(id="a", speaker="Mira", content="Shall we?", default_next_node_id="act"),
            ActNode(id="act", title="Act Two", default_next_node_id="b"),
            EndNode(id="b"),
        ),
    )
    text = export_graph(graph)
    assert "title: act\ntags: act\n---\n<<jump b>>\n===\n" in text

    imported = import_graph(text)
    assert isinstance(imported.get_node("act"), ActNode)
    assert successor_sets(imported) == successor_sets(graph)

    runner = GraphRunner(imported)
    runner.step()
    events = runner.advance()
    assert events[-1].type is RunnerEventType.END
    assert runner.status is RunnerStatus.ENDED


def test_dotted_flag_writes_are_reported() -> None:
    graph = ForgeGraph(
        id=1,
        kind=GraphKind.NARRATIVE,
        title="Dotted",
        start_node_id="a",
        nodes=(CharacterNode(id="a", content="Paid.", set_flags=("player.gold+=5", "paid")),),
    )
    _, diagnostics = prepare_graph_for_export(graph)
    assert diagnostics.unreadable_flags == ["a: player.gold+=5"]
    assert diagnostics.has_losses
    assert import_graph(export_graph(graph)).get_node("a").set_flags == ("paid",)


def test_colon_narration_is_reported() -> None:
    graph = ForgeGraph(
        id=1,
        kind=GraphKind.NARRATIVE,
        title="Narration",
        start_node_id="a",
        nodes=(
            CharacterNode(id="a", content="Note: the door is locked."),
            CharacterNode(id="b", speaker="Mira", content="Odd: it was open."),
        ),
    )
    _, diagnostics = prepare_graph_for_export(graph)
    assert diagnostics.ambiguous_speakers == ["a"]
    assert import_graph(export_graph(graph)).get_node("a").speaker == "Note"


def test_import_handwritten_script() -> None:
    text = """
title: Start
tags: intro
---
Guide: Hello there.
Guide: Ready?
<<set $greeted = true>>
<<jump Ask>>
===
title: Ask
---
-> Yes
    <<set $ready += 1>>
    <<jump Nowhere>>
-> No
===
"""
    graph = import_graph(text)
    start = graph.get_node("Start")
    assert isinstance(start, CharacterNode)
    assert start.content == "Hello there.\nReady?"
    assert start.set_flags == ("greeted",)

    ask = graph.get_node("Ask")
    assert isinstance(ask, PlayerNode)
    assert [choice.id for choice in ask.choices] == ["Ask_choice_0", "Ask_choice_1"]
    assert ask.choices[0].set_flags == ("ready+=1",)
    assert ask.choices[0].next_node_id == "Nowhere"
    assert ask.choices[1].next_node_id is None
    # Edges only point at nodes that exist.
    assert [(edge.source, edge.target) for edge in graph.edges] == [("Start", "Ask")]


def test_parse_script_blocks_tolerates_missing_terminator() -> None:
    blocks = parse_script_blocks("title: A\n---\nHi\n===\n---\norphan\n===\ntitle: B\n---\nBye\n")
    assert [block.node_id for block in blocks] == ["A", "B"]
    assert blocks[1].lines == ["Bye"]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("<<set $gold = 5>>", SetCommand("gold", "=", 5)),
        ("<<set $gold += 2>>", SetCommand("gold", "+=", 2)),
        ('<<set $name = "Mira">>', SetCommand("name", "=", "Mira")),
        ("<<set $door = false>>", SetCommand("door", "=", False)),
        ("<<set $gold += lots>>", None),
        ("<<set gold = 1>>", None),
        ("no command here", None),
    ],
)
def test_parse_set_command(text: str, expected) -> None:
    assert parse_set_command(text) == expected


def test_set_command_formatting() -> None:
    assert format_set_command("name", "Mira") == '<<set $name = "Mira">>'
    assert format_set_command("gold", 3, "-=") == "<<set $gold -= 3>>"
    assert format_flags_as_set_commands(["met", "gold+=2", "bad+=x"]) == [
        "<<set $met = true>>",
        "<<set $gold += 2>>",
    ]


def test_content_helpers() -> None:
    assert format_content("One\nTwo", "Mira") == "Mira: One\nMira: Two"
    assert format_content("Plain") == "Plain"
    content = "Take it. <<set $gift = true>>"
    assert extract_set_commands(content) == ["<<set $gift = true>>"]
    assert remove_set_commands(content) == "Take it."


def test_inline_set_commands_move_after_the_line() -> None:
    block = NodeBlockBuilder("gift").start_node()
    block.add_content("Take it. <<set $gift = true>>", "Mira")
    text = block.end_node()
    assert text == "title: gift\n---\nMira: Take it.\n<<set $gift = true>>\n===\n\n"
