from __future__ import annotations

from typing import Optional

from dialogue_forge.config import Settings
from dialogue_forge.engine.conditions import parse_condition
from dialogue_forge.engine.graph import (
    CharacterNode,
    Choice,
    ConditionalBlock,
    ConditionalBlockType,
    ConditionalNode,
    EndNode,
    ForgeGraph,
    GraphKind,
    PlayerNode,
    StoryletCall,
    StoryletCallMode,
    StoryletNode,
)
from dialogue_forge.engine.runner import (
    GraphRunner,
    RunnerErrorCode,
    RunnerEvent,
    RunnerEventType,
    RunnerStatus,
)


def make_graph(graph_id: int, nodes, start: Optional[str] = None) -> ForgeGraph:
    nodes = tuple(nodes)
    return ForgeGraph(
        id=graph_id,
        kind=GraphKind.NARRATIVE,
        title=f"Graph {graph_id}",
        start_node_id=start if start is not None else nodes[0].id,
        nodes=nodes,
    )


def make_runner(graph: ForgeGraph, settings: Optional[Settings] = None, **kwargs) -> GraphRunner:
    return GraphRunner(graph, settings=settings or Settings(), clock=lambda: 1000, **kwargs)


def types(events: list[RunnerEvent]) -> list[RunnerEventType]:
    return [event.type for event in events]


def deal_graph() -> ForgeGraph:
    return make_graph(
        1,
        [
            CharacterNode(id="n1", speaker="Mira", content="Welcome", default_next_node_id="n2"),
            PlayerNode(
                id="n2",
                choices=(
                    Choice(id="c1", text="Accept", next_node_id="n3", set_flags=("accepted",)),
                    Choice(id="c2", text="Decline", next_node_id="n4"),
                ),
            ),
            ConditionalNode(
                id="n3",
                blocks=(
                    ConditionalBlock(
                        id="n3_if",
                        block_type=ConditionalBlockType.IF,
                        conditions=tuple(parse_condition("$accepted")),
                        content="Deal accepted.",
                        next_node_id="n4",
                    ),
                ),
            ),
            EndNode(id="n4"),
        ],
    )


def test_character_player_conditional_end_flow() -> None:
    runner = make_runner(deal_graph())

    events = runner.step()
    assert types(events) == [
        RunnerEventType.ENTER_NODE,
        RunnerEventType.LINE,
        RunnerEventType.WAIT_FOR_USER,
    ]
    assert events[1].speaker == "Mira"
    assert events[1].content == "Welcome"
    assert events[0].timestamp == 1000
    assert runner.status is RunnerStatus.WAITING_FOR_ADVANCE

    events = runner.advance()
    assert types(events) == [
        RunnerEventType.ENTER_NODE,
        RunnerEventType.CHOICES,
        RunnerEventType.WAIT_FOR_USER,
    ]
    assert [choice.id for choice in events[1].choices] == ["c1", "c2"]
    assert runner.status is RunnerStatus.WAITING_FOR_CHOICE

    events = runner.select_choice("c1")
    assert types(events) == [
        RunnerEventType.SET_VARIABLES,
        RunnerEventType.ENTER_NODE,
        RunnerEventType.LINE,
        RunnerEventType.ENTER_NODE,
        RunnerEventType.END,
    ]
    assert events[0].updates == {"accepted": True}
    assert events[2].content == "Deal accepted."
    assert runner.status is RunnerStatus.ENDED
    assert runner.get_variable_snapshot() == {"accepted": True}


def test_node_flags_apply_before_enter_event() -> None:
    graph = make_graph(
        1,
        [
            CharacterNode(id="a", content="Hi", set_flags=("gold+=5",), default_next_node_id="b"),
            EndNode(id="b"),
        ],
    )
    runner = make_runner(graph, initial_flags={"gold": 1})
    events = runner.step()
    assert types(events)[:2] == [RunnerEventType.SET_VARIABLES, RunnerEventType.ENTER_NODE]
    assert events[0].updates == {"gold": 6}
    assert events[1].node_type == "CHARACTER"


def test_calls_in_the_wrong_state_are_ignored() -> None:
    runner = make_runner(deal_graph())
    assert runner.advance() == []
    assert runner.select_choice("c1") == []
    assert runner.status is RunnerStatus.IDLE
    runner.step()
    assert runner.step() == []
    assert runner.status is RunnerStatus.WAITING_FOR_ADVANCE


def test_invalid_choice_is_an_error_event() -> None:
    runner = make_runner(deal_graph())
    runner.step()
    runner.advance()
    events = runner.select_choice("nope")
    assert types(events) == [RunnerEventType.ERROR]
    assert events[0].code == RunnerErrorCode.INVALID_CHOICE.value
    assert runner.status is RunnerStatus.ERROR
    assert runner.get_state().last_error.message == "Choice nope is not available"


def test_hidden_choices_are_filtered_and_not_selectable() -> None:
    graph = make_graph(
        1,
        [
            PlayerNode(
                id="shop",
                choices=(
                    Choice(id="buy", text="Buy", next_node_id="end", conditions=tuple(parse_condition("$gold >= 10"))),
                    Choice(id="leave", text="Leave", next_node_id="end"),
                ),
            ),
            EndNode(id="end"),
        ],
    )
    runner = make_runner(graph, initial_game_state={"gold": 5})
    events = runner.step()
    assert [choice.id for choice in events[1].choices] == ["leave"]
    assert [choice.id for choice in runner.get_state().waiting_choices] == ["leave"]
    assert types(runner.select_choice("buy")) == [RunnerEventType.ERROR]


def test_conditional_else_branch_waits_before_default_next() -> None:
    graph = make_graph(
        1,
        [
            ConditionalNode(
                id="gate",
                default_next_node_id="end",
                blocks=(
                    ConditionalBlock(
                        id="rich",
                        block_type=ConditionalBlockType.IF,
                        conditions=tuple(parse_condition("$gold >= 10")),
                        content="Welcome, patron.",
                    ),
                    ConditionalBlock(
                        id="poor",
                        block_type=ConditionalBlockType.ELSE,
                        speaker="Guard",
                        content="Move along.",
                        set_flags=("turned_away",),
                    ),
                ),
            ),
            EndNode(id="end"),
        ],
    )
    runner = make_runner(graph)
    events = runner.step()
    assert types(events) == [
        RunnerEventType.ENTER_NODE,
        RunnerEventType.SET_VARIABLES,
        RunnerEventType.LINE,
        RunnerEventType.WAIT_FOR_USER,
    ]
    assert events[2].speaker == "Guard"
    assert runner.get_state().pending_advance == "end"
    assert types(runner.advance()) == [RunnerEventType.ENTER_NODE, RunnerEventType.END]


def test_detour_returns_through_call_stack() -> None:
    root = make_graph(
        10,
        [
            StoryletNode(
                id="call",
                call=StoryletCall(
                    mode=StoryletCallMode.DETOUR_RETURN,
                    target_graph_id=20,
                    return_node_id="back",
                ),
            ),
            CharacterNode(id="back", content="Back home.", default_next_node_id="fin"),
            EndNode(id="fin"),
        ],
    )
    side = make_graph(
        20,
        [
            CharacterNode(id="intro", content="Side quest!", default_next_node_id="done"),
            EndNode(id="done"),
        ],
    )
    runner = make_runner(root, graphs=[side])

    events = runner.step()
    assert events[-2].content == "Side quest!"
    state = runner.get_state()
    assert state.graph_id == 20
    assert state.call_depth == 1

    events = runner.advance()
    assert RunnerEventType.END not in types(events)
    assert events[-2].content == "Back home."
    assert runner.get_state().graph_id == 10
    assert runner.get_state().call_depth == 0

    events = runner.advance()
    assert types(events)[-1] is RunnerEventType.END
    assert events[-1].graph_id == 10
    assert runner.status is RunnerStatus.ENDED


def test_jump_uses_resolver_and_ends_in_target() -> None:
    root = make_graph(
        10,
        [StoryletNode(id="go", call=StoryletCall(mode=StoryletCallMode.JUMP, target_graph_id=20, target_start_node_id="late"))],
    )
    side = make_graph(20, [EndNode(id="early"), EndNode(id="late")])
    requested: list[int] = []

    def resolver(graph_id: int) -> Optional[ForgeGraph]:
        requested.append(graph_id)
        return side if graph_id == 20 else None

    runner = make_runner(root, graph_resolver=resolver)
    events = runner.step()
    assert requested == [20]
    assert events[-1].type is RunnerEventType.END
    assert events[-1].node_id == "late"
    assert runner.status is RunnerStatus.ENDED


def test_missing_storylet_graph_is_reported() -> None:
    root = make_graph(
        10,
        [StoryletNode(id="go", call=StoryletCall(mode=StoryletCallMode.JUMP, target_graph_id=99))],
    )
    runner = make_runner(root)
    events = runner.step()
    assert events[-1].type is RunnerEventType.ERROR
    assert events[-1].code == "MISSING_REFERENCED_GRAPH"
    assert events[-1].message == "Referenced graph 99 not found"
    assert runner.status is RunnerStatus.ERROR


def test_call_stack_depth_is_bounded() -> None:
    loop = make_graph(
        30,
        [
            StoryletNode(
                id="again",
                call=StoryletCall(mode=StoryletCallMode.DETOUR_RETURN, target_graph_id=30),
            )
        ],
    )
    runner = make_runner(loop, Settings(max_call_stack_depth=3))
    events = runner.step()
    assert events[-1].code == RunnerErrorCode.CALL_STACK_OVERFLOW.value
    assert events[-1].message == "Call stack exceeded maximum depth 3"
    assert runner.get_state().call_depth == 3


def test_silent_loops_hit_the_step_limit() -> None:
    graph = make_graph(
        1,
        [
            CharacterNode(id="a", default_next_node_id="b"),
            CharacterNode(id="b", default_next_node_id="a"),
        ],
    )
    runner = make_runner(graph, Settings(max_runner_steps=10))
    events = runner.step()
    assert events[-1].code == RunnerErrorCode.STEP_LIMIT_EXCEEDED.value
    assert runner.status is RunnerStatus.ERROR


def test_unknown_node_is_reported() -> None:
    graph = make_graph(1, [CharacterNode(id="a", content="Hi", default_next_node_id="ghost")])
    runner = make_runner(graph)
    runner.step()
    events = runner.advance()
    assert events[-1].code == RunnerErrorCode.NODE_NOT_FOUND.value
    assert events[-1].message == "Node ghost not found in graph 1"


def test_running_off_the_end_emits_end() -> None:
    graph = make_graph(1, [CharacterNode(id="a", content="Only line")])
    runner = make_runner(graph)
    runner.step()
    events = runner.advance()
    assert types(events) == [RunnerEventType.END]
    assert runner.status is RunnerStatus.ENDED


def test_restart_keeps_flags_and_replays() -> None:
    runner = make_runner(deal_graph())
    runner.step()
    runner.advance()
    runner.select_choice("c1")
    events = runner.restart()
    assert events[1].content == "Welcome"
    assert runner.status is RunnerStatus.WAITING_FOR_ADVANCE
    assert runner.get_variable_snapshot() == {"accepted": True}


def test_game_state_seeds_flags() -> None:
    runner = make_runner(deal_graph(), initial_game_state={"player": {"gold": 0, "name": "Ada"}})
    assert runner.get_variable_snapshot() == {"player_gold": 0, "player_name": "Ada"}
