"""Graph runner: walks a dialogue graph and emits playback events."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from ...config.toggles import Settings, get_settings
from ..conditions import evaluate_conditions
from ..flags import FlagStore, extract_flags_from_game_state
from ..graph.model import (
    CharacterNode,
    ConditionalBlock,
    ConditionalBlockType,
    ConditionalNode,
    EndNode,
    FlagValue,
    ForgeGraph,
    PlayerNode,
    StoryletCallMode,
    StoryletNode,
)
from .events import (
    CallFrame,
    RunnerChoice,
    RunnerError,
    RunnerErrorCode,
    RunnerEvent,
    RunnerEventType,
    RunnerState,
    RunnerStatus,
)

logger = logging.getLogger(__name__)

GraphResolver = Callable[[int], Optional[ForgeGraph]]
Clock = Callable[[], int]


def epoch_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class _Walk:
    """Mutable position while a single runner call is executing."""

    graph_id: int
    node_id: Optional[str]
    call_stack: list[CallFrame]
    events: list[RunnerEvent] = field(default_factory=list)


def pick_conditional_block(
    node: ConditionalNode, flags: FlagStore
) -> Optional[ConditionalBlock]:
    """First satisfied if/elseif block, else the trailing else block."""
    for block in node.blocks:
        if block.block_type is ConditionalBlockType.ELSE:
            return block
        if evaluate_conditions(block.conditions, flags):
            return block
    return None


class GraphRunner:
    """Synchronous, single-session interpreter over one root graph.

    Faults never raise: they surface as ``ERROR`` events and leave the
    runner in the terminal ``ERROR`` status.
    """

    def __init__(
        self,
        root_graph: ForgeGraph,
        *,
        graphs: Optional[Union[Mapping[int, ForgeGraph], Iterable[ForgeGraph]]] = None,
        graph_resolver: Optional[GraphResolver] = None,
        initial_game_state: Optional[Mapping[str, Any]] = None,
        initial_flags: Optional[Mapping[str, FlagValue]] = None,
        flag_store: Optional[FlagStore] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        settings = settings or get_settings()
        self.root_graph = root_graph
        self.max_call_stack_depth = settings.max_call_stack_depth
        self.max_steps = settings.max_runner_steps
        self._clock = clock or epoch_millis
        self._resolver = graph_resolver
        self._graphs: dict[int, ForgeGraph] = {root_graph.id: root_graph}
        extra = graphs.values() if isinstance(graphs, Mapping) else (graphs or ())
        for graph in extra:
            self._graphs[graph.id] = graph

        initial: dict[str, FlagValue] = {}
        if initial_game_state is not None:
            initial.update(
                extract_flags_from_game_state(
                    initial_game_state,
                    include_falsy_numbers=settings.include_falsy_numbers,
                )
            )
        initial.update(initial_flags or {})
        self.flags = flag_store if flag_store is not None else FlagStore()
        for name, value in initial.items():
            self.flags.set(name, value)

        self._state = RunnerState(
            status=RunnerStatus.IDLE,
            graph_id=root_graph.id,
            node_id=root_graph.start_node_id,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    @property
    def status(self) -> RunnerStatus:
        return self._state.status

    def get_state(self) -> RunnerState:
        return self._state

    def get_variable_snapshot(self) -> dict[str, FlagValue]:
        return self.flags.snapshot()

    def step(self) -> list[RunnerEvent]:
        """Start walking from the current position."""
        if self._state.status is not RunnerStatus.IDLE:
            return self._reject("step")
        return self._run(self._walk_from(self._state.node_id))

    def advance(self) -> list[RunnerEvent]:
        """Continue past the line the runner is waiting on."""
        if self._state.status is not RunnerStatus.WAITING_FOR_ADVANCE:
            return self._reject("advance")
        return self._run(self._walk_from(self._state.pending_advance))

    def select_choice(self, choice_id: str) -> list[RunnerEvent]:
        """Pick one of the choices offered by the last CHOICES event."""
        state = self._state
        if state.status is not RunnerStatus.WAITING_FOR_CHOICE:
            return self._reject("select_choice")
        walk = self._walk_from(state.node_id)
        offered = next((choice for choice in state.waiting_choices if choice.id == choice_id), None)
        if offered is None:
            self._state = self._fail(
                walk, RunnerErrorCode.INVALID_CHOICE, f"Choice {choice_id} is not available"
            )
            return walk.events

        graph = self._get_graph(state.graph_id)
        node = graph.get_node(state.node_id) if graph is not None else None
        if isinstance(node, PlayerNode):
            source = next((choice for choice in node.choices if choice.id == choice_id), None)
            if source is not None:
                self._apply_flags(walk, node.id, source.set_flags)
        walk.node_id = offered.next_node_id
        return self._run(walk)

    def restart(
        self, graph_id: Optional[int] = None, node_id: Optional[str] = None
    ) -> list[RunnerEvent]:
        """Drop the call stack and any error, then walk again. Flags are kept."""
        target_graph_id = graph_id if graph_id is not None else self.root_graph.id
        if node_id is None:
            graph = self._get_graph(target_graph_id)
            node_id = graph.start_node_id if graph is not None else None
        self._state = RunnerState(
            status=RunnerStatus.IDLE, graph_id=target_graph_id, node_id=node_id
        )
        return self.step()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _walk_from(self, node_id: Optional[str]) -> _Walk:
        return _Walk(
            graph_id=self._state.graph_id,
            node_id=node_id,
            call_stack=list(self._state.call_stack),
        )

    def _reject(self, operation: str) -> list[RunnerEvent]:
        logger.debug("Ignoring %s while runner is %s", operation, self._state.status.value)
        return []

    def _run(self, walk: _Walk) -> list[RunnerEvent]:
        self._state = self._drive(walk)
        return walk.events

    def _get_graph(self, graph_id: int) -> Optional[ForgeGraph]:
        graph = self._graphs.get(graph_id)
        if graph is not None:
            return graph
        if self._resolver is None:
            return None
        resolved = self._resolver(graph_id)
        if resolved is not None:
            self._graphs[resolved.id] = resolved
        return resolved

    def _event(
        self, event_type: RunnerEventType, graph_id: int, node_id: str, **payload: Any
    ) -> RunnerEvent:
        return RunnerEvent(
            type=event_type,
            graph_id=graph_id,
            node_id=node_id,
            timestamp=self._clock(),
            **payload,
        )

    def _apply_flags(self, walk: _Walk, node_id: str, instructions: Sequence[str]) -> None:
        updates: dict[str, FlagValue] = {}
        for instruction in instructions:
            applied = self.flags.apply_instruction(instruction)
            if applied is not None:
                name, value = applied
                updates[name] = value
        if updates:
            walk.events.append(
                self._event(RunnerEventType.SET_VARIABLES, walk.graph_id, node_id, updates=updates)
            )

    def _settle(
        self,
        walk: _Walk,
        status: RunnerStatus,
        *,
        waiting_choices: Sequence[RunnerChoice] = (),
        pending_advance: Optional[str] = None,
    ) -> RunnerState:
        return RunnerState(
            status=status,
            graph_id=walk.graph_id,
            node_id=walk.node_id,
            waiting_choices=tuple(waiting_choices),
            pending_advance=pending_advance,
            call_stack=tuple(walk.call_stack),
        )

    def _fail(self, walk: _Walk, code: RunnerErrorCode, message: str) -> RunnerState:
        logger.warning("Runner error %s: %s", code.value, message)
        walk.events.append(
            self._event(
                RunnerEventType.ERROR,
                walk.graph_id,
                walk.node_id or "",
                code=code.value,
                message=message,
            )
        )
        return RunnerState(
            status=RunnerStatus.ERROR,
            graph_id=walk.graph_id,
            node_id=walk.node_id,
            call_stack=tuple(walk.call_stack),
            last_error=RunnerError(code=code, message=message),
        )

    def _finish_thread(self, walk: _Walk, node_id: str) -> Optional[RunnerState]:
        """Return from a detour if one is pending, else end the session."""
        if walk.call_stack:
            frame = walk.call_stack.pop()
            walk.graph_id = frame.graph_id
            walk.node_id = frame.node_id
            return None
        walk.events.append(self._event(RunnerEventType.END, walk.graph_id, node_id))
        return self._settle(walk, RunnerStatus.ENDED)

    def _drive(self, walk: _Walk) -> RunnerState:
        steps = 0
        while True:
            if walk.node_id is None:
                finished = self._finish_thread(walk, "")
                if finished is not None:
                    return finished
                continue

            steps += 1
            if steps > self.max_steps:
                return self._fail(
                    walk,
                    RunnerErrorCode.STEP_LIMIT_EXCEEDED,
                    f"Exceeded {self.max_steps} steps without waiting for input",
                )

            graph = self._get_graph(walk.graph_id)
            if graph is None:
                return self._fail(
                    walk, RunnerErrorCode.GRAPH_NOT_FOUND, f"Graph {walk.graph_id} not found"
                )
            node = graph.get_node(walk.node_id)
            if node is None:
                return self._fail(
                    walk,
                    RunnerErrorCode.NODE_NOT_FOUND,
                    f"Node {walk.node_id} not found in graph {walk.graph_id}",
                )

            self._apply_flags(walk, node.id, node.set_flags)
            walk.events.append(
                self._event(
                    RunnerEventType.ENTER_NODE,
                    walk.graph_id,
                    node.id,
                    node_type=node.node_type.value,
                )
            )

            if isinstance(node, EndNode):
                finished = self._finish_thread(walk, node.id)
                if finished is not None:
                    return finished
                continue

            if isinstance(node, StoryletNode):
                failure = self._enter_storylet(walk, graph, node)
                if failure is not None:
                    return failure
                continue

            if isinstance(node, PlayerNode):
                return self._offer_choices(walk, node)

            if isinstance(node, ConditionalNode):
                parked = self._enter_conditional(walk, graph, node)
                if parked is not None:
                    return parked
                continue

            if isinstance(node, CharacterNode) and node.content.strip():
                walk.events.append(
                    self._event(
                        RunnerEventType.LINE,
                        walk.graph_id,
                        node.id,
                        speaker=node.speaker,
                        character_id=node.character_id,
                        content=node.content,
                    )
                )
                return self._wait_for_advance(walk, node.id, graph.next_node_id(node))

            # Empty lines and structural markers pass straight through.
            walk.node_id = graph.next_node_id(node)

    def _wait_for_advance(
        self, walk: _Walk, node_id: str, pending: Optional[str]
    ) -> RunnerState:
        walk.events.append(
            self._event(RunnerEventType.WAIT_FOR_USER, walk.graph_id, node_id, reason="advance")
        )
        return self._settle(walk, RunnerStatus.WAITING_FOR_ADVANCE, pending_advance=pending)

    def _offer_choices(self, walk: _Walk, node: PlayerNode) -> RunnerState:
        visible = tuple(
            RunnerChoice(id=choice.id, text=choice.text, next_node_id=choice.next_node_id)
            for choice in node.choices
            if evaluate_conditions(choice.conditions, self.flags)
        )
        walk.events.append(
            self._event(RunnerEventType.CHOICES, walk.graph_id, node.id, choices=visible)
        )
        walk.events.append(
            self._event(RunnerEventType.WAIT_FOR_USER, walk.graph_id, node.id, reason="choice")
        )
        return self._settle(walk, RunnerStatus.WAITING_FOR_CHOICE, waiting_choices=visible)

    def _enter_conditional(
        self, walk: _Walk, graph: ForgeGraph, node: ConditionalNode
    ) -> Optional[RunnerState]:
        block = pick_conditional_block(node, self.flags)
        if block is None:
            walk.node_id = graph.next_node_id(node)
            return None

        self._apply_flags(walk, node.id, block.set_flags)
        spoke = bool(block.content and block.content.strip())
        if spoke:
            walk.events.append(
                self._event(
                    RunnerEventType.LINE,
                    walk.graph_id,
                    node.id,
                    speaker=block.speaker,
                    character_id=block.character_id,
                    content=block.content,
                )
            )
        if block.next_node_id:
            walk.node_id = block.next_node_id
            return None
        if spoke:
            return self._wait_for_advance(walk, node.id, graph.next_node_id(node))
        walk.node_id = graph.next_node_id(node)
        return None

    def _enter_storylet(
        self, walk: _Walk, graph: ForgeGraph, node: StoryletNode
    ) -> Optional[RunnerState]:
        call = node.call
        target = self._get_graph(call.target_graph_id)
        if target is None:
            return self._fail(
                walk,
                RunnerErrorCode.MISSING_REFERENCED_GRAPH,
                f"Referenced graph {call.target_graph_id} not found",
            )
        if call.mode is StoryletCallMode.DETOUR_RETURN:
            if len(walk.call_stack) >= self.max_call_stack_depth:
                return self._fail(
                    walk,
                    RunnerErrorCode.CALL_STACK_OVERFLOW,
                    f"Call stack exceeded maximum depth {self.max_call_stack_depth}",
                )
            walk.call_stack.append(
                CallFrame(
                    graph_id=call.return_graph_id if call.return_graph_id is not None else walk.graph_id,
                    node_id=call.return_node_id or graph.next_node_id(node),
                )
            )
        walk.graph_id = target.id
        walk.node_id = call.target_start_node_id or target.start_node_id
        return None


__all__ = ["GraphRunner", "GraphResolver", "Clock", "epoch_millis", "pick_conditional_block"]
