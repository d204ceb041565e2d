"""Flatten a root graph and its storylet graphs into one composition."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from ..errors import (
    CompositionBuildError,
    ForgeError,
    MalformedGraphError,
    MissingReferencedGraphError,
)
from ..flags import parse_set_instruction
from ..graph.codec import directive_to_dict, node_to_dict
from ..graph.model import (
    CharacterNode,
    ConditionalNode,
    EndNode,
    FlagValue,
    ForgeGraph,
    PlayerNode,
    StoryletNode,
)
from .models import (
    TRACK_IDS,
    BackgroundBinding,
    CharacterBinding,
    Composition,
    CompositionCue,
    CompositionDiagnostic,
    CompositionGraph,
    CompositionResult,
    CompositionScene,
    CompositionTiming,
    CompositionTrack,
    CueType,
    SetVariable,
    TrackType,
)

logger = logging.getLogger(__name__)

AsyncGraphResolver = Callable[[int], Awaitable[Optional[ForgeGraph]]]


@dataclass
class ResolutionContext:
    """Per-call traversal state; nothing is shared between builds."""

    visited: set[int]
    graphs: list[ForgeGraph]
    diagnostics: list[CompositionDiagnostic] = field(default_factory=list)


async def resolve_storylet_graphs(
    root_graph: ForgeGraph,
    resolver: AsyncGraphResolver,
    *,
    fail_on_missing_graph: bool = True,
) -> ResolutionContext:
    """Depth-first resolution of every graph reachable through storylet nodes."""
    context = ResolutionContext(visited={root_graph.id}, graphs=[root_graph])
    await _descend(root_graph, resolver, context, fail_on_missing_graph)
    return context


async def _descend(
    graph: ForgeGraph,
    resolver: AsyncGraphResolver,
    context: ResolutionContext,
    fail_on_missing_graph: bool,
) -> None:
    for node in graph.nodes:
        if not isinstance(node, StoryletNode):
            continue
        target_id = node.call.target_graph_id
        if target_id in context.visited:
            _already_resolved(context, graph, node, target_id)
            continue

        try:
            target = await resolver(target_id)
        except ForgeError:
            raise
        except Exception as exc:
            raise CompositionBuildError(
                f"Failed to resolve graph {target_id}: {exc}"
            ) from exc

        if target is None:
            if fail_on_missing_graph:
                raise MissingReferencedGraphError(target_id)
            logger.warning("Referenced graph %s not found; skipping", target_id)
            context.diagnostics.append(
                CompositionDiagnostic(
                    level="warning",
                    code="MISSING_REFERENCED_GRAPH",
                    message=f"Referenced graph {target_id} not found",
                    graph_id=graph.id,
                    node_id=node.id,
                    details={"targetGraphId": target_id},
                )
            )
            continue

        context.visited.add(target_id)
        # The resolver may answer with a graph under a different id.
        if target.id in context.visited:
            _already_resolved(context, graph, node, target.id)
            continue
        context.visited.add(target.id)
        context.graphs.append(target)
        await _descend(target, resolver, context, fail_on_missing_graph)


def _already_resolved(
    context: ResolutionContext, graph: ForgeGraph, node: StoryletNode, graph_id: int
) -> None:
    context.diagnostics.append(
        CompositionDiagnostic(
            level="info",
            code="STORYLET_ALREADY_RESOLVED",
            message=f"Graph {graph_id} already resolved",
            graph_id=graph.id,
            node_id=node.id,
            details={"targetGraphId": node.call.target_graph_id},
        )
    )


def walk_order(graph: ForgeGraph) -> list[str]:
    """Node ids depth-first from the start node, then the unreachable rest."""
    order: list[str] = []
    seen: set[str] = set()
    stack = [graph.start_node_id] if graph.start_node_id else []
    while stack:
        node_id = stack.pop()
        if node_id in seen:
            continue
        node = graph.get_node(node_id)
        if node is None:
            continue
        seen.add(node_id)
        order.append(node_id)
        stack.extend(reversed(graph.successors(node)))
    order.extend(node.id for node in graph.nodes if node.id not in seen)
    return order


def _set_variables(instructions: Sequence[str]) -> list[SetVariable]:
    variables = []
    for instruction in instructions:
        write = parse_set_instruction(instruction)
        if write is not None:
            variables.append(SetVariable(name=write.name, value=write.value, operator=write.operator))
    return variables


class _CueBuilder:
    def __init__(self) -> None:
        self.cues: list[CompositionCue] = []
        self.track_cues: dict[TrackType, list[str]] = {track: [] for track in TRACK_IDS}
        self.cursor_ms = 0

    def push(
        self,
        cue_type: CueType,
        track: TrackType,
        graph_id: int,
        node_id: str,
        *,
        wait_for_input: bool = False,
        **payload: Any,
    ) -> None:
        cue_id = f"cue-{len(self.cues) + 1}"
        self.cues.append(
            CompositionCue(
                id=cue_id,
                type=cue_type,
                graph_id=graph_id,
                node_id=node_id,
                track_id=TRACK_IDS[track],
                timing=CompositionTiming(at_ms=self.cursor_ms, wait_for_input=wait_for_input),
                **payload,
            )
        )
        self.track_cues[track].append(cue_id)
        if wait_for_input:
            self.cursor_ms += 1

    def tracks(self) -> list[CompositionTrack]:
        return [
            CompositionTrack(id=TRACK_IDS[track], type=track, cue_ids=tuple(cue_ids))
            for track, cue_ids in self.track_cues.items()
        ]


def _emit_node_cues(builder: _CueBuilder, graph: ForgeGraph, node_id: str) -> None:
    node = graph.get_node(node_id)
    if node is None:
        return
    variables = _set_variables(node.set_flags)
    if variables:
        builder.push(
            CueType.SET_VARIABLES, TrackType.SYSTEM, graph.id, node.id, set_variables=tuple(variables)
        )
    builder.push(CueType.ENTER_NODE, TrackType.SYSTEM, graph.id, node.id)

    presentation = node.presentation
    if presentation and (presentation.background_id or presentation.portrait_id):
        builder.push(
            CueType.DIRECTIVE,
            TrackType.PRESENTATION,
            graph.id,
            node.id,
            animation_hint={"transition": "FADE"},
        )
    for directive in node.runtime_directives:
        builder.push(
            CueType.DIRECTIVE,
            TrackType.PRESENTATION,
            graph.id,
            node.id,
            directive=directive_to_dict(directive),
        )

    if isinstance(node, CharacterNode) and node.content.strip():
        builder.push(
            CueType.LINE,
            TrackType.DIALOGUE,
            graph.id,
            node.id,
            wait_for_input=True,
            text=node.content,
            speaker=node.speaker,
            character_id=node.character_id,
        )

    if isinstance(node, ConditionalNode):
        # Cue order is line then writes; the runner applies block writes before the line.
        for block in node.blocks:
            if block.content and block.content.strip():
                builder.push(
                    CueType.LINE,
                    TrackType.DIALOGUE,
                    graph.id,
                    node.id,
                    wait_for_input=True,
                    text=block.content,
                    speaker=block.speaker,
                    character_id=block.character_id,
                )
            block_variables = _set_variables(block.set_flags)
            if block_variables:
                builder.push(
                    CueType.SET_VARIABLES,
                    TrackType.SYSTEM,
                    graph.id,
                    node.id,
                    set_variables=tuple(block_variables),
                )

    if isinstance(node, PlayerNode) and node.choices:
        builder.push(
            CueType.CHOICES,
            TrackType.CHOICE,
            graph.id,
            node.id,
            wait_for_input=True,
            choices=tuple(node_to_dict(node)["choices"]),
        )

    if isinstance(node, EndNode):
        builder.push(CueType.END, TrackType.SYSTEM, graph.id, node.id)


def _bindings(
    snapshots: list[CompositionGraph],
) -> tuple[list[CharacterBinding], list[BackgroundBinding]]:
    characters: dict[str, CharacterBinding] = {}
    backgrounds: dict[str, BackgroundBinding] = {}
    for snapshot in snapshots:
        graph = snapshot.graph
        for node_id in snapshot.node_order:
            node = graph.get_node(node_id)
            if node is None:
                continue
            presentation = node.presentation
            if isinstance(node, CharacterNode) and node.character_id:
                characters.setdefault(
                    node.character_id,
                    CharacterBinding(
                        character_id=node.character_id,
                        display_name=node.speaker or node.character_id,
                        portrait_id=presentation.portrait_id if presentation else None,
                    ),
                )
            if presentation and presentation.background_id:
                backgrounds.setdefault(
                    presentation.background_id,
                    BackgroundBinding(
                        background_id=presentation.background_id,
                        image_id=presentation.image_id,
                    ),
                )
    return list(characters.values()), list(backgrounds.values())


async def build_composition(
    root_graph: ForgeGraph,
    *,
    resolver: Optional[AsyncGraphResolver] = None,
    resolve_storylets: bool = True,
    fail_on_missing_graph: bool = True,
    initial_variables: Optional[Mapping[str, FlagValue]] = None,
) -> CompositionResult:
    """Resolve storylets and lay every resolved graph out as scenes, tracks and cues.

    Raises MalformedGraphError when the root has no usable start node,
    MissingReferencedGraphError when a storylet target is missing and
    ``fail_on_missing_graph`` is set, and CompositionBuildError when the
    resolver itself fails.
    """
    if not root_graph.has_valid_start():
        raise MalformedGraphError(
            f"Root graph {root_graph.id} has no valid start node"
        )

    if resolve_storylets and resolver is not None:
        context = await resolve_storylet_graphs(
            root_graph, resolver, fail_on_missing_graph=fail_on_missing_graph
        )
    else:
        context = ResolutionContext(visited={root_graph.id}, graphs=[root_graph])

    snapshots = [CompositionGraph(graph=graph, node_order=tuple(walk_order(graph))) for graph in context.graphs]
    builder = _CueBuilder()
    for snapshot in snapshots:
        for node_id in snapshot.node_order:
            _emit_node_cues(builder, snapshot.graph, node_id)
    characters, backgrounds = _bindings(snapshots)
    resolved_ids = tuple(graph.id for graph in context.graphs)
    diagnostics = tuple(context.diagnostics)

    composition = Composition(
        root_graph_id=root_graph.id,
        entry_graph_id=root_graph.id,
        entry_node_id=root_graph.start_node_id or "",
        resolved_graph_ids=resolved_ids,
        generated_at=datetime.now(timezone.utc),
        scenes=tuple(
            CompositionScene(
                id=f"scene-{snapshot.graph_id}",
                graph_id=snapshot.graph_id,
                title=snapshot.graph.title,
                node_ids=snapshot.node_order,
            )
            for snapshot in snapshots
        ),
        tracks=tuple(builder.tracks()),
        cues=tuple(builder.cues),
        graphs=tuple(snapshots),
        character_bindings=tuple(characters),
        background_bindings=tuple(backgrounds),
        initial_variables=dict(initial_variables or {}),
        diagnostics=diagnostics,
    )
    logger.info(
        "Built composition for graph %s: %d graph(s), %d cue(s)",
        root_graph.id,
        len(resolved_ids),
        len(builder.cues),
    )
    return CompositionResult(
        composition=composition,
        resolved_graph_ids=resolved_ids,
        diagnostics=diagnostics,
    )


__all__ = [
    "AsyncGraphResolver",
    "ResolutionContext",
    "resolve_storylet_graphs",
    "walk_order",
    "build_composition",
]
