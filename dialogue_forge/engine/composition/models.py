"""Composition document types for Dialogue Forge."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional, Sequence

from ..graph.codec import node_to_dict
from ..graph.model import FlagValue, ForgeGraph

COMPOSITION_SCHEMA_V1 = "forge.composition.v1"

DiagnosticLevel = Literal["info", "warning", "error"]


class TrackType(str, Enum):
    SYSTEM = "SYSTEM"
    DIALOGUE = "DIALOGUE"
    CHOICE = "CHOICE"
    PRESENTATION = "PRESENTATION"


class CueType(str, Enum):
    ENTER_NODE = "ENTER_NODE"
    LINE = "LINE"
    CHOICES = "CHOICES"
    SET_VARIABLES = "SET_VARIABLES"
    DIRECTIVE = "DIRECTIVE"
    END = "END"


TRACK_IDS: dict[TrackType, str] = {
    TrackType.SYSTEM: "track-system",
    TrackType.DIALOGUE: "track-dialogue",
    TrackType.CHOICE: "track-choice",
    TrackType.PRESENTATION: "track-presentation",
}


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class CompositionTiming:
    at_ms: int
    wait_for_input: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"atMs": self.at_ms}
        if self.wait_for_input:
            data["waitForInput"] = True
        return data


@dataclass(frozen=True)
class SetVariable:
    name: str
    value: FlagValue
    operator: str = "="

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "operator": self.operator, "value": self.value}


@dataclass(frozen=True)
class CompositionCue:
    id: str
    type: CueType
    graph_id: int
    node_id: str
    track_id: str
    timing: CompositionTiming
    text: Optional[str] = None
    speaker: Optional[str] = None
    character_id: Optional[str] = None
    choices: Optional[Sequence[dict[str, Any]]] = None
    set_variables: Optional[Sequence[SetVariable]] = None
    directive: Optional[dict[str, Any]] = None
    animation_hint: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        data = _compact(
            {
                "id": self.id,
                "type": self.type.value,
                "graphId": self.graph_id,
                "nodeId": self.node_id,
                "trackId": self.track_id,
                "timing": self.timing.to_dict(),
                "text": self.text,
                "speaker": self.speaker,
                "characterId": self.character_id,
                "directive": self.directive,
                "animationHint": self.animation_hint,
            }
        )
        if self.choices is not None:
            data["choices"] = [dict(choice) for choice in self.choices]
        if self.set_variables is not None:
            data["setVariables"] = [variable.to_dict() for variable in self.set_variables]
        return data


@dataclass(frozen=True)
class CompositionTrack:
    id: str
    type: TrackType
    cue_ids: Sequence[str]

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type.value, "cueIds": list(self.cue_ids)}


@dataclass(frozen=True)
class CompositionScene:
    id: str
    graph_id: int
    title: str
    node_ids: Sequence[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "graphId": self.graph_id,
            "title": self.title,
            "nodeIds": list(self.node_ids),
        }


@dataclass(frozen=True)
class CompositionGraph:
    """Snapshot of one resolved graph, nodes listed in walk order."""

    graph: ForgeGraph
    node_order: Sequence[str]

    @property
    def graph_id(self) -> int:
        return self.graph.id

    def has_node(self, node_id: str) -> bool:
        return self.graph.has_node(node_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "graphId": self.graph.id,
            "kind": self.graph.kind.value,
            "title": self.graph.title,
            "startNodeId": self.graph.start_node_id,
            "nodeOrder": list(self.node_order),
            "nodesById": {node.id: node_to_dict(node) for node in self.graph.nodes},
            "edges": [
                _compact(
                    {
                        "id": edge.id,
                        "source": edge.source,
                        "target": edge.target,
                        "kind": edge.kind.value,
                        "label": edge.label,
                    }
                )
                for edge in self.graph.edges
            ],
        }


@dataclass(frozen=True)
class CharacterBinding:
    character_id: str
    display_name: str
    portrait_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "characterId": self.character_id,
                "displayName": self.display_name,
                "portraitId": self.portrait_id,
            }
        )


@dataclass(frozen=True)
class BackgroundBinding:
    background_id: str
    image_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({"backgroundId": self.background_id, "imageId": self.image_id})


@dataclass(frozen=True)
class CompositionDiagnostic:
    level: DiagnosticLevel
    code: str
    message: str
    graph_id: Optional[int] = None
    node_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "level": self.level,
                "code": self.code,
                "message": self.message,
                "graphId": self.graph_id,
                "nodeId": self.node_id,
                "details": self.details,
            }
        )


@dataclass(frozen=True)
class Composition:
    root_graph_id: int
    entry_graph_id: int
    entry_node_id: str
    resolved_graph_ids: Sequence[int]
    generated_at: datetime
    scenes: Sequence[CompositionScene]
    tracks: Sequence[CompositionTrack]
    cues: Sequence[CompositionCue]
    graphs: Sequence[CompositionGraph]
    character_bindings: Sequence[CharacterBinding] = field(default_factory=tuple)
    background_bindings: Sequence[BackgroundBinding] = field(default_factory=tuple)
    initial_variables: dict[str, FlagValue] = field(default_factory=dict)
    diagnostics: Sequence[CompositionDiagnostic] = field(default_factory=tuple)
    schema: str = COMPOSITION_SCHEMA_V1

    def graph(self, graph_id: int) -> Optional[CompositionGraph]:
        for snapshot in self.graphs:
            if snapshot.graph_id == graph_id:
                return snapshot
        return None

    def track(self, track_type: TrackType) -> Optional[CompositionTrack]:
        for track in self.tracks:
            if track.type is track_type:
                return track
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema": self.schema,
            "rootGraphId": self.root_graph_id,
            "entry": {"graphId": self.entry_graph_id, "nodeId": self.entry_node_id},
            "resolvedGraphIds": list(self.resolved_graph_ids),
            "generatedAt": self.generated_at.isoformat(),
            "scenes": [scene.to_dict() for scene in self.scenes],
            "tracks": [track.to_dict() for track in self.tracks],
            "cues": [cue.to_dict() for cue in self.cues],
            "graphs": [graph.to_dict() for graph in self.graphs],
            "characterBindings": [binding.to_dict() for binding in self.character_bindings],
            "backgroundBindings": [binding.to_dict() for binding in self.background_bindings],
            "initialVariables": dict(self.initial_variables),
            "diagnostics": [diagnostic.to_dict() for diagnostic in self.diagnostics],
        }


@dataclass(frozen=True)
class CompositionResult:
    composition: Composition
    resolved_graph_ids: Sequence[int]
    diagnostics: Sequence[CompositionDiagnostic]


__all__ = [
    "COMPOSITION_SCHEMA_V1",
    "DiagnosticLevel",
    "TrackType",
    "CueType",
    "TRACK_IDS",
    "CompositionTiming",
    "SetVariable",
    "CompositionCue",
    "CompositionTrack",
    "CompositionScene",
    "CompositionGraph",
    "CharacterBinding",
    "BackgroundBinding",
    "CompositionDiagnostic",
    "Composition",
    "CompositionResult",
]
