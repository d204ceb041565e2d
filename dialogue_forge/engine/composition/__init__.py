"""Composition resolver exports."""

from .models import (
    COMPOSITION_SCHEMA_V1,
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
from .resolver import (
    AsyncGraphResolver,
    ResolutionContext,
    build_composition,
    resolve_storylet_graphs,
    walk_order,
)

__all__ = [
    "COMPOSITION_SCHEMA_V1",
    "TRACK_IDS",
    "BackgroundBinding",
    "CharacterBinding",
    "Composition",
    "CompositionCue",
    "CompositionDiagnostic",
    "CompositionGraph",
    "CompositionResult",
    "CompositionScene",
    "CompositionTiming",
    "CompositionTrack",
    "CueType",
    "SetVariable",
    "TrackType",
    "AsyncGraphResolver",
    "ResolutionContext",
    "build_composition",
    "resolve_storylet_graphs",
    "walk_order",
]
