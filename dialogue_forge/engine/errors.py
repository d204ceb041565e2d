"""Domain exceptions for the Dialogue Forge engine."""

from __future__ import annotations

from typing import Optional


class ForgeError(Exception):
    """Base class for engine errors carrying a machine-readable code."""

    code = "FORGE_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class GraphNotFoundError(ForgeError):
    """Raised when a graph id has no stored document."""

    code = "GRAPH_NOT_FOUND"

    def __init__(self, graph_id: int) -> None:
        super().__init__(f"Graph {graph_id} not found")
        self.graph_id = graph_id


class GraphDecodeError(ForgeError):
    """Raised when a stored graph document cannot be decoded."""

    code = "INVALID_GRAPH_DOCUMENT"


class MalformedGraphError(ForgeError):
    """Raised when a root graph cannot be composed (no usable start node)."""

    code = "INVALID_ROOT_GRAPH"


class MissingReferencedGraphError(ForgeError):
    """Raised when a storylet points at a graph the resolver cannot find."""

    code = "MISSING_REFERENCED_GRAPH"

    def __init__(self, graph_id: int) -> None:
        super().__init__(f"Referenced graph {graph_id} not found")
        self.graph_id = graph_id


class CompositionBuildError(ForgeError):
    """Raised when composition fails for a reason other than a missing graph."""

    code = "COMPOSITION_BUILD_FAILED"


__all__ = [
    "ForgeError",
    "GraphNotFoundError",
    "GraphDecodeError",
    "MalformedGraphError",
    "MissingReferencedGraphError",
    "CompositionBuildError",
]
