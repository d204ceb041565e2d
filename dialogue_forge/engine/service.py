"""Composition request handling: validate, resolve, build, and map errors to statuses."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, StrictInt, ValidationError

from ..config.toggles import Settings, get_settings
from .composition import AsyncGraphResolver, build_composition
from .errors import ForgeError, MissingReferencedGraphError
from .flags import extract_flags_from_game_state
from .graph.model import ForgeGraph

logger = logging.getLogger(__name__)

ServiceResponse = tuple[int, dict[str, Any]]


class CompositionOptions(BaseModel):
    resolve_storylets: Optional[bool] = Field(default=None, alias="resolveStorylets")
    fail_on_missing_graph: Optional[bool] = Field(default=None, alias="failOnMissingGraph")

    model_config = {"populate_by_name": True}


class CompositionRequest(BaseModel):
    root_graph_id: StrictInt = Field(alias="rootGraphId")
    game_state: Optional[dict[str, Any]] = Field(default=None, alias="gameState")
    options: CompositionOptions = Field(default_factory=CompositionOptions)

    model_config = {"populate_by_name": True}


def _error(status: int, code: str, message: str, details: Any = None) -> ServiceResponse:
    body: dict[str, Any] = {"ok": False, "code": code, "message": message}
    if details is not None:
        body["details"] = details
    return status, body


class CompositionService:
    """Turns a composition request body into an HTTP-style ``(status, body)`` pair."""

    def __init__(self, resolver: AsyncGraphResolver, settings: Optional[Settings] = None) -> None:
        self.resolver = resolver
        self.settings = settings or get_settings()

    async def _load_root(self, graph_id: int) -> Optional[ForgeGraph]:
        try:
            return await self.resolver(graph_id)
        except Exception:
            logger.warning("Root graph lookup for %s failed", graph_id, exc_info=True)
            return None

    async def handle(self, body: Any) -> ServiceResponse:
        try:
            request = CompositionRequest.model_validate(body)
        except ValidationError as exc:
            return _error(
                400,
                "INVALID_REQUEST",
                "rootGraphId (number) is required",
                details=exc.errors(include_url=False, include_context=False),
            )

        initial_variables = None
        if request.game_state is not None:
            try:
                initial_variables = extract_flags_from_game_state(
                    request.game_state,
                    include_falsy_numbers=self.settings.include_falsy_numbers,
                )
            except ValueError as exc:
                return _error(400, "INVALID_REQUEST", str(exc))

        root = await self._load_root(request.root_graph_id)
        if root is None:
            return _error(
                404,
                "ROOT_GRAPH_NOT_FOUND",
                f"Graph {request.root_graph_id} was not found",
            )

        options = request.options
        resolve_storylets = (
            options.resolve_storylets
            if options.resolve_storylets is not None
            else self.settings.resolve_storylets
        )
        fail_on_missing_graph = (
            options.fail_on_missing_graph
            if options.fail_on_missing_graph is not None
            else self.settings.fail_on_missing_graph
        )

        try:
            result = await build_composition(
                root,
                resolver=self.resolver,
                resolve_storylets=resolve_storylets,
                fail_on_missing_graph=fail_on_missing_graph,
                initial_variables=initial_variables,
            )
        except MissingReferencedGraphError as exc:
            return _error(422, exc.code, exc.message)
        except ForgeError as exc:
            logger.error("Composition for graph %s failed: %s", root.id, exc.message)
            return _error(500, exc.code, exc.message)
        except Exception as exc:
            logger.exception("Unexpected composition failure for graph %s", root.id)
            return _error(500, "COMPOSITION_BUILD_FAILED", str(exc) or "Failed to generate composition")

        return 200, {
            "ok": True,
            "rootGraphId": request.root_graph_id,
            "composition": result.composition.to_dict(),
            "resolvedGraphIds": list(result.resolved_graph_ids),
            "diagnostics": [diagnostic.to_dict() for diagnostic in result.diagnostics],
        }


__all__ = [
    "ServiceResponse",
    "CompositionOptions",
    "CompositionRequest",
    "CompositionService",
]
