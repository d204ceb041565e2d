"""Runner event and state types for Dialogue Forge playback."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

from ..graph.model import FlagValue


class RunnerStatus(str, Enum):
    IDLE = "IDLE"
    WAITING_FOR_ADVANCE = "WAITING_FOR_ADVANCE"
    WAITING_FOR_CHOICE = "WAITING_FOR_CHOICE"
    ENDED = "ENDED"
    ERROR = "ERROR"


class RunnerEventType(str, Enum):
    ENTER_NODE = "ENTER_NODE"
    LINE = "LINE"
    CHOICES = "CHOICES"
    SET_VARIABLES = "SET_VARIABLES"
    WAIT_FOR_USER = "WAIT_FOR_USER"
    END = "END"
    ERROR = "ERROR"


class RunnerErrorCode(str, Enum):
    GRAPH_NOT_FOUND = "GRAPH_NOT_FOUND"
    NODE_NOT_FOUND = "NODE_NOT_FOUND"
    MISSING_REFERENCED_GRAPH = "MISSING_REFERENCED_GRAPH"
    CALL_STACK_OVERFLOW = "CALL_STACK_OVERFLOW"
    INVALID_CHOICE = "INVALID_CHOICE"
    STEP_LIMIT_EXCEEDED = "STEP_LIMIT_EXCEEDED"


@dataclass(frozen=True)
class RunnerChoice:
    id: str
    text: str
    next_node_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "text": self.text}
        if self.next_node_id is not None:
            data["nextNodeId"] = self.next_node_id
        return data


@dataclass(frozen=True)
class RunnerEvent:
    """One playback event. Unused payload fields stay None."""

    type: RunnerEventType
    graph_id: int
    node_id: str
    timestamp: int
    node_type: Optional[str] = None
    speaker: Optional[str] = None
    character_id: Optional[str] = None
    content: Optional[str] = None
    choices: Optional[Sequence[RunnerChoice]] = None
    updates: Optional[dict[str, FlagValue]] = None
    reason: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "graphId": self.graph_id,
            "nodeId": self.node_id,
            "timestamp": self.timestamp,
        }
        optional = {
            "nodeType": self.node_type,
            "speaker": self.speaker,
            "characterId": self.character_id,
            "content": self.content,
            "updates": dict(self.updates) if self.updates is not None else None,
            "reason": self.reason,
            "code": self.code,
            "message": self.message,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.choices is not None:
            data["choices"] = [choice.to_dict() for choice in self.choices]
        return data


@dataclass(frozen=True)
class CallFrame:
    """Where to resume after a detour storylet finishes."""

    graph_id: int
    node_id: Optional[str]


@dataclass(frozen=True)
class RunnerError:
    code: RunnerErrorCode
    message: str


@dataclass(frozen=True)
class RunnerState:
    status: RunnerStatus
    graph_id: int
    node_id: Optional[str]
    waiting_choices: Sequence[RunnerChoice] = field(default_factory=tuple)
    pending_advance: Optional[str] = None
    call_stack: Sequence[CallFrame] = field(default_factory=tuple)
    last_error: Optional[RunnerError] = None

    @property
    def call_depth(self) -> int:
        return len(self.call_stack)


__all__ = [
    "RunnerStatus",
    "RunnerEventType",
    "RunnerErrorCode",
    "RunnerChoice",
    "RunnerEvent",
    "CallFrame",
    "RunnerError",
    "RunnerState",
]
