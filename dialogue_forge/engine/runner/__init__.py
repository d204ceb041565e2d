"""Graph runner exports."""

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
from .runtime import GraphResolver, GraphRunner, epoch_millis, pick_conditional_block

__all__ = [
    "GraphRunner",
    "GraphResolver",
    "epoch_millis",
    "pick_conditional_block",
    "CallFrame",
    "RunnerChoice",
    "RunnerError",
    "RunnerErrorCode",
    "RunnerEvent",
    "RunnerEventType",
    "RunnerState",
    "RunnerStatus",
]
