"""Flag storage, flag-write instructions and game-state flattening."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Optional, Union

from .conditions import parse_literal, to_number
from .graph.model import FlagValue

logger = logging.getLogger(__name__)

WriteOperator = Literal["=", "+=", "-=", "*=", "/="]

_INSTRUCTION = re.compile(r"^\$?([A-Za-z0-9_.\[\]]+)\s*(\+=|-=|\*=|/=|=)\s*(.+)$")
_BARE_INSTRUCTION = re.compile(r"^\$?([A-Za-z0-9_.\[\]]+)$")


@dataclass(frozen=True)
class FlagWrite:
    """A parsed flag-write instruction such as ``gold+=5``."""

    name: str
    operator: WriteOperator
    value: FlagValue


def parse_set_instruction(instruction: str) -> Optional[FlagWrite]:
    """Parse ``name``, ``name=value`` or ``name<op>=number``; None when malformed."""
    text = (instruction or "").strip()
    if not text:
        return None
    match = _INSTRUCTION.match(text)
    if match:
        name, operator, raw_value = match.groups()
        value = parse_literal(raw_value)
        if operator != "=":
            number = to_number(value) if not isinstance(value, bool) else None
            if number is None:
                return None
            value = number
        return FlagWrite(name=name, operator=operator, value=value)  # type: ignore[arg-type]
    bare = _BARE_INSTRUCTION.match(text)
    if bare:
        return FlagWrite(name=bare.group(1), operator="=", value=True)
    return None


def _tidy_number(value: Union[int, float]) -> Union[int, float]:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def apply_numeric_operation(
    current: Optional[FlagValue], operator: str, operand: FlagValue
) -> FlagValue:
    """Combine the current value with an operand; missing values count as 0."""
    if operator == "=":
        return operand
    base = to_number(current)
    if base is None:
        base = 0
    delta = to_number(operand)
    if delta is None:
        delta = 0
    if operator == "+=":
        return _tidy_number(base + delta)
    if operator == "-=":
        return _tidy_number(base - delta)
    if operator == "*=":
        return _tidy_number(base * delta)
    if operator == "/=":
        if delta == 0:
            return base
        return _tidy_number(base / delta)
    raise ValueError(f"Unsupported flag operator: {operator}")


class FlagStore:
    """Session-scoped flat flag map."""

    def __init__(self, initial: Optional[Mapping[str, FlagValue]] = None) -> None:
        self._values: dict[str, FlagValue] = dict(initial or {})

    def get(self, name: str) -> Optional[FlagValue]:
        return self._values.get(name)

    def set(self, name: str, value: FlagValue) -> None:
        self._values[name] = value

    def has(self, name: str) -> bool:
        return name in self._values

    def snapshot(self) -> dict[str, FlagValue]:
        return dict(self._values)

    def reset(self, next: Optional[Mapping[str, FlagValue]] = None) -> None:
        self._values.clear()
        if next:
            self._values.update(next)

    def apply_operation(self, name: str, operator: str, operand: FlagValue) -> FlagValue:
        value = apply_numeric_operation(self._values.get(name), operator, operand)
        self._values[name] = value
        return value

    def apply_instruction(self, instruction: str) -> Optional[tuple[str, FlagValue]]:
        """Apply one flag-write instruction, returning the written name and value."""
        write = parse_set_instruction(instruction)
        if write is None:
            logger.debug("Skipping malformed flag instruction %r", instruction)
            return None
        return write.name, self.apply_operation(write.name, write.operator, write.value)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)


@dataclass(frozen=True)
class FlattenedState:
    flags: dict[str, FlagValue]
    source_paths: dict[str, str] = field(default_factory=dict)


def _keep_value(value: FlagValue, include_falsy_numbers: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return include_falsy_numbers or value != 0
    return value != ""


def flatten_game_state(
    game_state: Any,
    *,
    include_falsy_numbers: bool = False,
    separator: str = "_",
    max_depth: int = 5,
) -> FlattenedState:
    """Flatten nested game state into flag names joined by ``separator``.

    List items are addressed as ``key[i]``. Falsy leaves (``False``, ``""``,
    ``None`` and, unless ``include_falsy_numbers`` is set, ``0``) are dropped.
    """
    if not isinstance(game_state, Mapping):
        raise ValueError(f"Game state must be an object, got: {type(game_state).__name__}")

    flags: dict[str, FlagValue] = {}
    source_paths: dict[str, str] = {}

    def visit(value: Any, path: str, depth: int) -> None:
        if depth > max_depth:
            logger.warning("Max depth (%s) reached at path: %s", max_depth, path)
            return
        if isinstance(value, (bool, int, float, str)):
            if _keep_value(value, include_falsy_numbers):
                key = path.replace(".", separator)
                flags[key] = value
                source_paths[key] = path
            return
        if value is None:
            return
        if isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                visit(item, f"{path}[{index}]", depth + 1)
            return
        if isinstance(value, Mapping):
            for key, item in value.items():
                visit(item, f"{path}.{key}" if path else str(key), depth + 1)
            return
        logger.warning("Skipping unsupported type at path: %s (%s)", path, type(value).__name__)

    for key, value in game_state.items():
        visit(value, str(key), 0)
    return FlattenedState(flags=flags, source_paths=source_paths)


def extract_flags_from_game_state(
    game_state: Any,
    *,
    include_falsy_numbers: bool = False,
    separator: str = "_",
    max_depth: int = 5,
) -> dict[str, FlagValue]:
    """Validate game state and return only the flattened flags."""
    if game_state is None:
        raise ValueError("Game state cannot be None")
    if isinstance(game_state, (list, tuple)):
        raise ValueError(
            "Game state cannot be a list. Use an object like {'flags': {...}, 'player': {...}}"
        )
    return flatten_game_state(
        game_state,
        include_falsy_numbers=include_falsy_numbers,
        separator=separator,
        max_depth=max_depth,
    ).flags


__all__ = [
    "WriteOperator",
    "FlagWrite",
    "parse_set_instruction",
    "apply_numeric_operation",
    "FlagStore",
    "FlattenedState",
    "flatten_game_state",
    "extract_flags_from_game_state",
]
