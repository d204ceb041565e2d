"""Condition expression parsing, formatting and evaluation for Dialogue Forge.

Conditions are written in a small flag language::

    $met_elder and $gold >= 10 && not $cursed

Clauses are AND-combined; there is no OR/XOR. Every clause references one
flag (``$name``) and is either a bare truthiness check, a negated check
(``not $x`` / ``! $x``) or a comparison against a literal.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Iterable, Mapping, Optional, Protocol, Sequence, Union

from .graph.model import Condition, ConditionOperator, FlagValue

logger = logging.getLogger(__name__)

_FLAG_NAME = r"[A-Za-z_][\w\[\]]*"
_NUMERIC = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_CLAUSE_SEPARATOR = re.compile(r"\s*(?:&&|\band\b)\s*", re.IGNORECASE)
_NEGATED = re.compile(rf"^(?:not\s+|!\s*)\$({_FLAG_NAME})$", re.IGNORECASE)
_NEGATION_PREFIX = re.compile(r"^(?:not\s+|!(?!=))", re.IGNORECASE)
_BARE = re.compile(rf"^\$({_FLAG_NAME})$")
_SYMBOL_COMPARISON = re.compile(rf"^\$({_FLAG_NAME})\s*(==|!=|>=|<=|>|<)\s*(.*)$")
_WORD_COMPARISON = re.compile(
    rf"^\$({_FLAG_NAME})\s+(eq|neq|is|gte|lte|gt|lt)\b\s*(.*)$", re.IGNORECASE
)

OPERATOR_TOKENS: dict[str, ConditionOperator] = {
    "==": ConditionOperator.EQUALS,
    "eq": ConditionOperator.EQUALS,
    "is": ConditionOperator.EQUALS,
    "!=": ConditionOperator.NOT_EQUALS,
    "neq": ConditionOperator.NOT_EQUALS,
    ">=": ConditionOperator.GREATER_EQUAL,
    "gte": ConditionOperator.GREATER_EQUAL,
    "<=": ConditionOperator.LESS_EQUAL,
    "lte": ConditionOperator.LESS_EQUAL,
    ">": ConditionOperator.GREATER_THAN,
    "gt": ConditionOperator.GREATER_THAN,
    "<": ConditionOperator.LESS_THAN,
    "lt": ConditionOperator.LESS_THAN,
}

OPERATOR_SYMBOLS: dict[ConditionOperator, str] = {
    ConditionOperator.EQUALS: "==",
    ConditionOperator.NOT_EQUALS: "!=",
    ConditionOperator.GREATER_THAN: ">",
    ConditionOperator.LESS_THAN: "<",
    ConditionOperator.GREATER_EQUAL: ">=",
    ConditionOperator.LESS_EQUAL: "<=",
}

NUMERIC_OPERATORS = frozenset(
    {
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
        ConditionOperator.GREATER_EQUAL,
        ConditionOperator.LESS_EQUAL,
    }
)


class FlagReader(Protocol):
    def get(self, name: str) -> Optional[FlagValue]: ...


FlagSource = Union[FlagReader, Mapping[str, FlagValue]]


def _parse_number(text: str) -> Optional[Union[int, float]]:
    if not _NUMERIC.match(text):
        return None
    if re.match(r"^[+-]?\d+$", text):
        return int(text)
    number = float(text)
    if not math.isfinite(number):
        return None
    return number


def parse_literal(raw: str) -> FlagValue:
    """Type a right-hand-side literal: quoted string, number, boolean or raw text."""
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1].replace("\\" + text[0], text[0])
    number = _parse_number(text)
    if number is not None:
        return number
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return text


def _split_clauses(text: str) -> list[str]:
    """Split on ``and`` / ``&&`` outside of quoted literals."""
    clauses: list[str] = []
    start = 0
    index = 0
    quote: Optional[str] = None
    while index < len(text):
        char = text[index]
        if quote:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                quote = None
            index += 1
            continue
        if char in "\"'":
            quote = char
            index += 1
            continue
        match = _CLAUSE_SEPARATOR.match(text, index)
        if match:
            clauses.append(text[start:match.start()])
            start = index = match.end()
            continue
        index += 1
    clauses.append(text[start:])
    return [clause.strip() for clause in clauses if clause.strip()]


def _parse_clause(clause: str) -> Optional[Condition]:
    negated = _NEGATED.match(clause)
    if negated:
        return Condition(flag=negated.group(1), operator=ConditionOperator.IS_NOT_SET)
    if _NEGATION_PREFIX.match(clause):
        # Negation applies to bare flags only.
        return None

    comparison = _SYMBOL_COMPARISON.match(clause) or _WORD_COMPARISON.match(clause)
    if comparison:
        flag, token, rhs = comparison.groups()
        if not rhs.strip():
            return Condition(flag=flag, operator=ConditionOperator.IS_SET)
        return Condition(
            flag=flag,
            operator=OPERATOR_TOKENS[token.lower()],
            value=parse_literal(rhs),
        )

    bare = _BARE.match(clause)
    if bare:
        return Condition(flag=bare.group(1), operator=ConditionOperator.IS_SET)
    return None


def parse_condition(text: Optional[str]) -> list[Condition]:
    """Parse an AND-combined condition expression into a list of conditions."""
    if not text or not text.strip():
        return []
    conditions: list[Condition] = []
    for clause in _split_clauses(text.strip()):
        condition = _parse_clause(clause)
        if condition is None:
            logger.debug("Dropping unparseable condition clause %r", clause)
            continue
        conditions.append(condition)
    return conditions


def format_literal(value: FlagValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace('"', '\\"')
    return f'"{escaped}"'


def format_condition(condition: Condition) -> str:
    flag = f"${condition.flag}"
    if condition.operator is ConditionOperator.IS_SET:
        return flag
    if condition.operator is ConditionOperator.IS_NOT_SET:
        return f"not {flag}"
    if condition.value is None:
        # A comparison without a value reads as a truthiness check.
        return flag
    return f"{flag} {OPERATOR_SYMBOLS[condition.operator]} {format_literal(condition.value)}"


def format_conditions(conditions: Iterable[Condition]) -> str:
    return " and ".join(format_condition(condition) for condition in conditions)


def _read(source: FlagSource, name: str) -> Optional[FlagValue]:
    return source.get(name)


def is_truthy(value: Optional[FlagValue]) -> bool:
    """Flag truthiness: defined and not false, zero or empty."""
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0:
        return False
    return True


def to_number(value: Optional[FlagValue]) -> Optional[Union[int, float]]:
    if value is None:
        return None
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    return _parse_number(str(value).strip())


def _normalize(value: Optional[FlagValue]) -> Optional[FlagValue]:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        number = _parse_number(value.strip())
        if number is not None:
            return number
    return value


def values_equal(actual: Optional[FlagValue], expected: Optional[FlagValue]) -> bool:
    left = _normalize(actual)
    right = _normalize(expected)
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    return left == right


def evaluate_condition(condition: Condition, source: FlagSource) -> bool:
    current = _read(source, condition.flag)
    operator = condition.operator
    if operator is ConditionOperator.IS_SET:
        return is_truthy(current)
    if operator is ConditionOperator.IS_NOT_SET:
        return not is_truthy(current)
    if operator is ConditionOperator.EQUALS:
        return values_equal(current, condition.value)
    if operator is ConditionOperator.NOT_EQUALS:
        return not values_equal(current, condition.value)

    left = to_number(0 if current is None else current)
    right = to_number(condition.value)
    if left is None or right is None:
        return False
    if operator is ConditionOperator.GREATER_THAN:
        return left > right
    if operator is ConditionOperator.LESS_THAN:
        return left < right
    if operator is ConditionOperator.GREATER_EQUAL:
        return left >= right
    return left <= right


def evaluate_conditions(conditions: Optional[Sequence[Condition]], source: FlagSource) -> bool:
    """AND all conditions; an empty list holds."""
    return all(evaluate_condition(condition, source) for condition in conditions or ())


__all__ = [
    "FlagReader",
    "FlagSource",
    "NUMERIC_OPERATORS",
    "OPERATOR_SYMBOLS",
    "OPERATOR_TOKENS",
    "parse_literal",
    "parse_condition",
    "format_literal",
    "format_condition",
    "format_conditions",
    "is_truthy",
    "to_number",
    "values_equal",
    "evaluate_condition",
    "evaluate_conditions",
]
