from __future__ import annotations

import pytest

from dialogue_forge.engine.conditions import (
    evaluate_condition,
    evaluate_conditions,
    format_condition,
    format_conditions,
    is_truthy,
    parse_condition,
    parse_literal,
    values_equal,
)
from dialogue_forge.engine.flags import FlagStore
from dialogue_forge.engine.graph import Condition, ConditionOperator


@pytest.mark.parametrize(
    "text, expected",
    [
        ("$met_mira", Condition("met_mira", ConditionOperator.IS_SET)),
        ("not $met_mira", Condition("met_mira", ConditionOperator.IS_NOT_SET)),
        ("!$met_mira", Condition("met_mira", ConditionOperator.IS_NOT_SET)),
        ("$gold >= 10", Condition("gold", ConditionOperator.GREATER_EQUAL, 10)),
        ("$gold lt 3", Condition("gold", ConditionOperator.LESS_THAN, 3)),
        ('$name == "Mira"', Condition("name", ConditionOperator.EQUALS, "Mira")),
        ("$mood is happy", Condition("mood", ConditionOperator.EQUALS, "happy")),
        ("$door != true", Condition("door", ConditionOperator.NOT_EQUALS, True)),
    ],
)
def test_parse_single_clause(text: str, expected: Condition) -> None:
    assert parse_condition(text) == [expected]


def test_parse_and_combined_clauses() -> None:
    conditions = parse_condition("$gold > 5 and $met_mira && not $banned")
    assert [condition.operator for condition in conditions] == [
        ConditionOperator.GREATER_THAN,
        ConditionOperator.IS_SET,
        ConditionOperator.IS_NOT_SET,
    ]


def test_separator_inside_quotes_is_kept() -> None:
    conditions = parse_condition('$title == "salt and pepper"')
    assert conditions == [Condition("title", ConditionOperator.EQUALS, "salt and pepper")]


def test_unparseable_clauses_are_dropped() -> None:
    assert parse_condition("$gold > 5 and gibberish") == [
        Condition("gold", ConditionOperator.GREATER_THAN, 5)
    ]
    assert parse_condition("") == []
    assert parse_condition(None) == []


def test_parse_literal_types() -> None:
    assert parse_literal("42") == 42
    assert parse_literal("2.5") == 2.5
    assert parse_literal("TRUE") is True
    assert parse_literal("'quoted'") == "quoted"
    assert parse_literal("plain words") == "plain words"


def test_format_then_parse_keeps_meaning() -> None:
    conditions = [
        Condition("gold", ConditionOperator.GREATER_EQUAL, 10),
        Condition("banned", ConditionOperator.IS_NOT_SET),
        Condition("name", ConditionOperator.EQUALS, 'Mira "the" Bold'),
    ]
    text = format_conditions(conditions)
    assert text == '$gold >= 10 and not $banned and $name == "Mira \\"the\\" Bold"'
    assert parse_condition(text) == conditions


def test_format_condition_without_value_reads_as_truthiness() -> None:
    assert format_condition(Condition("gold", ConditionOperator.EQUALS)) == "$gold"


def test_truthiness() -> None:
    assert not is_truthy(None)
    assert not is_truthy(False)
    assert not is_truthy(0)
    assert not is_truthy("")
    assert is_truthy("no")
    assert is_truthy(0.5)


def test_values_equal_coerces_strings_but_not_bools_to_numbers() -> None:
    assert values_equal("5", 5)
    assert values_equal("true", True)
    assert not values_equal(1, True)


def test_numeric_comparisons_treat_missing_as_zero() -> None:
    flags = FlagStore()
    assert evaluate_condition(Condition("gold", ConditionOperator.LESS_THAN, 1), flags)
    assert not evaluate_condition(Condition("gold", ConditionOperator.GREATER_THAN, 0), flags)


def test_numeric_comparison_against_text_is_false() -> None:
    flags = {"mood": "grumpy"}
    assert not evaluate_condition(Condition("mood", ConditionOperator.GREATER_THAN, 1), flags)


def test_evaluate_conditions_requires_all() -> None:
    flags = FlagStore({"gold": 12, "met_mira": True})
    conditions = parse_condition("$gold >= 10 and $met_mira")
    assert evaluate_conditions(conditions, flags)
    flags.set("gold", 3)
    assert not evaluate_conditions(conditions, flags)
    assert evaluate_conditions([], flags)
