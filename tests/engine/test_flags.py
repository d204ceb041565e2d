from __future__ import annotations

import pytest

from dialogue_forge.engine.flags import (
    FlagStore,
    apply_numeric_operation,
    extract_flags_from_game_state,
    flatten_game_state,
    parse_set_instruction,
)


def test_set_then_get_returns_exact_value() -> None:
    store = FlagStore()
    store.set("gold", 0)
    store.set("name", "Mira")
    assert store.get("gold") == 0
    assert store.get("name") == "Mira"
    assert store.has("gold")
    assert "name" in store
    assert len(store) == 2


def test_reset_replaces_everything() -> None:
    store = FlagStore({"old": True, "gold": 3})
    store.reset({"fresh": 1})
    assert store.snapshot() == {"fresh": 1}
    store.reset()
    assert store.snapshot() == {}


def test_snapshot_is_a_copy() -> None:
    store = FlagStore({"gold": 1})
    snapshot = store.snapshot()
    snapshot["gold"] = 99
    assert store.get("gold") == 1


@pytest.mark.parametrize(
    "instruction, name, operator, value",
    [
        ("accepted", "accepted", "=", True),
        ("$accepted", "accepted", "=", True),
        ("gold+=5", "gold", "+=", 5),
        ("gold -= 2.5", "gold", "-=", 2.5),
        ('name="Mira"', "name", "=", "Mira"),
        ("door=false", "door", "=", False),
    ],
)
def test_parse_set_instruction(instruction: str, name: str, operator: str, value: object) -> None:
    write = parse_set_instruction(instruction)
    assert write is not None
    assert (write.name, write.operator, write.value) == (name, operator, value)


def test_arithmetic_instruction_needs_a_number() -> None:
    assert parse_set_instruction("gold+=lots") is None
    assert parse_set_instruction("") is None
    assert parse_set_instruction("two words") is None


def test_numeric_operations() -> None:
    assert apply_numeric_operation(None, "+=", 5) == 5
    assert apply_numeric_operation(10, "-=", 4) == 6
    assert apply_numeric_operation(3, "*=", 2) == 6
    assert apply_numeric_operation(9, "/=", 3) == 3
    assert isinstance(apply_numeric_operation(9, "/=", 3), int)
    assert apply_numeric_operation(7, "/=", 0) == 7
    assert apply_numeric_operation("text", "+=", 1) == 1


def test_apply_instruction_reports_written_value() -> None:
    store = FlagStore({"gold": 10})
    assert store.apply_instruction("gold-=8") == ("gold", 2)
    assert store.apply_instruction("has_lantern") == ("has_lantern", True)
    assert store.apply_instruction("gold+=nothing") is None
    assert store.snapshot() == {"gold": 2, "has_lantern": True}


def test_falsy_numbers_dropped_by_default() -> None:
    state = {"player": {"gold": 0, "hp": 42, "nickname": ""}}
    assert flatten_game_state(state).flags == {"player_hp": 42}


def test_falsy_numbers_kept_when_requested() -> None:
    state = {"player": {"gold": 0, "hp": 42, "nickname": ""}}
    flags = flatten_game_state(state, include_falsy_numbers=True).flags
    assert flags == {"player_gold": 0, "player_hp": 42}


def test_flatten_lists_and_source_paths() -> None:
    flattened = flatten_game_state({"quests": [{"done": True}, {"done": False}], "flags": {"met": True}})
    assert flattened.flags == {"quests[0]_done": True, "flags_met": True}
    assert flattened.source_paths["flags_met"] == "flags.met"


def test_flatten_stops_at_max_depth() -> None:
    state = {"a": {"b": {"c": {"d": 1}}}}
    assert flatten_game_state(state, max_depth=2).flags == {}
    assert flatten_game_state(state).flags == {"a_b_c_d": 1}


@pytest.mark.parametrize("bad", [None, [1, 2]])
def test_extract_rejects_non_objects(bad: object) -> None:
    with pytest.raises(ValueError):
        extract_flags_from_game_state(bad)
