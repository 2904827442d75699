"""Tests for per-field reducers and state merging."""

import pytest

from agentgraph.errors import MergeTypeError
from agentgraph.state import StateSchema, merge


def test_replace_is_default():
    schema = StateSchema()
    assert schema.merge({"a": 1, "b": 2}, {"a": 10}) == {"a": 10, "b": 2}


def test_fields_absent_from_update_are_untouched():
    schema = StateSchema({"messages": "append"})
    current = {"messages": ["hi"], "counter": 4, "flag": True}
    merged = schema.merge(current, {"counter": 5})
    assert merged == {"messages": ["hi"], "counter": 5, "flag": True}


def test_merge_does_not_mutate_inputs():
    schema = StateSchema({"messages": "append"})
    current = {"messages": ["a"]}
    partial = {"messages": ["b"]}
    merged = schema.merge(current, partial)
    assert merged["messages"] == ["a", "b"]
    assert current == {"messages": ["a"]}
    assert partial == {"messages": ["b"]}
    assert merged["messages"] is not current["messages"]


def test_append_length_is_sum_of_inputs():
    schema = StateSchema({"log": "append"})
    updates = [["a"], [], ["b", "c"], ("d",), ["e", "f", "g"]]
    state = {}
    for update in updates:
        state = schema.merge(state, {"log": update})
    assert len(state["log"]) == sum(len(u) for u in updates)
    assert state["log"] == ["a", "b", "c", "d", "e", "f", "g"]


def test_append_onto_non_sequence_fails():
    schema = StateSchema({"messages": "append"})
    with pytest.raises(MergeTypeError) as exc_info:
        schema.merge({"messages": "oops"}, {"messages": ["x"]})
    assert exc_info.value.field == "messages"
    assert isinstance(exc_info.value, TypeError)


def test_append_non_sequence_update_fails():
    schema = StateSchema({"messages": "append"})
    with pytest.raises(MergeTypeError):
        schema.merge({"messages": []}, {"messages": {"role": "user"}})


def test_custom_reducer():
    schema = StateSchema({"total": lambda current, update: (current or 0) + update})
    state = schema.merge({}, {"total": 2})
    state = schema.merge(state, {"total": 3})
    assert state["total"] == 5


def test_custom_reducer_type_error_is_merge_error():
    schema = StateSchema({"total": lambda current, update: current + update})
    with pytest.raises(MergeTypeError):
        schema.merge({"total": 1}, {"total": "x"})


def test_unknown_reducer_rejected():
    with pytest.raises(MergeTypeError):
        StateSchema({"messages": "prepend"})


def test_merge_helper_and_empty_partial():
    assert merge({"a": 1}, None) == {"a": 1}
    assert merge({"a": [1]}, {"a": [2]}, {"a": "append"}) == {"a": [1, 2]}


def test_custom_reducer_value_error_is_merge_error():
    schema = StateSchema({"n": lambda current, update: int(update)})
    with pytest.raises(MergeTypeError) as exc_info:
        schema.merge({}, {"n": "abc"})
    assert exc_info.value.field == "n"
    assert isinstance(exc_info.value.__cause__, ValueError)
