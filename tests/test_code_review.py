"""Tests for the tool helpers and the example code-review workflow."""

import pytest

from agentgraph.checkpoint import InMemoryCheckpointStore
from agentgraph.models import ToolRequest
from agentgraph.tools import TOOLS, compute_complexity, detect_smells, make_tool_node, pending_tool_calls, tools_condition
from agentgraph.workflows import code_review


def test_rule_based_tools():
    assert detect_smells("x = 1")["issues"] == 0
    assert detect_smells("# TODO\nprint(x)")["issues"] == 2
    assert compute_complexity("def f():\n    if a:\n        for b in c:\n            pass")["complexity"] == 3
    assert {"detect_smells", "compute_complexity"} <= set(TOOLS)


def test_extract_functions():
    result = code_review.extract_functions({"code": "import os\n\n" + code_review.SAMPLE_CODE})
    names = [f["name"] for f in result.update["functions"]]
    assert names == ["foo", "bar"]
    assert result.update["functions"][0]["code"].startswith("def foo(x):")


def test_tools_condition_follows_last_message():
    call = ToolRequest(name="detect_smells", args={"code": "x"}).model_dump()
    assert tools_condition({"messages": [{"role": "assistant", "tool_calls": [call]}]}) == "tools"
    assert tools_condition({"messages": [{"role": "assistant", "content": "done"}]}) == "end"
    assert tools_condition({"messages": []}) == "end"
    assert pending_tool_calls({"messages": [{"role": "tool", "tool_calls": [call]}]}) == []


@pytest.mark.asyncio
async def test_tool_node_turns_failures_into_messages():
    registry = {}

    def divide(a, b):
        return a / b

    registry["divide"] = divide
    node = make_tool_node(registry)
    calls = [
        ToolRequest(name="divide", args={"a": 6, "b": 3}, id="ok").model_dump(),
        ToolRequest(name="divide", args={"a": 1, "b": 0}, id="zero").model_dump(),
        ToolRequest(name="missing", id="unknown").model_dump(),
    ]
    result = await node({"messages": [{"role": "assistant", "tool_calls": calls}]})
    by_id = {m["tool_call_id"]: m for m in result.update["messages"]}
    assert by_id["ok"]["content"] == 2
    assert "division by zero" in by_id["zero"]["error"]
    assert "unknown tool" in by_id["unknown"]["error"]


@pytest.mark.asyncio
async def test_code_review_graph_loops_until_revision_limit():
    compiled = code_review.build_code_review_graph().compile(checkpointer=InMemoryCheckpointStore())

    events = [e async for e in compiled.stream({"code": code_review.SAMPLE_CODE, "threshold": 85}, thread_id="review")]

    assert [e.node for e in events] == [
        "extract", "review", "tools", "review", "revise",
        "extract", "review", "tools", "review", "revise",
        "extract", "review", "tools", "review",
    ]
    final = events[-1].state
    assert final["revision"] == 2
    assert final["quality_score"] == 75
    assert "TODO" not in final["code"]
    assert events[3].state["quality_score"] == 45
    assert events[-1].checkpoint_sequence == 1


@pytest.mark.asyncio
async def test_code_review_graph_stops_when_score_is_good_enough():
    compiled = code_review.build_code_review_graph().compile()
    final = await compiled.run({"code": "def ok():\n    return 1\n", "threshold": 80})
    assert final["quality_score"] == 95
    assert final["suggestions"] == []
    assert "revision" not in final


@pytest.mark.asyncio
async def test_code_review_with_async_model():
    class CannedModel:
        async def call(self, messages, functions):
            return {"role": "assistant", "content": "fine", "review": {"quality_score": 100, "suggestions": []}}

    compiled = code_review.build_code_review_graph(model=CannedModel()).compile()
    final = await compiled.run({"code": code_review.SAMPLE_CODE})
    assert final["quality_score"] == 100
    assert final["messages"][-1]["content"] == "fine"
