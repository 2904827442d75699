"""Tests for graph building, compile-time validation and routing."""

import copy

import pytest

from agentgraph.edges import END, ConditionalEdge, StaticEdge
from agentgraph.engine import StateGraph
from agentgraph.errors import GraphBuildError, RoutingError, UnknownNodeError


def noop(state):
    return {}


def test_end_is_a_singleton_distinct_from_strings():
    assert END is copy.deepcopy(END)
    assert END != "END"
    assert END != "__end__"
    assert repr(END) == "END"


def test_reserved_node_names_rejected():
    graph = StateGraph()
    with pytest.raises(GraphBuildError):
        graph.add_node("__end__", noop)


def test_duplicate_node_rejected():
    graph = StateGraph()
    graph.add_node("a", noop)
    with pytest.raises(GraphBuildError):
        graph.add_node("a", noop)


def test_second_outgoing_edge_rejected():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_edge("a", END)
    with pytest.raises(GraphBuildError):
        graph.add_conditional_edges("a", lambda s: "x", {"x": END})


def test_compile_requires_entry_node():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_edge("a", END)
    with pytest.raises(GraphBuildError):
        graph.compile()


def test_compile_rejects_unregistered_entry():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_edge("a", END)
    graph.set_entry_point("b")
    with pytest.raises(UnknownNodeError):
        graph.compile()


def test_compile_rejects_edge_from_unknown_node():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_edge("a", END)
    graph.add_edge("ghost", "a")
    graph.set_entry_point("a")
    with pytest.raises(UnknownNodeError) as exc_info:
        graph.compile()
    assert exc_info.value.node == "ghost"


def test_compile_rejects_edge_to_unknown_node():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_conditional_edges("a", lambda s: "x", {"x": "ghost", "done": END})
    graph.set_entry_point("a")
    with pytest.raises(UnknownNodeError) as exc_info:
        graph.compile()
    assert exc_info.value.node == "ghost"


def test_compile_rejects_dead_end():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_node("b", noop)
    graph.add_edge("a", "b")
    graph.set_entry_point("a")
    with pytest.raises(GraphBuildError):
        graph.compile()


def test_string_end_is_not_accepted_as_destination():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_edge("a", "__end__")
    graph.set_entry_point("a")
    with pytest.raises(UnknownNodeError):
        graph.compile()


@pytest.mark.asyncio
async def test_static_edge_resolves_without_state():
    edge = StaticEdge("a", "b")
    assert await edge.resolve({}) == "b"


@pytest.mark.asyncio
async def test_conditional_edge_resolves_label_through_table():
    edge = ConditionalEdge("a", lambda s: "big" if s["n"] > 1 else "small", {"big": "b", "small": END})
    assert await edge.resolve({"n": 5}) == "b"
    assert await edge.resolve({"n": 0}) is END


@pytest.mark.asyncio
async def test_async_router():
    async def route(state):
        return "next"

    edge = ConditionalEdge("a", route, {"next": "b"})
    assert await edge.resolve({}) == "b"


@pytest.mark.asyncio
async def test_unregistered_label_raises_routing_error():
    edge = ConditionalEdge("a", lambda s: "elsewhere", {"next": "b"})
    with pytest.raises(RoutingError) as exc_info:
        await edge.resolve({})
    assert exc_info.value.label == "elsewhere"
    assert exc_info.value.node == "a"
    assert "elsewhere" in str(exc_info.value)


@pytest.mark.asyncio
async def test_router_exception_is_routing_error():
    def route(state):
        raise KeyError("missing")

    edge = ConditionalEdge("a", route, {"next": "b"})
    with pytest.raises(RoutingError) as exc_info:
        await edge.resolve({})
    assert isinstance(exc_info.value.__cause__, KeyError)


@pytest.mark.asyncio
async def test_implicit_table_accepts_node_names_and_end():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_node("b", noop)
    graph.add_conditional_edges("a", lambda s: s["go"])
    graph.add_edge("b", END)
    graph.set_entry_point("a")
    compiled = graph.compile()
    assert await compiled.edges.next_node("a", {"go": "b"}) == "b"
    assert await compiled.edges.next_node("a", {"go": END}) is END
    with pytest.raises(RoutingError):
        await compiled.edges.next_node("a", {"go": "c"})


def test_list_destinations_are_their_own_labels():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_node("b", noop)
    graph.add_conditional_edges("a", lambda s: "b", ["b", END])
    graph.add_edge("b", END)
    graph.set_entry_point("a")
    compiled = graph.compile()
    assert compiled.edges.get("a").table == {"b": "b", END: END}


def test_compiled_graph_is_isolated_from_later_builder_changes():
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_edge("a", END)
    graph.set_entry_point("a")
    compiled = graph.compile()
    graph.add_node("b", noop)
    assert "b" not in compiled.nodes
