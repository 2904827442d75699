# agentgraph/edges.py
import inspect
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from .errors import GraphBuildError, RoutingError, UnknownNodeError


class _End:
    """Terminal marker. A distinct type so it can never collide with a node name."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END"

    def __reduce__(self):
        return (_End, ())


END = _End()

Destination = Union[str, _End]


class StaticEdge:
    def __init__(self, source: str, destination: Destination):
        self.source = source
        self.destination = destination

    def destinations(self) -> Iterable[Destination]:
        return (self.destination,)

    async def resolve(self, state: Dict[str, Any]) -> Destination:
        return self.destination

    def __repr__(self) -> str:
        return f"StaticEdge({self.source!r} -> {self.destination!r})"


class ConditionalEdge:
    """Edge whose destination is picked at run time by ``router(state) -> label``.

    ``table`` maps allowed labels to a node name or END. Without a table the
    label itself must be a registered node name or END.
    """

    def __init__(self, source: str, router: Callable, table: Optional[Mapping[Any, Destination]] = None):
        if not callable(router):
            raise GraphBuildError(f"router for {source!r} is not callable")
        self.source = source
        self.router = router
        self.table = dict(table) if table is not None else None

    def destinations(self) -> Iterable[Destination]:
        return self.table.values() if self.table is not None else ()

    def bind(self, nodes: Iterable[str]) -> None:
        # implicit table: every registered node plus END
        if self.table is None:
            self.table = {name: name for name in nodes}
            self.table[END] = END

    async def resolve(self, state: Dict[str, Any]) -> Destination:
        try:
            label = self.router(state)
            if inspect.isawaitable(label):
                label = await label
        except Exception as e:
            raise RoutingError(self.source, None, f"router for {self.source!r} raised {e!r}") from e
        try:
            return self.table[label]
        except (KeyError, TypeError):
            raise RoutingError(self.source, label) from None

    def __repr__(self) -> str:
        name = getattr(self.router, "__name__", repr(self.router))
        return f"ConditionalEdge({self.source!r} -> {name})"


Edge = Union[StaticEdge, ConditionalEdge]


class EdgeTable:
    """Outgoing transition of every node (at most one edge per source)."""

    def __init__(self):
        self._edges: Dict[str, Edge] = {}

    def add(self, edge: Edge) -> None:
        if edge.source in self._edges:
            raise GraphBuildError(f"node {edge.source!r} already has an outgoing edge")
        self._edges[edge.source] = edge

    def get(self, source: str) -> Optional[Edge]:
        return self._edges.get(source)

    def __iter__(self):
        return iter(self._edges.values())

    def __len__(self) -> int:
        return len(self._edges)

    def copy(self) -> "EdgeTable":
        table = EdgeTable()
        for edge in self._edges.values():
            if isinstance(edge, ConditionalEdge):
                edge = ConditionalEdge(edge.source, edge.router, edge.table)
            table.add(edge)
        return table

    def validate(self, nodes: Iterable[str]) -> None:
        names = set(nodes)
        for edge in self._edges.values():
            if edge.source not in names:
                raise UnknownNodeError(edge.source, f"edge source {edge.source!r} is not a registered node")
            for dest in edge.destinations():
                if dest is not END and dest not in names:
                    raise UnknownNodeError(dest, f"edge {edge.source!r} -> {dest!r} targets an unregistered node")
            if isinstance(edge, ConditionalEdge):
                edge.bind(names)
        for name in names:
            if name not in self._edges:
                raise GraphBuildError(f"node {name!r} has no outgoing edge; route it to END explicitly")

    async def next_node(self, source: str, state: Dict[str, Any]) -> Destination:
        edge = self._edges.get(source)
        if edge is None:
            raise UnknownNodeError(source)
        return await edge.resolve(state)
