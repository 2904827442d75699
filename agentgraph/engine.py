# agentgraph/engine.py
import asyncio
import inspect
import logging
import uuid
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Mapping, Optional, Set, Tuple, Union

from .checkpoint import CheckpointStore
from .edges import END, ConditionalEdge, Destination, EdgeTable, StaticEdge
from .errors import (
    GraphBuildError,
    GraphError,
    NodeExecutionError,
    StepLimitError,
    UnknownNodeError,
)
from .models import NodeResult, RunRecord, RunStatus, StepEvent
from .observability import bind_context
from .state import Reducer, StateSchema

logger = logging.getLogger(__name__)


class StateGraph:
    """
    Builder for a graph of named nodes sharing one state.

    Example:
        graph = StateGraph(reducers={"messages": "append"})
        graph.add_node("agent", agent)
        graph.add_node("tools", run_tools)
        graph.set_entry_point("agent")
        graph.add_conditional_edges("agent", tools_condition, {"tools": "tools", "end": END})
        graph.add_edge("tools", "agent")
        app = graph.compile(checkpointer=InMemoryCheckpointStore())
        final = await app.run({"messages": [...]}, thread_id="t-1")
    """

    def __init__(self, reducers: Optional[Mapping[str, Reducer]] = None):
        self.schema = StateSchema(reducers)
        self.nodes: Dict[str, Callable] = {}
        self.edges = EdgeTable()
        self.entry_node: Optional[str] = None

    def add_node(self, name: str, fn: Callable) -> "StateGraph":
        if not isinstance(name, str) or not name:
            raise GraphBuildError(f"node name must be a non-empty string, got {name!r}")
        if name.startswith("__"):
            raise GraphBuildError(f"node names starting with '__' are reserved: {name!r}")
        if name in self.nodes:
            raise GraphBuildError(f"node {name!r} already registered")
        if not callable(fn):
            raise GraphBuildError(f"node {name!r} is not callable")
        self.nodes[name] = fn
        return self

    @staticmethod
    def _check_destination(dest: Any) -> None:
        if dest is not END and not isinstance(dest, str):
            raise GraphBuildError(f"edge destination must be a node name or END, got {dest!r}")

    def add_edge(self, source: str, destination: Destination) -> "StateGraph":
        self._check_destination(destination)
        self.edges.add(StaticEdge(source, destination))
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: Callable,
        destinations: Optional[Union[Mapping[Any, Destination], Iterable[Destination]]] = None,
    ) -> "StateGraph":
        """Route out of ``source`` by calling ``router(state)``.

        ``destinations`` is either a label -> destination mapping or a list of
        destinations used as their own labels. When omitted, the router must
        return a node name or END directly.
        """
        table = None
        if destinations is not None:
            if isinstance(destinations, Mapping):
                table = dict(destinations)
            else:
                table = {dest: dest for dest in destinations}
            for dest in table.values():
                self._check_destination(dest)
        self.edges.add(ConditionalEdge(source, router, table))
        return self

    def set_entry_point(self, name: str) -> "StateGraph":
        self.entry_node = name
        return self

    def set_finish_point(self, name: str) -> "StateGraph":
        return self.add_edge(name, END)

    def compile(self, checkpointer: Optional[CheckpointStore] = None, max_steps: Optional[int] = None) -> "CompiledGraph":
        if self.entry_node is None:
            raise GraphBuildError("graph has no entry node")
        if self.entry_node not in self.nodes:
            raise UnknownNodeError(self.entry_node, f"entry node {self.entry_node!r} is not registered")
        if max_steps is not None and max_steps < 1:
            raise GraphBuildError(f"max_steps must be positive, got {max_steps}")
        edges = self.edges.copy()
        edges.validate(self.nodes)
        return CompiledGraph(
            nodes=dict(self.nodes),
            edges=edges,
            schema=self.schema,
            entry_node=self.entry_node,
            checkpointer=checkpointer,
            max_steps=max_steps,
        )


class CompiledGraph:
    """Validated, immutable graph ready to run."""

    def __init__(
        self,
        nodes: Dict[str, Callable],
        edges: EdgeTable,
        schema: StateSchema,
        entry_node: str,
        checkpointer: Optional[CheckpointStore] = None,
        max_steps: Optional[int] = None,
    ):
        self.nodes = nodes
        self.edges = edges
        self.schema = schema
        self.entry_node = entry_node
        self.checkpointer = checkpointer
        self.max_steps = max_steps

    async def _call_node(self, name: str, state: Dict[str, Any]) -> Tuple[Dict[str, Any], Optional[str]]:
        """Call node function (sync or async) and normalise its result to (update, log)."""
        node_fn = self.nodes[name]
        try:
            res = node_fn(dict(state))
            if inspect.isawaitable(res):
                res = await res
        except Exception as e:
            raise NodeExecutionError(name, e) from e
        if res is None:
            return {}, None
        if isinstance(res, NodeResult):
            return res.update, res.log
        if isinstance(res, Mapping):
            bad_keys = [k for k in res if not isinstance(k, str)]
            if not bad_keys:
                return dict(res), None
            err = TypeError(f"state field names must be strings, got {bad_keys!r}")
            raise NodeExecutionError(name, err) from err
        err = TypeError(f"node returned {type(res).__name__}; expected dict or NodeResult")
        raise NodeExecutionError(name, err) from err

    async def get_state(self, thread_id: str) -> Optional[Dict[str, Any]]:
        if self.checkpointer is None:
            return None
        checkpoint = await self.checkpointer.load(thread_id)
        return checkpoint.state if checkpoint else None

    async def stream(
        self,
        input: Optional[Mapping[str, Any]] = None,
        thread_id: Optional[str] = None,
        max_steps: Optional[int] = None,
        run_id: Optional[str] = None,
    ) -> AsyncIterator[StepEvent]:
        """
        Execute the graph, yielding one StepEvent per node invocation.

        The final event (``next_node`` None) is yielded after the terminal
        checkpoint, if any, has been saved; its ``checkpoint_sequence`` is set.
        On failure the raised GraphError carries the state at failure time
        and nothing is persisted.
        """
        limit = max_steps if max_steps is not None else self.max_steps
        persist = self.checkpointer is not None and thread_id is not None
        ctx = {"run_id": run_id, "thread_id": thread_id}
        resumed_from = 0
        state: Dict[str, Any] = {}

        if persist:
            with bind_context(**ctx):
                checkpoint = await self.checkpointer.load(thread_id)
                if checkpoint is not None:
                    state = checkpoint.state
                    resumed_from = checkpoint.sequence
                    logger.debug(f"resuming thread from checkpoint #{resumed_from}")

        current = self.entry_node
        step = 0
        try:
            state = self.schema.merge(state, input)
            while True:
                if limit is not None and step >= limit:
                    raise StepLimitError(limit)
                step += 1
                with bind_context(node=current, **ctx):
                    logger.debug(f"running {current}")
                    update, log = await self._call_node(current, state)
                    state = self.schema.merge(state, update)
                    next_node = await self.edges.next_node(current, state)
                    logger.debug(f"{current} -> next: {next_node!r}")

                if next_node is not END:
                    yield StepEvent(step=step, node=current, update=update, state=state, next_node=next_node, log=log)
                    current = next_node
                    continue

                sequence = None
                with bind_context(**ctx):
                    if persist:
                        saved = await self.checkpointer.save(
                            thread_id,
                            state,
                            expected_sequence=resumed_from,
                            metadata={"run_id": run_id, "steps": step},
                        )
                        sequence = saved.sequence
                    logger.info(f"run finished after {step} step(s)")
                yield StepEvent(
                    step=step,
                    node=current,
                    update=update,
                    state=state,
                    log=log,
                    checkpoint_sequence=sequence,
                )
                return
        except GraphError as e:
            if e.state is None:
                e.state = state
            with bind_context(node=current, **ctx):
                logger.warning(f"run failed at step {step}: {e}")
            raise
        except Exception as e:
            with bind_context(node=current, **ctx):
                logger.exception(f"run failed at step {step}")
            raise GraphError(f"run failed at step {step} ({current}): {e!r}", state) from e

    async def run(
        self,
        input: Optional[Mapping[str, Any]] = None,
        thread_id: Optional[str] = None,
        max_steps: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Run to END and return the final state."""
        final: Dict[str, Any] = {}
        async for event in self.stream(input, thread_id=thread_id, max_steps=max_steps):
            final = event.state
        return final


class WorkflowEngine:
    """Keeps compiled graphs and the records of their runs (in memory)."""

    def __init__(self, checkpointer: Optional[CheckpointStore] = None, default_max_steps: Optional[int] = None):
        self.checkpointer = checkpointer
        self.default_max_steps = default_max_steps
        self.graphs: Dict[str, CompiledGraph] = {}
        self.runs: Dict[str, RunRecord] = {}
        self._tasks: Set[asyncio.Task] = set()

    def create_graph(self, graph: StateGraph, max_steps: Optional[int] = None) -> str:
        compiled = graph.compile(checkpointer=self.checkpointer, max_steps=max_steps or self.default_max_steps)
        graph_id = str(uuid.uuid4())
        self.graphs[graph_id] = compiled
        return graph_id

    async def run_graph(
        self,
        graph_id: str,
        input: Optional[Dict[str, Any]] = None,
        thread_id: Optional[str] = None,
        run_in_background: bool = False,
    ) -> str:
        if graph_id not in self.graphs:
            raise KeyError("graph not found")

        graph = self.graphs[graph_id]
        run_id = str(uuid.uuid4())
        record = RunRecord(run_id=run_id, graph_id=graph_id, thread_id=thread_id, state=dict(input or {}))
        self.runs[run_id] = record

        async def _runner():
            try:
                await self._execute(graph, record, input)
            except Exception as e:
                logger.exception(f"run {run_id} failed")
                record.status = RunStatus.FAILED
                record.error = str(e)
                if isinstance(e, GraphError) and e.state is not None:
                    record.state = dict(e.state)
                record.logs.append(f"failed: {e}")
            finally:
                record.current_node = None

        if run_in_background:
            task = asyncio.create_task(_runner())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            await _runner()

        return run_id

    async def _execute(self, graph: CompiledGraph, record: RunRecord, input: Optional[Dict[str, Any]]):
        record.status = RunStatus.RUNNING
        record.current_node = graph.entry_node
        record.logs.append(f"running {graph.entry_node}")
        async for event in graph.stream(input, thread_id=record.thread_id, run_id=record.run_id):
            record.path.append(event.node)
            if event.log:
                record.logs.append(f"{event.node}: {event.log}")
            record.state = dict(event.state)
            record.logs.append(f"{event.node} -> next: {event.next_node or 'END'}")
            if event.next_node is not None:
                record.current_node = event.next_node
                record.logs.append(f"running {event.next_node}")
            else:
                record.checkpoint_sequence = event.checkpoint_sequence
        record.status = RunStatus.TERMINAL
