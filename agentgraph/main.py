# agentgraph/main.py
from typing import Any, Dict, Optional, Union

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from . import tools
from .checkpoint import create_store
from .config import get_settings
from .edges import END
from .engine import StateGraph, WorkflowEngine
from .errors import CheckpointError, GraphBuildError, MergeTypeError
from .models import RunRecord
from .observability import configure_logging
from .workflows import code_review

# wire value standing in for END in JSON graph definitions
END_LABEL = "__end__"

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)

app = FastAPI(title=settings.app_name)

engine = WorkflowEngine(
    checkpointer=create_store(settings.checkpoint_backend, settings.checkpoint_dir),
    default_max_steps=settings.default_max_steps,
)


class ConditionalEdgePayload(BaseModel):
    router: str  # name of a registered router function
    destinations: Optional[Dict[str, str]] = None  # label -> node name or "__end__"


# small helper to convert incoming JSON graph description (function names) into a StateGraph
class CreateGraphPayload(BaseModel):
    nodes: Dict[str, str]  # node_name -> registered node function name
    edges: Dict[str, str] = Field(default_factory=dict)  # source -> destination or "__end__"
    conditional_edges: Dict[str, ConditionalEdgePayload] = Field(default_factory=dict)
    entry_node: str
    reducers: Dict[str, str] = Field(default_factory=dict)  # field -> "replace" | "append"
    max_steps: Optional[int] = None


def _destination(name: str) -> Union[str, object]:
    return END if name == END_LABEL else name


def build_graph(payload: CreateGraphPayload) -> StateGraph:
    graph = StateGraph(reducers=payload.reducers)
    for name, fn_name in payload.nodes.items():
        fn = code_review.NODES.get(fn_name)
        if fn is None:
            raise GraphBuildError(f"function {fn_name} not found in registered nodes")
        graph.add_node(name, fn)
    for source, dest in payload.edges.items():
        graph.add_edge(source, _destination(dest))
    for source, cond in payload.conditional_edges.items():
        route = code_review.ROUTERS.get(cond.router)
        if route is None:
            raise GraphBuildError(f"router {cond.router} not found in registered routers")
        table = None
        if cond.destinations is not None:
            table = {label: _destination(dest) for label, dest in cond.destinations.items()}
        graph.add_conditional_edges(source, route, table)
    graph.set_entry_point(payload.entry_node)
    return graph


def _run_response(run: RunRecord) -> Dict[str, Any]:
    body = run.model_dump(mode="json")
    body["finished"] = run.finished
    return body


@app.post("/graph/create")
async def create_graph(payload: CreateGraphPayload):
    try:
        graph_id = engine.create_graph(build_graph(payload), max_steps=payload.max_steps)
    except (GraphBuildError, MergeTypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"graph_id": graph_id}


class RunPayload(BaseModel):
    graph_id: str
    input: Dict[str, Any] = Field(default_factory=dict)
    thread_id: Optional[str] = None
    run_in_background: Optional[bool] = False


@app.post("/graph/run")
async def run_graph(payload: RunPayload):
    try:
        run_id = await engine.run_graph(
            payload.graph_id,
            payload.input,
            thread_id=payload.thread_id,
            run_in_background=payload.run_in_background,
        )
    except KeyError:
        raise HTTPException(status_code=404, detail="graph not found")
    # background runs respond immediately; poll /graph/state/{run_id}
    return _run_response(engine.runs[run_id])


@app.get("/graph/state/{run_id}")
async def get_run_state(run_id: str):
    run = engine.runs.get(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="run not found")
    return _run_response(run)


@app.get("/threads/{thread_id}/checkpoint")
async def get_thread_checkpoint(thread_id: str):
    try:
        checkpoint = await engine.checkpointer.load(thread_id)
    except CheckpointError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if checkpoint is None:
        raise HTTPException(status_code=404, detail="thread has no checkpoint")
    return checkpoint.model_dump(mode="json")


@app.get("/threads/{thread_id}/history")
async def get_thread_history(thread_id: str):
    try:
        history = await engine.checkpointer.history(thread_id)
    except CheckpointError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"thread_id": thread_id, "checkpoints": [cp.model_dump(mode="json") for cp in history]}


@app.get("/tools")
async def list_tools():
    return {"tools": list(tools.TOOLS.keys())}


# create + run the example code-review graph in one call
@app.post("/example/run-code-review")
async def example_run_code_review(payload: Optional[Dict[str, Any]] = None):
    graph_id = engine.create_graph(code_review.build_code_review_graph(), max_steps=50)
    initial_state = payload or {"code": code_review.SAMPLE_CODE, "threshold": 85}
    run_id = await engine.run_graph(graph_id, initial_state)
    return {"graph_id": graph_id, **_run_response(engine.runs[run_id])}


def main():
    uvicorn.run("agentgraph.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
