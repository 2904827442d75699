# agentgraph/__init__.py
"""Minimal stateful graph executor with pluggable checkpoint stores."""

from .checkpoint import CheckpointStore, FileCheckpointStore, InMemoryCheckpointStore
from .edges import END
from .engine import CompiledGraph, StateGraph, WorkflowEngine
from .errors import (
    CheckpointConflictError,
    CheckpointError,
    GraphBuildError,
    GraphError,
    MergeTypeError,
    NodeExecutionError,
    RoutingError,
    StepLimitError,
    UnknownNodeError,
)
from .models import Checkpoint, NodeResult, RunRecord, RunStatus, StepEvent, ToolRequest
from .state import APPEND, REPLACE, StateSchema, merge

__all__ = [
    "APPEND",
    "END",
    "REPLACE",
    "Checkpoint",
    "CheckpointConflictError",
    "CheckpointError",
    "CheckpointStore",
    "CompiledGraph",
    "FileCheckpointStore",
    "GraphBuildError",
    "GraphError",
    "InMemoryCheckpointStore",
    "MergeTypeError",
    "NodeExecutionError",
    "NodeResult",
    "RoutingError",
    "RunRecord",
    "RunStatus",
    "StateGraph",
    "StateSchema",
    "StepEvent",
    "StepLimitError",
    "ToolRequest",
    "UnknownNodeError",
    "WorkflowEngine",
    "merge",
]
