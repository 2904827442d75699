# agentgraph/errors.py
from typing import Any, Dict, Optional


class GraphError(Exception):
    """Base class for every error raised by the graph executor.

    Errors raised while a run is in progress carry ``state``: the accumulated
    state at the time of failure, for diagnostics and resumption analysis.
    """

    def __init__(self, message: str, state: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.state = state


class GraphBuildError(GraphError):
    """Structural problem in a graph definition (detected at compile time)."""


class UnknownNodeError(GraphBuildError):
    def __init__(self, node: str, message: Optional[str] = None):
        super().__init__(message or f"unknown node: {node!r}")
        self.node = node


class MergeTypeError(GraphError, TypeError):
    """A reducer was handed a value it cannot merge."""

    def __init__(self, field: str, message: str, state: Optional[Dict[str, Any]] = None):
        super().__init__(f"field {field!r}: {message}", state)
        self.field = field


class RoutingError(GraphError):
    def __init__(self, node: str, label: Any, message: Optional[str] = None, state: Optional[Dict[str, Any]] = None):
        super().__init__(message or f"router for {node!r} returned unregistered label {label!r}", state)
        self.node = node
        self.label = label


class NodeExecutionError(GraphError):
    """Unhandled error raised from inside a node body. The cause is chained."""

    def __init__(self, node: str, cause: BaseException, state: Optional[Dict[str, Any]] = None):
        super().__init__(f"node {node!r} failed: {cause!r}", state)
        self.node = node
        self.cause = cause


class StepLimitError(GraphError):
    def __init__(self, max_steps: int, state: Optional[Dict[str, Any]] = None):
        super().__init__(f"max steps reached ({max_steps}); aborting", state)
        self.max_steps = max_steps


class CheckpointError(GraphError):
    """Checkpoint store unreachable, or a snapshot is corrupt."""


class CheckpointConflictError(CheckpointError):
    def __init__(self, thread_id: str, expected: int, actual: int):
        super().__init__(
            f"thread {thread_id!r}: expected latest sequence {expected}, found {actual}"
        )
        self.thread_id = thread_id
        self.expected = expected
        self.actual = actual
