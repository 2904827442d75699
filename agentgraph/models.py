# agentgraph/models.py
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class NodeResult(BaseModel):
    update: Dict[str, Any] = Field(default_factory=dict)
    log: Optional[str] = None


class ToolRequest(BaseModel):
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])


class Checkpoint(BaseModel):
    """Immutable state snapshot for one thread."""

    model_config = ConfigDict(frozen=True)

    thread_id: str
    sequence: int
    state: Dict[str, Any]
    created_at: str = Field(default_factory=_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RunStatus(str, Enum):
    READY = "ready"
    RUNNING = "running"
    TERMINAL = "terminal"
    FAILED = "failed"


class StepEvent(BaseModel):
    step: int
    node: str
    update: Dict[str, Any]
    state: Dict[str, Any]
    # None when the step ended the run
    next_node: Optional[str] = None
    log: Optional[str] = None
    checkpoint_sequence: Optional[int] = None


class RunRecord(BaseModel):
    run_id: str
    graph_id: str
    thread_id: Optional[str] = None
    status: RunStatus = RunStatus.READY
    state: Dict[str, Any] = Field(default_factory=dict)
    logs: List[str] = Field(default_factory=list)
    path: List[str] = Field(default_factory=list)
    current_node: Optional[str] = None
    checkpoint_sequence: Optional[int] = None
    error: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.status in (RunStatus.TERMINAL, RunStatus.FAILED)
