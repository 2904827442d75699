# agentgraph/checkpoint.py
"""
Checkpoint stores - persisted state snapshots keyed by thread id.

A store exclusively owns the snapshots it persists: the executor reads the
latest one when resuming a thread and writes a new one when a run reaches END.
Saves for a thread are serialized, and an optional ``expected_sequence``
turns a save into a compare-and-swap against the latest sequence number.
"""

import asyncio
import copy
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

from pydantic import ValidationError

from .errors import CheckpointConflictError, CheckpointError
from .models import Checkpoint

logger = logging.getLogger(__name__)

THREAD_DIR_PREFIX = "t_"


class CheckpointStore(ABC):
    def __init__(self):
        # one lock per thread with a save in flight; dropped when the last one finishes
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @abstractmethod
    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        """Latest snapshot for ``thread_id``, or None when the thread is new."""

    @abstractmethod
    async def history(self, thread_id: str) -> List[Checkpoint]:
        """Every retained snapshot for ``thread_id``, oldest first."""

    @abstractmethod
    async def threads(self) -> List[str]:
        ...

    @abstractmethod
    async def _write(self, checkpoint: Checkpoint) -> None:
        ...

    async def save(
        self,
        thread_id: str,
        state: Dict[str, Any],
        expected_sequence: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Checkpoint:
        """
        Persist ``state`` as the next snapshot of ``thread_id``.

        Args:
            thread_id: Thread the snapshot belongs to
            state: Full state to persist (copied; later changes are not seen)
            expected_sequence: If given, the save only commits when the current
                latest sequence equals it (0 for a thread with no snapshot)
            metadata: Free-form information stored alongside the snapshot

        Raises:
            CheckpointConflictError: Another save committed first
            CheckpointError: The backend could not persist the snapshot
        """
        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._lock_users[thread_id] = self._lock_users.get(thread_id, 0) + 1
        try:
            async with lock:
                latest = await self.load(thread_id)
                current = latest.sequence if latest else 0
                if expected_sequence is not None and expected_sequence != current:
                    raise CheckpointConflictError(thread_id, expected_sequence, current)
                checkpoint = Checkpoint(
                    thread_id=thread_id,
                    sequence=current + 1,
                    state=copy.deepcopy(state),
                    metadata=dict(metadata or {}),
                )
                await self._write(checkpoint)
        finally:
            self._lock_users[thread_id] -= 1
            if not self._lock_users[thread_id]:
                del self._lock_users[thread_id]
                del self._locks[thread_id]
        logger.debug(f"Saved checkpoint {thread_id}#{checkpoint.sequence}")
        return checkpoint


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local store. Keeps the full history of every thread."""

    def __init__(self):
        super().__init__()
        self._history: Dict[str, List[Checkpoint]] = {}

    @staticmethod
    def _copy(checkpoint: Checkpoint) -> Checkpoint:
        return checkpoint.model_copy(update={"state": copy.deepcopy(checkpoint.state)})

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        snapshots = self._history.get(thread_id)
        if not snapshots:
            return None
        return self._copy(snapshots[-1])

    async def history(self, thread_id: str) -> List[Checkpoint]:
        return [self._copy(cp) for cp in self._history.get(thread_id, [])]

    async def threads(self) -> List[str]:
        return list(self._history)

    async def _write(self, checkpoint: Checkpoint) -> None:
        self._history.setdefault(checkpoint.thread_id, []).append(checkpoint)


class FileCheckpointStore(CheckpointStore):
    """
    JSON file store.

    Directory structure:
        {base_path}/
            t_{quoted thread id}/   # prefix keeps "", "." and ".." inside base_path
                00000001.json
                00000002.json   # highest sequence is the latest
    """

    def __init__(self, base_path):
        super().__init__()
        self.base_path = Path(base_path)

    def _thread_dir(self, thread_id: str) -> Path:
        return self.base_path / f"{THREAD_DIR_PREFIX}{quote(thread_id, safe='')}"

    @staticmethod
    def _read(path: Path) -> Checkpoint:
        try:
            return Checkpoint.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            raise CheckpointError(f"Failed to load checkpoint {path}: {e}") from e

    def _files(self, thread_id: str) -> List[Path]:
        directory = self._thread_dir(thread_id)
        if not directory.is_dir():
            return []
        return sorted(directory.glob("*.json"))

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        def _load() -> Optional[Checkpoint]:
            files = self._files(thread_id)
            return self._read(files[-1]) if files else None

        return await asyncio.to_thread(_load)

    async def history(self, thread_id: str) -> List[Checkpoint]:
        def _history() -> List[Checkpoint]:
            return [self._read(path) for path in self._files(thread_id)]

        return await asyncio.to_thread(_history)

    async def threads(self) -> List[str]:
        def _threads() -> List[str]:
            if not self.base_path.is_dir():
                return []
            return sorted(
                unquote(p.name[len(THREAD_DIR_PREFIX):])
                for p in self.base_path.iterdir()
                if p.is_dir() and p.name.startswith(THREAD_DIR_PREFIX)
            )

        return await asyncio.to_thread(_threads)

    async def _write(self, checkpoint: Checkpoint) -> None:
        try:
            payload = checkpoint.model_dump_json(indent=2)
        except (TypeError, ValueError) as e:
            raise CheckpointError(f"state for thread {checkpoint.thread_id!r} is not JSON serializable: {e}") from e

        def _write_file():
            directory = self._thread_dir(checkpoint.thread_id)
            directory.mkdir(parents=True, exist_ok=True)
            target = directory / f"{checkpoint.sequence:08d}.json"
            # temp file + rename so readers never see a half-written snapshot
            fd, tmp = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp, target)
            except OSError:
                Path(tmp).unlink(missing_ok=True)
                raise

        try:
            await asyncio.to_thread(_write_file)
        except OSError as e:
            raise CheckpointError(f"Failed to write checkpoint for {checkpoint.thread_id!r}: {e}") from e


def create_store(backend: str, checkpoint_dir: Optional[str] = None) -> CheckpointStore:
    if backend == "memory":
        return InMemoryCheckpointStore()
    if backend == "file":
        if not checkpoint_dir:
            raise ValueError("file checkpoint backend needs checkpoint_dir")
        return FileCheckpointStore(checkpoint_dir)
    raise ValueError(f"unknown checkpoint backend: {backend!r}")

