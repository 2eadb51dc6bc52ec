"""Per-thread persistence of the workflow state.

A checkpoint holds everything needed to resume a thread: messages, phase,
next, turn counter, approval fields, artifacts and sub-task records. Two
stores ship with the package: an in-process one for tests and embedding,
and a directory of JSON files (one per thread) for the CLI.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Protocol

from langchain_core.messages import messages_from_dict, messages_to_dict

from hive.artifacts import artifact_from_dict, artifact_to_dict
from hive.delegation import SubTask
from hive.utils.validator import validate_thread_id

logger = logging.getLogger(__name__)


class CheckpointStore(Protocol):
    def save(self, state: dict) -> None: ...

    def load(self, thread_id: str) -> dict | None: ...

    def delete(self, thread_id: str) -> None: ...


def dump_state(state: dict) -> str:
    """Serialize a workflow state to JSON."""
    data = dict(state)
    data["messages"] = messages_to_dict(state["messages"])
    data["artifacts"] = [artifact_to_dict(a) for a in state["artifacts"]]
    data["sub_tasks"] = [t.to_dict() for t in state["sub_tasks"]]
    return json.dumps(data, ensure_ascii=False)


def load_state(raw: str) -> dict:
    """Inverse of ``dump_state``."""
    data = json.loads(raw)
    data["messages"] = messages_from_dict(data["messages"])
    data["artifacts"] = [artifact_from_dict(a) for a in data["artifacts"]]
    data["sub_tasks"] = [SubTask.from_dict(t) for t in data["sub_tasks"]]
    return data


class MemoryCheckpointStore:
    """Keeps serialized checkpoints in a dict.

    States are stored as JSON, so a loaded state never shares objects with
    the one that was saved.
    """

    def __init__(self):
        self._threads: dict[str, str] = {}
        self._lock = threading.Lock()

    def save(self, state: dict) -> None:
        raw = dump_state(state)
        with self._lock:
            self._threads[state["thread_id"]] = raw

    def load(self, thread_id: str) -> dict | None:
        with self._lock:
            raw = self._threads.get(thread_id)
        return load_state(raw) if raw is not None else None

    def delete(self, thread_id: str) -> None:
        with self._lock:
            self._threads.pop(thread_id, None)

    def __contains__(self, thread_id: str) -> bool:
        with self._lock:
            return thread_id in self._threads


class FileCheckpointStore:
    """One ``<thread_id>.json`` file per thread under ``directory``."""

    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, thread_id: str) -> Path:
        return self.directory / f"{validate_thread_id(thread_id)}.json"

    def save(self, state: dict) -> None:
        path = self._path(state["thread_id"])
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(dump_state(state), encoding="utf-8")
        # Atomic on POSIX and Windows: readers see the old or the new file.
        os.replace(tmp, path)
        logger.debug("[HIVE] Checkpoint saved: %s", path)

    def load(self, thread_id: str) -> dict | None:
        path = self._path(thread_id)
        if not path.exists():
            return None
        return load_state(path.read_text(encoding="utf-8"))

    def delete(self, thread_id: str) -> None:
        self._path(thread_id).unlink(missing_ok=True)
