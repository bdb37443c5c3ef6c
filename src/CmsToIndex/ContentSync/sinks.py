"""Destinations for emitted jobs.

A sink accepts :class:`~CmsToIndex.ContentSync.jobs.JobItem` objects one at a
time and reports whether it took them. Sinks may be called from traversal
worker threads and therefore serialise their own writes.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, List, Protocol, Union, runtime_checkable

from CmsToIndex.ContentSync.state import SqliteIndexStateStore

if TYPE_CHECKING:  # pragma: no cover
    from CmsToIndex.ContentSync.jobs import JobItem

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class JobSink(Protocol):
    """Queue-like consumer of index jobs."""

    def add(self, job: "JobItem") -> bool:
        """Accept ``job``; ``False`` when it was rejected."""
        ...

    def close(self) -> None:
        ...


class InMemoryJobSink:
    """Collects jobs in a list."""

    def __init__(self) -> None:
        self.jobs: List["JobItem"] = []
        self._lock = threading.Lock()

    def add(self, job: "JobItem") -> bool:
        with self._lock:
            self.jobs.append(job)
        return True

    def close(self) -> None:
        pass

    @property
    def count(self) -> int:
        return len(self.jobs)

    def __len__(self) -> int:
        return len(self.jobs)


class JsonlJobSink:
    """Thread-safe sink that appends one JSON object per job to a file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._path.open("a", encoding="utf-8")
        self._lock = threading.Lock()
        self.count = 0

    def add(self, job: "JobItem") -> bool:
        payload = job.to_dict()
        payload["timestamp"] = datetime.now(timezone.utc).isoformat(timespec="seconds")
        line = json.dumps(payload, sort_keys=True) + "\n"
        with self._lock:
            if self._file.closed:
                LOGGER.warning("Job sink %s is closed; dropping %s", self._path, job.object_id)
                return False
            self._file.write(line)
            self._file.flush()
            self.count += 1
        return True

    def close(self) -> None:
        with self._lock:
            if not self._file.closed:
                self._file.close()

    def __enter__(self) -> "JsonlJobSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RecordingJobSink:
    """Forward jobs to ``inner`` and record the accepted ones in the state store."""

    def __init__(self, inner: JobSink, store: SqliteIndexStateStore) -> None:
        self.inner = inner
        self.store = store

    def add(self, job: "JobItem") -> bool:
        if not self.inner.add(job):
            return False
        self.store.record(job)
        return True

    @property
    def count(self) -> int:
        return getattr(self.inner, "count", 0)

    def close(self) -> None:
        self.inner.close()


__all__ = ["InMemoryJobSink", "JobSink", "JsonlJobSink", "RecordingJobSink"]
