"""Index state: what has been sent to the index, and for which paths.

The crawler consults an :class:`IndexingContext` for two questions:

* which index entries exist for a path that has disappeared from the
  repository (so a DELETE can be emitted per entry), and
* which indexed paths reference a changed path (so dependents are
  refreshed too).

:class:`SqliteIndexStateStore` answers both from a local SQLite database kept
current by :class:`~CmsToIndex.ContentSync.sinks.RecordingJobSink`.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Protocol, Tuple, Union, runtime_checkable

from CmsToIndex.ContentSync import constants as c

if TYPE_CHECKING:  # pragma: no cover
    from CmsToIndex.ContentSync.jobs import JobItem

LOGGER = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS index_records (
    object_id    TEXT NOT NULL,
    source       TEXT NOT NULL,
    provider     TEXT NOT NULL,
    environment  TEXT NOT NULL,
    locale       TEXT NOT NULL,
    sites        TEXT NOT NULL,
    checksum     TEXT,
    dependencies TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    PRIMARY KEY (object_id, source, provider, environment, locale)
);
CREATE INDEX IF NOT EXISTS idx_index_records_source ON index_records (source, provider);
"""


@dataclass
class IndexRecord:
    """One entry previously sent to the index."""

    object_id: str
    source: str
    environment: str
    locale: str
    sites: Tuple[str, ...] = ()
    provider: str = c.DEFAULT_PROVIDER
    checksum: str | None = None
    dependencies: Tuple[str, ...] = field(default_factory=tuple)


@runtime_checkable
class IndexingContext(Protocol):
    """Read access to previously indexed entries."""

    def find_records(self, object_id: str, source: str, provider: str) -> List[IndexRecord]:
        """Entries indexed for ``object_id`` in ``source``."""
        ...

    def find_dependents(self, paths: Iterable[str], source: str, provider: str) -> List[str]:
        """Object ids whose dependencies include any of ``paths``."""
        ...


class SqliteIndexStateStore:
    """SQLite-backed :class:`IndexingContext` that can also record jobs."""

    def __init__(self, path: Union[str, Path] = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self.conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30.0)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(_SCHEMA)
        self.conn.commit()
        LOGGER.debug("Opened index state store at %s", self.path)

    # ----------------------------------------------------------------- writes

    def record(self, job: "JobItem") -> None:
        """Apply ``job``: CREATE upserts an entry per locale/environment, DELETE removes it."""
        environment = job.environment.value
        with self._lock:
            if job.action.value == "delete":
                self.conn.execute(
                    """
                    DELETE FROM index_records
                    WHERE object_id = ? AND source = ? AND provider = ?
                      AND environment = ? AND locale = ?
                    """,
                    (job.object_id, job.source, job.provider, environment, job.locale),
                )
            else:
                self.conn.execute(
                    """
                    INSERT OR REPLACE INTO index_records
                    (object_id, source, provider, environment, locale, sites, checksum,
                     dependencies, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        job.object_id,
                        job.source,
                        job.provider,
                        environment,
                        job.locale,
                        json.dumps(list(job.sites)),
                        job.checksum,
                        json.dumps(sorted(job.dependencies)),
                        datetime.now(timezone.utc).isoformat(timespec="seconds"),
                    ),
                )
            self.conn.commit()

    def add(self, record: IndexRecord) -> None:
        """Insert ``record`` directly (seeding and tests)."""
        with self._lock:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO index_records
                (object_id, source, provider, environment, locale, sites, checksum,
                 dependencies, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.object_id,
                    record.source,
                    record.provider,
                    record.environment,
                    record.locale,
                    json.dumps(list(record.sites)),
                    record.checksum,
                    json.dumps(sorted(record.dependencies)),
                    datetime.now(timezone.utc).isoformat(timespec="seconds"),
                ),
            )
            self.conn.commit()

    # ------------------------------------------------------------------ reads

    def find_records(self, object_id: str, source: str, provider: str) -> List[IndexRecord]:
        with self._lock:
            cursor = self.conn.execute(
                """
                SELECT * FROM index_records
                WHERE object_id = ? AND source = ? AND provider = ?
                ORDER BY environment, locale
                """,
                (object_id, source, provider),
            )
            return [self._row_to_record(row) for row in cursor.fetchall()]

    def find_dependents(self, paths: Iterable[str], source: str, provider: str) -> List[str]:
        wanted = {path for path in paths if path}
        if not wanted:
            return []
        with self._lock:
            cursor = self.conn.execute(
                """
                SELECT DISTINCT object_id, dependencies FROM index_records
                WHERE source = ? AND provider = ?
                ORDER BY object_id
                """,
                (source, provider),
            )
            rows = cursor.fetchall()
        dependents: List[str] = []
        for row in rows:
            if row["object_id"] in wanted or row["object_id"] in dependents:
                continue
            if wanted.intersection(json.loads(row["dependencies"])):
                dependents.append(row["object_id"])
        return dependents

    def all_records(self) -> List[IndexRecord]:
        with self._lock:
            cursor = self.conn.execute(
                "SELECT * FROM index_records ORDER BY source, object_id, environment, locale"
            )
            return [self._row_to_record(row) for row in cursor.fetchall()]

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> IndexRecord:
        return IndexRecord(
            object_id=row["object_id"],
            source=row["source"],
            provider=row["provider"],
            environment=row["environment"],
            locale=row["locale"],
            sites=tuple(json.loads(row["sites"])),
            checksum=row["checksum"],
            dependencies=tuple(json.loads(row["dependencies"])),
        )


__all__ = ["IndexRecord", "IndexingContext", "SqliteIndexStateStore"]
