"""
Repository pattern for data access.

Declares the ports the telemetry core consumes (row source, task-to-project
resolver) and ships SQLite and in-memory adapters for them.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Protocol

from .db import DEFAULT_DB_PATH, connection
from .models import TelemetryRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, task_id, agent, model, input_tokens, output_tokens, "
    "estimated_cost_usd, timestamp, run_id, session_key"
)


class RowSource(Protocol):
    """Append-only store of telemetry records."""

    def insert(self, record: TelemetryRecord) -> str:
        ...

    def query_by_task(self, task_id: str, limit: int) -> List[TelemetryRecord]:
        ...

    def query_by_run(self, run_id: str, limit: int) -> List[TelemetryRecord]:
        ...

    def query_range(self, start_ms: int, end_ms: int) -> List[TelemetryRecord]:
        ...


class ProjectResolver(Protocol):
    """Maps task ids to project labels. Ids missing from the result are unresolved."""

    def resolve_projects(self, task_ids: Iterable[str]) -> Dict[str, str]:
        ...


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the telemetry ledger and task table if they don't exist.

    The ``cost_telemetry`` table is append-only. No UPDATE or DELETE
    operations are ever performed on it.

    Args:
        db_path: Path to SQLite database file
    """
    with connection(db_path) as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS cost_telemetry (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id TEXT NOT NULL,
                agent TEXT NOT NULL,
                model TEXT NOT NULL,
                input_tokens INTEGER NOT NULL,
                output_tokens INTEGER NOT NULL,
                estimated_cost_usd REAL NOT NULL,
                timestamp INTEGER NOT NULL,
                run_id TEXT,
                session_key TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_cost_telemetry_task_ts
                ON cost_telemetry (task_id, timestamp);
            CREATE INDEX IF NOT EXISTS idx_cost_telemetry_run_ts
                ON cost_telemetry (run_id, timestamp);
            CREATE INDEX IF NOT EXISTS idx_cost_telemetry_ts
                ON cost_telemetry (timestamp);
            CREATE TABLE IF NOT EXISTS tasks (
                task_id TEXT PRIMARY KEY,
                project TEXT NOT NULL
            );
        """)


def _row_to_record(row) -> TelemetryRecord:
    return TelemetryRecord(
        id=str(row["id"]),
        task_id=row["task_id"],
        agent=row["agent"],
        model=row["model"],
        input_tokens=row["input_tokens"],
        output_tokens=row["output_tokens"],
        estimated_cost_usd=row["estimated_cost_usd"],
        timestamp=row["timestamp"],
        run_id=row["run_id"],
        session_key=row["session_key"],
    )


class SQLiteTelemetryRepository:
    """Row source backed by the ``cost_telemetry`` SQLite table.

    Opens one connection per call, so instances are safe to share between
    callers.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def insert(self, record: TelemetryRecord) -> str:
        """Append a single record and return its assigned id.

        Args:
            record: Validated record to store (its ``id`` is ignored)

        Returns:
            Identifier of the new row
        """
        with connection(self.db_path) as conn:
            cursor = conn.execute("""
                INSERT INTO cost_telemetry
                (task_id, agent, model, input_tokens, output_tokens,
                 estimated_cost_usd, timestamp, run_id, session_key)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.task_id,
                record.agent,
                record.model,
                record.input_tokens,
                record.output_tokens,
                record.estimated_cost_usd,
                record.timestamp,
                record.run_id,
                record.session_key,
            ))
            record_id = str(cursor.lastrowid)
        logger.debug("Inserted telemetry row %s for task %s", record_id, record.task_id)
        return record_id

    def query_by_task(self, task_id: str, limit: int) -> List[TelemetryRecord]:
        """Rows for a task, newest first, at most ``limit``."""
        return self._select(
            "WHERE task_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
            (task_id, limit),
        )

    def query_by_run(self, run_id: str, limit: int) -> List[TelemetryRecord]:
        """Rows for a run, newest first, at most ``limit``."""
        return self._select(
            "WHERE run_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
            (run_id, limit),
        )

    def query_range(self, start_ms: int, end_ms: int) -> List[TelemetryRecord]:
        """All rows with ``start_ms <= timestamp <= end_ms``, oldest first."""
        return self._select(
            "WHERE timestamp >= ? AND timestamp <= ? ORDER BY timestamp ASC, id ASC",
            (start_ms, end_ms),
        )

    def _select(self, clause: str, params: tuple) -> List[TelemetryRecord]:
        with connection(self.db_path) as conn:
            cursor = conn.execute(f"SELECT {_COLUMNS} FROM cost_telemetry {clause}", params)
            return [_row_to_record(row) for row in cursor.fetchall()]


class SQLiteProjectResolver:
    """Resolves task ids through the ``tasks`` table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def assign(self, task_id: str, project: str) -> None:
        """Register (or re-point) the project a task belongs to."""
        with connection(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO tasks (task_id, project) VALUES (?, ?)",
                (task_id, project),
            )

    def resolve_projects(self, task_ids: Iterable[str]) -> Dict[str, str]:
        ids = sorted(set(task_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with connection(self.db_path) as conn:
            cursor = conn.execute(
                f"SELECT task_id, project FROM tasks WHERE task_id IN ({placeholders})",
                ids,
            )
            return {row["task_id"]: row["project"] for row in cursor.fetchall()}


class InMemoryTelemetryRepository:
    """List-backed row source for tests and embedding."""

    def __init__(self, records: Optional[Iterable[TelemetryRecord]] = None):
        self._records: List[TelemetryRecord] = []
        self._next_id = 1
        for record in records or ():
            if record.id is None:
                self.insert(record)
            else:
                self._records.append(record)

    @property
    def records(self) -> List[TelemetryRecord]:
        return list(self._records)

    def insert(self, record: TelemetryRecord) -> str:
        record_id = f"ct-{self._next_id}"
        self._next_id += 1
        self._records.append(record.with_id(record_id))
        return record_id

    def query_by_task(self, task_id: str, limit: int) -> List[TelemetryRecord]:
        return self._newest_first([r for r in self._records if r.task_id == task_id])[:limit]

    def query_by_run(self, run_id: str, limit: int) -> List[TelemetryRecord]:
        return self._newest_first([r for r in self._records if r.run_id == run_id])[:limit]

    def query_range(self, start_ms: int, end_ms: int) -> List[TelemetryRecord]:
        return [r for r in self._records if start_ms <= r.timestamp <= end_ms]

    @staticmethod
    def _newest_first(records: List[TelemetryRecord]) -> List[TelemetryRecord]:
        return sorted(records, key=lambda r: r.timestamp, reverse=True)


class StaticProjectResolver:
    """Resolver over a fixed task-id to project mapping."""

    def __init__(self, projects: Optional[Mapping[str, str]] = None):
        self._projects = dict(projects or {})

    def resolve_projects(self, task_ids: Iterable[str]) -> Dict[str, str]:
        return {
            task_id: self._projects[task_id]
            for task_id in set(task_ids)
            if task_id in self._projects
        }
