"""
Durable status stores for install runs.

A run's progress must survive a process restart between two wizard calls,
so every status change is written to a durable store before it is visible
in memory. Each store writes one whole :class:`RunRecord` per call as a
single atomic unit: a SQLite transaction, or a temp file renamed over the
previous copy.

Architecture:
    ::

        StatusStore (Protocol)
          ├── save(record)        → atomic upsert of the whole record
          ├── load(run_id)        → RunRecord | None
          ├── delete(run_id)      → remove (no-op if missing)
          └── list_ids()          → stored run ids

        Implementations:
          SqliteStatusStore   — one row per run in ``install_status``
          JsonFileStatusStore — one ``<run_id>.json`` file per run

        create_status_store(settings) picks one from ``status_backend``.

    Storage (install_status):
        ┌──────────┬──────────┬─────────────────────────────┬────────────┐
        │ run_id   │ run_mode │ statuses_json               │ updated_at │
        │ 9f1c...  │ upgrade  │ [{"name": "permissions",..}]│ 2026-...   │
        └──────────┴──────────┴─────────────────────────────┴────────────┘

Guardrails:
    - SYNC-ONLY: writes block until durable
    - Any sqlite3/OS failure is raised as PersistenceError
    - A run id outside ``[A-Za-z0-9_-]{1,128}`` is raised as RunNotFoundError
    - saved_data must be JSON-serialisable

Tags:
    persistence, status-store, sqlite, atomic-write, stepwise
"""

from __future__ import annotations

import json
import os
import re
import sqlite3
import tempfile
import threading
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from stepwise.core.errors import PersistenceError, RunNotFoundError
from stepwise.core.logging import get_logger

logger = get_logger(__name__)

_RUN_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def _utcnow() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class RunStatus:
    """Completion state of one step within a run."""

    name: str
    is_complete: bool = False
    saved_data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "is_complete": self.is_complete, "saved_data": self.saved_data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunStatus:
        return cls(
            name=data["name"],
            is_complete=bool(data.get("is_complete", False)),
            saved_data=data.get("saved_data"),
        )


@dataclass(frozen=True)
class RunRecord:
    """Everything persisted for one run: its mode and ordered step statuses."""

    run_id: str
    run_mode: str | None = None
    statuses: tuple[RunStatus, ...] = ()
    created_at: str = field(default_factory=_utcnow)
    updated_at: str = field(default_factory=_utcnow)

    def with_statuses(self, statuses: tuple[RunStatus, ...]) -> RunRecord:
        return replace(self, statuses=statuses, updated_at=_utcnow())

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "run_mode": self.run_mode,
            "statuses": [s.to_dict() for s in self.statuses],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunRecord:
        return cls(
            run_id=data["run_id"],
            run_mode=data.get("run_mode"),
            statuses=tuple(RunStatus.from_dict(s) for s in data.get("statuses", [])),
            created_at=data.get("created_at") or _utcnow(),
            updated_at=data.get("updated_at") or _utcnow(),
        )


def validate_run_id(run_id: str) -> str:
    """Reject run ids that are unsafe as storage keys (file names, SQL keys).

    No run can be stored under such an id, so it is reported as not found.

    Raises:
        RunNotFoundError: The id is not a valid storage key
    """
    if not isinstance(run_id, str) or not _RUN_ID_PATTERN.match(run_id):
        raise RunNotFoundError(str(run_id))
    return run_id


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Status is not JSON-serialisable: {e}", cause=e) from e


@runtime_checkable
class StatusStore(Protocol):
    """Durable, run-id keyed storage for :class:`RunRecord`."""

    def save(self, record: RunRecord) -> None: ...

    def load(self, run_id: str) -> RunRecord | None: ...

    def delete(self, run_id: str) -> None: ...

    def list_ids(self) -> list[str]: ...


class SqliteStatusStore:
    """Status store backed by a SQLite database.

    Every ``save`` is a single UPSERT inside its own transaction, so a crash
    mid-write leaves the previous record intact.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            with self._conn:
                self._conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS install_status (
                        run_id TEXT PRIMARY KEY,
                        run_mode TEXT,
                        statuses_json TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open status database {self.path}: {e}", cause=e) from e

    def save(self, record: RunRecord) -> None:
        validate_run_id(record.run_id)
        statuses_json = _dumps([s.to_dict() for s in record.statuses])
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """
                    INSERT INTO install_status (run_id, run_mode, statuses_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(run_id) DO UPDATE SET
                        run_mode = excluded.run_mode,
                        statuses_json = excluded.statuses_json,
                        updated_at = excluded.updated_at
                    """,
                    (record.run_id, record.run_mode, statuses_json, record.created_at, record.updated_at),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to save run {record.run_id}: {e}", cause=e).with_context(
                run_id=record.run_id
            ) from e

    def load(self, run_id: str) -> RunRecord | None:
        validate_run_id(run_id)
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT run_id, run_mode, statuses_json, created_at, updated_at "
                    "FROM install_status WHERE run_id = ?",
                    (run_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to load run {run_id}: {e}", cause=e).with_context(
                run_id=run_id
            ) from e
        if row is None:
            return None
        return RunRecord.from_dict(
            {
                "run_id": row[0],
                "run_mode": row[1],
                "statuses": json.loads(row[2]),
                "created_at": row[3],
                "updated_at": row[4],
            }
        )

    def delete(self, run_id: str) -> None:
        validate_run_id(run_id)
        try:
            with self._lock, self._conn:
                self._conn.execute("DELETE FROM install_status WHERE run_id = ?", (run_id,))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to delete run {run_id}: {e}", cause=e).with_context(
                run_id=run_id
            ) from e

    def list_ids(self) -> list[str]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT run_id FROM install_status ORDER BY created_at"
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list runs: {e}", cause=e) from e
        return [r[0] for r in rows]

    def close(self) -> None:
        self._conn.close()

    def __repr__(self) -> str:
        return f"SqliteStatusStore({self.path!r})"


class JsonFileStatusStore:
    """Status store writing one JSON document per run.

    Writes go to a temporary file in the same directory which is then
    renamed over the target with ``os.replace``, an atomic operation on
    POSIX and Windows.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create status directory {self.directory}: {e}", cause=e) from e

    def _path(self, run_id: str) -> Path:
        return self.directory / f"{validate_run_id(run_id)}.json"

    def save(self, record: RunRecord) -> None:
        target = self._path(record.run_id)
        payload = _dumps(record.to_dict())
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Failed to save run {record.run_id}: {e}", cause=e).with_context(
                run_id=record.run_id
            ) from e

    def load(self, run_id: str) -> RunRecord | None:
        path = self._path(run_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Failed to load run {run_id}: {e}", cause=e).with_context(
                run_id=run_id
            ) from e
        try:
            return RunRecord.from_dict(json.loads(text))
        except (ValueError, KeyError) as e:
            raise PersistenceError(f"Corrupt status file for run {run_id}: {e}", cause=e).with_context(
                run_id=run_id
            ) from e

    def delete(self, run_id: str) -> None:
        try:
            self._path(run_id).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to delete run {run_id}: {e}", cause=e).with_context(
                run_id=run_id
            ) from e

    def list_ids(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json") if not p.name.startswith("."))

    def __repr__(self) -> str:
        return f"JsonFileStatusStore({str(self.directory)!r})"


def create_status_store(settings: Any) -> StatusStore:
    """Build the store selected by ``settings.status_backend``."""
    if settings.status_backend == "file":
        store: StatusStore = JsonFileStatusStore(settings.status_path)
    else:
        store = SqliteStatusStore(settings.status_path)
    logger.debug("status_store_created", store=repr(store))
    return store
