"""Progress Tracker — per-run completion state with durable backing.

WHY
───
A wizard is driven one HTTP call per step, and the process serving those
calls may restart between any two of them. The tracker keeps the status of
active runs in memory for fast access and writes every change through to a
:class:`~stepwise.orchestration.store.StatusStore` before it becomes
visible, so a restart loses nothing.

ARCHITECTURE
────────────
::

    ProgressTracker(store)
      ├── initialize(run_id, steps, run_mode)  → all incomplete, persisted
      ├── status(run_id)                       → in-memory [RunStatus] or []
      ├── reload_from_storage(run_id)          → rebuild memory from store
      ├── mark_complete(run_id, step, data)    → idempotent, persisted
      ├── reset(run_id)                        → drop memory + store
      ├── run_mode(run_id) / saved_data(run_id)
      └── list_runs()

    Lifecycle of one run:
        initialize ──▶ mark_complete × N ──▶ reset

Invariants:
    - Memory is updated only after the durable write succeeded.
    - Marking a step that is not part of the run raises InvariantViolation.

Tags:
    stepwise, orchestration, progress, resumability, persistence

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Any

from stepwise.core.errors import InvariantViolation, RunNotFoundError
from stepwise.core.logging import get_logger
from stepwise.orchestration.step_types import StepDescriptor
from stepwise.orchestration.store import RunRecord, RunStatus, StatusStore, validate_run_id

logger = get_logger(__name__)


class ProgressTracker:
    """Tracks which steps of each run are complete."""

    def __init__(self, store: StatusStore) -> None:
        self.store = store
        self._runs: dict[str, RunRecord] = {}
        self._lock = threading.RLock()

    def initialize(
        self,
        run_id: str,
        ordered_steps: Sequence[StepDescriptor | str],
        run_mode: str | None = None,
    ) -> list[RunStatus]:
        """
        Create a fresh status set for ``run_id`` with every step incomplete.

        Any earlier state for the same run id is replaced.

        Raises:
            RunNotFoundError: ``run_id`` is not a valid run id
            InvariantViolation: Step names are empty or not unique
            PersistenceError: The store could not be written
        """
        validate_run_id(run_id)
        names = [s.name if isinstance(s, StepDescriptor) else s for s in ordered_steps]
        if not names:
            raise InvariantViolation("Cannot initialize a run with no steps").with_context(run_id=run_id)
        if len(set(names)) != len(names):
            raise InvariantViolation(f"Duplicate step names in run: {names}").with_context(run_id=run_id)

        record = RunRecord(
            run_id=run_id,
            run_mode=run_mode,
            statuses=tuple(RunStatus(name=n) for n in names),
        )
        with self._lock:
            self.store.save(record)
            self._runs[run_id] = record

        logger.info("install.run_initialized", run_id=run_id, run_mode=run_mode, steps=names)
        return list(record.statuses)

    def status(self, run_id: str) -> list[RunStatus]:
        """In-memory status of ``run_id``; ``[]`` when the run is not loaded."""
        with self._lock:
            record = self._runs.get(run_id)
        return list(record.statuses) if record else []

    def reload_from_storage(self, run_id: str) -> list[RunStatus]:
        """Rebuild in-memory state for ``run_id`` from the durable copy."""
        record = self.store.load(run_id)
        if record is None:
            logger.debug("install.reload_missing", run_id=run_id)
            return []
        with self._lock:
            self._runs[run_id] = record
        logger.info(
            "install.run_reloaded",
            run_id=run_id,
            completed=[s.name for s in record.statuses if s.is_complete],
        )
        return list(record.statuses)

    def mark_complete(self, run_id: str, step_name: str, saved_data: Any = None) -> None:
        """
        Mark one step done and persist its saved data.

        Idempotent: a step that is already complete keeps the saved data of
        its first completion and nothing is written.

        Raises:
            RunNotFoundError: Nothing is stored for ``run_id``
            InvariantViolation: ``step_name`` is not part of the run
            PersistenceError: The store could not be written
        """
        with self._lock:
            record = self._record(run_id)
            names = [s.name for s in record.statuses]
            if step_name not in names:
                raise InvariantViolation(
                    f"Step '{step_name}' is not part of run {run_id} (steps: {names})"
                ).with_context(run_id=run_id, step=step_name)

            index = names.index(step_name)
            if record.statuses[index].is_complete:
                logger.debug("install.step_already_complete", run_id=run_id, step=step_name)
                return

            statuses = list(record.statuses)
            statuses[index] = RunStatus(name=step_name, is_complete=True, saved_data=saved_data)
            updated = record.with_statuses(tuple(statuses))
            self.store.save(updated)
            self._runs[run_id] = updated

        logger.info("install.step_marked_complete", run_id=run_id, step=step_name)

    def reset(self, run_id: str) -> None:
        """Clear all status for ``run_id``, in memory and in the store."""
        with self._lock:
            self.store.delete(run_id)
            self._runs.pop(run_id, None)
        logger.info("install.run_reset", run_id=run_id)

    def run_mode(self, run_id: str) -> str | None:
        """Install type the run was initialized with."""
        with self._lock:
            return self._record(run_id).run_mode

    def saved_data(self, run_id: str) -> dict[str, Any]:
        """Saved data of every completed step, keyed by step name."""
        return {s.name: s.saved_data for s in self.status(run_id) if s.is_complete}

    def list_runs(self) -> list[str]:
        return self.store.list_ids()

    def _record(self, run_id: str) -> RunRecord:
        record = self._runs.get(run_id)
        if record is None:
            self.reload_from_storage(run_id)
            record = self._runs.get(run_id)
        if record is None:
            raise RunNotFoundError(run_id)
        return record
