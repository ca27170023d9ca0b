"""Step Runner — advances an install run by one step per call.

WHY
───
The wizard client calls the server once per step and renders whatever the
server answers: the next screen, a step-specific error, or "done". The
runner owns that loop on the server side. Each ``advance`` call finds the
first incomplete step of the run, executes it, persists the completion and
reports an outcome value. Step failures never escape as exceptions; they
come back as :class:`StepFailed` with the run left resumable.

ARCHITECTURE
────────────
::

    StepRunner(registry, tracker, settings=None)
      └── .advance(run_id, run_mode, instructions) → RunOutcome
              │
              ├── tracker.status()  ─ or reload_from_storage() after restart
              ├── registry.steps_for(run_mode)  ─ execution order
              ├── first incomplete step:
              │     ├── needs instruction, none sent → MissingInstructionError
              │     ├── requires_execution() False   → mark complete, keep scanning
              │     └── execute(payload, context)
              │           ├── ok   → mark complete → StepCompleted
              │           └── fail → StepFailed (step stays incomplete)
              └── nothing incomplete → tracker.reset() → AllComplete

    RunOutcome = StepCompleted | AllComplete | StepFailed

Related modules:
    registry.py   — ordered steps
    tracker.py    — persisted progress
    step_types.py — the execute() contract and StepContext

Example::

    runner = StepRunner(registry, tracker)
    outcome = runner.advance(run_id, "new_install", {"permissions": {"path": "/data"}})
    if isinstance(outcome, StepCompleted):
        ...  # call advance again

Tags:
    stepwise, orchestration, runner, resumable, wizard

Doc-Types:
    api-reference
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from stepwise.core.errors import (
    InvariantViolation,
    MissingInstructionError,
    PersistenceError,
    RunNotFoundError,
    StepFailure,
    UnrecognizedStepError,
)
from stepwise.core.logging import LogContext, get_logger
from stepwise.orchestration.registry import StepRegistry
from stepwise.orchestration.step_result import StepResult
from stepwise.orchestration.step_types import InstallStep, StepContext
from stepwise.orchestration.tracker import ProgressTracker

logger = get_logger(__name__)

GENERIC_ERROR_VIEW = "error"


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class StepCompleted:
    """One step ran; the client should call ``advance`` again."""

    step_name: str
    view: str | None = None
    model: Any = None

    complete = False

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"complete": False, "stepCompleted": self.step_name}
        if self.view:
            body["view"] = self.view
            body["model"] = self.model
        return body


@dataclass(frozen=True)
class AllComplete:
    """No incomplete step remains; the run's status has been cleared."""

    complete = True

    def to_dict(self) -> dict[str, Any]:
        return {"complete": True}


@dataclass(frozen=True)
class StepFailed:
    """A step failed; it stays incomplete so the client can retry."""

    step_name: str
    view: str
    model: Any
    message: str

    complete = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step_name,
            "view": self.view,
            "model": self.model,
            "message": self.message,
        }


RunOutcome = StepCompleted | AllComplete | StepFailed


def recognize_failure(step_name: str, exc: Exception) -> StepFailure:
    """Map an exception raised by a step to the failure to report.

    A :class:`StepFailure` is used as-is, including one chained as the
    ``__cause__`` of a wrapping exception. Anything else becomes an
    :class:`UnrecognizedStepError` rendered with the generic error view.
    """
    if isinstance(exc, StepFailure):
        return exc
    if isinstance(exc.__cause__, StepFailure):
        return exc.__cause__
    return UnrecognizedStepError(step_name, exc)


# =============================================================================
# Runner
# =============================================================================


class StepRunner:
    """Drives install runs forward one step per ``advance`` call."""

    def __init__(
        self,
        registry: StepRegistry,
        tracker: ProgressTracker,
        *,
        settings: Any = None,
    ) -> None:
        self.registry = registry
        self.tracker = tracker
        self.settings = settings

    def advance(
        self,
        run_id: str,
        run_mode: str | None,
        instructions: Mapping[str, Any] | None = None,
    ) -> RunOutcome:
        """
        Execute the first incomplete step of ``run_id``.

        Args:
            run_id: Run created by ``ProgressTracker.initialize``
            run_mode: Install type; selects and orders the steps
            instructions: Client payloads keyed by step name

        Returns:
            StepCompleted, StepFailed or AllComplete

        Raises:
            RunNotFoundError: Nothing is stored for ``run_id``
            MissingInstructionError: The next step needs a payload that was not sent
            InvalidInstructionError: The payload failed the step's validation
            ConfigurationError: No steps apply to ``run_mode``
            InvariantViolation: The run's steps no longer match the registry
            PersistenceError: The status store failed
        """
        instructions = instructions or {}

        with LogContext(run_id=run_id, run_mode=run_mode):
            statuses = self.tracker.status(run_id)
            if not statuses:
                # Nothing in memory: the process restarted since the last call.
                statuses = self.tracker.reload_from_storage(run_id)
            if not statuses:
                raise RunNotFoundError(run_id)

            ordered = self.registry.steps_for(run_mode)
            expected = {d.name for d in ordered}
            recorded = {s.name for s in statuses}
            if expected != recorded:
                raise InvariantViolation(
                    f"Run {run_id} tracks steps {sorted(recorded)} but the registry "
                    f"declares {sorted(expected)} for mode '{run_mode}'"
                ).with_context(run_id=run_id, run_mode=run_mode)

            complete = {s.name for s in statuses if s.is_complete}

            for descriptor in ordered:
                if descriptor.name in complete:
                    continue

                step = self.registry.get(descriptor.name)
                raw = None
                if step.requires_instruction:
                    if descriptor.name not in instructions:
                        logger.info("install.instruction_missing", step=descriptor.name)
                        raise MissingInstructionError(descriptor.name).with_context(run_id=run_id)
                    raw = instructions[descriptor.name]

                payload = step.parse_instruction(raw)
                context = self._context(run_id, run_mode)

                try:
                    needed = step.requires_execution(payload, context)
                except (PersistenceError, InvariantViolation):
                    raise
                except Exception as e:
                    return self._failed(step, e)

                if not needed:
                    self.tracker.mark_complete(run_id, step.name, None)
                    complete.add(step.name)
                    logger.info("install.step_skipped", step=step.name, reason="not_required")
                    continue

                return self._execute(step, payload, context)

            self.tracker.reset(run_id)
            logger.info("install.run_complete")
            return AllComplete()

    def _context(self, run_id: str, run_mode: str | None) -> StepContext:
        return StepContext(
            run_id=run_id,
            run_mode=run_mode,
            saved_data=self.tracker.saved_data(run_id),
            settings=self.settings,
        )

    def _execute(self, step: InstallStep, payload: Any, context: StepContext) -> RunOutcome:
        """Execute one step and persist its completion."""
        logger.info("install.step_started", step=step.name)
        started = time.perf_counter()

        try:
            result = StepResult.from_value(step.execute(payload, context))
        except (PersistenceError, InvariantViolation):
            raise
        except Exception as e:
            return self._failed(step, e, duration_ms=(time.perf_counter() - started) * 1000)

        duration_ms = (time.perf_counter() - started) * 1000

        if not result.success:
            logger.warning(
                "install.step_failed",
                step=step.name,
                view=result.view,
                error=result.message,
                duration_ms=round(duration_ms, 2),
            )
            return StepFailed(
                step_name=step.name,
                view=result.view or GENERIC_ERROR_VIEW,
                model=result.model,
                message=result.message or "",
            )

        self.tracker.mark_complete(context.run_id, step.name, result.saved_data)
        logger.info(
            "install.step_completed",
            step=step.name,
            custom_view=result.view,
            duration_ms=round(duration_ms, 2),
        )
        return StepCompleted(step_name=step.name, view=result.view or None, model=result.model)

    def _failed(self, step: InstallStep, exc: Exception, duration_ms: float | None = None) -> StepFailed:
        failure = recognize_failure(step.name, exc)
        if isinstance(failure, UnrecognizedStepError):
            logger.exception(
                "install.step_exception",
                step=step.name,
                error=str(exc),
                duration_ms=round(duration_ms, 2) if duration_ms is not None else None,
            )
        else:
            logger.warning(
                "install.step_failed",
                step=step.name,
                view=failure.view,
                error=failure.message,
            )
        return StepFailed(
            step_name=step.name,
            view=failure.view,
            model=failure.model,
            message=failure.message,
        )
