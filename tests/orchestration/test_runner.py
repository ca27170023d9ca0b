"""Tests for StepRunner.

Covers:
- Steps execute in registry order, each exactly once
- Resumption after a process restart (fresh tracker, same store)
- Steps that report no work needed are skipped and marked complete
- Missing / invalid instructions
- Failures leave the step incomplete and retryable
- Chained and unrecognised exceptions
- Mismatch between recorded steps and the registry
"""

from __future__ import annotations

from typing import Any

import pytest
from pydantic import BaseModel

from stepwise.core.errors import (
    InvalidInstructionError,
    InvariantViolation,
    MissingInstructionError,
    PersistenceError,
    RunNotFoundError,
    StepFailure,
)
from stepwise.orchestration.registry import StepRegistry
from stepwise.orchestration.runner import (
    AllComplete,
    StepCompleted,
    StepFailed,
    StepRunner,
    recognize_failure,
)
from stepwise.orchestration.step_result import StepResult
from stepwise.orchestration.step_types import FunctionStep, StepContext
from stepwise.orchestration.store import SqliteStatusStore
from stepwise.orchestration.tracker import ProgressTracker


def _start(registry: StepRegistry, tracker: ProgressTracker, run_id: str = "r1", run_mode: str | None = None):
    tracker.initialize(run_id, registry.steps_for(run_mode), run_mode=run_mode)
    return StepRunner(registry, tracker)


class TestOrderedExecution:
    def test_each_step_once_in_order(self, abc_registry, tracker, call_log):
        runner = _start(abc_registry, tracker)

        outcomes = [runner.advance("r1", None) for _ in range(4)]

        assert outcomes[:3] == [StepCompleted("a"), StepCompleted("b"), StepCompleted("c")]
        assert isinstance(outcomes[3], AllComplete)
        assert call_log.calls == ["a", "b", "c"]

    def test_terminal_state_clears_status(self, abc_registry, tracker, sqlite_store):
        runner = _start(abc_registry, tracker)
        for _ in range(4):
            runner.advance("r1", None)
        assert tracker.status("r1") == []
        assert sqlite_store.load("r1") is None

    def test_advance_after_completion_raises_not_found(self, abc_registry, tracker):
        runner = _start(abc_registry, tracker)
        for _ in range(4):
            runner.advance("r1", None)
        with pytest.raises(RunNotFoundError):
            runner.advance("r1", None)

    def test_unknown_run(self, abc_registry, tracker):
        with pytest.raises(RunNotFoundError):
            StepRunner(abc_registry, tracker).advance("never-started", None)

    def test_only_steps_for_mode_run(self, tracker, call_log):
        registry = StepRegistry(
            [
                call_log.step("both"),
                call_log.step("fresh", install_types={"new_install"}),
                call_log.step("up", install_types={"upgrade"}),
            ]
        )
        runner = _start(registry, tracker, run_mode="upgrade")
        while not isinstance(runner.advance("r1", "upgrade"), AllComplete):
            pass
        assert call_log.calls == ["both", "up"]

    def test_saved_data_reaches_later_steps(self, tracker):
        seen: list[Any] = []

        registry = StepRegistry(
            [
                FunctionStep("database", lambda p, c: {"databaseUrl": "sqlite://"}),
                FunctionStep("install", lambda p, c: seen.append(c.get_saved("database", "databaseUrl"))),
            ]
        )
        runner = _start(registry, tracker)
        runner.advance("r1", None)
        runner.advance("r1", None)
        assert seen == ["sqlite://"]

    def test_custom_view_on_success(self, tracker):
        registry = StepRegistry(
            [FunctionStep("welcome", lambda p, c: StepResult.ok(view="next-screen", model={"n": 1}))]
        )
        outcome = _start(registry, tracker).advance("r1", None)
        assert outcome == StepCompleted("welcome", view="next-screen", model={"n": 1})
        assert outcome.to_dict() == {
            "complete": False,
            "stepCompleted": "welcome",
            "view": "next-screen",
            "model": {"n": 1},
        }


class TestResumption:
    def test_resume_after_restart(self, abc_registry, sqlite_store, call_log):
        first = _start(abc_registry, ProgressTracker(sqlite_store))
        assert first.advance("r1", None) == StepCompleted("a")

        # New tracker over the same store stands in for a restarted process.
        restarted = StepRunner(abc_registry, ProgressTracker(sqlite_store))
        assert restarted.advance("r1", None) == StepCompleted("b")
        assert call_log.calls == ["a", "b"]

    def test_resume_with_reopened_sqlite_file(self, abc_registry, tmp_path, call_log):
        path = tmp_path / "status.db"
        store = SqliteStatusStore(path)
        _start(abc_registry, ProgressTracker(store)).advance("r1", None)
        store.close()

        reopened = SqliteStatusStore(path)
        runner = StepRunner(abc_registry, ProgressTracker(reopened))
        assert runner.advance("r1", None) == StepCompleted("b")
        assert runner.advance("r1", None) == StepCompleted("c")
        assert isinstance(runner.advance("r1", None), AllComplete)
        reopened.close()

    def test_registry_mismatch_raises(self, abc_registry, sqlite_store):
        _start(abc_registry, ProgressTracker(sqlite_store))
        changed = StepRegistry([FunctionStep("a", lambda p, c: None), FunctionStep("z", lambda p, c: None)])
        with pytest.raises(InvariantViolation):
            StepRunner(changed, ProgressTracker(sqlite_store)).advance("r1", None)


class TestSkipping:
    def test_not_required_step_is_marked_complete(self, tracker, call_log):
        registry = StepRegistry(
            [
                call_log.step("a"),
                call_log.step("b", should_execute=lambda p, c: False),
                call_log.step("c"),
            ]
        )
        runner = _start(registry, tracker)

        assert runner.advance("r1", None) == StepCompleted("a")
        # b is skipped within the same call, c executes
        assert runner.advance("r1", None) == StepCompleted("c")
        assert call_log.calls == ["a", "c"]
        assert tracker.status("r1")[1].is_complete
        assert tracker.status("r1")[1].saved_data is None

    def test_all_skipped_completes(self, tracker, call_log):
        registry = StepRegistry([call_log.step("a", should_execute=lambda p, c: False)])
        assert isinstance(_start(registry, tracker).advance("r1", None), AllComplete)
        assert call_log.calls == []

    def test_requires_execution_error_is_step_failure(self, tracker):
        def boom(payload, ctx):
            raise RuntimeError("probe failed")

        registry = StepRegistry([FunctionStep("a", lambda p, c: None, should_execute=boom)])
        outcome = _start(registry, tracker).advance("r1", None)
        assert outcome == StepFailed("a", "error", None, "probe failed")
        assert not tracker.status("r1")[0].is_complete


class PathPayload(BaseModel):
    path: str


class TestInstructions:
    def test_missing_instruction_raises(self, tracker, call_log):
        registry = StepRegistry([call_log.step("permissions", requires_instruction=True)])
        runner = _start(registry, tracker)

        with pytest.raises(MissingInstructionError) as exc_info:
            runner.advance("r1", None, {"other": {}})
        assert exc_info.value.step == "permissions"
        assert "No instruction defined for step: permissions" in str(exc_info.value)
        assert call_log.calls == []
        assert not tracker.status("r1")[0].is_complete

    def test_instruction_reaches_step(self, tracker):
        received: list[Any] = []
        registry = StepRegistry(
            [FunctionStep("permissions", lambda p, c: received.append(p), requires_instruction=True)]
        )
        _start(registry, tracker).advance("r1", None, {"permissions": {"path": "/data"}})
        assert received == [{"path": "/data"}]

    def test_payload_validated_against_model(self, tracker):
        received: list[Any] = []
        registry = StepRegistry(
            [
                FunctionStep(
                    "permissions",
                    lambda p, c: received.append(p.path),
                    requires_instruction=True,
                    payload_model=PathPayload,
                )
            ]
        )
        runner = _start(registry, tracker)

        with pytest.raises(InvalidInstructionError):
            runner.advance("r1", None, {"permissions": {"wrong": 1}})
        runner.advance("r1", None, {"permissions": {"path": "/data"}})
        assert received == ["/data"]

    def test_optional_instruction_is_passed_when_present(self, tracker):
        received: list[Any] = []
        registry = StepRegistry([FunctionStep("a", lambda p, c: received.append(p))])
        runner = _start(registry, tracker)
        runner.advance("r1", None, {"a": {"x": 1}})
        assert received == [None]


class TestFailures:
    def test_failed_result_keeps_step_incomplete(self, tracker, call_log):
        registry = StepRegistry([call_log.failing("a", "disk is read-only"), call_log.step("b")])
        runner = _start(registry, tracker)

        outcome = runner.advance("r1", None)

        assert outcome == StepFailed("a", "error", None, "disk is read-only")
        assert outcome.to_dict() == {"step": "a", "view": "error", "model": None, "message": "disk is read-only"}
        assert not tracker.status("r1")[0].is_complete
        assert call_log.calls == ["a"]

    def test_retry_after_failure(self, tracker):
        attempts = {"n": 0}

        def flaky(payload, ctx):
            attempts["n"] += 1
            if attempts["n"] == 1:
                return StepResult.fail("not yet", view="database", model={"try": 1})
            return {"ok": True}

        registry = StepRegistry([FunctionStep("database", flaky)])
        runner = _start(registry, tracker)

        first = runner.advance("r1", None)
        assert first == StepFailed("database", "database", {"try": 1}, "not yet")
        assert runner.advance("r1", None) == StepCompleted("database")
        assert isinstance(runner.advance("r1", None), AllComplete)

    def test_raised_step_failure_uses_its_view(self, tracker):
        def fn(payload, ctx):
            raise StepFailure("read-only", view="permissions", model={"path": "/x"})

        outcome = _start(StepRegistry([FunctionStep("permissions", fn)]), tracker).advance("r1", None)
        assert outcome == StepFailed("permissions", "permissions", {"path": "/x"}, "read-only")

    def test_chained_step_failure_is_recognised(self, tracker):
        def fn(payload, ctx):
            try:
                raise StepFailure("bad url", view="database", model={"reason": "invalid_url"})
            except StepFailure as e:
                raise RuntimeError("wrapper") from e

        outcome = _start(StepRegistry([FunctionStep("database", fn)]), tracker).advance("r1", None)
        assert outcome.view == "database"
        assert outcome.model == {"reason": "invalid_url"}
        assert outcome.message == "bad url"

    def test_unexpected_exception_uses_generic_view(self, tracker):
        def fn(payload, ctx):
            raise KeyError("missing")

        outcome = _start(StepRegistry([FunctionStep("a", fn)]), tracker).advance("r1", None)
        assert isinstance(outcome, StepFailed)
        assert outcome.view == "error"
        assert "missing" in outcome.message
        assert not tracker.status("r1")[0].is_complete

    def test_persistence_error_propagates(self, tracker):
        def fn(payload, ctx):
            raise PersistenceError("store down")

        with pytest.raises(PersistenceError):
            _start(StepRegistry([FunctionStep("a", fn)]), tracker).advance("r1", None)


class TestRecognizeFailure:
    def test_passthrough(self):
        failure = StepFailure("x", view="v")
        assert recognize_failure("a", failure) is failure

    def test_chained(self):
        failure = StepFailure("x", view="v")
        wrapper = RuntimeError("w")
        wrapper.__cause__ = failure
        assert recognize_failure("a", wrapper) is failure

    def test_unrecognized(self):
        result = recognize_failure("a", ValueError("bad"))
        assert result.view == "error"
        assert result.message == "bad"


class TestEndToEnd:
    """Permissions then Database, both needing client instructions."""

    def test_wizard_flow(self, sqlite_store):
        def permissions(payload, ctx: StepContext):
            return {"path": payload["path"]}

        def database(payload, ctx: StepContext):
            if payload["databaseUrl"] == "bad":
                return StepResult.fail("Cannot connect", view="database", model={"databaseUrl": "bad"})
            return {"databaseUrl": payload["databaseUrl"]}

        registry = StepRegistry(
            [
                FunctionStep("permissions", permissions, requires_instruction=True, view="permissions"),
                FunctionStep("database", database, requires_instruction=True, view="database"),
            ]
        )
        tracker = ProgressTracker(sqlite_store)
        runner = _start(registry, tracker, run_id="wizard")

        with pytest.raises(MissingInstructionError):
            runner.advance("wizard", None)

        assert runner.advance("wizard", None, {"permissions": {"path": "/data"}}) == StepCompleted("permissions")

        with pytest.raises(MissingInstructionError, match="database"):
            runner.advance("wizard", None, {"permissions": {"path": "/data"}})

        failed = runner.advance("wizard", None, {"database": {"databaseUrl": "bad"}})
        assert isinstance(failed, StepFailed)
        assert failed.view == "database"

        # restart between calls
        runner = StepRunner(registry, ProgressTracker(sqlite_store))
        assert runner.advance("wizard", None, {"database": {"databaseUrl": "sqlite://"}}) == StepCompleted("database")
        assert runner.advance("wizard", None).to_dict() == {"complete": True}

    def test_noop_step_then_missing_payload(self, sqlite_store, call_log):
        registry = StepRegistry(
            [
                call_log.step("database", should_execute=lambda p, c: False),
                call_log.step("permissions", requires_instruction=True),
            ]
        )
        tracker = ProgressTracker(sqlite_store)
        runner = _start(registry, tracker)

        with pytest.raises(MissingInstructionError):
            runner.advance("r1", None)
        assert [s.is_complete for s in tracker.status("r1")] == [True, False]

        assert runner.advance("r1", None, {"permissions": {"path": "/data"}}) == StepCompleted("permissions")
        assert isinstance(runner.advance("r1", None), AllComplete)
        assert sqlite_store.load("r1") is None
        assert call_log.calls == ["permissions"]
