"""
Stepwise Orchestration — sequential step-runner with resumable progress.

ARCHITECTURE
────────────
::

    StepRegistry     ─ ordered InstallSteps, filtered by run mode
    ProgressTracker  ─ per-run completion state, written through to a store
    StepRunner       ─ executes the first incomplete step per advance() call

    StatusStore      ─ SqliteStatusStore | JsonFileStatusStore
    StepResult       ─ ok / fail envelope returned by steps
    RunOutcome       ─ StepCompleted | AllComplete | StepFailed

MODULE MAP (recommended reading order)
──────────────────────────────────────
1. step_result.py  ─ StepResult
2. step_types.py   ─ StepDescriptor, StepContext, InstallStep, FunctionStep
3. registry.py     ─ StepRegistry
4. store.py        ─ RunStatus, RunRecord, status stores
5. tracker.py      ─ ProgressTracker
6. runner.py       ─ StepRunner and outcomes

Example::

    from stepwise.orchestration import (
        FunctionStep, ProgressTracker, SqliteStatusStore, StepRegistry, StepRunner,
    )

    registry = StepRegistry([FunctionStep("hello", lambda payload, ctx: None)])
    tracker = ProgressTracker(SqliteStatusStore())
    tracker.initialize("run1", registry.steps_for(None))
    StepRunner(registry, tracker).advance("run1", None)
"""

from stepwise.orchestration.registry import StepRegistry
from stepwise.orchestration.runner import (
    AllComplete,
    RunOutcome,
    StepCompleted,
    StepFailed,
    StepRunner,
    recognize_failure,
)
from stepwise.orchestration.step_result import StepResult
from stepwise.orchestration.step_types import (
    FunctionStep,
    InstallStep,
    StepContext,
    StepDescriptor,
)
from stepwise.orchestration.store import (
    JsonFileStatusStore,
    RunRecord,
    RunStatus,
    SqliteStatusStore,
    StatusStore,
    create_status_store,
)
from stepwise.orchestration.tracker import ProgressTracker

__all__ = [
    "StepRegistry",
    "AllComplete",
    "RunOutcome",
    "StepCompleted",
    "StepFailed",
    "StepRunner",
    "recognize_failure",
    "StepResult",
    "FunctionStep",
    "InstallStep",
    "StepContext",
    "StepDescriptor",
    "JsonFileStatusStore",
    "RunRecord",
    "RunStatus",
    "SqliteStatusStore",
    "StatusStore",
    "create_status_store",
    "ProgressTracker",
]
