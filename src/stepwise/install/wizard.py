"""Install wizard — the operations the API and the CLI expose.

The wizard wires the default registry, a tracker over the configured status
store and a runner, and adds what the transports need on top of
``advance``: starting a run for the detected install type, reading a run's
status and probing a database before the user commits to it.

Example::

    wizard = InstallWizard(StepwiseSettings(data_dir="/tmp/app"))
    setup = wizard.setup()
    outcome = wizard.perform(setup.run_id, {"permissions": {"path": "/tmp/app/media"}})
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from stepwise.core.errors import ConfigurationError, RunNotFoundError, StepFailure
from stepwise.core.logging import get_logger
from stepwise.core.settings import StepwiseSettings
from stepwise.install.install_type import detect_install_type, read_install_state
from stepwise.install.steps import build_default_registry, probe_database
from stepwise.orchestration.registry import StepRegistry
from stepwise.orchestration.runner import RunOutcome, StepRunner
from stepwise.orchestration.step_types import StepDescriptor
from stepwise.orchestration.store import RunStatus, StatusStore, create_status_store
from stepwise.orchestration.tracker import ProgressTracker

logger = get_logger(__name__)


@dataclass(frozen=True)
class InstallSetup:
    """A freshly initialized run and the steps the client will walk through."""

    run_id: str
    install_type: str
    steps: list[StepDescriptor]


@dataclass(frozen=True)
class ConnectionCheck:
    ok: bool
    message: str
    dialect: str | None = None


class InstallWizard:
    """Facade over registry, tracker and runner for one application."""

    def __init__(
        self,
        settings: StepwiseSettings,
        *,
        registry: StepRegistry | None = None,
        store: StatusStore | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or build_default_registry()
        self.tracker = ProgressTracker(store or create_status_store(settings))
        self.runner = StepRunner(self.registry, self.tracker, settings=settings)

    def setup(self) -> InstallSetup:
        """
        Start a run for the install type the data directory calls for.

        Raises:
            ConfigurationError: Already at the target version, or no steps apply
        """
        install_type = detect_install_type(self.settings)
        if install_type is None:
            state = read_install_state(self.settings.version_file)
            raise ConfigurationError(
                f"Already installed at version {state.version if state else self.settings.target_version}"
            )

        steps = self.registry.steps_for(install_type.value)
        run_id = uuid.uuid4().hex
        self.tracker.initialize(run_id, steps, run_mode=install_type.value)
        logger.info("install.setup", run_id=run_id, install_type=install_type.value)
        return InstallSetup(run_id=run_id, install_type=install_type.value, steps=steps)

    def perform(self, run_id: str, instructions: Mapping[str, Any] | None = None) -> RunOutcome:
        """Advance ``run_id`` by one step using the install type it was started with."""
        run_mode = self.tracker.run_mode(run_id)
        return self.runner.advance(run_id, run_mode, instructions)

    def status(self, run_id: str) -> list[RunStatus]:
        """
        Current status of ``run_id``, reloading from storage when needed.

        Raises:
            RunNotFoundError: Nothing is stored for ``run_id``
        """
        statuses = self.tracker.status(run_id) or self.tracker.reload_from_storage(run_id)
        if not statuses:
            raise RunNotFoundError(run_id)
        return statuses

    def reset(self, run_id: str) -> None:
        self.tracker.reset(run_id)

    def check_database_connection(self, database_url: str) -> ConnectionCheck:
        try:
            dialect = probe_database(database_url)
        except StepFailure as e:
            return ConnectionCheck(ok=False, message=e.message)
        return ConnectionCheck(ok=True, message="Connection succeeded", dialect=dialect)
