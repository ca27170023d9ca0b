"""Built-in install steps.

Default execution order::

    permissions        both modes   payload {"path"}         data dir writable
    database           new_install  payload {"databaseUrl"}  reachable database
    database_install   new_install  -                        schema to target
    database_upgrade   upgrade      -                        pending migrations
    set_version        both modes   -                        installed-state file

Later steps read what earlier ones saved through ``StepContext.saved_data``;
``database_install`` uses the URL that ``database`` verified.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import create_engine, text
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from stepwise.core.errors import StepFailure
from stepwise.core.logging import get_logger
from stepwise.core.settings import get_settings
from stepwise.install.install_type import (
    InstallState,
    InstallType,
    read_install_state,
    write_install_state,
)
from stepwise.install.migrations import (
    MigrationError,
    MigrationResolver,
    MigrationRunner,
    create_migration_engine,
    default_resolver,
)
from stepwise.orchestration.registry import StepRegistry
from stepwise.orchestration.step_result import StepResult
from stepwise.orchestration.step_types import InstallStep, StepContext

logger = get_logger(__name__)

BOTH_MODES = frozenset({InstallType.NEW_INSTALL.value, InstallType.UPGRADE.value})


def _settings(context: StepContext) -> Any:
    return context.settings if context.settings is not None else get_settings()


def probe_database(database_url: str) -> str:
    """Connect, run ``SELECT 1`` and return the dialect name.

    Raises:
        StepFailure: The URL is malformed, its driver is not installed or the
            database is unreachable
    """
    try:
        engine = create_engine(database_url)
    except ImportError as e:
        raise StepFailure(
            f"Database driver not installed: {e}",
            view="database",
            model={"databaseUrl": database_url, "reason": "driver_missing"},
            cause=e,
        ) from e
    except (ArgumentError, ValueError) as e:
        raise StepFailure(
            f"Invalid database URL: {e}",
            view="database",
            model={"databaseUrl": database_url, "reason": "invalid_url"},
            cause=e,
        ) from e
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return engine.dialect.name
    except SQLAlchemyError as e:
        raise StepFailure(
            f"Cannot connect to database: {e}",
            view="database",
            model={"databaseUrl": database_url, "reason": "unreachable"},
            cause=e,
        ) from e
    finally:
        engine.dispose()


def _database_url(context: StepContext) -> str:
    """URL verified earlier in this run, else the configured or installed one."""
    url = context.get_saved("database", "databaseUrl")
    if url:
        return url
    settings = _settings(context)
    if settings.database_url:
        return settings.database_url
    state = read_install_state(settings.version_file)
    if state is not None and state.database_url:
        return state.database_url
    raise StepFailure(
        "No database configured",
        view="database",
        model={"reason": "not_configured"},
    )


# =============================================================================
# Payload models
# =============================================================================


class PermissionsInstruction(BaseModel):
    path: str = Field(min_length=1)


class DatabaseInstruction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    database_url: str = Field(alias="databaseUrl", min_length=1)


# =============================================================================
# Steps
# =============================================================================


class PermissionsStep(InstallStep):
    name = "permissions"
    view = "permissions"
    description = "Check that the data folder exists and is writable"
    requires_instruction = True
    install_types = BOTH_MODES
    payload_model = PermissionsInstruction

    def execute(self, payload: PermissionsInstruction, context: StepContext) -> StepResult:
        path = Path(payload.path).expanduser()
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return StepResult.fail(
                f"Cannot create folder {path}: {e.strerror or e}",
                view="permissions",
                model={"path": str(path), "reason": "cannot_create"},
            )
        if not path.is_dir() or not os.access(path, os.W_OK):
            return StepResult.fail(
                f"Folder {path} is not writable",
                view="permissions",
                model={"path": str(path), "reason": "not_writable"},
            )
        return StepResult.ok(saved_data={"path": str(path)})


class DatabaseStep(InstallStep):
    name = "database"
    view = "database"
    description = "Configure and verify the database connection"
    requires_instruction = True
    install_types = frozenset({InstallType.NEW_INSTALL.value})
    payload_model = DatabaseInstruction

    def requires_execution(self, payload: Any, context: StepContext) -> bool:
        configured = _settings(context).database_url
        if not configured:
            return True
        try:
            probe_database(configured)
        except StepFailure:
            return True
        logger.info("install.database_preconfigured")
        return False

    def execute(self, payload: DatabaseInstruction, context: StepContext) -> StepResult:
        dialect = probe_database(payload.database_url)
        return StepResult.ok(saved_data={"databaseUrl": payload.database_url, "dialect": dialect})


class _MigrationStep(InstallStep):
    def __init__(self, resolver: MigrationResolver | None = None) -> None:
        self.resolver = resolver or default_resolver()

    def _runner(self, context: StepContext) -> MigrationRunner:
        return MigrationRunner(create_migration_engine(_database_url(context)), self.resolver)

    def _migrate(self, context: StepContext) -> StepResult:
        runner = self._runner(context)
        target = _settings(context).target_version
        try:
            report = runner.apply(target)
        except MigrationError as e:
            raise StepFailure(
                str(e),
                view="database",
                model={"version": e.version, "reason": "migration_failed"},
            ) from e
        finally:
            runner.engine.dispose()
        return StepResult.ok(saved_data=report.to_dict())


class DatabaseInstallStep(_MigrationStep):
    name = "database_install"
    description = "Create the database schema"
    install_types = frozenset({InstallType.NEW_INSTALL.value})

    def execute(self, payload: Any, context: StepContext) -> StepResult:
        return self._migrate(context)


class DatabaseUpgradeStep(_MigrationStep):
    name = "database_upgrade"
    description = "Apply pending schema migrations"
    install_types = frozenset({InstallType.UPGRADE.value})

    def requires_execution(self, payload: Any, context: StepContext) -> bool:
        runner = self._runner(context)
        try:
            return bool(runner.pending(_settings(context).target_version))
        finally:
            runner.engine.dispose()

    def execute(self, payload: Any, context: StepContext) -> StepResult:
        return self._migrate(context)


class SetVersionStep(InstallStep):
    name = "set_version"
    description = "Record the installed version"
    install_types = BOTH_MODES

    def execute(self, payload: Any, context: StepContext) -> StepResult:
        settings = _settings(context)
        previous = read_install_state(settings.version_file)
        database_url = context.get_saved("database", "databaseUrl") or settings.database_url
        if database_url is None and previous is not None:
            database_url = previous.database_url

        write_install_state(
            settings.version_file,
            InstallState(version=settings.target_version, database_url=database_url),
        )
        return StepResult.ok(
            saved_data={
                "version": settings.target_version,
                "previousVersion": previous.version if previous else None,
            }
        )


def build_default_registry(resolver: MigrationResolver | None = None) -> StepRegistry:
    """Registry with the built-in steps in execution order."""
    return StepRegistry(
        [
            PermissionsStep(),
            DatabaseStep(),
            DatabaseInstallStep(resolver),
            DatabaseUpgradeStep(resolver),
            SetVersionStep(),
        ]
    )
