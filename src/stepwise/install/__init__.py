"""Installer built on the orchestration layer.

Modules:
    install_type.py  InstallType, installed-state file, detect_install_type()
    migrations.py    Migration, MigrationResolver, MigrationRunner
    steps.py         Built-in steps and build_default_registry()
    wizard.py        InstallWizard facade used by the API and the CLI
"""

from stepwise.install.install_type import InstallState, InstallType, detect_install_type
from stepwise.install.migrations import (
    Migration,
    MigrationContext,
    MigrationError,
    MigrationReport,
    MigrationResolver,
    MigrationRunner,
    create_migration_engine,
    default_resolver,
)
from stepwise.install.steps import build_default_registry, probe_database
from stepwise.install.wizard import ConnectionCheck, InstallSetup, InstallWizard

__all__ = [
    "InstallState",
    "InstallType",
    "detect_install_type",
    "Migration",
    "MigrationContext",
    "MigrationError",
    "MigrationReport",
    "MigrationResolver",
    "MigrationRunner",
    "create_migration_engine",
    "default_resolver",
    "build_default_registry",
    "probe_database",
    "ConnectionCheck",
    "InstallSetup",
    "InstallWizard",
]
