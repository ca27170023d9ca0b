"""Install type detection and the installed-state file.

The wizard runs a different set of steps for a fresh install and for an
upgrade. Which one applies is decided from the installed-state file in the
data directory, written by the last step of every successful run.

    missing file                    → NEW_INSTALL
    version < target_version        → UPGRADE
    version == target_version       → None (nothing to do)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from stepwise.core.errors import ConfigurationError, PersistenceError


class InstallType(str, Enum):
    """Run modes understood by the default step registry."""

    NEW_INSTALL = "new_install"
    UPGRADE = "upgrade"


@dataclass(frozen=True)
class InstallState:
    """Contents of the installed-state file."""

    version: str
    database_url: str | None = None


def parse_version(version: str) -> tuple[int, ...]:
    """``"1.10.2"`` → ``(1, 10, 2)``.

    Raises:
        ConfigurationError: The string is not a dotted numeric version
    """
    try:
        return tuple(int(part) for part in version.strip().split("."))
    except (AttributeError, ValueError) as e:
        raise ConfigurationError(f"Invalid version string: {version!r}", cause=e) from e


def read_install_state(path: Path) -> InstallState | None:
    """
    Contents of the installed-state file, or None when it does not exist.

    Raises:
        PersistenceError: The file is unreadable or lacks a version
    """
    if not path.exists():
        return None
    try:
        data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        return InstallState(version=str(data["version"]), database_url=data.get("databaseUrl"))
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise PersistenceError(f"Unreadable install state file {path}: {e}", cause=e) from e


def write_install_state(path: Path, state: InstallState) -> None:
    """Write the state file via a fsynced temp file and an atomic rename."""
    payload = json.dumps({"version": state.version, "databaseUrl": state.database_url}, indent=2)
    tmp = path.with_suffix(".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except OSError as e:
        raise PersistenceError(f"Failed to write install state {path}: {e}", cause=e) from e


def detect_install_type(settings: Any) -> InstallType | None:
    """Install type required to bring the application to ``settings.target_version``.

    Raises:
        ConfigurationError: The installed version is newer than the target
    """
    state = read_install_state(settings.version_file)
    if state is None:
        return InstallType.NEW_INSTALL

    installed = parse_version(state.version)
    target = parse_version(settings.target_version)
    if installed < target:
        return InstallType.UPGRADE
    if installed == target:
        return None
    raise ConfigurationError(
        f"Installed version {state.version} is newer than target {settings.target_version}"
    )
