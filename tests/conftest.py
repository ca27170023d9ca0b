"""
Shared pytest fixtures for stepwise tests.

This module provides:
- structlog reset around every test
- Settings rooted in a per-test temporary data directory
- Status stores for both backends
- Small step factories for building registries in tests

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.

    def test_something(settings, sqlite_store):
        ...
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
import structlog

from stepwise.core.settings import StepwiseSettings, get_settings
from stepwise.orchestration.registry import StepRegistry
from stepwise.orchestration.step_result import StepResult
from stepwise.orchestration.step_types import FunctionStep
from stepwise.orchestration.store import JsonFileStatusStore, SqliteStatusStore
from stepwise.orchestration.tracker import ProgressTracker


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_structlog() -> Generator[None, None, None]:
    """Undo configure_logging() calls made by create_app, the CLI or a test."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[None, None, None]:
    """Point the cached settings at a temp dir so no test touches ~/.stepwise."""
    monkeypatch.setenv("STEPWISE_DATA_DIR", str(tmp_path / "default-data"))
    monkeypatch.delenv("STEPWISE_DATABASE_URL", raising=False)
    monkeypatch.delenv("STEPWISE_TARGET_VERSION", raising=False)
    monkeypatch.delenv("STEPWISE_STATUS_BACKEND", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def settings(data_dir: Path) -> StepwiseSettings:
    return StepwiseSettings(data_dir=data_dir, status_backend="sqlite", target_version="1.0.0")


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """URL of a file-backed SQLite application database."""
    return f"sqlite:///{tmp_path / 'app.db'}"


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def sqlite_store(tmp_path: Path) -> Generator[SqliteStatusStore, None, None]:
    store = SqliteStatusStore(tmp_path / "status.db")
    yield store
    store.close()


@pytest.fixture
def file_store(tmp_path: Path) -> JsonFileStatusStore:
    return JsonFileStatusStore(tmp_path / "status")


@pytest.fixture(params=["sqlite", "file"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path):
    """Both status store backends."""
    if request.param == "sqlite":
        store = SqliteStatusStore(tmp_path / "status.db")
        yield store
        store.close()
    else:
        yield JsonFileStatusStore(tmp_path / "status")


@pytest.fixture
def tracker(sqlite_store: SqliteStatusStore) -> ProgressTracker:
    return ProgressTracker(sqlite_store)


# =============================================================================
# Step helpers
# =============================================================================


class CallLog:
    """Records which steps executed, in order."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def step(self, name: str, result: Any = None, **kwargs: Any) -> FunctionStep:
        def _fn(payload: Any, ctx: Any) -> Any:
            self.calls.append(name)
            return result

        return FunctionStep(name, _fn, **kwargs)

    def failing(self, name: str, message: str = "step exploded", **kwargs: Any) -> FunctionStep:
        def _fn(payload: Any, ctx: Any) -> StepResult:
            self.calls.append(name)
            return StepResult.fail(message)

        return FunctionStep(name, _fn, **kwargs)


@pytest.fixture
def call_log() -> CallLog:
    return CallLog()


@pytest.fixture
def abc_registry(call_log: CallLog) -> StepRegistry:
    """Three always-succeeding steps: a, b, c."""
    return StepRegistry([call_log.step("a"), call_log.step("b"), call_log.step("c")])
