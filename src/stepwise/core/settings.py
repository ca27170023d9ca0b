"""Settings for the stepwise installer.

Configuration is explicit, validated and environment-driven: every field can
be overridden with a ``STEPWISE_``-prefixed environment variable or a ``.env``
file.

Order of precedence (highest → lowest):
    1. Constructor arguments (tests, CLI overrides)
    2. Environment variables (``STEPWISE_DATA_DIR``, ...)
    3. ``.env`` file
    4. Defaults below

Examples:
    >>> from stepwise.core.settings import StepwiseSettings
    >>> settings = StepwiseSettings(status_backend="file", data_dir="/tmp/wizard")
    >>> settings.status_path.name
    'install-status'

Tags:
    settings, configuration, pydantic, environment, stepwise
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StepwiseSettings(BaseSettings):
    """Settings shared by the API, the CLI and the runner.

    Fields
    ──────
    host / port      : Bind address for the HTTP transport
    debug            : Expose exception detail in 500 responses
    log_level        : Structlog log level
    log_json         : Force JSON (True) or console (False) log output
    data_dir         : Holds the status store and the installed-version file
    status_backend   : ``sqlite`` (transactional rows) or ``file`` (JSON per run)
    database_url     : Application database configured by the ``database`` step
    target_version   : Version this installer brings the application to
    """

    model_config = SettingsConfigDict(
        env_prefix="STEPWISE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Server ───────────────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=12100, description="Bind port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # ── Observability ────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool | None = Field(default=None, description="JSON logs (None = auto)")

    # ── API ──────────────────────────────────────────────────────────────
    api_prefix: str = Field(default="/api/v1", description="URL prefix for all endpoints")
    api_title: str = Field(default="stepwise installer API", description="OpenAPI title")
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # ── Storage ──────────────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".stepwise",
        description="Persistent data directory",
    )
    status_backend: Literal["sqlite", "file"] = Field(
        default="sqlite",
        description="Durable store for install progress",
    )

    # ── Install target ───────────────────────────────────────────────────
    database_url: str | None = Field(default=None, description="Application database URL")
    target_version: str = Field(default="1.0.0", description="Version installed by this wizard")

    @field_validator("data_dir", mode="before")
    @classmethod
    def _expand_data_dir(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    @property
    def status_path(self) -> Path:
        """Location of the status store (a directory for ``file``, a db for ``sqlite``)."""
        if self.status_backend == "file":
            return self.data_dir / "install-status"
        return self.data_dir / "install-status.db"

    @property
    def version_file(self) -> Path:
        """File recording the currently installed version."""
        return self.data_dir / "installed-version"


@lru_cache(maxsize=1)
def get_settings() -> StepwiseSettings:
    """Cached settings — loaded once per process."""
    return StepwiseSettings()
