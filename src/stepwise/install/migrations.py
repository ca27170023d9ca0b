"""
Schema migrations applied by the database install and upgrade steps.

Migrations are resolved fresh on every call: the resolver holds factories,
not instances, and builds new migration objects each time
``get_migrations(context)`` is called, handing the context to each factory.
No migration instance outlives the transaction it was created for.

Architecture:
    ::

        MigrationResolver(factories)
          └── get_migrations(context)   → [Migration] (new instances, version order)

        MigrationRunner(engine, resolver)
          ├── installed_version()       → highest applied version or None
          ├── pending(target)           → versions still to apply
          └── apply(target)             → MigrationReport
                 one transaction for the whole batch; any failure rolls
                 every migration of the batch back

        stepwise_migrations
        ┌─────────┬──────────────────────────┬─────────────────────┐
        │ version │ description              │ applied_at          │
        │ 1.0.0   │ Create app_settings      │ 2026-10-19T...      │
        └─────────┴──────────────────────────┴─────────────────────┘

Examples:
    >>> runner = MigrationRunner(create_migration_engine("sqlite://"), default_resolver())
    >>> runner.apply("1.0.0").applied
    ['1.0.0']

Tags:
    migrations, schema, sqlalchemy, stepwise
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar

from sqlalchemy import Connection, Engine, create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError

from stepwise.core.errors import ConfigurationError, StepwiseError
from stepwise.core.logging import get_logger
from stepwise.install.install_type import parse_version

logger = get_logger(__name__)


def create_migration_engine(database_url: str) -> Engine:
    """Engine whose transactions also cover DDL.

    pysqlite only opens a transaction before DML, so on SQLite the driver's
    own transaction handling is switched off and ``BEGIN`` is emitted
    explicitly; otherwise a failed batch would keep its CREATE TABLEs.
    """
    engine = create_engine(database_url)
    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


class MigrationError(StepwiseError):
    """A migration failed; the batch was rolled back."""

    def __init__(self, version: str, cause: Exception):
        self.version = version
        super().__init__(f"Migration {version} failed: {cause}", cause=cause)


@dataclass
class MigrationContext:
    """What a migration needs to run, passed in at construction."""

    connection: Connection
    installed_version: str | None = None
    target_version: str | None = None
    logger: Any = field(default_factory=lambda: get_logger("stepwise.migrations"))


class Migration:
    """Base class for schema migrations."""

    version: ClassVar[str] = ""
    description: ClassVar[str] = ""

    def __init__(self, context: MigrationContext) -> None:
        self.context = context

    def execute(self, sql: str, **params: Any) -> None:
        self.context.connection.execute(text(sql), params)

    def up(self) -> None:
        raise NotImplementedError(f"{type(self).__name__} must implement up()")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(version={self.version!r})"


MigrationFactory = Callable[[MigrationContext], Migration]


class MigrationResolver:
    """Builds fresh migration instances for a given context."""

    def __init__(self, factories: Iterable[MigrationFactory]) -> None:
        self._factories = list(factories)

    def get_migrations(self, context: MigrationContext) -> list[Migration]:
        """
        Instantiate every migration with ``context``, sorted by version.

        Raises:
            ConfigurationError: Two migrations share a version
        """
        migrations = [factory(context) for factory in self._factories]
        versions = [m.version for m in migrations]
        if len(set(versions)) != len(versions):
            raise ConfigurationError(f"Duplicate migration versions: {sorted(versions)}")
        return sorted(migrations, key=lambda m: parse_version(m.version))


@dataclass
class MigrationReport:
    """Result of a migration run."""

    from_version: str | None
    to_version: str | None
    applied: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromVersion": self.from_version,
            "toVersion": self.to_version,
            "applied": list(self.applied),
        }


class MigrationRunner:
    """Applies resolved migrations to a SQLAlchemy engine."""

    def __init__(self, engine: Engine, resolver: MigrationResolver) -> None:
        self.engine = engine
        self.resolver = resolver

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def installed_version(self) -> str | None:
        with self.engine.begin() as conn:
            self._ensure_table(conn)
            return self._installed(conn)

    def pending(self, target: str) -> list[str]:
        with self.engine.begin() as conn:
            self._ensure_table(conn)
            installed = self._installed(conn)
            context = MigrationContext(conn, installed_version=installed, target_version=target)
            return [m.version for m in self._select(self.resolver.get_migrations(context), installed, target)]

    def apply(self, target: str) -> MigrationReport:
        """
        Apply every migration newer than the installed version, up to ``target``.

        Raises:
            MigrationError: A migration failed; nothing of the batch was kept
        """
        current: str | None = None
        try:
            with self.engine.begin() as conn:
                self._ensure_table(conn)
                installed = self._installed(conn)
                report = MigrationReport(from_version=installed, to_version=installed)
                context = MigrationContext(conn, installed_version=installed, target_version=target)

                for migration in self._select(self.resolver.get_migrations(context), installed, target):
                    current = migration.version
                    migration.up()
                    conn.execute(
                        text(
                            "INSERT INTO stepwise_migrations (version, description, applied_at) "
                            "VALUES (:version, :description, :applied_at)"
                        ),
                        {
                            "version": migration.version,
                            "description": migration.description,
                            "applied_at": datetime.now(UTC).isoformat(),
                        },
                    )
                    report.applied.append(migration.version)
                    report.to_version = migration.version
                    logger.info("migration.applied", version=migration.version, description=migration.description)
        except SQLAlchemyError as e:
            logger.error("migration.failed", version=current, error=str(e))
            raise MigrationError(current or "(setup)", e) from e

        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _select(migrations: list[Migration], installed: str | None, target: str) -> list[Migration]:
        low = parse_version(installed) if installed else None
        high = parse_version(target)
        return [
            m for m in migrations
            if (low is None or parse_version(m.version) > low) and parse_version(m.version) <= high
        ]

    @staticmethod
    def _ensure_table(conn: Connection) -> None:
        conn.execute(
            text(
                """
                CREATE TABLE IF NOT EXISTS stepwise_migrations (
                    version VARCHAR(32) PRIMARY KEY,
                    description TEXT,
                    applied_at VARCHAR(40) NOT NULL
                )
                """
            )
        )

    @staticmethod
    def _installed(conn: Connection) -> str | None:
        rows = conn.execute(text("SELECT version FROM stepwise_migrations")).fetchall()
        if not rows:
            return None
        return max((r[0] for r in rows), key=parse_version)


# =============================================================================
# Built-in migrations
# =============================================================================


class CreateAppSettings(Migration):
    version = "1.0.0"
    description = "Create app_settings"

    def up(self) -> None:
        self.execute(
            """
            CREATE TABLE app_settings (
                key VARCHAR(200) PRIMARY KEY,
                value TEXT
            )
            """
        )
        self.execute(
            "INSERT INTO app_settings (key, value) VALUES (:key, :value)",
            key="schema.created_by",
            value="stepwise",
        )


class CreateInstallLog(Migration):
    version = "1.1.0"
    description = "Create install_log"

    def up(self) -> None:
        self.execute(
            """
            CREATE TABLE install_log (
                id INTEGER PRIMARY KEY,
                version VARCHAR(32) NOT NULL,
                installed_at VARCHAR(40) NOT NULL
            )
            """
        )


BUILTIN_MIGRATIONS: tuple[MigrationFactory, ...] = (CreateAppSettings, CreateInstallLog)


def default_resolver() -> MigrationResolver:
    return MigrationResolver(BUILTIN_MIGRATIONS)
