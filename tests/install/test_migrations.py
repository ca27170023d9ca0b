"""Tests for the migration resolver and runner."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect, text

from stepwise.core.errors import ConfigurationError
from stepwise.install.migrations import (
    Migration,
    MigrationError,
    MigrationResolver,
    MigrationContext,
    MigrationRunner,
    create_migration_engine,
    default_resolver,
)


@pytest.fixture
def engine(database_url):
    eng = create_migration_engine(database_url)
    yield eng
    eng.dispose()


class CreateWidgets(Migration):
    version = "2.0.0"
    description = "Create widgets"

    def up(self) -> None:
        self.execute("CREATE TABLE widgets (id INTEGER PRIMARY KEY)")


class BrokenMigration(Migration):
    version = "2.1.0"
    description = "Broken"

    def up(self) -> None:
        self.execute("CREATE TABLE widgets_2 (id INTEGER PRIMARY KEY)")
        self.execute("THIS IS NOT SQL")


class TestMigrationResolver:
    def test_fresh_instances_each_call(self, engine):
        resolver = default_resolver()
        with engine.connect() as conn:
            ctx = MigrationContext(conn)
            first = resolver.get_migrations(ctx)
            second = resolver.get_migrations(ctx)
        assert [m.version for m in first] == ["1.0.0", "1.1.0"]
        assert all(a is not b for a, b in zip(first, second))
        assert first[0].context is ctx

    def test_sorted_by_numeric_version(self, engine):
        class V10(Migration):
            version = "1.10.0"

        class V9(Migration):
            version = "1.9.0"

        with engine.connect() as conn:
            migrations = MigrationResolver([V10, V9]).get_migrations(MigrationContext(conn))
        assert [m.version for m in migrations] == ["1.9.0", "1.10.0"]

    def test_duplicate_versions(self, engine):
        class Again(Migration):
            version = "1.0.0"

        with engine.connect() as conn:
            with pytest.raises(ConfigurationError, match="Duplicate"):
                MigrationResolver([Again, Again]).get_migrations(MigrationContext(conn))


class TestMigrationRunner:
    def test_fresh_database_has_no_version(self, engine):
        assert MigrationRunner(engine, default_resolver()).installed_version() is None

    def test_apply_up_to_target(self, engine):
        runner = MigrationRunner(engine, default_resolver())
        report = runner.apply("1.0.0")

        assert report.applied == ["1.0.0"]
        assert report.to_dict() == {"fromVersion": None, "toVersion": "1.0.0", "applied": ["1.0.0"]}
        assert runner.installed_version() == "1.0.0"
        tables = inspect(engine).get_table_names()
        assert "app_settings" in tables
        assert "install_log" not in tables

    def test_pending_then_upgrade(self, engine):
        runner = MigrationRunner(engine, default_resolver())
        runner.apply("1.0.0")

        assert runner.pending("1.1.0") == ["1.1.0"]
        report = runner.apply("1.1.0")
        assert report.from_version == "1.0.0"
        assert report.applied == ["1.1.0"]
        assert runner.pending("1.1.0") == []

    def test_reapply_is_noop(self, engine):
        runner = MigrationRunner(engine, default_resolver())
        runner.apply("1.1.0")
        report = runner.apply("1.1.0")
        assert report.applied == []
        assert report.to_version == "1.1.0"

    def test_seed_row_written(self, engine):
        MigrationRunner(engine, default_resolver()).apply("1.0.0")
        with engine.connect() as conn:
            value = conn.execute(
                text("SELECT value FROM app_settings WHERE key = 'schema.created_by'")
            ).scalar_one()
        assert value == "stepwise"

    def test_failure_rolls_back_batch(self, engine):
        resolver = MigrationResolver([CreateWidgets, BrokenMigration])
        runner = MigrationRunner(engine, resolver)

        with pytest.raises(MigrationError) as exc_info:
            runner.apply("2.1.0")

        assert exc_info.value.version == "2.1.0"
        assert runner.installed_version() is None
        tables = inspect(engine).get_table_names()
        assert "widgets" not in tables
        assert "widgets_2" not in tables
