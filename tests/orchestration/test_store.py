"""Tests for the durable status stores (SQLite and JSON files)."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from stepwise.core.errors import PersistenceError, RunNotFoundError
from stepwise.core.settings import StepwiseSettings
from stepwise.orchestration.store import (
    JsonFileStatusStore,
    RunRecord,
    RunStatus,
    SqliteStatusStore,
    StatusStore,
    create_status_store,
    validate_run_id,
)


def _record(run_id: str = "run-1", **kwargs) -> RunRecord:
    statuses = kwargs.pop(
        "statuses",
        (RunStatus("a", True, {"k": 1}), RunStatus("b")),
    )
    return RunRecord(run_id=run_id, run_mode="new_install", statuses=statuses, **kwargs)


class TestRunRecord:
    def test_dict_roundtrip(self):
        record = _record()
        assert RunRecord.from_dict(record.to_dict()) == record

    def test_with_statuses_keeps_created_at(self):
        record = _record()
        updated = record.with_statuses((RunStatus("a", True),))
        assert updated.created_at == record.created_at
        assert updated.statuses == (RunStatus("a", True),)


class TestValidateRunId:
    @pytest.mark.parametrize("run_id", ["abc", "9f1c0d2e", "run_1-2"])
    def test_valid(self, run_id):
        assert validate_run_id(run_id) == run_id

    @pytest.mark.parametrize("run_id", ["", "../etc", "a b", "x" * 129, "a/b"])
    def test_invalid(self, run_id):
        with pytest.raises(RunNotFoundError):
            validate_run_id(run_id)


class TestStoreContract:
    """Behaviour shared by both backends."""

    def test_is_status_store(self, any_store):
        assert isinstance(any_store, StatusStore)

    def test_save_then_load(self, any_store):
        record = _record()
        any_store.save(record)
        loaded = any_store.load("run-1")
        assert loaded is not None
        assert loaded.run_mode == "new_install"
        assert loaded.statuses == record.statuses

    def test_load_missing(self, any_store):
        assert any_store.load("nope") is None

    def test_save_overwrites(self, any_store):
        any_store.save(_record())
        any_store.save(_record(statuses=(RunStatus("a", True), RunStatus("b", True, [1, 2]))))
        loaded = any_store.load("run-1")
        assert [s.is_complete for s in loaded.statuses] == [True, True]
        assert loaded.statuses[1].saved_data == [1, 2]

    def test_delete(self, any_store):
        any_store.save(_record())
        any_store.delete("run-1")
        assert any_store.load("run-1") is None

    def test_delete_missing_is_noop(self, any_store):
        any_store.delete("nope")

    def test_list_ids(self, any_store):
        any_store.save(_record("r1"))
        any_store.save(_record("r2"))
        assert sorted(any_store.list_ids()) == ["r1", "r2"]

    def test_unserialisable_saved_data(self, any_store):
        with pytest.raises(PersistenceError, match="JSON-serialisable"):
            any_store.save(_record(statuses=(RunStatus("a", True, object()),)))
        assert any_store.load("run-1") is None

    def test_invalid_run_id_rejected(self, any_store):
        with pytest.raises(RunNotFoundError):
            any_store.save(_record("../escape"))


class TestSqliteStatusStore:
    def test_survives_reopen(self, tmp_path: Path):
        path = tmp_path / "status.db"
        first = SqliteStatusStore(path)
        first.save(_record())
        first.close()

        second = SqliteStatusStore(path)
        assert second.load("run-1").statuses[0].saved_data == {"k": 1}
        second.close()

    def test_closed_connection_raises_persistence_error(self, tmp_path: Path):
        store = SqliteStatusStore(tmp_path / "status.db")
        store.close()
        with pytest.raises(PersistenceError):
            store.save(_record())

    def test_row_layout(self, tmp_path: Path):
        path = tmp_path / "status.db"
        store = SqliteStatusStore(path)
        store.save(_record())
        store.close()

        conn = sqlite3.connect(path)
        run_mode, statuses_json = conn.execute(
            "SELECT run_mode, statuses_json FROM install_status WHERE run_id = 'run-1'"
        ).fetchone()
        conn.close()
        assert run_mode == "new_install"
        assert json.loads(statuses_json)[0]["name"] == "a"


class TestJsonFileStatusStore:
    def test_one_file_per_run(self, file_store: JsonFileStatusStore):
        file_store.save(_record())
        assert (file_store.directory / "run-1.json").exists()

    def test_no_temp_files_left_behind(self, file_store: JsonFileStatusStore):
        file_store.save(_record())
        file_store.save(_record())
        assert [p.name for p in file_store.directory.iterdir()] == ["run-1.json"]

    def test_corrupt_file(self, file_store: JsonFileStatusStore):
        (file_store.directory / "run-1.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError, match="Corrupt"):
            file_store.load("run-1")

    def test_directory_is_a_file(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(PersistenceError):
            JsonFileStatusStore(blocker)


class TestCreateStatusStore:
    def test_sqlite(self, tmp_path: Path):
        store = create_status_store(StepwiseSettings(data_dir=tmp_path, status_backend="sqlite"))
        assert isinstance(store, SqliteStatusStore)
        store.close()

    def test_file(self, tmp_path: Path):
        store = create_status_store(StepwiseSettings(data_dir=tmp_path, status_backend="file"))
        assert isinstance(store, JsonFileStatusStore)
        assert store.directory == tmp_path / "install-status"
