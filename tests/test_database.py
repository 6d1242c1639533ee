import sqlite3

import pytest

from database import DatabaseConnection, SqliteDocumentStore
from metrocal.services import CalibrationService, ImportService


@pytest.fixture
def sqlite_store(tmp_path):
    return SqliteDocumentStore(str(tmp_path / "data" / "metrologia.db"))


def test_upsert_get_and_merge(sqlite_store):
    sqlite_store.upsert("equipment", "A", {"id": "A", "tag": "A", "name": "Régua"})
    sqlite_store.upsert("equipment", "A", {"lastCalibrationDate": "2024-06-15"})
    assert sqlite_store.get("equipment", "A") == {
        "id": "A", "tag": "A", "name": "Régua", "lastCalibrationDate": "2024-06-15",
    }
    assert sqlite_store.get("equipment", "B") is None
    assert sqlite_store.get("budgets", "A") is None


def test_list_query_and_delete(sqlite_store):
    for doc_id, eq in (("c1", "A"), ("c2", "B"), ("c3", "A")):
        sqlite_store.upsert("calibrations", doc_id, {"id": doc_id, "equipmentId": eq})
    assert len(sqlite_store.list("calibrations")) == 3
    assert {d["id"] for d in sqlite_store.query("calibrations", "equipmentId", "A")} == {"c1", "c3"}

    sqlite_store.delete("calibrations", "c1")
    assert sqlite_store.delete_batch("calibrations", ["c2", "c3", "missing"]) == 2
    assert sqlite_store.list("calibrations") == []
    assert sqlite_store.delete_batch("calibrations", []) == 0


def test_connection_rolls_back_on_error(sqlite_store):
    with pytest.raises(sqlite3.OperationalError):
        with DatabaseConnection(sqlite_store.db_path) as conn:
            conn.execute(
                "INSERT INTO documents (collection, doc_id, data_json, last_modified) VALUES ('x', '1', '{}', 'now')"
            )
            conn.execute("SELECT * FROM tabela_inexistente")
    assert sqlite_store.list("x") == []


def test_calibration_round_trip_on_sqlite(sqlite_store, caliper):
    sqlite_store.upsert("equipment", caliper.id, caliper.to_dict())
    service = CalibrationService(sqlite_store)
    record = service.new_record(caliper.id)
    saved = service.save_record(record)
    assert service.load_record(record.id) == saved
    assert sqlite_store.get("equipment", caliper.id)["lastCalibrationDate"] == record.date


def test_concurrent_import_on_sqlite(sqlite_store):
    rows = [{"Tag": f"T{i}", "Descrição": f"Item {i}"} for i in range(25)]
    summary = ImportService(sqlite_store).import_rows(rows)
    assert summary.processed == 25
    assert len(sqlite_store.list("equipment")) == 25
