import pytest

from driver_alerts.data.storage import Database, ImportRegistry
from driver_alerts.exceptions import DataSourceError


def test_insert_batch_reports_failing_rows(db):
    outcome = db.insert_batch("vehicles", [
        {"plate_number": "AB-123", "status": "active"},
        {"plate_number": "AB-123", "status": "active"},  # unique plate
        {"plate_number": "CD-456", "weight": 3500.0, "unknown": "ignored"},
    ])
    assert outcome.success == 2
    assert [idx for idx, _ in outcome.errors] == [1]
    assert len(db.read_table("vehicles")) == 2


def test_lookup_is_case_insensitive(db):
    db.insert_batch("people", [{"name": "Kovács János"}])
    assert db.lookup_id("people", " kovács jános ") is not None
    assert db.lookup_id("people", "Senki") is None
    assert db.lookup_id("people", None) is None


def test_register_import_is_idempotent(db, tmp_path):
    assert isinstance(db, ImportRegistry)
    first_id, created = db.register_import("stop-events:x:abc", tmp_path / "a.xlsx", "stop-events")
    again_id, created_again = db.register_import("stop-events:x:abc", tmp_path / "a.xlsx", "stop-events")
    assert created and not created_again
    assert first_id == again_id
    assert db.has_import("stop-events:x:abc")


def test_booleans_and_dates_are_stored_as_plain_values(db):
    from datetime import date

    db.insert_batch("time_records", [{"driver_id": 1, "date": date(2024, 3, 1), "total_hours": True}])
    row = db.read_table("time_records").iloc[0]
    assert row["date"] == "2024-03-01"
    assert row["total_hours"] == 1


def test_unknown_table_rejected(tmp_path):
    db = Database(tmp_path / "nested" / "x.db")
    with pytest.raises(DataSourceError):
        db.insert_batch("nincs", [{}])
    with pytest.raises(DataSourceError):
        db.lookup_id("addresses", "x")  # no natural key
