from datetime import datetime

import pytest

from conftest import MOVEMENTS_HEADER, STOP_EVENTS_HEADER, attendance_rows
from driver_alerts.data.adapters import (
    GenericTableAdapter,
    StopEventsAdapter,
    TimeAttendanceAdapter,
    VehicleMovementsAdapter,
)
from driver_alerts.data.dto import RowIssue
from driver_alerts.data.grid import Grid
from driver_alerts.data.schemas import TABLES
from driver_alerts.exceptions import NoHeaderFoundError, UnknownImportKindError


def test_stop_events_record(headers):
    grid = Grid.from_rows([
        STOP_EVENTS_HEADER,
        ["AB-123", "2024-03-01 08:15", "0:15", None, "Depot", "yes"],
    ])
    extraction = StopEventsAdapter(headers).extract(grid)

    assert extraction.errors == []
    assert extraction.records == [{
        "plate_number": "AB-123",
        "arrival_time": "2024-03-01 08:15:00",
        "standing_duration": "0:15",
        "position": "Depot",
        "important_point": "yes",
    }]
    assert extraction.rows == [2]
    assert not extraction.degraded


def test_stop_events_dotted_arrival_and_minute_standing(headers):
    grid = Grid.from_rows([
        STOP_EVENTS_HEADER,
        ["AB-123", "2024.03.01 08:15:00", "15", None, "Depot", None],
    ])
    extraction = StopEventsAdapter(headers).extract(grid)

    assert extraction.errors == []
    record = extraction.records[0]
    assert record["arrival_time"] == "2024-03-01 08:15:00"
    assert record["standing_duration"] == "0:15"


def test_stop_events_drop_duplicates(headers):
    row = ["AB-123", "2024-03-01 08:15", "0:15", "ki", "Depot", None]
    grid = Grid.from_rows([STOP_EVENTS_HEADER, row, list(row), ["AB-123", "2024-03-01 09:00", "0:05", None, "Depot"]])
    extraction = StopEventsAdapter(headers).extract(grid)

    assert len(extraction.records) == 2
    assert "duplicates_dropped:1" in extraction.diagnostics
    assert not extraction.degraded


def test_stop_events_reject_leaked_labels(headers):
    grid = Grid.from_rows([
        STOP_EVENTS_HEADER,
        ["Telephely-A", "2024-03-01 08:15", "0:15"],
        ["AB-123", "2024-03-01 08:15", "0:15"],
        ["Összesen:", None, "0:15"],
    ])
    extraction = StopEventsAdapter(headers).extract(grid)

    assert [r["plate_number"] for r in extraction.records] == ["AB-123"]
    assert len(extraction.errors) == 1
    error = extraction.errors[0]
    assert error.row == 2
    assert error.code == RowIssue.INVALID_PLATE_NUMBER
    assert error.field == "plate_number"


def test_one_bad_row_does_not_abort_sheet(headers):
    rows = [STOP_EVENTS_HEADER]
    for i in range(10):
        arrival = "not a date" if i == 4 else f"2024-03-01 08:{i:02d}"
        rows.append([f"AB-1{i:02d}", arrival, "0:10", None, "Depot"])
    extraction = StopEventsAdapter(headers).extract(Grid.from_rows(rows))

    assert len(extraction.records) == 9
    assert len(extraction.errors) == 1
    error = extraction.errors[0]
    assert error.row == 6
    assert error.reason == "Invalid date in field 'arrival_time': 'not a date'"


def test_stop_events_headerless_export_is_degraded(headers):
    grid = Grid.from_rows([
        ["AB-123", "2024-03-01 08:15", "0:15", "on", "Depot", "x"],
        ["CD-456", "2024-03-01 09:00", "0:05", "off", "Bolt", None],
    ])
    extraction = StopEventsAdapter(headers).extract(grid)
    assert len(extraction.records) == 2
    assert extraction.degraded
    assert "header:positional_layout" in extraction.diagnostics


def test_vehicle_movements(headers):
    grid = Grid.from_rows([
        MOVEMENTS_HEADER,
        ["AB-123", datetime(2024, 3, 1, 10, 30), "Telephely", "BE", "0:45", "12,5 km"],
        ["AB-123", "2024-03-01 11:30", "Telephely", "KI", "0:10", "messze"],
        [None, "2024-03-01 12:00", "Telephely", "KI"],
    ])
    extraction = VehicleMovementsAdapter(headers).extract(grid)

    assert extraction.records == [{
        "plate_number": "AB-123",
        "timestamp": "2024-03-01 10:30:00",
        "area_name": "Telephely",
        "direction": "BE",
        "time_spent": 45,
        "distance": 12.5,
    }]
    codes = [(e.row, e.code) for e in extraction.errors]
    assert codes == [(3, RowIssue.INVALID_NUMBER), (4, RowIssue.MISSING_REQUIRED_FIELD)]


def test_vehicle_movements_excel_serials(headers):
    grid = Grid.from_rows([
        MOVEMENTS_HEADER,
        ["AB-123", 45352.4375, "Telephely", "BE", 0.03125, 3],
    ])
    extraction = VehicleMovementsAdapter(headers).extract(grid)

    assert extraction.errors == []
    record = extraction.records[0]
    assert record["timestamp"] == "2024-03-01 10:30:00"
    assert record["time_spent"] == 45


def test_empty_movements_sheet_raises(headers):
    with pytest.raises(NoHeaderFoundError) as excinfo:
        VehicleMovementsAdapter(headers).extract(Grid.from_rows([], name="Lap1"))
    assert excinfo.value.sheet == "Lap1"


def test_time_attendance_sections(headers):
    extraction = TimeAttendanceAdapter(headers).extract(Grid.from_rows(attendance_rows()))

    assert extraction.errors == []
    assert not extraction.degraded
    assert len(extraction.records) == 3

    first = extraction.records[0]
    assert first == {
        "person_name": "Kovács János",
        "job_title": "Sofőr",
        "cost_center": "1200",
        "date": "2024-03-01",
        "planned_shift": "06:00-14:00",
        "actual_shift": "06:00-14:00",
        "check_in": "05:58:00",
        "check_out": "14:05:00",
        "worked_duration": "8:07",
        "worked_minutes": 487,
    }
    assert extraction.records[1]["date"] == "2024-03-02"


def test_time_attendance_swaps_tagged_movements(headers):
    extraction = TimeAttendanceAdapter(headers).extract(Grid.from_rows(attendance_rows()))
    anna = extraction.records[2]
    assert anna["person_name"] == "Szabó Anna"
    assert anna["date"] == "2024-03-01"
    assert (anna["check_in"], anna["check_out"]) == ("07:55:00", "15:58:00")


def test_time_attendance_suffix_scan_fallback(headers):
    grid = Grid.from_rows([
        ["Név:", "Kiss Péter"],
        ["Dátum", "Terv", "Tény", "Ledolg."],
        ["2024.03.01", "06:00-14:00", "06:00-14:00", "8:00", "07:00 BE", "15:00 KI"],
    ])
    extraction = TimeAttendanceAdapter(headers).extract(grid)

    record = extraction.records[0]
    assert (record["check_in"], record["check_out"]) == ("07:00:00", "15:00:00")
    assert extraction.degraded
    assert "movements:suffix_scan" in extraction.diagnostics


def test_time_attendance_unreadable_movement_is_noted(headers):
    rows = attendance_rows()
    rows[7][3] = "hiányzik"
    extraction = TimeAttendanceAdapter(headers).extract(Grid.from_rows(rows))

    assert len(extraction.records) == 3
    first = extraction.records[0]
    assert "check_in" not in first
    assert first["check_out"] == "14:05:00"
    assert "unparsed_movement@8:check_in" in extraction.diagnostics


def test_time_attendance_bad_date_is_row_error(headers):
    rows = attendance_rows()
    rows[8][0] = "tegnap"
    extraction = TimeAttendanceAdapter(headers).extract(Grid.from_rows(rows))

    assert len(extraction.records) == 2
    assert len(extraction.errors) == 1
    assert extraction.errors[0].row == 9
    assert extraction.errors[0].reason == "Invalid date in field 'date': 'tegnap'"


def test_time_attendance_section_without_header(headers):
    rows = attendance_rows()[:10] + [["Név:", "Üres Elek"], ["nincs adat"]]
    extraction = TimeAttendanceAdapter(headers).extract(Grid.from_rows(rows))

    assert len(extraction.records) == 2
    assert [e.row for e in extraction.errors] == [11]


def test_time_attendance_without_any_header_raises(headers):
    grid = Grid.from_rows([["Név:", "Kiss Péter"], ["semmi"]])
    with pytest.raises(NoHeaderFoundError):
        TimeAttendanceAdapter(headers).extract(grid)


def test_generic_people(headers):
    grid = Grid.from_rows([
        ["Név", "Telefon", "Email", "Státusz"],
        ["Kovács János", "+36 30 123 4567", "kj@example.com", None],
        ["Szabó Anna", None, "nem-email", "inactive"],
        [None, "+36 1 111", None, None],
    ])
    extraction = GenericTableAdapter(TABLES["people"], headers).extract(grid)

    assert extraction.records == [{
        "name": "Kovács János",
        "role": "driver",
        "costcenter": None,
        "phone": "+36 30 123 4567",
        "email": "kj@example.com",
        "license_type": None,
        "status": "active",
    }]
    assert [(e.row, e.code, e.field) for e in extraction.errors] == [
        (3, RowIssue.INVALID_VALUE, "email"),
        (4, RowIssue.MISSING_REQUIRED_FIELD, "name"),
    ]


def test_generic_rounds_derive_weekday(headers):
    grid = Grid.from_rows([
        ["Date", "Driver Name", "Plate Number", "Addresses", "Overall Weight"],
        ["2024-03-04", "Kovács János", "ab-123", "Fő utca 1", "1 250,5"],
    ])
    record = GenericTableAdapter(TABLES["rounds"], headers).extract(grid).records[0]

    assert record["date"] == "2024-03-04"
    assert record["day"] == "Monday"
    assert record["plate_number"] == "AB-123"
    assert record["driver_name"] == "Kovács János"
    assert record["overall_weight"] == 1250.5


def test_generic_rejects_storage_only_table(headers):
    with pytest.raises(UnknownImportKindError):
        GenericTableAdapter(TABLES["stop_events_alert"], headers)
