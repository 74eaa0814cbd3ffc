from pathlib import Path

import pytest

from conftest import MOVEMENTS_HEADER, STOP_EVENTS_HEADER, attendance_rows
from driver_alerts.data.detect import detect_import_kind, detect_table
from driver_alerts.data.dto import ImportKind
from driver_alerts.data.grid import Grid

EMPTY = Grid.from_rows([])


@pytest.mark.parametrize("filename,expected", [
    ("allas-lista_2024-03.xlsx", ImportKind.STOP_EVENTS),
    ("iFleet_allas_lista.xlsx", ImportKind.STOP_EVENTS),
    ("SysWeb export.xls", ImportKind.TIME_ATTENDANCE),
    ("ifleet-teruletek.xlsx", ImportKind.VEHICLE_MOVEMENTS),
])
def test_file_name_hints(headers, filename, expected):
    assert detect_import_kind(Path(f"/tmp/{filename}"), EMPTY, headers) == expected


def test_content_detection(headers):
    assert detect_import_kind(None, Grid.from_rows(attendance_rows()), headers) == ImportKind.TIME_ATTENDANCE
    assert detect_import_kind(None, Grid.from_rows([STOP_EVENTS_HEADER]), headers) == ImportKind.STOP_EVENTS
    assert detect_import_kind(None, Grid.from_rows([MOVEMENTS_HEADER]), headers) == ImportKind.VEHICLE_MOVEMENTS


def test_unrecognised_sheet_is_generic(headers):
    grid = Grid.from_rows([["Név", "Telefon", "Email"], ["Kovács János", "+36 1 111", "kj@example.com"]])
    assert detect_import_kind(Path("/tmp/emberek.xlsx"), grid, headers) == ImportKind.GENERIC
    assert detect_table(grid) == "people"


def test_detect_table_for_vehicles():
    grid = Grid.from_rows([["Rendszám", "Súly", "Típus"], ["AB-123", 3500, "furgon"]])
    assert detect_table(grid) == "vehicles"
    assert detect_table(Grid.from_rows([["semmi"]])) is None


def test_name_column_in_table_header_is_not_a_section(headers):
    grid = Grid.from_rows([
        ["Név", "Dátum", "Check in", "Check out"],
        ["Kovács János", "2024-03-01", "07:00", "15:00"],
    ])
    assert detect_import_kind(None, grid, headers) == ImportKind.GENERIC
    assert detect_table(grid) == "time_records"


def test_generic_time_records_sheet_autodetects(pipeline):
    grid = Grid.from_rows([
        ["Név", "Dátum", "Check in", "Check out"],
        ["Kovács János", "2024-03-01", "07:00", "15:00"],
    ])
    result = pipeline.parse_grid(grid, "autodetect")

    assert result.kind == ImportKind.GENERIC.value
    assert result.table == "time_records"
    assert result.success_count == 1
    record = result.records[0]
    assert record["driver_name"] == "Kovács János"
    assert (record["check_in_time"], record["check_out_time"]) == ("07:00:00", "15:00:00")
