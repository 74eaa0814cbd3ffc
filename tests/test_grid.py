from datetime import datetime, time
from pathlib import Path
from types import SimpleNamespace

import pytest
import xlrd

from conftest import write_workbook
from driver_alerts.data.grid import Grid, apply_merges, resolve
from driver_alerts.data import workbook as workbook_module
from driver_alerts.data.workbook import MergeRange, SheetData, read_workbook
from driver_alerts.exceptions import DataSourceError, FileReadError


def test_merge_anchor_fills_whole_rectangle():
    rows = [["Mozgások", None, None], ["BE", None, "KI"]]
    merged = apply_merges(rows, [MergeRange(top=0, left=0, bottom=0, right=2)])
    assert merged[0] == ["Mozgások", "Mozgások", "Mozgások"]
    assert merged[1] == ["BE", None, "KI"]


def test_merge_resolution_is_idempotent():
    rows = [["Név:", None], [None, "x"]]
    merges = [MergeRange(0, 0, 1, 0)]
    once = apply_merges(rows, merges)
    twice = apply_merges(once, merges)
    assert once == twice
    assert once[1][0] == "Név:"


def test_merge_grows_short_rows():
    merged = apply_merges([["a"]], [MergeRange(0, 0, 2, 1)])
    assert len(merged) == 3
    assert all(row[:2] == ["a", "a"] for row in merged)


def test_grid_reads_outside_rows_as_none():
    grid = Grid.from_rows([["a", "b"], ["c"]], name="s")
    assert grid.width == 2
    assert grid.cell(1, 1) is None
    assert grid.cell(5, 0) is None
    assert grid.cell(0, None) is None
    assert grid.non_empty(0) == [(0, "a"), (1, "b")]
    assert grid.is_blank_row(7)


def test_resolve_sheet_keeps_name():
    sheet = SheetData(name="Lista", cells=[["x", None]], merges=[MergeRange(0, 0, 0, 1)])
    grid = resolve(sheet)
    assert grid.name == "Lista"
    assert grid.row(0) == ("x", "x")


def test_read_workbook_reports_merges(tmp_path: Path):
    path = write_workbook(
        tmp_path / "merged.xlsx",
        [["Dátum", "Mozgások", None, "Ledolg."], [None, "BE", "KI", None]],
        title="Kovács",
        merges=["B1:C1"],
    )
    workbook = read_workbook(path)
    assert workbook.sheet_names == ["Kovács"]
    sheet = workbook.sheet()
    assert MergeRange(top=0, left=1, bottom=0, right=2) in sheet.merges

    grid = resolve(sheet)
    assert grid.row(0)[:3] == ("Dátum", "Mozgások", "Mozgások")


def test_read_workbook_missing_file(tmp_path: Path):
    with pytest.raises(FileReadError) as excinfo:
        read_workbook(tmp_path / "nope.xlsx")
    assert excinfo.value.path.name == "nope.xlsx"


def test_read_workbook_unsupported_suffix(tmp_path: Path):
    path = tmp_path / "export.csv"
    path.write_text("a,b\n1,2\n", encoding="utf-8")
    with pytest.raises(FileReadError):
        read_workbook(path)


def test_read_workbook_corrupt_file(tmp_path: Path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"not a zip archive")
    with pytest.raises(FileReadError) as excinfo:
        read_workbook(path)
    assert excinfo.value.cause is not None


def test_unknown_sheet_name(tmp_path: Path):
    path = write_workbook(tmp_path / "one.xlsx", [["a"]], title="Első")
    with pytest.raises(DataSourceError):
        read_workbook(path).sheet("Második")


class _XlsSheet:
    name = "Lista"
    merged_cells = [(0, 1, 1, 3)]  # B1:C1, exclusive upper bounds

    def __init__(self, rows):
        self.rows = rows
        self.nrows = len(rows)
        self.ncols = max(len(row) for row in rows)

    def cell(self, r, c):
        ctype, value = self.rows[r][c]
        return SimpleNamespace(ctype=ctype, value=value)


class _XlsBook:
    datemode = 0

    def __init__(self, sheet):
        self._sheet = sheet
        self.released = False

    def sheets(self):
        return [self._sheet]

    def release_resources(self):
        self.released = True


def test_read_legacy_xls(tmp_path: Path, monkeypatch):
    path = tmp_path / "allas-lista.xls"
    path.write_bytes(b"\xd0\xcf\x11\xe0")
    sheet = _XlsSheet([
        [(xlrd.XL_CELL_TEXT, "Rendszám"), (xlrd.XL_CELL_TEXT, "Érkezés"), (xlrd.XL_CELL_EMPTY, "")],
        [(xlrd.XL_CELL_TEXT, "AB-123"), (xlrd.XL_CELL_DATE, 45352.4375), (xlrd.XL_CELL_NUMBER, 3.0)],
        [(xlrd.XL_CELL_BLANK, ""), (xlrd.XL_CELL_DATE, 0.5), (xlrd.XL_CELL_NUMBER, 2.5)],
    ])
    book = _XlsBook(sheet)
    opened = []

    def open_workbook(filename, formatting_info=False):
        opened.append((filename, formatting_info))
        return book

    monkeypatch.setattr(workbook_module.xlrd, "open_workbook", open_workbook)
    workbook = read_workbook(path)

    assert opened == [(str(path), True)]
    assert book.released
    data = workbook.sheet("Lista")
    assert data.merges == [MergeRange(top=0, left=1, bottom=0, right=2)]
    assert data.cells[0] == ["Rendszám", "Érkezés", None]
    assert data.cells[1] == ["AB-123", datetime(2024, 3, 1, 10, 30), 3]
    assert isinstance(data.cells[1][2], int)
    assert data.cells[2] == [None, time(12, 0), 2.5]
