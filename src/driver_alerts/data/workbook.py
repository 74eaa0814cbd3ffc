"""
Workbook access: the only module that talks to spreadsheet libraries.

.xlsx/.xlsm go through openpyxl (merge ranges need a non read-only load),
legacy .xls goes through xlrd with formatting info so merges are reported.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

import xlrd
from openpyxl import load_workbook

from driver_alerts.exceptions import DataSourceError, FileReadError

logger = logging.getLogger(__name__)

OPENPYXL_SUFFIXES = {".xlsx", ".xlsm", ".xltx", ".xltm"}
XLRD_SUFFIXES = {".xls"}


@dataclass(frozen=True)
class MergeRange:
    """Zero-based, inclusive rectangle. (top, left) is the anchor cell."""
    top: int
    left: int
    bottom: int
    right: int


@dataclass
class SheetData:
    name: str
    cells: List[List[Any]] = field(default_factory=list)
    merges: List[MergeRange] = field(default_factory=list)


@dataclass
class Workbook:
    path: Path
    sheets: List[SheetData]

    @property
    def sheet_names(self) -> List[str]:
        return [s.name for s in self.sheets]

    def sheet(self, name: Optional[str] = None) -> SheetData:
        if not self.sheets:
            raise DataSourceError(f"Workbook {self.path} has no sheets")
        if name is None:
            return self.sheets[0]
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        raise DataSourceError(f"Sheet '{name}' not found in {self.path.name} (have: {', '.join(self.sheet_names)})")


def read_workbook(path: Path) -> Workbook:
    """
    Load every sheet of a workbook as typed cell values plus merge ranges.
    Raises FileReadError for anything that prevents reading the file.
    """
    path = Path(path)
    if not path.exists():
        raise FileReadError(path, FileNotFoundError(f"No such file: {path}"))

    suffix = path.suffix.lower()
    if suffix in OPENPYXL_SUFFIXES:
        reader = _read_openpyxl
    elif suffix in XLRD_SUFFIXES:
        reader = _read_xlrd
    else:
        raise FileReadError(path, ValueError(f"Unsupported workbook format '{suffix or path.name}'"))

    try:
        sheets = reader(path)
    except Exception as exc:
        raise FileReadError(path, exc) from exc

    logger.debug("workbook loaded", extra={"path": str(path), "sheets": len(sheets)})
    return Workbook(path=path, sheets=sheets)


def _read_openpyxl(path: Path) -> List[SheetData]:
    wb = load_workbook(path, data_only=True)
    try:
        sheets: List[SheetData] = []
        for ws in wb.worksheets:
            cells = [list(row) for row in ws.iter_rows(values_only=True)]
            merges = [
                MergeRange(
                    top=rng.min_row - 1,
                    left=rng.min_col - 1,
                    bottom=rng.max_row - 1,
                    right=rng.max_col - 1,
                )
                for rng in ws.merged_cells.ranges
            ]
            sheets.append(SheetData(name=ws.title, cells=cells, merges=merges))
        return sheets
    finally:
        wb.close()


def _read_xlrd(path: Path) -> List[SheetData]:
    book = xlrd.open_workbook(str(path), formatting_info=True)
    sheets: List[SheetData] = []
    for ws in book.sheets():
        cells: List[List[Any]] = []
        for r in range(ws.nrows):
            cells.append([_xls_value(ws.cell(r, c), book.datemode) for c in range(ws.ncols)])
        # xlrd reports (rlo, rhi, clo, chi) with exclusive upper bounds
        merges = [
            MergeRange(top=rlo, left=clo, bottom=rhi - 1, right=chi - 1)
            for rlo, rhi, clo, chi in ws.merged_cells
        ]
        sheets.append(SheetData(name=ws.name, cells=cells, merges=merges))
    book.release_resources()
    return sheets


def _xls_value(cell: Any, datemode: int) -> Any:
    ctype = cell.ctype
    if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if ctype == xlrd.XL_CELL_DATE:
        value: datetime = xlrd.xldate.xldate_as_datetime(cell.value, datemode)
        if cell.value < 1:
            return value.time()
        return value
    if ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if ctype == xlrd.XL_CELL_NUMBER:
        return int(cell.value) if float(cell.value).is_integer() else cell.value
    return cell.value
