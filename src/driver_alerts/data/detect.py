"""
Import kind detection: file name hints first, then sheet content.
"""
import logging
from pathlib import Path
from typing import Optional

from driver_alerts.data.dto import ImportKind
from driver_alerts.data.field_mapper import FieldMapper
from driver_alerts.data.grid import Grid
from driver_alerts.data.locator import HeaderLocator, SectionScanner
from driver_alerts.data.schemas import importable_tables
from driver_alerts.header_tokens import HeaderConfig, KindVocabulary

logger = logging.getLogger(__name__)


def _best_score(grid: Grid, vocabulary: KindVocabulary, scan_rows: int) -> int:
    """Most header tokens matched by one row, 0 unless that row carries the required fields."""
    mapper = FieldMapper(vocabulary.fields)
    best = 0
    for r in range(min(scan_rows, len(grid))):
        columns = mapper.map_row(grid.row(r))
        if all(f in columns for f in vocabulary.required):
            best = max(best, len(columns))
    return best


def detect_import_kind(
    path: Optional[Path],
    grid: Grid,
    headers: Optional[HeaderConfig] = None,
    scan_rows: int = 30,
    min_matches: int = 3,
) -> ImportKind:
    headers = headers or HeaderConfig()
    if path is not None:
        name = Path(path).name.lower().replace("_", "-")
        for hint, kind in headers.filename_hints.items():
            if hint in name:
                logger.debug("import kind from file name", extra={"file": name, "kind": kind})
                return ImportKind(kind)

    attendance = HeaderLocator(headers.time_attendance, scan_rows=scan_rows, min_matches=min_matches)
    scanner = SectionScanner(headers.sections, attendance.is_header_row)
    if any(scanner.is_start(row) for row in grid) and any(attendance.is_header_row(row) for row in grid):
        return ImportKind.TIME_ATTENDANCE

    scores = {
        ImportKind.STOP_EVENTS: _best_score(grid, headers.stop_events, scan_rows),
        ImportKind.VEHICLE_MOVEMENTS: _best_score(grid, headers.vehicle_movements, scan_rows),
    }
    kind, score = max(scores.items(), key=lambda item: item[1])
    if score >= min_matches:
        return kind
    return ImportKind.GENERIC


def detect_table(grid: Grid, scan_rows: int = 30) -> Optional[str]:
    """Importable table whose header aliases best match the sheet."""
    best_name, best_score = None, 0
    for name, spec in importable_tables().items():
        score = _best_score(grid, spec.vocabulary(), scan_rows)
        if score > best_score:
            best_name, best_score = name, score
    return best_name
