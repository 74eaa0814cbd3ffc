from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

from driver_alerts.config import ImportSettings
from driver_alerts.data.dto import ColumnMap, Extraction, RowError, RowIssue
from driver_alerts.data.field_mapper import normalize_token
from driver_alerts.data.grid import Grid, is_blank
from driver_alerts.data.locator import HeaderLocator, infer_year_context, row_starts_with_token
from driver_alerts.header_tokens import HeaderConfig, KindVocabulary

# A row yields a record, a RowError, or None when it is silently skipped
RowOutcome = Union[Dict[str, Any], RowError, None]

ISSUE_LABELS = {
    RowIssue.INVALID_DATE: "date",
    RowIssue.INVALID_TIME: "time",
    RowIssue.INVALID_DURATION: "duration",
    RowIssue.INVALID_NUMBER: "number",
    RowIssue.INVALID_PLATE_NUMBER: "plate number",
    RowIssue.INVALID_VALUE: "value",
}


def sheet_row(index: int) -> int:
    return index + 1


def missing_field(index: int, field: str) -> RowError:
    return RowError(
        row=sheet_row(index),
        reason=f"Missing required field '{field}'",
        code=RowIssue.MISSING_REQUIRED_FIELD,
        field=field,
    )


def invalid_field(index: int, field: str, code: RowIssue, value: Any) -> RowError:
    label = ISSUE_LABELS.get(code, "value")
    return RowError(
        row=sheet_row(index),
        reason=f"Invalid {label} in field '{field}': {value!r}",
        code=code,
        field=field,
    )


class SheetAdapter:
    """
    Shared row walking for every import kind.
    Subclasses implement extract(); row problems become RowError values, never exceptions.
    """

    kind: str = ""

    def __init__(
        self,
        headers: Optional[HeaderConfig] = None,
        imports: Optional[ImportSettings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.headers = headers or HeaderConfig()
        self.imports = imports or ImportSettings()
        self.logger = logger or logging.getLogger(__name__)
        labels = self.headers.sections
        self._terminators = {normalize_token(t) for t in labels.terminators}
        self._signatures = {normalize_token(t) for t in labels.signature}

    def header_locator(self, vocabulary: KindVocabulary, min_matches: Optional[int] = None) -> HeaderLocator:
        return HeaderLocator(
            vocabulary,
            scan_rows=self.imports.header_scan_rows,
            min_matches=min_matches or self.imports.header_min_matches,
            plate_denylist=self.headers.plate_denylist,
        )

    def is_non_data_row(self, grid: Grid, index: int, locator: Optional[HeaderLocator] = None) -> bool:
        row = grid.row(index)
        if all(is_blank(v) for v in row):
            return True
        if row_starts_with_token(row, self._terminators) or row_starts_with_token(row, self._signatures):
            return True
        # Header repeated on every printed page
        return bool(locator and locator.is_header_row(row))

    def collect(self, extraction: Extraction, index: int, outcome: RowOutcome) -> None:
        if outcome is None:
            return
        if isinstance(outcome, RowError):
            extraction.errors.append(outcome)
            self.logger.debug(
                "row rejected",
                extra={"kind": self.kind, "row": outcome.row, "code": outcome.code.value, "field": outcome.field},
            )
            return
        extraction.records.append(outcome)
        extraction.rows.append(sheet_row(index))

    def year_context(self, grid: Grid) -> int:
        return infer_year_context(grid)

    def extract(self, grid: Grid, column_map: Optional[ColumnMap] = None) -> Extraction:
        raise NotImplementedError


class FlatSheetAdapter(SheetAdapter):
    """One header row, one record per data row below it."""

    def vocabulary(self) -> KindVocabulary:
        return self.headers.vocabulary(self.kind)

    def extract(self, grid: Grid, column_map: Optional[ColumnMap] = None) -> Extraction:
        extraction = Extraction()
        locator = self.header_locator(self.vocabulary())
        if column_map is None:
            located = locator.locate(grid, self.kind)
            column_map = located.value
            if located.degraded:
                extraction.note(f"header:{located.strategy}", degraded=True)

        year = self.year_context(grid)
        self.begin(extraction)
        for index in range(column_map.data_start, len(grid)):
            if self.is_non_data_row(grid, index, locator):
                continue
            self.collect(extraction, index, self.parse_row(grid, index, column_map, year))
        self.finish(extraction)
        return extraction

    def begin(self, extraction: Extraction) -> None:
        pass

    def finish(self, extraction: Extraction) -> None:
        pass

    def parse_row(self, grid: Grid, index: int, column_map: ColumnMap, year: int) -> RowOutcome:
        raise NotImplementedError
