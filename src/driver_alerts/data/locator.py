"""
Header and section location on a resolved Grid.

Flat sheets get one ColumnMap from their header row. Personnel reports are
split into per-person Sections by a small state machine, and each section
gets its own ColumnMap, including the fine columns of a two-row compound
header.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

from driver_alerts.config import ImportSettings, TemplateProfile
from driver_alerts.data.dto import ColumnMap, EmployeeInfo, Section
from driver_alerts.data.field_mapper import FieldMapper, normalize_token
from driver_alerts.data.grid import Grid, is_blank
from driver_alerts.data.normalize import (
    DEFAULT_PLATE_DENYLIST,
    clean_text,
    is_valid_plate_number,
    normalize_date,
)
from driver_alerts.data.strategies import Strategy, StrategyResult, first_success
from driver_alerts.exceptions import NoHeaderFoundError, NoSectionsFoundError
from driver_alerts.header_tokens import KindVocabulary, SectionLabels

logger = logging.getLogger(__name__)


def _folded(labels: Iterable[str]) -> set[str]:
    return {normalize_token(label) for label in labels if normalize_token(label)}


def label_value(cell: Any, labels: set[str]) -> Optional[str]:
    """
    "" when the cell is a bare label ("Név:"), the inline text for "Név: Kovács",
    None when the cell is not one of the labels.
    """
    if not isinstance(cell, str):
        return None
    text = cell.strip()
    if ":" in text:
        head, _, tail = text.partition(":")
        if normalize_token(head) in labels:
            return tail.strip()
    if normalize_token(text) in labels:
        return ""
    return None


def row_starts_with_token(row: Sequence[Any], tokens: set[str]) -> bool:
    """True when a text cell is, or begins with, one of the tokens ("Összesen:", "Aláírás ......")."""
    for cell in row:
        if not isinstance(cell, str):
            continue
        norm = normalize_token(cell)
        if not norm:
            continue
        for token in tokens:
            if norm == token or norm.startswith(token + " "):
                return True
    return False


def infer_year_context(grid: Grid, default: Optional[int] = None) -> int:
    """Year of the first complete date on the sheet; partial dates are padded with it."""
    for row in grid:
        for cell in row:
            if isinstance(cell, (datetime, date)):
                return cell.year
            if isinstance(cell, str) and any(ch.isdigit() for ch in cell):
                parsed = normalize_date(cell)
                if parsed:
                    return int(parsed[:4])
    return default or datetime.now().year


class HeaderLocator:
    """
    Finds the header row of one import kind inside a row window.
    Strategies, in order: token_header, densest_row, positional_layout.
    """

    def __init__(
        self,
        vocabulary: KindVocabulary,
        scan_rows: int = 30,
        min_matches: int = 3,
        plate_denylist: Iterable[str] = (),
    ):
        self.vocabulary = vocabulary
        self.mapper = FieldMapper(vocabulary.fields)
        self.scan_rows = scan_rows
        self.min_matches = min_matches
        self.plate_denylist = tuple(plate_denylist) or DEFAULT_PLATE_DENYLIST
        strategies: List[Strategy[ColumnMap]] = [
            Strategy("token_header", self._token_header),
            Strategy("densest_row", self._densest_row, degraded=True),
        ]
        if vocabulary.layout:
            strategies.append(Strategy("positional_layout", self._positional_layout, degraded=True))
        self.strategies = strategies

    def _window(self, grid: Grid, start: int, stop: Optional[int]) -> range:
        end = len(grid) if stop is None else min(stop, len(grid))
        return range(start, min(end, start + self.scan_rows))

    def _has_required(self, columns: dict) -> bool:
        return all(f in columns for f in self.vocabulary.required)

    def is_header_row(self, row: Sequence[Any]) -> bool:
        columns = self.mapper.map_row(row)
        return len(columns) >= self.min_matches and self._has_required(columns)

    def _token_header(self, grid: Grid, start: int = 0, stop: Optional[int] = None) -> Optional[ColumnMap]:
        for r in self._window(grid, start, stop):
            columns = self.mapper.map_row(grid.row(r))
            if len(columns) >= self.min_matches and self._has_required(columns):
                return ColumnMap(columns, header_row=r, strategy="token_header")
        return None

    def _densest_index(self, grid: Grid, start: int, stop: Optional[int]) -> Optional[int]:
        best: Optional[int] = None
        best_count = 0
        for r in self._window(grid, start, stop):
            count = len(grid.non_empty(r))
            if count > best_count:
                best, best_count = r, count
        return best

    def _densest_row(self, grid: Grid, start: int = 0, stop: Optional[int] = None) -> Optional[ColumnMap]:
        r = self._densest_index(grid, start, stop)
        if r is None:
            return None
        columns = self.mapper.map_row(grid.row(r))
        if not columns or not self._has_required(columns):
            return None
        return ColumnMap(columns, header_row=r, strategy="densest_row", degraded=True)

    def _positional_layout(self, grid: Grid, start: int = 0, stop: Optional[int] = None) -> Optional[ColumnMap]:
        first = next((r for r in self._window(grid, start, stop) if not grid.is_blank_row(r)), None)
        if first is None:
            return None
        columns = {name: idx for idx, name in enumerate(self.vocabulary.layout)}
        # Headerless export: the first row already carries data
        header_row = first
        if "plate_number" in columns and is_valid_plate_number(
            grid.cell(first, columns["plate_number"]), self.plate_denylist
        ):
            header_row = first - 1
        return ColumnMap(columns, header_row=header_row, strategy="positional_layout", degraded=True)

    def find(self, grid: Grid, start: int = 0, stop: Optional[int] = None) -> StrategyResult[ColumnMap]:
        return first_success(self.strategies, grid, start, stop)

    def locate(
        self, grid: Grid, kind: str, start: int = 0, stop: Optional[int] = None
    ) -> StrategyResult[ColumnMap]:
        result = self.find(grid, start, stop)
        if not result.ok:
            raise NoHeaderFoundError(kind, missing=self.vocabulary.required, sheet=grid.name or None)
        if result.degraded:
            logger.warning(
                "header located by fallback strategy",
                extra={"kind": kind, "strategy": result.strategy, "sheet": grid.name},
            )
        return result

    def snapshot(self, grid: Grid, column_map: ColumnMap):
        return self.mapper.snapshot(
            grid.row(column_map.header_row),
            header_row=column_map.header_row,
            required=self.vocabulary.required,
        )


class ScanState(str, Enum):
    SEEKING_START = "seeking_start"
    IN_SECTION_HEADER = "in_section_header"
    IN_SECTION_DATA = "in_section_data"
    DONE = "done"


@dataclass(frozen=True)
class SectionBounds:
    start: int
    end: int
    terminated_by: str


class SectionScanner:
    """
    SEEKING_START -> IN_SECTION_HEADER -> IN_SECTION_DATA -> (SEEKING_START | DONE).

    A terminator row met before the next start marker closes the section at
    that row; otherwise the next marker does. A run of blank rows closes it
    only once data rows have started. Ends are exclusive.
    """

    def __init__(
        self,
        labels: SectionLabels,
        is_header_row: Callable[[Sequence[Any]], bool],
        blank_row_run: int = 3,
    ):
        self.start_labels = _folded(labels.start)
        self.terminators = _folded(labels.terminators)
        self.is_header_row = is_header_row
        self.blank_row_run = max(1, blank_row_run)

    def is_start(self, row: Sequence[Any]) -> bool:
        # A "Név" column title inside a table header is not a person marker
        if self.is_header_row(row):
            return False
        return any(label_value(cell, self.start_labels) is not None for cell in row)

    def is_terminator(self, row: Sequence[Any]) -> bool:
        return row_starts_with_token(row, self.terminators)

    def scan(self, grid: Grid) -> List[SectionBounds]:
        bounds: List[SectionBounds] = []
        state = ScanState.SEEKING_START
        start: Optional[int] = None
        blank_run = 0

        for r, row in enumerate(grid):
            if state == ScanState.SEEKING_START:
                if self.is_start(row):
                    start, blank_run = r, 0
                    state = ScanState.IN_SECTION_HEADER
                continue

            if self.is_start(row):
                bounds.append(SectionBounds(start, r, "next_section"))
                start, blank_run = r, 0
                state = ScanState.IN_SECTION_HEADER
                continue
            if self.is_terminator(row):
                bounds.append(SectionBounds(start, r, "terminator"))
                start = None
                state = ScanState.SEEKING_START
                continue

            if state == ScanState.IN_SECTION_HEADER:
                if self.is_header_row(row):
                    state = ScanState.IN_SECTION_DATA
                continue

            # IN_SECTION_DATA
            if all(is_blank(v) for v in row):
                blank_run += 1
                if blank_run >= self.blank_row_run:
                    bounds.append(SectionBounds(start, r - blank_run + 1, "blank_run"))
                    start, blank_run = None, 0
                    state = ScanState.SEEKING_START
            else:
                blank_run = 0

        if start is not None:
            bounds.append(SectionBounds(start, len(grid), "end_of_grid"))
        state = ScanState.DONE
        logger.debug("section scan finished", extra={"sections": len(bounds), "state": state.value})
        return bounds


class SectionLocator:
    """Builds fully described Sections (employee info, ColumnMap) for a personnel report."""

    def __init__(
        self,
        vocabulary: KindVocabulary,
        labels: SectionLabels,
        imports: Optional[ImportSettings] = None,
        profile: Optional[TemplateProfile] = None,
    ):
        imports = imports or ImportSettings()
        self.labels = labels
        self.profile = profile or TemplateProfile()
        self.max_sub_header_rows = imports.max_sub_header_rows
        self.headers = HeaderLocator(
            vocabulary,
            scan_rows=imports.header_scan_rows,
            min_matches=imports.header_min_matches,
        )
        self.scanner = SectionScanner(labels, self.headers.is_header_row, imports.blank_row_run)
        self._metadata = {key: _folded(values) for key, values in labels.metadata.items()}
        self._all_labels = set().union(*self._metadata.values()) if self._metadata else set()
        self._check_in = _folded(labels.check_in_tokens)
        self._check_out = _folded(labels.check_out_tokens)
        self.compound_strategies: List[Strategy[ColumnMap]] = [
            Strategy("sub_header_tokens", self._sub_header_tokens),
            Strategy("template_offsets", self._template_offsets, degraded=True),
        ]

    def locate(self, grid: Grid) -> List[Section]:
        bounds = self.scanner.scan(grid)
        if not bounds:
            raise NoSectionsFoundError(", ".join(self.labels.start), sheet=grid.name or None)

        sections: List[Section] = []
        for b in bounds:
            diagnostics: List[str] = []
            header = self.headers.find(grid, b.start + 1, b.end)
            column_map = header.value
            if column_map is not None:
                if header.degraded:
                    diagnostics.append(f"header:{header.strategy}")
                column_map, compound_note = self._resolve_compound(grid, column_map, b.end)
                if compound_note:
                    diagnostics.append(compound_note)
            else:
                diagnostics.append("header:not_found")
            meta_stop = column_map.header_row if column_map else b.end
            employee = self.employee_info(grid, b.start, meta_stop)
            sections.append(
                Section(
                    start=b.start,
                    end=b.end,
                    employee=employee,
                    column_map=column_map,
                    terminated_by=b.terminated_by,
                    diagnostics=tuple(diagnostics),
                )
            )
        return sections

    def employee_info(self, grid: Grid, start: int, stop: int) -> EmployeeInfo:
        found: dict[str, Optional[str]] = {}
        for r in range(start, max(stop, start + 1)):
            row = grid.row(r)
            for c, cell in enumerate(row):
                for key, labels in self._metadata.items():
                    if key in found:
                        continue
                    inline = label_value(cell, labels)
                    if inline is None:
                        continue
                    found[key] = clean_text(inline) or self._value_right_of(row, c)
        return EmployeeInfo(
            name=found.get("name"),
            job_title=found.get("job_title"),
            cost_center=found.get("cost_center"),
        )

    def _value_right_of(self, row: Sequence[Any], col: int) -> Optional[str]:
        label = row[col]
        for value in row[col + 1:]:
            if is_blank(value) or value == label:
                # merged label cells repeat the label to the right
                continue
            if label_value(value, self._all_labels) is not None:
                return None
            return clean_text(value)
        return None

    def _coarse_span(self, grid: Grid, column_map: ColumnMap, coarse: int) -> range:
        header = grid.row(column_map.header_row)
        anchor = grid.cell(column_map.header_row, coarse)
        end = coarse
        while end + 1 < len(header) and header[end + 1] == anchor:
            end += 1
        if end == coarse:
            # Unmerged coarse label: it owns the columns up to the next mapped one
            later = [c for c in column_map.columns.values() if c > coarse]
            end = (min(later) - 1) if later else max(grid.width - 1, coarse)
        return range(coarse, end + 1)

    def _sub_header_tokens(self, grid: Grid, column_map: ColumnMap, stop: int) -> Optional[ColumnMap]:
        coarse = column_map.get("movements")
        if coarse is None:
            return None
        span = self._coarse_span(grid, column_map, coarse)
        for offset in range(1, self.max_sub_header_rows + 1):
            r = column_map.header_row + offset
            if r >= stop:
                break
            check_in = check_out = None
            for c in span:
                token = normalize_token(grid.cell(r, c))
                if check_in is None and token in self._check_in:
                    check_in = c
                elif check_out is None and token in self._check_out:
                    check_out = c
            if check_in is not None and check_out is not None:
                return column_map.with_columns(
                    {"check_in": check_in, "check_out": check_out},
                    sub_row_offset=offset,
                    strategy="sub_header_tokens",
                )
        return None

    def _template_offsets(self, grid: Grid, column_map: ColumnMap, stop: int) -> Optional[ColumnMap]:
        coarse = column_map.get("movements")
        if coarse is None:
            return None
        return column_map.with_columns(
            {
                "check_in": coarse + self.profile.check_in_offset,
                "check_out": coarse + self.profile.check_out_offset,
            },
            sub_row_offset=self.profile.sub_header_rows,
            strategy="template_offsets",
            degraded=True,
        )

    def _resolve_compound(self, grid: Grid, column_map: ColumnMap, stop: int) -> tuple[ColumnMap, Optional[str]]:
        if "check_in" in column_map and "check_out" in column_map:
            return column_map, None
        result = first_success(self.compound_strategies, grid, column_map, stop)
        if not result.ok:
            return column_map, None
        if result.degraded:
            logger.warning(
                "compound header resolved by fixed offsets",
                extra={"sheet": grid.name, "header_row": column_map.header_row, "strategy": result.strategy},
            )
            return result.value, f"compound:{result.strategy}"
        return result.value, None
