from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import Any, List, Optional

from driver_alerts.config import TemplateProfile
from driver_alerts.data.adapters.base import (
    RowOutcome,
    SheetAdapter,
    invalid_field,
    missing_field,
    sheet_row,
)
from driver_alerts.data.dto import (
    ColumnMap,
    Extraction,
    ImportKind,
    RowError,
    RowIssue,
    Section,
    TimeAttendanceRecord,
)
from driver_alerts.data.field_mapper import normalize_token
from driver_alerts.data.grid import Grid, is_blank
from driver_alerts.data.locator import SectionLocator
from driver_alerts.data.normalize import clean_text, normalize_date, normalize_duration, normalize_time
from driver_alerts.data.strategies import Strategy, first_success
from driver_alerts.exceptions import NoHeaderFoundError

IN, OUT = "in", "out"
Movement = tuple[Any, Any]


class TimeAttendanceAdapter(SheetAdapter):
    """
    SysWeb personnel time report: one section per employee ("Név:" block),
    each with its own header and a compound "Mozgások / BE KI" movement header.
    """

    kind = ImportKind.TIME_ATTENDANCE.value

    def __init__(self, *args, profile: Optional[TemplateProfile] = None, **kwargs):
        super().__init__(*args, **kwargs)
        labels = self.headers.sections
        self.vocabulary = self.headers.time_attendance
        self.sections = SectionLocator(self.vocabulary, labels, self.imports, profile)
        self._in_tokens = {normalize_token(t) for t in labels.check_in_tokens}
        self._out_tokens = {normalize_token(t) for t in labels.check_out_tokens}
        self.movement_strategies: List[Strategy[Movement]] = [
            Strategy("mapped_column", self._mapped_movements),
            Strategy("suffix_scan", self._scanned_movements, degraded=True),
        ]

    def extract(self, grid: Grid, column_map: Optional[ColumnMap] = None) -> Extraction:
        extraction = Extraction()
        sections = self.sections.locate(grid)
        if all(s.column_map is None for s in sections):
            raise NoHeaderFoundError(self.kind, missing=self.vocabulary.required, sheet=grid.name or None)

        year = self.year_context(grid)
        locator = self.sections.headers
        for section in sections:
            for note in section.diagnostics:
                extraction.note(f"section@{sheet_row(section.start)}:{note}", degraded=True)
            if section.column_map is None:
                extraction.errors.append(
                    RowError(
                        row=sheet_row(section.start),
                        reason=f"No data header found in section of '{section.employee.name or '?'}'; section skipped",
                        code=RowIssue.MISSING_REQUIRED_FIELD,
                        field="date",
                    )
                )
                continue
            for index in range(section.column_map.data_start, section.end):
                if self.is_non_data_row(grid, index, locator):
                    continue
                self.collect(extraction, index, self.parse_row(grid, index, section, year, extraction))

        self.logger.info(
            "time attendance sections parsed",
            extra={"sections": len(sections), "records": len(extraction.records), "sheet": grid.name},
        )
        return extraction

    def parse_row(self, grid: Grid, index: int, section: Section, year: int, extraction: Extraction) -> RowOutcome:
        cm = section.column_map
        employee = section.employee
        date_raw = grid.cell(index, cm.get("date"))

        if is_blank(date_raw):
            return missing_field(index, "date")
        if not employee.name:
            return missing_field(index, "person_name")
        day = normalize_date(date_raw, default_year=year)
        if day is None:
            return invalid_field(index, "date", RowIssue.INVALID_DATE, date_raw)

        check_in = check_out = None
        movement = first_success(self.movement_strategies, grid, index, cm)
        if movement.ok:
            if movement.degraded:
                extraction.note(f"movements:{movement.strategy}", degraded=True)
            raw_in, raw_out = movement.value
            check_in = self._movement_time(raw_in, "check_in", index, extraction)
            check_out = self._movement_time(raw_out, "check_out", index, extraction)

        worked = normalize_duration(grid.cell(index, cm.get("worked_duration")))
        record = TimeAttendanceRecord(
            person_name=employee.name,
            job_title=employee.job_title,
            cost_center=employee.cost_center,
            date=day,
            planned_shift=self._shift_text(grid.cell(index, cm.get("planned_shift"))),
            actual_shift=self._shift_text(grid.cell(index, cm.get("actual_shift"))),
            check_in=check_in,
            check_out=check_out,
            worked_duration=worked.display if worked else None,
            worked_minutes=worked.minutes if worked else None,
        )
        return record.model_dump(exclude_none=True)

    def _movement_time(self, raw: Any, field_name: str, index: int, extraction: Extraction) -> Optional[str]:
        value = normalize_time(self._strip_suffix(raw))
        if value is None and not is_blank(raw):
            extraction.note(f"unparsed_movement@{sheet_row(index)}:{field_name}")
            self.logger.warning(
                "movement time not recognized",
                extra={"row": sheet_row(index), "field": field_name, "value": str(raw)},
            )
        return value

    def _suffix(self, value: Any) -> Optional[str]:
        if not isinstance(value, str):
            return None
        words = normalize_token(value).split()
        if len(words) < 2:
            return None
        for word in (words[-1], words[0]):
            if word in self._in_tokens:
                return IN
            if word in self._out_tokens:
                return OUT
        return None

    def _strip_suffix(self, value: Any) -> Any:
        if self._suffix(value) is None:
            return value
        words = value.strip().split()
        if normalize_token(words[-1]) in self._in_tokens | self._out_tokens:
            words = words[:-1]
        elif normalize_token(words[0]) in self._in_tokens | self._out_tokens:
            words = words[1:]
        return " ".join(words)

    def _mapped_movements(self, grid: Grid, index: int, cm: ColumnMap) -> Optional[Movement]:
        raw_in = grid.cell(index, cm.get("check_in"))
        raw_out = grid.cell(index, cm.get("check_out"))
        if is_blank(raw_in) and is_blank(raw_out):
            return None
        # A tag contradicting its column moves the value to the right field
        tag_in, tag_out = self._suffix(raw_in), self._suffix(raw_out)
        if (tag_in == OUT and tag_out != OUT) or (tag_out == IN and tag_in != IN):
            raw_in, raw_out = raw_out, raw_in
        return raw_in, raw_out

    def _scanned_movements(self, grid: Grid, index: int, cm: ColumnMap) -> Optional[Movement]:
        skip = {cm.get(f) for f in ("date", "planned_shift", "actual_shift", "worked_duration")}
        raw_in = raw_out = None
        for col, value in grid.non_empty(index):
            if col in skip:
                continue
            tag = self._suffix(value)
            if tag == IN and raw_in is None:
                raw_in = value
            elif tag == OUT and raw_out is None:
                raw_out = value
        if raw_in is None and raw_out is None:
            return None
        return raw_in, raw_out

    @staticmethod
    def _shift_text(value: Any) -> Optional[str]:
        if isinstance(value, (time, datetime, timedelta)):
            return normalize_time(value)
        return clean_text(value)
