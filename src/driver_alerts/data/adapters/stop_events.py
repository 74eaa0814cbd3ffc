from __future__ import annotations

from driver_alerts.data.adapters.base import FlatSheetAdapter, RowOutcome, invalid_field, missing_field
from driver_alerts.data.dto import ColumnMap, Extraction, ImportKind, RowIssue, StopEventRecord
from driver_alerts.data.grid import Grid, is_blank
from driver_alerts.data.normalize import clean_text, normalize_datetime, normalize_duration, validate_plate_number


class StopEventsAdapter(FlatSheetAdapter):
    """
    Parses the iFleet stop list ("állás lista") export: one stop per row.
    The important-point column keeps its original text (often a customer name).
    Repeated (plate, arrival, position) rows are dropped.
    """

    kind = ImportKind.STOP_EVENTS.value

    def begin(self, extraction: Extraction) -> None:
        self._seen: set[tuple] = set()
        self._duplicates = 0

    def finish(self, extraction: Extraction) -> None:
        if self._duplicates:
            extraction.note(f"duplicates_dropped:{self._duplicates}")
            self.logger.info("duplicate stop events dropped", extra={"count": self._duplicates})

    def parse_row(self, grid: Grid, index: int, column_map: ColumnMap, year: int) -> RowOutcome:
        plate_raw = grid.cell(index, column_map.get("plate_number"))
        arrival_raw = grid.cell(index, column_map.get("arrival_time"))

        if is_blank(plate_raw):
            return missing_field(index, "plate_number")
        plate = validate_plate_number(plate_raw, self.headers.plate_denylist)
        if plate is None:
            return invalid_field(index, "plate_number", RowIssue.INVALID_PLATE_NUMBER, plate_raw)

        if is_blank(arrival_raw):
            return missing_field(index, "arrival_time")
        arrival = normalize_datetime(arrival_raw, default_year=year)
        if arrival is None:
            return invalid_field(index, "arrival_time", RowIssue.INVALID_DATE, arrival_raw)

        standing_raw = grid.cell(index, column_map.get("standing_duration"))
        standing = normalize_duration(standing_raw)
        if standing is None and not is_blank(standing_raw):
            return invalid_field(index, "standing_duration", RowIssue.INVALID_DURATION, standing_raw)
        position = clean_text(grid.cell(index, column_map.get("position")))

        key = (plate, arrival, position)
        if key in self._seen:
            self._duplicates += 1
            return None
        self._seen.add(key)

        record = StopEventRecord(
            plate_number=plate,
            arrival_time=arrival,
            standing_duration=standing.display if standing else None,
            ignition_status=clean_text(grid.cell(index, column_map.get("ignition_status"))),
            position=position,
            important_point=clean_text(grid.cell(index, column_map.get("important_point"))),
            status=clean_text(grid.cell(index, column_map.get("status"))),
        )
        return record.model_dump(exclude_none=True)
