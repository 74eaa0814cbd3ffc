from __future__ import annotations

from driver_alerts.data.adapters.base import FlatSheetAdapter, RowOutcome, invalid_field, missing_field
from driver_alerts.data.dto import ColumnMap, ImportKind, RowIssue, VehicleMovementRecord
from driver_alerts.data.grid import Grid, is_blank
from driver_alerts.data.normalize import (
    clean_text,
    normalize_datetime,
    normalize_duration,
    parse_number,
    validate_plate_number,
)


class VehicleMovementsAdapter(FlatSheetAdapter):
    """
    iFleet area movement export: plate, time stamp, area, direction,
    time spent in the area and distance covered there.
    """

    kind = ImportKind.VEHICLE_MOVEMENTS.value

    def parse_row(self, grid: Grid, index: int, column_map: ColumnMap, year: int) -> RowOutcome:
        plate_raw = grid.cell(index, column_map.get("plate_number"))
        stamp_raw = grid.cell(index, column_map.get("timestamp"))

        if is_blank(plate_raw):
            return missing_field(index, "plate_number")
        plate = validate_plate_number(plate_raw, self.headers.plate_denylist)
        if plate is None:
            return invalid_field(index, "plate_number", RowIssue.INVALID_PLATE_NUMBER, plate_raw)

        if is_blank(stamp_raw):
            return missing_field(index, "timestamp")
        timestamp = normalize_datetime(stamp_raw, default_year=year)
        if timestamp is None:
            return invalid_field(index, "timestamp", RowIssue.INVALID_DATE, stamp_raw)

        spent_raw = grid.cell(index, column_map.get("time_spent"))
        spent = normalize_duration(spent_raw)
        if spent is None and not is_blank(spent_raw):
            return invalid_field(index, "time_spent", RowIssue.INVALID_DURATION, spent_raw)

        distance_raw = grid.cell(index, column_map.get("distance"))
        distance = parse_number(distance_raw)
        if distance is None and not is_blank(distance_raw):
            return invalid_field(index, "distance", RowIssue.INVALID_NUMBER, distance_raw)

        record = VehicleMovementRecord(
            plate_number=plate,
            timestamp=timestamp,
            area_name=clean_text(grid.cell(index, column_map.get("area_name"))),
            direction=clean_text(grid.cell(index, column_map.get("direction"))),
            time_spent=spent.minutes if spent else None,
            distance=distance,
        )
        return record.model_dump(exclude_none=True)
