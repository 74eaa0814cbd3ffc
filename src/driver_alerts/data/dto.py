from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel


class ImportKind(str, Enum):
    TIME_ATTENDANCE = "time-attendance"
    STOP_EVENTS = "stop-events"
    VEHICLE_MOVEMENTS = "vehicle-movements"
    GENERIC = "generic"
    AUTODETECT = "autodetect"


class RowIssue(str, Enum):
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_DATE = "invalid_date"
    INVALID_TIME = "invalid_time"
    INVALID_DURATION = "invalid_duration"
    INVALID_NUMBER = "invalid_number"
    INVALID_PLATE_NUMBER = "invalid_plate_number"
    INVALID_VALUE = "invalid_value"
    UNRESOLVED_REFERENCE = "unresolved_reference"
    STORAGE_ERROR = "storage_error"


@dataclass(frozen=True)
class RowError:
    row: int  # 1-based sheet row
    reason: str
    code: RowIssue = RowIssue.INVALID_VALUE
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "reason": self.reason, "code": self.code.value, "field": self.field}


@dataclass(frozen=True)
class ColumnMap:
    """
    Logical field -> physical column, built once per sheet or section.
    A field that was not found is simply absent (get() returns None).
    """
    columns: Mapping[str, int]
    header_row: int
    sub_row_offset: int = 0
    strategy: str = "token_header"
    degraded: bool = False

    def __post_init__(self):
        object.__setattr__(self, "columns", MappingProxyType(dict(self.columns)))

    def get(self, field_name: str) -> Optional[int]:
        return self.columns.get(field_name)

    def __contains__(self, field_name: object) -> bool:
        return field_name in self.columns

    @property
    def data_start(self) -> int:
        return self.header_row + self.sub_row_offset + 1

    def with_columns(self, columns: Mapping[str, int], **changes: Any) -> "ColumnMap":
        merged = dict(self.columns)
        merged.update(columns)
        return replace(self, columns=merged, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": dict(self.columns),
            "header_row": self.header_row,
            "sub_row_offset": self.sub_row_offset,
            "strategy": self.strategy,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class EmployeeInfo:
    name: Optional[str] = None
    job_title: Optional[str] = None
    cost_center: Optional[str] = None


@dataclass(frozen=True)
class Section:
    """Rows [start, end) of one person's block in a time-attendance report."""
    start: int
    end: int
    employee: EmployeeInfo = field(default_factory=EmployeeInfo)
    column_map: Optional[ColumnMap] = None
    terminated_by: str = "end_of_grid"
    diagnostics: tuple[str, ...] = ()

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Section start {self.start} must precede end {self.end}")


class TimeAttendanceRecord(BaseModel):
    person_name: str
    job_title: Optional[str] = None
    cost_center: Optional[str] = None
    date: str
    planned_shift: Optional[str] = None
    actual_shift: Optional[str] = None
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    worked_duration: Optional[str] = None
    worked_minutes: Optional[int] = None


class StopEventRecord(BaseModel):
    plate_number: str
    arrival_time: str
    standing_duration: Optional[str] = None
    ignition_status: Optional[str] = None
    position: Optional[str] = None
    important_point: Optional[str] = None
    status: Optional[str] = None


class VehicleMovementRecord(BaseModel):
    plate_number: str
    timestamp: str
    area_name: Optional[str] = None
    direction: Optional[str] = None
    time_spent: Optional[int] = None
    distance: Optional[float] = None


@dataclass
class Extraction:
    """Mutable accumulator an adapter fills while walking rows."""
    records: list[Dict[str, Any]] = field(default_factory=list)
    rows: list[int] = field(default_factory=list)  # sheet row of each record
    errors: list[RowError] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    degraded: bool = False

    def note(self, diagnostic: str, degraded: bool = False) -> None:
        if diagnostic not in self.diagnostics:
            self.diagnostics.append(diagnostic)
        self.degraded = self.degraded or degraded


@dataclass(frozen=True)
class ImportResult:
    records: tuple[Dict[str, Any], ...]
    success_count: int
    error_count: int
    errors: tuple[RowError, ...]
    kind: str = ImportKind.GENERIC.value
    sheet_name: Optional[str] = None
    table: Optional[str] = None
    degraded: bool = False
    diagnostics: tuple[str, ...] = ()
    stored_count: Optional[int] = None
    skipped_duplicate_file: bool = False
    record_rows: tuple[int, ...] = ()

    @classmethod
    def from_extraction(
        cls,
        extraction: Extraction,
        kind: str,
        sheet_name: Optional[str] = None,
        table: Optional[str] = None,
    ) -> "ImportResult":
        return cls(
            records=tuple(extraction.records),
            success_count=len(extraction.records),
            error_count=len(extraction.errors),
            errors=tuple(sorted(extraction.errors, key=lambda e: e.row)),
            kind=kind,
            sheet_name=sheet_name,
            table=table,
            degraded=extraction.degraded,
            diagnostics=tuple(extraction.diagnostics),
            record_rows=tuple(extraction.rows),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "sheet_name": self.sheet_name,
            "table": self.table,
            "records": list(self.records),
            "success_count": self.success_count,
            "error_count": self.error_count,
            "errors": [e.to_dict() for e in self.errors],
            "degraded": self.degraded,
            "diagnostics": list(self.diagnostics),
            "stored_count": self.stored_count,
            "skipped_duplicate_file": self.skipped_duplicate_file,
        }
