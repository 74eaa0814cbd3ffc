"""
Declarative table specs: storage columns for every table the pipeline writes,
plus header aliases, types and defaults for sheets imported generically.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from driver_alerts.data.dto import ImportKind, RowIssue
from driver_alerts.data.grid import is_blank
from driver_alerts.data.normalize import (
    clean_text,
    coerce_boolean,
    normalize_date,
    normalize_datetime,
    normalize_duration,
    normalize_time,
    parse_number,
    validate_plate_number,
)
from driver_alerts.header_tokens import KindVocabulary

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SQL_TYPES = {
    "string": "TEXT",
    "plate": "TEXT",
    "integer": "INTEGER",
    "float": "REAL",
    "boolean": "INTEGER",
    "date": "TEXT",
    "datetime": "TEXT",
    "time": "TEXT",
    "duration": "TEXT",
}

TYPE_ISSUES = {
    "integer": RowIssue.INVALID_NUMBER,
    "float": RowIssue.INVALID_NUMBER,
    "date": RowIssue.INVALID_DATE,
    "datetime": RowIssue.INVALID_DATE,
    "time": RowIssue.INVALID_TIME,
    "duration": RowIssue.INVALID_DURATION,
    "plate": RowIssue.INVALID_PLATE_NUMBER,
}


def _to_int(value: Any) -> Optional[int]:
    number = parse_number(value)
    return int(round(number)) if number is not None else None


def _to_duration(value: Any) -> Optional[str]:
    duration = normalize_duration(value)
    return duration.display if duration else None


COERCERS: Dict[str, Callable[[Any], Any]] = {
    "string": clean_text,
    "plate": validate_plate_number,
    "integer": _to_int,
    "float": parse_number,
    "boolean": coerce_boolean,
    "date": normalize_date,
    "datetime": normalize_datetime,
    "time": normalize_time,
    "duration": _to_duration,
}


def coerce(value: Any, type_name: str) -> Tuple[Any, bool]:
    """(converted, ok). Blank input is (None, True); the caller applies defaults."""
    if is_blank(value):
        return None, True
    converter = COERCERS.get(type_name)
    if converter is None:
        raise ValueError(f"Unknown field type '{type_name}'")
    converted = converter(value)
    return converted, converted is not None


def is_email(value: Any) -> bool:
    return bool(EMAIL_RE.match(str(value)))


def assignment_type(value: Any) -> str:
    return "temporary" if str(value).strip().lower() == "temporary" else "regular"


def weekday_name(record: Mapping[str, Any]) -> Optional[str]:
    day = record.get("date")
    return date.fromisoformat(day).strftime("%A") if day else None


@dataclass(frozen=True)
class FieldSpec:
    name: str
    aliases: Tuple[str, ...]
    type: str = "string"
    required: bool = False
    default: Any = None
    validator: Optional[Callable[[Any], bool]] = None
    transform: Optional[Callable[[Any], Any]] = None


@dataclass(frozen=True)
class Reference:
    """A natural key in the sheet (`source`) stored as a foreign key id (`target`)."""
    source: str
    target: str
    table: str
    required: bool = False


@dataclass(frozen=True)
class TableSpec:
    name: str
    columns: Tuple[Tuple[str, str], ...]
    fields: Tuple[FieldSpec, ...] = ()
    natural_key: Optional[str] = None
    references: Tuple[Reference, ...] = ()
    derived: Mapping[str, Callable[[Mapping[str, Any]], Any]] = field(default_factory=dict)

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.columns)

    @property
    def importable(self) -> bool:
        return bool(self.fields)

    def vocabulary(self) -> KindVocabulary:
        return KindVocabulary(
            fields={f.name: list(f.aliases) for f in self.fields},
            required=[f.name for f in self.fields if f.required and f.default is None],
        )


def _cols(*pairs: Tuple[str, str]) -> Tuple[Tuple[str, str], ...]:
    return tuple((name, SQL_TYPES[kind]) for name, kind in pairs)


TABLES: Dict[str, TableSpec] = {
    "people": TableSpec(
        name="people",
        natural_key="name",
        columns=_cols(
            ("name", "string"),
            ("role", "string"),
            ("costcenter", "string"),
            ("phone", "string"),
            ("email", "string"),
            ("license_type", "string"),
            ("status", "string"),
        ),
        fields=(
            FieldSpec("name", ("name", "név", "driver name", "sofőr"), required=True),
            FieldSpec("role", ("role", "szerepkör", "beosztás"), default="driver"),
            FieldSpec("costcenter", ("costcenter", "cost center", "költséghely")),
            FieldSpec("phone", ("phone", "telefon", "telefonszám")),
            FieldSpec("email", ("email", "e-mail", "e mail"), validator=is_email),
            FieldSpec("license_type", ("licensetype", "license type", "jogosítvány", "jogosítvány típus")),
            FieldSpec("status", ("status", "státusz", "állapot"), default="active"),
        ),
    ),
    "vehicles": TableSpec(
        name="vehicles",
        natural_key="plate_number",
        columns=_cols(
            ("plate_number", "plate"),
            ("weight", "float"),
            ("packtime", "integer"),
            ("type", "string"),
            ("status", "string"),
            ("max_capacity", "float"),
        ),
        fields=(
            FieldSpec("plate_number", ("platenumber", "plate number", "plate", "rendszám"), "plate", required=True),
            FieldSpec("weight", ("weight", "súly", "tömeg"), "float"),
            FieldSpec("packtime", ("packtime", "pack time", "pakolási idő"), "integer"),
            FieldSpec("type", ("type", "típus", "vehicle type")),
            FieldSpec("status", ("status", "státusz", "állapot"), default="active"),
            FieldSpec("max_capacity", ("maxcapacity", "max capacity", "kapacitás", "teherbírás"), "float"),
        ),
    ),
    "addresses": TableSpec(
        name="addresses",
        columns=_cols(
            ("district", "string"),
            ("city", "string"),
            ("postal_code", "string"),
            ("notes", "string"),
            ("delivery_restrictions", "string"),
        ),
        fields=(
            FieldSpec("district", ("district", "kerület", "körzet"), required=True),
            FieldSpec("city", ("city", "város", "település"), required=True),
            FieldSpec("postal_code", ("postalcode", "postal code", "zip", "irányítószám")),
            FieldSpec("notes", ("notes", "megjegyzés")),
            FieldSpec("delivery_restrictions", ("deliveryrestrictions", "delivery restrictions", "korlátozások")),
        ),
    ),
    "rounds": TableSpec(
        name="rounds",
        columns=_cols(
            ("date", "date"),
            ("day", "string"),
            ("planned_round_time", "integer"),
            ("addresses", "string"),
            ("plate_number", "plate"),
            ("driver_id", "integer"),
            ("address_counts", "integer"),
            ("overall_weight", "float"),
            ("round_start", "time"),
            ("round_end", "time"),
            ("packtime", "integer"),
            ("worktime_start", "time"),
            ("worktime_end", "time"),
            ("saved_time", "integer"),
            ("delta_drive_time", "integer"),
        ),
        fields=(
            FieldSpec("date", ("date", "dátum"), "date", required=True),
            FieldSpec("planned_round_time", ("plannedroundtime", "planned round time"), "integer"),
            FieldSpec("addresses", ("addresses", "címek")),
            FieldSpec("plate_number", ("platenumber", "plate number", "rendszám"), "plate"),
            FieldSpec("driver_name", ("drivername", "driver name", "driver", "sofőr")),
            FieldSpec("address_counts", ("addresscounts", "address counts", "címek száma"), "integer"),
            FieldSpec("overall_weight", ("overallweight", "overall weight", "össztömeg"), "float"),
            FieldSpec("round_start", ("roundstart", "round start", "kör kezdete"), "time"),
            FieldSpec("round_end", ("roundend", "round end", "kör vége"), "time"),
            FieldSpec("packtime", ("packtime", "pack time"), "integer"),
            FieldSpec("worktime_start", ("worktimestart", "worktime start", "munkaidő kezdete"), "time"),
            FieldSpec("worktime_end", ("worktimeend", "worktime end", "munkaidő vége"), "time"),
            FieldSpec("saved_time", ("savedtime", "saved time"), "integer"),
            FieldSpec("delta_drive_time", ("deltadrivetime", "delta drive time"), "integer"),
        ),
        references=(Reference("driver_name", "driver_id", "people"),),
        derived={"day": weekday_name},
    ),
    "vehicle_assignments": TableSpec(
        name="vehicle_assignments",
        columns=_cols(
            ("vehicle_id", "integer"),
            ("driver_id", "integer"),
            ("start_date", "date"),
            ("end_date", "date"),
            ("assignment_type", "string"),
            ("approved_by", "string"),
        ),
        fields=(
            FieldSpec("plate_number", ("platenumber", "plate number", "rendszám"), "plate", required=True),
            FieldSpec("driver_name", ("drivername", "driver name", "driver", "sofőr"), required=True),
            FieldSpec("start_date", ("startdate", "start date", "kezdő dátum"), "date", required=True),
            FieldSpec("end_date", ("enddate", "end date", "záró dátum"), "date"),
            FieldSpec(
                "assignment_type",
                ("assignmenttype", "assignment type", "típus"),
                default="regular",
                transform=assignment_type,
            ),
            FieldSpec("approved_by", ("approvedby", "approved by", "jóváhagyta")),
        ),
        references=(
            Reference("plate_number", "vehicle_id", "vehicles", required=True),
            Reference("driver_name", "driver_id", "people", required=True),
        ),
    ),
    "time_records": TableSpec(
        name="time_records",
        columns=_cols(
            ("driver_id", "integer"),
            ("date", "date"),
            ("check_in_time", "time"),
            ("check_out_time", "time"),
            ("total_hours", "float"),
            ("overtime_hours", "float"),
            ("notes", "string"),
        ),
        fields=(
            FieldSpec("driver_name", ("drivername", "driver name", "driver", "név"), required=True),
            FieldSpec("date", ("date", "dátum"), "date", required=True),
            FieldSpec("check_in_time", ("checkintime", "check in time", "check in", "érkezés"), "time"),
            FieldSpec("check_out_time", ("checkouttime", "check out time", "check out", "távozás"), "time"),
            FieldSpec("total_hours", ("totalhours", "total hours", "összes óra"), "float"),
            FieldSpec("overtime_hours", ("overtimehours", "overtime hours", "túlóra"), "float"),
            FieldSpec("notes", ("notes", "megjegyzés")),
        ),
        references=(Reference("driver_name", "driver_id", "people", required=True),),
    ),
    "stop_events_alert": TableSpec(
        name="stop_events_alert",
        columns=_cols(
            ("plate_number", "plate"),
            ("arrival_time", "datetime"),
            ("standing_duration", "duration"),
            ("ignition_status", "string"),
            ("position", "string"),
            ("important_point", "string"),
            ("status", "string"),
        ),
    ),
    "staging_vehicle_movements": TableSpec(
        name="staging_vehicle_movements",
        columns=_cols(
            ("plate_number", "plate"),
            ("timestamp", "datetime"),
            ("area_name", "string"),
            ("direction", "string"),
            ("time_spent", "integer"),
            ("distance", "float"),
        ),
    ),
    "staging_time_records": TableSpec(
        name="staging_time_records",
        columns=_cols(
            ("person_name", "string"),
            ("job_title", "string"),
            ("cost_center", "string"),
            ("date", "date"),
            ("planned_shift", "string"),
            ("actual_shift", "string"),
            ("check_in", "time"),
            ("check_out", "time"),
            ("worked_duration", "duration"),
            ("worked_minutes", "integer"),
        ),
    ),
}

KIND_TABLES = {
    ImportKind.TIME_ATTENDANCE: "staging_time_records",
    ImportKind.STOP_EVENTS: "stop_events_alert",
    ImportKind.VEHICLE_MOVEMENTS: "staging_vehicle_movements",
}


def importable_tables() -> Dict[str, TableSpec]:
    return {name: spec for name, spec in TABLES.items() if spec.importable}
