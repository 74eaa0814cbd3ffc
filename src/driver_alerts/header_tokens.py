from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ConfigDict, ValidationError

from driver_alerts.data.normalize import DEFAULT_PLATE_DENYLIST
from driver_alerts.exceptions import ConfigError


class KindVocabulary(BaseModel):
    """
    Header tokens for one import kind.
    `layout` is the physical column order used when no header token matches at all.
    """
    model_config = ConfigDict(extra="ignore")
    fields: Dict[str, List[str]] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)
    layout: List[str] = Field(default_factory=list)


class SectionLabels(BaseModel):
    model_config = ConfigDict(extra="ignore")
    start: List[str] = Field(default_factory=lambda: ["név"])
    terminators: List[str] = Field(
        default_factory=lambda: ["összesen", "mindösszesen", "összesítés", "total"]
    )
    signature: List[str] = Field(
        default_factory=lambda: ["aláírás", "munkavállaló aláírása", "ellenőrizte", "jóváhagyta", "signature"]
    )
    metadata: Dict[str, List[str]] = Field(
        default_factory=lambda: {
            "name": ["név"],
            "job_title": ["egység", "munkakör", "beosztás"],
            "cost_center": ["költséghely", "cost center"],
        }
    )
    movement: List[str] = Field(default_factory=lambda: ["mozgások", "mozgás", "movements"])
    check_in_tokens: List[str] = Field(default_factory=lambda: ["be", "in"])
    check_out_tokens: List[str] = Field(default_factory=lambda: ["ki", "out"])


def _time_attendance() -> KindVocabulary:
    return KindVocabulary(
        fields={
            "date": ["dátum", "nap", "date"],
            "planned_shift": ["terv", "tervezett", "planned shift", "planned"],
            "actual_shift": ["tény", "tényleges", "actual shift", "actual"],
            "movements": ["mozgások", "mozgás", "movements"],
            "check_in": ["be", "belépés", "check in", "checkin"],
            "check_out": ["ki", "kilépés", "check out", "checkout"],
            "worked_duration": ["ledolg", "ledolgozott", "ledolgozott idő", "worked", "worked time"],
        },
        required=["date"],
    )


def _stop_events() -> KindVocabulary:
    return KindVocabulary(
        fields={
            "plate_number": ["rendszám", "plate number", "platenumber", "plate", "license plate"],
            "arrival_time": ["érkezés időpont", "érkezés", "érkezési idő", "arrival time", "arrival"],
            "standing_duration": ["állás", "állásidő", "állási idő", "stay time", "standing duration", "standing"],
            "ignition_status": ["gyújtás", "ignition", "ignition status"],
            "position": ["pozíció", "helyszín", "cím", "position", "location"],
            "important_point": ["fontos pont", "fontos", "important point", "important info", "important"],
            "status": ["státusz", "állapot", "status"],
        },
        required=["plate_number", "arrival_time"],
        layout=[
            "plate_number",
            "arrival_time",
            "standing_duration",
            "ignition_status",
            "position",
            "important_point",
        ],
    )


def _vehicle_movements() -> KindVocabulary:
    return KindVocabulary(
        fields={
            "plate_number": ["rendszám", "plate number", "platenumber", "plate", "jármű"],
            "timestamp": ["időpont", "dátum", "date", "timestamp", "time"],
            "area_name": ["terület neve", "terület", "area name", "area"],
            "direction": ["irány", "way", "direction"],
            "time_spent": ["területen töltött idő", "töltött idő", "time spent", "duration"],
            "distance": ["területen megtett táv", "megtett táv", "táv", "distance", "km"],
        },
        required=["plate_number", "timestamp"],
        layout=["plate_number", "timestamp", "area_name", "direction", "time_spent", "distance"],
    )


class HeaderConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")
    time_attendance: KindVocabulary = Field(default_factory=_time_attendance)
    stop_events: KindVocabulary = Field(default_factory=_stop_events)
    vehicle_movements: KindVocabulary = Field(default_factory=_vehicle_movements)
    sections: SectionLabels = Field(default_factory=SectionLabels)
    plate_denylist: List[str] = Field(default_factory=lambda: list(DEFAULT_PLATE_DENYLIST))
    # Checked in order; "ifleet-allas-lista" must resolve to stop events before "ifleet".
    filename_hints: Dict[str, str] = Field(
        default_factory=lambda: {
            "allas-lista": "stop-events",
            "sysweb": "time-attendance",
            "ifleet": "vehicle-movements",
        }
    )

    def vocabulary(self, kind: str) -> KindVocabulary:
        return getattr(self, kind.replace("-", "_"))


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_header_config(path: Optional[Path] = None) -> HeaderConfig:
    """
    Load header token vocabularies from YAML on top of the built-in defaults.
    Keys missing from the file keep their default aliases.
    """
    file_path = Path(path) if path else Path("config/headers.yaml")
    if not file_path.exists():
        return HeaderConfig()

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        merged = _deep_merge(HeaderConfig().model_dump(), data)
        return HeaderConfig.model_validate(merged)
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        raise ConfigError(f"Invalid header config {file_path}: {exc}") from exc
