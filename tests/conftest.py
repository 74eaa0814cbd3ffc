from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

import pytest
from openpyxl import Workbook

from driver_alerts.config import Settings
from driver_alerts.data.pipeline import IngestPipeline
from driver_alerts.data.storage import Database
from driver_alerts.header_tokens import HeaderConfig

STOP_EVENTS_HEADER = ["Rendszám", "Érkezés időpont", "Állás", "Gyújtás", "Pozíció", "Fontos pont"]
MOVEMENTS_HEADER = [
    "Rendszám",
    "Időpont",
    "Terület neve",
    "Irány",
    "Területen töltött idő",
    "Területen megtett táv",
]


def write_workbook(path: Path, rows: Iterable[Sequence[Any]], title: str = "Sheet1", merges: Iterable[str] = ()) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for r, row in enumerate(rows, start=1):
        for c, value in enumerate(row, start=1):
            if value is not None:
                ws.cell(row=r, column=c, value=value)
    for rng in merges:
        ws.merge_cells(rng)
    wb.save(path)
    return path


def attendance_rows() -> list[list[Any]]:
    """Two-person SysWeb report with a merged "Mozgások" header over BE / KI sub-labels."""
    header = ["Dátum", "Terv", "Tény", "Mozgások", "Mozgások", "Mozgások", "Mozgások", "Mozgások", "Ledolg."]
    sub = [None, None, None, "BE", None, None, None, "KI", None]
    return [
        ["Jelenléti ív"],
        ["Név:", "Kovács János"],
        ["Egység:", "Sofőr"],
        ["Költséghely:", "1200"],
        [],
        header,
        sub,
        [datetime(2024, 3, 1), "06:00-14:00", "06:00-14:00", "05:58", None, None, None, "14:05", "8:07"],
        ["2024.03.02", "06:00-14:00", "06:00-14:00", "06:01", None, None, None, "14:00", "7:59"],
        ["Összesen:", None, None, None, None, None, None, None, "16:06"],
        [],
        ["Név: Szabó Anna"],
        ["Egység:", "Raktáros"],
        header,
        sub,
        ["03.01", "08:00-16:00", "08:00-16:00", "15:58 KI", None, None, None, "07:55 BE", "8:03"],
    ]


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def headers():
    return HeaderConfig()


@pytest.fixture
def pipeline(settings, headers):
    return IngestPipeline(settings=settings, headers=headers)


@pytest.fixture
def db(tmp_path):
    return Database(tmp_path / "driver_alerts.db")
