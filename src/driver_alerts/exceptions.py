from pathlib import Path
from typing import Optional


class DriverAlertsError(Exception):
    """Base exception for Driver Alerts errors."""
    pass

class ConfigError(DriverAlertsError):
    """Configuration loading specific errors."""
    pass

class DataSourceError(DriverAlertsError):
    """Data ingestion specific errors. Always abort the whole import."""
    pass


class FileReadError(DataSourceError):
    """The workbook could not be opened or decoded."""

    def __init__(self, path: Path, cause: Optional[BaseException] = None):
        self.path = Path(path)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to read workbook {self.path}{detail}")


class NoHeaderFoundError(DataSourceError):
    """No header row carries the columns an import kind requires."""

    def __init__(self, kind: str, missing: Optional[list[str]] = None, sheet: Optional[str] = None):
        self.kind = kind
        self.missing = list(missing or [])
        self.sheet = sheet
        where = f" in sheet '{sheet}'" if sheet else ""
        what = f" (missing: {', '.join(self.missing)})" if self.missing else ""
        super().__init__(f"No usable {kind} header found{where}{what}")


class NoSectionsFoundError(DataSourceError):
    """A personnel report contained no section start marker."""

    def __init__(self, marker: str, sheet: Optional[str] = None):
        self.marker = marker
        self.sheet = sheet
        where = f" in sheet '{sheet}'" if sheet else ""
        super().__init__(f"No section start marker '{marker}' found{where}")


class UnknownImportKindError(DataSourceError):
    """The import kind (or generic target table) is not supported."""
    pass
