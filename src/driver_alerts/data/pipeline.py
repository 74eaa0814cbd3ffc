import logging
from pathlib import Path
from typing import Optional, Union

from driver_alerts.config import Settings
from driver_alerts.data.adapters import (
    GenericTableAdapter,
    SheetAdapter,
    StopEventsAdapter,
    TimeAttendanceAdapter,
    VehicleMovementsAdapter,
)
from driver_alerts.data.detect import detect_import_kind, detect_table
from driver_alerts.data.dto import ImportKind, ImportResult
from driver_alerts.data.grid import Grid, resolve
from driver_alerts.data.schemas import KIND_TABLES, TABLES
from driver_alerts.data.workbook import Workbook, read_workbook
from driver_alerts.exceptions import UnknownImportKindError
from driver_alerts.header_tokens import HeaderConfig, load_header_config


class IngestPipeline:
    """
    Workbook -> Grid -> located headers/sections -> normalized records.
    Owns no storage; every call works on its own Grid and ColumnMaps.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        headers: Optional[HeaderConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings or Settings.load()
        self.headers = headers or load_header_config(self.settings.paths.headers_path)
        self.logger = logger or logging.getLogger(__name__)

    def parse(
        self,
        path: Path,
        kind: Union[ImportKind, str] = ImportKind.AUTODETECT,
        sheet_name: Optional[str] = None,
        table: Optional[str] = None,
    ) -> ImportResult:
        return self.parse_workbook(read_workbook(path), kind, sheet_name=sheet_name, table=table)

    def parse_workbook(
        self,
        workbook: Workbook,
        kind: Union[ImportKind, str] = ImportKind.AUTODETECT,
        sheet_name: Optional[str] = None,
        table: Optional[str] = None,
    ) -> ImportResult:
        grid = resolve(workbook.sheet(sheet_name))
        return self.parse_grid(grid, kind, table=table, source=workbook.path)

    def detect(self, grid: Grid, source: Optional[Path] = None) -> ImportKind:
        imports = self.settings.imports
        return detect_import_kind(
            source,
            grid,
            self.headers,
            scan_rows=imports.header_scan_rows,
            min_matches=imports.header_min_matches,
        )

    def parse_grid(
        self,
        grid: Grid,
        kind: Union[ImportKind, str] = ImportKind.AUTODETECT,
        table: Optional[str] = None,
        source: Optional[Path] = None,
    ) -> ImportResult:
        try:
            kind = ImportKind(kind)
        except ValueError as exc:
            raise UnknownImportKindError(f"Unknown import kind '{kind}'") from exc
        if kind == ImportKind.AUTODETECT:
            kind = self.detect(grid, source)
            self.logger.info("import kind detected", extra={"kind": kind.value, "sheet": grid.name})

        target = self.target_table(kind, grid, table)
        adapter = self.adapter_for(kind, target)
        extraction = adapter.extract(grid)
        result = ImportResult.from_extraction(extraction, kind.value, sheet_name=grid.name or None, table=target)

        self.logger.info(
            "sheet parsed",
            extra={
                "kind": result.kind,
                "table": target,
                "sheet": grid.name,
                "success": result.success_count,
                "errors": result.error_count,
            },
        )
        if result.degraded:
            self.logger.warning(
                "sheet parsed with fallback heuristics",
                extra={"kind": result.kind, "sheet": grid.name, "diagnostics": list(result.diagnostics)},
            )
        return result

    def target_table(self, kind: ImportKind, grid: Grid, table: Optional[str]) -> str:
        if kind != ImportKind.GENERIC:
            return KIND_TABLES[kind]
        target = table or detect_table(grid, self.settings.imports.header_scan_rows)
        if target is None:
            raise UnknownImportKindError(f"Could not match sheet '{grid.name}' to any importable table")
        if target not in TABLES or not TABLES[target].importable:
            raise UnknownImportKindError(f"Table '{target}' cannot be imported from a generic sheet")
        return target

    def adapter_for(self, kind: ImportKind, table: Optional[str] = None) -> SheetAdapter:
        common = dict(headers=self.headers, imports=self.settings.imports, logger=self.logger)
        if kind == ImportKind.TIME_ATTENDANCE:
            return TimeAttendanceAdapter(profile=self.settings.template(), **common)
        if kind == ImportKind.STOP_EVENTS:
            return StopEventsAdapter(**common)
        if kind == ImportKind.VEHICLE_MOVEMENTS:
            return VehicleMovementsAdapter(**common)
        if kind == ImportKind.GENERIC and table:
            return GenericTableAdapter(TABLES[table], **common)
        raise UnknownImportKindError(f"No adapter for import kind '{kind.value}'")
