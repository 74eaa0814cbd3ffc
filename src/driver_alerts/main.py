from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from driver_alerts.config import settings
from driver_alerts.data.dto import ImportKind
from driver_alerts.data.grid import resolve
from driver_alerts.data.import_service import ImportService
from driver_alerts.data.locator import HeaderLocator, SectionLocator
from driver_alerts.data.pipeline import IngestPipeline
from driver_alerts.data.schemas import KIND_TABLES, TABLES
from driver_alerts.data.storage import Database
from driver_alerts.data.workbook import read_workbook
from driver_alerts.exceptions import DriverAlertsError

cli = typer.Typer(help="Driver Alerts CLI (Excel ingestion)")

MAX_ERRORS_SHOWN = 20


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.logging.level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.callback()
def main() -> None:
    _configure_logging()


@cli.command()
def version() -> None:
    """Print runtime version."""
    typer.echo(f"{settings.app.name} {settings.app.version}")


@cli.command("import")
def import_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Workbook to import (.xlsx or .xls)"),
    kind: ImportKind = typer.Option(ImportKind.AUTODETECT, help="Import kind"),
    table: Optional[str] = typer.Option(None, help="Target table for generic imports"),
    sheet: Optional[str] = typer.Option(None, help="Sheet name (defaults to the first sheet)"),
    db: Path = typer.Option(settings.paths.db_path, help="SQLite database path"),
) -> None:
    """Parse a workbook and store its records."""
    service = ImportService(Database(db), settings=settings)
    try:
        result = service.import_file(path, kind, sheet_name=sheet, table=table)
    except DriverAlertsError as exc:
        typer.echo(f"Import failed: {exc}", err=True)
        raise typer.Exit(code=1)

    if result.skipped_duplicate_file:
        typer.echo(f"{path.name} was already imported into {result.table}; nothing stored.")
        return
    typer.echo(
        f"{result.kind} -> {result.table}: {result.success_count} stored, {result.error_count} errors"
        + (" (degraded: " + ", ".join(result.diagnostics) + ")" if result.degraded else "")
    )
    for error in result.errors[:MAX_ERRORS_SHOWN]:
        typer.echo(f"  row {error.row}: {error.reason}")
    if result.error_count > MAX_ERRORS_SHOWN:
        typer.echo(f"  ... {result.error_count - MAX_ERRORS_SHOWN} more")


@cli.command()
def inspect(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Workbook to inspect"),
    sheet: Optional[str] = typer.Option(None, help="Sheet name (defaults to the first sheet)"),
) -> None:
    """Show sheets, the detected import kind and the located header."""
    pipeline = IngestPipeline(settings=settings)
    try:
        workbook = read_workbook(path)
        grid = resolve(workbook.sheet(sheet))
    except DriverAlertsError as exc:
        typer.echo(f"Cannot read workbook: {exc}", err=True)
        raise typer.Exit(code=1)

    kind = pipeline.detect(grid, path)
    typer.echo(f"Sheets: {', '.join(workbook.sheet_names)}")
    typer.echo(f"Sheet '{grid.name}': {len(grid)} rows x {grid.width} columns, detected kind: {kind.value}")

    imports = settings.imports
    if kind == ImportKind.TIME_ATTENDANCE:
        locator = SectionLocator(pipeline.headers.time_attendance, pipeline.headers.sections, imports, settings.template())
        try:
            sections = locator.locate(grid)
        except DriverAlertsError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1)
        for section in sections:
            columns = section.column_map.to_dict() if section.column_map else "no header"
            typer.echo(f"  rows {section.start + 1}-{section.end}: {section.employee.name} {columns}")
        return

    if kind == ImportKind.GENERIC:
        table = pipeline.target_table(kind, grid, None)
        vocabulary = TABLES[table].vocabulary()
    else:
        table = KIND_TABLES[kind]
        vocabulary = pipeline.headers.vocabulary(kind.value)
    locator = HeaderLocator(vocabulary, scan_rows=imports.header_scan_rows, min_matches=imports.header_min_matches)
    located = locator.find(grid)
    if not located.ok:
        typer.echo(f"No header found for {kind.value} (tried: {', '.join(located.attempts)})", err=True)
        raise typer.Exit(code=1)
    snapshot = locator.snapshot(grid, located.value)
    typer.echo(f"Target table: {table}")
    typer.echo(f"Header row {located.value.header_row + 1} via {located.strategy}")
    for match in snapshot.mapped:
        typer.echo(f"  {match.field} <- '{match.raw}' (column {match.column + 1})")
    if snapshot.unmapped:
        typer.echo(f"  unmapped: {', '.join(snapshot.unmapped)}")
    if snapshot.missing_required:
        typer.echo(f"  missing required: {', '.join(snapshot.missing_required)}")


@cli.command()
def show(
    table: str = typer.Argument(..., help="Table to print"),
    limit: int = typer.Option(20, help="Maximum rows"),
    db: Path = typer.Option(settings.paths.db_path, help="SQLite database path"),
) -> None:
    """Print stored rows of a table."""
    try:
        frame = Database(db).read_table(table, limit=limit)
    except DriverAlertsError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    if frame.empty:
        typer.echo(f"{table} is empty")
        return
    typer.echo(frame.to_string(index=False))


if __name__ == "__main__":
    cli()
