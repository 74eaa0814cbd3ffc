from __future__ import annotations

from typing import Any, Dict, Optional

from driver_alerts.data.adapters.base import SheetAdapter, RowOutcome, invalid_field, missing_field
from driver_alerts.data.dto import ColumnMap, Extraction, ImportKind, RowIssue
from driver_alerts.data.grid import Grid
from driver_alerts.data.schemas import TYPE_ISSUES, TableSpec, coerce
from driver_alerts.exceptions import UnknownImportKindError


class GenericTableAdapter(SheetAdapter):
    """
    Imports a plain table (people, vehicles, rounds, ...) through its TableSpec:
    header aliases, type coercion, defaults, validators and derived columns.
    Foreign-key names are left in the record for the import service to resolve.
    """

    kind = ImportKind.GENERIC.value

    def __init__(self, table: TableSpec, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if not table.importable:
            raise UnknownImportKindError(f"Table '{table.name}' cannot be imported from a generic sheet")
        self.table = table

    def extract(self, grid: Grid, column_map: Optional[ColumnMap] = None) -> Extraction:
        extraction = Extraction()
        vocabulary = self.table.vocabulary()
        locator = self.header_locator(
            vocabulary, min_matches=min(self.imports.header_min_matches, len(vocabulary.fields))
        )
        if column_map is None:
            located = locator.locate(grid, f"{self.kind}:{self.table.name}")
            column_map = located.value
            if located.degraded:
                extraction.note(f"header:{located.strategy}", degraded=True)

        for index in range(column_map.data_start, len(grid)):
            if self.is_non_data_row(grid, index, locator):
                continue
            self.collect(extraction, index, self.parse_row(grid, index, column_map))
        return extraction

    def parse_row(self, grid: Grid, index: int, column_map: ColumnMap) -> RowOutcome:
        record: Dict[str, Any] = {}
        for spec in self.table.fields:
            raw = grid.cell(index, column_map.get(spec.name))
            value, ok = coerce(raw, spec.type)
            if not ok:
                return invalid_field(index, spec.name, TYPE_ISSUES.get(spec.type, RowIssue.INVALID_VALUE), raw)
            if value is not None and spec.validator and not spec.validator(value):
                return invalid_field(index, spec.name, RowIssue.INVALID_VALUE, raw)
            if value is not None and spec.transform:
                value = spec.transform(value)
            if value is None:
                value = spec.default
            if value is None and spec.required:
                return missing_field(index, spec.name)
            record[spec.name] = value
        for name, derive in self.table.derived.items():
            record[name] = derive(record)
        return record
