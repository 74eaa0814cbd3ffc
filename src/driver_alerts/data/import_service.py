import asyncio
from dataclasses import replace
from hashlib import md5
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from driver_alerts.config import Settings
from driver_alerts.data.dto import ImportKind, ImportResult, RowError, RowIssue
from driver_alerts.data.pipeline import IngestPipeline
from driver_alerts.data.schemas import TABLES
from driver_alerts.data.storage import ImportRegistry, RecordStore
from driver_alerts.data.workbook import read_workbook

PLATE_KINDS = {ImportKind.STOP_EVENTS.value, ImportKind.VEHICLE_MOVEMENTS.value}


class ImportService:
    """
    Runs one workbook through the pipeline and hands the records to the store.
    Reading and hashing the file and the store writes run in worker threads.
    Idempotent per import key (kind + table + file hash) when the store keeps a registry.
    """

    def __init__(
        self,
        store: RecordStore,
        pipeline: Optional[IngestPipeline] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.settings = settings or (pipeline.settings if pipeline else Settings.load())
        self.logger = logger or logging.getLogger(__name__)
        self.pipeline = pipeline or IngestPipeline(settings=self.settings, logger=self.logger)

    def import_file(
        self,
        file_path: Path,
        kind: Union[ImportKind, str] = ImportKind.AUTODETECT,
        sheet_name: Optional[str] = None,
        table: Optional[str] = None,
    ) -> ImportResult:
        return asyncio.run(self.run(file_path, kind, sheet_name=sheet_name, table=table))

    async def run(
        self,
        file_path: Path,
        kind: Union[ImportKind, str] = ImportKind.AUTODETECT,
        sheet_name: Optional[str] = None,
        table: Optional[str] = None,
    ) -> ImportResult:
        file_path = Path(file_path)
        workbook = await asyncio.to_thread(read_workbook, file_path)
        result = self.pipeline.parse_workbook(workbook, kind, sheet_name=sheet_name, table=table)

        digest = await asyncio.to_thread(self._hash_file, file_path)
        import_key = f"{result.kind}:{result.table}:{digest}"
        registry = self.store if isinstance(self.store, ImportRegistry) else None
        if registry and self.settings.imports.skip_duplicate_files and registry.has_import(import_key):
            self.logger.info("file already imported, skipping", extra={"file": str(file_path), "key": import_key})
            return replace(result, stored_count=0, skipped_duplicate_file=True)

        if result.kind in PLATE_KINDS and self.settings.imports.auto_create_vehicles:
            await asyncio.to_thread(self._ensure_vehicles, [r.get("plate_number") for r in result.records])

        records, rows, errors = self._resolve_references(result)
        outcome = await asyncio.to_thread(self.store.insert_batch, result.table, records)

        failed = {idx for idx, _ in outcome.errors}
        for idx, message in outcome.errors:
            errors.append(
                RowError(row=rows[idx], reason=f"Storage rejected row: {message}", code=RowIssue.STORAGE_ERROR)
            )
        stored = [r for i, r in enumerate(records) if i not in failed]
        stored_rows = [row for i, row in enumerate(rows) if i not in failed]

        if registry:
            registry.register_import(import_key, file_path, result.kind)

        final = replace(
            result,
            records=tuple(stored),
            record_rows=tuple(stored_rows),
            success_count=len(stored),
            error_count=len(errors),
            errors=tuple(sorted(errors, key=lambda e: e.row)),
            stored_count=outcome.success,
        )
        self.logger.info(
            "import finished",
            extra={
                "file": str(file_path),
                "kind": final.kind,
                "table": final.table,
                "stored": outcome.success,
                "errors": final.error_count,
            },
        )
        return final

    def _ensure_vehicles(self, plates: List[Optional[str]]) -> int:
        """Create vehicles for plates the store does not know yet."""
        unknown: List[str] = []
        for plate in dict.fromkeys(p for p in plates if p):
            if self.store.lookup_id("vehicles", plate) is None:
                unknown.append(plate)
        if not unknown:
            return 0
        outcome = self.store.insert_batch("vehicles", [{"plate_number": p, "status": "active"} for p in unknown])
        self.logger.info("vehicles created from plate numbers", extra={"count": outcome.success})
        return outcome.success

    def _resolve_references(self, result: ImportResult) -> tuple[List[Dict[str, Any]], List[int], List[RowError]]:
        errors = list(result.errors)
        spec = TABLES.get(result.table) if result.table else None
        if spec is None or not spec.references:
            return [dict(r) for r in result.records], list(result.record_rows), errors

        cache: Dict[tuple[str, str], Optional[int]] = {}
        records: List[Dict[str, Any]] = []
        rows: List[int] = []
        for record, row in zip(result.records, result.record_rows):
            resolved = dict(record)
            rejected = False
            for ref in spec.references:
                key = resolved.pop(ref.source, None)
                ref_id = None
                if key is not None:
                    cache_key = (ref.table, str(key))
                    if cache_key not in cache:
                        cache[cache_key] = self._lookup_or_create(ref.table, key)
                    ref_id = cache[cache_key]
                if ref_id is None and ref.required:
                    errors.append(
                        RowError(
                            row=row,
                            reason=f"Unresolved reference in field '{ref.source}': {key!r} not found in {ref.table}",
                            code=RowIssue.UNRESOLVED_REFERENCE,
                            field=ref.source,
                        )
                    )
                    rejected = True
                    break
                resolved[ref.target] = ref_id
            if not rejected:
                records.append(resolved)
                rows.append(row)
        return records, rows, errors

    def _lookup_or_create(self, table: str, key: Any) -> Optional[int]:
        ref_id = self.store.lookup_id(table, key)
        if ref_id is None and table == "vehicles" and self.settings.imports.auto_create_vehicles:
            self._ensure_vehicles([key])
            ref_id = self.store.lookup_id(table, key)
        return ref_id

    @staticmethod
    def _hash_file(file_path: Path) -> str:
        h = md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                h.update(chunk)
        return h.hexdigest()
