import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

import pandas as pd

from driver_alerts.data.schemas import TABLES, TableSpec
from driver_alerts.exceptions import DataSourceError

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    success: int = 0
    errors: List[tuple[int, str]] = field(default_factory=list)  # (record index, message)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class RecordStore(Protocol):
    def insert_batch(self, table: str, records: Sequence[Mapping[str, Any]]) -> BatchOutcome: ...

    def lookup_id(self, table: str, natural_key: Any) -> Optional[int]: ...


@runtime_checkable
class ImportRegistry(Protocol):
    def has_import(self, import_key: str) -> bool: ...

    def register_import(self, import_key: str, source_file: Path, source_type: str) -> tuple[int, bool]: ...


class Database:
    """
    Thin wrapper over sqlite3 used as the pipeline's storage collaborator.
    Tables come from the schema registry; inserts run one batch per transaction.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self):
        return sqlite3.connect(self.db_path)

    def _ensure_schema(self):
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS imports (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    import_key TEXT UNIQUE,
                    source_file TEXT,
                    source_type TEXT,
                    created_at TEXT
                );
                """
            )
            for spec in TABLES.values():
                cur.execute(self._create_statement(spec))
            conn.commit()

    @staticmethod
    def _create_statement(spec: TableSpec) -> str:
        columns = [
            f"{name} {sql_type}" + (" UNIQUE" if name == spec.natural_key else "")
            for name, sql_type in spec.columns
        ]
        body = ",\n                    ".join(
            ["id INTEGER PRIMARY KEY AUTOINCREMENT", *columns, "updated_at TEXT"]
        )
        return f"""
                CREATE TABLE IF NOT EXISTS {spec.name} (
                    {body}
                );
                """

    @staticmethod
    def _spec(table: str) -> TableSpec:
        spec = TABLES.get(table)
        if spec is None:
            raise DataSourceError(f"Unknown table '{table}'")
        return spec

    def insert_batch(self, table: str, records: Sequence[Mapping[str, Any]]) -> BatchOutcome:
        """
        Insert records in one transaction. A failing row is reported and skipped;
        keys that are not columns of the table are ignored.
        """
        spec = self._spec(table)
        outcome = BatchOutcome()
        if not records:
            return outcome
        columns = list(spec.column_names) + ["updated_at"]
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {spec.name} ({', '.join(columns)}) VALUES ({placeholders})"
        now = datetime.now(UTC).isoformat()

        with self._connect() as conn:
            cur = conn.cursor()
            for idx, record in enumerate(records):
                values = [self._as_db_value(record.get(c)) for c in spec.column_names] + [now]
                try:
                    cur.execute(sql, values)
                    outcome.success += 1
                except sqlite3.Error as exc:
                    outcome.errors.append((idx, str(exc)))
            conn.commit()

        if outcome.errors:
            logger.warning(
                "batch insert had failing rows",
                extra={"table": table, "success": outcome.success, "errors": outcome.error_count},
            )
        return outcome

    def lookup_id(self, table: str, natural_key: Any) -> Optional[int]:
        spec = self._spec(table)
        if spec.natural_key is None:
            raise DataSourceError(f"Table '{table}' has no natural key")
        if natural_key is None:
            return None
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT id FROM {spec.name} WHERE {spec.natural_key} = ? COLLATE NOCASE LIMIT 1",
                (str(natural_key).strip(),),
            ).fetchone()
        return row[0] if row else None

    def has_import(self, import_key: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM imports WHERE import_key = ?", (import_key,)).fetchone()
        return row is not None

    def register_import(self, import_key: str, source_file: Path, source_type: str) -> tuple[int, bool]:
        """
        Idempotent insert: returns (import_id, created_flag).
        """
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT id FROM imports WHERE import_key = ?", (import_key,))
            row = cur.fetchone()
            if row:
                return row[0], False
            cur.execute(
                "INSERT INTO imports (import_key, source_file, source_type, created_at) VALUES (?, ?, ?, ?)",
                (
                    import_key,
                    str(source_file),
                    source_type,
                    datetime.now(UTC).isoformat(),
                ),
            )
            conn.commit()
            return cur.lastrowid, True

    def read_table(self, table: str, limit: Optional[int] = None) -> pd.DataFrame:
        spec = self._spec(table)
        query = f"SELECT * FROM {spec.name} ORDER BY id"
        params: Iterable[Any] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (int(limit),)
        with self._connect() as conn:
            return pd.read_sql_query(query, conn, params=params)

    @staticmethod
    def _as_db_value(value: Any) -> Any:
        if isinstance(value, bool):
            return int(value)
        if value is None or isinstance(value, (str, int, float)):
            return value
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)
