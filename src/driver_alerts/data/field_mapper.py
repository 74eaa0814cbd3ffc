import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


def normalize_token(text: Optional[Any]) -> str:
    if text is None:
        return ""
    normalized = unicodedata.normalize("NFKD", str(text))
    normalized = "".join(ch for ch in normalized if unicodedata.category(ch) != "Mn")
    normalized = normalized.lower()
    normalized = re.sub(r"[^\w\s]", " ", normalized, flags=re.UNICODE)
    normalized = normalized.replace("_", " ")
    normalized = re.sub(r"\s+", " ", normalized)
    return normalized.strip()


@dataclass
class HeaderMatch:
    raw: str
    normalized: str
    field: str
    column: int
    exact: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw": self.raw,
            "normalized": self.normalized,
            "field": self.field,
            "column": self.column,
            "exact": self.exact,
        }


@dataclass
class SchemaSnapshot:
    header_row: Optional[int]
    raw_headers: List[str]
    mapped: List[HeaderMatch]
    unmapped: List[str]
    missing_required: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header_row": self.header_row,
            "raw_headers": self.raw_headers,
            "mapped": [m.to_dict() for m in self.mapped],
            "unmapped": self.unmapped,
            "missing_required": self.missing_required,
        }


class FieldMapper:
    """
    Alias-driven resolver from header cells to canonical field names.
    Matching ignores case, diacritics and punctuation; an exact alias wins,
    otherwise the longest alias found as whole words inside the cell.
    """

    normalize = staticmethod(normalize_token)

    def __init__(self, fields: Dict[str, Iterable[str]]):
        self.fields = {name: tuple(aliases) for name, aliases in fields.items()}
        self._exact: Dict[str, str] = {}
        contained: List[tuple[str, str]] = []
        for name, aliases in self.fields.items():
            for alias in aliases:
                norm = self.normalize(alias)
                if not norm:
                    continue
                self._exact.setdefault(norm, name)
                contained.append((norm, name))
        self._contained = sorted(contained, key=lambda item: len(item[0]), reverse=True)

    def match_header(self, header: Any, column: int = 0) -> Optional[HeaderMatch]:
        if not isinstance(header, str):
            return None
        normalized = self.normalize(header)
        if not normalized:
            return None
        field = self._exact.get(normalized)
        if field:
            return HeaderMatch(raw=header, normalized=normalized, field=field, column=column, exact=True)
        padded = f" {normalized} "
        for alias, name in self._contained:
            if f" {alias} " in padded:
                return HeaderMatch(raw=header, normalized=normalized, field=name, column=column, exact=False)
        return None

    def match_row(self, row: Sequence[Any]) -> List[HeaderMatch]:
        """Leftmost matching column per field, in column order."""
        seen: Dict[str, HeaderMatch] = {}
        for col, cell in enumerate(row):
            match = self.match_header(cell, col)
            if match and match.field not in seen:
                seen[match.field] = match
        return sorted(seen.values(), key=lambda m: m.column)

    def map_row(self, row: Sequence[Any]) -> Dict[str, int]:
        return {m.field: m.column for m in self.match_row(row)}

    def snapshot(
        self,
        row: Sequence[Any],
        header_row: Optional[int] = None,
        required: Iterable[str] = (),
    ) -> SchemaSnapshot:
        mapped = self.match_row(row)
        mapped_columns = {m.column for m in mapped}
        raw_headers: List[str] = []
        unmapped: List[str] = []
        for col, cell in enumerate(row):
            if cell is None or str(cell).strip() == "":
                continue
            raw_headers.append(str(cell).strip())
            if col not in mapped_columns:
                unmapped.append(str(cell).strip())
        found = {m.field for m in mapped}
        return SchemaSnapshot(
            header_row=header_row,
            raw_headers=raw_headers,
            mapped=mapped,
            unmapped=unmapped,
            missing_required=[f for f in required if f not in found],
        )
