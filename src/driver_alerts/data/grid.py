from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence

from driver_alerts.data.workbook import MergeRange, SheetData


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


@dataclass(frozen=True)
class Grid:
    """
    Immutable row-major cell store. Rows may differ in length;
    reading outside a row returns None.
    """
    rows: tuple[tuple[Any, ...], ...]
    name: str = ""

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence[Any]], name: str = "") -> "Grid":
        return cls(rows=tuple(tuple(r) for r in rows), name=name)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[tuple[Any, ...]]:
        return iter(self.rows)

    @property
    def width(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    def row(self, index: int) -> tuple[Any, ...]:
        if 0 <= index < len(self.rows):
            return self.rows[index]
        return ()

    def cell(self, row: int, col: int | None) -> Any:
        if col is None or col < 0:
            return None
        values = self.row(row)
        return values[col] if col < len(values) else None

    def is_blank_row(self, index: int) -> bool:
        return all(is_blank(v) for v in self.row(index))

    def non_empty(self, index: int) -> list[tuple[int, Any]]:
        return [(c, v) for c, v in enumerate(self.row(index)) if not is_blank(v)]


def apply_merges(rows: Sequence[Sequence[Any]], merges: Iterable[MergeRange]) -> list[list[Any]]:
    """
    Copy each merge anchor into every cell of its rectangle, growing rows and
    columns as needed. Re-applying the same merges leaves the result unchanged.
    """
    dense = [list(r) for r in rows]
    for merge in merges:
        if merge.bottom < merge.top or merge.right < merge.left:
            continue
        while len(dense) <= merge.bottom:
            dense.append([])
        anchor_row = dense[merge.top]
        anchor = anchor_row[merge.left] if merge.left < len(anchor_row) else None
        for r in range(merge.top, merge.bottom + 1):
            target = dense[r]
            if len(target) <= merge.right:
                target.extend([None] * (merge.right + 1 - len(target)))
            for c in range(merge.left, merge.right + 1):
                target[c] = anchor
    return dense


def resolve(sheet: SheetData) -> Grid:
    return Grid.from_rows(apply_merges(sheet.cells, sheet.merges), name=sheet.name)
