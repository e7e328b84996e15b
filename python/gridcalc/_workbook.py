"""Sheet container and row helpers."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from gridcalc._cell import Cell

# column key -> cell
Row = dict[str, Cell]

DEFAULT_SHEET_NAME = "Sheet 1"


@dataclass(frozen=True)
class Sheet:
    """A named, ordered list of rows."""

    name: str
    rows: list[Row] = field(default_factory=list)

    @property
    def columns(self) -> list[str]:
        return derive_columns(self.rows)


# A workbook is an ordered, read-only sequence of sheets.
Workbook = Sequence[Sheet]


def derive_columns(rows: Sequence[Row]) -> list[str]:
    """Column keys in first-seen order across *rows*."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)
