"""Target resolution: turn a call's args into concrete cell references.

Index arguments are 1-based, as a user would count rows and columns in the
grid; resolved targets are 0-based. Three shapes are accepted wherever an
index set is expected::

    3                     # one index (numeric text works too)
    [1, 2, 2]             # explicit list, de-duplicated
    {"start": 2, "end"}   # inclusive range, either bound optional

Indices outside the sheet are dropped. An index set that ends up empty
counts as "not given" and the default selection applies instead.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from gridcalc.calc._protocol import CellFunctionContext, ResolvedTarget

_CURRENT_SHEET = "__current__"


def _first_present(record: Mapping[str, Any], *keys: str) -> Any:
    """First value among *keys* that is present and not None."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_index(value: Any, total: int | None = None) -> int | None:
    """Convert a 1-based index argument to 0-based, or None if unusable.

    Fractions round half up. When *total* is given the index must be below it.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            number = float(value)
        except ValueError:
            return None
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        return None
    if not math.isfinite(number):
        return None
    index = math.floor(number + 0.5) - 1
    if index < 0:
        return None
    if total is not None and index >= total:
        return None
    return index


def resolve_indexes(candidate: Any, total: int) -> list[int] | None:
    """Expand a number, list or ``{start, end}`` mapping into 0-based indexes."""
    if isinstance(candidate, bool):
        return None
    if isinstance(candidate, (int, float, str)):
        index = parse_index(candidate, total)
        return None if index is None else [index]

    if isinstance(candidate, (list, tuple)):
        indexes = [parse_index(entry, total) for entry in candidate]
        unique = list(dict.fromkeys(i for i in indexes if i is not None))
        return unique or None

    if isinstance(candidate, Mapping):
        start = parse_index(candidate.get("start"), total)
        end = parse_index(candidate.get("end"), total)
        if start is None and end is None:
            return None
        range_start = 0 if start is None else start
        range_end = total - 1 if end is None else end
        if range_end < range_start:
            return None
        return list(range(range_start, range_end + 1))

    return None


def _unique(targets: Iterable[ResolvedTarget], current_sheet: str | None) -> list[ResolvedTarget]:
    """De-duplicate by (sheet, row, column) keeping first-seen order."""
    unique: dict[tuple[str, int, str], ResolvedTarget] = {}
    for target in targets:
        sheet = target.sheet_name or current_sheet or _CURRENT_SHEET
        unique[(sheet, target.row_index, target.column_key)] = target
    return list(unique.values())


def _resolve_cell_entry(entry: Any, context: CellFunctionContext) -> ResolvedTarget | None:
    if not isinstance(entry, Mapping):
        return None

    sheet_name = _text(entry.get("sheet")) or _text(entry.get("sheetName")) or None

    if sheet_name is None:
        row_total: int | None = len(context.rows)
    elif context.count_rows is not None:
        row_total = context.count_rows(sheet_name)
        if row_total is None:
            return None
    else:
        row_total = None
    row_index = parse_index(_first_present(entry, "row", "r", "rowIndex"), row_total)
    if row_index is None:
        return None

    key = _text(entry.get("key")) or _text(entry.get("column"))
    if key:
        return ResolvedTarget(row_index, key, sheet_name)

    column_index = parse_index(
        _first_present(entry, "column", "col", "columnIndex"),
        None if sheet_name else len(context.columns),
    )
    if column_index is None:
        return None
    if sheet_name and context.resolve_column_key is not None:
        column_key = context.resolve_column_key(column_index, sheet_name)
    elif column_index < len(context.columns):
        column_key = context.columns[column_index]
    else:
        column_key = None
    if not column_key:
        return None
    return ResolvedTarget(row_index, column_key, sheet_name)


def resolve_explicit_cells(candidate: Any, context: CellFunctionContext) -> list[ResolvedTarget]:
    """Resolve a ``cells`` list; entries that do not resolve are dropped."""
    if not isinstance(candidate, (list, tuple)):
        return []
    resolved = (_resolve_cell_entry(entry, context) for entry in candidate)
    return _unique((t for t in resolved if t is not None), context.sheet_name)


def _target_columns(record: Mapping[str, Any], axis: str, context: CellFunctionContext) -> list[str]:
    keys: list[str] = []
    raw_keys = record.get("keys")
    if isinstance(raw_keys, (list, tuple)):
        keys = [k for k in (_text(entry) for entry in raw_keys) if k]
    key = _text(record.get("key"))
    if key:
        keys.insert(0, key)
    if keys:
        return list(dict.fromkeys(keys))

    raw_columns = record.get("columns")
    if raw_columns is not None:
        indexes = resolve_indexes(raw_columns, len(context.columns)) or []
        by_index = [context.columns[i] for i in indexes if context.columns[i]]
        if by_index:
            return by_index

    if axis == "row":
        return list(context.columns) if context.columns else [context.column_key]
    return [context.column_key]


def _target_rows(record: Mapping[str, Any], axis: str, context: CellFunctionContext) -> list[int]:
    raw_rows = record.get("rows")
    if raw_rows is not None:
        indexes = resolve_indexes(raw_rows, len(context.rows))
        if indexes:
            return indexes
    if axis == "row":
        return [context.row_index]
    return list(range(len(context.rows)))


def resolve_function_targets(
    args: Mapping[str, Any] | None, context: CellFunctionContext
) -> list[ResolvedTarget]:
    """Resolve a function call's args into an ordered, de-duplicated target list.

    A ``cells`` list takes precedence over every other selector. Otherwise
    targets are the product of the selected rows and columns, where ``axis``
    (``"column"`` by default) decides the defaults: a column function reads
    every row of its own column, a row function reads every column of its
    own row.
    """
    record = args or {}
    if isinstance(record.get("cells"), (list, tuple)):
        return resolve_explicit_cells(record["cells"], context)

    axis = "row" if record.get("axis") == "row" else "column"
    columns = _target_columns(record, axis, context)
    rows = _target_rows(record, axis, context)
    return _unique(
        (ResolvedTarget(row, column) for row in rows for column in columns),
        context.sheet_name,
    )
