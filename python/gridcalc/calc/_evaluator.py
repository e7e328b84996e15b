"""Workbook resolver and the evaluation driver for function cells.

``apply_cell_functions`` walks the active sheet, evaluates every cell that
declares a function and returns display-ready rows::

    rows = [
        {"metric": create_cell("2")},
        {"metric": create_cell("3")},
        {"metric": Cell(func=FunctionCall("sum", {"key": "metric"}))},
    ]
    apply_cell_functions(rows, ["metric"])[2]["metric"].value  # "5"

Evaluation is recursive and memoized per call: a function reading another
function cell evaluates it on demand through ``WorkbookResolver``. All caches
and the cycle guard live only for the duration of one call.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from gridcalc._cell import Cell
from gridcalc._workbook import DEFAULT_SHEET_NAME, Row, Sheet, derive_columns
from gridcalc.calc._functions import FunctionRegistry, format_number, normalize_color
from gridcalc.calc._guard import CycleGuard, GuardKey
from gridcalc.calc._protocol import (
    UNCHANGED,
    UNSET,
    CellFunctionContext,
    EvaluationEntry,
    FunctionResult,
    HandlerOutput,
)

logger = logging.getLogger(__name__)

_EMPTY = EvaluationEntry("")


@dataclass
class SheetState:
    """Per-sheet view used during one evaluation pass."""

    name: str
    rows: Sequence[Row]
    columns: Sequence[str]
    cache: dict[tuple[int, str], EvaluationEntry] = field(default_factory=dict)


def build_sheet_states(
    rows: Sequence[Row],
    columns: Sequence[str],
    workbook: Sequence[Sheet] | None,
    active_sheet_name: str,
) -> dict[str, SheetState]:
    """One state per workbook sheet, with the active sheet bound to *rows*.

    The workbook may be a stale snapshot; the caller's rows and columns are
    authoritative for the active sheet.
    """
    states: dict[str, SheetState] = {}
    for sheet in workbook or ():
        states[sheet.name] = SheetState(sheet.name, sheet.rows, derive_columns(sheet.rows))
    active = states.get(active_sheet_name)
    if active is not None:
        active.rows = rows
        active.columns = columns
    else:
        states[active_sheet_name] = SheetState(active_sheet_name, rows, columns)
    return states


# ---------------------------------------------------------------------------
# Handler output normalization
# ---------------------------------------------------------------------------


def _value_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    return str(value)


def normalize_function_output(output: HandlerOutput, fallback_value: str) -> EvaluationEntry:
    """Turn whatever a handler returned into a cache entry.

    Structured results without a value keep *fallback_value*, the cell's raw
    text, so style-only functions do not blank the cell.
    """
    if output is None:
        return _EMPTY
    if isinstance(output, str):
        return EvaluationEntry(output)
    if isinstance(output, bool):
        return EvaluationEntry(fallback_value)
    if isinstance(output, (int, float)):
        return EvaluationEntry(format_number(output))

    if isinstance(output, FunctionResult):
        value = fallback_value if output.value is UNSET else _value_text(output.value)
        return EvaluationEntry(value, output.color, output.bg_color)

    if isinstance(output, Mapping):
        value = _value_text(output["value"]) if "value" in output else fallback_value
        styles = output.get("styles")
        if not isinstance(styles, Mapping):
            return EvaluationEntry(value)
        color = normalize_color(styles["color"]) if "color" in styles else UNCHANGED
        bg_key = next((k for k in ("bgColor", "bg_color") if k in styles), None)
        bg_color = normalize_color(styles[bg_key]) if bg_key else UNCHANGED
        return EvaluationEntry(value, color, bg_color)

    return EvaluationEntry(fallback_value)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class WorkbookResolver:
    """Cross-sheet cell reader with memoization and cycle detection.

    Every read goes through ``get_cell_value``; function cells are evaluated
    on first read and cached per sheet. Failures never escape: a missing
    handler, a circular reference or a handler exception all evaluate to an
    empty value and are logged.
    """

    __slots__ = ("_states", "_default_sheet", "_registry", "_guard", "_cyclic")

    def __init__(
        self,
        sheet_states: dict[str, SheetState],
        default_sheet_name: str,
        registry: FunctionRegistry,
    ) -> None:
        self._states = sheet_states
        self._default_sheet = default_sheet_name
        self._registry = registry
        self._guard = CycleGuard()
        # cells found to sit on a circular reference
        self._cyclic: set[GuardKey] = set()

    def sheet_state(self, sheet_name: str | None = None) -> SheetState | None:
        return self._states.get(sheet_name or self._default_sheet)

    def resolve_column_key(self, column_index: int, sheet_name: str | None = None) -> str | None:
        """0-based column index -> key, or None when out of range."""
        sheet = self.sheet_state(sheet_name)
        if sheet is None or not 0 <= column_index < len(sheet.columns):
            return None
        return sheet.columns[column_index]

    def count_rows(self, sheet_name: str | None = None) -> int | None:
        sheet = self.sheet_state(sheet_name)
        return None if sheet is None else len(sheet.rows)

    def entry(
        self, row_index: int, column_key: str, sheet_name: str | None = None
    ) -> EvaluationEntry | None:
        """Cached entry for a cell that has already been read, if any."""
        sheet = self.sheet_state(sheet_name)
        return None if sheet is None else sheet.cache.get((row_index, column_key))

    def get_cell_value(self, row_index: int, column_key: str, sheet_name: str | None = None) -> str:
        """Displayed value of a cell, evaluating its function if it has one."""
        target_sheet = sheet_name or self._default_sheet
        sheet = self._states.get(target_sheet)
        if sheet is None:
            return ""

        cache_key = (row_index, column_key)
        cached = sheet.cache.get(cache_key)
        if cached is not None:
            return cached.value

        if not 0 <= row_index < len(sheet.rows):
            sheet.cache[cache_key] = _EMPTY
            return ""

        cell = sheet.rows[row_index].get(column_key)
        fallback = cell.value if cell is not None else ""
        if cell is None or cell.func is None:
            entry = EvaluationEntry(fallback)
            sheet.cache[cache_key] = entry
            return entry.value

        guard_key: GuardKey = (target_sheet, row_index, column_key)
        if guard_key in self._guard:
            logger.warning(
                "Circular reference in cell functions: %s",
                self._guard.format_cycle(guard_key),
            )
            cycle = self._guard.cycle_from(guard_key)
            # a cell reading only itself sees "" and finishes normally
            if len(cycle) > 1:
                self._cyclic.update(cycle)
            sheet.cache[cache_key] = _EMPTY
            return ""

        handler = self._registry.get(cell.func.name)
        if handler is None:
            logger.warning(
                "Unsupported cell function %r at sheet=%s, row=%d, column=%s",
                cell.func.name, target_sheet, row_index + 1, column_key,
            )
            sheet.cache[cache_key] = _EMPTY
            return ""

        context = CellFunctionContext(
            rows=sheet.rows,
            columns=sheet.columns,
            row_index=row_index,
            column_key=column_key,
            sheet_name=target_sheet,
            get_cell_value=lambda r, c, s=None: self.get_cell_value(r, c, s or target_sheet),
            resolve_column_key=lambda i, s=None: self.resolve_column_key(i, s or target_sheet),
            count_rows=lambda s=None: self.count_rows(s or target_sheet),
        )

        self._guard.push(guard_key)
        try:
            output = handler(cell.func.args or {}, context)
            entry = normalize_function_output(output, fallback)
        except Exception:
            logger.exception(
                "Cell function %r failed at sheet=%s, row=%d, column=%s",
                cell.func.name, target_sheet, row_index + 1, column_key,
            )
            entry = _EMPTY
        finally:
            self._guard.pop()

        if guard_key in self._cyclic:
            entry = _EMPTY
        sheet.cache[cache_key] = entry
        return entry.value


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


def _active_sheet_name(
    rows: Sequence[Row], workbook: Sequence[Sheet] | None, sheet_name: str | None
) -> str:
    if sheet_name:
        return sheet_name
    for sheet in workbook or ():
        if sheet.rows is rows:
            return sheet.name
    return DEFAULT_SHEET_NAME


def _evaluated_cell(cell: Cell, entry: EvaluationEntry) -> Cell:
    return dataclasses.replace(
        cell,
        value=entry.value,
        color=entry.color.apply(cell.color),
        bg_color=entry.bg_color.apply(cell.bg_color),
    )


def apply_cell_functions(
    rows: Sequence[Row],
    columns: Sequence[str],
    *,
    workbook: Sequence[Sheet] | None = None,
    sheet_name: str | None = None,
    registry: FunctionRegistry | None = None,
) -> Sequence[Row]:
    """Evaluate every function cell of the active sheet.

    Returns new rows where function cells are replaced by cells carrying the
    computed value and style. Rows without function cells, and cells without
    functions, are passed through as the same objects; when nothing is
    evaluated the input *rows* itself is returned.

    *workbook* supplies the other sheets for cross-sheet references and
    *sheet_name* names the sheet *rows* belong to.
    """
    if not rows:
        return rows

    active_name = _active_sheet_name(rows, workbook, sheet_name)
    states = build_sheet_states(rows, columns, workbook, active_name)
    resolver = WorkbookResolver(
        states, active_name, registry if registry is not None else FunctionRegistry()
    )

    evaluated: list[Row] = []
    mutated = False
    for row_index, row in enumerate(rows):
        next_row: Row | None = None
        for column_key, cell in row.items():
            if cell is None or cell.func is None:
                continue
            resolver.get_cell_value(row_index, column_key, active_name)
            entry = resolver.entry(row_index, column_key, active_name) or _EMPTY
            if next_row is None:
                next_row = dict(row)
            next_row[column_key] = _evaluated_cell(cell, entry)
        if next_row is not None:
            mutated = True
        evaluated.append(row if next_row is None else next_row)

    return evaluated if mutated else rows
