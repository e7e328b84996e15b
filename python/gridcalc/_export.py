"""Export evaluated sheets to an openpyxl workbook (``gridcalc[xlsx]``)."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from gridcalc._workbook import Sheet, derive_columns
from gridcalc.calc._evaluator import apply_cell_functions
from gridcalc.calc._functions import FunctionRegistry, format_number, to_number

if TYPE_CHECKING:
    import openpyxl

logger = logging.getLogger(__name__)

_HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def _argb(color: str | None) -> str | None:
    """``#rgb`` / ``#rrggbb`` -> openpyxl ``AARRGGBB``; None for anything else."""
    if not color:
        return None
    m = _HEX_COLOR_RE.match(color.strip())
    if not m:
        logger.debug("Skipping colour %r: not a hex colour", color)
        return None
    digits = m.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"FF{digits.upper()}"


def _excel_value(text: str) -> Any:
    """Numeric display text becomes a number when it round-trips exactly."""
    number = to_number(text)
    if number is None or format_number(number) != text.strip():
        return text
    return int(number) if number.is_integer() else number


def to_openpyxl(
    sheets: Sequence[Sheet], *, registry: FunctionRegistry | None = None
) -> openpyxl.Workbook:
    """Build an openpyxl workbook holding the evaluated values of *sheets*.

    Each worksheet gets a header row with the column keys followed by one
    row per grid row. Cell colours map to font colours, background colours
    to solid fills.
    """
    import openpyxl
    from openpyxl.styles import Font, PatternFill

    registry = registry if registry is not None else FunctionRegistry()
    wb = openpyxl.Workbook()
    if sheets:
        wb.remove(wb.active)

    for sheet in sheets:
        ws = wb.create_sheet(sheet.name)
        columns = derive_columns(sheet.rows)
        rows = apply_cell_functions(
            sheet.rows, columns, workbook=sheets, sheet_name=sheet.name, registry=registry,
        )
        for col_idx, key in enumerate(columns, start=1):
            ws.cell(row=1, column=col_idx, value=key)
        for row_idx, row in enumerate(rows, start=2):
            for col_idx, key in enumerate(columns, start=1):
                cell = row.get(key)
                if cell is None:
                    continue
                target = ws.cell(row=row_idx, column=col_idx, value=_excel_value(cell.value))
                font_color = _argb(cell.color)
                if font_color:
                    target.font = Font(color=font_color)
                fill_color = _argb(cell.bg_color)
                if fill_color:
                    target.fill = PatternFill(fill_type="solid", fgColor=fill_color)

    return wb


def write_xlsx(
    sheets: Sequence[Sheet],
    path: str | os.PathLike[str],
    *,
    registry: FunctionRegistry | None = None,
) -> None:
    """Evaluate *sheets* and save them as an .xlsx file at *path*."""
    wb = to_openpyxl(sheets, registry=registry)
    wb.save(os.fspath(path))
