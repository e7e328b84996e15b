"""gridcalc - evaluate function cells in spreadsheet-style grids.

Usage::

    from gridcalc import Cell, FunctionCall, FunctionRegistry, apply_cell_functions, create_cell

    rows = [
        {"metric": create_cell("2")},
        {"metric": create_cell("3")},
        {"metric": Cell(func=FunctionCall("sum", {"key": "metric"}))},
    ]
    registry = FunctionRegistry()
    evaluated = apply_cell_functions(rows, ["metric"], registry=registry)
    print(evaluated[2]["metric"].value)  # "5"
"""

from gridcalc._cell import Cell, FunctionCall, create_cell, summarize_function
from gridcalc._export import to_openpyxl, write_xlsx
from gridcalc._workbook import DEFAULT_SHEET_NAME, Row, Sheet, Workbook, derive_columns
from gridcalc.calc import (
    CLEARED,
    UNCHANGED,
    CellFunctionContext,
    FunctionMeta,
    FunctionRegistry,
    FunctionResult,
    InvalidFunctionName,
    ResolvedTarget,
    StyleDirective,
    apply_cell_functions,
    resolve_function_targets,
)

__all__ = [
    "CLEARED",
    "Cell",
    "CellFunctionContext",
    "DEFAULT_SHEET_NAME",
    "FunctionCall",
    "FunctionMeta",
    "FunctionRegistry",
    "FunctionResult",
    "InvalidFunctionName",
    "ResolvedTarget",
    "Row",
    "Sheet",
    "StyleDirective",
    "UNCHANGED",
    "Workbook",
    "apply_cell_functions",
    "create_cell",
    "derive_columns",
    "resolve_function_targets",
    "summarize_function",
    "to_openpyxl",
    "write_xlsx",
]
