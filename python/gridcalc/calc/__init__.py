"""gridcalc.calc - Cell function evaluation engine for grid rows."""

from gridcalc.calc._evaluator import (
    SheetState,
    WorkbookResolver,
    apply_cell_functions,
    build_sheet_states,
    normalize_function_output,
)
from gridcalc.calc._functions import (
    DEFAULT_HIGHLIGHT_COLOR,
    FunctionRegistry,
    InvalidFunctionName,
    format_number,
    operand_number,
    to_number,
)
from gridcalc.calc._guard import CycleGuard
from gridcalc.calc._protocol import (
    CLEARED,
    UNCHANGED,
    CellFunctionContext,
    CellFunctionHandler,
    EvaluationEntry,
    FunctionMeta,
    FunctionResult,
    ResolvedTarget,
    StyleDirective,
)
from gridcalc.calc._targets import resolve_function_targets

__all__ = [
    "CLEARED",
    "CellFunctionContext",
    "CellFunctionHandler",
    "CycleGuard",
    "DEFAULT_HIGHLIGHT_COLOR",
    "EvaluationEntry",
    "FunctionMeta",
    "FunctionRegistry",
    "FunctionResult",
    "InvalidFunctionName",
    "ResolvedTarget",
    "SheetState",
    "StyleDirective",
    "UNCHANGED",
    "WorkbookResolver",
    "apply_cell_functions",
    "build_sheet_states",
    "format_number",
    "normalize_function_output",
    "operand_number",
    "resolve_function_targets",
    "to_number",
]
