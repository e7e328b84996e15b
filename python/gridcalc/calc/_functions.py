"""Built-in cell functions and the function registry."""

from __future__ import annotations

import locale
import math
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Literal

from gridcalc.calc._protocol import (
    CLEARED,
    CellFunctionContext,
    CellFunctionHandler,
    FunctionMeta,
    FunctionResult,
    HandlerOutput,
    ResolvedTarget,
    StyleDirective,
)
from gridcalc.calc._targets import resolve_function_targets

DEFAULT_HIGHLIGHT_COLOR = "#fef3c7"


class InvalidFunctionName(ValueError):
    """Raised when a function is registered under a blank name."""


# ---------------------------------------------------------------------------
# Number coercion and formatting
# ---------------------------------------------------------------------------


def to_number(value: Any) -> float | None:
    """Coerce a cell value or argument to a finite float, or None.

    Blank text is not a number. Booleans count as 1 and 0.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def format_number(value: int | float) -> str:
    """Plain decimal text: ``5`` not ``5.0``, ``0.00001`` not ``1e-05``."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    if "e" not in text:
        return text
    mantissa, exponent = text.split("e")
    power = int(exponent)
    if -7 < power < 21:
        return format(Decimal(text), "f")
    return f"{mantissa}e{'+' if power > 0 else '-'}{abs(power)}"


def normalize_color(value: Any) -> StyleDirective:
    """Colour argument -> directive.

    ``None`` or blank text clears, anything else sets the trimmed text.
    """
    if isinstance(value, StyleDirective):
        return value
    if value is None:
        return CLEARED
    text = (value if isinstance(value, str) else str(value)).strip()
    return StyleDirective.set(text) if text else CLEARED


# ---------------------------------------------------------------------------
# Target helpers shared by the aggregate functions
# ---------------------------------------------------------------------------


def _is_self(target: ResolvedTarget, context: CellFunctionContext) -> bool:
    return (
        target.row_index == context.row_index
        and target.column_key == context.column_key
        and (target.sheet_name or context.sheet_name) == context.sheet_name
    )


def _effective_targets(
    args: Mapping[str, Any], context: CellFunctionContext
) -> list[ResolvedTarget]:
    """Resolved targets minus the calling cell, unless that leaves nothing."""
    targets = resolve_function_targets(args, context)
    scoped = [t for t in targets if not _is_self(t, context)]
    return scoped or targets


def operand_number(value: Any) -> float | None:
    """Like ``to_number``, but blank text counts as zero.

    Aggregates treat an empty cell as 0; ``color_if`` uses ``to_number`` so
    that blank cells never satisfy numeric comparisons.
    """
    if isinstance(value, str) and not value.strip():
        return 0.0
    return to_number(value)


def _numeric_operands(
    targets: list[ResolvedTarget], context: CellFunctionContext
) -> list[float]:
    operands: list[float] = []
    for target in targets:
        number = operand_number(
            context.get_cell_value(target.row_index, target.column_key, target.sheet_name)
        )
        if number is not None:
            operands.append(number)
    return operands


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def _builtin_sum(args: Mapping[str, Any], context: CellFunctionContext) -> str:
    targets = _effective_targets(args, context)
    if not targets:
        return ""
    return format_number(math.fsum(_numeric_operands(targets, context)))


def _builtin_multiply(args: Mapping[str, Any], context: CellFunctionContext) -> str:
    targets = _effective_targets(args, context)
    if not targets:
        return ""
    operands = _numeric_operands(targets, context)
    if not operands:
        return ""
    return format_number(math.prod(operands))


# ---------------------------------------------------------------------------
# color_if
# ---------------------------------------------------------------------------

Operator = Literal["eq", "neq", "gt", "gte", "lt", "lte", "includes", "empty", "not_empty"]

_OPERATOR_ALIASES: dict[str, Operator] = {
    "eq": "eq",
    "neq": "neq",
    "ne": "neq",
    "not": "neq",
    "not_equal": "neq",
    "not-equal": "neq",
    "gt": "gt",
    "greater": "gt",
    "greater_than": "gt",
    "gte": "gte",
    "ge": "gte",
    "greater_or_equal": "gte",
    "lt": "lt",
    "less": "lt",
    "less_than": "lt",
    "lte": "lte",
    "le": "lte",
    "less_or_equal": "lte",
    "includes": "includes",
    "contains": "includes",
    "empty": "empty",
    "is_empty": "empty",
    "not_empty": "not_empty",
    "not-empty": "not_empty",
    "filled": "not_empty",
}

_TARGET_ARGS = ("cells", "rows", "columns", "axis", "key", "keys")


def normalize_operator(value: Any) -> Operator:
    if not isinstance(value, str):
        return "eq"
    return _OPERATOR_ALIASES.get(value.strip().lower(), "eq")


def _string_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format_number(value)
    return str(value)


def _comparison_values(record: Mapping[str, Any]) -> list[Any]:
    values: list[Any] = []
    if isinstance(record.get("values"), (list, tuple)):
        values.extend(record["values"])
    for key in ("value", "target", "equals", "threshold"):
        if record.get(key) is not None:
            values.append(record[key])
            break
    if isinstance(record.get("targets"), (list, tuple)):
        values.extend(record["targets"])
    if not values and record.get("matchValue") is not None:
        values.append(record["matchValue"])
    return values


def _matches(actual: str, expected: list[Any], operator: Operator, case_insensitive: bool) -> bool:
    if operator == "empty":
        return not actual.strip()
    if operator == "not_empty":
        return bool(actual.strip())
    if not expected:
        return False

    folded = actual.lower() if case_insensitive else actual
    actual_number = to_number(actual)

    if operator in ("eq", "neq"):
        def equal(candidate: Any) -> bool:
            expected_number = to_number(candidate)
            if expected_number is not None and actual_number is not None:
                return actual_number == expected_number
            text = _string_value(candidate).strip()
            return folded == (text.lower() if case_insensitive else text)

        if operator == "eq":
            return any(equal(candidate) for candidate in expected)
        return not any(equal(candidate) for candidate in expected)

    if operator == "includes":
        for candidate in expected:
            text = _string_value(candidate)
            if (text.lower() if case_insensitive else text) in folded:
                return True
        return False

    if actual_number is None:
        return False
    for candidate in expected:
        bound = to_number(candidate)
        if bound is None:
            continue
        if operator == "gt" and actual_number > bound:
            return True
        if operator == "gte" and actual_number >= bound:
            return True
        if operator == "lt" and actual_number < bound:
            return True
        if operator == "lte" and actual_number <= bound:
            return True
    return False


def _builtin_color_if(args: Mapping[str, Any], context: CellFunctionContext) -> HandlerOutput:
    record = args or {}
    operator = normalize_operator(record.get("operator"))
    case_insensitive = bool(
        record.get("caseInsensitive")
        if record.get("caseInsensitive") is not None
        else record.get("ignoreCase", False)
    )
    mode = next(
        (record[k] for k in ("mode", "match", "require") if isinstance(record.get(k), str)),
        "",
    )
    require_all = mode.strip().lower() in ("all", "every")

    color = normalize_color(record.get("color"))
    if color.kind != "set":
        color = StyleDirective.set(DEFAULT_HIGHLIGHT_COLOR)
    else_color = normalize_color(record["elseColor"]) if "elseColor" in record else None

    expected = _comparison_values(record)
    self_cell = context.rows[context.row_index].get(context.column_key)
    raw_self = self_cell.value if self_cell is not None else ""

    if any(key in record for key in _TARGET_ARGS):
        targets = _effective_targets(record, context)
    else:
        targets = []
    if targets:
        inspected = [
            raw_self
            if _is_self(t, context)
            else context.get_cell_value(t.row_index, t.column_key, t.sheet_name)
            for t in targets
        ]
    else:
        inspected = [raw_self]

    results = [_matches(value, expected, operator, case_insensitive) for value in inspected]
    matched = all(results) if require_all else any(results)

    if matched:
        return FunctionResult(bg_color=color)
    if else_color is None:
        return ""
    return FunctionResult(bg_color=else_color)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_BUILTINS: dict[str, tuple[CellFunctionHandler, dict[str, Any]]] = {
    "sum": (
        _builtin_sum,
        {"label": "BIF: sum", "description": "Adds up the values of the selected cells.", "order": 1},
    ),
    "multiply": (
        _builtin_multiply,
        {"label": "BIF: multiply", "description": "Multiplies the values of the selected cells.", "order": 2},
    ),
    "color_if": (
        _builtin_color_if,
        {"label": "BIF: color_if", "description": "Changes the cell background when a condition holds.", "order": 3},
    ),
}


def _normalize_name(name: str) -> str:
    return name.strip().lower()


class FunctionRegistry:
    """Registry of cell function handlers and their catalog metadata.

    Starts with the builtins and can be extended with custom functions.
    Names are matched case-insensitively.
    """

    def __init__(self, include_builtins: bool = True) -> None:
        self._handlers: dict[str, CellFunctionHandler] = {}
        self._meta: dict[str, FunctionMeta] = {}
        if include_builtins:
            for name, (handler, options) in _BUILTINS.items():
                self.register(name, handler, source="builtin", **options)

    def register(
        self,
        name: str,
        handler: CellFunctionHandler,
        *,
        label: str | None = None,
        description: str = "",
        source: Literal["builtin", "dynamic"] = "builtin",
        module_id: str | None = None,
        export_name: str | None = None,
        order: int | float | None = None,
    ) -> FunctionMeta:
        """Register *handler* under *name*, replacing any previous entry."""
        normalized = _normalize_name(name)
        if not normalized:
            raise InvalidFunctionName(f"Cell function name must not be blank: {name!r}")
        meta = FunctionMeta(
            id=name,
            label=name if label is None else label,
            description=description,
            source=source,
            module_id=module_id,
            export_name=export_name,
            order=order,
        )
        self._handlers[normalized] = handler
        self._meta[normalized] = meta
        return meta

    def get(self, name: str) -> CellFunctionHandler | None:
        if not isinstance(name, str) or not name.strip():
            return None
        return self._handlers.get(_normalize_name(name))

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def list_functions(self) -> list[FunctionMeta]:
        """Metadata sorted by ``order`` (unset last), then by label."""
        return sorted(
            self._meta.values(),
            key=lambda meta: (
                meta.order is None,
                meta.order if meta.order is not None else 0,
                locale.strxfrm(meta.label),
            ),
        )

    @property
    def supported_functions(self) -> frozenset[str]:
        return frozenset(self._handlers.keys())
