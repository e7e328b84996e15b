"""Tests for gridcalc.calc function registry and builtins."""

from __future__ import annotations

import dataclasses

import pytest

from gridcalc._cell import Cell, FunctionCall, create_cell
from gridcalc.calc._functions import (
    DEFAULT_HIGHLIGHT_COLOR,
    FunctionRegistry,
    InvalidFunctionName,
    format_number,
    normalize_operator,
    operand_number,
    to_number,
)
from gridcalc.calc._protocol import CLEARED, CellFunctionContext, FunctionResult, StyleDirective


def _context(
    rows: list[dict[str, Cell]],
    row_index: int,
    column_key: str,
    values: dict[tuple[int, str], str] | None = None,
) -> CellFunctionContext:
    """Handler context whose reads come from *values*, else the raw rows."""
    columns = list(dict.fromkeys(k for row in rows for k in row))

    def get_cell_value(r: int, c: str, sheet: str | None = None) -> str:
        if values is not None and (r, c) in values:
            return values[(r, c)]
        cell = rows[r].get(c) if 0 <= r < len(rows) else None
        return cell.value if cell is not None else ""

    return CellFunctionContext(
        rows=rows,
        columns=columns,
        row_index=row_index,
        column_key=column_key,
        sheet_name="Sheet 1",
        get_cell_value=get_cell_value,
        resolve_column_key=lambda i, s=None: columns[i] if 0 <= i < len(columns) else None,
    )


def _call(name: str, args: dict, context: CellFunctionContext):
    return FunctionRegistry().get(name)(args, context)


def _column(*values: str) -> list[dict[str, Cell]]:
    return [{"metric": create_cell(v)} for v in values]


class TestFunctionRegistry:
    def test_builtins_registered(self) -> None:
        reg = FunctionRegistry()
        assert reg.has("sum")
        assert reg.has("multiply")
        assert reg.has("color_if")
        assert reg.supported_functions == frozenset({"sum", "multiply", "color_if"})

    def test_empty_registry(self) -> None:
        reg = FunctionRegistry(include_builtins=False)
        assert not reg.has("sum")
        assert reg.list_functions() == []

    def test_case_insensitive_lookup(self) -> None:
        reg = FunctionRegistry()
        assert reg.get("SUM") is reg.get("sum")
        assert reg.get("  Sum ") is reg.get("sum")

    def test_missing_and_blank_names(self) -> None:
        reg = FunctionRegistry()
        assert reg.get("nope") is None
        assert reg.get("   ") is None

    @pytest.mark.parametrize("name", [None, 3, ["sum"]])
    def test_non_string_name_not_found(self, name) -> None:
        reg = FunctionRegistry()
        assert reg.get(name) is None
        assert not reg.has(name)

    def test_custom_registration(self) -> None:
        reg = FunctionRegistry()
        meta = reg.register(" MyFunc ", lambda args, ctx: "42", description="answer")
        assert reg.get("myfunc")({}, None) == "42"
        assert meta.id == " MyFunc "
        assert meta.label == " MyFunc "
        assert meta.source == "builtin"
        assert meta.description == "answer"

    def test_dynamic_metadata(self) -> None:
        reg = FunctionRegistry()
        meta = reg.register(
            "dyn:stats.mean", lambda args, ctx: "", label="stats.mean",
            source="dynamic", module_id="stats", export_name="mean",
        )
        assert meta.source == "dynamic"
        assert meta.module_id == "stats"
        assert meta.export_name == "mean"

    def test_reregistration_overwrites(self) -> None:
        reg = FunctionRegistry()
        reg.register("sum", lambda args, ctx: "replaced")
        assert reg.get("SUM")({}, None) == "replaced"
        assert sum(1 for m in reg.list_functions() if m.id == "sum") == 1

    @pytest.mark.parametrize("name", ["", "   ", "\t"])
    def test_blank_name_rejected(self, name: str) -> None:
        with pytest.raises(InvalidFunctionName):
            FunctionRegistry().register(name, lambda args, ctx: "")

    def test_invalid_name_is_value_error(self) -> None:
        assert issubclass(InvalidFunctionName, ValueError)

    def test_list_ordering(self) -> None:
        reg = FunctionRegistry(include_builtins=False)
        reg.register("zeta", lambda a, c: "", label="zeta")
        reg.register("alpha", lambda a, c: "", label="alpha")
        reg.register("second", lambda a, c: "", order=2)
        reg.register("first", lambda a, c: "", order=1)
        assert [m.id for m in reg.list_functions()] == ["first", "second", "alpha", "zeta"]

    def test_builtin_metadata(self) -> None:
        listed = FunctionRegistry().list_functions()
        assert [m.id for m in listed] == ["sum", "multiply", "color_if"]
        assert all(m.source == "builtin" for m in listed)
        assert listed[0].label == "BIF: sum"


class TestNumbers:
    @pytest.mark.parametrize(
        "raw, expected",
        [("5", 5.0), (" 2.5 ", 2.5), ("-3", -3.0), ("1e3", 1000.0), (7, 7.0), (True, 1.0)],
    )
    def test_to_number(self, raw, expected) -> None:
        assert to_number(raw) == expected

    @pytest.mark.parametrize("raw", ["", "  ", "abc", "nan", "inf", "1_000", None, [1]])
    def test_not_numbers(self, raw) -> None:
        assert to_number(raw) is None

    @pytest.mark.parametrize(
        "raw, expected",
        [("", 0.0), ("   ", 0.0), ("4", 4.0), (" 2.5 ", 2.5), ("abc", None), (None, None)],
    )
    def test_operand_number(self, raw, expected) -> None:
        assert operand_number(raw) == expected

    @pytest.mark.parametrize(
        "value, text",
        [
            (5.0, "5"),
            (-0.0, "0"),
            (2.5, "2.5"),
            (0.1 + 0.2, "0.30000000000000004"),
            (0.00001, "0.00001"),
            (1e-7, "1e-7"),
            (1e21, "1e+21"),
            (1e20, "100000000000000000000"),
            (12, "12"),
        ],
    )
    def test_format_number(self, value, text) -> None:
        assert format_number(value) == text


class TestBuiltinSum:
    def test_column_sum_excludes_self(self) -> None:
        rows = _column("2", "3", "")
        assert _call("sum", {"key": "metric"}, _context(rows, 2, "metric")) == "5"

    def test_ignores_non_numeric(self) -> None:
        rows = _column("2", "abc", "", "4.5", "")
        assert _call("sum", {"key": "metric"}, _context(rows, 4, "metric")) == "6.5"

    def test_blank_operands_are_zero(self) -> None:
        rows = _column("", " ", "")
        assert _call("sum", {"key": "metric"}, _context(rows, 2, "metric")) == "0"

    def test_no_numeric_operands_is_zero(self) -> None:
        rows = _column("a", "b", "")
        assert _call("sum", {"key": "metric"}, _context(rows, 2, "metric")) == "0"

    def test_reads_through_context(self) -> None:
        rows = _column("", "", "")
        values = {(0, "metric"): "10", (1, "metric"): "5"}
        assert _call("sum", {"key": "metric"}, _context(rows, 2, "metric", values)) == "15"

    def test_row_axis(self) -> None:
        rows = [{"a": create_cell("1"), "b": create_cell("2"), "total": create_cell("")}]
        assert _call("sum", {"axis": "row"}, _context(rows, 0, "total")) == "3"

    def test_explicit_cells_with_missing_sheet_resolve_nothing(self) -> None:
        rows = _column("1")
        ctx = _context(rows, 0, "metric")
        ctx = dataclasses.replace(ctx, count_rows=lambda s=None: None)
        assert _call("sum", {"cells": [{"sheet": "Missing", "row": 1, "key": "x"}]}, ctx) == ""


class TestBuiltinMultiply:
    def test_product(self) -> None:
        rows = _column("2", "3", "")
        assert _call("multiply", {"key": "metric"}, _context(rows, 2, "metric")) == "6"

    def test_row_range(self) -> None:
        rows = _column("1", "2", "4", "")
        args = {"key": "metric", "rows": {"start": 2, "end": 3}}
        assert _call("multiply", args, _context(rows, 3, "metric")) == "8"

    def test_no_numeric_operands(self) -> None:
        rows = _column("a", "b", "")
        assert _call("multiply", {"key": "metric"}, _context(rows, 2, "metric")) == ""

    def test_blank_cell_counts_as_zero(self) -> None:
        rows = _column("2", "", "5", "")
        assert _call("multiply", {"key": "metric"}, _context(rows, 3, "metric")) == "0"

    def test_all_blank_column_is_zero(self) -> None:
        rows = _column("", "  ", "")
        assert _call("multiply", {"key": "metric"}, _context(rows, 2, "metric")) == "0"


class TestOperatorAliases:
    @pytest.mark.parametrize(
        "raw, op",
        [
            ("eq", "eq"), ("NE", "neq"), ("not-equal", "neq"), ("greater_than", "gt"),
            ("ge", "gte"), ("less", "lt"), ("le", "lte"), ("contains", "includes"),
            ("is_empty", "empty"), ("filled", "not_empty"), ("bogus", "eq"), (None, "eq"),
        ],
    )
    def test_normalize(self, raw, op) -> None:
        assert normalize_operator(raw) == op


class TestBuiltinColorIf:
    def _run(self, value: str, args: dict):
        rows = [{"score": create_cell(value)}]
        return _call("color_if", args, _context(rows, 0, "score"))

    def test_gt_match(self) -> None:
        result = self._run("15", {"operator": "gt", "value": 10, "color": "#ff0000"})
        assert result == FunctionResult(bg_color=StyleDirective.set("#ff0000"))

    def test_gt_no_match_without_else(self) -> None:
        assert self._run("5", {"operator": "gt", "value": 10, "color": "#ff0000"}) == ""

    def test_default_color(self) -> None:
        result = self._run("ok", {"value": "ok"})
        assert result.bg_color == StyleDirective.set(DEFAULT_HIGHLIGHT_COLOR)

    def test_blank_color_uses_default(self) -> None:
        result = self._run("ok", {"value": "ok", "color": "  "})
        assert result.bg_color == StyleDirective.set(DEFAULT_HIGHLIGHT_COLOR)

    def test_else_color(self) -> None:
        result = self._run("5", {"operator": "gt", "value": 10, "elseColor": " #00ff00 "})
        assert result.bg_color == StyleDirective.set("#00ff00")

    def test_else_color_clear(self) -> None:
        assert self._run("5", {"operator": "gt", "value": 10, "elseColor": None}).bg_color == CLEARED
        assert self._run("5", {"operator": "gt", "value": 10, "elseColor": ""}).bg_color == CLEARED

    def test_eq_numeric_and_text(self) -> None:
        assert self._run("10.0", {"value": 10}) != ""
        assert self._run("Done", {"value": " Done "}) != ""
        assert self._run("done", {"value": "Done"}) == ""
        assert self._run("done", {"value": "Done", "caseInsensitive": True}) != ""
        assert self._run("done", {"value": "Done", "ignoreCase": True}) != ""

    def test_eq_any_of_values(self) -> None:
        assert self._run("b", {"values": ["a", "b"]}) != ""
        assert self._run("c", {"values": ["a", "b"]}) == ""

    def test_neq_requires_all_different(self) -> None:
        assert self._run("c", {"operator": "neq", "values": ["a", "b"]}) != ""
        assert self._run("a", {"operator": "neq", "values": ["a", "b"]}) == ""

    def test_comparison_sources(self) -> None:
        assert self._run("3", {"operator": "gte", "threshold": 3}) != ""
        assert self._run("3", {"operator": "lt", "target": 4}) != ""
        assert self._run("x", {"targets": ["x"]}) != ""
        assert self._run("x", {"matchValue": "x"}) != ""
        assert self._run("x", {"equals": "x"}) != ""

    def test_no_expected_values_never_matches(self) -> None:
        assert self._run("x", {"operator": "eq"}) == ""
        assert self._run("5", {"operator": "gt"}) == ""

    def test_non_numeric_never_compares(self) -> None:
        assert self._run("abc", {"operator": "gt", "value": 1}) == ""

    def test_includes(self) -> None:
        assert self._run("hello world", {"operator": "contains", "value": "lo w"}) != ""
        assert self._run("Hello", {"operator": "includes", "value": "hell"}) == ""
        assert self._run("Hello", {"operator": "includes", "value": "hell", "caseInsensitive": True}) != ""

    def test_empty_operators(self) -> None:
        assert self._run("  ", {"operator": "empty"}) != ""
        assert self._run("x", {"operator": "empty"}) == ""
        assert self._run("x", {"operator": "not_empty"}) != ""

    def test_inspects_targets_when_selector_present(self) -> None:
        rows = [
            {"score": create_cell("20"), "flag": create_cell("")},
            {"score": create_cell("1"), "flag": create_cell("")},
        ]
        args = {"operator": "gt", "value": 10, "key": "score"}
        assert _call("color_if", args, _context(rows, 0, "flag")) != ""
        all_args = {**args, "mode": "all"}
        assert _call("color_if", all_args, _context(rows, 0, "flag")) == ""
        every_args = {**args, "require": "every"}
        assert _call("color_if", every_args, _context(rows, 0, "flag")) == ""

    def test_self_target_reads_raw_value(self) -> None:
        rows = [{"score": create_cell("15")}]
        ctx = _context(rows, 0, "score", values={(0, "score"): "0"})
        args = {"operator": "gt", "value": 10, "cells": [{"row": 1, "key": "score"}]}
        assert _call("color_if", args, ctx) != ""


class TestHandlerCallable:
    def test_handler_receives_args_and_context(self) -> None:
        seen = {}

        def handler(args, context):
            seen["args"] = args
            seen["where"] = (context.row_index, context.column_key)
            return "ok"

        reg = FunctionRegistry(include_builtins=False)
        reg.register("inspect_cell", handler)
        rows = [{"a": Cell(func=FunctionCall("inspect_cell", {"x": 1}))}]
        assert reg.get("INSPECT_CELL")({"x": 1}, _context(rows, 0, "a")) == "ok"
        assert seen == {"args": {"x": 1}, "where": (0, "a")}
