"""Handler protocol and the value types exchanged with cell functions."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Literal, Protocol, Union

if TYPE_CHECKING:
    from gridcalc._workbook import Row


@dataclass(frozen=True)
class StyleDirective:
    """Tri-state instruction for one style property: leave, clear or set."""

    kind: Literal["unchanged", "cleared", "set"] = "unchanged"
    color: str | None = None

    @classmethod
    def set(cls, color: str) -> StyleDirective:
        return cls("set", color)

    @property
    def is_unchanged(self) -> bool:
        return self.kind == "unchanged"

    def apply(self, current: str | None) -> str | None:
        """Return the property value after applying this directive."""
        if self.kind == "cleared":
            return None
        if self.kind == "set":
            return self.color
        return current


UNCHANGED = StyleDirective()
CLEARED = StyleDirective("cleared")


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"


# Marks a FunctionResult that keeps the cell's raw value.
UNSET: Any = _Unset()


@dataclass(frozen=True)
class FunctionResult:
    """Structured handler output: optional value plus style directives."""

    value: str | int | float | None = UNSET
    color: StyleDirective = UNCHANGED
    bg_color: StyleDirective = UNCHANGED


@dataclass(frozen=True)
class EvaluationEntry:
    """Cached outcome of evaluating one cell."""

    value: str
    color: StyleDirective = UNCHANGED
    bg_color: StyleDirective = UNCHANGED

    @property
    def has_styles(self) -> bool:
        return not (self.color.is_unchanged and self.bg_color.is_unchanged)


@dataclass(frozen=True)
class ResolvedTarget:
    """A concrete cell a function reads from (0-based row)."""

    row_index: int
    column_key: str
    sheet_name: str | None = None


@dataclass(frozen=True)
class FunctionMeta:
    """Catalog metadata for a registered function."""

    id: str
    label: str
    description: str = ""
    source: Literal["builtin", "dynamic"] = "builtin"
    module_id: str | None = None
    export_name: str | None = None
    order: int | float | None = None


@dataclass(frozen=True)
class CellFunctionContext:
    """Where a handler runs and how it reads other cells.

    ``get_cell_value`` and ``resolve_column_key`` default to this context's
    sheet when no sheet name is passed.
    """

    rows: Sequence[Row]
    columns: Sequence[str]
    row_index: int
    column_key: str
    sheet_name: str
    get_cell_value: Callable[..., str]
    resolve_column_key: Callable[..., str | None] | None = None
    count_rows: Callable[..., int | None] | None = None


HandlerOutput = Union[str, int, float, None, FunctionResult, Mapping[str, Any]]


class CellFunctionHandler(Protocol):
    """Uniform signature every cell function implements."""

    def __call__(
        self, args: Mapping[str, Any], context: CellFunctionContext
    ) -> HandlerOutput: ...
