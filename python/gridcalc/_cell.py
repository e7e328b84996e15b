"""Cell and function-call value objects for grid rows."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FunctionCall:
    """A named function call declared by a cell.

    ``args`` is an arbitrary mapping whose meaning is up to the handler
    registered under ``name``.
    """

    name: str
    args: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class Cell:
    """A single grid cell: text value, optional colours, optional function."""

    value: str = ""
    color: str | None = None
    bg_color: str | None = None
    func: FunctionCall | None = None


def create_cell(
    value: str = "",
    color: str | None = None,
    bg_color: str | None = None,
) -> Cell:
    """Build a plain cell, dropping blank colours."""
    return Cell(
        value=value,
        color=color if color and color.strip() else None,
        bg_color=bg_color if bg_color and bg_color.strip() else None,
    )


def summarize_function(func: FunctionCall | None) -> str:
    """One-line summary of a function call, e.g. ``sum(key=metric)``."""
    if func is None:
        return ""
    args = ", ".join(
        f"{key}={_stringify_arg(value)}" for key, value in (func.args or {}).items()
    )
    return f"{func.name}({args})" if args else func.name


def _stringify_arg(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        try:
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            return "[object]"
    return str(value)
