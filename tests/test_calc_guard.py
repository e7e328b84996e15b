"""Tests for the in-flight cycle guard."""

from __future__ import annotations

import pytest

from gridcalc.calc._guard import CycleGuard

A = ("Sheet 1", 0, "a")
B = ("Sheet 1", 1, "b")
C = ("Data", 0, "a")


class TestCycleGuard:
    def test_push_pop(self) -> None:
        guard = CycleGuard()
        guard.push(A)
        guard.push(B)
        assert A in guard and B in guard
        assert len(guard) == 2
        assert guard.pop() == B
        assert B not in guard
        assert guard.pop() == A
        assert len(guard) == 0

    def test_double_push_rejected(self) -> None:
        guard = CycleGuard()
        guard.push(A)
        with pytest.raises(ValueError):
            guard.push(A)

    def test_same_cell_on_other_sheet_is_distinct(self) -> None:
        guard = CycleGuard()
        guard.push(A)
        assert C not in guard

    def test_cycle_from(self) -> None:
        guard = CycleGuard()
        guard.push(C)
        guard.push(A)
        guard.push(B)
        assert guard.cycle_from(A) == [A, B]
        assert guard.cycle_from(("x", 0, "y")) == []

    def test_format_cycle(self) -> None:
        guard = CycleGuard()
        guard.push(A)
        guard.push(B)
        assert guard.format_cycle(A) == "Sheet 1!a#1 -> Sheet 1!b#2 -> Sheet 1!a#1"
