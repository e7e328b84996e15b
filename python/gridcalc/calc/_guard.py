"""In-flight key tracking for recursive cell evaluation."""

from __future__ import annotations

# (sheet name, 0-based row, column key)
GuardKey = tuple[str, int, str]


class CycleGuard:
    """Ordered set of cells currently being evaluated.

    A key that is entered while already in flight closes a cycle; every key
    pushed since its first entry belongs to that cycle.
    """

    __slots__ = ("_stack", "_members")

    def __init__(self) -> None:
        self._stack: list[GuardKey] = []
        self._members: set[GuardKey] = set()

    def __contains__(self, key: GuardKey) -> bool:
        return key in self._members

    def __len__(self) -> int:
        return len(self._stack)

    def push(self, key: GuardKey) -> None:
        if key in self._members:
            raise ValueError(f"{key!r} is already being evaluated")
        self._stack.append(key)
        self._members.add(key)

    def pop(self) -> GuardKey:
        key = self._stack.pop()
        self._members.discard(key)
        return key

    def cycle_from(self, key: GuardKey) -> list[GuardKey]:
        """Keys in flight from *key*'s entry to the top of the stack."""
        if key not in self._members:
            return []
        return self._stack[self._stack.index(key):]

    def format_cycle(self, key: GuardKey) -> str:
        path = [*self.cycle_from(key), key]
        return " -> ".join(f"{sheet}!{column}#{row + 1}" for sheet, row, column in path)
