"""A list of integers that grows and shrinks at its front."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator


class IntList:
    """Integers kept in order, added and taken off at the front."""

    def __init__(self) -> None:
        self._items: deque[int] = deque()

    def prepend(self, value: int) -> None:
        """Put ``value`` at the beginning of the list."""
        self._items.appendleft(value)

    def remove(self) -> int:
        """Take the first integer off the list and return it."""
        if not self._items:
            raise IndexError("remove from an empty list")
        return self._items.popleft()

    def empty(self) -> bool:
        """Return True if the list holds nothing."""
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[int]:
        return iter(self._items)