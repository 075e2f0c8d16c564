"""Last-in, first-out stacks: a bounded array version and an unbounded list version."""

from __future__ import annotations

import argparse
import sys
from abc import ABC, abstractmethod
from typing import Any, TextIO

from mipstools.intlist import IntList


class StackOverflow(OverflowError):
    """Raised when pushing onto a full stack."""


class StackUnderflow(IndexError):
    """Raised when popping from an empty stack."""


def _successor(value: Any) -> Any:
    """The value after ``value``: the next character for a character, else value + 1."""
    if isinstance(value, str) and len(value) == 1:
        return chr(ord(value) + 1)
    return value + 1


class Stack(ABC):
    """A last-in, first-out collection."""

    @abstractmethod
    def push(self, value: Any) -> None:
        """Put ``value`` on top of the stack."""

    @abstractmethod
    def pop(self) -> Any:
        """Remove and return the value on top of the stack."""

    @abstractmethod
    def full(self) -> bool:
        """Return True if the stack has no more room."""

    @abstractmethod
    def empty(self) -> bool:
        """Return True if the stack holds nothing."""

    def self_test(
        self,
        num_to_push: int | None = None,
        start: Any = 17,
        out: TextIO | None = None,
    ) -> list[Any]:
        """Push successive values from ``start``, then pop them all, reporting each step.

        With ``num_to_push`` of None, values are pushed until the stack is full.
        Returns the popped values in the order they came off.
        """
        stream = sys.stdout if out is None else out
        count = start
        if num_to_push is None:
            while not self.full():
                stream.write(f"pushing {count}\n")
                self.push(count)
                count = _successor(count)
        else:
            for _ in range(num_to_push):
                if self.full():
                    raise StackOverflow("stack is full")
                stream.write(f"pushing {count}\n")
                self.push(count)
                count = _successor(count)
        popped = []
        while not self.empty():
            value = self.pop()
            stream.write(f"popping {value}\n")
            popped.append(value)
        return popped


class ArrayStack(Stack):
    """A stack with a fixed maximum number of elements."""

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("stack size must be at least 1")
        self.size = size
        self._items: list[Any] = []

    def push(self, value: Any) -> None:
        if self.full():
            raise StackOverflow("stack is full")
        self._items.append(value)

    def pop(self) -> Any:
        if self.empty():
            raise StackUnderflow("stack is empty")
        return self._items.pop()

    def full(self) -> bool:
        return len(self._items) == self.size

    def empty(self) -> bool:
        return not self._items


class ListStack(Stack):
    """A stack kept on a linked list; it never fills up."""

    def __init__(self) -> None:
        self._list = IntList()

    def push(self, value: Any) -> None:
        self._list.prepend(value)

    def pop(self) -> Any:
        if self.empty():
            raise StackUnderflow("stack is empty")
        return self._list.remove()

    def full(self) -> bool:
        return False

    def empty(self) -> bool:
        return self._list.empty()


def main(argv: list[str] | None = None) -> int:
    """Exercise both stack implementations and print what they do."""
    parser = argparse.ArgumentParser(description="Run the stack self tests.")
    parser.add_argument("count", nargs="?", type=int, default=10,
                        help="number of values to push (default 10)")
    args = parser.parse_args(argv)
    if args.count < 1:
        parser.error("count must be at least 1")

    sys.stdout.write("Testing ArrayStack\n")
    ArrayStack(args.count).self_test(args.count)

    sys.stdout.write("Testing ListStack\n")
    ListStack().self_test(args.count)

    sys.stdout.write("Testing ArrayStack of characters\n")
    ArrayStack(args.count).self_test(start="a")
    return 0