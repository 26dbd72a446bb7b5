"""Ambient transaction context.

A repository called anywhere beneath an open transaction finds the handle
here instead of receiving it as a parameter. The stack lives in a
``ContextVar`` holding an immutable tuple, so every asyncio task (and every
thread) sees its own stack: a task created inside ``run`` inherits the
handles active at creation time, and nothing it pushes leaks back out.

INVARIANT: ``run`` and ``scope`` pop on every exit path, including
exceptions and cancellation.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from enum import StrEnum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Propagation(StrEnum):
    """How a unit of work relates to the transaction already active."""

    REQUIRED = "required"
    REQUIRES_NEW = "requires_new"
    NESTED = "nested"
    SUPPORTS = "supports"
    NEVER = "never"


class TransactionContext:
    """LIFO stack of transaction handles, local to the running task."""

    def __init__(self, name: str = "metaforge_transaction") -> None:
        self._stack: ContextVar[tuple[Any, ...]] = ContextVar(name, default=())

    def get_active(self) -> Any | None:
        """Innermost active handle, or None."""
        stack = self._stack.get()
        return stack[-1] if stack else None

    def has_active(self) -> bool:
        return bool(self._stack.get())

    @property
    def depth(self) -> int:
        return len(self._stack.get())

    def push(self, handle: Any) -> None:
        self._stack.set((*self._stack.get(), handle))

    def pop(self) -> Any | None:
        """Remove and return the innermost handle; None when the stack is empty."""
        stack = self._stack.get()
        if not stack:
            return None
        self._stack.set(stack[:-1])
        return stack[-1]

    @contextmanager
    def scope(self, handle: Any) -> Iterator[Any]:
        """Make *handle* active for the ``with`` block."""
        token = self._stack.set((*self._stack.get(), handle))
        try:
            yield handle
        finally:
            self._stack.reset(token)

    async def run(self, handle: Any, body: Callable[[], T | Awaitable[T]]) -> T:
        """Call *body* with *handle* active, awaiting its result if needed."""
        with self.scope(handle):
            result = body()
            if inspect.isawaitable(result):
                result = await result
            return result


transaction_context = TransactionContext()
