"""
Initialization Gate.

Counts in-flight session (re)initializations.  ``initializing`` is true
before the first reconciliation has run and while any guarded operation is
still pending, so overlapping reconciliations (a sign-out notification
arriving while an earlier reconciliation is still awaiting storage) are
reported correctly.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from authsession.events import FlagSignal

T = TypeVar("T")


class InitializationGate:
    """Reentrant counter guarding async session initialization."""

    def __init__(self) -> None:
        self._counter: int = 0
        self._first_init: bool = True
        self._initializing = FlagSignal(True, name="initializing")

    @property
    def counter(self) -> int:
        return self._counter

    @property
    def first_init(self) -> bool:
        return self._first_init

    @property
    def initializing(self) -> bool:
        return self._first_init or self._counter != 0

    @property
    def initializing_signal(self) -> FlagSignal:
        return self._initializing

    def clear_first_init(self) -> None:
        self._first_init = False
        self._publish()

    @asynccontextmanager
    async def guard(self) -> AsyncIterator[None]:
        """Hold the gate open for the duration of the ``async with`` block."""
        self._counter += 1
        self._publish()
        try:
            yield
        finally:
            self._counter -= 1
            self._publish()

    async def run(self, cb: Callable[[], Awaitable[T]]) -> T:
        """Await *cb* under the gate and return its result."""
        async with self.guard():
            return await cb()

    def _publish(self) -> None:
        self._initializing.set(self.initializing)
