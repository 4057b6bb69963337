"""
Lifecycle Events and Reactive Signals.

``Event`` is a multi-subscriber notification with a synchronous
``trigger`` and an awaited ``trigger_async``: async handlers run one after
the other and the trigger completes only when all of them have.

``Signal`` holds a current value and publishes it to subscribers right
after every ``set``.  The controller commits a new session snapshot with
a single ``set`` call, so subscribers never observe a half-built state.
"""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar, Union

from authsession.interfaces import Unsubscribe

T = TypeVar("T")

Handler = Callable[[T], Union[None, Awaitable[None]]]

_log = logging.getLogger("authsession.events")


class EventSubscriber(Generic[T]):
    """Read-only view of an ``Event``: subscribe and unsubscribe only."""

    def __init__(self, event: "Event[T]") -> None:
        self._event = event

    def on(self, handler: Handler[T]) -> Unsubscribe:
        return self._event.on(handler)

    def off(self, handler: Handler[T]) -> None:
        self._event.off(handler)


class Event(Generic[T]):
    """Notification fan-out to registered handlers."""

    def __init__(self, name: str = "event") -> None:
        self._name = name
        self._handlers: list[Handler[T]] = []

    def on(self, handler: Handler[T]) -> Unsubscribe:
        """Register *handler*; the returned callable removes it again."""
        self._handlers.append(handler)
        return lambda: self.off(handler)

    def off(self, handler: Handler[T]) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def expose(self) -> EventSubscriber[T]:
        return EventSubscriber(self)

    def trigger(self, payload: T = None) -> None:  # type: ignore[assignment]
        """Call every handler without waiting for async ones.

        Coroutines returned by handlers are closed; fire-and-forget async
        work belongs in ``trigger_async``.
        """
        for handler in list(self._handlers):
            result = handler(payload)
            if inspect.isawaitable(result):
                _log.warning(
                    "Async handler %r on %s used with trigger(); use trigger_async().",
                    handler,
                    self._name,
                )
                close = getattr(result, "close", None)
                if close is not None:
                    close()

    async def trigger_async(self, payload: T = None) -> None:  # type: ignore[assignment]
        """Call every handler in registration order, awaiting async ones."""
        for handler in list(self._handlers):
            result = handler(payload)
            if inspect.isawaitable(result):
                await result

    def __len__(self) -> int:
        return len(self._handlers)


class Signal(Generic[T]):
    """Observable value with publish-after-set semantics."""

    def __init__(self, initial: T, name: str = "signal") -> None:
        self._value: T = initial
        self._name = name
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T, force: bool = False) -> None:
        """Replace the value and notify subscribers.

        Unless *force* is set, subscribers are only notified when the new
        value differs from the old one.
        """
        changed = force or value != self._value
        self._value = value
        if changed:
            for subscriber in list(self._subscribers):
                subscriber(value)

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe


class FlagSignal(Signal[bool]):
    """Boolean ``Signal`` with set/clear helpers."""

    def __init__(self, initial: bool = False, name: str = "flag") -> None:
        super().__init__(initial, name)

    def set_true(self) -> None:
        self.set(True)

    def set_false(self) -> None:
        self.set(False)


class SnapshotSignal(Signal[Optional[T]]):
    """``Signal`` that publishes on every commit, even an equal snapshot."""

    def set(self, value: Optional[T], force: bool = True) -> None:
        super().set(value, force=force)
