"""
Resolve-once values shared between the session controller and renderers.

A StreamableValue carries a provisional value while a turn is in flight and
is resolved exactly once. Observers are notified on resolution; async
readers can await it. Resolving a second time is an error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class AlreadyResolvedError(RuntimeError):
    """done() was called on a value that is already resolved."""


class StreamableValue:
    """Single-assignment cell with observers."""

    def __init__(self, initial: Any = None):
        self._value = initial
        self._resolved = False
        self._observers: list[Callable[[Any], None]] = []
        self._waiters: list[asyncio.Future] = []

    @classmethod
    def resolved(cls, value: Any) -> "StreamableValue":
        """A value that is already final (used for replayed history)."""
        cell = cls(value)
        cell._resolved = True
        return cell

    @property
    def value(self) -> Any:
        """Current value: provisional until resolved, final afterwards."""
        return self._value

    @property
    def is_resolved(self) -> bool:
        return self._resolved

    def done(self, value: Any) -> None:
        """Resolve the cell and notify every observer once."""
        if self._resolved:
            raise AlreadyResolvedError(f"value already resolved to {self._value!r}")
        self._value = value
        self._resolved = True

        observers, self._observers = self._observers, []
        for callback in observers:
            try:
                callback(value)
            except Exception as e:
                logger.warning("StreamableValue observer %r failed: %s", callback, e)

        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(value)

    def resolve_if_pending(self, value: Any) -> bool:
        """done(value) unless already resolved. Returns True if it resolved now."""
        if self._resolved:
            return False
        self.done(value)
        return True

    def subscribe(self, callback: Callable[[Any], None]) -> None:
        """Call `callback(value)` on resolution, immediately if already resolved."""
        if self._resolved:
            callback(self._value)
        else:
            self._observers.append(callback)

    async def wait(self) -> Any:
        """Await the final value."""
        if self._resolved:
            return self._value
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        return await fut

    def __eq__(self, other) -> bool:
        if not isinstance(other, StreamableValue):
            return NotImplemented
        return self._resolved == other._resolved and self._value == other._value

    __hash__ = None

    def __repr__(self) -> str:
        state = "resolved" if self._resolved else "pending"
        return f"<StreamableValue {state} {self._value!r}>"
