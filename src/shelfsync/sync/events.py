"""Explicit callback channels owned by the component that emits them.

Replaces process-wide "documents changed" broadcasts: a consumer subscribes
to the specific channel it cares about and gets an unsubscribe handle back.
A failing subscriber is logged and never breaks the emitter.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

from shelfsync.core.settings import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class EventChannel(Generic[T]):
    """Synchronous fan-out of one event type to registered callbacks."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def emit(self, event: T) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber to %s failed", self.name)

    def __len__(self) -> int:
        return len(self._subscribers)


__all__ = ["EventChannel"]
