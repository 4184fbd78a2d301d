"""In-process network state and a static token provider.

The host application (or the CLI) feeds reachability changes into a
`NetworkState`; components that care register a callback with `on_change`
rather than listening for a global broadcast.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

from shelfsync.core.settings import get_logger

logger = get_logger(__name__)

NetworkListener = Callable[["NetworkState"], None]


class NetworkState:
    """Mutable, observable reachability flags implementing `NetworkMonitor`."""

    def __init__(self, *, online: bool = True, unmetered: bool = True) -> None:
        self._online = online
        self._unmetered = unmetered
        self._listeners: list[NetworkListener] = []
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_unmetered(self) -> bool:
        return self._online and self._unmetered

    def on_change(self, listener: NetworkListener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def update(self, *, online: bool, unmetered: bool) -> None:
        """Record a new path state and notify listeners if anything changed."""
        with self._lock:
            changed = (online, unmetered) != (self._online, self._unmetered)
            self._online = online
            self._unmetered = unmetered
            listeners = list(self._listeners)
        if not changed:
            return
        logger.info("Network changed: online=%s unmetered=%s", online, unmetered)
        for listener in listeners:
            try:
                listener(self)
            except Exception:
                logger.exception("Network listener failed")


@dataclass(frozen=True, slots=True)
class StaticTokenProvider:
    """Token provider returning a fixed token (settings, tests)."""

    token: str | None

    def bearer_token(self) -> str | None:
        return self.token or None


__all__ = ["NetworkState", "NetworkListener", "StaticTokenProvider"]
