"""Remote collaborators: service interfaces, HTTP client and network state."""

from __future__ import annotations

from .client import RemoteClient, guess_mime_type
from .interfaces import DocumentService, NetworkMonitor, ReadingPositionService, TokenProvider
from .network import NetworkState, StaticTokenProvider

__all__ = [
    "RemoteClient",
    "guess_mime_type",
    "DocumentService",
    "ReadingPositionService",
    "NetworkMonitor",
    "TokenProvider",
    "NetworkState",
    "StaticTokenProvider",
]
