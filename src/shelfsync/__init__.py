"""shelfsync: offline-first document sync engine for a paginated reader.

The package keeps a reader usable on unreliable networks:

- ``shelfsync.core``     contracts, settings, paging, result/error types.
- ``shelfsync.storage``  durable on-disk stores (offline pages, pins, queues, index).
- ``shelfsync.remote``   interfaces to the remote document service and the HTTP client.
- ``shelfsync.sync``     coordinator, reconciler, reader and library orchestration.
"""

from __future__ import annotations

__all__ = ["__version__"]
__version__ = "0.3.0"
