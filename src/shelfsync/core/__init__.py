"""Core package initializer for shelfsync.

Downstream code imports directly from the submodules, e.g.:
    from shelfsync.core.settings import settings, load_settings, Settings, get_logger
    from shelfsync.core.paging import assemble_pages
"""

from __future__ import annotations

__all__ = ["__doc__"]
