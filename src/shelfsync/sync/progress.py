"""Human-readable download progress labels."""

from __future__ import annotations

BYTES_PER_MB = 1_000_000


def format_progress_mb(num_bytes: int) -> str:
    """Format an approximate byte count as compact decimal megabytes, e.g. ``"1.2mb"``.

    Negative inputs clamp to zero. Values are truncated, not rounded, so the
    label never runs ahead of the estimate it is derived from.
    """
    tenths = max(0, num_bytes) * 10 // BYTES_PER_MB
    return f"{tenths // 10}.{tenths % 10}mb"


__all__ = ["format_progress_mb", "BYTES_PER_MB"]
