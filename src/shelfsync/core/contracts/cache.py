"""Cache manifest contract.

A manifest describes one cached optimized payload (version, checksum, save
time) without carrying the pages themselves. It is written *after* the page
payload so that a manifest on disk always implies a complete payload write.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class CacheManifest(BaseModel):
    """Metadata for one document's cached page payload."""

    document_id: str
    version: int = Field(1, ge=1, description="Optimized payload version (>= 1).")
    checksum: str | None = Field(None, description="SHA-256 reported by the server.")
    saved_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def matches(self, expected_checksum: str | None) -> bool:
        """Return True when ``expected_checksum`` is empty or equals the stored one."""
        if not expected_checksum:
            return True
        return self.checksum is not None and self.checksum == expected_checksum


__all__ = ["CacheManifest"]
