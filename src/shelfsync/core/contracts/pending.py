"""Durable queue entries for work that still has to reach the remote service."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

DEFAULT_UPLOAD_NAME = "document.pdf"


class PendingPositionEntry(BaseModel):
    """A reading position that has not been confirmed by the remote service.

    At most one entry exists per document; a newer write replaces the old one.
    """

    document_id: str
    page_number: int
    progress: float = Field(ge=0.0, le=1.0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PendingUploadEntry(BaseModel):
    """A file queued for upload; its bytes live in a payload file named by `id`."""

    id: str
    file_name: str = DEFAULT_UPLOAD_NAME
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("file_name", mode="before")
    @classmethod
    def _default_name(cls, v: object) -> object:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_UPLOAD_NAME
        return v


__all__ = ["PendingPositionEntry", "PendingUploadEntry", "DEFAULT_UPLOAD_NAME"]
