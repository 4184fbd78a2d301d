"""
Content Block Contract

A ContentBlock is the unit the remote document service returns for a
document's live content: a paragraph, heading, list item, etc., tagged with the
page it was found on and its order within that page.

Blocks are immutable once decoded. The backend calls the text field
``content``; we expose it as ``text`` and accept either spelling on input.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ContentBlock(BaseModel):
    """A single typed text block from the remote document service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str = Field(..., description="Block kind, e.g. 'paragraph' or 'heading'.")
    text: str = Field("", alias="content", description="Raw block text.")
    page_number: int = Field(0, description="1-indexed page; 0 or negative means unknown.")
    position: int = Field(0, description="Order of the block within its page.")
    level: int = Field(0, description="Heading depth when type is 'heading'.")

    @property
    def is_heading(self) -> bool:
        return self.type.strip().lower() == "heading"

    @property
    def has_known_page(self) -> bool:
        return self.page_number > 0


__all__ = ["ContentBlock"]
