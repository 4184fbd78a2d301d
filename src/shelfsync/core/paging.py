"""
Page Assembler: content blocks to renderable page strings.

The remote service returns a document as a flat list of typed blocks, each
tagged with a page number and a position within that page. Readers want one
string per page, in order, with backend page boundaries preserved so the
mobile reader and the web reader agree on "page 12".

Rendering rules
---------------
- Blocks with ``page_number <= 0`` (unknown page) are dropped.
- Pages are ordered by ascending page number, blocks by ascending position.
- Each block's text is trimmed; empty blocks are skipped.
- ``heading`` blocks are upper-cased.
- Blocks are joined by a blank line (``"\\n\\n"``).
- A page with nothing left renders as a single space, never ``""``.

Fallback
--------
Some backends omit page numbers on short documents. When no block carries a
usable page number, :func:`assemble_pages` returns ``[]`` and callers use
:func:`paginate`, which flattens everything and hands the text to an external
layout-aware :class:`Paginator`.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import Protocol

from shelfsync.core.contracts.block import ContentBlock

#: Separator between blocks on one page.
BLOCK_SEPARATOR: str = "\n\n"

#: Placeholder for a page whose blocks are all empty.
EMPTY_PAGE: str = " "


class Paginator(Protocol):
    """Layout-aware splitter for text with no usable page boundaries."""

    def paginate(self, text: str) -> list[str]: ...


def _render(block: ContentBlock) -> str:
    trimmed = block.text.strip()
    return trimmed.upper() if block.is_heading else trimmed


def _join(blocks: Iterable[ContentBlock]) -> str:
    parts = [text for text in (_render(b) for b in blocks) if text]
    return BLOCK_SEPARATOR.join(parts).strip()


def assemble_pages(blocks: Iterable[ContentBlock]) -> list[str]:
    """Group blocks by backend page number and render each page.

    Parameters
    ----------
    blocks:
        Content blocks for one document, in any order.

    Returns
    -------
    list[str]
        One string per distinct valid page number, ascending. Empty when no
        block has a page number greater than zero.
    """
    grouped: dict[int, list[ContentBlock]] = defaultdict(list)
    for block in blocks:
        if block.has_known_page:
            grouped[block.page_number].append(block)

    pages: list[str] = []
    for number in sorted(grouped):
        ordered = sorted(grouped[number], key=lambda b: b.position)
        text = _join(ordered)
        pages.append(text if text else EMPTY_PAGE)
    return pages


def flatten_blocks(blocks: Iterable[ContentBlock]) -> str:
    """Render every block into one string ordered by ``(page_number, position)``."""
    ordered = sorted(blocks, key=lambda b: (b.page_number, b.position))
    return _join(ordered)


def paginate(blocks: Iterable[ContentBlock], paginator: Paginator | None) -> list[str]:
    """Prefer backend page boundaries; otherwise flatten and re-paginate.

    Returns ``[]`` when there is no usable text at all, or when a fallback is
    needed but no paginator was supplied.
    """
    materialized = list(blocks)
    pages = assemble_pages(materialized)
    if pages:
        return pages

    text = flatten_blocks(materialized)
    if not text or paginator is None:
        return []
    return paginator.paginate(text)


class FixedSizePaginator:
    """Word-boundary splitter used when no layout engine is attached (CLI, tests).

    Splits on paragraph breaks first and packs paragraphs into pages of at
    most ``max_chars`` characters; a single overlong paragraph is split on
    whitespace.
    """

    def __init__(self, max_chars: int = 1800) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars

    def paginate(self, text: str) -> list[str]:
        pages: list[str] = []
        current = ""
        for paragraph in (p.strip() for p in text.split(BLOCK_SEPARATOR)):
            if not paragraph:
                continue
            for piece in self._split_long(paragraph):
                candidate = f"{current}{BLOCK_SEPARATOR}{piece}" if current else piece
                if len(candidate) <= self.max_chars:
                    current = candidate
                    continue
                if current:
                    pages.append(current)
                current = piece
        if current:
            pages.append(current)
        return pages

    def _split_long(self, paragraph: str) -> list[str]:
        if len(paragraph) <= self.max_chars:
            return [paragraph]
        chunks: list[str] = []
        line = ""
        for word in paragraph.split():
            candidate = f"{line} {word}" if line else word
            if len(candidate) > self.max_chars and line:
                chunks.append(line)
                line = word
            else:
                line = candidate
        if line:
            chunks.append(line)
        return chunks


__all__ = [
    "BLOCK_SEPARATOR",
    "EMPTY_PAGE",
    "Paginator",
    "FixedSizePaginator",
    "assemble_pages",
    "flatten_blocks",
    "paginate",
]
