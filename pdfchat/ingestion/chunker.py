"""
Passage chunking shared by both extractors.

Every page is cut into windows of at most ``chunk_size`` characters.  A
window ends on the coarsest boundary available inside it, trying in order:

    paragraph break → line break → sentence end → whitespace → character

and the next window starts exactly ``chunk_overlap`` characters before the
previous one ended.  Windows are taken verbatim from the page text (no
stripping), so ``p0 + p1[overlap:] + p2[overlap:] …`` gives back the page.
The character fallback means no single unit is ever too long to split.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from pdfchat.ingestion.config import ingest_settings
from pdfchat.ingestion.schemas import Passage, SourceDocument

logger = logging.getLogger(__name__)

# Coarsest first.  A boundary is the end offset of a match.
_BOUNDARIES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\n[ \t]*\n\s*"),  # paragraph
    re.compile(r"\n"),  # line
    re.compile(r"(?<=[.!?])[\"')\]]*\s+"),  # sentence
    re.compile(r"\s+"),  # whitespace
)


def _validate(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ValueError(f"chunk_overlap must be >= 0, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ValueError(
            f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})"
        )


def _find_end(text: str, start: int, chunk_size: int, chunk_overlap: int) -> int:
    """End offset of the window starting at *start*."""
    limit = start + chunk_size
    if limit >= len(text):
        return len(text)

    # The window must end past start + overlap or the next one cannot advance.
    lower = start + chunk_overlap
    window = text[start:limit]
    for pattern in _BOUNDARIES:
        best = -1
        for m in pattern.finditer(window):
            end = start + m.end()
            if lower < end <= limit:
                best = end
        if best != -1:
            return best
    return limit


def split_text(
    text: str,
    chunk_size: int | None = None,
    chunk_overlap: int | None = None,
) -> list[tuple[int, str]]:
    """Split *text* into ``(offset, content)`` windows."""
    chunk_size = chunk_size if chunk_size is not None else ingest_settings.chunk_size
    chunk_overlap = chunk_overlap if chunk_overlap is not None else ingest_settings.chunk_overlap
    _validate(chunk_size, chunk_overlap)

    pieces: list[tuple[int, str]] = []
    start = 0
    while start < len(text):
        end = _find_end(text, start, chunk_size, chunk_overlap)
        pieces.append((start, text[start:end]))
        if end >= len(text):
            break
        start = end - chunk_overlap
    return pieces


def chunk_documents(
    documents: Iterable[SourceDocument],
    chunk_size: int | None = None,
    chunk_overlap: int | None = None,
) -> list[Passage]:
    """Flatten page documents into ordered, overlapping passages.

    Pages with no visible text contribute no passages.
    """
    passages: list[Passage] = []
    pages = 0
    for doc in documents:
        pages += 1
        if not doc.raw_text.strip():
            logger.debug("  Page %d: no text, skipped.", doc.page_number)
            continue
        for offset, content in split_text(doc.raw_text, chunk_size, chunk_overlap):
            passages.append(
                Passage(
                    content=content,
                    source_doc_index=doc.page_index,
                    offset_in_source=offset,
                )
            )

    logger.info("Split %d pages into %d passages.", pages, len(passages))
    return passages


def reconstruct_text(passages: Sequence[Passage], chunk_overlap: int | None = None) -> str:
    """Inverse of ``split_text`` for passages of a single source."""
    overlap = chunk_overlap if chunk_overlap is not None else ingest_settings.chunk_overlap
    if not passages:
        return ""
    parts = [passages[0].content]
    parts.extend(p.content[overlap:] for p in passages[1:])
    return "".join(parts)
