"""
PDF parsing & rendering via PyMuPDF (fitz).

Responsibilities
- Validate the input path before any heavy work starts.
- Extract the native text layer page by page (the *direct* extractor).
- Render pages lazily to PNG pixmaps for the OCR extractor.

The direct extractor does no image processing at all, so scanned or
handwritten pages come back empty; that is what the OCR path is for.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import fitz  # PyMuPDF

from pdfchat.errors import DocumentNotFound, ExtractionFailure
from pdfchat.ingestion.config import ingest_settings
from pdfchat.ingestion.schemas import ExtractionMethod, SourceDocument

logger = logging.getLogger(__name__)


def ensure_readable(pdf_path: Path | str) -> Path:
    """Return *pdf_path* as a ``Path`` or raise ``DocumentNotFound``."""
    path = Path(pdf_path).expanduser()
    if not path.is_file() or not os.access(path, os.R_OK):
        raise DocumentNotFound(path)
    return path


@contextmanager
def open_pdf(pdf_path: Path | str) -> Iterator[fitz.Document]:
    """Open a PDF, translating parser errors into ``ExtractionFailure``."""
    path = ensure_readable(pdf_path)
    try:
        doc = fitz.open(str(path))
    except Exception as exc:
        raise ExtractionFailure(f"Cannot open PDF ({exc})", path=path) from exc
    try:
        if not doc.is_pdf:
            raise ExtractionFailure("Not a PDF document", path=path)
        if len(doc) == 0:
            raise ExtractionFailure("PDF has no pages", path=path)
        yield doc
    finally:
        doc.close()


def _page_limit(doc: fitz.Document) -> int:
    total = len(doc)
    return min(total, ingest_settings.max_pages or total)


def extract_direct(pdf_path: Path | str) -> list[SourceDocument]:
    """Return one ``SourceDocument`` per page from the embedded text layer."""
    documents: list[SourceDocument] = []
    with open_pdf(pdf_path) as doc:
        limit = _page_limit(doc)
        for idx in range(limit):
            page: fitz.Page = doc[idx]
            try:
                text = page.get_text("text")
            except Exception as exc:
                raise ExtractionFailure(
                    f"Text layer unreadable ({exc})", page=idx + 1, path=pdf_path
                ) from exc
            documents.append(
                SourceDocument(
                    page_index=idx,
                    raw_text=text,
                    extraction_method=ExtractionMethod.DIRECT,
                )
            )

    empty = sum(1 for d in documents if not d.raw_text.strip())
    if empty:
        logger.info(
            "%d of %d pages have no text layer – consider OCR for scanned content.",
            empty,
            len(documents),
        )
    logger.info("Parsed %d pages from %s.", len(documents), Path(pdf_path).name)
    return documents


def render_pages(
    pdf_path: Path | str,
    scale: float | None = None,
) -> Iterator[bytes | None]:
    """Yield every page as PNG bytes at *scale* × the native resolution.

    Pages are rendered one at a time as the caller consumes them, so only
    the pages still waiting for recognition are held in memory.  A page
    that fails to render is logged and yields ``None`` in its slot so page
    positions stay aligned with the document.
    """
    scale = scale or ingest_settings.render_scale
    mat = fitz.Matrix(scale, scale)
    with open_pdf(pdf_path) as doc:
        for idx in range(_page_limit(doc)):
            try:
                pix = doc[idx].get_pixmap(matrix=mat)
                png = pix.tobytes("png")
            except Exception as exc:
                logger.error("Rendering page %d failed: %s", idx + 1, exc)
                yield None
                continue
            logger.debug("  Rendered page %d (%dx%d).", idx + 1, pix.width, pix.height)
            yield png
