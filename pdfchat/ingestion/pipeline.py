"""
Extraction dispatch and the load-side half of the pipeline.

Wires together: extractor (direct text layer or OCR) → chunking →
vector index build.  The extractor is picked once per load from
``ExtractionMethod``; each variant is a plain ``path -> [SourceDocument]``
function.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from pdfchat.errors import ExtractionFailure
from pdfchat.ingestion.chunker import chunk_documents
from pdfchat.ingestion.ocr import run_ocr
from pdfchat.ingestion.pdf_parser import ensure_readable, extract_direct
from pdfchat.ingestion.schemas import (
    ExtractionMethod,
    Passage,
    QualitySummary,
    SourceDocument,
)
from pdfchat.ingestion.vectordb import VectorIndex

logger = logging.getLogger(__name__)


@dataclass
class IngestionStats:
    """Counters for a single load."""

    method: ExtractionMethod = ExtractionMethod.DIRECT
    pages_processed: int = 0
    pages_failed: int = 0
    passages: int = 0
    elapsed_seconds: float = 0.0
    quality: QualitySummary | None = None  # OCR only


def extract(
    pdf_path: Path | str,
    method: ExtractionMethod,
) -> tuple[list[SourceDocument], IngestionStats]:
    """Run the extractor for *method* and report what it did."""
    path = ensure_readable(pdf_path)
    stats = IngestionStats(method=method)

    if method == ExtractionMethod.OCR:
        run = run_ocr(path)
        documents = run.documents
        stats.pages_failed = len(run.failed_pages)
        stats.quality = run.summary
    elif method == ExtractionMethod.DIRECT:
        documents = extract_direct(path)
    else:
        raise ValueError(f"Unknown extraction method: {method!r}")

    stats.pages_processed = len(documents)
    return documents, stats


def ingest_file(
    pdf_path: Path | str,
    index: VectorIndex,
    *,
    use_ocr: bool = False,
    chunk_size: int | None = None,
    chunk_overlap: int | None = None,
) -> IngestionStats:
    """Extract, chunk and index one PDF into *index*.

    Raises ``ExtractionFailure`` when the document yields no text at all.
    """
    t0 = time.time()
    method = ExtractionMethod.OCR if use_ocr else ExtractionMethod.DIRECT
    path = Path(pdf_path)
    logger.info("═══ Loading: %s (%s) ═══", path.name, method.value)

    documents, stats = extract(path, method)
    passages: list[Passage] = chunk_documents(documents, chunk_size, chunk_overlap)
    if not passages:
        hint = "" if use_ocr else " – the PDF may be scanned, try OCR"
        raise ExtractionFailure(f"No text could be extracted{hint}", path=path)

    stats.passages = index.build(passages)
    stats.elapsed_seconds = time.time() - t0
    logger.info(
        "Loaded %s: %d pages → %d passages in %.1fs.",
        path.name,
        stats.pages_processed,
        stats.passages,
        stats.elapsed_seconds,
    )
    return stats
