"""
OCR engine – page recognition and the OCR extractor.

Stack choice
------------
**EasyOCR** (Apache-2.0) is the recognition engine:
  - Pure-Python install on top of PyTorch (CPU, CUDA or MPS).
  - Per-line confidences, which we average into a 0–100 page score.

Flow per page
-------------
PyMuPDF render (``render_scale``, lazily) → ``preprocess_image`` → optional debug
save → ``recognize_page``.  Pages may run on a thread pool; results are
always returned in page order.  A failing page is logged and skipped, the
rest of the document still goes through.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from pdfchat.errors import DocumentNotFound, ExtractionFailure
from pdfchat.ingestion.config import ingest_settings
from pdfchat.ingestion.pdf_parser import ensure_readable, render_pages
from pdfchat.ingestion.preprocess import preprocess_image, save_debug_image
from pdfchat.ingestion.quality import (
    build_page_report,
    is_low_confidence,
    log_quality_summary,
    summarise_confidence,
)
from pdfchat.ingestion.schemas import (
    ExtractionMethod,
    PageQualityReport,
    QualitySummary,
    SourceDocument,
)

logger = logging.getLogger(__name__)

# Suppress noisy "Using CPU" warning from EasyOCR
logging.getLogger("easyocr.easyocr").setLevel(logging.ERROR)

# Lazy-loaded singleton
_reader = None
_reader_lock = threading.Lock()


@dataclass
class OCRBox:
    text: str
    confidence: float  # 0..1 as reported by EasyOCR
    bbox: tuple[int, int, int, int]  # (x0, y0, x1, y1)


@dataclass
class RecognitionResult:
    text: str
    confidence: float  # 0..100


@dataclass
class OCRRun:
    """Everything one OCR extraction produced, diagnostics included."""

    documents: list[SourceDocument]
    reports: list[PageQualityReport]
    summary: QualitySummary
    failed_pages: list[int] = field(default_factory=list)  # 1-based


def _get_reader():
    """Lazy-initialise the EasyOCR reader."""
    global _reader
    with _reader_lock:
        if _reader is not None:
            return _reader
        try:
            import easyocr  # noqa: F811
        except ImportError as exc:
            raise ExtractionFailure("EasyOCR is not installed") from exc

        _reader = easyocr.Reader(
            ingest_settings.ocr_languages,
            gpu=ingest_settings.ocr_gpu,
            verbose=False,
        )
        logger.info(
            "EasyOCR reader initialised (languages=%s, gpu=%s).",
            ingest_settings.ocr_languages,
            ingest_settings.ocr_gpu,
        )
        return _reader


def ocr_image_bytes(png_bytes: bytes) -> list[OCRBox]:
    """Run OCR on a PNG image and return boxes top-to-bottom, left-to-right."""
    reader = _get_reader()
    results = reader.readtext(png_bytes)
    boxes: list[OCRBox] = []
    for bbox_pts, text, conf in results:
        text = text.strip()
        if not text:
            continue
        # bbox_pts is [[x0,y0],[x1,y0],[x1,y1],[x0,y1]]
        xs = [p[0] for p in bbox_pts]
        ys = [p[1] for p in bbox_pts]
        boxes.append(
            OCRBox(
                text=text,
                confidence=float(conf),
                bbox=(int(min(xs)), int(min(ys)), int(max(xs)), int(max(ys))),
            )
        )

    boxes.sort(key=lambda b: (b.bbox[1], b.bbox[0]))
    return boxes


def ocr_to_text(boxes: list[OCRBox]) -> str:
    """Join OCR boxes into page text, one recognised line per row."""
    return "\n".join(b.text for b in boxes)


def recognize_page(png_bytes: bytes, page_number: int | None = None) -> RecognitionResult:
    """Recognise one preprocessed page.

    Low confidence is only a warning: the text is still returned and used.
    """
    boxes = ocr_image_bytes(png_bytes)
    text = ocr_to_text(boxes)
    confidence = (
        100.0 * sum(b.confidence for b in boxes) / len(boxes) if boxes else 0.0
    )
    confidence = max(0.0, min(100.0, confidence))

    label = f"Page {page_number}" if page_number is not None else "Image"
    logger.info(
        "  %s: confidence %.2f%%, %d words, %d characters.",
        label,
        confidence,
        len(text.split()),
        len(text),
    )
    if is_low_confidence(confidence):
        logger.warning(
            "  %s: low confidence detected – consider improving image quality "
            "or trying different OCR settings.",
            label,
        )
    return RecognitionResult(text=text, confidence=confidence)


def _process_page(
    page_index: int,
    page_png: bytes | None,
    save_debug: bool,
    debug_dir: Path | None,
) -> tuple[SourceDocument, PageQualityReport]:
    page_number = page_index + 1
    if page_png is None:
        raise ExtractionFailure("Page could not be rendered", page=page_number)

    logger.debug("  Page %d: preprocessing image …", page_number)
    enhanced = preprocess_image(page_png)
    if save_debug:
        save_debug_image(enhanced, page_number, debug_dir)

    logger.debug("  Page %d: running OCR …", page_number)
    result = recognize_page(enhanced, page_number)
    document = SourceDocument(
        page_index=page_index,
        raw_text=result.text,
        extraction_method=ExtractionMethod.OCR,
        confidence=result.confidence,
    )
    return document, build_page_report(page_index, result.text, result.confidence)


def run_ocr(
    pdf_path: Path | str,
    *,
    workers: int | None = None,
    save_debug: bool | None = None,
    debug_dir: Path | None = None,
) -> OCRRun:
    """Render, enhance and recognise every page of *pdf_path*.

    Raises ``DocumentNotFound`` for a bad path and ``ExtractionFailure`` when
    not a single page could be recognised.
    """
    path = ensure_readable(pdf_path)
    workers = max(1, workers or ingest_settings.ocr_workers)
    if save_debug is None:
        save_debug = ingest_settings.save_debug_images

    t0 = time.time()
    logger.info("═══ OCR: %s ═══", path.name)
    logger.info("Processing pages with OCR (%d worker(s)).", workers)

    documents: list[SourceDocument] = []
    reports: list[PageQualityReport] = []
    failed: list[int] = []
    total = 0

    def collect(idx: int, future: Future) -> None:
        try:
            document, report = future.result()
        except Exception as exc:
            logger.error("Error processing page %d of %s: %s", idx + 1, path.name, exc)
            failed.append(idx + 1)
            return
        documents.append(document)
        reports.append(report)

    # At most ``2 * workers`` rendered pages are in flight; results are
    # collected oldest first so documents follow page order.
    max_pending = 2 * workers
    pending: deque[tuple[int, Future]] = deque()
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ocr") as pool:
        for idx, png in enumerate(render_pages(path)):
            total += 1
            pending.append((idx, pool.submit(_process_page, idx, png, save_debug, debug_dir)))
            if len(pending) >= max_pending:
                collect(*pending.popleft())
        while pending:
            collect(*pending.popleft())

    summary = summarise_confidence(reports)
    log_quality_summary(summary, reports)

    if total and not documents:
        raise ExtractionFailure(
            f"OCR failed on all {total} pages", path=path
        )
    logger.info(
        "OCR processing completed: %d/%d pages in %.1fs.",
        len(documents),
        total,
        time.time() - t0,
    )
    return OCRRun(documents=documents, reports=reports, summary=summary, failed_pages=failed)


def extract_ocr(pdf_path: Path | str) -> list[SourceDocument]:
    """OCR extractor: one ``SourceDocument`` per successfully recognised page."""
    return run_ocr(pdf_path).documents


def extract_image_text(image_path: Path | str) -> RecognitionResult:
    """Preprocess and recognise a single image file (PNG, JPEG, …)."""
    path = Path(image_path).expanduser()
    if not path.is_file():
        raise DocumentNotFound(path)
    logger.info("Processing image: %s", path)
    enhanced = preprocess_image(path.read_bytes())
    return recognize_page(enhanced)
