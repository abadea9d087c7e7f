"""
OCR quality reporting.

Each helper is a pure function over recognition results.  The OCR extractor
builds one ``PageQualityReport`` per recognised page, folds them into a
``QualitySummary`` once every page has finished, and logs the summary.
Reports feed diagnostics only; they never influence what gets indexed.
"""

from __future__ import annotations

import logging
from typing import Sequence

from pdfchat.ingestion.config import ingest_settings
from pdfchat.ingestion.schemas import PageQualityReport, QualitySummary

logger = logging.getLogger(__name__)

_RULE = "=" * 60

REMEDIATION_TIPS: tuple[str, ...] = (
    "Check the preprocessed images in the debug folder (INGEST_SAVE_DEBUG_IMAGES=true)",
    "Ensure handwriting is clear, dark, and on a white background",
    "Scan/photograph at a higher resolution (300+ DPI)",
    "Avoid shadows, creases, or skewed pages",
    "Consider a dedicated handwriting recognition service",
)


def count_words(text: str) -> int:
    return len(text.split())


def is_low_confidence(confidence: float) -> bool:
    """Per-page warning level (below ``low_confidence_warning``)."""
    return confidence < ingest_settings.low_confidence_warning


def build_page_report(page_index: int, text: str, confidence: float) -> PageQualityReport:
    return PageQualityReport(
        page_index=page_index,
        confidence=confidence,
        word_count=count_words(text),
        char_count=len(text),
    )


def confidence_tier(confidence: float) -> str:
    """Return ``"high"``, ``"medium"`` or ``"low"``."""
    if confidence >= ingest_settings.high_confidence_threshold:
        return "high"
    if confidence >= ingest_settings.medium_confidence_threshold:
        return "medium"
    return "low"


def summarise_confidence(reports: Sequence[PageQualityReport]) -> QualitySummary:
    """Aggregate per-page reports into a run-level distribution.

    The mean is taken over the pages that were actually recognised; pages
    that failed outright have no report and do not drag the average down.
    """
    if not reports:
        return QualitySummary()

    tiers = {"high": 0, "medium": 0, "low": 0}
    low_pages: list[int] = []
    for r in reports:
        tier = confidence_tier(r.confidence)
        tiers[tier] += 1
        if tier == "low":
            low_pages.append(r.page_index + 1)

    return QualitySummary(
        average_confidence=sum(r.confidence for r in reports) / len(reports),
        high_count=tiers["high"],
        medium_count=tiers["medium"],
        low_count=tiers["low"],
        pages_processed=len(reports),
        low_confidence_pages=low_pages,
    )


def format_quality_summary(
    summary: QualitySummary,
    reports: Sequence[PageQualityReport] = (),
) -> list[str]:
    """Human-readable summary lines, including remediation advice."""
    high = ingest_settings.high_confidence_threshold
    medium = ingest_settings.medium_confidence_threshold
    lines = [
        _RULE,
        "OCR ACCURACY SUMMARY",
        _RULE,
        f"Average Confidence: {summary.average_confidence:.2f}%",
        f"Total Pages Processed: {summary.pages_processed}",
        "Confidence Distribution:",
        f"  High (>={high:.0f}%): {summary.high_count} pages",
        f"  Medium ({medium:.0f}-{high - 1:.0f}%): {summary.medium_count} pages",
        f"  Low (<{medium:.0f}%): {summary.low_count} pages",
    ]
    if summary.has_low_confidence:
        by_page = {r.page_index + 1: r.confidence for r in reports}
        lines.append("Pages with low confidence:")
        for page_number in summary.low_confidence_pages:
            conf = by_page.get(page_number)
            suffix = f": {conf:.2f}%" if conf is not None else ""
            lines.append(f"  Page {page_number}{suffix}")
        lines.append("Tips to improve accuracy:")
        lines.extend(f"  {i}. {tip}" for i, tip in enumerate(REMEDIATION_TIPS, 1))
    lines.append(_RULE)
    return lines


def log_quality_summary(
    summary: QualitySummary,
    reports: Sequence[PageQualityReport] = (),
) -> None:
    level = logging.WARNING if summary.has_low_confidence else logging.INFO
    for line in format_quality_summary(summary, reports):
        logger.log(level, line)
