"""
Pydantic models for every artifact that flows through the ingestion pipeline.

  - SourceDocument     – the text of one PDF page, from either extractor
  - Passage            – an overlapping slice of a SourceDocument
  - IndexEntry         – a passage together with its embedding vector
  - PageQualityReport  – OCR diagnostics for one page
  - QualitySummary     – OCR diagnostics aggregated over a run

All models are frozen: once an extractor or the chunker produced them they
are never mutated.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


# ── Enums ────────────────────────────────────────────────────────────────

class ExtractionMethod(str, Enum):
    DIRECT = "direct"
    OCR = "ocr"


# ── Extraction ───────────────────────────────────────────────────────────

class SourceDocument(BaseModel):
    """Text of a single page, as produced by one of the extractors."""

    page_index: int = Field(..., ge=0, description="0-based page position")
    raw_text: str
    extraction_method: ExtractionMethod
    confidence: float | None = Field(default=None, ge=0.0, le=100.0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_confidence_matches_method(self) -> "SourceDocument":
        if self.extraction_method == ExtractionMethod.DIRECT and self.confidence is not None:
            raise ValueError("confidence is only defined for OCR documents")
        if self.extraction_method == ExtractionMethod.OCR and self.confidence is None:
            raise ValueError("OCR documents require a confidence score")
        return self

    @property
    def page_number(self) -> int:
        return self.page_index + 1


# ── Chunks & index ───────────────────────────────────────────────────────

class Passage(BaseModel):
    """A bounded-length slice of a SourceDocument."""

    content: str
    source_doc_index: int = Field(..., ge=0)
    offset_in_source: int = Field(..., ge=0)

    model_config = {"frozen": True}

    def __len__(self) -> int:
        return len(self.content)


class IndexEntry(BaseModel):
    passage: Passage
    vector: list[float]

    model_config = {"frozen": True}


class RetrievedPassage(BaseModel):
    passage: Passage
    score: float

    model_config = {"frozen": True}


# ── OCR diagnostics ──────────────────────────────────────────────────────

class PageQualityReport(BaseModel):
    page_index: int
    confidence: float
    word_count: int
    char_count: int

    model_config = {"frozen": True}


class QualitySummary(BaseModel):
    """Confidence distribution over all successfully recognised pages."""

    average_confidence: float = 0.0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    pages_processed: int = 0
    low_confidence_pages: list[int] = Field(default_factory=list)  # 1-based

    model_config = {"frozen": True}

    @property
    def has_low_confidence(self) -> bool:
        return self.low_count > 0
