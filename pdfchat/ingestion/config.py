"""
Ingestion pipeline configuration.

All values can be overridden via environment variables prefixed with
``INGEST_`` (e.g. ``INGEST_RENDER_SCALE=3``).
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class IngestSettings(BaseSettings):
    """Tuneable knobs for every pipeline stage."""

    # ── PDF rendering ────────────────────────────────────────────────────
    max_pages: int = 0  # 0 = unlimited
    render_scale: float = 4.0  # zoom factor used when rasterising for OCR

    # ── OCR ──────────────────────────────────────────────────────────────
    ocr_languages: list[str] = ["en"]
    ocr_gpu: bool = False  # set True if MPS / CUDA available
    ocr_workers: int = 1  # pages recognised in parallel

    # ── Image enhancement ────────────────────────────────────────────────
    upscale_target: int = 4000  # px on the longest side
    median_size: int = 3
    percentile_cutoff: float = 1.0  # % clipped at each end of the histogram
    sharpen_radius: float = 2.0
    sharpen_percent: int = 150
    brightness: float = 1.2
    contrast_gain: float = 1.5
    gamma: float = 2.2

    # ── Debug output ─────────────────────────────────────────────────────
    save_debug_images: bool = False
    debug_dir: Path = Path("ocr_debug")

    # ── Quality reporting ────────────────────────────────────────────────
    low_confidence_warning: float = 70.0  # per-page warning
    high_confidence_threshold: float = 80.0
    medium_confidence_threshold: float = 60.0

    # ── Chunking ─────────────────────────────────────────────────────────
    chunk_size: int = 1000  # characters
    chunk_overlap: int = 200

    # ── Embeddings ───────────────────────────────────────────────────────
    embedding_batch_size: int = 32

    model_config = {
        "env_prefix": "INGEST_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


ingest_settings = IngestSettings()
