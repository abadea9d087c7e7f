"""
Image enhancement for OCR on handwritten or noisy scans.

The pipeline is an ordered tuple of ``(name, transform)`` pairs.  Every
transform is a pure function ``PIL.Image -> PIL.Image`` so each stage can be
tested, reordered or dropped on its own.  Defaults are read from
``IngestSettings`` at call time.

Stages
------
grayscale → upscale → denoise → normalize_percentile → sharpen → brighten →
stretch_contrast → gamma → normalize, then a lossless PNG encode.

A stage that raises is skipped and its input is forwarded unchanged; the
page is never aborted because of enhancement problems.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Callable, Sequence

from PIL import Image, ImageEnhance, ImageFilter, ImageOps

from pdfchat.ingestion.config import ingest_settings

logger = logging.getLogger(__name__)

Transform = Callable[[Image.Image], Image.Image]


def _lut(fn: Callable[[int], float]) -> list[int]:
    """256-entry lookup table clamped to the 8-bit range."""
    return [max(0, min(255, int(round(fn(v))))) for v in range(256)]


# ── Stages ───────────────────────────────────────────────────────────────

def grayscale(img: Image.Image) -> Image.Image:
    return ImageOps.grayscale(img) if img.mode != "L" else img.copy()


def upscale(img: Image.Image, target: int | None = None) -> Image.Image:
    """Enlarge so the longest side reaches *target* px; never downscale."""
    target = target or ingest_settings.upscale_target
    longest = max(img.size)
    if longest >= target:
        return img.copy()
    factor = target / longest
    size = (max(1, round(img.width * factor)), max(1, round(img.height * factor)))
    return img.resize(size, Image.Resampling.LANCZOS)


def denoise(img: Image.Image) -> Image.Image:
    return img.filter(ImageFilter.MedianFilter(ingest_settings.median_size))


def normalize_percentile(img: Image.Image) -> Image.Image:
    """Stretch the histogram after clipping the darkest/brightest percentiles."""
    cutoff = ingest_settings.percentile_cutoff
    return ImageOps.autocontrast(img, cutoff=(cutoff, cutoff))


def sharpen(img: Image.Image) -> Image.Image:
    # Stronger than ImageFilter.SHARPEN, tuned for pen strokes.
    return img.filter(
        ImageFilter.UnsharpMask(
            radius=ingest_settings.sharpen_radius,
            percent=ingest_settings.sharpen_percent,
            threshold=0,
        )
    )


def brighten(img: Image.Image) -> Image.Image:
    brighter = ImageEnhance.Brightness(img).enhance(ingest_settings.brightness)
    # Saturation 0: whatever came in, only luminance goes out.
    return ImageOps.grayscale(brighter) if brighter.mode != "L" else brighter


def stretch_contrast(img: Image.Image) -> Image.Image:
    """Linear ``a·v + b`` with the offset chosen around the midpoint."""
    gain = ingest_settings.contrast_gain
    offset = -(128 * (gain - 1.0))
    return img.point(_lut(lambda v: gain * v + offset))


def gamma(img: Image.Image) -> Image.Image:
    """Gamma > 1 darkens midtones, a soft stand-in for thresholding."""
    g = ingest_settings.gamma
    return img.point(_lut(lambda v: 255.0 * (v / 255.0) ** g))


def normalize(img: Image.Image) -> Image.Image:
    return ImageOps.autocontrast(img)


DEFAULT_STAGES: tuple[tuple[str, Transform], ...] = (
    ("grayscale", grayscale),
    ("upscale", upscale),
    ("denoise", denoise),
    ("normalize_percentile", normalize_percentile),
    ("sharpen", sharpen),
    ("brighten", brighten),
    ("stretch_contrast", stretch_contrast),
    ("gamma", gamma),
    ("normalize", normalize),
)


# ── Pipeline ─────────────────────────────────────────────────────────────

def encode_png(img: Image.Image) -> bytes:
    """Lossless PNG without compression, as the recognizer input."""
    buf = io.BytesIO()
    img.save(buf, format="PNG", compress_level=0)
    return buf.getvalue()


def apply_stages(
    img: Image.Image,
    stages: Sequence[tuple[str, Transform]] = DEFAULT_STAGES,
) -> Image.Image:
    """Run *stages* in order, skipping any that fail."""
    for name, transform in stages:
        try:
            img = transform(img)
        except Exception as exc:
            logger.warning("Preprocessing stage '%s' failed, skipped: %s", name, exc)
    return img


def preprocess_image(
    png_bytes: bytes,
    stages: Sequence[tuple[str, Transform]] = DEFAULT_STAGES,
) -> bytes:
    """Enhance a page raster for recognition and return PNG bytes.

    If the buffer cannot be decoded or encoded, the original bytes are
    returned so recognition can still be attempted.
    """
    try:
        with Image.open(io.BytesIO(png_bytes)) as src:
            img = src.copy()
    except Exception as exc:
        logger.warning("Could not decode page image, using it as-is: %s", exc)
        return png_bytes

    processed = apply_stages(img, stages)
    try:
        return encode_png(processed)
    except Exception as exc:
        logger.warning("Could not encode preprocessed image, using original: %s", exc)
        return png_bytes


def save_debug_image(
    png_bytes: bytes,
    page_number: int,
    output_dir: Path | None = None,
) -> Path | None:
    """Persist a preprocessed page for inspection.  Never raises."""
    output_dir = Path(output_dir or ingest_settings.debug_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        out_path = output_dir / f"page_{page_number}_preprocessed.png"
        out_path.write_bytes(png_bytes)
    except OSError as exc:
        logger.error("Saving debug image for page %d failed: %s", page_number, exc)
        return None
    logger.debug("  Debug: saved preprocessed image to %s", out_path)
    return out_path
