"""
Tests for the ingestion pipeline modules.

Run: python -m pytest tests/ -v
"""

from __future__ import annotations

import io
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from conftest import HashingEmbedder


def _png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


# ═══════════════════════════════════════════════════════════════════════════
# Schema tests
# ═══════════════════════════════════════════════════════════════════════════

class TestSchemas:
    def test_direct_document(self):
        from pdfchat.ingestion.schemas import ExtractionMethod, SourceDocument

        doc = SourceDocument(
            page_index=0, raw_text="Hello", extraction_method=ExtractionMethod.DIRECT
        )
        assert doc.confidence is None
        assert doc.page_number == 1

    def test_direct_document_rejects_confidence(self):
        from pydantic import ValidationError

        from pdfchat.ingestion.schemas import ExtractionMethod, SourceDocument

        with pytest.raises(ValidationError):
            SourceDocument(
                page_index=0,
                raw_text="Hello",
                extraction_method=ExtractionMethod.DIRECT,
                confidence=90.0,
            )

    def test_ocr_document_requires_confidence(self):
        from pydantic import ValidationError

        from pdfchat.ingestion.schemas import ExtractionMethod, SourceDocument

        with pytest.raises(ValidationError):
            SourceDocument(page_index=0, raw_text="x", extraction_method=ExtractionMethod.OCR)

    def test_documents_are_frozen(self):
        from pydantic import ValidationError

        from pdfchat.ingestion.schemas import Passage

        passage = Passage(content="abc", source_doc_index=0, offset_in_source=0)
        with pytest.raises(ValidationError):
            passage.content = "changed"


# ═══════════════════════════════════════════════════════════════════════════
# Chunker tests
# ═══════════════════════════════════════════════════════════════════════════

def _doc(text: str, page_index: int = 0):
    from pdfchat.ingestion.schemas import ExtractionMethod, SourceDocument

    return SourceDocument(
        page_index=page_index, raw_text=text, extraction_method=ExtractionMethod.DIRECT
    )


SAMPLE_TEXTS = [
    ("word " * 300)[:1500],
    "Short page.",
    "First paragraph. " * 40 + "\n\n" + "Second paragraph has more. " * 50 + "\n\nEnd.",
    "Line of text number one\n" * 120,
    "x" * 2500,
    "Mixed sentences! Are they split? Yes they are. " * 60,
]


class TestChunker:
    @pytest.mark.parametrize("text", SAMPLE_TEXTS)
    def test_passages_bounded_overlapping_and_reconstructible(self, text):
        from pdfchat.ingestion.chunker import chunk_documents, reconstruct_text

        passages = chunk_documents([_doc(text)], chunk_size=1000, chunk_overlap=200)
        assert passages
        assert all(len(p.content) <= 1000 for p in passages)
        for prev, nxt in zip(passages, passages[1:]):
            assert nxt.content[:200] == prev.content[-200:]
            assert nxt.offset_in_source == prev.offset_in_source + len(prev.content) - 200
        assert reconstruct_text(passages, 200) == text

    def test_page_counts_for_reference_lengths(self):
        from pdfchat.ingestion.chunker import chunk_documents

        pages = [("word " * 500)[:n] for n in (1500, 400, 2200)]
        passages = chunk_documents(
            [_doc(t, i) for i, t in enumerate(pages)], chunk_size=1000, chunk_overlap=200
        )
        per_page = [sum(1 for p in passages if p.source_doc_index == i) for i in range(3)]
        assert per_page == [2, 1, 3]

    def test_prefers_paragraph_boundary(self):
        from pdfchat.ingestion.chunker import split_text

        text = "a" * 600 + "\n\n" + "b " * 400
        pieces = split_text(text, chunk_size=1000, chunk_overlap=200)
        assert pieces[0][1] == "a" * 600 + "\n\n"

    def test_long_token_is_cut_at_limit(self):
        from pdfchat.ingestion.chunker import split_text

        pieces = split_text("y" * 2500, chunk_size=1000, chunk_overlap=200)
        assert [len(c) for _, c in pieces] == [1000, 1000, 900]
        assert [o for o, _ in pieces] == [0, 800, 1600]

    def test_deterministic(self):
        from pdfchat.ingestion.chunker import chunk_documents

        docs = [_doc(t, i) for i, t in enumerate(SAMPLE_TEXTS)]
        assert chunk_documents(docs) == chunk_documents(docs)

    def test_blank_pages_skipped(self):
        from pdfchat.ingestion.chunker import chunk_documents

        passages = chunk_documents([_doc("   \n", 0), _doc("Some text.", 1)])
        assert len(passages) == 1
        assert passages[0].source_doc_index == 1

    def test_invalid_overlap(self):
        from pdfchat.ingestion.chunker import split_text

        with pytest.raises(ValueError):
            split_text("text", chunk_size=100, chunk_overlap=100)
        with pytest.raises(ValueError):
            split_text("text", chunk_size=100, chunk_overlap=-1)


# ═══════════════════════════════════════════════════════════════════════════
# Quality tests
# ═══════════════════════════════════════════════════════════════════════════

class TestQuality:
    def test_confidence_buckets(self):
        from pdfchat.ingestion.quality import build_page_report, summarise_confidence

        reports = [
            build_page_report(i, "some words here", conf)
            for i, conf in enumerate([95.0, 75.0, 50.0])
        ]
        summary = summarise_confidence(reports)
        assert (summary.high_count, summary.medium_count, summary.low_count) == (1, 1, 1)
        assert summary.average_confidence == pytest.approx(220 / 3)
        assert summary.low_confidence_pages == [3]

    def test_thresholds_are_inclusive(self):
        from pdfchat.ingestion.quality import confidence_tier

        assert confidence_tier(80.0) == "high"
        assert confidence_tier(79.99) == "medium"
        assert confidence_tier(60.0) == "medium"
        assert confidence_tier(59.99) == "low"

    def test_page_report_counts(self):
        from pdfchat.ingestion.quality import build_page_report

        report = build_page_report(2, "  two words\n", 88.0)
        assert report.word_count == 2
        assert report.char_count == 12

    def test_empty_summary(self):
        from pdfchat.ingestion.quality import summarise_confidence

        summary = summarise_confidence([])
        assert summary.pages_processed == 0
        assert not summary.has_low_confidence

    def test_summary_includes_tips_only_when_low(self):
        from pdfchat.ingestion.quality import (
            build_page_report,
            format_quality_summary,
            summarise_confidence,
        )

        good = [build_page_report(0, "ok", 91.0)]
        lines = format_quality_summary(summarise_confidence(good), good)
        assert not any("Tips" in line for line in lines)

        bad = good + [build_page_report(1, "bad", 41.5)]
        lines = format_quality_summary(summarise_confidence(bad), bad)
        assert any("Page 2: 41.50%" in line for line in lines)
        assert any("Tips" in line for line in lines)


# ═══════════════════════════════════════════════════════════════════════════
# Image preprocessing tests
# ═══════════════════════════════════════════════════════════════════════════

class TestPreprocess:
    def test_grayscale(self):
        from pdfchat.ingestion.preprocess import grayscale

        out = grayscale(Image.new("RGB", (10, 10), (200, 30, 30)))
        assert out.mode == "L"

    def test_upscale_longest_side(self):
        from pdfchat.ingestion.preprocess import upscale

        out = upscale(Image.new("L", (100, 50)), target=400)
        assert out.size == (400, 200)

    def test_upscale_never_downscales(self):
        from pdfchat.ingestion.preprocess import upscale

        out = upscale(Image.new("L", (500, 300)), target=400)
        assert out.size == (500, 300)

    def test_stretch_contrast_keeps_midpoint(self):
        from pdfchat.ingestion.preprocess import stretch_contrast

        img = Image.new("L", (3, 1))
        img.putdata([128, 200, 10])
        assert list(stretch_contrast(img).getdata()) == [128, 236, 0]

    def test_gamma_darkens_midtones(self):
        from pdfchat.ingestion.preprocess import gamma

        img = Image.new("L", (3, 1))
        img.putdata([0, 128, 255])
        dark, mid, light = gamma(img).getdata()
        assert (dark, light) == (0, 255)
        assert mid < 128

    def test_failing_stage_is_skipped(self):
        from pdfchat.ingestion.preprocess import apply_stages, grayscale

        def boom(img):
            raise RuntimeError("broken stage")

        out = apply_stages(
            Image.new("RGB", (4, 4), (10, 20, 30)),
            [("boom", boom), ("grayscale", grayscale)],
        )
        assert out.mode == "L"

    def test_undecodable_buffer_returned_unchanged(self):
        from pdfchat.ingestion.preprocess import preprocess_image

        assert preprocess_image(b"not an image") == b"not an image"

    def test_full_pipeline_outputs_grayscale_png(self, monkeypatch):
        from pdfchat.ingestion.config import ingest_settings
        from pdfchat.ingestion.preprocess import preprocess_image

        monkeypatch.setattr(ingest_settings, "upscale_target", 120)
        img = Image.new("RGB", (60, 30), "white")
        for x in range(10, 50):
            img.putpixel((x, 15), (40, 40, 40))

        out = Image.open(io.BytesIO(preprocess_image(_png(img))))
        assert out.format == "PNG"
        assert out.mode == "L"
        assert out.size == (120, 60)

    def test_save_debug_image_creates_directory(self, tmp_path):
        from pdfchat.ingestion.preprocess import save_debug_image

        target = tmp_path / "nested" / "debug"
        path = save_debug_image(_png(Image.new("L", (2, 2))), 3, target)
        assert path == target / "page_3_preprocessed.png"
        assert path.exists()


# ═══════════════════════════════════════════════════════════════════════════
# PDF parser tests
# ═══════════════════════════════════════════════════════════════════════════

class TestPdfParser:
    def test_extract_direct_one_document_per_page(self, make_pdf):
        from pdfchat.ingestion.pdf_parser import extract_direct
        from pdfchat.ingestion.schemas import ExtractionMethod

        path = make_pdf(["First page text", "", "Third page text"])
        docs = extract_direct(path)
        assert [d.page_index for d in docs] == [0, 1, 2]
        assert all(d.extraction_method == ExtractionMethod.DIRECT for d in docs)
        assert all(d.confidence is None for d in docs)
        assert "First page text" in docs[0].raw_text
        assert docs[1].raw_text.strip() == ""

    def test_missing_file(self, tmp_path):
        from pdfchat.errors import DocumentNotFound
        from pdfchat.ingestion.pdf_parser import extract_direct

        with pytest.raises(DocumentNotFound):
            extract_direct(tmp_path / "missing.pdf")

    def test_directory_is_not_a_document(self, tmp_path):
        from pdfchat.errors import DocumentNotFound
        from pdfchat.ingestion.pdf_parser import ensure_readable

        with pytest.raises(DocumentNotFound):
            ensure_readable(tmp_path)

    def test_corrupt_pdf(self, tmp_path):
        from pdfchat.errors import ExtractionFailure
        from pdfchat.ingestion.pdf_parser import extract_direct

        bad = tmp_path / "broken.pdf"
        bad.write_bytes(b"%PDF-1.4 this is not really a pdf")
        with pytest.raises(ExtractionFailure):
            extract_direct(bad)

    def test_render_pages_png(self, make_pdf):
        from pdfchat.ingestion.pdf_parser import render_pages

        images = list(render_pages(make_pdf(["a", "b"]), scale=0.5))
        assert len(images) == 2
        assert all(img.startswith(b"\x89PNG") for img in images)


# ═══════════════════════════════════════════════════════════════════════════
# OCR tests (EasyOCR mocked)
# ═══════════════════════════════════════════════════════════════════════════

class TestOcr:
    def test_recognize_page_reading_order_and_confidence(self):
        from pdfchat.ingestion import ocr

        reader = MagicMock()
        reader.readtext.return_value = [
            ([[0, 50], [40, 50], [40, 60], [0, 60]], "second", 0.6),
            ([[0, 0], [40, 0], [40, 10], [0, 10]], "first", 0.9),
            ([[0, 80], [40, 80], [40, 90], [0, 90]], "   ", 0.1),
        ]
        with patch.object(ocr, "_get_reader", return_value=reader):
            result = ocr.recognize_page(b"png")

        assert result.text == "first\nsecond"
        assert result.confidence == pytest.approx(75.0)

    def test_recognize_blank_page(self):
        from pdfchat.ingestion import ocr

        reader = MagicMock()
        reader.readtext.return_value = []
        with patch.object(ocr, "_get_reader", return_value=reader):
            result = ocr.recognize_page(b"png", page_number=1)
        assert result.text == ""
        assert result.confidence == 0.0

    def test_run_ocr_keeps_page_order_and_skips_failures(self, make_pdf, monkeypatch):
        from pdfchat.ingestion import ocr
        from pdfchat.ingestion.config import ingest_settings
        from pdfchat.ingestion.schemas import ExtractionMethod

        monkeypatch.setattr(ingest_settings, "render_scale", 0.3)
        monkeypatch.setattr(ingest_settings, "upscale_target", 100)

        def fake_recognize(png_bytes, page_number=None):
            if page_number == 2:
                raise RuntimeError("engine crashed")
            # Earlier pages finish last.
            time.sleep(0.05 * (4 - page_number))
            return ocr.RecognitionResult(text=f"page {page_number} text", confidence=40.0 + 20 * page_number)

        path = make_pdf(["a", "b", "c"])
        with patch.object(ocr, "recognize_page", side_effect=fake_recognize):
            run = ocr.run_ocr(path, workers=3, save_debug=False)

        assert [d.page_index for d in run.documents] == [0, 2]
        assert all(d.extraction_method == ExtractionMethod.OCR for d in run.documents)
        assert [d.confidence for d in run.documents] == [60.0, 100.0]
        assert run.failed_pages == [2]
        assert run.summary.pages_processed == 2
        assert run.summary.high_count == 1
        assert run.summary.medium_count == 1

    def test_run_ocr_all_pages_fail(self, make_pdf, monkeypatch):
        from pdfchat.errors import ExtractionFailure
        from pdfchat.ingestion import ocr
        from pdfchat.ingestion.config import ingest_settings

        monkeypatch.setattr(ingest_settings, "render_scale", 0.3)
        monkeypatch.setattr(ingest_settings, "upscale_target", 100)

        with patch.object(ocr, "recognize_page", side_effect=RuntimeError("down")):
            with pytest.raises(ExtractionFailure):
                ocr.run_ocr(make_pdf(["a", "b"]), save_debug=False)

    def test_run_ocr_recognises_while_rendering(self, make_pdf, monkeypatch):
        from pdfchat.ingestion import ocr

        events: list[str] = []

        def fake_render(pdf_path, scale=None):
            for idx in range(6):
                events.append(f"render {idx + 1}")
                yield b"not-a-png"

        def fake_recognize(png_bytes, page_number=None):
            events.append(f"ocr {page_number}")
            return ocr.RecognitionResult(text=f"page {page_number}", confidence=90.0)

        monkeypatch.setattr(ocr, "render_pages", fake_render)
        with patch.object(ocr, "recognize_page", side_effect=fake_recognize):
            run = ocr.run_ocr(make_pdf(["a"]), workers=1, save_debug=False)

        assert [d.page_index for d in run.documents] == list(range(6))
        # With one worker, page 1 is recognised before page 3 is rendered.
        assert events.index("ocr 1") < events.index("render 3")

    def test_run_ocr_saves_debug_images(self, make_pdf, monkeypatch, tmp_path):
        from pdfchat.ingestion import ocr
        from pdfchat.ingestion.config import ingest_settings

        monkeypatch.setattr(ingest_settings, "render_scale", 0.3)
        monkeypatch.setattr(ingest_settings, "upscale_target", 100)
        debug_dir = tmp_path / "ocr_debug"

        with patch.object(
            ocr, "recognize_page", return_value=ocr.RecognitionResult("text", 90.0)
        ):
            ocr.run_ocr(make_pdf(["a"]), save_debug=True, debug_dir=debug_dir)
        assert (debug_dir / "page_1_preprocessed.png").exists()

    def test_run_ocr_missing_file(self, tmp_path):
        from pdfchat.errors import DocumentNotFound
        from pdfchat.ingestion.ocr import run_ocr

        with pytest.raises(DocumentNotFound):
            run_ocr(tmp_path / "nope.pdf")

    def test_extract_image_text(self, tmp_path, monkeypatch):
        from pdfchat.ingestion import ocr
        from pdfchat.ingestion.config import ingest_settings

        monkeypatch.setattr(ingest_settings, "upscale_target", 50)
        image = tmp_path / "scan.png"
        image.write_bytes(_png(Image.new("RGB", (20, 20), "white")))

        with patch.object(
            ocr, "recognize_page", return_value=ocr.RecognitionResult("hello", 81.0)
        ) as rec:
            result = ocr.extract_image_text(image)
        assert result.text == "hello"
        rec.assert_called_once()


# ═══════════════════════════════════════════════════════════════════════════
# Embedding tests
# ═══════════════════════════════════════════════════════════════════════════

class TestEmbeddings:
    def test_service_embedder_batches_and_orders(self):
        from pdfchat.ingestion.embeddings import ServiceEmbedder

        client = MagicMock()

        def fake_create(model, input):
            data = [SimpleNamespace(index=i, embedding=[float(len(t))]) for i, t in enumerate(input)]
            return SimpleNamespace(data=list(reversed(data)))

        client.embeddings.create.side_effect = fake_create
        embedder = ServiceEmbedder(model="m", batch_size=2, client=client)
        vectors = embedder.embed_documents(["a", "bb", "ccc"])

        assert vectors == [[1.0], [2.0], [3.0]]
        assert client.embeddings.create.call_count == 2

    def test_service_unreachable(self):
        import httpx
        import openai

        from pdfchat.errors import ServiceUnavailable
        from pdfchat.ingestion.embeddings import ServiceEmbedder

        client = MagicMock()
        client.embeddings.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", "http://localhost:11434/v1/embeddings")
        )
        embedder = ServiceEmbedder(model="m", base_url="http://localhost:11434/v1", client=client)
        with pytest.raises(ServiceUnavailable) as info:
            embedder.embed_query("hello")
        assert "localhost:11434" in str(info.value)

    def test_timeout_is_service_unavailable(self):
        import httpx
        import openai

        from pdfchat.errors import ServiceUnavailable
        from pdfchat.ingestion.embeddings import ServiceEmbedder

        client = MagicMock()
        client.embeddings.create.side_effect = openai.APITimeoutError(
            request=httpx.Request("POST", "http://localhost:11434/v1/embeddings")
        )
        with pytest.raises(ServiceUnavailable):
            ServiceEmbedder(model="m", client=client).embed_documents(["x"])

    def test_unknown_model_is_model_service_error(self):
        import httpx
        import openai

        from pdfchat.errors import ModelServiceError
        from pdfchat.ingestion.embeddings import ServiceEmbedder

        request = httpx.Request("POST", "http://localhost:11434/v1/embeddings")
        client = MagicMock()
        client.embeddings.create.side_effect = openai.NotFoundError(
            "model 'llama3.2' not found",
            response=httpx.Response(404, request=request),
            body=None,
        )
        with pytest.raises(ModelServiceError) as info:
            ServiceEmbedder(model="llama3.2", client=client).embed_query("hello")
        assert info.value.status_code == 404
        assert isinstance(info.value.__cause__, openai.NotFoundError)

    def test_unknown_backend(self):
        from pdfchat.ingestion.embeddings import get_embedder

        with pytest.raises(ValueError):
            get_embedder("nope")


# ═══════════════════════════════════════════════════════════════════════════
# Vector index tests
# ═══════════════════════════════════════════════════════════════════════════

class _StaticEmbedder:
    def __init__(self, table: dict[str, list[float]]) -> None:
        self.table = table

    def embed_documents(self, texts):
        return [self.table[t] for t in texts]

    def embed_query(self, text):
        return self.table[text]


def _passages(*texts):
    from pdfchat.ingestion.schemas import Passage

    return [Passage(content=t, source_doc_index=0, offset_in_source=i) for i, t in enumerate(texts)]


class TestVectorIndex:
    def test_query_before_build(self):
        from pdfchat.errors import IndexNotBuilt
        from pdfchat.ingestion.vectordb import VectorIndex

        with pytest.raises(IndexNotBuilt):
            VectorIndex(HashingEmbedder()).query("anything", 3)

    def test_returns_min_k_n_sorted(self):
        from pdfchat.ingestion.vectordb import VectorIndex

        index = VectorIndex(HashingEmbedder())
        index.build(_passages("apple banana", "banana cherry", "cherry date", "egg"))
        hits = index.search("banana", 10)
        assert len(hits) == 4
        scores = [h.score for h in hits]
        assert scores == sorted(scores, reverse=True)
        assert len(index.query("banana", 2)) == 2

    def test_ties_keep_insertion_order(self):
        from pdfchat.ingestion.vectordb import VectorIndex

        table = {"a": [1.0, 0.0], "b": [2.0, 0.0], "c": [0.0, 1.0], "q": [1.0, 0.0]}
        index = VectorIndex(_StaticEmbedder(table))
        index.build(_passages("c", "a", "b"))
        assert [p.content for p in index.query("q", 3)] == ["a", "b", "c"]

    def test_build_replaces_previous_entries(self):
        from pdfchat.ingestion.vectordb import VectorIndex

        index = VectorIndex(HashingEmbedder())
        index.build(_passages("one", "two"))
        index.build(_passages("three"))
        assert len(index) == 1
        assert [e.passage.content for e in index.entries] == ["three"]

    def test_failed_build_keeps_nothing_half_done(self):
        from pdfchat.ingestion.vectordb import VectorIndex

        table = {"a": [1.0, 0.0], "b": [1.0]}
        index = VectorIndex(_StaticEmbedder(table))
        index.build(_passages("a"))
        with pytest.raises(ValueError):
            index.build(_passages("a", "b"))
        assert [e.passage.content for e in index.entries] == ["a"]

    def test_zero_vector_scores_zero(self):
        from pdfchat.ingestion.vectordb import VectorIndex

        table = {"z": [0.0, 0.0], "a": [1.0, 1.0], "q": [1.0, 0.0]}
        index = VectorIndex(_StaticEmbedder(table))
        index.build(_passages("z", "a"))
        hits = index.search("q", 2)
        assert hits[0].passage.content == "a"
        assert hits[1].score == 0.0

    def test_invalid_k(self):
        from pdfchat.ingestion.vectordb import VectorIndex

        index = VectorIndex(HashingEmbedder())
        index.build(_passages("x"))
        with pytest.raises(ValueError):
            index.query("x", 0)
