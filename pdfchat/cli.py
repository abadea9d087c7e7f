"""
Command-line entry-point.

Usage
-----
    pdfchat chat [report.pdf] [--ocr] [--model llama3.2] [--top-k 4]
    pdfchat search report.pdf "what was the revenue in 2023" [--ocr]
    pdfchat ocr-image scan.png
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pdfchat.config import settings
from pdfchat.errors import PdfChatError
from pdfchat.ingestion.config import ingest_settings

logger = logging.getLogger(__name__)

EXIT_WORDS = {"exit", "quit"}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _apply_overrides(args: argparse.Namespace) -> None:
    if getattr(args, "model", None):
        settings.llm_model = args.model
        settings.embedding_model = args.model
    if getattr(args, "debug_images", None):
        ingest_settings.save_debug_images = True
        ingest_settings.debug_dir = Path(args.debug_images)


def _report(exc: Exception, prefix: str) -> None:
    if not isinstance(exc, PdfChatError):
        logger.debug("Unexpected error", exc_info=exc)
    print(f"{prefix}: {exc}", file=sys.stderr)


def _load(answerer, pdf_path: str, use_ocr: bool) -> bool:
    try:
        stats = answerer.load_document(pdf_path, use_ocr=use_ocr)
    except Exception as exc:
        _report(exc, "Error loading PDF")
        return False
    print(f"Loaded {stats.pages_processed} pages, split into {stats.passages} passages.")
    return True


def cmd_chat(args: argparse.Namespace) -> int:
    from pdfchat.services.answerer import RetrievalAnswerer

    print("=== PDF Chatbot (local Ollama) ===")
    print(f"Using model {settings.llm_model} at {settings.ollama_base_url}")
    print("Make sure Ollama is running on your system!\n")

    pdf_path = args.pdf or input("Enter the path to your PDF file: ").strip()
    answerer = RetrievalAnswerer(top_k=args.top_k)
    if not _load(answerer, pdf_path, args.ocr):
        return 1

    print("\nYou can now ask questions about the PDF!")
    print('Type "exit" to quit\n')
    while True:
        try:
            question = input("\nYou: ")
        except EOFError:
            break
        if question.strip().lower() in EXIT_WORDS:
            break
        if not question.strip():
            continue
        try:
            print("\nChatbot: Thinking...")
            print(f"\nChatbot: {answerer.ask(question)}")
        except Exception as exc:
            _report(exc, "Error")

    print("Goodbye!")
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    from pdfchat.services.answerer import RetrievalAnswerer

    answerer = RetrievalAnswerer(top_k=args.top_k)
    if not _load(answerer, args.pdf, args.ocr):
        return 1
    try:
        hits = answerer.retrieve(args.query)
    except Exception as exc:
        _report(exc, "Error")
        return 1
    for i, hit in enumerate(hits, 1):
        passage = hit.passage
        print(f"── Result {i} (score={hit.score:.4f}) ──")
        print(f"   Page: {passage.source_doc_index + 1}, offset {passage.offset_in_source}")
        text = passage.content[:300]
        print(f"   Text: {text}{'…' if len(passage.content) > 300 else ''}")
        print()
    return 0


def cmd_ocr_image(args: argparse.Namespace) -> int:
    from pdfchat.ingestion.ocr import extract_image_text

    try:
        result = extract_image_text(args.image)
    except PdfChatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(result.text)
    print(f"\nConfidence: {result.confidence:.2f}%", file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ask questions about a PDF with a local LLM",
        prog="pdfchat",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_load_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--ocr", action="store_true", help="Extract text with OCR (scanned / handwritten PDFs)")
        p.add_argument("--model", type=str, default=None, help="Ollama model for generation and embeddings")
        p.add_argument("--top-k", type=int, default=None, help="Passages retrieved per question")
        p.add_argument("--debug-images", type=str, default=None, help="Save preprocessed OCR pages to this folder")

    # chat
    p_chat = sub.add_parser("chat", help="Interactive question loop over one PDF")
    p_chat.add_argument("pdf", nargs="?", default=None, help="Path to the PDF (prompted if omitted)")
    add_load_options(p_chat)
    p_chat.set_defaults(func=cmd_chat)

    # search
    p_search = sub.add_parser("search", help="Show the passages retrieved for a query")
    p_search.add_argument("pdf", type=str, help="Path to the PDF")
    p_search.add_argument("query", type=str, help="Search query")
    add_load_options(p_search)
    p_search.set_defaults(func=cmd_search)

    # ocr-image
    p_image = sub.add_parser("ocr-image", help="OCR a single image file")
    p_image.add_argument("image", type=str, help="Path to a PNG/JPEG image")
    p_image.set_defaults(func=cmd_ocr_image)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    _apply_overrides(args)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
