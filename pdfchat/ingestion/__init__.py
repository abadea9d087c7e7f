"""
Ingestion pipeline: PDF → page text → passages → in-memory vector index.

Modules
-------
config       – Pipeline-specific settings (render scale, OCR, chunk sizes …)
schemas      – Pydantic models for SourceDocument, Passage, IndexEntry, reports
pdf_parser   – Input validation, native text layer extraction, page rendering (PyMuPDF)
preprocess   – Image enhancement stages applied before OCR (Pillow)
ocr          – Page recognition (EasyOCR) and the OCR extractor
quality      – Per-page confidence reports and run-level summaries
chunker      – Overlapping passage splitting shared by both extractors
embeddings   – Ollama embeddings via the OpenAI client, or sentence-transformers
vectordb     – In-memory cosine-similarity index (numpy)
pipeline     – Extraction dispatch and load orchestration
"""
