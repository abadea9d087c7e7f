"""Answerer: owns the loaded document's index, retrieves passages for a
question and asks the LLM to answer from them."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Callable

from pdfchat.config import settings
from pdfchat.errors import NotReady
from pdfchat.ingestion.embeddings import Embedder, get_embedder
from pdfchat.ingestion.pipeline import IngestionStats, ingest_file
from pdfchat.ingestion.schemas import Passage, QualitySummary, RetrievedPassage
from pdfchat.ingestion.vectordb import VectorIndex
from pdfchat.services import llm

logger = logging.getLogger(__name__)

Generator = Callable[[str], str]


class PipelineState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

PROMPT_TEMPLATE = """\
Use the following pieces of context to answer the question at the end.

Context:
{context}

Question: {question}
Helpful answer:"""


def build_context(passages: list[Passage]) -> str:
    return "\n\n".join(p.content for p in passages)


def build_prompt(question: str, passages: list[Passage]) -> str:
    return PROMPT_TEMPLATE.format(context=build_context(passages), question=question)


# ---------------------------------------------------------------------------
# Answerer
# ---------------------------------------------------------------------------

class RetrievalAnswerer:
    """Load one PDF at a time and answer questions about it.

    ``IDLE → LOADING → READY``; a failed load goes back to ``IDLE`` with the
    previous index discarded.  ``load_document`` and ``ask`` hold the same
    lock, so a question never reads an index that is being rebuilt.
    """

    def __init__(
        self,
        *,
        embedder: Embedder | None = None,
        generator: Generator | None = None,
        top_k: int | None = None,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> None:
        self._index = VectorIndex(embedder or get_embedder())
        self._generate = generator or llm.generate
        self.top_k = settings.top_k if top_k is None else top_k
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self._state = PipelineState.IDLE
        self._lock = threading.RLock()
        self.source_path: Path | None = None
        self.last_stats: IngestionStats | None = None

    # ── State ─────────────────────────────────────────────────────────
    @property
    def state(self) -> PipelineState:
        return self._state

    def is_ready(self) -> bool:
        return self._state == PipelineState.READY

    @property
    def last_quality_summary(self) -> QualitySummary | None:
        return self.last_stats.quality if self.last_stats else None

    def _reset(self) -> None:
        self._index.clear()
        self.source_path = None
        self.last_stats = None
        self._state = PipelineState.IDLE

    # ── Operations ────────────────────────────────────────────────────
    def load_document(self, pdf_path: Path | str, use_ocr: bool = False) -> IngestionStats:
        """Extract, chunk and index *pdf_path*; READY on success, IDLE on failure."""
        with self._lock:
            self._reset()
            self._state = PipelineState.LOADING
            try:
                stats = ingest_file(
                    pdf_path,
                    self._index,
                    use_ocr=use_ocr,
                    chunk_size=self.chunk_size,
                    chunk_overlap=self.chunk_overlap,
                )
            except Exception:
                logger.error("Loading %s failed – pipeline reset to idle.", pdf_path)
                self._reset()
                raise

            self.source_path = Path(pdf_path)
            self.last_stats = stats
            self._state = PipelineState.READY if len(self._index) else PipelineState.IDLE
            logger.info("PDF loaded and indexed successfully!")
            return stats

    def retrieve(self, question: str) -> list[RetrievedPassage]:
        with self._lock:
            if self._state != PipelineState.READY:
                raise NotReady(self._state.value)
            return self._index.search(question, self.top_k)

    def ask(self, question: str) -> str:
        """Answer *question* from the top-k passages of the loaded PDF."""
        with self._lock:
            hits = self.retrieve(question)
            passages = [h.passage for h in hits]
            logger.info(
                "Retrieved %d passages (pages %s).",
                len(passages),
                sorted({p.source_doc_index + 1 for p in passages}),
            )
            return self._generate(build_prompt(question, passages))
