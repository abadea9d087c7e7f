"""
In-memory vector index over passage embeddings.

Features
--------
- Exact cosine similarity against every stored vector (numpy); a single
  PDF produces at most a few thousand passages, so no ANN structure.
- ``build`` replaces the whole index in one step: vectors are computed
  first and swapped in only when every passage has one.
- Ties are broken by insertion order, so results are reproducible.
- Nothing is written to disk.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from pdfchat.errors import IndexNotBuilt
from pdfchat.ingestion.embeddings import Embedder
from pdfchat.ingestion.schemas import IndexEntry, Passage, RetrievedPassage

logger = logging.getLogger(__name__)


def cosine_similarities(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine of *query* against each row of *matrix*; zero vectors score 0."""
    row_norms = np.linalg.norm(matrix, axis=1)
    q_norm = np.linalg.norm(query)
    denom = row_norms * q_norm
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(denom > 0, dots / denom, 0.0)
    return sims


class VectorIndex:
    """Embeds passages once and answers top-k similarity queries."""

    def __init__(self, embedder: Embedder) -> None:
        self._embedder = embedder
        self._entries: list[IndexEntry] = []
        self._matrix: np.ndarray | None = None

    # ── Write ─────────────────────────────────────────────────────────
    def build(self, passages: Sequence[Passage]) -> int:
        """Embed *passages* and replace the current index. Returns count."""
        texts = [p.content for p in passages]
        vectors = self._embedder.embed_documents(texts) if texts else []

        if len(vectors) != len(passages):
            raise ValueError(
                f"Got {len(vectors)} embeddings for {len(passages)} passages"
            )
        dims = {len(v) for v in vectors}
        if len(dims) > 1:
            raise ValueError(f"Inconsistent embedding dimensions: {sorted(dims)}")

        entries = [
            IndexEntry(passage=p, vector=[float(x) for x in v])
            for p, v in zip(passages, vectors)
        ]
        matrix = np.asarray(vectors, dtype=np.float64) if vectors else np.zeros((0, 0))

        self._entries = entries
        self._matrix = matrix
        logger.info(
            "Vector index built: %d entries (dim=%d).",
            len(entries),
            matrix.shape[1] if matrix.ndim == 2 else 0,
        )
        return len(entries)

    def clear(self) -> None:
        self._entries = []
        self._matrix = None

    # ── Read ──────────────────────────────────────────────────────────
    def search(self, query_text: str, k: int = 4) -> list[RetrievedPassage]:
        """Return the *k* most similar passages with their cosine scores."""
        if self._matrix is None:
            raise IndexNotBuilt()
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        if not self._entries:
            return []

        query = np.asarray(self._embedder.embed_query(query_text), dtype=np.float64)
        if query.shape[0] != self._matrix.shape[1]:
            raise ValueError(
                f"Query embedding has dimension {query.shape[0]}, "
                f"index has {self._matrix.shape[1]}"
            )
        sims = cosine_similarities(self._matrix, query)
        # Stable sort on the negated scores keeps insertion order for ties.
        order = np.argsort(-sims, kind="stable")[:k]
        return [
            RetrievedPassage(passage=self._entries[i].passage, score=float(sims[i]))
            for i in order
        ]

    def query(self, query_text: str, k: int = 4) -> list[Passage]:
        return [r.passage for r in self.search(query_text, k)]

    @property
    def is_built(self) -> bool:
        return self._matrix is not None

    @property
    def entries(self) -> list[IndexEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
