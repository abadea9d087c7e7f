"""
Embedding generation.

Default backend: the local **Ollama** server, reached through its
OpenAI-compatible ``/v1/embeddings`` endpoint with the ``openai`` client (the
same client the generation side uses).  Requests are batched and bounded by
``Settings.request_timeout``; an unreachable or hanging server surfaces as
``ServiceUnavailable``.

Offline backend: **sentence-transformers** (``all-MiniLM-L6-v2`` by default),
selected with ``EMBEDDING_BACKEND=local``.

Both backends expose ``embed_documents(texts)`` and ``embed_query(text)``;
``VectorIndex`` only relies on that pair.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

import openai
from openai import OpenAI as _HTTPClient

from pdfchat.config import settings
from pdfchat.errors import ModelServiceError, ServiceUnavailable
from pdfchat.ingestion.config import ingest_settings

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


class ServiceEmbedder:
    """Embeddings from the Ollama server."""

    def __init__(
        self,
        *,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        batch_size: int | None = None,
        client: _HTTPClient | None = None,
    ) -> None:
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.ollama_base_url
        self.batch_size = batch_size or ingest_settings.embedding_batch_size
        self._client = client or _HTTPClient(
            base_url=self.base_url,
            api_key="unused",  # Ollama does not require an API key
            timeout=timeout or settings.request_timeout,
            max_retries=settings.max_retries,
        )

    def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            response = self._client.embeddings.create(model=self.model, input=batch)
        except openai.APIConnectionError as exc:  # includes APITimeoutError
            raise ServiceUnavailable(self.base_url, exc) from exc
        except openai.APIStatusError as exc:
            raise ModelServiceError(self.base_url, exc.status_code, exc) from exc
        vectors = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        if len(vectors) != len(batch):
            raise ValueError(
                f"Embedding service returned {len(vectors)} vectors for {len(batch)} inputs"
            )
        return vectors

    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        all_embs: list[list[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = list(texts[i : i + self.batch_size])
            all_embs.extend(self._embed_batch(batch))
            logger.debug("  Embedded %d/%d passages.", len(all_embs), len(texts))
        return all_embs

    def embed_query(self, text: str) -> list[float]:
        return self._embed_batch([text])[0]


class LocalEmbedder:
    """Embeddings computed in-process with sentence-transformers."""

    def __init__(self, model_name: str | None = None) -> None:
        self.model_name = model_name or settings.local_embedding_model
        self._model = None

    def _get_model(self):
        """Lazy-load the sentence-transformer model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info("Loading embedding model '%s' …", self.model_name)
            self._model = SentenceTransformer(self.model_name, device="cpu")
            logger.info(
                "Embedding model loaded (dim=%d).",
                self._model.get_sentence_embedding_dimension(),
            )
        return self._model

    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        embs = self._get_model().encode(
            list(texts),
            batch_size=ingest_settings.embedding_batch_size,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return embs.tolist()

    def embed_query(self, text: str) -> list[float]:
        return self.embed_documents([text])[0]


def get_embedder(backend: str | None = None) -> Embedder:
    """Return the embedder configured by ``Settings.embedding_backend``."""
    backend = (backend or settings.embedding_backend).lower()
    if backend == "ollama":
        return ServiceEmbedder()
    if backend == "local":
        return LocalEmbedder()
    raise ValueError(f"Unknown embedding backend: {backend!r}")
