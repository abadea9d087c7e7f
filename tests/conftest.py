"""Shared fixtures: a deterministic embedder and a small PDF factory."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Callable, Sequence

import fitz  # PyMuPDF
import pytest

_TOKEN = re.compile(r"\w+")


class HashingEmbedder:
    """Bag-of-words vectors via token hashing; stands in for the model service."""

    def __init__(self, dims: int = 512) -> None:
        self.dims = dims
        self.document_calls = 0
        self.query_calls = 0

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dims
        for token in _TOKEN.findall(text.lower()):
            slot = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dims
            vec[slot] += 1.0
        return vec

    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        self.document_calls += 1
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        self.query_calls += 1
        return self._vector(text)


FILLER = [
    "alpha", "bravo", "charlie", "delta", "echo", "foxtrot",
    "golf", "hotel", "india", "juliet", "kilo", "lima",
]


def filler_line(seed: int, width: int = 50) -> str:
    """A line of exactly *width* characters built from filler words."""
    words: list[str] = []
    i = seed
    while len(" ".join(words)) < width:
        words.append(FILLER[i % len(FILLER)])
        i += 1
    return " ".join(words)[:width].rstrip().ljust(width, "x")


@pytest.fixture
def hashing_embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def make_pdf(tmp_path: Path) -> Callable[..., Path]:
    """Build a PDF whose pages carry the given texts in their text layer."""

    def _make(pages: Sequence[str], name: str = "doc.pdf") -> Path:
        path = tmp_path / name
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            if text:
                page.insert_text((36, 36), text, fontsize=8)
        doc.save(str(path))
        doc.close()
        return path

    return _make
