"""Shared fixtures and test doubles."""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import fitz  # PyMuPDF
import pytest

from pdfrag.core.memory_store import InMemoryVectorStore
from pdfrag.core.pipeline import DocumentPipeline

DIMENSIONS = 4
KEYWORDS = ("apple", "banana", "cherry", "date")


def keyword_vector(text: str) -> List[float]:
    """Count keyword occurrences; a tiny epsilon keeps the vector non-zero."""
    lowered = text.lower()
    return [lowered.count(word) + 0.01 for word in KEYWORDS]


class FakeEmbedder:
    """Deterministic embedder that can be told to fail first."""

    def __init__(self, failures: Optional[Sequence[Exception]] = None):
        self.calls: List[str] = []
        self.failures = list(failures or [])

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.failures:
            raise self.failures.pop(0)
        return keyword_vector(text)


class FakeCompleter:
    def __init__(self, answer: str = "It is about fruit.", failures: Optional[Sequence[Exception]] = None):
        self.answer = answer
        self.calls: List[Dict[str, object]] = []
        self.failures = list(failures or [])

    async def complete(self, system_prompt, user_prompt, max_tokens=500, temperature=0.7) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if self.failures:
            raise self.failures.pop(0)
        return self.answer


@pytest.fixture
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore(dimensions=DIMENSIONS)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def completer() -> FakeCompleter:
    return FakeCompleter()


@pytest.fixture
def pipeline(store, embedder, completer) -> DocumentPipeline:
    """Pipeline over in-memory doubles; 5-token chunks hold 20 characters."""
    return DocumentPipeline(store, embedder, completer, chunk_size=5, retry_delay=0)


@pytest.fixture
def make_pdf(tmp_path: Path) -> Callable[..., Path]:
    """Write a PDF with one short line of text per page."""

    def _make(name: str, pages: Sequence[str]) -> Path:
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            if text:
                page.insert_text((72, 72), text)
        path = tmp_path / name
        doc.save(str(path))
        doc.close()
        return path

    return _make
