"""In-memory implementation of the vector store."""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import StoreError
from .models import DocumentRecord, DocumentSummary, SearchResult
from .store import PREVIEW_CHARS


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    """1 - cosine similarity, the same measure as pgvector's ``<=>``."""
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 1.0
    return 1.0 - float(np.dot(a, b)) / norm


class InMemoryVectorStore:
    """In-memory implementation of VectorStore with exact nearest-neighbour search."""

    def __init__(self, dimensions: int = 1536, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.dimensions = dimensions
        self._clock = clock or datetime.now
        self._records: Dict[int, DocumentRecord] = {}
        self._next_id = 1

    def _build(self, filename: str, content: str, embedding: Sequence[float]) -> DocumentRecord:
        if len(embedding) != self.dimensions:
            raise StoreError(f"expected {self.dimensions} dimensions, not {len(embedding)}")
        record = DocumentRecord(
            id=self._next_id,
            filename=filename,
            content=content,
            embedding=[float(x) for x in embedding],
            created_at=self._clock(),
        )
        self._next_id += 1
        return record

    async def init_schema(self) -> None:
        return None

    async def insert(self, filename: str, content: str, embedding: Sequence[float]) -> int:
        record = self._build(filename, content, embedding)
        self._records[record.id] = record
        return record.id

    async def insert_many(self, filename: str, rows: Sequence[Tuple[str, Sequence[float]]]) -> List[int]:
        # Build everything first so a bad row leaves the store untouched
        records = [self._build(filename, content, embedding) for content, embedding in rows]
        for record in records:
            self._records[record.id] = record
        return [record.id for record in records]

    async def search(self, embedding: Sequence[float], limit: int) -> List[SearchResult]:
        query = np.asarray(embedding, dtype=float)
        scored = [
            (cosine_distance(query, np.asarray(record.embedding, dtype=float)), record)
            for record in self._records.values()
        ]
        scored.sort(key=lambda x: (x[0], x[1].id))

        return [
            SearchResult(id=record.id, filename=record.filename, content=record.content, similarity=distance)
            for distance, record in scored[:limit]
        ]

    async def delete_by_filename(self, filename: str) -> int:
        doomed = [record_id for record_id, record in self._records.items() if record.filename == filename]
        for record_id in doomed:
            del self._records[record_id]
        return len(doomed)

    async def list_documents(self) -> List[DocumentSummary]:
        groups: Dict[str, List[DocumentRecord]] = {}
        for record in sorted(self._records.values(), key=lambda r: r.id):
            groups.setdefault(record.filename, []).append(record)

        summaries = [
            DocumentSummary(
                filename=filename,
                created_at=max(r.created_at for r in records),
                preview=records[0].content[:PREVIEW_CHARS],
                chunk_count=len(records),
            )
            for filename, records in groups.items()
        ]
        summaries.sort(key=lambda s: s.filename)
        summaries.sort(key=lambda s: s.created_at, reverse=True)
        return summaries

    async def close(self) -> None:
        return None
