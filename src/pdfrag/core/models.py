"""Records exchanged between the pipeline, the vector store and callers."""

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, Field


class DocumentRecord(BaseModel):
    """One stored chunk of a document."""
    id: int
    filename: str
    content: str
    embedding: List[float]
    created_at: datetime


class SearchResult(BaseModel):
    """A stored chunk with its cosine distance to the query (lower is closer)."""
    id: int
    filename: str
    content: str
    similarity: float


class SourceDocument(BaseModel):
    filename: str
    similarity: float


class Answer(BaseModel):
    answer: str
    source_documents: List[SourceDocument] = Field(default_factory=list)


class DocumentSummary(BaseModel):
    """One listing row per filename."""
    filename: str
    created_at: datetime
    preview: str
    chunk_count: int


class DirectoryIngestResult(BaseModel):
    ingested: Dict[str, List[int]] = Field(default_factory=dict)
    failed: Dict[str, str] = Field(default_factory=dict)
