"""Tests for the document pipeline over in-memory doubles."""

from unittest.mock import AsyncMock

import pytest

from conftest import FakeCompleter, FakeEmbedder, keyword_vector
from pdfrag.core.errors import (
    EmptyDocumentError,
    ExtractionError,
    NotFoundError,
    ProviderError,
    ProviderErrorKind,
    StoreError,
)
from pdfrag.core.pipeline import (
    NO_DOCUMENTS_ANSWER,
    SYSTEM_PROMPT,
    DocumentPipeline,
    build_context,
)
from pdfrag.core.models import SearchResult


class FailOnCallEmbedder(FakeEmbedder):
    """Raises a permanent provider error on the n-th call (1-based)."""

    def __init__(self, fail_on: int):
        super().__init__()
        self.fail_on = fail_on

    async def embed(self, text):
        if len(self.calls) + 1 == self.fail_on:
            self.calls.append(text)
            raise ProviderError("invalid api key", ProviderErrorKind.PERMANENT)
        return await super().embed(text)


@pytest.fixture
def fruit_pdf(make_pdf):
    return make_pdf("fruit.pdf", ["apple apple pie", "banana bread"])


@pytest.mark.asyncio
async def test_add_document_inserts_one_row_per_chunk(pipeline, embedder, store, fruit_pdf) -> None:
    ids = await pipeline.add_document(fruit_pdf)

    assert len(ids) == 2
    assert ids == sorted(ids)
    assert embedder.calls == ["apple apple pie", "banana bread"]
    docs = await store.list_documents()
    assert [(d.filename, d.chunk_count) for d in docs] == [("fruit.pdf", 2)]


@pytest.mark.asyncio
async def test_add_document_accepts_string_path(pipeline, fruit_pdf) -> None:
    ids = await pipeline.add_document(str(fruit_pdf))

    assert len(ids) == 2


@pytest.mark.asyncio
async def test_blank_document_fails_before_embedding(pipeline, embedder, make_pdf) -> None:
    blank = make_pdf("blank.pdf", [""])

    with pytest.raises(EmptyDocumentError) as exc_info:
        await pipeline.add_document(blank)

    assert isinstance(exc_info.value, ExtractionError)
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_unreadable_file_raises_extraction_error(pipeline, tmp_path) -> None:
    broken = tmp_path / "broken.pdf"
    broken.write_bytes(b"")

    with pytest.raises(ExtractionError):
        await pipeline.add_document(broken)


@pytest.mark.asyncio
async def test_transient_embedding_failures_are_retried(store, completer, fruit_pdf) -> None:
    embedder = FakeEmbedder(failures=[ProviderError("rate limited", ProviderErrorKind.TRANSIENT)])
    pipeline = DocumentPipeline(store, embedder, completer, chunk_size=5, retry_delay=0)

    ids = await pipeline.add_document(fruit_pdf)

    assert len(ids) == 2
    assert embedder.calls == ["apple apple pie", "apple apple pie", "banana bread"]


@pytest.mark.asyncio
async def test_atomic_ingest_leaves_nothing_on_failure(store, completer, fruit_pdf) -> None:
    pipeline = DocumentPipeline(store, FailOnCallEmbedder(2), completer, chunk_size=5, retry_delay=0)

    with pytest.raises(ProviderError):
        await pipeline.add_document(fruit_pdf)

    assert await store.list_documents() == []


@pytest.mark.asyncio
async def test_non_atomic_ingest_keeps_earlier_chunks(store, completer, fruit_pdf) -> None:
    pipeline = DocumentPipeline(store, FailOnCallEmbedder(2), completer, chunk_size=5, retry_delay=0)

    with pytest.raises(ProviderError):
        await pipeline.add_document(fruit_pdf, atomic=False)

    docs = await store.list_documents()
    assert [(d.filename, d.chunk_count, d.preview) for d in docs] == [("fruit.pdf", 1, "apple apple pie")]


@pytest.mark.asyncio
async def test_add_directory_records_failures_and_continues(pipeline, make_pdf) -> None:
    make_pdf("a.pdf", ["apple"])
    blank = make_pdf("b.pdf", [""])
    make_pdf("c.pdf", ["cherry"])

    result = await pipeline.add_directory(blank.parent)

    assert sorted(result.ingested) == ["a.pdf", "c.pdf"]
    assert list(result.failed) == ["b.pdf"]
    assert "No text content" in result.failed["b.pdf"]


@pytest.mark.asyncio
async def test_add_directory_without_pdfs(pipeline, tmp_path) -> None:
    result = await pipeline.add_directory(tmp_path)

    assert result.ingested == {}
    assert result.failed == {}


@pytest.mark.asyncio
async def test_search_similar_returns_closest_first(pipeline, make_pdf) -> None:
    await pipeline.add_document(make_pdf("mix.pdf", ["apple apple apple", "banana only", "cherry date"]))

    results = await pipeline.search_similar("apple", 3)

    assert len(results) == 3
    assert results[0].content == "apple apple apple"
    distances = [r.similarity for r in results]
    assert distances == sorted(distances)


@pytest.mark.asyncio
async def test_search_with_zero_limit_skips_embedding(pipeline, embedder, fruit_pdf) -> None:
    await pipeline.add_document(fruit_pdf)
    embedder.calls.clear()

    assert await pipeline.search_similar("apple", 0) == []
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_search_with_negative_limit_is_rejected(pipeline) -> None:
    with pytest.raises(ValueError):
        await pipeline.search_similar("apple", -1)


@pytest.mark.asyncio
async def test_ask_builds_prompt_and_returns_sources(pipeline, completer, fruit_pdf) -> None:
    await pipeline.add_document(fruit_pdf)

    answer = await pipeline.ask_about_documents("Tell me about apple", context_limit=2)

    assert answer.answer == "It is about fruit."
    assert [s.filename for s in answer.source_documents] == ["fruit.pdf", "fruit.pdf"]
    similarities = [s.similarity for s in answer.source_documents]
    assert similarities == sorted(similarities)

    call = completer.calls[0]
    assert call["system_prompt"] == SYSTEM_PROMPT
    assert call["max_tokens"] == 500
    assert call["temperature"] == 0.7
    assert call["user_prompt"] == (
        "Context:\n"
        "Document: fruit.pdf\nContent: apple apple pie...\n\n"
        "Document: fruit.pdf\nContent: banana bread...\n\n"
        "Question: Tell me about apple"
    )


@pytest.mark.asyncio
async def test_ask_without_documents_returns_fixed_answer(pipeline, completer) -> None:
    answer = await pipeline.ask_about_documents("anything?")

    assert answer.answer == NO_DOCUMENTS_ANSWER
    assert answer.source_documents == []
    assert completer.calls == []


@pytest.mark.asyncio
async def test_ask_with_zero_limit_returns_fixed_answer(pipeline, completer, fruit_pdf) -> None:
    await pipeline.add_document(fruit_pdf)

    answer = await pipeline.ask_about_documents("apple?", context_limit=0)

    assert answer.answer == NO_DOCUMENTS_ANSWER
    assert answer.source_documents == []
    assert completer.calls == []


@pytest.mark.asyncio
async def test_ask_retries_transient_completion_failures(store, embedder, fruit_pdf) -> None:
    completer = FakeCompleter(failures=[ProviderError("503", ProviderErrorKind.TRANSIENT)])
    pipeline = DocumentPipeline(store, embedder, completer, chunk_size=5, retry_delay=0)
    await pipeline.add_document(fruit_pdf)

    answer = await pipeline.ask_about_documents("apple?")

    assert answer.answer == "It is about fruit."
    assert len(completer.calls) == 2


@pytest.mark.asyncio
async def test_ask_surfaces_permanent_completion_failure(store, embedder, fruit_pdf) -> None:
    completer = FakeCompleter(failures=[ProviderError("bad key", ProviderErrorKind.PERMANENT)])
    pipeline = DocumentPipeline(store, embedder, completer, chunk_size=5, retry_delay=0)
    await pipeline.add_document(fruit_pdf)

    with pytest.raises(ProviderError):
        await pipeline.ask_about_documents("apple?")

    assert len(completer.calls) == 1


def test_build_context_truncates_content() -> None:
    results = [
        SearchResult(id=1, filename="long.pdf", content="x" * 1500, similarity=0.1),
        SearchResult(id=2, filename="short.pdf", content="short", similarity=0.2),
    ]

    context = build_context(results)

    assert context == (
        f"Document: long.pdf\nContent: {'x' * 1000}...\n\n"
        "Document: short.pdf\nContent: short..."
    )


@pytest.mark.asyncio
async def test_list_preview_is_prefix_of_a_chunk(pipeline, make_pdf) -> None:
    first = "apple " * 3
    second = "banana " * 2
    await pipeline.add_document(make_pdf("list.pdf", [first.strip(), second.strip()]))

    docs = await pipeline.list_documents()

    assert len(docs) == 1
    assert docs[0].filename == "list.pdf"
    assert docs[0].preview in (first.strip()[:200], second.strip()[:200])


@pytest.mark.asyncio
async def test_delete_then_search_never_returns_filename(pipeline, make_pdf) -> None:
    await pipeline.add_document(make_pdf("keep.pdf", ["apple keep"]))
    await pipeline.add_document(make_pdf("drop.pdf", ["apple drop", "banana drop"]))

    deleted = await pipeline.delete_document_by_filename("drop.pdf")

    assert deleted == 2
    results = await pipeline.search_similar("apple banana", 10)
    assert results
    assert all(r.filename != "drop.pdf" for r in results)


@pytest.mark.asyncio
async def test_delete_missing_document_raises_not_found(pipeline) -> None:
    with pytest.raises(NotFoundError):
        await pipeline.delete_document_by_filename("nope.pdf")


@pytest.mark.asyncio
async def test_context_manager_initialises_and_closes_store(embedder, completer) -> None:
    store = AsyncMock()
    pipeline = DocumentPipeline(store, embedder, completer)

    async with pipeline as opened:
        assert opened is pipeline
        store.init_schema.assert_awaited_once()

    store.close.assert_awaited_once()


def test_keyword_vector_is_never_zero() -> None:
    assert all(x > 0 for x in keyword_vector(""))


@pytest.mark.asyncio
async def test_context_manager_closes_store_when_init_fails(embedder, completer) -> None:
    store = AsyncMock()
    store.init_schema.side_effect = StoreError("connection refused")
    pipeline = DocumentPipeline(store, embedder, completer)

    with pytest.raises(StoreError):
        async with pipeline:
            pytest.fail("body must not run when init fails")

    store.close.assert_awaited_once()
