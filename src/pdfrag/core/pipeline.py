"""Document pipeline: PDF -> chunks -> embeddings (OpenAI) -> pgvector, and RAG answers."""

import logging
import time
from pathlib import Path
from typing import List, Union

import openai

from .chunker import chunk_text
from .complete import Completer, OpenAIChatCompleter
from .config import Settings
from .embed import Embedder, OpenAIEmbedder
from .errors import EmptyDocumentError, NotFoundError, PdfRagError
from .extract import extract_text_from_file
from .logging_config import get_event_logger, log_ingestion_event, log_search_event
from .memory_store import InMemoryVectorStore
from .models import Answer, DirectoryIngestResult, DocumentSummary, SearchResult, SourceDocument
from .retry import retry_async
from .store import PgVectorStore, VectorStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer the user's question based on the provided "
    "document context. If the answer is not in the context, say so."
)
NO_DOCUMENTS_ANSWER = "I don't have any relevant documents to answer your question."
CONTEXT_CHARS_PER_DOCUMENT = 1000


def build_context(results: List[SearchResult]) -> str:
    """Render retrieved chunks as labelled blocks separated by blank lines."""
    return "\n\n".join(
        f"Document: {doc.filename}\nContent: {doc.content[:CONTEXT_CHARS_PER_DOCUMENT]}..."
        for doc in results
    )


class DocumentPipeline:
    """
    Ingests PDFs into a vector store and answers questions against it.

    All collaborators are passed in, so tests can substitute doubles for
    the OpenAI clients and the database.

    Args:
        store: Vector store holding one row per chunk
        embedder: Embedding client
        completer: Chat completion client
        chunk_size: Target chunk size in tokens
        retry_attempts: Attempts per provider call
        retry_delay: Seconds before the first retry, doubling after that
        max_tokens: Completion length limit
        temperature: Completion sampling temperature
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        completer: Completer,
        *,
        chunk_size: int = 800,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ):
        self.store = store
        self.embedder = embedder
        self.completer = completer
        self.chunk_size = chunk_size
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.events = get_event_logger("pipeline")

    async def __aenter__(self) -> "DocumentPipeline":
        try:
            await self.init()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def init(self) -> None:
        await self.store.init_schema()

    async def close(self) -> None:
        await self.store.close()

    async def generate_embedding(self, text: str) -> List[float]:
        return await retry_async(
            lambda: self.embedder.embed(text),
            max_attempts=self.retry_attempts,
            initial_delay=self.retry_delay,
        )

    async def add_document(self, file_path: Union[str, Path], atomic: bool = True) -> List[int]:
        """
        Ingest a single PDF file.

        With ``atomic`` every chunk is embedded first and the rows are
        inserted in one transaction, so a failure leaves nothing behind.
        Without it each chunk is inserted as soon as it is embedded and a
        failure keeps the rows already written.

        Args:
            file_path: Path to the PDF
            atomic: Insert all chunks in a single transaction

        Returns:
            Inserted record ids in chunk order
        """
        start_time = time.time()
        path = Path(file_path)
        filename = path.name

        try:
            text = extract_text_from_file(path)
            if not text.strip():
                raise EmptyDocumentError(f"No text content found in PDF: {filename}")

            chunks = chunk_text(text, self.chunk_size)
            logger.info(f"Split {filename} into {len(chunks)} chunks")

            if atomic:
                rows = []
                for chunk in chunks:
                    rows.append((chunk, await self.generate_embedding(chunk)))
                inserted_ids = await self.store.insert_many(filename, rows)
            else:
                inserted_ids = []
                for chunk in chunks:
                    embedding = await self.generate_embedding(chunk)
                    inserted_ids.append(await self.store.insert(filename, chunk, embedding))
        except PdfRagError as e:
            logger.error(f"Add document error for {filename}: {e}")
            raise

        log_ingestion_event(
            self.events,
            filename=filename,
            chunks_created=len(inserted_ids),
            record_ids=inserted_ids,
            processing_time_ms=(time.time() - start_time) * 1000,
        )
        logger.info(f'Document "{filename}" added with {len(inserted_ids)} chunks.')
        return inserted_ids

    async def add_directory(self, directory_path: Union[str, Path], atomic: bool = True) -> DirectoryIngestResult:
        """Ingest every PDF in a directory, recording per-file failures."""
        directory = Path(directory_path)
        result = DirectoryIngestResult()
        pdf_files = sorted(directory.glob("*.pdf"))

        if not pdf_files:
            logger.warning(f"No PDF files found in {directory}")
            return result

        logger.info(f"Found {len(pdf_files)} PDF files to ingest")

        for pdf_path in pdf_files:
            try:
                result.ingested[pdf_path.name] = await self.add_document(pdf_path, atomic=atomic)
            except PdfRagError as e:
                logger.error(f"Failed to ingest {pdf_path}: {e}")
                result.failed[pdf_path.name] = str(e)

        logger.info(f"Completed ingestion: {len(result.ingested)}/{len(pdf_files)} files processed")
        return result

    async def search_similar(self, query: str, limit: int = 3) -> List[SearchResult]:
        """Return the ``limit`` chunks closest to ``query``, closest first."""
        if limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}")
        if limit == 0:
            return []

        start_time = time.time()
        try:
            query_embedding = await self.generate_embedding(query)
            results = await self.store.search(query_embedding, limit)
        except PdfRagError as e:
            logger.error(f"Search error: {e}")
            raise

        log_search_event(
            self.events,
            query=query,
            limit=limit,
            results_count=len(results),
            execution_time_ms=(time.time() - start_time) * 1000,
        )
        return results

    async def ask_about_documents(self, question: str, context_limit: int = 3) -> Answer:
        """Answer ``question`` from the closest stored chunks."""
        relevant_docs = await self.search_similar(question, context_limit)

        if not relevant_docs:
            return Answer(answer=NO_DOCUMENTS_ANSWER, source_documents=[])

        user_prompt = f"Context:\n{build_context(relevant_docs)}\n\nQuestion: {question}"

        try:
            answer = await retry_async(
                lambda: self.completer.complete(
                    SYSTEM_PROMPT,
                    user_prompt,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
                max_attempts=self.retry_attempts,
                initial_delay=self.retry_delay,
            )
        except PdfRagError as e:
            logger.error(f"Ask error: {e}")
            raise

        self.events.info(
            "question_answered",
            question=question,
            sources=[doc.filename for doc in relevant_docs],
            event_type="answer",
        )
        return Answer(
            answer=answer,
            source_documents=[
                SourceDocument(filename=doc.filename, similarity=doc.similarity)
                for doc in relevant_docs
            ],
        )

    async def list_documents(self) -> List[DocumentSummary]:
        return await self.store.list_documents()

    async def delete_document_by_filename(self, filename: str) -> int:
        """Delete all chunks of ``filename``; raises NotFoundError if there are none."""
        deleted = await self.store.delete_by_filename(filename)
        if deleted == 0:
            raise NotFoundError(f"Document not found: {filename}")

        self.events.info("document_deleted", filename=filename, chunks_deleted=deleted, event_type="delete")
        logger.info(f'Deleted document "{filename}" with {deleted} chunks.')
        return deleted


def build_pipeline(settings: Settings) -> DocumentPipeline:
    """Wire the OpenAI clients and the configured vector store from settings."""
    if not settings.openai_api_key:
        raise ValueError("OpenAI API key not found in environment variables")

    store: VectorStore
    if settings.db_backend == "postgres":
        store = PgVectorStore(
            settings.database_url,
            dimensions=settings.embed_dimensions,
            use_pool=settings.use_pool,
        )
    elif settings.db_backend == "memory":
        # process-local, contents are lost on exit
        store = InMemoryVectorStore(dimensions=settings.embed_dimensions)
    else:
        raise ValueError(f"Unknown DB_BACKEND {settings.db_backend!r}, expected postgres or memory")

    client = openai.AsyncOpenAI(api_key=settings.openai_api_key)
    return DocumentPipeline(
        store,
        OpenAIEmbedder(client, settings.embed_model),
        OpenAIChatCompleter(client, settings.chat_model),
        chunk_size=settings.chunk_size,
        retry_attempts=settings.retry_attempts,
        retry_delay=settings.retry_delay,
    )
