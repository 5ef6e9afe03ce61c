"""PostgreSQL + pgvector persistence for document chunks."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Protocol, Sequence, Tuple

import psycopg
from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from .errors import StoreError
from .models import DocumentSummary, SearchResult

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200


class VectorStore(Protocol):
    """Storage contract used by the document pipeline."""

    async def init_schema(self) -> None:
        ...

    async def insert(self, filename: str, content: str, embedding: Sequence[float]) -> int:
        ...

    async def insert_many(self, filename: str, rows: Sequence[Tuple[str, Sequence[float]]]) -> List[int]:
        ...

    async def search(self, embedding: Sequence[float], limit: int) -> List[SearchResult]:
        ...

    async def delete_by_filename(self, filename: str) -> int:
        ...

    async def list_documents(self) -> List[DocumentSummary]:
        ...

    async def close(self) -> None:
        ...


def to_vector_literal(embedding: Sequence[float]) -> str:
    """Format an embedding as a pgvector text literal, e.g. '[0.1,0.2]'."""
    return "[" + ",".join(str(float(x)) for x in embedding) + "]"


class PgVectorStore:
    """
    Document chunk store on PostgreSQL with the pgvector extension.

    With ``use_pool`` the store borrows connections from an
    ``AsyncConnectionPool`` so concurrent callers proceed independently.
    Otherwise a single connection is shared and every database call is
    serialised behind a lock.
    """

    def __init__(
        self,
        db_url: str,
        dimensions: int = 1536,
        use_pool: bool = True,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
        connect_timeout: float = 10.0,
    ):
        self.db_url = db_url
        self.dimensions = dimensions
        self.use_pool = use_pool
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.connect_timeout = connect_timeout
        self._pool: Optional[AsyncConnectionPool] = None
        self._conn: Optional[AsyncConnection] = None
        self._lock = asyncio.Lock()
        self._open_lock = asyncio.Lock()

    async def open(self) -> None:
        """Open the pool or the single connection if not already open."""
        try:
            async with self._open_lock:
                await self._open()
        except psycopg.Error as e:
            logger.error(f"Database connection error: {e}")
            raise StoreError(f"Cannot connect to database: {e}") from e

    async def _open(self) -> None:
        if self.use_pool:
            if self._pool is None:
                pool = AsyncConnectionPool(
                    self.db_url,
                    min_size=self.min_pool_size,
                    max_size=self.max_pool_size,
                    kwargs={"autocommit": True, "row_factory": dict_row},
                    open=False,
                )
                try:
                    await pool.open(wait=True, timeout=self.connect_timeout)
                except BaseException:
                    await pool.close()
                    raise
                self._pool = pool
        elif self._conn is None or self._conn.closed:
            self._conn = await AsyncConnection.connect(
                self.db_url,
                autocommit=True,
                row_factory=dict_row,
                connect_timeout=max(1, int(self.connect_timeout)),
            )

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[AsyncConnection]:
        await self.open()
        if self._pool is not None:
            async with self._pool.connection() as conn:
                yield conn
        else:
            async with self._lock:
                yield self._conn

    async def init_schema(self) -> None:
        """Create the vector extension, table and ivfflat index if missing."""
        try:
            async with self._connection() as conn:
                await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
                await conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS documents (
                        id SERIAL PRIMARY KEY,
                        filename VARCHAR(255) NOT NULL,
                        content TEXT NOT NULL,
                        embedding vector({int(self.dimensions)}),
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                await conn.execute("""
                    CREATE INDEX IF NOT EXISTS documents_embedding_idx
                    ON documents USING ivfflat (embedding vector_cosine_ops)
                    WITH (lists = 100)
                """)
        except psycopg.Error as e:
            logger.error(f"Database init error: {e}")
            raise StoreError(f"Database init failed: {e}") from e

        logger.info("Database initialized")

    async def insert(self, filename: str, content: str, embedding: Sequence[float]) -> int:
        """Insert one chunk and return its generated id."""
        try:
            async with self._connection() as conn:
                cur = await conn.execute(
                    """
                    INSERT INTO documents (filename, content, embedding)
                    VALUES (%s, %s, %s::vector)
                    RETURNING id
                    """,
                    (filename, content, to_vector_literal(embedding)),
                )
                row = await cur.fetchone()
        except psycopg.Error as e:
            logger.error(f"Insert error for {filename}: {e}")
            raise StoreError(f"Insert failed: {e}") from e

        return row["id"]

    async def insert_many(self, filename: str, rows: Sequence[Tuple[str, Sequence[float]]]) -> List[int]:
        """Insert all chunks of a document in one transaction."""
        ids: List[int] = []
        try:
            async with self._connection() as conn:
                async with conn.transaction():
                    for content, embedding in rows:
                        cur = await conn.execute(
                            """
                            INSERT INTO documents (filename, content, embedding)
                            VALUES (%s, %s, %s::vector)
                            RETURNING id
                            """,
                            (filename, content, to_vector_literal(embedding)),
                        )
                        row = await cur.fetchone()
                        ids.append(row["id"])
        except psycopg.Error as e:
            logger.error(f"Insert error for {filename}, rolled back: {e}")
            raise StoreError(f"Insert failed: {e}") from e

        return ids

    async def search(self, embedding: Sequence[float], limit: int) -> List[SearchResult]:
        """Return the ``limit`` nearest chunks by cosine distance, closest first."""
        try:
            async with self._connection() as conn:
                cur = await conn.execute(
                    """
                    SELECT id, filename, content,
                           embedding <=> %(embedding)s::vector AS similarity
                    FROM documents
                    ORDER BY embedding <=> %(embedding)s::vector
                    LIMIT %(limit)s
                    """,
                    {"embedding": to_vector_literal(embedding), "limit": limit},
                )
                rows = await cur.fetchall()
        except psycopg.Error as e:
            logger.error(f"Search error: {e}")
            raise StoreError(f"Search failed: {e}") from e

        return [SearchResult(**row) for row in rows]

    async def delete_by_filename(self, filename: str) -> int:
        """Delete every chunk stored under ``filename``; returns the row count."""
        try:
            async with self._connection() as conn:
                cur = await conn.execute("DELETE FROM documents WHERE filename = %s", (filename,))
                return cur.rowcount
        except psycopg.Error as e:
            logger.error(f"Delete error for {filename}: {e}")
            raise StoreError(f"Delete failed: {e}") from e

    async def list_documents(self) -> List[DocumentSummary]:
        """One row per filename, most recently ingested first."""
        try:
            async with self._connection() as conn:
                cur = await conn.execute(
                    """
                    SELECT filename,
                           MAX(created_at) AS created_at,
                           COUNT(*) AS chunk_count,
                           (SELECT LEFT(content, %s) FROM documents d2
                            WHERE d2.filename = d1.filename
                            ORDER BY d2.id
                            LIMIT 1) AS preview
                    FROM documents d1
                    GROUP BY filename
                    ORDER BY MAX(created_at) DESC, filename
                    """,
                    (PREVIEW_CHARS,),
                )
                rows = await cur.fetchall()
        except psycopg.Error as e:
            logger.error(f"List documents error: {e}")
            raise StoreError(f"Listing failed: {e}") from e

        return [DocumentSummary(**row) for row in rows]

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
        logger.info("Database connection closed")
