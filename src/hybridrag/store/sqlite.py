"""SQLite chunk store with an FTS5 keyword index.

Documents and chunks live in plain tables; ``chunks_fts`` is an
external-content FTS5 table over ``chunks.content`` kept in sync by
triggers. Every operation opens its own connection, so one store instance
can be shared across threads.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from hybridrag.exceptions import LexicalBackendError, StoreError
from hybridrag.store.base import (
    BaseChunkStore,
    BaseLexicalIndex,
    decode_embedding,
    encode_embedding,
)
from hybridrag.types import Chunk, Document

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

__all__ = ["SqliteStore", "build_fts_query"]

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_name TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    embedding TEXT
);

CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, chunk_index);

CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    content,
    content='chunks',
    content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS chunks_ai AFTER INSERT ON chunks BEGIN
    INSERT INTO chunks_fts(rowid, content) VALUES (new.id, new.content);
END;

CREATE TRIGGER IF NOT EXISTS chunks_ad AFTER DELETE ON chunks BEGIN
    INSERT INTO chunks_fts(chunks_fts, rowid, content) VALUES ('delete', old.id, old.content);
END;

CREATE TRIGGER IF NOT EXISTS chunks_au AFTER UPDATE OF content ON chunks BEGIN
    INSERT INTO chunks_fts(chunks_fts, rowid, content) VALUES ('delete', old.id, old.content);
    INSERT INTO chunks_fts(rowid, content) VALUES (new.id, new.content);
END;
"""

_CHUNK_COLUMNS = "id, document_id, content, chunk_index, embedding"

# SQLite's default host-parameter limit is 999
_MAX_PARAMS = 900


def build_fts_query(query: str) -> str:
    """Turn free text into an FTS5 MATCH expression.

    Each whitespace-separated term longer than one character becomes a
    quoted prefix term; terms are OR-ed for recall. Returns ``""`` when no
    usable term remains.
    """
    terms = [t.strip() for t in query.split()]
    quoted = ['"' + t.replace('"', '""') + '"*' for t in terms if len(t) > 1]
    return " OR ".join(quoted)


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        chunk_id=row["id"],
        document_id=row["document_id"],
        content=row["content"],
        chunk_index=row["chunk_index"],
        embedding=row["embedding"],
    )


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        document_id=row["id"],
        file_name=row["file_name"],
        content=row["content"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SqliteStore(BaseChunkStore, BaseLexicalIndex):
    """Chunk store and FTS5 lexical index in a single SQLite file.

    ``search`` returns raw ``bm25()`` scores, which are negative with the
    best match most negative; callers normalize with ``lexical_score``.

    Usage::

        store = SqliteStore(project_root / ".rag" / "rag.sqlite")
        doc = store.add_document("notes.md", text)
        store.add_chunks(doc.document_id, chunks)
        hits = store.search("vector search", limit=10)
    """

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connection() as conn:
                conn.executescript(_SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Failed to initialize SQLite store at {db_path}: {e}") from e

        logger.info("SQLite store initialized at %s", self._db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, roll back on error, always close."""
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            with conn:
                yield conn
        finally:
            conn.close()

    # ── Documents ───────────────────────────────────────────────────

    def add_document(self, file_name: str, content: str) -> Document:
        created_at = datetime.now(UTC)
        try:
            with self._connection() as conn:
                cur = conn.execute(
                    "INSERT INTO documents (file_name, content, created_at) VALUES (?, ?, ?)",
                    (file_name, content, created_at.isoformat()),
                )
                document_id = cur.lastrowid
        except sqlite3.Error as e:
            raise StoreError(f"Failed to add document {file_name}: {e}") from e

        if document_id is None:
            raise StoreError(f"Failed to add document {file_name}: no row id assigned")

        logger.info("Added document %s (id=%d)", file_name, document_id)
        return Document(
            document_id=document_id,
            file_name=file_name,
            content=content,
            created_at=created_at,
        )

    def get_documents(self) -> list[Document]:
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    "SELECT id, file_name, content, created_at FROM documents ORDER BY id"
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to list documents: {e}") from e
        return [_row_to_document(r) for r in rows]

    def get_document(self, document_id: int) -> Document | None:
        try:
            with self._connection() as conn:
                row = conn.execute(
                    "SELECT id, file_name, content, created_at FROM documents WHERE id = ?",
                    (document_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to get document {document_id}: {e}") from e
        return _row_to_document(row) if row else None

    def get_document_name(self, document_id: int) -> str | None:
        try:
            with self._connection() as conn:
                row = conn.execute(
                    "SELECT file_name FROM documents WHERE id = ?", (document_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to get name of document {document_id}: {e}") from e
        return row["file_name"] if row else None

    def delete_document(self, document_id: int) -> int:
        try:
            with self._connection() as conn:
                cur = conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
                deleted = cur.rowcount
                conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete document {document_id}: {e}") from e

        logger.info("Deleted document id=%d (%d chunks)", document_id, deleted)
        return deleted

    # ── Chunks ──────────────────────────────────────────────────────

    def add_chunks(self, document_id: int, chunks: Sequence[str]) -> list[Chunk]:
        if not chunks:
            return []

        stored: list[Chunk] = []
        try:
            with self._connection() as conn:
                for index, content in enumerate(chunks):
                    cur = conn.execute(
                        "INSERT INTO chunks (document_id, content, chunk_index) VALUES (?, ?, ?)",
                        (document_id, content, index),
                    )
                    stored.append(
                        Chunk(
                            chunk_id=cur.lastrowid or 0,
                            document_id=document_id,
                            content=content,
                            chunk_index=index,
                        )
                    )
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to add {len(chunks)} chunks for document {document_id}: {e}"
            ) from e

        logger.info("Added %d chunks for document id=%d", len(stored), document_id)
        return stored

    def get_chunks(self, chunk_ids: Iterable[int]) -> dict[int, Chunk]:
        ids = list(dict.fromkeys(chunk_ids))
        found: dict[int, Chunk] = {}
        try:
            with self._connection() as conn:
                for start in range(0, len(ids), _MAX_PARAMS):
                    batch = ids[start : start + _MAX_PARAMS]
                    placeholders = ", ".join("?" * len(batch))
                    rows = conn.execute(
                        f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id IN ({placeholders})",
                        batch,
                    ).fetchall()
                    for row in rows:
                        found[row["id"]] = _row_to_chunk(row)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to get chunks: {e}") from e
        return found

    def get_document_chunks(self, document_id: int) -> list[Chunk]:
        return self._select_chunks(
            "WHERE document_id = ? ORDER BY chunk_index", (document_id,)
        )

    def get_all_chunks(self) -> list[Chunk]:
        return self._select_chunks("ORDER BY document_id, chunk_index")

    def get_all_chunks_with_embeddings(self) -> list[Chunk]:
        return self._select_chunks(
            "WHERE embedding IS NOT NULL AND embedding != '' ORDER BY document_id, chunk_index"
        )

    def get_chunks_without_embeddings(self) -> list[Chunk]:
        return self._select_chunks(
            "WHERE embedding IS NULL OR embedding = '' ORDER BY document_id, chunk_index"
        )

    def get_chunk_embedding(self, chunk_id: int) -> list[float] | None:
        try:
            with self._connection() as conn:
                row = conn.execute(
                    "SELECT embedding FROM chunks WHERE id = ?", (chunk_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to get embedding of chunk {chunk_id}: {e}") from e

        if row is None or not row["embedding"]:
            return None
        return decode_embedding(row["embedding"])

    def update_chunk_embedding(self, chunk_id: int, vector: Sequence[float]) -> None:
        try:
            with self._connection() as conn:
                conn.execute(
                    "UPDATE chunks SET embedding = ? WHERE id = ?",
                    (encode_embedding(vector), chunk_id),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to update embedding of chunk {chunk_id}: {e}") from e

    def count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM chunks")

    def count_embedded(self) -> int:
        """Return the number of chunks that already have an embedding."""
        return self._scalar(
            "SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL AND embedding != ''"
        )

    def count_documents(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM documents")

    # ── Lexical index ───────────────────────────────────────────────

    def search(self, query: str, limit: int) -> list[tuple[int, float]]:
        fts_query = build_fts_query(query)
        if not fts_query or limit <= 0:
            return []

        try:
            with self._connection() as conn:
                rows = conn.execute(
                    "SELECT rowid, bm25(chunks_fts) AS score FROM chunks_fts "
                    "WHERE chunks_fts MATCH ? ORDER BY score LIMIT ?",
                    (fts_query, limit),
                ).fetchall()
        except sqlite3.Error as e:
            raise LexicalBackendError(f"FTS5 search failed for {fts_query!r}: {e}") from e

        return [(row["rowid"], row["score"]) for row in rows]

    def rebuild_fts_index(self) -> None:
        """Rebuild the FTS5 index from the chunks table."""
        try:
            with self._connection() as conn:
                conn.execute("INSERT INTO chunks_fts(chunks_fts) VALUES ('rebuild')")
        except sqlite3.Error as e:
            raise StoreError(f"Failed to rebuild FTS index: {e}") from e
        logger.info("Rebuilt FTS index at %s", self._db_path)

    # ── Helpers ─────────────────────────────────────────────────────

    def _select_chunks(self, clause: str, params: Sequence[object] = ()) -> list[Chunk]:
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    f"SELECT {_CHUNK_COLUMNS} FROM chunks {clause}", params
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read chunks: {e}") from e
        return [_row_to_chunk(r) for r in rows]

    def _scalar(self, sql: str) -> int:
        try:
            with self._connection() as conn:
                row = conn.execute(sql).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Query failed: {e}") from e
        return int(row[0]) if row else 0
