"""SQLite management utilities and the SQLite-backed document store."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

from esg_rag.core.errors import DocumentStoreError
from esg_rag.db.store import DocumentFilter
from esg_rag.models.entities import Document
from esg_rag.utils.time import now_ms

DEFAULT_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA temp_store=MEMORY;",
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
  id TEXT PRIMARY KEY,
  text TEXT NOT NULL,
  filename TEXT,
  region TEXT,
  organization TEXT,
  document_type TEXT,
  fingerprint TEXT,
  processed INTEGER NOT NULL DEFAULT 0,
  created_at INTEGER NOT NULL,
  updated_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_documents_region ON documents(region);
CREATE INDEX IF NOT EXISTS idx_documents_organization ON documents(organization);
"""

_DOCUMENT_COLUMNS = (
    "id, text, filename, region, organization, document_type, fingerprint, processed, created_at, updated_at"
)


class SQLiteDatabase:
    """Thin wrapper around sqlite3 providing pragmatic defaults."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path.expanduser()
        self._connection: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            for pragma in DEFAULT_PRAGMAS:
                self._connection.execute(pragma)
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def executescript(self, script: str) -> None:
        conn = self.connect()
        conn.executescript(script)

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        conn = self.connect()
        return conn.execute(sql, params or [])

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        cursor = self.execute(sql, params)
        return cursor.fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        conn = self.connect()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def ensure_schema(self, schema_sql: str = SCHEMA_SQL) -> None:
        self.executescript(schema_sql)


class SQLiteDocumentStore:
    """Document store persisted in a local SQLite file."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.db = database
        self._lock = threading.RLock()
        self.db.ensure_schema()

    def list_documents(self, filters: DocumentFilter | None = None) -> list[Document]:
        clauses: list[str] = []
        params: list[Any] = []
        if filters is not None:
            if filters.region is not None:
                clauses.append("region = ?")
                params.append(filters.region)
            if filters.organization is not None:
                clauses.append("organization = ?")
                params.append(filters.organization)
            if filters.document_ids is not None:
                if not filters.document_ids:
                    return []
                placeholders = ",".join("?" for _ in filters.document_ids)
                clauses.append(f"id IN ({placeholders})")
                params.extend(filters.document_ids)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        try:
            with self._lock:
                rows = self.db.query(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents{where} ORDER BY created_at, id",
                    params,
                )
        except sqlite3.Error as exc:
            raise DocumentStoreError(f"Failed to list documents: {exc}") from exc
        return [_row_to_document(row) for row in rows]

    def update_document_status(self, document_id: str, fingerprint: str | None, processed: bool) -> None:
        try:
            with self._lock, self.db.transaction() as cursor:
                cursor.execute(
                    "UPDATE documents SET fingerprint = ?, processed = ?, updated_at = ? WHERE id = ?",
                    [fingerprint, int(processed), now_ms(), document_id],
                )
                updated = cursor.rowcount
        except sqlite3.Error as exc:
            raise DocumentStoreError(f"Failed to update document {document_id}: {exc}") from exc
        if not updated:
            raise DocumentStoreError(f"Document {document_id} not found")

    def upsert_document(self, document: Document) -> Document:
        now = now_ms()
        try:
            with self._lock, self.db.transaction() as cursor:
                cursor.execute(
                    """
                    INSERT INTO documents (
                      id, text, filename, region, organization, document_type,
                      fingerprint, processed, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                      text = excluded.text,
                      filename = excluded.filename,
                      region = excluded.region,
                      organization = excluded.organization,
                      document_type = excluded.document_type,
                      fingerprint = excluded.fingerprint,
                      processed = excluded.processed,
                      updated_at = excluded.updated_at
                    """,
                    [
                        document.id,
                        document.text,
                        document.filename,
                        document.region,
                        document.organization,
                        document.document_type,
                        document.fingerprint,
                        int(document.processed),
                        document.created_at or now,
                        now,
                    ],
                )
        except sqlite3.Error as exc:
            raise DocumentStoreError(f"Failed to store document {document.id}: {exc}") from exc
        stored = self.get_document(document.id)
        if stored is None:
            raise DocumentStoreError(f"Document {document.id} vanished after upsert")
        return stored

    def get_document(self, document_id: str) -> Document | None:
        with self._lock:
            row = self.db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?",
                [document_id],
            ).fetchone()
        return _row_to_document(row) if row else None

    def count_documents(self) -> int:
        with self._lock:
            row = self.db.execute("SELECT COUNT(*) AS count FROM documents").fetchone()
        return int(row["count"]) if row else 0

    def count_processed(self) -> int:
        with self._lock:
            row = self.db.execute("SELECT COUNT(*) AS count FROM documents WHERE processed = 1").fetchone()
        return int(row["count"]) if row else 0

    def close(self) -> None:
        with self._lock:
            self.db.close()


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        text=row["text"],
        filename=row["filename"],
        region=row["region"],
        organization=row["organization"],
        document_type=row["document_type"],
        fingerprint=row["fingerprint"],
        processed=bool(row["processed"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


__all__ = ["SQLiteDatabase", "SQLiteDocumentStore", "SCHEMA_SQL"]
