"""
Document store on PostgreSQL JSONB.

Every collection lives in a single `documents` table keyed by
(collection, id). Documents are JSON objects; equality queries use JSONB
containment so they can be served by the GIN index. created_at/updated_at are
assigned by the database server, never by the caller.

No cross-document transactions are offered. The strongest primitive is
update_if(), a per-document compare-and-set.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

import psycopg2
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection  text        NOT NULL,
    id          text        NOT NULL,
    data        jsonb       NOT NULL,
    created_at  timestamptz NOT NULL DEFAULT now(),
    updated_at  timestamptz NOT NULL DEFAULT now(),
    PRIMARY KEY (collection, id)
);
CREATE INDEX IF NOT EXISTS documents_data_gin ON documents USING gin (data jsonb_path_ops);
"""


class DocumentStoreError(Exception):
    """Raised when the underlying database rejects a document operation."""


@dataclass(frozen=True)
class Document:
    """A stored document with its server-assigned timestamps."""

    id: str
    data: dict[str, Any]
    created_at: datetime
    updated_at: datetime


def _to_document(row: dict[str, Any]) -> Document:
    return Document(
        id=row["id"],
        data=row["data"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class DocumentStore:
    """Create/read/update/query JSON documents grouped into collections."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def ensure_schema(self) -> None:
        """Create the documents table and index if missing."""
        self._run(self._db.execute, SCHEMA)
        logger.info("Document store schema ready")

    def _run(self, fn, query: str, params: tuple | None = None):
        try:
            return fn(query, params)
        except psycopg2.Error as e:
            logger.error(f"Document store query failed: {e}")
            raise DocumentStoreError(str(e)) from e

    def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str:
        """Insert a document. Returns its id (generated when not given).

        Raises:
            DocumentStoreError: If the insert fails (including duplicate id).
        """
        doc_id = doc_id or uuid4().hex
        row = self._run(
            self._db.execute_single,
            """INSERT INTO documents (collection, id, data)
               VALUES (%s, %s, %s)
               RETURNING id""",
            (collection, doc_id, Json(data)),
        )
        return row["id"]

    def get(self, collection: str, doc_id: str) -> Document | None:
        """Fetch a document by id, or None if it doesn't exist."""
        row = self._run(
            self._db.execute_single,
            """SELECT id, data, created_at, updated_at
               FROM documents
               WHERE collection = %s AND id = %s""",
            (collection, doc_id),
        )
        return _to_document(row) if row else None

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> bool:
        """Shallow-merge changes into a document.

        Returns:
            True if the document existed and was updated.
        """
        count = self._run(
            self._db.execute_rowcount,
            """UPDATE documents
               SET data = data || %s, updated_at = now()
               WHERE collection = %s AND id = %s""",
            (Json(changes), collection, doc_id),
        )
        return count > 0

    def update_if(
        self,
        collection: str,
        doc_id: str,
        expected: dict[str, Any],
        changes: dict[str, Any],
    ) -> bool:
        """Merge changes only if the document currently contains `expected`.

        Atomic per document. Returns False when the precondition no longer
        holds, which callers treat as losing a race.
        """
        count = self._run(
            self._db.execute_rowcount,
            """UPDATE documents
               SET data = data || %s, updated_at = now()
               WHERE collection = %s AND id = %s AND data @> %s""",
            (Json(changes), collection, doc_id, Json(expected)),
        )
        return count > 0

    def query(
        self,
        collection: str,
        filters: dict[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """Find documents whose fields equal all given filter values."""
        direction = "DESC" if descending else "ASC"
        sql = """SELECT id, data, created_at, updated_at
                 FROM documents
                 WHERE collection = %s AND data @> %s"""
        params: list[Any] = [collection, Json(filters)]

        if order_by:
            sql += f" ORDER BY data->>%s {direction}"
            params.append(order_by)
        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)

        rows = self._run(self._db.execute, sql, tuple(params))
        return [_to_document(row) for row in rows]

    def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> int | None:
        """Atomically add `amount` to a numeric field (missing counts as 0).

        Returns:
            The new value, or None if the document doesn't exist.
        """
        row = self._run(
            self._db.execute_single,
            """UPDATE documents
               SET data = jsonb_set(
                       data,
                       ARRAY[%s],
                       to_jsonb(COALESCE((data->>%s)::numeric, 0) + %s)
                   ),
                   updated_at = now()
               WHERE collection = %s AND id = %s
               RETURNING (data->>%s)::numeric AS value""",
            (field, field, amount, collection, doc_id, field),
        )
        return int(row["value"]) if row else None

