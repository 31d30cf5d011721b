"""In-memory document store, Valkey time travel and test accounts.

InMemoryDocumentStore implements the interface the auth package calls on
DocumentStore; Valkey itself is fakeredis. Services run end to end without
infrastructure.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import redis

from clients.document_store import Document, DocumentStoreError
from clients.identity_client import SignedInAccount

TEST_USER_ID = "uid-0001"
TEST_USER_EMAIL = "testuser@bilo.fi"
TEST_PASSWORD = "salasana123"


def make_account(
    uid: str = TEST_USER_ID,
    email: str = TEST_USER_EMAIL,
    email_verified: bool = False,
    id_token: str = "id-token-1",
) -> SignedInAccount:
    return SignedInAccount(
        uid=uid,
        email=email,
        email_verified=email_verified,
        id_token=id_token,
        refresh_token="refresh-token-1",
    )


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryDocumentStore:
    """DocumentStore semantics over dicts.

    Data is round-tripped through JSON on write and read, like JSONB.
    Collections listed in fail_creates_in reject inserts.
    """

    def __init__(self, clock: FakeClock | None = None):
        self._clock = clock or FakeClock()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.fail_creates_in: set[str] = set()

    def _rows(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    @staticmethod
    def _json(data: dict[str, Any]) -> dict[str, Any]:
        return json.loads(json.dumps(data))

    @staticmethod
    def _contains(data: dict[str, Any], expected: dict[str, Any]) -> bool:
        return all(key in data and data[key] == value for key, value in expected.items())

    def _document(self, doc_id: str, row: dict[str, Any]) -> Document:
        return Document(
            id=doc_id,
            data=self._json(row["data"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def ensure_schema(self) -> None:
        pass

    def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str:
        if collection in self.fail_creates_in:
            raise DocumentStoreError(f"insert into {collection} rejected")
        rows = self._rows(collection)
        doc_id = doc_id or uuid4().hex
        if doc_id in rows:
            raise DocumentStoreError(f"duplicate key {collection}/{doc_id}")
        now = self._clock()
        rows[doc_id] = {"data": self._json(data), "created_at": now, "updated_at": now}
        return doc_id

    def get(self, collection: str, doc_id: str) -> Document | None:
        row = self._rows(collection).get(doc_id)
        return self._document(doc_id, row) if row else None

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> bool:
        return self.update_if(collection, doc_id, {}, changes)

    def update_if(
        self,
        collection: str,
        doc_id: str,
        expected: dict[str, Any],
        changes: dict[str, Any],
    ) -> bool:
        row = self._rows(collection).get(doc_id)
        if row is None or not self._contains(row["data"], expected):
            return False
        row["data"].update(self._json(changes))
        row["updated_at"] = self._clock()
        return True

    def query(
        self,
        collection: str,
        filters: dict[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        matches = [
            self._document(doc_id, row)
            for doc_id, row in self._rows(collection).items()
            if self._contains(row["data"], filters)
        ]
        if order_by:
            matches.sort(key=lambda doc: str(doc.data.get(order_by, "")), reverse=descending)
        if limit is not None:
            matches = matches[:limit]
        return matches

    def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> int | None:
        row = self._rows(collection).get(doc_id)
        if row is None:
            return None
        row["data"][field] = row["data"].get(field, 0) + amount
        row["updated_at"] = self._clock()
        return row["data"][field]

    def all(self, collection: str) -> list[dict[str, Any]]:
        """Raw data of every document in a collection (test helper)."""
        return [self._json(row["data"]) for row in self._rows(collection).values()]


def fast_forward(client: redis.Redis, seconds: float) -> None:
    """Age every key that has a TTL by `seconds`, deleting the ones that run out."""
    elapsed_ms = int(seconds * 1000)
    for key in client.keys("*"):
        remaining = client.pttl(key)
        if remaining < 0:
            continue
        if remaining <= elapsed_ms:
            client.delete(key)
        else:
            client.pexpire(key, remaining - elapsed_ms)
