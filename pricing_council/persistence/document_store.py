"""
Document Store — the storage seam under every repository.

Two backends share one small, Mongo-flavoured interface:
  - InMemoryDocumentStore: default; used by tests and local runs.
  - MongoDocumentStore: pymongo-backed.

Queries support equality plus the operators $gt, $gte, $lt, $lte, $in, $ne.
Sorts are lists of (field, direction) with 1 = ascending, -1 = descending.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from pricing_council.config import Settings, get_settings
from pricing_council.errors import PersistenceError
from pricing_council.persistence.mongo_client import MongoClient

logger = logging.getLogger(__name__)

Query = dict[str, Any]
Sort = list[tuple[str, int]]


class DocumentStore(ABC):
    """Abstract document store."""

    @abstractmethod
    def insert(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    def find_one(self, collection: str, query: Query) -> dict[str, Any] | None:
        ...

    @abstractmethod
    def find(
        self,
        collection: str,
        query: Query | None = None,
        sort: Sort | None = None,
        limit: int = 0,
        skip: int = 0,
    ) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def update(self, collection: str, query: Query, fields: dict[str, Any]) -> dict[str, Any] | None:
        """Set `fields` on the first matching document; return it after the write."""
        ...

    @abstractmethod
    def delete(self, collection: str, query: Query) -> int:
        ...

    @abstractmethod
    def count(self, collection: str, query: Query | None = None) -> int:
        ...

    @abstractmethod
    def next_sequence(self, name: str) -> int:
        """Atomically increment and return the named counter (starts at 1)."""
        ...


# ── In-memory backend ────────────────────────────────────

def _match_value(actual: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, operand in condition.items():
            if op == "$in":
                if actual not in operand:
                    return False
            elif op == "$ne":
                if actual == operand:
                    return False
            elif actual is None:
                return False
            elif op == "$gt" and not actual > operand:
                return False
            elif op == "$gte" and not actual >= operand:
                return False
            elif op == "$lt" and not actual < operand:
                return False
            elif op == "$lte" and not actual <= operand:
                return False
        return True
    return actual == condition


def matches(doc: dict[str, Any], query: Query | None) -> bool:
    if not query:
        return True
    return all(_match_value(doc.get(field), cond) for field, cond in query.items())


def _sort_docs(docs: list[dict[str, Any]], sort: Sort | None) -> list[dict[str, Any]]:
    if not sort:
        return docs
    # Apply keys last-to-first so the first key dominates (stable sort)
    for field, direction in reversed(sort):
        docs.sort(
            key=lambda d: (d.get(field) is not None, d.get(field)),
            reverse=direction < 0,
        )
    return docs


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe dict-of-lists store. Every read and write copies."""

    def __init__(self):
        self._collections: dict[str, list[dict[str, Any]]] = {}
        self._counters: dict[str, int] = {}
        self._lock = threading.Lock()

    def insert(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self._collections.setdefault(collection, []).append(deepcopy(doc))
        return deepcopy(doc)

    def find_one(self, collection: str, query: Query) -> dict[str, Any] | None:
        with self._lock:
            for doc in self._collections.get(collection, []):
                if matches(doc, query):
                    return deepcopy(doc)
        return None

    def find(
        self,
        collection: str,
        query: Query | None = None,
        sort: Sort | None = None,
        limit: int = 0,
        skip: int = 0,
    ) -> list[dict[str, Any]]:
        with self._lock:
            docs = [deepcopy(d) for d in self._collections.get(collection, []) if matches(d, query)]
        docs = _sort_docs(docs, sort)
        if skip:
            docs = docs[skip:]
        if limit:
            docs = docs[:limit]
        return docs

    def update(self, collection: str, query: Query, fields: dict[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            for doc in self._collections.get(collection, []):
                if matches(doc, query):
                    doc.update(deepcopy(fields))
                    return deepcopy(doc)
        return None

    def delete(self, collection: str, query: Query) -> int:
        with self._lock:
            docs = self._collections.get(collection, [])
            kept = [d for d in docs if not matches(d, query)]
            self._collections[collection] = kept
            return len(docs) - len(kept)

    def count(self, collection: str, query: Query | None = None) -> int:
        with self._lock:
            return sum(1 for d in self._collections.get(collection, []) if matches(d, query))

    def next_sequence(self, name: str) -> int:
        with self._lock:
            value = self._counters.get(name, 0) + 1
            self._counters[name] = value
            return value


# ── MongoDB backend ──────────────────────────────────────

_NO_ID = {"_id": 0}


class MongoDocumentStore(DocumentStore):
    """pymongo-backed store. Driver errors surface as PersistenceError."""

    def __init__(self, client: MongoClient | None = None):
        self._client = client or MongoClient()
        self._db = self._client.get_database()

    def insert(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        try:
            self._db[collection].insert_one(dict(doc))
        except PyMongoError as e:
            raise PersistenceError(f"Insert into {collection} failed: {e}") from e
        return doc

    def find_one(self, collection: str, query: Query) -> dict[str, Any] | None:
        try:
            return self._db[collection].find_one(query, _NO_ID)
        except PyMongoError as e:
            raise PersistenceError(f"Read from {collection} failed: {e}") from e

    def find(
        self,
        collection: str,
        query: Query | None = None,
        sort: Sort | None = None,
        limit: int = 0,
        skip: int = 0,
    ) -> list[dict[str, Any]]:
        try:
            cursor = self._db[collection].find(query or {}, _NO_ID)
            if sort:
                cursor = cursor.sort(sort)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            raise PersistenceError(f"Read from {collection} failed: {e}") from e

    def update(self, collection: str, query: Query, fields: dict[str, Any]) -> dict[str, Any] | None:
        try:
            return self._db[collection].find_one_and_update(
                query,
                {"$set": fields},
                projection=_NO_ID,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise PersistenceError(f"Update of {collection} failed: {e}") from e

    def delete(self, collection: str, query: Query) -> int:
        try:
            return self._db[collection].delete_many(query).deleted_count
        except PyMongoError as e:
            raise PersistenceError(f"Delete from {collection} failed: {e}") from e

    def count(self, collection: str, query: Query | None = None) -> int:
        try:
            return self._db[collection].count_documents(query or {})
        except PyMongoError as e:
            raise PersistenceError(f"Count on {collection} failed: {e}") from e

    def next_sequence(self, name: str) -> int:
        try:
            doc = self._db.counters.find_one_and_update(
                {"_id": name},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise PersistenceError(f"Counter {name} failed: {e}") from e
        return int(doc["seq"])


def create_document_store(settings: Settings | None = None) -> DocumentStore:
    """Build the configured backend."""
    settings = settings or get_settings()
    if settings.storage_backend == "mongo":
        logger.info(f"Using MongoDB document store ({settings.mongodb_database})")
        return MongoDocumentStore(MongoClient(settings.mongodb_uri, settings.mongodb_database))
    logger.info("Using in-memory document store")
    return InMemoryDocumentStore()
