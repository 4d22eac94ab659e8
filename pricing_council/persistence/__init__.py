"""Persistence — document stores and repositories."""

from pricing_council.persistence.document_store import (
    DocumentStore,
    InMemoryDocumentStore,
    MongoDocumentStore,
    create_document_store,
)

__all__ = ["DocumentStore", "InMemoryDocumentStore", "MongoDocumentStore", "create_document_store"]
