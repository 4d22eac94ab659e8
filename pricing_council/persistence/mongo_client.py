"""
Mongo Client — raw database connection management.
Only used when `storage_backend == "mongo"`.
"""

from __future__ import annotations

import logging
from typing import Any

from pymongo import ASCENDING, MongoClient as PyMongoClient

from pricing_council.config import get_settings

logger = logging.getLogger(__name__)


class MongoClient:
    """Thin wrapper around pymongo that owns the connection and indexes."""

    def __init__(self, uri: str | None = None, database: str | None = None):
        settings = get_settings()
        self.uri = uri or settings.mongodb_uri
        self.database_name = database or settings.mongodb_database
        self._client: Any = None
        self._db: Any = None

    def connect(self) -> None:
        """Establish the MongoDB connection and make sure indexes exist."""
        self._client = PyMongoClient(self.uri, tz_aware=True)
        self._db = self._client[self.database_name]
        self._ensure_indexes()
        logger.info(f"Connected to MongoDB: {self.database_name}")

    def get_database(self) -> Any:
        """Return the database handle, connecting on first use."""
        if self._db is None:
            self.connect()
        return self._db

    def _ensure_indexes(self) -> None:
        db = self._db
        # One version number per organization, never shared
        db.ontology_snapshots.create_index(
            [("organization_id", ASCENDING), ("version", ASCENDING)], unique=True
        )
        db.pricing_tiers.create_index(
            [("organization_id", ASCENDING), ("name", ASCENDING)]
        )
        db.audit_logs.create_index(
            [("organization_id", ASCENDING), ("entity_type", ASCENDING),
             ("entity_id", ASCENDING), ("created_at", ASCENDING)]
        )
        db.audit_logs.create_index([("decision_record_id", ASCENDING)])
        db.setup_runs.create_index([("organization_id", ASCENDING)], unique=True)
        for name in ("customers", "segments", "value_metrics", "patterns",
                     "competitors", "economics_snapshots", "decision_records"):
            db[name].create_index([("organization_id", ASCENDING)])
