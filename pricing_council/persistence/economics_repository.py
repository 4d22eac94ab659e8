"""
Economics Repository — append-only store of EconomicsSnapshot records.
"""

from __future__ import annotations

import logging

from pricing_council.models.schemas import EconomicsSnapshot
from pricing_council.persistence.document_store import DocumentStore

logger = logging.getLogger(__name__)

ECONOMICS_COLLECTION = "economics_snapshots"


class EconomicsRepository:
    def __init__(self, store: DocumentStore):
        self._store = store

    def save(self, snapshot: EconomicsSnapshot) -> EconomicsSnapshot:
        self._store.insert(ECONOMICS_COLLECTION, snapshot.model_dump())
        logger.info(
            f"Saved economics {snapshot.id} for {snapshot.organization_id} "
            f"(MRR {snapshot.total_mrr:,.2f}, risk {snapshot.concentration.risk_level})"
        )
        return snapshot

    def latest(self, organization_id: str) -> EconomicsSnapshot | None:
        docs = self._store.find(
            ECONOMICS_COLLECTION,
            {"organization_id": organization_id},
            sort=[("snapshot_date", -1)],
            limit=1,
        )
        return EconomicsSnapshot(**docs[0]) if docs else None
