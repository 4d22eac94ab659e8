"""
Customer Repository — read boundary over the unified customer store.

The analytics core only reads customers. `load_customers` exists for
ingestion processes, seeding and tests.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from pricing_council.errors import InvalidInputError
from pricing_council.models.enums import CustomerStatus
from pricing_council.models.schemas import Customer
from pricing_council.persistence.document_store import DocumentStore

logger = logging.getLogger(__name__)

CUSTOMER_COLLECTION = "customers"


class CustomerRepository:
    def __init__(self, store: DocumentStore):
        self._store = store

    def list_customers(self, organization_id: str, status: str | None = None) -> list[Customer]:
        query: dict[str, Any] = {"organization_id": organization_id}
        if status:
            query["status"] = status
        docs = self._store.find(CUSTOMER_COLLECTION, query, sort=[("id", 1)])
        return [Customer(**d) for d in docs]

    def count_by_segment(self, organization_id: str) -> dict[str, int]:
        """Live (non-churned) customer counts keyed by segment id."""
        docs = self._store.find(
            CUSTOMER_COLLECTION,
            {"organization_id": organization_id, "status": {"$ne": CustomerStatus.CHURNED.value}},
        )
        return dict(Counter(d.get("segment_id") for d in docs if d.get("segment_id")))

    def count_by_plan(self, organization_id: str) -> dict[str, int]:
        docs = self._store.find(
            CUSTOMER_COLLECTION,
            {"organization_id": organization_id, "status": {"$ne": CustomerStatus.CHURNED.value}},
        )
        return dict(Counter(d.get("plan_id") for d in docs if d.get("plan_id")))

    def load_customers(self, organization_id: str, customers: list[Customer]) -> int:
        """Bulk insert customers for one organization."""
        for customer in customers:
            if customer.organization_id != organization_id:
                raise InvalidInputError(f"Customer {customer.id} belongs to {customer.organization_id}")
            self._store.insert(CUSTOMER_COLLECTION, customer.model_dump())
        logger.info(f"Loaded {len(customers)} customers for {organization_id}")
        return len(customers)
