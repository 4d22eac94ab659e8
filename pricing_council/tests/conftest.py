"""
Shared fixtures: a fresh in-memory store and the service graph on top of it.
"""

from datetime import datetime, timedelta, timezone

import pytest

from pricing_council.api.dependencies import Services, build_services
from pricing_council.models.schemas import Customer, ExpansionEvent
from pricing_council.persistence.document_store import InMemoryDocumentStore

AS_OF = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def as_of() -> datetime:
    return AS_OF


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def services(store) -> Services:
    return build_services(store)


@pytest.fixture
def make_customer():
    """Factory for customers; `churned_days_ago` marks the customer churned."""

    def _make(
        mrr: float,
        organization_id: str = "acme",
        churned_days_ago: int | None = None,
        created_days_ago: int = 730,
        tenure_months: int = 12,
        expansions: list[tuple[int, float, float]] | None = None,
        **kwargs,
    ) -> Customer:
        status = "active"
        churned_at = None
        if churned_days_ago is not None:
            status = "churned"
            churned_at = AS_OF - timedelta(days=churned_days_ago)
        return Customer(
            organization_id=organization_id,
            mrr=mrr,
            ltv=mrr * 24,
            tenure_months=tenure_months,
            status=status,
            created_at=AS_OF - timedelta(days=created_days_ago),
            churned_at=churned_at,
            expansion_events=[
                ExpansionEvent(occurred_at=AS_OF - timedelta(days=d), from_mrr=a, to_mrr=b)
                for d, a, b in expansions or []
            ],
            **kwargs,
        )

    return _make
