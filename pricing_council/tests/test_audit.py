"""
Tests: Audit trail queries, field diffs and the append outbox.

Run with:
    pytest pricing_council/tests/test_audit.py -v
"""

from datetime import timedelta

import pytest

from pricing_council.api.dependencies import build_services
from pricing_council.errors import PersistenceError
from pricing_council.models.enums import EntityType
from pricing_council.models.schemas import utcnow
from pricing_council.persistence.document_store import InMemoryDocumentStore
from pricing_council.services.audit_service import AUDIT_COLLECTION, diff_fields

ORG = "acme"


class FlakyAuditStore(InMemoryDocumentStore):
    """Fails audit appends while `broken` is set."""

    def __init__(self):
        super().__init__()
        self.broken = True

    def insert(self, collection, doc):
        if collection == AUDIT_COLLECTION and self.broken:
            raise PersistenceError("audit collection unavailable")
        return super().insert(collection, doc)


class TestDiffFields:
    def test_create_lists_every_key(self):
        assert diff_fields(None, {"b": 1, "a": 2}) == ["a", "b"]

    def test_delete_lists_every_key(self):
        assert diff_fields({"a": 1}, None) == ["a"]

    def test_nested_values_compare_by_content(self):
        prev = {"criteria": {"mrr_min": 10, "mrr_max": None}, "x": 1}
        new = {"criteria": {"mrr_max": None, "mrr_min": 10}, "x": 2}
        assert diff_fields(prev, new) == ["x"]

    def test_added_and_removed_keys(self):
        assert diff_fields({"a": 1, "b": 2}, {"b": 2, "c": 3}) == ["a", "c"]


class TestOutbox:
    def test_failed_append_does_not_fail_the_write(self):
        store = FlakyAuditStore()
        services = build_services(store)
        repo = services.ontology.ontology

        seg = repo.create(ORG, EntityType.SEGMENT, {"name": "Enterprise"})

        assert repo.exists(ORG, EntityType.SEGMENT, seg.id)
        assert services.audit.failure_count == 1
        assert [e.entity_id for e in services.audit.pending] == [seg.id]
        assert store.count(AUDIT_COLLECTION) == 0
        assert services.audit.change_stats(ORG)["pending_appends"] == 1

    def test_flush_writes_parked_entries(self):
        store = FlakyAuditStore()
        services = build_services(store)
        repo = services.ontology.ontology
        seg = repo.create(ORG, EntityType.SEGMENT, {"name": "Enterprise"})
        repo.update(ORG, EntityType.SEGMENT, seg.id, {"churn_rate": 0.1})

        assert services.audit.flush_outbox() == 0
        assert len(services.audit.pending) == 2

        store.broken = False
        assert services.audit.flush_outbox() == 2
        assert services.audit.pending == []
        assert [r.action for r in services.audit.entity_timeline(ORG, "segment", seg.id)] == ["create", "update"]


class TestQueries:
    @pytest.fixture
    def history(self, services):
        repo = services.ontology.ontology
        seg = repo.create(ORG, EntityType.SEGMENT, {"name": "Enterprise"})
        repo.update(ORG, EntityType.SEGMENT, seg.id, {"churn_rate": 0.04}, reason="refresh")
        repo.update(ORG, EntityType.SEGMENT, seg.id, {"expansion_rate": 0.2})
        tier = repo.create(ORG, EntityType.PRICING_TIER, {"name": "Pro", "price_monthly": 99, "position": 1})
        repo.create("globex", EntityType.SEGMENT, {"name": "Other org"})
        return seg, tier

    def test_filters(self, services, history):
        seg, tier = history
        audit = services.audit
        assert len(audit.query(ORG)) == 4
        assert len(audit.query(ORG, entity_type="segment")) == 3
        assert [r.entity_id for r in audit.query(ORG, entity_type="pricing_tier")] == [tier.id]
        assert len(audit.query(ORG, action="update")) == 2
        assert len(audit.query(ORG, limit=2)) == 2
        assert len(audit.query(ORG, limit=10, offset=3)) == 1

    def test_newest_first(self, services, history):
        rows = services.audit.query(ORG)
        stamps = [r.created_at for r in rows]
        assert stamps == sorted(stamps, reverse=True)

    def test_time_window(self, services, history):
        now = utcnow()
        assert len(services.audit.query(ORG, since=now - timedelta(hours=1))) == 4
        assert services.audit.query(ORG, since=now + timedelta(hours=1)) == []
        assert services.audit.query(ORG, until=now - timedelta(hours=1)) == []

    def test_timeline_is_oldest_first(self, services, history):
        seg, _ = history
        timeline = services.audit.entity_timeline(ORG, "segment", seg.id)
        assert [r.action for r in timeline] == ["create", "update", "update"]
        assert timeline[1].changed_fields == ["churn_rate"]
        assert timeline[2].changed_fields == ["expansion_rate"]

    def test_changes_by_decision(self, services):
        repo = services.ontology.ontology
        repo.create(ORG, EntityType.SEGMENT, {"name": "Enterprise"}, decision_record_id="dec_1")
        repo.create(ORG, EntityType.SEGMENT, {"name": "SMB"})
        rows = services.audit.changes_by_decision(ORG, "dec_1")
        assert [r.new_state["name"] for r in rows] == ["Enterprise"]

    def test_stats(self, services, history):
        stats = services.audit.change_stats(ORG)
        assert stats["total"] == 4
        assert stats["by_entity_type"] == {"segment": 3, "pricing_tier": 1}
        assert stats["by_action"] == {"create": 2, "update": 2}
        assert stats["failed_appends"] == 0
