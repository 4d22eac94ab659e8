"""
Tests: Company setup from presets and the persisted analytics refresh.

Run with:
    pytest pricing_council/tests/test_setup.py -v
"""

import pytest

from pricing_council.api.dependencies import build_services
from pricing_council.errors import InvalidInputError, NotFoundError, PersistenceError
from pricing_council.models.enums import EntityType
from pricing_council.models.schemas import ValueMetric
from pricing_council.persistence.document_store import InMemoryDocumentStore
from pricing_council.persistence.snapshot_repository import SNAPSHOT_COLLECTION
from pricing_council.presets import PRESETS, get_preset
from pricing_council.services.audit_service import AUDIT_COLLECTION

ORG = "streamapi"


class FailOnceStore(InMemoryDocumentStore):
    """Raises on the first insert into one collection."""

    def __init__(self, collection: str):
        super().__init__()
        self.failing = collection

    def insert(self, collection, doc):
        if collection == self.failing:
            self.failing = None
            raise PersistenceError(f"Insert into {collection} failed")
        return super().insert(collection, doc)


class TestPresets:
    def test_lookup(self):
        assert get_preset("devtools").total_customers == 3200
        with pytest.raises(NotFoundError):
            get_preset("banking")

    @pytest.mark.parametrize("preset_id", sorted(PRESETS))
    def test_shares_are_consistent(self, preset_id):
        preset = PRESETS[preset_id]
        assert sum(s.customer_share for s in preset.segments) == pytest.approx(1.0)
        assert sum(s.revenue_share for s in preset.segments) == pytest.approx(1.0)
        assert sorted(t.position for t in preset.tiers) == list(range(1, len(preset.tiers) + 1))
        assert sum(1 for m in preset.value_metrics if m.metric_type == "primary") == 1


class TestSetup:
    def test_seeds_every_entity_kind(self, services, store):
        result = services.ontology.setup_organization(ORG, "devtools")

        assert result.pre_seeded is False
        assert (result.segments, result.pricing_tiers, result.value_metrics, result.competitors) == (4, 5, 4, 4)
        assert result.snapshot_version == 1
        assert store.count(AUDIT_COLLECTION) == 17

        segments = services.ontology.list_segments(ORG)
        assert sum(s.revenue_share for s in segments) == pytest.approx(1.0)
        assert sum(s.customer_count for s in segments) == 3200
        assert all(s.retention_curve[0] == 1.0 for s in segments)

        snapshot = services.ontology.snapshots.latest(ORG)
        assert snapshot.triggered_by == "setup"
        assert len(snapshot.segments) == 4
        assert snapshot.economics is not None

    def test_seeded_economics(self, services):
        services.ontology.setup_organization(ORG, "devtools")
        economics = services.ontology.latest_economics(ORG)
        assert economics.total_customers == 3200
        assert economics.total_arr == pytest.approx(18_500_000)
        assert economics.concentration.risk_level == "high"
        assert len(economics.price_sensitivity) == 4

    def test_is_idempotent(self, services, store):
        services.ontology.setup_organization(ORG, "devtools")
        audit_rows = store.count(AUDIT_COLLECTION)

        again = services.ontology.setup_organization(ORG, "devtools")

        assert again.pre_seeded is True
        assert again.segments == 4
        assert again.snapshot_version is None
        assert store.count(AUDIT_COLLECTION) == audit_rows
        assert store.count(SNAPSHOT_COLLECTION) == 1

    def test_archived_segments_still_count_as_seeded(self, services):
        repo = services.ontology.ontology
        seg = repo.create(ORG, EntityType.SEGMENT, {"name": "Legacy"})
        repo.archive(ORG, EntityType.SEGMENT, seg.id)
        result = services.ontology.setup_organization(ORG, "devtools")
        assert result.pre_seeded is True
        assert result.segments == 0

    def test_unknown_preset_writes_nothing(self, services, store):
        with pytest.raises(NotFoundError):
            services.ontology.setup_organization(ORG, "banking")
        assert store.count(AUDIT_COLLECTION) == 0

    @pytest.mark.parametrize("preset_id", sorted(PRESETS))
    def test_seeded_tiers_are_ordered_by_price(self, services, preset_id):
        services.ontology.setup_organization(ORG, preset_id)
        tiers = services.ontology.pricing_structure(ORG).tiers
        positions = [t.position for t in tiers]
        prices = [t.price_monthly for t in tiers]
        assert len(set(positions)) == len(positions)
        assert positions == sorted(positions)
        assert prices == sorted(prices)

    def test_myparcel(self, services):
        result = services.ontology.setup_organization("myparcel", "myparcel")
        assert result.segments == 4
        structure = services.ontology.pricing_structure("myparcel")
        assert [t.name for t in structure.tiers] == ["Standaard", "Start", "Plus", "Premium", "Max"]
        assert structure.primary_metric().name == "shipping labels"
        assert structure.model_type == "tiered"
        context = services.ontology.competitive_context("myparcel")
        assert {c.name for c in context.competitors} == {"Sendcloud", "Shippo", "ShipStation"}


class TestRefresh:
    def test_detects_patterns_from_seeded_segments(self, services):
        services.ontology.setup_organization(ORG, "devtools")
        result = services.ontology.refresh_analytics(ORG)
        ids = {p.id for p in result.patterns}
        assert "pat_churn_seg_free_developer" in ids
        assert "pat_anchor_seg_enterprise" in ids
        assert {p.id for p in services.ontology.list_patterns(ORG)} == ids

    def test_refresh_upserts_patterns(self, services, store):
        services.ontology.setup_organization(ORG, "devtools")
        first = services.ontology.refresh_analytics(ORG)
        second = services.ontology.refresh_analytics(ORG)

        assert sorted(p.id for p in second.patterns) == sorted(p.id for p in first.patterns)
        assert len(services.ontology.list_patterns(ORG)) == len(first.patterns)
        updates = services.audit.query(ORG, entity_type="pattern", action="update", limit=0)
        assert len(updates) == len(first.patterns)
        assert all(r.triggered_by == "analytics" for r in updates)

    def test_filter_patterns_by_type(self, services):
        services.ontology.setup_organization(ORG, "devtools")
        services.ontology.refresh_analytics(ORG)
        churn = services.ontology.list_patterns(ORG, "churn_signal")
        assert [p.id for p in churn] == ["pat_churn_seg_free_developer"]

    def test_refresh_from_customers(self, services, make_customer, as_of):
        customers = [make_customer(mrr) for mrr in (4000, 900, 450, 120, 60)]
        customers.append(make_customer(80, churned_days_ago=20))
        services.ontology.customers.load_customers("acme", customers)

        first = services.ontology.refresh_analytics("acme", regenerate=True, as_of=as_of)
        stored = services.ontology.ontology.list("acme", EntityType.SEGMENT)

        assert first.economics.total_customers == 5
        assert first.economics.total_mrr == pytest.approx(5530)
        assert {s.id for s in stored} == {s.id for s in first.segments}

        services.ontology.refresh_analytics("acme", as_of=as_of)
        assert len(services.ontology.ontology.list("acme", EntityType.SEGMENT)) == len(stored)
        created = services.audit.query("acme", entity_type="segment", action="create", limit=0)
        assert len(created) == len(stored)
        assert services.ontology.latest_economics("acme").total_mrr == pytest.approx(5530)

    def test_archiving_a_segment_rebalances_shares(self, services):
        services.ontology.setup_organization(ORG, "devtools")
        first = services.ontology.list_segments(ORG)[0]
        services.ontology.ontology.archive(ORG, EntityType.SEGMENT, first.id)

        services.ontology.refresh_analytics(ORG)

        segments = services.ontology.list_segments(ORG)
        assert len(segments) == 3
        assert sum(s.revenue_share for s in segments) == pytest.approx(1.0, abs=0.01)
        updates = services.audit.query(ORG, entity_type="segment", action="update", limit=0)
        assert {r.entity_id for r in updates} == {s.id for s in segments}
        assert all(r.triggered_by == "analytics" for r in updates)

    def test_correlates_value_metrics(self, services, make_customer, as_of):
        customers = [
            make_customer(100 + 10 * i, expansions=[(100, 100, 100 + 10 * i)], usage={"api calls": float(i)})
            for i in range(40)
        ]
        services.ontology.customers.load_customers("acme", customers)
        services.ontology.ontology.create(
            "acme", EntityType.VALUE_METRIC, ValueMetric(id="vm_api_calls", organization_id="acme", name="api calls")
        )

        result = services.ontology.refresh_analytics("acme", regenerate=True, as_of=as_of)

        [metric] = result.value_metrics
        assert metric.correlation_to_expansion == pytest.approx(1.0)
        stored = services.ontology.ontology.get("acme", EntityType.VALUE_METRIC, "vm_api_calls")
        assert stored.correlation_to_expansion == pytest.approx(1.0)
        [update] = services.audit.query("acme", entity_type="value_metric", action="update", limit=0)
        assert update.triggered_by == "analytics"

        services.ontology.refresh_analytics("acme", as_of=as_of)
        assert len(services.audit.query("acme", entity_type="value_metric", action="update", limit=0)) == 1


class TestInterruptedSetup:
    def test_retry_completes_a_failed_setup(self):
        store = FailOnceStore("pricing_tiers")
        services = build_services(store)

        with pytest.raises(PersistenceError):
            services.ontology.setup_organization(ORG, "devtools")
        assert store.count(SNAPSHOT_COLLECTION) == 0

        retry = services.ontology.setup_organization(ORG, "devtools")
        assert retry.pre_seeded is False
        assert (retry.segments, retry.pricing_tiers, retry.value_metrics, retry.competitors) == (4, 5, 4, 4)
        assert retry.snapshot_version == 1
        assert store.count(AUDIT_COLLECTION) == 17

        assert services.ontology.setup_organization(ORG, "devtools").pre_seeded is True

    def test_retry_must_use_the_same_preset(self):
        services = build_services(FailOnceStore("value_metrics"))
        with pytest.raises(PersistenceError):
            services.ontology.setup_organization(ORG, "devtools")
        with pytest.raises(InvalidInputError):
            services.ontology.setup_organization(ORG, "myparcel")
