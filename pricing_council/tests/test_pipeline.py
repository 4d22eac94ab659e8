"""
Tests: Analysis graph end-to-end.

Run with:
    pytest pricing_council/tests/test_pipeline.py -v
"""

import pytest

from pricing_council.models.enums import EntityType
from pricing_council.orchestration.council import rank_evaluations
from pricing_council.orchestration.graph import ARCHIVED_MESSAGE, NO_DATA_MESSAGE
from pricing_council.orchestration.transitions import route_after_load, route_after_options
from pricing_council.persistence.snapshot_repository import SNAPSHOT_COLLECTION
from pricing_council.services.audit_service import AUDIT_COLLECTION

ORG = "streamapi"


@pytest.fixture
def seeded(services):
    services.ontology.setup_organization(ORG, "devtools")
    return services


class TestRouting:
    def test_no_segments_ends_early(self):
        assert route_after_load({"segments": []}) == "end_no_data"
        assert route_after_load({"segments": [{"is_active": False}]}) == "end_no_data"
        assert route_after_load({"segments": [{"is_active": True}]}) == "compute_economics"

    def test_no_options_skips_council(self):
        assert route_after_options({"options": []}) == "select_recommendation"
        assert route_after_options({"options": [{"id": "opt_x"}]}) == "council_evaluation"


class TestEmptyOrganization:
    def test_reports_not_found(self, services):
        result = services.ontology.analyze("nobody")
        assert result.success is False
        assert result.error.kind == "not_found"
        assert result.error.message == NO_DATA_MESSAGE
        assert result.options == []
        assert result.recommended_option is None

    def test_all_archived_is_told_apart_from_never_set_up(self, seeded):
        repo = seeded.ontology.ontology
        for segment in repo.list(ORG, EntityType.SEGMENT):
            repo.archive(ORG, EntityType.SEGMENT, segment.id)

        result = seeded.ontology.analyze(ORG)

        assert result.success is False
        assert result.error.kind == "not_found"
        assert result.error.message == ARCHIVED_MESSAGE


class TestSeededAnalysis:
    def test_produces_evaluated_options(self, seeded):
        result = seeded.ontology.analyze(ORG)
        assert result.success is True
        assert 3 <= len(result.options) <= 5
        assert len(result.evaluations) == len(result.options)
        for evaluation in result.evaluations:
            assert {v.perspective for v in evaluation.views} == {"finance", "growth", "product", "strategy"}

    def test_recommends_the_top_ranked_option(self, seeded):
        result = seeded.ontology.analyze(ORG)
        top = rank_evaluations(result.evaluations, result.options)[0]
        assert result.recommended_option.id == top.option_id

    def test_uses_stored_economics(self, seeded):
        result = seeded.ontology.analyze(ORG)
        stored = seeded.ontology.latest_economics(ORG)
        assert result.economics.id == stored.id
        assert result.economics.total_customers == sum(s.customer_count for s in result.segments)

    def test_is_deterministic(self, seeded):
        first = seeded.ontology.analyze(ORG)
        second = seeded.ontology.analyze(ORG)
        assert [o.id for o in first.options] == [o.id for o in second.options]
        assert first.recommended_option.id == second.recommended_option.id

    def test_writes_nothing(self, seeded, store):
        audit_before = store.count(AUDIT_COLLECTION)
        snapshots_before = store.count(SNAPSHOT_COLLECTION)
        seeded.ontology.analyze(ORG)
        assert store.count(AUDIT_COLLECTION) == audit_before
        assert store.count(SNAPSHOT_COLLECTION) == snapshots_before


class TestCustomerBackedAnalysis:
    def test_segments_customers_live(self, services, make_customer):
        repo = services.ontology.ontology
        repo.create(ORG, EntityType.SEGMENT, {"name": "Enterprise", "criteria": {"mrr_min": 1000}})
        repo.create(ORG, EntityType.SEGMENT, {"name": "SMB", "criteria": {"mrr_min": 0, "mrr_max": 1000}})
        repo.create(ORG, EntityType.PRICING_TIER, {"name": "Starter", "price_monthly": 49, "position": 1})
        repo.create(ORG, EntityType.PRICING_TIER, {"name": "Scale", "price_monthly": 1999, "position": 2})
        customers = [make_customer(mrr, organization_id=ORG) for mrr in (5000, 2500, 300, 200, 100)]
        customers.append(make_customer(150, organization_id=ORG, churned_days_ago=30))
        services.ontology.customers.load_customers(ORG, customers)

        result = services.ontology.analyze(ORG)

        assert result.success is True
        assert result.economics.total_customers == 5
        assert result.economics.total_mrr == pytest.approx(8100)
        counts = {s.name: s.customer_count for s in result.segments}
        assert counts["Enterprise"] == 2
        assert result.options
