"""
Tests: Ontology repository, snapshots and the document store.

Run with:
    pytest pricing_council/tests/test_persistence.py -v
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from pricing_council.errors import InvalidInputError, NotFoundError
from pricing_council.models.enums import EntityType
from pricing_council.services.audit_service import AUDIT_COLLECTION

ORG = "acme"


@pytest.fixture
def repo(services):
    return services.ontology.ontology


@pytest.fixture
def snapshots(services):
    return services.ontology.snapshots


def _segment(repo, name="Enterprise", **fields):
    return repo.create(ORG, EntityType.SEGMENT, {"name": name, "churn_rate": 0.02, **fields})


class TestAuditedWrites:
    def test_create_writes_full_state_audit(self, repo, services):
        seg = _segment(repo)
        [row] = services.audit.query(ORG, entity_id=seg.id)
        stored = repo.get(ORG, EntityType.SEGMENT, seg.id)
        assert row.action == "create"
        assert row.previous_state is None
        assert row.new_state == stored.model_dump(mode="json")
        assert row.changed_fields == sorted(row.new_state)

    def test_update_records_only_changed_fields(self, repo, services):
        seg = _segment(repo)
        updated = repo.update(ORG, EntityType.SEGMENT, seg.id, {"churn_rate": 0.05}, reason="Q3 review")
        assert updated.churn_rate == 0.05
        row = services.audit.query(ORG, entity_id=seg.id, action="update")[0]
        assert row.changed_fields == ["churn_rate"]
        assert row.previous_state["churn_rate"] == 0.02
        assert row.new_state["churn_rate"] == 0.05
        assert row.reason == "Q3 review"

    def test_noop_update_has_empty_diff(self, repo, services):
        seg = _segment(repo)
        repo.update(ORG, EntityType.SEGMENT, seg.id, {"churn_rate": 0.02})
        row = services.audit.query(ORG, entity_id=seg.id, action="update")[0]
        assert row.changed_fields == []

    @pytest.mark.parametrize("changes", [{"id": "seg_other"}, {"organization_id": "evil"}, {"colour": "red"}])
    def test_rejected_update_writes_nothing(self, repo, store, changes):
        seg = _segment(repo)
        before = store.count(AUDIT_COLLECTION)
        with pytest.raises(InvalidInputError):
            repo.update(ORG, EntityType.SEGMENT, seg.id, changes)
        assert store.count(AUDIT_COLLECTION) == before
        assert repo.get(ORG, EntityType.SEGMENT, seg.id) == seg

    def test_invalid_value_is_invalid_input(self, repo):
        seg = _segment(repo)
        with pytest.raises(InvalidInputError):
            repo.update(ORG, EntityType.SEGMENT, seg.id, {"churn_rate": 1.5})

    def test_missing_entity(self, repo):
        with pytest.raises(NotFoundError):
            repo.get(ORG, EntityType.SEGMENT, "seg_missing")
        with pytest.raises(NotFoundError):
            repo.update(ORG, EntityType.SEGMENT, "seg_missing", {"churn_rate": 0.1})

    def test_unknown_entity_type(self, repo):
        with pytest.raises(InvalidInputError):
            repo.list(ORG, "planet")

    def test_organizations_are_isolated(self, repo):
        seg = _segment(repo)
        with pytest.raises(NotFoundError):
            repo.get("globex", EntityType.SEGMENT, seg.id)
        assert repo.list("globex", EntityType.SEGMENT) == []


class TestSegmentsAreArchivedNotDeleted:
    def test_delete_is_refused(self, repo, store):
        seg = _segment(repo)
        before = store.count(AUDIT_COLLECTION)
        with pytest.raises(InvalidInputError):
            repo.delete(ORG, EntityType.SEGMENT, seg.id)
        assert repo.exists(ORG, EntityType.SEGMENT, seg.id)
        assert store.count(AUDIT_COLLECTION) == before

    def test_archive_hides_from_active_list(self, repo, services):
        seg = _segment(repo)
        repo.archive(ORG, EntityType.SEGMENT, seg.id, reason="merged")
        assert repo.list(ORG, EntityType.SEGMENT) == []
        assert [s.id for s in repo.list(ORG, EntityType.SEGMENT, active_only=False)] == [seg.id]
        row = services.audit.query(ORG, entity_id=seg.id, action="archive")[0]
        assert row.changed_fields == ["is_active"]

    def test_tier_delete_is_audited(self, repo, services):
        tier = repo.create(ORG, EntityType.PRICING_TIER, {"name": "Pro", "price_monthly": 99, "position": 2})
        repo.delete(ORG, EntityType.PRICING_TIER, tier.id)
        assert not repo.exists(ORG, EntityType.PRICING_TIER, tier.id)
        row = services.audit.query(ORG, entity_id=tier.id, action="delete")[0]
        assert row.new_state is None
        assert row.previous_state["name"] == "Pro"


class TestKindValidation:
    def test_duplicate_tier_name(self, repo):
        repo.create(ORG, EntityType.PRICING_TIER, {"name": "Pro", "price_monthly": 99, "position": 2})
        with pytest.raises(InvalidInputError):
            repo.create(ORG, EntityType.PRICING_TIER, {"name": "pro", "price_monthly": 79, "position": 3})

    def test_competitor_price_range(self, repo):
        with pytest.raises(InvalidInputError):
            repo.create(ORG, EntityType.COMPETITOR, {"name": "Rival", "price_low": 500, "price_high": 100})

    def test_limit_must_be_number_or_unlimited(self, repo):
        with pytest.raises(InvalidInputError):
            repo.create(ORG, EntityType.PRICING_TIER, {
                "name": "Max", "price_monthly": 999, "position": 4,
                "value_metric_limits": {"seats": "lots"},
            })

    def test_duplicate_id(self, repo):
        _segment(repo, id="seg_ent")
        with pytest.raises(InvalidInputError):
            _segment(repo, name="Other", id="seg_ent")

    def test_blank_name(self, repo):
        with pytest.raises(InvalidInputError):
            _segment(repo, name="  ")


class TestSnapshots:
    def test_versions_increase_per_organization(self, snapshots):
        versions = [snapshots.create_snapshot(ORG).version for _ in range(3)]
        assert versions == [1, 2, 3]
        assert snapshots.create_snapshot("globex").version == 1

    def test_concurrent_versions_are_unique(self, snapshots):
        with ThreadPoolExecutor(max_workers=8) as pool:
            versions = list(pool.map(lambda _: snapshots.create_snapshot(ORG).version, range(20)))
        assert sorted(versions) == list(range(1, 21))

    def test_snapshot_captures_active_entities(self, repo, snapshots):
        kept = _segment(repo)
        gone = _segment(repo, name="Legacy")
        repo.archive(ORG, EntityType.SEGMENT, gone.id)
        snap = snapshots.create_snapshot(ORG, description="before launch")
        assert [s["id"] for s in snap.segments] == [kept.id]
        assert snap.description == "before launch"
        assert snap.content_hash

    def test_snapshot_is_frozen_against_later_changes(self, repo, snapshots):
        seg = _segment(repo)
        snap = snapshots.create_snapshot(ORG)
        repo.update(ORG, EntityType.SEGMENT, seg.id, {"churn_rate": 0.2})
        assert snapshots.get_snapshot(ORG, snap.id).segments[0]["churn_rate"] == 0.02

    def test_latest_and_lookup(self, snapshots):
        assert snapshots.latest(ORG) is None
        snapshots.create_snapshot(ORG)
        second = snapshots.create_snapshot(ORG)
        assert snapshots.latest(ORG).id == second.id
        assert snapshots.get_by_version(ORG, 2).id == second.id
        with pytest.raises(NotFoundError):
            snapshots.get_by_version(ORG, 9)
        with pytest.raises(NotFoundError):
            snapshots.get_snapshot("globex", second.id)

    def test_restore(self, repo, snapshots, services):
        seg = _segment(repo)
        v1 = snapshots.create_snapshot(ORG)
        repo.update(ORG, EntityType.SEGMENT, seg.id, {"churn_rate": 0.3})
        extra = _segment(repo, name="Experiment")
        snapshots.create_snapshot(ORG)

        restored = snapshots.restore(ORG, v1.id)

        assert restored.version == 3
        assert restored.description == "Restored from snapshot v1"
        assert restored.triggered_by == "restore"
        active = repo.list(ORG, EntityType.SEGMENT)
        assert [s.id for s in active] == [seg.id]
        assert active[0].churn_rate == 0.02
        assert not repo.get(ORG, EntityType.SEGMENT, extra.id).is_active
        archived = services.audit.query(ORG, entity_id=extra.id, action="archive")
        assert archived[0].triggered_by == "restore"


class TestDocumentStore:
    def test_operators(self, store):
        for n in range(5):
            store.insert("things", {"n": n, "tag": "even" if n % 2 == 0 else "odd"})
        assert store.count("things", {"n": {"$gte": 3}}) == 2
        assert store.count("things", {"n": {"$gt": 1, "$lt": 4}}) == 2
        assert store.count("things", {"tag": {"$in": ["odd"]}}) == 2
        assert store.count("things", {"tag": {"$ne": "odd"}}) == 3
        assert [d["n"] for d in store.find("things", sort=[("n", -1)], limit=2, skip=1)] == [3, 2]

    def test_reads_are_copies(self, store):
        store.insert("things", {"tags": ["a"]})
        doc = store.find_one("things", {})
        doc["tags"].append("b")
        assert store.find_one("things", {})["tags"] == ["a"]

    def test_conditional_update(self, store):
        store.insert("things", {"id": "x", "outcome": None})
        assert store.update("things", {"id": "x", "outcome": None}, {"outcome": 1}) is not None
        assert store.update("things", {"id": "x", "outcome": None}, {"outcome": 2}) is None
        assert store.find_one("things", {"id": "x"})["outcome"] == 1
