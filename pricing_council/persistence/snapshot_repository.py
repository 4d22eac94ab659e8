"""
Snapshot Repository — versioned, immutable captures of the whole ontology.

Each snapshot gets the next version from an atomic per-organization counter,
so versions are strictly increasing and never reused, even with
concurrent creators.
"""

from __future__ import annotations

import logging
from typing import Any

from pricing_council.errors import NotFoundError
from pricing_council.models.enums import EntityType
from pricing_council.models.schemas import OntologySnapshot, PricingOption
from pricing_council.persistence.document_store import DocumentStore
from pricing_council.persistence.economics_repository import EconomicsRepository
from pricing_council.persistence.ontology_repository import IMMUTABLE_FIELDS, OntologyRepository
from pricing_council.utils.hashing import content_hash

logger = logging.getLogger(__name__)

SNAPSHOT_COLLECTION = "ontology_snapshots"

# Snapshot field → entity kind
SNAPSHOT_SECTIONS: dict[str, EntityType] = {
    "segments": EntityType.SEGMENT,
    "pricing_tiers": EntityType.PRICING_TIER,
    "value_metrics": EntityType.VALUE_METRIC,
    "patterns": EntityType.PATTERN,
    "competitors": EntityType.COMPETITOR,
}


class SnapshotRepository:
    def __init__(
        self,
        store: DocumentStore,
        ontology: OntologyRepository,
        economics: EconomicsRepository,
    ):
        self._store = store
        self._ontology = ontology
        self._economics = economics

    # ── Capture ──────────────────────────────────────────

    def current_ontology(self, organization_id: str) -> dict[str, Any]:
        """Serialize every active entity plus the latest economics."""
        content: dict[str, Any] = {}
        for section, entity_type in SNAPSHOT_SECTIONS.items():
            content[section] = [
                e.model_dump(mode="json") for e in self._ontology.list(organization_id, entity_type)
            ]
        latest = self._economics.latest(organization_id)
        content["economics"] = latest.model_dump(mode="json") if latest else None
        return content

    def create_snapshot(
        self,
        organization_id: str,
        triggered_by: str = "manual",
        description: str = "",
        trigger_details: dict[str, Any] | None = None,
        options: list[PricingOption] | None = None,
    ) -> OntologySnapshot:
        content = self.current_ontology(organization_id)
        option_dicts = [o.model_dump(mode="json") for o in options or []]
        version = self._store.next_sequence(f"snapshot_version:{organization_id}")

        snapshot = OntologySnapshot(
            organization_id=organization_id,
            version=version,
            description=description or f"Snapshot v{version}",
            triggered_by=triggered_by,
            trigger_details=trigger_details or {},
            options=option_dicts,
            content_hash=content_hash({**content, "options": option_dicts}),
            **content,
        )
        self._store.insert(SNAPSHOT_COLLECTION, snapshot.model_dump())
        logger.info(
            f"[snapshot] v{version} for {organization_id} ({triggered_by}): "
            f"{len(snapshot.segments)} segments, {len(snapshot.pricing_tiers)} tiers"
        )
        return snapshot

    # ── Reads ────────────────────────────────────────────

    def list_snapshots(self, organization_id: str, limit: int = 50) -> list[OntologySnapshot]:
        """Newest first."""
        docs = self._store.find(
            SNAPSHOT_COLLECTION,
            {"organization_id": organization_id},
            sort=[("version", -1)],
            limit=limit,
        )
        return [OntologySnapshot(**d) for d in docs]

    def get_snapshot(self, organization_id: str, snapshot_id: str) -> OntologySnapshot:
        doc = self._store.find_one(
            SNAPSHOT_COLLECTION, {"organization_id": organization_id, "id": snapshot_id}
        )
        if doc is None:
            raise NotFoundError(f"Snapshot '{snapshot_id}' not found")
        return OntologySnapshot(**doc)

    def get_by_version(self, organization_id: str, version: int) -> OntologySnapshot:
        doc = self._store.find_one(
            SNAPSHOT_COLLECTION, {"organization_id": organization_id, "version": version}
        )
        if doc is None:
            raise NotFoundError(f"Snapshot v{version} not found for {organization_id}")
        return OntologySnapshot(**doc)

    def latest(self, organization_id: str) -> OntologySnapshot | None:
        snapshots = self.list_snapshots(organization_id, limit=1)
        return snapshots[0] if snapshots else None

    # ── Restore ──────────────────────────────────────────

    def restore(
        self,
        organization_id: str,
        snapshot_id: str,
        triggered_by: str = "restore",
    ) -> OntologySnapshot:
        """
        Make the snapshot's entities the active ontology again.

        Active entities absent from the snapshot are archived; entities in
        the snapshot are re-activated with their captured state (or created
        when they no longer exist). Every change goes through the audited
        repository. A new snapshot records the result.
        """
        source = self.get_snapshot(organization_id, snapshot_id)
        reason = f"Restoring snapshot v{source.version}"

        for section, entity_type in SNAPSHOT_SECTIONS.items():
            captured = {e["id"]: e for e in getattr(source, section)}

            for entity in self._ontology.list(organization_id, entity_type):
                if entity.id not in captured:
                    self._ontology.archive(
                        organization_id, entity_type, entity.id,
                        triggered_by=triggered_by, reason=reason,
                    )

            for entity_id, state in captured.items():
                if self._ontology.exists(organization_id, entity_type, entity_id):
                    changes = {k: v for k, v in state.items() if k not in IMMUTABLE_FIELDS}
                    changes["is_active"] = True
                    self._ontology.update(
                        organization_id, entity_type, entity_id, changes,
                        triggered_by=triggered_by, reason=reason,
                    )
                else:
                    self._ontology.create(
                        organization_id, entity_type, {**state, "is_active": True},
                        triggered_by=triggered_by, reason=reason,
                    )

        logger.info(f"[snapshot] restored v{source.version} for {organization_id}")
        return self.create_snapshot(
            organization_id,
            triggered_by=triggered_by,
            description=f"Restored from snapshot v{source.version}",
            trigger_details={"restored_snapshot_id": source.id, "restored_version": source.version},
        )
