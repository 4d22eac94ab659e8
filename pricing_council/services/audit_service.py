"""
Audit Service — records and queries the ontology audit trail.

Appends are best-effort: a failed append is logged, counted and parked in
an outbox instead of failing the primary write that caused it.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Any

from pricing_council.models.enums import AuditAction, EntityType
from pricing_council.models.schemas import OntologyAuditLog
from pricing_council.persistence.document_store import DocumentStore
from pricing_council.utils.hashing import canonical_json

logger = logging.getLogger(__name__)

AUDIT_COLLECTION = "audit_logs"


def diff_fields(previous: dict[str, Any] | None, new: dict[str, Any] | None) -> list[str]:
    """Keys whose serialized values differ between two states (sorted)."""
    previous = previous or {}
    new = new or {}
    changed = []
    for key in set(previous) | set(new):
        if key not in previous or key not in new:
            changed.append(key)
        elif canonical_json(previous[key]) != canonical_json(new[key]):
            changed.append(key)
    return sorted(changed)


class AuditService:
    """Writes OntologyAuditLog rows and answers history queries."""

    def __init__(self, store: DocumentStore):
        self._store = store
        self.failure_count = 0
        self._outbox: list[OntologyAuditLog] = []

    # ── Writes ───────────────────────────────────────────

    def record_change(
        self,
        organization_id: str,
        entity_type: EntityType | str,
        entity_id: str,
        action: AuditAction | str,
        previous_state: dict[str, Any] | None,
        new_state: dict[str, Any] | None,
        triggered_by: str = "user",
        decision_record_id: str | None = None,
        reason: str | None = None,
    ) -> OntologyAuditLog | None:
        """Build the audit row (with field diff) and append it."""
        entry = OntologyAuditLog(
            organization_id=organization_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            previous_state=previous_state,
            new_state=new_state,
            changed_fields=diff_fields(previous_state, new_state),
            triggered_by=triggered_by,
            decision_record_id=decision_record_id,
            reason=reason,
        )
        return self.record(entry)

    def record(self, entry: OntologyAuditLog) -> OntologyAuditLog | None:
        """Append one row. Returns None when the append failed."""
        try:
            self._store.insert(AUDIT_COLLECTION, entry.model_dump())
        except Exception as exc:
            self.failure_count += 1
            self._outbox.append(entry)
            logger.error(
                f"[audit] append failed for {entry.entity_type}:{entry.entity_id} "
                f"({entry.action}); queued for retry ({len(self._outbox)} pending): {exc}"
            )
            return None
        logger.debug(f"[audit] {entry.entity_type}:{entry.entity_id} → {entry.action} {entry.changed_fields}")
        return entry

    @property
    def pending(self) -> list[OntologyAuditLog]:
        return list(self._outbox)

    def flush_outbox(self) -> int:
        """Retry parked appends. Returns how many were written."""
        queued, self._outbox = self._outbox, []
        written = 0
        for entry in queued:
            if self.record(entry) is not None:
                written += 1
        if queued:
            logger.info(f"[audit] outbox flush wrote {written}/{len(queued)} entries")
        return written

    # ── Queries ──────────────────────────────────────────

    def query(
        self,
        organization_id: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[OntologyAuditLog]:
        """Filtered audit rows, newest first."""
        q: dict[str, Any] = {"organization_id": organization_id}
        if entity_type:
            q["entity_type"] = entity_type
        if entity_id:
            q["entity_id"] = entity_id
        if action:
            q["action"] = action
        if since or until:
            window: dict[str, Any] = {}
            if since:
                window["$gte"] = since
            if until:
                window["$lte"] = until
            q["created_at"] = window
        docs = self._store.find(
            AUDIT_COLLECTION, q, sort=[("created_at", -1)], limit=limit, skip=offset
        )
        return [OntologyAuditLog(**d) for d in docs]

    def entity_timeline(
        self, organization_id: str, entity_type: str, entity_id: str
    ) -> list[OntologyAuditLog]:
        """Full history of one entity, oldest first."""
        docs = self._store.find(
            AUDIT_COLLECTION,
            {"organization_id": organization_id, "entity_type": entity_type, "entity_id": entity_id},
            sort=[("created_at", 1)],
        )
        return [OntologyAuditLog(**d) for d in docs]

    def changes_by_decision(self, organization_id: str, decision_record_id: str) -> list[OntologyAuditLog]:
        """Everything a decision changed, oldest first."""
        docs = self._store.find(
            AUDIT_COLLECTION,
            {"organization_id": organization_id, "decision_record_id": decision_record_id},
            sort=[("created_at", 1)],
        )
        return [OntologyAuditLog(**d) for d in docs]

    def change_stats(self, organization_id: str) -> dict[str, Any]:
        docs = self._store.find(AUDIT_COLLECTION, {"organization_id": organization_id})
        return {
            "total": len(docs),
            "by_entity_type": dict(Counter(d["entity_type"] for d in docs)),
            "by_action": dict(Counter(d["action"] for d in docs)),
            "failed_appends": self.failure_count,
            "pending_appends": len(self._outbox),
        }
