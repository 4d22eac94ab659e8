"""
Ontology Repository — one audited CRUD implementation for every entity kind
(segments, pricing tiers, value metrics, patterns, competitors).

Each write follows the same contract:
  1. read the current state
  2. perform the write
  3. diff previous vs new state
  4. append an audit row (best-effort, see AuditService)

Only validation differs per kind; see ENTITY_SPECS.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ValidationError

from pricing_council.errors import InvalidInputError, NotFoundError
from pricing_council.models.enums import AuditAction, EntityType
from pricing_council.models.schemas import (
    Competitor,
    Pattern,
    PricingTier,
    Segment,
    ValueMetric,
)
from pricing_council.persistence.document_store import DocumentStore

if TYPE_CHECKING:
    from pricing_council.services.audit_service import AuditService

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = frozenset({"id", "organization_id", "created_at"})

Validator = Callable[["OntologyRepository", str, BaseModel], None]


@dataclass(frozen=True)
class EntitySpec:
    entity_type: EntityType
    collection: str
    model: type[BaseModel]
    deletable: bool = True
    validate: Validator | None = None


# ── Per-kind validation ──────────────────────────────────

def _validate_tier(repo: "OntologyRepository", organization_id: str, tier: BaseModel) -> None:
    # One active tier per name within an organization
    for other in repo.list(organization_id, EntityType.PRICING_TIER):
        if other.id != tier.id and other.name.lower() == tier.name.lower() and tier.is_active:
            raise InvalidInputError(f"Pricing tier '{tier.name}' already exists")


def _validate_competitor(repo: "OntologyRepository", organization_id: str, comp: BaseModel) -> None:
    if comp.price_low is not None and comp.price_high is not None and comp.price_low > comp.price_high:
        raise InvalidInputError(
            f"Competitor '{comp.name}' price_low {comp.price_low} exceeds price_high {comp.price_high}"
        )


def _validate_named(repo: "OntologyRepository", organization_id: str, entity: BaseModel) -> None:
    if not entity.name.strip():
        raise InvalidInputError(f"{type(entity).__name__} name is required")


ENTITY_SPECS: dict[EntityType, EntitySpec] = {
    EntityType.SEGMENT: EntitySpec(
        EntityType.SEGMENT, "segments", Segment, deletable=False, validate=_validate_named
    ),
    EntityType.PRICING_TIER: EntitySpec(
        EntityType.PRICING_TIER, "pricing_tiers", PricingTier, validate=_validate_tier
    ),
    EntityType.VALUE_METRIC: EntitySpec(
        EntityType.VALUE_METRIC, "value_metrics", ValueMetric, validate=_validate_named
    ),
    EntityType.PATTERN: EntitySpec(
        EntityType.PATTERN, "patterns", Pattern, validate=_validate_named
    ),
    EntityType.COMPETITOR: EntitySpec(
        EntityType.COMPETITOR, "competitors", Competitor, validate=_validate_competitor
    ),
}


def get_spec(entity_type: EntityType | str) -> EntitySpec:
    try:
        return ENTITY_SPECS[EntityType(entity_type)]
    except ValueError:
        raise InvalidInputError(f"Unknown entity type '{entity_type}'") from None


class OntologyRepository:
    """Audited create/update/archive/delete for all ontology entity kinds."""

    def __init__(self, store: DocumentStore, audit: AuditService):
        self._store = store
        self._audit = audit

    # ── Reads ────────────────────────────────────────────

    def list(
        self,
        organization_id: str,
        entity_type: EntityType | str,
        active_only: bool = True,
    ) -> list[Any]:
        spec = get_spec(entity_type)
        query: dict[str, Any] = {"organization_id": organization_id}
        if active_only:
            query["is_active"] = True
        sort = [("position", 1)] if spec.entity_type == EntityType.PRICING_TIER else [("created_at", 1)]
        return [spec.model(**doc) for doc in self._store.find(spec.collection, query, sort=sort)]

    def get(self, organization_id: str, entity_type: EntityType | str, entity_id: str) -> Any:
        spec = get_spec(entity_type)
        doc = self._store.find_one(spec.collection, {"organization_id": organization_id, "id": entity_id})
        if doc is None:
            raise NotFoundError(f"{spec.entity_type.value} '{entity_id}' not found")
        return spec.model(**doc)

    def exists(self, organization_id: str, entity_type: EntityType | str, entity_id: str) -> bool:
        spec = get_spec(entity_type)
        return self._store.count(spec.collection, {"organization_id": organization_id, "id": entity_id}) > 0

    def count(self, organization_id: str, entity_type: EntityType | str, active_only: bool = True) -> int:
        spec = get_spec(entity_type)
        query: dict[str, Any] = {"organization_id": organization_id}
        if active_only:
            query["is_active"] = True
        return self._store.count(spec.collection, query)

    # ── Writes ───────────────────────────────────────────

    def create(
        self,
        organization_id: str,
        entity_type: EntityType | str,
        data: dict[str, Any] | BaseModel,
        triggered_by: str = "user",
        decision_record_id: str | None = None,
        reason: str | None = None,
    ) -> Any:
        spec = get_spec(entity_type)
        payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)
        if payload.get("organization_id", organization_id) != organization_id:
            raise InvalidInputError("Entity belongs to a different organization")
        payload["organization_id"] = organization_id
        entity = self._build(spec, payload)
        if payload.get("id") and self.exists(organization_id, spec.entity_type, entity.id):
            raise InvalidInputError(f"{spec.entity_type.value} '{entity.id}' already exists")
        if spec.validate:
            spec.validate(self, organization_id, entity)

        self._store.insert(spec.collection, entity.model_dump())
        logger.info(f"[ontology] created {spec.entity_type.value} {entity.id} for {organization_id}")

        self._audit.record_change(
            organization_id,
            spec.entity_type,
            entity.id,
            AuditAction.CREATE,
            previous_state=None,
            new_state=entity.model_dump(mode="json"),
            triggered_by=triggered_by,
            decision_record_id=decision_record_id,
            reason=reason,
        )
        return entity

    def update(
        self,
        organization_id: str,
        entity_type: EntityType | str,
        entity_id: str,
        changes: dict[str, Any],
        triggered_by: str = "user",
        decision_record_id: str | None = None,
        reason: str | None = None,
        action: AuditAction = AuditAction.UPDATE,
    ) -> Any:
        spec = get_spec(entity_type)
        blocked = IMMUTABLE_FIELDS & set(changes)
        if blocked:
            raise InvalidInputError(f"Fields cannot be changed: {sorted(blocked)}")
        unknown = set(changes) - set(spec.model.model_fields)
        if unknown:
            raise InvalidInputError(f"Unknown fields for {spec.entity_type.value}: {sorted(unknown)}")

        current = self.get(organization_id, spec.entity_type, entity_id)
        merged = {**current.model_dump(), **changes}
        candidate = self._build(spec, merged)
        if spec.validate:
            spec.validate(self, organization_id, candidate)

        doc = self._store.update(
            spec.collection,
            {"organization_id": organization_id, "id": entity_id},
            {k: v for k, v in candidate.model_dump().items() if k not in IMMUTABLE_FIELDS},
        )
        if doc is None:
            raise NotFoundError(f"{spec.entity_type.value} '{entity_id}' disappeared during update")
        updated = spec.model(**doc)
        logger.info(f"[ontology] {action.value} {spec.entity_type.value} {entity_id}")

        self._audit.record_change(
            organization_id,
            spec.entity_type,
            entity_id,
            action,
            previous_state=current.model_dump(mode="json"),
            new_state=updated.model_dump(mode="json"),
            triggered_by=triggered_by,
            decision_record_id=decision_record_id,
            reason=reason,
        )
        return updated

    def archive(
        self,
        organization_id: str,
        entity_type: EntityType | str,
        entity_id: str,
        triggered_by: str = "user",
        decision_record_id: str | None = None,
        reason: str | None = None,
    ) -> Any:
        """Deactivate an entity; the row and its history are kept."""
        return self.update(
            organization_id,
            entity_type,
            entity_id,
            {"is_active": False},
            triggered_by=triggered_by,
            decision_record_id=decision_record_id,
            reason=reason,
            action=AuditAction.ARCHIVE,
        )

    def delete(
        self,
        organization_id: str,
        entity_type: EntityType | str,
        entity_id: str,
        triggered_by: str = "user",
        decision_record_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        spec = get_spec(entity_type)
        if not spec.deletable:
            raise InvalidInputError(
                f"{spec.entity_type.value} entities cannot be deleted; archive them instead"
            )
        current = self.get(organization_id, spec.entity_type, entity_id)
        self._store.delete(spec.collection, {"organization_id": organization_id, "id": entity_id})
        logger.info(f"[ontology] deleted {spec.entity_type.value} {entity_id}")

        self._audit.record_change(
            organization_id,
            spec.entity_type,
            entity_id,
            AuditAction.DELETE,
            previous_state=current.model_dump(mode="json"),
            new_state=None,
            triggered_by=triggered_by,
            decision_record_id=decision_record_id,
            reason=reason,
        )

    # ── Helpers ──────────────────────────────────────────

    @staticmethod
    def _build(spec: EntitySpec, payload: dict[str, Any]) -> Any:
        try:
            return spec.model(**payload)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid {spec.entity_type.value}: {e.errors()[0]['msg']}") from e
