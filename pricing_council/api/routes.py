"""
API routes — thin HTTP layer that delegates to the services.

Routes:
  GET   /health                                  → API health check
  POST  /api/company/setup                       → Seed an organization from a preset (idempotent)
  GET   /api/ontology                            → Current active ontology
  GET   /api/ontology/segments                   → List segments
  POST  /api/ontology/segments                   → Create a segment
  PATCH /api/ontology/segments/{id}              → Update a segment
  POST  /api/ontology/segments/{id}/archive      → Archive a segment
  GET   /api/ontology/tiers                      → List pricing tiers
  POST  /api/ontology/tiers                      → Create a pricing tier
  PATCH /api/ontology/tiers/{id}                 → Update a pricing tier
  GET   /api/ontology/snapshots                  → List snapshots (newest first)
  POST  /api/ontology/snapshots                  → Take a snapshot
  GET   /api/ontology/snapshots/{id}             → One snapshot
  POST  /api/ontology/snapshots/{id}/restore     → Restore a snapshot
  *     /api/ontology/entities/{type}[/{id}]     → Generic CRUD for any entity kind
  GET   /api/analytics/segments|economics|patterns|health
  POST  /api/analytics/refresh                   → Recompute and persist analytics
  POST  /api/pricing/analyze                     → Run the pricing council analysis
  GET   /api/audit, /api/audit/stats, /api/audit/entity/{type}/{id}, /api/audit/decision/{id}
  GET   /api/decisions, POST /api/decisions, GET /api/decisions/stats
  GET   /api/decisions/{id}, POST /api/decisions/{id}/outcome

Every route takes the organization explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pricing_council.api.dependencies import Services, ServicesDep
from pricing_council.config import get_settings
from pricing_council.models.enums import EntityType, ErrorKind
from pricing_council.models.schemas import PricingOption

logger = logging.getLogger(__name__)

# ── Routers ──────────────────────────────────────────────
health_router = APIRouter()
company_router = APIRouter()
ontology_router = APIRouter()
analytics_router = APIRouter()
pricing_router = APIRouter()
audit_router = APIRouter()
decisions_router = APIRouter()

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND.value: 404,
    ErrorKind.INVALID_INPUT.value: 400,
    ErrorKind.COMPUTATION_DEGENERATE.value: 422,
    ErrorKind.PERSISTENCE_FAILURE.value: 500,
    ErrorKind.AUDIT_FAILURE.value: 500,
}

OrgId = Annotated[str, Query(min_length=1, description="Organization the request is scoped to")]


def error_response(kind: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(kind, 500),
        content={"success": False, "error": {"kind": kind, "message": message}},
    )


def _write_options(services: Services, organization_id: str, req: Any) -> dict[str, Any]:
    """Audit attribution for an ontology write; a cited decision must exist in the organization."""
    if req.decision_record_id:
        services.decisions.get_decision(organization_id, req.decision_record_id)
    return {
        "triggered_by": req.triggered_by,
        "reason": req.reason,
        "decision_record_id": req.decision_record_id,
    }


# ── Request schemas ──────────────────────────────────────

class SetupRequest(BaseModel):
    organization_id: str
    preset: str = "devtools"


class EntityCreateRequest(BaseModel):
    data: dict[str, Any]
    reason: Optional[str] = None
    triggered_by: str = "user"
    decision_record_id: Optional[str] = None


class EntityUpdateRequest(BaseModel):
    changes: dict[str, Any]
    reason: Optional[str] = None
    triggered_by: str = "user"
    decision_record_id: Optional[str] = None


class ArchiveRequest(BaseModel):
    reason: Optional[str] = None
    triggered_by: str = "user"
    decision_record_id: Optional[str] = None


class SnapshotRequest(BaseModel):
    description: str = ""
    triggered_by: str = "manual"


class RefreshRequest(BaseModel):
    regenerate: bool = False


class DecisionRequest(BaseModel):
    question: str
    options_considered: list[str]
    reasoning: str
    chosen_option_id: Optional[str] = None
    options: list[PricingOption] = []
    decided_by: str = "user"
    context: dict[str, Any] = {}
    decision_confidence: Optional[float] = None


class OutcomeRequest(BaseModel):
    actual_arr_change: float
    actual_churn_change: Optional[float] = None
    learnings: str = ""


# ── Health ───────────────────────────────────────────────

@health_router.get("/health")
async def health_check():
    settings = get_settings()
    return {
        "status": "ok",
        "app": settings.app_name,
        "storage": settings.storage_backend,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Company setup ────────────────────────────────────────

@company_router.post("/setup")
def setup_company(req: SetupRequest, services: ServicesDep):
    result = services.ontology.setup_organization(req.organization_id, req.preset)
    return {"success": True, **result.model_dump()}


# ── Ontology ─────────────────────────────────────────────

@ontology_router.get("")
def get_ontology(services: ServicesDep, organization_id: OrgId):
    return services.ontology.current_ontology(organization_id)


@ontology_router.get("/segments")
def list_segments(
    services: ServicesDep,
    organization_id: OrgId,
    include_archived: bool = False,
):
    return services.ontology.ontology.list(
        organization_id, EntityType.SEGMENT, active_only=not include_archived
    )


@ontology_router.post("/segments", status_code=201)
def create_segment(req: EntityCreateRequest, services: ServicesDep, organization_id: OrgId):
    return services.ontology.ontology.create(
        organization_id, EntityType.SEGMENT, req.data,
        **_write_options(services, organization_id, req),
    )


@ontology_router.patch("/segments/{segment_id}")
def update_segment(
    segment_id: str,
    req: EntityUpdateRequest,
    services: ServicesDep,
    organization_id: OrgId,
):
    return services.ontology.ontology.update(
        organization_id, EntityType.SEGMENT, segment_id, req.changes,
        **_write_options(services, organization_id, req),
    )


@ontology_router.post("/segments/{segment_id}/archive")
def archive_segment(
    segment_id: str,
    services: ServicesDep,
    organization_id: OrgId,
    req: Optional[ArchiveRequest] = None,
):
    req = req or ArchiveRequest()
    return services.ontology.ontology.archive(
        organization_id, EntityType.SEGMENT, segment_id,
        **_write_options(services, organization_id, req),
    )


@ontology_router.get("/tiers")
def list_tiers(services: ServicesDep, organization_id: OrgId):
    return services.ontology.ontology.list(organization_id, EntityType.PRICING_TIER)


@ontology_router.post("/tiers", status_code=201)
def create_tier(req: EntityCreateRequest, services: ServicesDep, organization_id: OrgId):
    return services.ontology.ontology.create(
        organization_id, EntityType.PRICING_TIER, req.data,
        **_write_options(services, organization_id, req),
    )


@ontology_router.patch("/tiers/{tier_id}")
def update_tier(
    tier_id: str,
    req: EntityUpdateRequest,
    services: ServicesDep,
    organization_id: OrgId,
):
    return services.ontology.ontology.update(
        organization_id, EntityType.PRICING_TIER, tier_id, req.changes,
        **_write_options(services, organization_id, req),
    )


@ontology_router.get("/snapshots")
def list_snapshots(services: ServicesDep, organization_id: OrgId, limit: int = 50):
    snapshots = services.ontology.snapshots.list_snapshots(organization_id, limit=limit)
    return [
        {
            "id": s.id,
            "version": s.version,
            "description": s.description,
            "triggered_by": s.triggered_by,
            "content_hash": s.content_hash,
            "created_at": s.created_at,
        }
        for s in snapshots
    ]


@ontology_router.post("/snapshots", status_code=201)
def create_snapshot(req: SnapshotRequest, services: ServicesDep, organization_id: OrgId):
    return services.ontology.snapshots.create_snapshot(
        organization_id, triggered_by=req.triggered_by, description=req.description
    )


@ontology_router.get("/snapshots/{snapshot_id}")
def get_snapshot(snapshot_id: str, services: ServicesDep, organization_id: OrgId):
    return services.ontology.snapshots.get_snapshot(organization_id, snapshot_id)


@ontology_router.post("/snapshots/{snapshot_id}/restore")
def restore_snapshot(snapshot_id: str, services: ServicesDep, organization_id: OrgId):
    return services.ontology.snapshots.restore(organization_id, snapshot_id)


@ontology_router.get("/entities/{entity_type}")
def list_entities(
    entity_type: str,
    services: ServicesDep,
    organization_id: OrgId,
    include_archived: bool = False,
):
    return services.ontology.ontology.list(organization_id, entity_type, active_only=not include_archived)


@ontology_router.post("/entities/{entity_type}", status_code=201)
def create_entity(
    entity_type: str,
    req: EntityCreateRequest,
    services: ServicesDep,
    organization_id: OrgId,
):
    return services.ontology.ontology.create(
        organization_id, entity_type, req.data,
        **_write_options(services, organization_id, req),
    )


@ontology_router.get("/entities/{entity_type}/{entity_id}")
def get_entity(entity_type: str, entity_id: str, services: ServicesDep, organization_id: OrgId):
    return services.ontology.ontology.get(organization_id, entity_type, entity_id)


@ontology_router.patch("/entities/{entity_type}/{entity_id}")
def update_entity(
    entity_type: str,
    entity_id: str,
    req: EntityUpdateRequest,
    services: ServicesDep,
    organization_id: OrgId,
):
    return services.ontology.ontology.update(
        organization_id, entity_type, entity_id, req.changes,
        **_write_options(services, organization_id, req),
    )


@ontology_router.delete("/entities/{entity_type}/{entity_id}")
def delete_entity(
    entity_type: str,
    entity_id: str,
    services: ServicesDep,
    organization_id: OrgId,
    reason: Optional[str] = None,
    decision_record_id: Optional[str] = None,
):
    req = ArchiveRequest(reason=reason, decision_record_id=decision_record_id)
    services.ontology.ontology.delete(
        organization_id, entity_type, entity_id, **_write_options(services, organization_id, req)
    )
    return {"success": True, "deleted": entity_id}


# ── Analytics ────────────────────────────────────────────

@analytics_router.get("/segments")
def analytics_segments(
    services: ServicesDep,
    organization_id: OrgId,
    active_only: bool = True,
):
    return services.ontology.list_segments(organization_id, active_only=active_only)


@analytics_router.get("/economics")
def analytics_economics(services: ServicesDep, organization_id: OrgId):
    economics = services.ontology.latest_economics(organization_id)
    if economics is None:
        return error_response(ErrorKind.NOT_FOUND.value, f"No economics computed for {organization_id}")
    return economics


@analytics_router.get("/patterns")
def analytics_patterns(
    services: ServicesDep,
    organization_id: OrgId,
    pattern_type: Optional[str] = None,
):
    return services.ontology.list_patterns(organization_id, pattern_type)


@analytics_router.get("/health")
def analytics_health(services: ServicesDep, organization_id: OrgId):
    return services.ontology.customer_health(organization_id)


@analytics_router.post("/refresh")
def analytics_refresh(services: ServicesDep, organization_id: OrgId, req: Optional[RefreshRequest] = None):
    req = req or RefreshRequest()
    return services.ontology.refresh_analytics(organization_id, regenerate=req.regenerate)


# ── Pricing analysis ─────────────────────────────────────

@pricing_router.post("/analyze")
def analyze(services: ServicesDep, organization_id: OrgId):
    result = services.ontology.analyze(organization_id)
    if not result.success:
        return JSONResponse(
            status_code=STATUS_BY_KIND.get(result.error.kind, 500),
            content=result.model_dump(mode="json"),
        )
    return result


# ── Audit ────────────────────────────────────────────────

@audit_router.get("")
def audit_log(
    services: ServicesDep,
    organization_id: OrgId,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    return services.audit.query(
        organization_id, entity_type, entity_id, action, since, until, limit=limit, offset=offset
    )


@audit_router.get("/stats")
def audit_stats(services: ServicesDep, organization_id: OrgId):
    return services.audit.change_stats(organization_id)


@audit_router.get("/entity/{entity_type}/{entity_id}")
def audit_entity(entity_type: str, entity_id: str, services: ServicesDep, organization_id: OrgId):
    return services.audit.entity_timeline(organization_id, entity_type, entity_id)


@audit_router.get("/decision/{decision_id}")
def audit_decision(decision_id: str, services: ServicesDep, organization_id: OrgId):
    return services.audit.changes_by_decision(organization_id, decision_id)


# ── Decisions ────────────────────────────────────────────

@decisions_router.get("")
def list_decisions(
    services: ServicesDep,
    organization_id: OrgId,
    include_outcomes: bool = True,
    limit: int = Query(50, ge=1, le=500),
):
    return services.decisions.list_decisions(organization_id, include_outcomes, limit)


@decisions_router.post("", status_code=201)
def create_decision(req: DecisionRequest, services: ServicesDep, organization_id: OrgId):
    services.decisions.validate_request(
        req.question, req.options_considered, req.reasoning, req.chosen_option_id, req.decision_confidence
    )
    options = req.options
    if not options:
        # Predictions come from a fresh (read-only) analysis when none are supplied
        analysis = services.ontology.analyze(organization_id)
        options = analysis.options
    record = services.decisions.create_decision(
        organization_id,
        question=req.question,
        options_considered=req.options_considered,
        reasoning=req.reasoning,
        chosen_option_id=req.chosen_option_id,
        options=options,
        decided_by=req.decided_by,
        context=req.context,
        decision_confidence=req.decision_confidence,
    )
    return {"success": True, "decision": record, "snapshot_id": record.ontology_snapshot_id}


@decisions_router.get("/stats")
def decision_stats(services: ServicesDep, organization_id: OrgId):
    return services.decisions.accuracy_stats(organization_id)


@decisions_router.get("/{decision_id}")
def get_decision(decision_id: str, services: ServicesDep, organization_id: OrgId):
    return services.decisions.get_decision_with_context(organization_id, decision_id)


@decisions_router.post("/{decision_id}/outcome")
def record_outcome(
    decision_id: str,
    req: OutcomeRequest,
    services: ServicesDep,
    organization_id: OrgId,
):
    return services.decisions.record_outcome(
        organization_id,
        decision_id,
        actual_arr_change=req.actual_arr_change,
        actual_churn_change=req.actual_churn_change,
        learnings=req.learnings,
    )
