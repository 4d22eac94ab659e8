"""
Ontology Service — high-level facade over the repositories.

Coordinates company setup from presets, the segmentation/economics query
surface, the persisted analytics refresh and the (read-only) pricing
analysis. It is also the data source handed to the analysis graph.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from pricing_council.analytics.common import as_aware
from pricing_council.analytics.economics import EconomicsCalculator
from pricing_council.analytics.health import health_report
from pricing_council.analytics.patterns import PatternDetector
from pricing_council.analytics.segmentation import SegmentationEngine
from pricing_council.analytics.value_metrics import correlate_value_metrics
from pricing_council.config import get_settings
from pricing_council.errors import InvalidInputError
from pricing_council.models.enums import EntityType, MetricType
from pricing_council.models.schemas import (
    RETENTION_CURVE_POINTS,
    AnalysisResult,
    CompetitiveContext,
    Competitor,
    Customer,
    EconomicsSnapshot,
    HealthReport,
    Pattern,
    PricingStructure,
    PricingTier,
    Segment,
    SegmentCriteria,
    ValueMetric,
    utcnow,
)
from pricing_council.orchestration.graph import run_analysis
from pricing_council.persistence.customer_repository import CustomerRepository
from pricing_council.persistence.document_store import DocumentStore
from pricing_council.persistence.economics_repository import EconomicsRepository
from pricing_council.persistence.ontology_repository import IMMUTABLE_FIELDS, OntologyRepository
from pricing_council.persistence.snapshot_repository import SnapshotRepository
from pricing_council.presets import Preset, get_preset
from pricing_council.rules.rules_config import RulesConfigStore
from pricing_council.services.audit_service import AuditService

logger = logging.getLogger(__name__)

SETUP_COLLECTION = "setup_runs"
SETUP_STARTED = "started"
SETUP_COMPLETED = "completed"

SEGMENT_METRIC_FIELDS = (
    "customer_count",
    "total_revenue",
    "revenue_share",
    "avg_mrr",
    "median_mrr",
    "avg_ltv",
    "median_ltv",
    "retention_rate",
    "churn_rate",
    "expansion_rate",
    "retention_curve",
)


class SetupResult(BaseModel):
    organization_id: str
    preset: str
    pre_seeded: bool
    segments: int = 0
    pricing_tiers: int = 0
    value_metrics: int = 0
    competitors: int = 0
    snapshot_version: Optional[int] = None


class RefreshResult(BaseModel):
    organization_id: str
    segments: list[Segment] = []
    economics: EconomicsSnapshot
    patterns: list[Pattern] = []
    value_metrics: list[ValueMetric] = []


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


class OntologyService:
    """Setup, query surface, analytics refresh and analysis for one store."""

    def __init__(self, store: DocumentStore, rules: RulesConfigStore | None = None):
        settings = get_settings()
        self._store = store
        self.rules = rules or RulesConfigStore()
        self.audit = AuditService(store)
        self.ontology = OntologyRepository(store, self.audit)
        self.customers = CustomerRepository(store)
        self.economics = EconomicsRepository(store)
        self.snapshots = SnapshotRepository(store, self.ontology, self.economics)
        self.segmentation = SegmentationEngine(settings.churn_window_months)
        self.calculator = EconomicsCalculator(self.rules)
        self.patterns_detector = PatternDetector()

    # ── Setup ────────────────────────────────────────────

    def setup_organization(self, organization_id: str, preset_id: str = "devtools") -> SetupResult:
        """
        Seed segments, tiers, value metrics, competitors and economics from
        a preset, then take the initial snapshot.

        Idempotent: a completed setup, or an organization that already has
        segment rows from elsewhere, is left untouched and reported as
        pre-seeded. A setup that failed part-way is resumed by the next
        call. Preset entities have fixed ids, so rows the failed run wrote
        are skipped.
        """
        preset = get_preset(preset_id)
        run = self._store.find_one(SETUP_COLLECTION, {"organization_id": organization_id})

        if run is None:
            existing = self.ontology.count(organization_id, EntityType.SEGMENT, active_only=False)
            if existing:
                logger.info(f"[setup] {organization_id} already has {existing} segments; skipping")
                return self._pre_seeded(organization_id, preset.id)
            self._store.insert(SETUP_COLLECTION, {
                "organization_id": organization_id,
                "preset": preset.id,
                "status": SETUP_STARTED,
                "started_at": utcnow(),
            })
            logger.info(f"[setup] seeding {organization_id} from preset '{preset.id}'")
        elif run["status"] == SETUP_COMPLETED:
            logger.info(f"[setup] {organization_id} was set up from '{run['preset']}'; skipping")
            return self._pre_seeded(organization_id, run["preset"])
        elif run["preset"] != preset.id:
            raise InvalidInputError(
                f"Setup of {organization_id} from preset '{run['preset']}' is incomplete; "
                f"retry with that preset"
            )
        else:
            logger.warning(f"[setup] resuming incomplete setup of {organization_id}")

        seed = (
            (EntityType.SEGMENT, self._preset_segments(organization_id, preset)),
            (EntityType.PRICING_TIER, self._preset_tiers(organization_id, preset)),
            (EntityType.VALUE_METRIC, [
                ValueMetric(id=f"vm_{_slug(m.name)}", organization_id=organization_id, **m.model_dump())
                for m in preset.value_metrics
            ]),
            (EntityType.COMPETITOR, [
                Competitor(id=f"comp_{_slug(c.name)}", organization_id=organization_id, **c.model_dump())
                for c in preset.competitors
            ]),
        )
        for entity_type, entities in seed:
            for entity in entities:
                if not self.ontology.exists(organization_id, entity_type, entity.id):
                    self.ontology.create(organization_id, entity_type, entity, triggered_by="setup")

        segments = self.ontology.list(organization_id, EntityType.SEGMENT)
        self.economics.save(self.calculator.compute_from_segments(organization_id, segments))
        snapshot = self.snapshots.create_snapshot(
            organization_id,
            triggered_by="setup",
            description=f"Initial ontology from preset {preset.label}",
            trigger_details={"preset": preset.id},
        )
        self._store.update(
            SETUP_COLLECTION,
            {"organization_id": organization_id},
            {"status": SETUP_COMPLETED, "completed_at": utcnow(), "snapshot_id": snapshot.id},
        )
        return SetupResult(
            organization_id=organization_id,
            preset=preset.id,
            pre_seeded=False,
            snapshot_version=snapshot.version,
            **self._entity_counts(organization_id),
        )

    def _entity_counts(self, organization_id: str) -> dict[str, int]:
        return {
            "segments": self.ontology.count(organization_id, EntityType.SEGMENT),
            "pricing_tiers": self.ontology.count(organization_id, EntityType.PRICING_TIER),
            "value_metrics": self.ontology.count(organization_id, EntityType.VALUE_METRIC),
            "competitors": self.ontology.count(organization_id, EntityType.COMPETITOR),
        }

    def _pre_seeded(self, organization_id: str, preset_id: str) -> SetupResult:
        return SetupResult(
            organization_id=organization_id,
            preset=preset_id,
            pre_seeded=True,
            **self._entity_counts(organization_id),
        )

    @staticmethod
    def _preset_segments(organization_id: str, preset: Preset) -> list[Segment]:
        total_mrr = preset.total_arr / 12
        share_sum = sum(s.revenue_share for s in preset.segments) or 1.0
        segments = []
        for i, s in enumerate(preset.segments):
            share = s.revenue_share / share_sum
            count = round(preset.total_customers * s.customer_share)
            # Monthly survival at a constant churn rate
            curve = [round((1 - s.churn_rate) ** m, 6) for m in range(RETENTION_CURVE_POINTS)]
            segments.append(Segment(
                id=f"seg_{_slug(s.name)}",
                organization_id=organization_id,
                name=s.name,
                description=s.description,
                criteria=SegmentCriteria(mrr_min=s.mrr_min, mrr_max=s.mrr_max),
                priority=i,
                customer_count=count,
                total_revenue=total_mrr * share,
                revenue_share=share,
                avg_mrr=s.avg_mrr,
                median_mrr=s.avg_mrr,
                avg_ltv=s.avg_mrr / s.churn_rate if s.churn_rate else s.avg_mrr * 12,
                median_ltv=s.avg_mrr / s.churn_rate if s.churn_rate else s.avg_mrr * 12,
                churn_rate=s.churn_rate,
                retention_rate=1 - s.churn_rate,
                expansion_rate=s.expansion_rate,
                retention_curve=curve,
                value_drivers=s.value_drivers,
                is_system_generated=True,
            ))
        return segments

    @staticmethod
    def _preset_tiers(organization_id: str, preset: Preset) -> list[PricingTier]:
        total_mrr = preset.total_arr / 12
        share_sum = sum(t.revenue_share for t in preset.tiers) or 1.0
        return [
            PricingTier(
                id=f"tier_{_slug(t.name)}",
                organization_id=organization_id,
                name=t.name,
                price_monthly=t.price_monthly,
                price_annual=t.price_annual,
                position=t.position,
                value_metric_limits=t.value_metric_limits,
                features=t.features,
                customer_count=round(preset.total_customers * t.customer_share),
                total_revenue=total_mrr * t.revenue_share / share_sum,
                revenue_share=t.revenue_share / share_sum,
            )
            for t in preset.tiers
        ]

    # ── Query surface (also the analysis data source) ────

    def list_segments(self, organization_id: str, active_only: bool = True) -> list[Segment]:
        """Segments annotated with live customer counts where customer rows exist."""
        segments = self.ontology.list(organization_id, EntityType.SEGMENT, active_only=active_only)
        live = self.customers.count_by_segment(organization_id)
        if not live:
            return segments
        return [s.model_copy(update={"customer_count": live.get(s.id, 0)}) for s in segments]

    def pricing_structure(self, organization_id: str) -> PricingStructure:
        tiers = self.ontology.list(organization_id, EntityType.PRICING_TIER)
        live = self.customers.count_by_plan(organization_id)
        if live:
            tiers = [t.model_copy(update={"customer_count": live.get(t.id, 0)}) for t in tiers]
        metrics = self.ontology.list(organization_id, EntityType.VALUE_METRIC)
        has_primary = any(m.metric_type == MetricType.PRIMARY.value for m in metrics)
        model_type = "usage_based" if has_primary and len(tiers) <= 1 else "tiered"
        return PricingStructure(model_type=model_type, tiers=tiers, value_metrics=metrics)

    def competitive_context(self, organization_id: str) -> CompetitiveContext | None:
        competitors = self.ontology.list(organization_id, EntityType.COMPETITOR)
        if not competitors:
            return None
        return CompetitiveContext(competitors=competitors)

    def list_customers(self, organization_id: str) -> list[Customer]:
        return self.customers.list_customers(organization_id)

    def latest_economics(self, organization_id: str) -> EconomicsSnapshot | None:
        return self.economics.latest(organization_id)

    def customer_health(self, organization_id: str, as_of: datetime | None = None) -> HealthReport:
        return health_report(organization_id, self.list_customers(organization_id), as_of)

    def list_patterns(self, organization_id: str, pattern_type: str | None = None) -> list[Pattern]:
        patterns = self.ontology.list(organization_id, EntityType.PATTERN)
        if pattern_type:
            patterns = [p for p in patterns if p.pattern_type == pattern_type]
        return patterns

    def current_ontology(self, organization_id: str) -> dict[str, Any]:
        return self.snapshots.current_ontology(organization_id)

    # ── Analytics refresh ────────────────────────────────

    def refresh_analytics(
        self,
        organization_id: str,
        regenerate: bool = False,
        as_of: datetime | None = None,
    ) -> RefreshResult:
        """
        Recompute segment metrics, economics, patterns and value metric
        correlations, and persist them.

        Every segment, pattern and value metric write goes through the
        audited repository. Without customer rows, economics are derived
        from the stored segment aggregates.
        """
        as_of = as_aware(as_of or utcnow())
        customers = self.list_customers(organization_id)
        definitions = self.ontology.list(organization_id, EntityType.SEGMENT)

        members = None
        value_metrics: list[ValueMetric] = []
        if customers:
            computed = self.segmentation.segment(
                organization_id, customers, definitions, regenerate=regenerate, as_of=as_of
            )
            segments = [self._persist_segment(organization_id, s) for s in computed]
            economics = self.calculator.compute(organization_id, customers, segments, as_of)
            members = self.segmentation.assign(customers, segments, regenerate=regenerate)
            value_metrics = self._refresh_value_metrics(organization_id, customers, as_of)
        else:
            segments = self._rebalance_shares(organization_id, definitions)
            economics = self.calculator.compute_from_segments(organization_id, segments, as_of)
        self.economics.save(economics)

        detected = self.patterns_detector.detect(
            segments,
            economics,
            members=members,
            tiers=self.ontology.list(organization_id, EntityType.PRICING_TIER),
            as_of=as_of,
        )
        patterns = [self._persist_pattern(organization_id, p) for p in detected]
        logger.info(
            f"[refresh] {organization_id}: {len(segments)} segments, {len(patterns)} patterns"
        )
        return RefreshResult(
            organization_id=organization_id,
            segments=segments,
            economics=economics,
            patterns=patterns,
            value_metrics=value_metrics,
        )

    def _refresh_value_metrics(
        self,
        organization_id: str,
        customers: list[Customer],
        as_of: datetime,
    ) -> list[ValueMetric]:
        metrics = self.ontology.list(organization_id, EntityType.VALUE_METRIC)
        correlations = correlate_value_metrics(metrics, customers, as_of)
        refreshed = []
        for m in metrics:
            r = correlations.get(m.id)
            if r is not None and abs(r - m.correlation_to_expansion) > 1e-9:
                m = self.ontology.update(
                    organization_id, EntityType.VALUE_METRIC, m.id, {"correlation_to_expansion": r},
                    triggered_by="analytics", reason="Value metric correlation refreshed",
                )
            refreshed.append(m)
        return refreshed

    def _rebalance_shares(self, organization_id: str, segments: list[Segment]) -> list[Segment]:
        """Re-derive revenue_share of the active segments from their stored revenue."""
        total = sum(s.total_revenue for s in segments)
        if total <= 0:
            return segments
        rebalanced = []
        for s in segments:
            share = s.total_revenue / total
            if abs(share - s.revenue_share) > 1e-9:
                s = self._persist_segment(organization_id, s.model_copy(update={"revenue_share": share}))
            rebalanced.append(s)
        return rebalanced

    def _persist_segment(self, organization_id: str, segment: Segment) -> Segment:
        if self.ontology.exists(organization_id, EntityType.SEGMENT, segment.id):
            metrics = {k: v for k, v in segment.model_dump().items() if k in SEGMENT_METRIC_FIELDS}
            return self.ontology.update(
                organization_id, EntityType.SEGMENT, segment.id, metrics,
                triggered_by="analytics", reason="Segment metrics refreshed",
            )
        return self.ontology.create(
            organization_id, EntityType.SEGMENT, segment,
            triggered_by="analytics", reason="Segment generated from customer data",
        )

    def _persist_pattern(self, organization_id: str, pattern: Pattern) -> Pattern:
        if self.ontology.exists(organization_id, EntityType.PATTERN, pattern.id):
            changes = {
                k: v for k, v in pattern.model_dump().items() if k not in IMMUTABLE_FIELDS
            }
            changes["is_active"] = True
            return self.ontology.update(
                organization_id, EntityType.PATTERN, pattern.id, changes,
                triggered_by="analytics", reason="Pattern re-detected",
            )
        return self.ontology.create(
            organization_id, EntityType.PATTERN, pattern,
            triggered_by="analytics", reason="Pattern detected",
        )

    # ── Analysis ─────────────────────────────────────────

    def analyze(self, organization_id: str) -> AnalysisResult:
        """Run the read-only pricing analysis pipeline."""
        return run_analysis(organization_id, self, self.rules)
