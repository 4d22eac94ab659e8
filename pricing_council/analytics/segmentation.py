"""
Segmentation Engine — groups customers into segments and computes
per-segment size, revenue share, churn, expansion and retention curves.

Pure: no persistence, no clock unless `as_of` is omitted.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pricing_council.analytics.common import (
    as_aware,
    mean,
    median,
    months_before,
    safe_div,
)
from pricing_council.config import get_settings
from pricing_council.errors import InvalidInputError
from pricing_council.models.schemas import (
    RETENTION_CURVE_POINTS,
    Customer,
    Segment,
    SegmentCriteria,
    utcnow,
)

logger = logging.getLogger(__name__)

UNASSIGNED_SEGMENT_ID = "seg_unassigned"

# name, mrr_min, mrr_max, value drivers
DEFAULT_MRR_BANDS: list[tuple[str, float, float | None, list[str]]] = [
    ("Enterprise", 5000.0, None, ["security", "compliance", "dedicated support"]),
    ("Growth", 1000.0, 5000.0, ["integrations", "team collaboration"]),
    ("Startup", 100.0, 1000.0, ["ease of use", "time to value"]),
    ("Self-serve", 0.0, 100.0, ["price", "self-service onboarding"]),
]


def default_segment_definitions(organization_id: str) -> list[Segment]:
    """MRR-band definitions used when regenerating with nothing stored."""
    return [
        Segment(
            id=f"seg_{name.lower().replace('-', '_')}",
            organization_id=organization_id,
            name=name,
            description=f"Customers with MRR in [{lo:,.0f}, {'∞' if hi is None else f'{hi:,.0f}'})",
            criteria=SegmentCriteria(mrr_min=lo, mrr_max=hi),
            priority=i,
            value_drivers=drivers,
            is_system_generated=True,
        )
        for i, (name, lo, hi, drivers) in enumerate(DEFAULT_MRR_BANDS)
    ]


def retention_curve(customers: list[Customer]) -> list[float]:
    """
    12-point monthly survival curve (index 0 = month 0 = 1.0).

    Product-limit estimate over tenure: churned customers are events at
    their tenure, active customers are censored at theirs. The curve is
    non-increasing by construction.
    """
    if not customers:
        return [0.0] * RETENTION_CURVE_POINTS

    times = [
        (max(c.tenure_months, 1) if c.is_churned else c.tenure_months, c.is_churned)
        for c in customers
    ]
    curve = [1.0]
    survival = 1.0
    for month in range(1, RETENTION_CURVE_POINTS):
        at_risk = sum(1 for t, _ in times if t >= month)
        events = sum(1 for t, churned in times if churned and t == month)
        if at_risk:
            survival *= 1.0 - events / at_risk
        curve.append(round(survival, 6))
    return curve


class SegmentationEngine:
    """Assigns customers to segment definitions and computes their metrics."""

    def __init__(self, churn_window_months: int | None = None):
        self.churn_window_months = churn_window_months or get_settings().churn_window_months

    def segment(
        self,
        organization_id: str,
        customers: list[Customer],
        definitions: list[Segment],
        regenerate: bool = False,
        as_of: datetime | None = None,
    ) -> list[Segment]:
        as_of = as_aware(as_of or utcnow())
        window_start = months_before(as_of, self.churn_window_months)

        for c in customers:
            if c.organization_id != organization_id:
                raise InvalidInputError(f"Customer {c.id} does not belong to {organization_id}")

        if regenerate and not definitions:
            definitions = default_segment_definitions(organization_id)
        ordered = sorted(definitions, key=lambda d: d.priority)  # stable
        groups = self._assign(customers, ordered, regenerate)

        totals = {
            seg_id: sum(c.mrr for c in members if not c.is_churned)
            for seg_id, members in groups.items()
        }
        grand_total = sum(totals.values())

        by_id = {d.id: d for d in ordered}
        results = []
        for seg_id, members in groups.items():
            base = by_id.get(seg_id) or self._unassigned(organization_id)
            results.append(
                self._with_metrics(base, members, totals[seg_id], grand_total, window_start)
            )

        logger.info(
            f"[segmentation] {organization_id}: {len(customers)} customers → "
            f"{len(results)} segments (regenerate={regenerate})"
        )
        return results

    # ── Assignment ───────────────────────────────────────

    def assign(
        self,
        customers: list[Customer],
        definitions: list[Segment],
        regenerate: bool = False,
    ) -> dict[str, list[Customer]]:
        """Segment id -> member customers, using the same rules as `segment`."""
        return self._assign(customers, sorted(definitions, key=lambda d: d.priority), regenerate)

    @staticmethod
    def _assign(
        customers: list[Customer],
        ordered: list[Segment],
        regenerate: bool,
    ) -> dict[str, list[Customer]]:
        groups: dict[str, list[Customer]] = {d.id: [] for d in ordered}
        unassigned: list[Customer] = []
        for c in customers:
            target = c.segment_id if not regenerate and c.segment_id in groups else None
            if target is None:
                target = next((d.id for d in ordered if d.criteria.matches(c)), None)
            if target is None:
                unassigned.append(c)
            else:
                groups[target].append(c)
        if unassigned:
            groups[UNASSIGNED_SEGMENT_ID] = unassigned
        return groups

    @staticmethod
    def _unassigned(organization_id: str) -> Segment:
        return Segment(
            id=UNASSIGNED_SEGMENT_ID,
            organization_id=organization_id,
            name="Unassigned",
            description="Customers not matched by any segment definition",
            priority=10_000,
            is_system_generated=True,
        )

    # ── Metrics ──────────────────────────────────────────

    @staticmethod
    def _with_metrics(
        base: Segment,
        members: list[Customer],
        total: float,
        grand_total: float,
        window_start: datetime,
    ) -> Segment:
        active = [c for c in members if not c.is_churned]
        churned_recent = [
            c for c in members
            if c.is_churned and c.churned_at is not None and as_aware(c.churned_at) >= window_start
        ]
        population = len(active) + len(churned_recent)

        if population == 0:
            return base.model_copy(update={
                "customer_count": 0,
                "total_revenue": 0.0,
                "revenue_share": 0.0,
                "avg_mrr": 0.0,
                "median_mrr": 0.0,
                "avg_ltv": 0.0,
                "median_ltv": 0.0,
                "retention_rate": 0.0,
                "churn_rate": 0.0,
                "expansion_rate": 0.0,
                "retention_curve": [0.0] * RETENTION_CURVE_POINTS,
            })

        expansions = sum(
            1
            for c in active + churned_recent
            for e in c.expansion_events
            if e.is_expansion and as_aware(e.occurred_at) >= window_start
        )
        churn_rate = safe_div(len(churned_recent), population)
        mrrs = [c.mrr for c in active]
        ltvs = [c.ltv for c in active]

        return base.model_copy(update={
            "customer_count": len(active),
            "total_revenue": total,
            "revenue_share": min(1.0, safe_div(total, grand_total)),
            "avg_mrr": mean(mrrs),
            "median_mrr": median(mrrs),
            "avg_ltv": mean(ltvs),
            "median_ltv": median(ltvs),
            "churn_rate": churn_rate,
            "retention_rate": 1.0 - churn_rate,
            "expansion_rate": safe_div(expansions, population),
            "retention_curve": retention_curve(members),
        })
