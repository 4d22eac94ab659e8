"""
Economics Calculator — concentration, retention, MRR movements and price
sensitivity for one organization, captured as an immutable EconomicsSnapshot.

Every ratio guards its denominator: zero customers produce a zero snapshot
with `low` risk instead of an error.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime

import numpy as np

from pricing_council.analytics.common import as_aware, clamp, months_before, safe_div
from pricing_council.config import get_settings
from pricing_council.models.enums import RiskLevel
from pricing_council.models.schemas import (
    ConcentrationMetrics,
    Customer,
    EconomicsSnapshot,
    MRRMovements,
    Segment,
    SegmentEconomics,
    SegmentSensitivity,
    utcnow,
)
from pricing_council.rules.rules_config import (
    ConcentrationConfig,
    RulesConfigStore,
    SensitivityConfig,
)

logger = logging.getLogger(__name__)

HHI_MAX = 10000.0


# ── Concentration ────────────────────────────────────────

def hhi_from_shares(shares: list[float]) -> float:
    """Herfindahl–Hirschman index over fractional shares, in percentage points."""
    return clamp(sum((s * 100.0) ** 2 for s in shares), 0.0, HHI_MAX)


def classify_risk(hhi: float, top_10_share: float, config: ConcentrationConfig) -> RiskLevel:
    if hhi < config.moderate_hhi:
        return RiskLevel.LOW
    if hhi <= config.high_hhi:
        return RiskLevel.MODERATE
    if top_10_share > config.critical_top_10_share:
        return RiskLevel.CRITICAL
    return RiskLevel.HIGH


def concentration_metrics(
    customers: list[Customer],
    segments: list[Segment],
    config: ConcentrationConfig,
) -> ConcentrationMetrics:
    """Top-decile share, top-customer share and segment-level HHI."""
    mrr = np.sort(np.array([c.mrr for c in customers if not c.is_churned], dtype=float))[::-1]
    total = float(mrr.sum()) if mrr.size else 0.0
    if total <= 0:
        return ConcentrationMetrics(description="No recurring revenue")

    top_n = max(1, math.ceil(mrr.size * config.top_share_fraction))
    top_10_share = safe_div(float(mrr[:top_n].sum()), total)
    top_customer_share = safe_div(float(mrr[0]), total)

    active_segments = [s for s in segments if s.is_active]
    if active_segments:
        hhi = hhi_from_shares([s.revenue_share for s in active_segments])
    else:
        hhi = hhi_from_shares([float(m) / total for m in mrr])

    risk = classify_risk(hhi, top_10_share, config)
    description = (
        f"HHI {hhi:,.0f} ({risk.value}); top {top_n} customer(s) hold "
        f"{top_10_share:.0%} of MRR, largest {top_customer_share:.1%}"
    )
    return ConcentrationMetrics(
        top_10_percent_revenue_share=top_10_share,
        top_customer_revenue_share=top_customer_share,
        hhi_index=hhi,
        risk_level=risk,
        description=description,
    )


# ── MRR movements ────────────────────────────────────────

def mrr_movements(customers: list[Customer], start: datetime, end: datetime) -> MRRMovements:
    """
    MRR waterfall over (start, end].

    Customers that existed at `start` contribute their reconstructed starting
    MRR, their expansion and contraction events, and their last MRR as churn
    when they churned in the period. Customers created in the period count
    as new MRR at their current value unless they also churned in it.
    """
    start, end = as_aware(start), as_aware(end)
    starting = new = expansion = contraction = churn = 0.0
    new_count = churned_count = 0
    expanded: set[str] = set()
    contracted: set[str] = set()

    for c in customers:
        created = as_aware(c.created_at)
        churned_at = as_aware(c.churned_at) if c.churned_at else None
        churned_in_period = churned_at is not None and start < churned_at <= end

        if created > end or (churned_at is not None and churned_at <= start):
            continue
        if created > start:
            if not churned_in_period:
                new += c.mrr
                new_count += 1
            continue

        events = [e for e in c.expansion_events if start < as_aware(e.occurred_at) <= end]
        starting += max(0.0, c.mrr - sum(e.delta for e in events))
        for e in events:
            if e.delta > 0:
                expansion += e.delta
                expanded.add(c.id)
            elif e.delta < 0:
                contraction += -e.delta
                contracted.add(c.id)
        if churned_in_period:
            churn += c.mrr
            churned_count += 1

    net_new = new + expansion - contraction - churn
    losses = contraction + churn
    return MRRMovements(
        period_start=start,
        period_end=end,
        starting_mrr=starting,
        new_mrr=new,
        expansion_mrr=expansion,
        contraction_mrr=contraction,
        churn_mrr=churn,
        net_new_mrr=net_new,
        ending_mrr=starting + net_new,
        new_customers=new_count,
        expansion_customers=len(expanded),
        contraction_customers=len(contracted),
        churned_customers=churned_count,
        quick_ratio=(new + expansion) / losses if losses > 0 else None,
    )


# ── Price sensitivity ────────────────────────────────────

def estimate_elasticity(segment: Segment, config: SensitivityConfig) -> float:
    """Configured coefficient, else a revenue-share band estimate."""
    for key in (segment.id, segment.name):
        if key in config.segment_elasticity:
            return config.segment_elasticity[key]
    for min_share, elasticity in config.share_bands:
        if segment.revenue_share > min_share:
            return elasticity
    return config.default_elasticity


def churn_per_percent_increase(elasticity: float, price_delta_percent: float) -> float:
    """Fractional churn caused by one price step of `price_delta_percent` percent."""
    return abs(elasticity) * price_delta_percent / 100.0


class EconomicsCalculator:
    """Builds EconomicsSnapshot records from customers and segments."""

    def __init__(
        self,
        rules: RulesConfigStore | None = None,
        retention_period_months: int | None = None,
        assumed_price_delta_percent: float | None = None,
    ):
        settings = get_settings()
        rules = rules or RulesConfigStore()
        self.concentration_config = rules.get_concentration_config()
        self.sensitivity_config = rules.get_sensitivity_config()
        self.retention_period_months = retention_period_months or settings.retention_period_months
        self.price_delta_percent = assumed_price_delta_percent or settings.assumed_price_delta_percent
        self.movements_period_months = settings.movements_period_months

    def compute(
        self,
        organization_id: str,
        customers: list[Customer],
        segments: list[Segment],
        as_of: datetime | None = None,
    ) -> EconomicsSnapshot:
        as_of = as_aware(as_of or utcnow())
        active = [c for c in customers if not c.is_churned]

        if not active:
            logger.info(f"[economics] {organization_id}: no active customers, zero snapshot")
            return EconomicsSnapshot(
                organization_id=organization_id,
                snapshot_date=as_of,
                concentration=ConcentrationMetrics(risk_level=RiskLevel.LOW, description="No customers"),
                mrr_movements=self._movements(customers, as_of) if customers else None,
            )

        total_mrr = float(sum(c.mrr for c in active))
        nrr, grr, starting_mrr = self._retention(customers, as_of)
        concentration = concentration_metrics(customers, segments, self.concentration_config)
        active_segments = [s for s in segments if s.is_active]

        snapshot = EconomicsSnapshot(
            organization_id=organization_id,
            snapshot_date=as_of,
            total_mrr=total_mrr,
            total_arr=total_mrr * 12,
            total_customers=len(active),
            arpu=safe_div(total_mrr, len(active)),
            avg_ltv=safe_div(sum(c.ltv for c in active), len(active)),
            net_revenue_retention=nrr,
            gross_revenue_retention=grr,
            mrr_growth_rate=safe_div(total_mrr - starting_mrr, starting_mrr),
            concentration=concentration,
            mrr_movements=self._movements(customers, as_of),
            price_sensitivity=[self._sensitivity(s) for s in active_segments],
            segment_economics=[
                SegmentEconomics(
                    segment_id=s.id,
                    segment_name=s.name,
                    mrr=s.total_revenue,
                    arpu=s.avg_mrr,
                    ltv=s.avg_ltv,
                    churn_rate=s.churn_rate,
                    expansion_rate=s.expansion_rate,
                )
                for s in active_segments
            ],
        )
        logger.info(
            f"[economics] {organization_id}: MRR {total_mrr:,.2f}, NRR {nrr:.1f}%, "
            f"GRR {grr:.1f}%, {concentration.description}"
        )
        return snapshot

    def compute_from_segments(
        self,
        organization_id: str,
        segments: list[Segment],
        as_of: datetime | None = None,
    ) -> EconomicsSnapshot:
        """
        Approximate a snapshot from stored segment aggregates alone.

        Used for organizations seeded from a preset, which have segment
        metrics but no customer rows. The top decile is filled from the
        highest-ARPU segments first (ARPU = revenue / customers); retention
        is share-weighted.
        """
        as_of = as_aware(as_of or utcnow())
        active_segments = [s for s in segments if s.is_active and s.customer_count > 0]
        total_customers = sum(s.customer_count for s in active_segments)
        total_mrr = float(sum(s.total_revenue for s in active_segments))
        if total_customers == 0 or total_mrr <= 0:
            return self.compute(organization_id, [], segments, as_of)

        shares = [safe_div(s.total_revenue, total_mrr) for s in active_segments]
        hhi = hhi_from_shares(shares)

        remaining = max(1, math.ceil(total_customers * self.concentration_config.top_share_fraction))
        top_mrr = 0.0
        arpus = {s.id: safe_div(s.total_revenue, s.customer_count) for s in active_segments}
        for s in sorted(active_segments, key=lambda s: arpus[s.id], reverse=True):
            taken = min(remaining, s.customer_count)
            top_mrr += taken * arpus[s.id]
            remaining -= taken
            if remaining == 0:
                break
        top_10_share = clamp(safe_div(top_mrr, total_mrr), 0.0, 1.0)
        top_customer_share = safe_div(max(arpus.values()), total_mrr)
        risk = classify_risk(hhi, top_10_share, self.concentration_config)

        nrr = sum(sh * (1 + s.expansion_rate - s.churn_rate) for sh, s in zip(shares, active_segments))
        grr = sum(sh * (1 - s.churn_rate) for sh, s in zip(shares, active_segments))

        return EconomicsSnapshot(
            organization_id=organization_id,
            snapshot_date=as_of,
            total_mrr=total_mrr,
            total_arr=total_mrr * 12,
            total_customers=total_customers,
            arpu=safe_div(total_mrr, total_customers),
            avg_ltv=safe_div(sum(s.avg_ltv * s.customer_count for s in active_segments), total_customers),
            net_revenue_retention=nrr * 100.0,
            gross_revenue_retention=grr * 100.0,
            concentration=ConcentrationMetrics(
                top_10_percent_revenue_share=top_10_share,
                top_customer_revenue_share=top_customer_share,
                hhi_index=hhi,
                risk_level=risk,
                description=f"HHI {hhi:,.0f} ({risk.value}) from segment aggregates",
            ),
            price_sensitivity=[self._sensitivity(s) for s in active_segments],
            segment_economics=[
                SegmentEconomics(
                    segment_id=s.id,
                    segment_name=s.name,
                    mrr=s.total_revenue,
                    arpu=s.avg_mrr,
                    ltv=s.avg_ltv,
                    churn_rate=s.churn_rate,
                    expansion_rate=s.expansion_rate,
                )
                for s in active_segments
            ],
        )

    # ── Retention ────────────────────────────────────────

    def _movements(self, customers: list[Customer], as_of: datetime) -> MRRMovements:
        return mrr_movements(customers, months_before(as_of, self.movements_period_months), as_of)

    def _retention(self, customers: list[Customer], as_of: datetime) -> tuple[float, float, float]:
        """
        NRR and GRR (percent) for the cohort that existed at the period start.

        Starting MRR is reconstructed by reversing expansion events that
        happened after the start. Customers acquired later are excluded.
        """
        start = months_before(as_of, self.retention_period_months)
        starting_total = 0.0
        ending_total = 0.0
        retained_total = 0.0

        for c in customers:
            if as_aware(c.created_at) > start:
                continue
            churned_at = as_aware(c.churned_at) if c.churned_at else None
            if churned_at is not None and churned_at <= start:
                continue

            later_delta = sum(
                e.delta for e in c.expansion_events if start < as_aware(e.occurred_at) <= as_of
            )
            start_mrr = max(0.0, c.mrr - later_delta)
            end_mrr = 0.0 if churned_at is not None and churned_at <= as_of else c.mrr

            starting_total += start_mrr
            ending_total += end_mrr
            retained_total += min(start_mrr, end_mrr)

        nrr = safe_div(ending_total, starting_total) * 100.0
        grr = safe_div(retained_total, starting_total) * 100.0
        return nrr, grr, starting_total

    def _sensitivity(self, segment: Segment) -> SegmentSensitivity:
        elasticity = estimate_elasticity(segment, self.sensitivity_config)
        return SegmentSensitivity(
            segment_id=segment.id,
            segment_name=segment.name,
            elasticity=elasticity,
            churn_per_percent_increase=churn_per_percent_increase(elasticity, self.price_delta_percent),
            optimal_price_low=segment.avg_mrr * self.sensitivity_config.optimal_range_low,
            optimal_price_high=segment.avg_mrr * self.sensitivity_config.optimal_range_high,
        )
