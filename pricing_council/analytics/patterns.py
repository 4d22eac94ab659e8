"""
Pattern Detector — derives system-generated behavioral patterns from
segment metrics and the economics snapshot.

Upgrade-trigger and seasonal patterns need customer rows; organizations
seeded from a preset only get the segment-level patterns.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime

import numpy as np

from pricing_council.analytics.common import as_aware, mean, months_before, safe_div
from pricing_council.models.enums import PatternType
from pricing_council.models.schemas import (
    Customer,
    EconomicsSnapshot,
    Pattern,
    PricingTier,
    Segment,
    utcnow,
)

logger = logging.getLogger(__name__)

CHURN_MULTIPLE = 1.5
EXPANSION_READY_RATE = 0.2
DISCOUNT_SENSITIVE_ELASTICITY = -0.7
PRICE_ANCHOR_SHARE = 0.5

# Upgrade signals
UPGRADE_WINDOW_MONTHS = 3
RAPID_GROWTH_RATE = 0.2
TENURE_MILESTONES = (6, 12, 18, 24)
HIGH_VALUE_MRR = 500.0
ENTRY_TIER_MAX_POSITION = 2
MIN_SIGNAL_CONFIDENCE = 0.5
UPGRADE_MIN_SHARE = 0.1

# Seasonality of acquisitions
SEASONAL_LOOKBACK_MONTHS = 24
SEASONAL_MIN_MONTHS = 12
SEASONAL_MIN_ACQUISITIONS = 24
SEASONAL_THRESHOLD = 0.25
MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def upgrade_signals(
    customer: Customer,
    tier_positions: dict[str, int],
    as_of: datetime,
) -> dict[str, float]:
    """Signal name -> confidence for one active customer."""
    signals: dict[str, float] = {}

    window_start = months_before(as_of, UPGRADE_WINDOW_MONTHS)
    growth = sum(
        e.delta for e in customer.expansion_events
        if window_start < as_aware(e.occurred_at) <= as_of
    )
    growth_rate = safe_div(growth, customer.mrr)
    if growth_rate >= RAPID_GROWTH_RATE:
        signals["rapid_growth"] = min(growth_rate, 0.95)

    if any(m <= customer.tenure_months < m + 2 for m in TENURE_MILESTONES):
        signals["tenure_milestone"] = 0.6

    position = tier_positions.get(customer.plan_id or "")
    if (
        len(tier_positions) > 1
        and position is not None
        and position <= ENTRY_TIER_MAX_POSITION
        and customer.mrr >= HIGH_VALUE_MRR
    ):
        signals["high_value_on_entry_tier"] = 0.7

    return {k: v for k, v in signals.items() if v >= MIN_SIGNAL_CONFIDENCE}


def _month_key(moment: datetime) -> int:
    return moment.year * 12 + moment.month - 1


def acquisition_seasonality(customers: list[Customer], as_of: datetime) -> list[float] | None:
    """
    Seasonal index per calendar month (Jan..Dec) of new-customer counts,
    1.0 being the average month. Only complete months inside the lookback
    window and after the first acquisition are used. None when history is
    too short or too thin.
    """
    if not customers:
        return None
    current = _month_key(as_of)
    first = min(_month_key(as_aware(c.created_at)) for c in customers)
    months = [k for k in range(current - SEASONAL_LOOKBACK_MONTHS, current) if k >= first]
    if len(months) < SEASONAL_MIN_MONTHS:
        return None

    counts = Counter(_month_key(as_aware(c.created_at)) for c in customers)
    if sum(counts[k] for k in months) < SEASONAL_MIN_ACQUISITIONS:
        return None

    by_calendar_month: dict[int, list[int]] = {m: [] for m in range(12)}
    for k in months:
        by_calendar_month[k % 12].append(counts[k])
    averages = np.array([np.mean(v) if v else 0.0 for v in by_calendar_month.values()])
    overall = float(averages.mean())
    if overall <= 0:
        return None
    return [float(a / overall) for a in averages]


class PatternDetector:
    def detect(
        self,
        segments: list[Segment],
        economics: EconomicsSnapshot,
        members: dict[str, list[Customer]] | None = None,
        tiers: list[PricingTier] | None = None,
        as_of: datetime | None = None,
    ) -> list[Pattern]:
        """
        `members` maps segment id to its customers; when given, upgrade
        triggers and acquisition seasonality are detected too.
        """
        org = economics.organization_id
        populated = [s for s in segments if s.is_active and s.customer_count > 0]
        if not populated:
            return []

        total_customers = sum(s.customer_count for s in populated)
        org_churn = mean([s.churn_rate for s in populated])
        patterns: list[Pattern] = []

        for s in populated:
            frequency = safe_div(s.customer_count, total_customers)

            if org_churn > 0 and s.churn_rate >= CHURN_MULTIPLE * org_churn:
                patterns.append(Pattern(
                    id=f"pat_churn_{s.id}",
                    organization_id=org,
                    name=f"{s.name} churn signal",
                    pattern_type=PatternType.CHURN_SIGNAL,
                    description=(
                        f"Churn {s.churn_rate:.1%} is {safe_div(s.churn_rate, org_churn):.1f}x "
                        f"the organization average"
                    ),
                    affected_segments=[s.id],
                    confidence=min(0.95, 0.5 + s.churn_rate),
                    frequency=frequency,
                    recommended_action="Review onboarding and value delivery before any price change",
                    is_system_generated=True,
                ))

            if s.expansion_rate >= EXPANSION_READY_RATE:
                patterns.append(Pattern(
                    id=f"pat_expansion_{s.id}",
                    organization_id=org,
                    name=f"{s.name} expansion ready",
                    pattern_type=PatternType.EXPANSION_READY,
                    description=f"{s.expansion_rate:.0%} of the base expanded in the window",
                    affected_segments=[s.id],
                    confidence=min(0.95, 0.4 + s.expansion_rate),
                    frequency=frequency,
                    recommended_action="Introduce usage-based add-ons or a higher tier",
                    is_system_generated=True,
                ))

            sensitivity = economics.sensitivity_for(s.id)
            if sensitivity and sensitivity.elasticity <= DISCOUNT_SENSITIVE_ELASTICITY:
                patterns.append(Pattern(
                    id=f"pat_discount_{s.id}",
                    organization_id=org,
                    name=f"{s.name} discount sensitive",
                    pattern_type=PatternType.DISCOUNT_SENSITIVE,
                    description=f"Elasticity {sensitivity.elasticity:.2f}",
                    affected_segments=[s.id],
                    confidence=0.6,
                    frequency=frequency,
                    recommended_action="Avoid list-price increases; compete on packaging",
                    is_system_generated=True,
                ))

            if s.revenue_share > PRICE_ANCHOR_SHARE:
                patterns.append(Pattern(
                    id=f"pat_anchor_{s.id}",
                    organization_id=org,
                    name=f"{s.name} price anchor",
                    pattern_type=PatternType.PRICE_ANCHOR,
                    description=f"Holds {s.revenue_share:.0%} of revenue and anchors perceived price",
                    affected_segments=[s.id],
                    confidence=0.7,
                    frequency=frequency,
                    recommended_action="Grandfather this segment when changing list prices",
                    is_system_generated=True,
                ))

        if members:
            as_of = as_aware(as_of or utcnow())
            patterns.extend(self._upgrade_triggers(org, populated, members, tiers or [], as_of, total_customers))
            seasonal = self._seasonality(org, populated, members, as_of)
            if seasonal is not None:
                patterns.append(seasonal)

        logger.info(f"[patterns] {org}: detected {len(patterns)} patterns")
        return patterns

    # ── Customer-level patterns ──────────────────────────

    @staticmethod
    def _upgrade_triggers(
        org: str,
        segments: list[Segment],
        members: dict[str, list[Customer]],
        tiers: list[PricingTier],
        as_of: datetime,
        total_customers: int,
    ) -> list[Pattern]:
        tier_positions = {t.id: t.position for t in tiers if t.is_active}
        patterns = []
        for s in segments:
            active = [c for c in members.get(s.id, []) if not c.is_churned]
            candidates = {}
            for c in active:
                signals = upgrade_signals(c, tier_positions, as_of)
                if signals:
                    candidates[c.id] = signals
            if not active or len(candidates) < UPGRADE_MIN_SHARE * len(active):
                continue

            by_signal = Counter(name for signals in candidates.values() for name in signals)
            breakdown = ", ".join(f"{name.replace('_', ' ')} {n}" for name, n in sorted(by_signal.items()))
            patterns.append(Pattern(
                id=f"pat_upgrade_{s.id}",
                organization_id=org,
                name=f"{s.name} upgrade triggers",
                pattern_type=PatternType.UPGRADE_TRIGGER,
                description=f"{len(candidates)} of {len(active)} customers show upgrade signals ({breakdown})",
                affected_segments=[s.id],
                confidence=min(0.95, mean([max(v.values()) for v in candidates.values()])),
                frequency=safe_div(len(candidates), total_customers),
                recommended_action="Offer a guided upgrade path to the next tier",
                is_system_generated=True,
            ))
        return patterns

    @staticmethod
    def _seasonality(
        org: str,
        segments: list[Segment],
        members: dict[str, list[Customer]],
        as_of: datetime,
    ) -> Pattern | None:
        customers = [c for group in members.values() for c in group]
        indices = acquisition_seasonality(customers, as_of)
        if indices is None:
            return None
        peaks = [MONTH_NAMES[m] for m, i in enumerate(indices) if i > 1 + SEASONAL_THRESHOLD]
        lows = [MONTH_NAMES[m] for m, i in enumerate(indices) if i < 1 - SEASONAL_THRESHOLD]
        if not peaks and not lows:
            return None

        amplitude = float(np.std(indices)) * 100
        peak_months = {MONTH_NAMES.index(p) + 1 for p in peaks}
        in_peaks = sum(1 for c in customers if as_aware(c.created_at).month in peak_months)
        return Pattern(
            id="pat_seasonal_acquisition",
            organization_id=org,
            name="Seasonal acquisition",
            pattern_type=PatternType.SEASONAL,
            description=(
                f"Acquisition peaks: {', '.join(peaks) or 'none'}; "
                f"lows: {', '.join(lows) or 'none'} (amplitude {amplitude:.0f}%)"
            ),
            affected_segments=[s.id for s in segments],
            confidence=min(0.5 + amplitude / 50, 0.95),
            frequency=safe_div(in_peaks, len(customers)),
            recommended_action="Schedule price changes and promotions around the acquisition peaks",
            is_system_generated=True,
        )
