"""
Customer health — a rule-based 0-100 score per active customer built from
MRR level, tenure and recent MRR movement, plus upgrade, churn and
expansion signals.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pricing_council.analytics.common import as_aware, clamp, mean, months_before, safe_div
from pricing_council.models.schemas import Customer, CustomerHealth, HealthReport, utcnow

logger = logging.getLogger(__name__)

RECENT_MONTHS = 3
HEALTHY_SCORE = 70
AT_RISK_SCORE = 40
SIGNAL_THRESHOLD = 0.5

# Composite weights
USAGE_WEIGHT = 0.35
ENGAGEMENT_WEIGHT = 0.35
FINANCIAL_WEIGHT = 0.30


def recent_movement(customer: Customer, as_of: datetime) -> tuple[float, float]:
    """(expansion, contraction) MRR over the last RECENT_MONTHS, both positive."""
    since = months_before(as_of, RECENT_MONTHS)
    expansion = contraction = 0.0
    for e in customer.expansion_events:
        if since <= as_aware(e.occurred_at) <= as_of:
            if e.delta > 0:
                expansion += e.delta
            else:
                contraction -= e.delta
    return expansion, contraction


def _score(value: float) -> int:
    return int(clamp(value, 0, 100))


def usage_score(mrr: float, tenure: int, expansion: float, contraction: float) -> int:
    score = 50
    if mrr >= 1000:
        score += 15
    elif mrr >= 500:
        score += 10
    elif mrr >= 100:
        score += 5
    if tenure >= 24:
        score += 15
    elif tenure >= 12:
        score += 10
    elif tenure >= 6:
        score += 5
    if expansion > 0:
        score += 10
    if contraction > 0:
        score -= 15
    return _score(score)


def engagement_score(tenure: int, expansion: float, contraction: float) -> int:
    score = 50
    if tenure >= 12:
        score += 20
    elif tenure >= 6:
        score += 10
    elif tenure < 2:
        score -= 10  # still onboarding
    if expansion > 0:
        score += 15
    if contraction > 0:
        score -= 20
    return _score(score)


def financial_score(mrr: float, expansion: float, contraction: float) -> int:
    score = 50
    if mrr >= 5000:
        score += 25
    elif mrr >= 1000:
        score += 15
    elif mrr >= 500:
        score += 10
    elif mrr < 100:
        score -= 10

    growth = safe_div(expansion - contraction, mrr)
    if growth > 0.1:
        score += 15
    elif growth > 0:
        score += 5
    elif growth < -0.1:
        score -= 15
    elif growth < 0:
        score -= 5
    return _score(score)


def score_customer(customer: Customer, as_of: datetime) -> CustomerHealth:
    mrr, tenure = customer.mrr, customer.tenure_months
    expansion, contraction = recent_movement(customer, as_of)

    usage = usage_score(mrr, tenure, expansion, contraction)
    engagement = engagement_score(tenure, expansion, contraction)
    financial = financial_score(mrr, expansion, contraction)
    health = round(usage * USAGE_WEIGHT + engagement * ENGAGEMENT_WEIGHT + financial * FINANCIAL_WEIGHT)

    readiness = (0.3 if health >= 70 else 0.1 if health >= 50 else 0.0)
    readiness += (0.2 if expansion > 0 else 0.0) + (0.2 if tenure >= 6 else 0.0) + (0.1 if mrr >= 500 else 0.0)

    risk = (0.4 if health < 40 else 0.2 if health < 60 else 0.0)
    risk += (0.3 if contraction > 0 else 0.0) + (0.15 if tenure < 3 else 0.0) + (0.1 if mrr < 50 else 0.0)

    potential = (0.3 if health >= 70 else 0.15 if health >= 50 else 0.0)
    potential += (0.2 if expansion > 0 else 0.0) + (0.2 if 6 <= tenure <= 18 else 0.0) + (0.1 if mrr < 500 else 0.0)

    readiness, risk, potential = (round(min(1.0, v), 4) for v in (readiness, risk, potential))

    flags = []
    if risk >= SIGNAL_THRESHOLD:
        flags.append("churn_signal")
    if readiness >= SIGNAL_THRESHOLD:
        flags.append("expansion_ready")
    if tenure <= 3 and health < 50:
        flags.append("onboarding_risk")
    if contraction > 0:
        flags.append("downgrade_recent")
    if health >= 80 and tenure >= 12:
        flags.append("champion_customer")

    return CustomerHealth(
        customer_id=customer.id,
        segment_id=customer.segment_id,
        usage_score=usage,
        engagement_score=engagement,
        financial_score=financial,
        health_score=health,
        upgrade_readiness=readiness,
        churn_risk=risk,
        expansion_potential=potential,
        flags=flags,
    )


def health_report(
    organization_id: str,
    customers: list[Customer],
    as_of: datetime | None = None,
) -> HealthReport:
    """Scores every active customer and summarizes the distribution."""
    as_of = as_aware(as_of or utcnow())
    scores = [score_customer(c, as_of) for c in customers if not c.is_churned]
    if not scores:
        return HealthReport(
            organization_id=organization_id,
            as_of=as_of,
            insights=["No active customers to score"],
        )

    healthy = sum(1 for s in scores if s.health_score >= HEALTHY_SCORE)
    critical = sum(1 for s in scores if s.health_score < AT_RISK_SCORE)
    avg = round(mean([s.health_score for s in scores]), 1)

    insights = [f"{healthy} of {len(scores)} customers are healthy; average score {avg:.0f}/100"]
    if critical:
        insights.append(f"{critical} customers are in critical health (score below {AT_RISK_SCORE})")
    churn_risk = sum(1 for s in scores if "churn_signal" in s.flags)
    if churn_risk:
        insights.append(f"{churn_risk} customers carry a high churn risk")
    ready = sum(1 for s in scores if "expansion_ready" in s.flags)
    if ready:
        insights.append(f"{ready} customers are ready for an upgrade conversation")

    logger.info(f"[health] {organization_id}: scored {len(scores)} customers, avg {avg}")
    return HealthReport(
        organization_id=organization_id,
        as_of=as_of,
        scores=scores,
        healthy=healthy,
        at_risk=len(scores) - healthy - critical,
        critical=critical,
        avg_health_score=avg,
        insights=insights,
    )
