"""
Value metric correlation — how strongly each metric's usage tracks
later expansion revenue.

The cohort is every customer that already existed at the start of the
window; the outcome is the expansion MRR they added inside it.
"""

from __future__ import annotations

import logging
from datetime import datetime

import numpy as np

from pricing_council.analytics.common import as_aware, clamp, months_before
from pricing_council.models.schemas import Customer, ValueMetric

logger = logging.getLogger(__name__)

CORRELATION_WINDOW_MONTHS = 12
MIN_SAMPLE_SIZE = 30


def expansion_after(customer: Customer, start: datetime, end: datetime) -> float:
    return sum(
        e.delta for e in customer.expansion_events
        if e.is_expansion and start < as_aware(e.occurred_at) <= end
    )


def pearson(xs: list[float], ys: list[float]) -> float:
    """Pearson r, 0.0 when either side has no variance."""
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    if len(x) < 2 or x.std() == 0 or y.std() == 0:
        return 0.0
    return clamp(float(np.corrcoef(x, y)[0, 1]), -1.0, 1.0)


def correlate_value_metrics(
    metrics: list[ValueMetric],
    customers: list[Customer],
    as_of: datetime,
    window_months: int = CORRELATION_WINDOW_MONTHS,
) -> dict[str, float]:
    """
    Metric id -> correlation of usage with expansion MRR. Metrics with
    fewer than MIN_SAMPLE_SIZE usage readings in the cohort are left out.
    """
    start = months_before(as_of, window_months)
    cohort = [c for c in customers if as_aware(c.created_at) <= start]

    results: dict[str, float] = {}
    for metric in metrics:
        sample = [c for c in cohort if metric.name in c.usage]
        if len(sample) < MIN_SAMPLE_SIZE:
            logger.debug(f"[value-metrics] {metric.name}: {len(sample)} readings, skipped")
            continue
        results[metric.id] = round(pearson(
            [c.usage[metric.name] for c in sample],
            [expansion_after(c, start, as_of) for c in sample],
        ), 4)
    return results
