"""Small numeric and date helpers shared by the analytics modules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import numpy as np

DAYS_PER_MONTH = 30.4375


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Division that returns `default` for a zero (or negative) denominator."""
    if denominator <= 0:
        return default
    return float(numerator) / float(denominator)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def mean(values: list[float]) -> float:
    return float(np.mean(values)) if values else 0.0


def median(values: list[float]) -> float:
    return float(np.median(values)) if values else 0.0


def months_before(moment: datetime, months: int) -> datetime:
    return moment - timedelta(days=DAYS_PER_MONTH * months)


def as_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix the two."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
