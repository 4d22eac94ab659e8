"""
Tests: Pattern Detector, value metric correlation and customer health.

Run with:
    pytest pricing_council/tests/test_patterns.py -v
"""

from datetime import datetime, timezone

import pytest

from pricing_council.analytics.economics import EconomicsCalculator
from pricing_council.analytics.health import health_report, score_customer
from pricing_council.analytics.patterns import PatternDetector, acquisition_seasonality, upgrade_signals
from pricing_council.analytics.value_metrics import MIN_SAMPLE_SIZE, correlate_value_metrics
from pricing_council.models.schemas import PricingTier, Segment, ValueMetric

AS_OF = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _segment(count: int, seg_id: str = "seg_a") -> Segment:
    return Segment(id=seg_id, organization_id="acme", name="Growth", customer_count=count)


def _economics():
    return EconomicsCalculator().compute("acme", [], [], AS_OF)


def _tiers() -> list[PricingTier]:
    return [
        PricingTier(id="tier_starter", organization_id="acme", name="Starter", price_monthly=29, position=1),
        PricingTier(id="tier_pro", organization_id="acme", name="Pro", price_monthly=99, position=3),
    ]


def _monthly_acquisitions(make_customer, per_month) -> list:
    """One batch of customers per complete month of the two years before AS_OF."""
    customers = []
    for back in range(1, 25):
        key = AS_OF.year * 12 + AS_OF.month - 1 - back
        year, month = key // 12, key % 12 + 1
        created = AS_OF.replace(year=year, month=month, day=15)
        for _ in range(per_month(month)):
            customers.append(make_customer(100, created_days_ago=(AS_OF - created).days, tenure_months=30))
    return customers


class TestUpgradeTriggers:
    def test_signals(self, make_customer):
        positions = {t.id: t.position for t in _tiers()}
        growing = make_customer(250, tenure_months=30, expansions=[(30, 100, 250)])
        milestone = make_customer(100, tenure_months=6)
        big_on_starter = make_customer(800, tenure_months=30, plan_id="tier_starter")
        quiet = make_customer(100, tenure_months=30, plan_id="tier_pro")

        assert upgrade_signals(growing, positions, AS_OF) == {"rapid_growth": pytest.approx(0.6)}
        assert upgrade_signals(milestone, positions, AS_OF) == {"tenure_milestone": 0.6}
        assert upgrade_signals(big_on_starter, positions, AS_OF) == {"high_value_on_entry_tier": 0.7}
        assert upgrade_signals(quiet, positions, AS_OF) == {}

    def test_weak_growth_does_not_qualify(self, make_customer):
        slow = make_customer(130, tenure_months=30, expansions=[(30, 100, 130)])
        assert upgrade_signals(slow, {}, AS_OF) == {}

    def test_segment_pattern(self, make_customer):
        customers = [
            make_customer(250, tenure_months=30, expansions=[(30, 100, 250)]),
            make_customer(100, tenure_months=6),
            make_customer(800, tenure_months=30, plan_id="tier_starter"),
            make_customer(100, tenure_months=30),
            make_customer(100, tenure_months=6, churned_days_ago=10),
        ]
        patterns = PatternDetector().detect(
            [_segment(4)], _economics(), members={"seg_a": customers}, tiers=_tiers(), as_of=AS_OF
        )
        [upgrade] = [p for p in patterns if p.pattern_type == "upgrade_trigger"]

        assert upgrade.id == "pat_upgrade_seg_a"
        assert upgrade.description.startswith("3 of 4 customers")
        assert upgrade.confidence == pytest.approx((0.6 + 0.6 + 0.7) / 3)
        assert upgrade.frequency == pytest.approx(0.75)
        assert upgrade.affected_segments == ["seg_a"]

    def test_too_few_candidates(self, make_customer):
        customers = [make_customer(100, tenure_months=30) for _ in range(19)]
        customers.append(make_customer(100, tenure_months=6))
        patterns = PatternDetector().detect(
            [_segment(20)], _economics(), members={"seg_a": customers}, as_of=AS_OF
        )
        assert not [p for p in patterns if p.pattern_type == "upgrade_trigger"]

    def test_needs_customer_rows(self):
        assert PatternDetector().detect([_segment(10)], _economics()) == []


class TestSeasonality:
    def test_march_peak(self, make_customer):
        customers = _monthly_acquisitions(make_customer, lambda month: 6 if month == 3 else 1)
        indices = acquisition_seasonality(customers, AS_OF)
        assert indices[2] == pytest.approx(6 / (17 / 12))
        assert sum(indices) == pytest.approx(12)

        patterns = PatternDetector().detect(
            [_segment(len(customers))], _economics(), members={"seg_a": customers}, as_of=AS_OF
        )
        [seasonal] = [p for p in patterns if p.pattern_type == "seasonal"]
        assert seasonal.id == "pat_seasonal_acquisition"
        assert seasonal.description.startswith("Acquisition peaks: Mar;")
        assert seasonal.confidence == 0.95
        assert seasonal.frequency == pytest.approx(12 / len(customers))

    def test_flat_acquisition_is_not_seasonal(self, make_customer):
        customers = _monthly_acquisitions(make_customer, lambda month: 2)
        assert acquisition_seasonality(customers, AS_OF) == pytest.approx([1.0] * 12)
        patterns = PatternDetector().detect(
            [_segment(len(customers))], _economics(), members={"seg_a": customers}, as_of=AS_OF
        )
        assert not [p for p in patterns if p.pattern_type == "seasonal"]

    def test_short_history(self, make_customer):
        customers = [make_customer(100, created_days_ago=d) for d in range(20, 200, 4)]
        assert acquisition_seasonality(customers, AS_OF) is None


class TestValueMetricCorrelation:
    def _cohort(self, make_customer, n=40):
        return [
            make_customer(
                100 + 10 * i,
                expansions=[(100, 100, 100 + 10 * i)],
                usage={"api calls": float(i), "seats": 5.0},
            )
            for i in range(n)
        ]

    def test_usage_tracking_expansion(self, make_customer, as_of):
        metrics = [
            ValueMetric(id="vm_api", organization_id="acme", name="api calls"),
            ValueMetric(id="vm_seats", organization_id="acme", name="seats"),
            ValueMetric(id="vm_storage", organization_id="acme", name="storage"),
        ]
        result = correlate_value_metrics(metrics, self._cohort(make_customer), as_of)
        assert result["vm_api"] == pytest.approx(1.0)
        assert result["vm_seats"] == 0.0  # no variance
        assert "vm_storage" not in result

    def test_small_sample_is_skipped(self, make_customer, as_of):
        metrics = [ValueMetric(id="vm_api", organization_id="acme", name="api calls")]
        assert correlate_value_metrics(metrics, self._cohort(make_customer, MIN_SAMPLE_SIZE - 1), as_of) == {}

    def test_new_customers_are_outside_the_cohort(self, make_customer, as_of):
        metrics = [ValueMetric(id="vm_api", organization_id="acme", name="api calls")]
        customers = [
            make_customer(100, created_days_ago=60, usage={"api calls": float(i)}) for i in range(40)
        ]
        assert correlate_value_metrics(metrics, customers, as_of) == {}


class TestHealth:
    def test_champion(self, make_customer, as_of):
        health = score_customer(make_customer(6000, tenure_months=30, expansions=[(30, 5000, 6000)]), as_of)
        assert health.health_score >= 80
        assert "champion_customer" in health.flags
        assert "expansion_ready" in health.flags
        assert health.churn_risk == 0

    def test_new_shrinking_customer_is_at_risk(self, make_customer, as_of):
        health = score_customer(make_customer(40, tenure_months=1, expansions=[(10, 80, 40)]), as_of)
        assert health.health_score < 40
        assert {"churn_signal", "onboarding_risk", "downgrade_recent"} <= set(health.flags)
        assert health.churn_risk == 0.95

    def test_report_distribution(self, make_customer, as_of):
        customers = [
            make_customer(6000, tenure_months=30, expansions=[(30, 5000, 6000)]),
            make_customer(40, tenure_months=1, expansions=[(10, 80, 40)]),
            make_customer(200, tenure_months=8),
            make_customer(500, churned_days_ago=5),
        ]
        report = health_report("acme", customers, as_of)
        assert len(report.scores) == 3
        assert report.healthy + report.at_risk + report.critical == 3
        assert report.critical == 1
        assert report.insights[0].startswith(f"{report.healthy} of 3 customers are healthy")

    def test_no_customers(self, as_of):
        report = health_report("acme", [], as_of)
        assert report.scores == []
        assert report.insights == ["No active customers to score"]
