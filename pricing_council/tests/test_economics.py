"""
Tests: Economics Calculator.

Run with:
    pytest pricing_council/tests/test_economics.py -v
"""

from datetime import timedelta

import pytest

from pricing_council.analytics.economics import (
    EconomicsCalculator,
    churn_per_percent_increase,
    classify_risk,
    concentration_metrics,
    estimate_elasticity,
    hhi_from_shares,
    mrr_movements,
)
from pricing_council.models.enums import RiskLevel
from pricing_council.models.schemas import Segment
from pricing_council.rules.rules_config import ConcentrationConfig, SensitivityConfig


def _segment(seg_id: str, share: float, **kwargs) -> Segment:
    return Segment(id=seg_id, organization_id="acme", name=seg_id, revenue_share=share, **kwargs)


class TestConcentration:
    def test_three_segment_hhi_is_high(self):
        hhi = hhi_from_shares([0.6, 0.25, 0.15])
        assert hhi == pytest.approx(4450)
        assert classify_risk(hhi, 0.3, ConcentrationConfig()) == RiskLevel.HIGH

    def test_single_segment_is_maximal(self):
        assert hhi_from_shares([1.0]) == 10000

    def test_hhi_is_clamped(self):
        assert hhi_from_shares([1.5]) == 10000
        assert hhi_from_shares([]) == 0

    def test_risk_bands(self):
        cfg = ConcentrationConfig()
        assert classify_risk(1000, 0.9, cfg) == RiskLevel.LOW
        assert classify_risk(2000, 0.9, cfg) == RiskLevel.MODERATE
        assert classify_risk(3000, 0.5, cfg) == RiskLevel.HIGH
        assert classify_risk(3000, 0.8, cfg) == RiskLevel.CRITICAL

    def test_top_decile_share(self, make_customer):
        customers = [make_customer(100) for _ in range(9)] + [make_customer(1000)]
        metrics = concentration_metrics(customers, [], ConcentrationConfig())
        assert metrics.top_10_percent_revenue_share == pytest.approx(1000 / 1900)
        assert metrics.top_customer_revenue_share == pytest.approx(1000 / 1900)
        assert 0 <= metrics.hhi_index <= 10000

    def test_segment_shares_drive_hhi(self, make_customer):
        customers = [make_customer(100) for _ in range(10)]
        segments = [_segment("a", 0.6), _segment("b", 0.25), _segment("c", 0.15)]
        metrics = concentration_metrics(customers, segments, ConcentrationConfig())
        assert metrics.hhi_index == pytest.approx(4450)
        assert metrics.risk_level == RiskLevel.HIGH.value


class TestSensitivity:
    def test_share_bands(self):
        cfg = SensitivityConfig()
        assert estimate_elasticity(_segment("a", 0.6), cfg) == -0.3
        assert estimate_elasticity(_segment("b", 0.3), cfg) == -0.5
        assert estimate_elasticity(_segment("c", 0.05), cfg) == -0.8

    def test_configured_coefficient_wins(self):
        cfg = SensitivityConfig(segment_elasticity={"a": -1.2})
        assert estimate_elasticity(_segment("a", 0.6), cfg) == -1.2

    def test_churn_per_percent(self):
        assert churn_per_percent_increase(-0.5, 1.0) == pytest.approx(0.005)
        assert churn_per_percent_increase(-0.5, 2.0) == pytest.approx(0.01)


class TestCompute:
    def test_zero_customers(self, as_of):
        snapshot = EconomicsCalculator().compute("acme", [], [], as_of)
        assert snapshot.total_mrr == 0
        assert snapshot.total_arr == 0
        assert snapshot.total_customers == 0
        assert snapshot.arpu == 0
        assert snapshot.net_revenue_retention == 0
        assert snapshot.concentration.hhi_index == 0
        assert snapshot.concentration.risk_level == RiskLevel.LOW.value

    def test_only_churned_customers(self, make_customer, as_of):
        customers = [make_customer(100, churned_days_ago=10)]
        snapshot = EconomicsCalculator().compute("acme", customers, [], as_of)
        assert snapshot.total_customers == 0
        assert snapshot.concentration.risk_level == RiskLevel.LOW.value

    def test_aggregates(self, make_customer, as_of):
        customers = [make_customer(1000), make_customer(3000), make_customer(500, churned_days_ago=20)]
        snapshot = EconomicsCalculator().compute("acme", customers, [], as_of)
        assert snapshot.total_mrr == 4000
        assert snapshot.total_arr == 48000
        assert snapshot.total_customers == 2
        assert snapshot.arpu == 2000

    def test_retention_reverses_expansion(self, make_customer, as_of):
        customers = [
            make_customer(100, expansions=[(180, 80, 100)]),
            make_customer(50, churned_days_ago=90),
            make_customer(999, created_days_ago=30),  # joined after the period start
        ]
        snapshot = EconomicsCalculator(retention_period_months=12).compute("acme", customers, [], as_of)
        # start: 80 + 50 = 130; end: 100 + 0; retained: 80 + 0
        assert snapshot.net_revenue_retention == pytest.approx(100 / 130 * 100)
        assert snapshot.gross_revenue_retention == pytest.approx(80 / 130 * 100)

    def test_sensitivity_per_active_segment(self, make_customer, as_of):
        segments = [_segment("a", 0.7, avg_mrr=1000), _segment("b", 0.3, avg_mrr=100, is_active=False)]
        snapshot = EconomicsCalculator().compute("acme", [make_customer(100)], segments, as_of)
        assert [s.segment_id for s in snapshot.price_sensitivity] == ["a"]
        sens = snapshot.sensitivity_for("a")
        assert sens.optimal_price_low == pytest.approx(800)
        assert sens.optimal_price_high == pytest.approx(1200)

    def test_snapshot_is_frozen(self, as_of):
        snapshot = EconomicsCalculator().compute("acme", [], [], as_of)
        with pytest.raises(Exception):
            snapshot.total_mrr = 5


class TestMRRMovements:
    def test_waterfall(self, make_customer, as_of):
        customers = [
            make_customer(150, expansions=[(30, 100, 150)]),
            make_customer(80, expansions=[(20, 100, 80)]),
            make_customer(60, churned_days_ago=10),
            make_customer(200, created_days_ago=40),
            make_customer(70, created_days_ago=40, churned_days_ago=5),  # in and out
            make_customer(90, churned_days_ago=200),  # gone before the period
            make_customer(300),
        ]
        m = mrr_movements(customers, as_of - timedelta(days=90), as_of)

        assert m.starting_mrr == pytest.approx(560)
        assert (m.new_mrr, m.expansion_mrr, m.contraction_mrr, m.churn_mrr) == (200, 50, 20, 60)
        assert m.net_new_mrr == pytest.approx(170)
        assert m.ending_mrr == pytest.approx(730)
        assert m.ending_mrr == pytest.approx(sum(c.mrr for c in customers if not c.is_churned))
        assert (m.new_customers, m.expansion_customers, m.contraction_customers, m.churned_customers) == (1, 1, 1, 1)
        assert m.quick_ratio == pytest.approx(250 / 80)

    def test_no_losses_has_no_quick_ratio(self, make_customer, as_of):
        m = mrr_movements([make_customer(100, created_days_ago=5)], as_of - timedelta(days=30), as_of)
        assert m.new_mrr == 100
        assert m.quick_ratio is None

    def test_compute_attaches_movements(self, make_customer, as_of):
        snapshot = EconomicsCalculator().compute("acme", [make_customer(100, churned_days_ago=3)], [], as_of)
        assert snapshot.mrr_movements.period_end == as_of
        assert snapshot.mrr_movements.churn_mrr == 100

    def test_aggregate_snapshot_has_none(self):
        assert EconomicsCalculator().compute_from_segments("acme", []).mrr_movements is None


class TestFromSegments:
    def test_aggregates_from_segment_metrics(self):
        segments = [
            _segment("a", 0.6, customer_count=10, total_revenue=6000, churn_rate=0.01, expansion_rate=0.1),
            _segment("b", 0.4, customer_count=90, total_revenue=4000, churn_rate=0.05, expansion_rate=0.0),
        ]
        snapshot = EconomicsCalculator().compute_from_segments("acme", segments)
        assert snapshot.total_customers == 100
        assert snapshot.total_mrr == 10000
        assert snapshot.concentration.hhi_index == pytest.approx(60 ** 2 + 40 ** 2)
        # top decile = the 10 customers of segment "a"
        assert snapshot.concentration.top_10_percent_revenue_share == pytest.approx(0.6)
        assert snapshot.net_revenue_retention == pytest.approx((0.6 * 1.09 + 0.4 * 0.95) * 100)
        assert snapshot.gross_revenue_retention == pytest.approx((0.6 * 0.99 + 0.4 * 0.95) * 100)

    def test_empty_segments_fall_back_to_zero(self):
        snapshot = EconomicsCalculator().compute_from_segments("acme", [_segment("a", 0.0)])
        assert snapshot.total_mrr == 0
        assert snapshot.concentration.risk_level == RiskLevel.LOW.value
