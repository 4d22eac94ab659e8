"""
Pricing Option Generator — turns segments, economics and the current
pricing structure into 3–5 candidate structural changes.

Deterministic: the same inputs always produce the same options, in the
same order, with the same ids. Nothing here samples or reads the clock.

Lever order:
    price_increase        always
    new_tier              when tiers exist
    value_metric_change   always
    packaging             always
    minimum_fee           when a segment's average MRR is below the fee
"""

from __future__ import annotations

import logging

from pricing_council.analytics.common import clamp, safe_div
from pricing_council.analytics.economics import churn_per_percent_increase
from pricing_council.models.enums import Complexity, OptionType, RiskProfile
from pricing_council.models.schemas import (
    CompetitiveContext,
    EconomicsSnapshot,
    ImpactModel,
    PricingChange,
    PricingOption,
    PricingStructure,
    PricingTier,
    Segment,
)
from pricing_council.rules.rules_config import OptionConfig, RulesConfigStore

logger = logging.getLogger(__name__)


def option_id(option_type: OptionType) -> str:
    return f"opt_{option_type.value}"


class PricingOptionGenerator:
    """Pure function object: generate(...) → list[PricingOption]."""

    def __init__(self, rules: RulesConfigStore | None = None, price_delta_percent: float = 1.0):
        self.config: OptionConfig = (rules or RulesConfigStore()).get_option_config()
        self.price_delta_percent = price_delta_percent

    def generate(
        self,
        segments: list[Segment],
        economics: EconomicsSnapshot,
        pricing_structure: PricingStructure,
        competitive_context: CompetitiveContext | None = None,
    ) -> list[PricingOption]:
        populated = [s for s in segments if s.is_active and s.customer_count > 0]
        total_arr = economics.total_arr or sum(s.total_revenue for s in populated) * 12

        options = [self._price_increase(populated, economics, pricing_structure, competitive_context, total_arr)]
        tiers = sorted((t for t in pricing_structure.tiers if t.is_active), key=lambda t: t.position)
        if tiers:
            options.append(self._new_tier(tiers, total_arr))
        options.append(self._value_metric_change(pricing_structure, total_arr))
        options.append(self._packaging(economics, total_arr))
        small = [s for s in populated if s.avg_mrr < self.config.minimum_fee_monthly]
        if small:
            options.append(self._minimum_fee(small, economics, total_arr))

        logger.info(
            f"[options] generated {len(options)} options: "
            + ", ".join(f"{o.option_type}={o.impact.expected_arr_change:+,.0f}" for o in options)
        )
        return options

    # ── Levers ───────────────────────────────────────────

    def _price_increase(
        self,
        segments: list[Segment],
        economics: EconomicsSnapshot,
        structure: PricingStructure,
        competitive: CompetitiveContext | None,
        total_arr: float,
    ) -> PricingOption:
        p = self.config.price_increase_percent
        pct = p * 100.0

        targets = []
        for s in segments:
            sens = economics.sensitivity_for(s.id)
            if sens is not None and sens.elasticity >= self.config.price_increase_max_elasticity:
                targets.append(s)
        if not targets and segments:
            targets = [max(segments, key=lambda s: (s.total_revenue, s.name))]

        expected = 0.0
        weighted_churn = 0.0
        targeted_arr = 0.0
        changes = []
        for s in targets:
            arr = s.total_revenue * 12
            churn = clamp(self._churn_per_percent(s, economics) * pct, 0.0, 1.0)
            expected += arr * ((1 + p) * (1 - churn) - 1)
            weighted_churn += churn * arr
            targeted_arr += arr
            changes.append(PricingChange(
                change_type="price",
                target=s.name,
                from_value=round(s.avg_mrr, 2),
                to_value=round(s.avg_mrr * (1 + p), 2),
                description=f"Raise {s.name} prices by {pct:.0f}%",
            ))
        churn_increase = safe_div(weighted_churn, targeted_arr)

        penalty = 0.0
        rationale = "Targets the least price-sensitive segments"
        ceiling = competitive.price_ceiling() if competitive else None
        top_tier = max(structure.tiers, key=lambda t: t.price_monthly, default=None)
        if ceiling is not None and top_tier is not None and top_tier.price_monthly * (1 + p) > ceiling:
            penalty = self.config.competitive_confidence_penalty
            rationale += f"; top tier would exceed the competitor ceiling of {ceiling:,.0f}"

        return self._option(
            OptionType.PRICE_INCREASE,
            name=f"{pct:.0f}% price increase",
            description=f"Increase list prices by {pct:.0f}% for {', '.join(s.name for s in targets) or 'all customers'}",
            changes=changes,
            expected=expected,
            churn=churn_increase,
            total_arr=total_arr,
            months=3,
            complexity=Complexity.LOW,
            affected=[s.id for s in targets],
            rationale=rationale,
            confidence_penalty=penalty,
        )

    def _new_tier(self, tiers: list[PricingTier], total_arr: float) -> PricingOption:
        if len(tiers) == 1:
            lower = tiers[0]
            price = lower.price_monthly * 2
            position = lower.position + 1
        else:
            # Widest gap; the lowest one wins ties
            i = max(
                range(len(tiers) - 1),
                key=lambda k: (tiers[k + 1].price_monthly - tiers[k].price_monthly, -k),
            )
            lower, upper = tiers[i], tiers[i + 1]
            price = (lower.price_monthly + upper.price_monthly) / 2
            position = lower.position + 1

        movers = lower.customer_count * self.config.new_tier_uptake
        expected = movers * (price - lower.price_monthly) * 12
        name = f"{lower.name} Plus"

        return self._option(
            OptionType.NEW_TIER,
            name=f"Introduce '{name}' tier",
            description=f"Insert a {price:,.0f}/month tier above {lower.name}",
            changes=[PricingChange(
                change_type="tier",
                target=f"position {position}",
                from_value=None,
                to_value={"name": name, "price_monthly": round(price, 2), "position": position},
                description=f"New tier between {lower.name} and the next tier up",
            )],
            expected=expected,
            churn=0.0,
            total_arr=total_arr,
            months=6,
            complexity=Complexity.MEDIUM,
            affected=[],
            rationale=f"Widest price gap sits above {lower.name}; {self.config.new_tier_uptake:.0%} assumed uptake",
        )

    def _value_metric_change(self, structure: PricingStructure, total_arr: float) -> PricingOption:
        metric = structure.primary_metric()
        metric_name = metric.name if metric else "usage"
        correlation = metric.correlation_to_expansion if metric else 0.5
        lift = self.config.value_metric_lift * max(correlation, 0.1)
        churn = self.config.value_metric_churn
        expected = total_arr * (lift - churn)

        option = self._option(
            OptionType.VALUE_METRIC_CHANGE,
            name=f"Price on {metric_name}",
            description=f"Move the pricing basis to {metric_name}",
            changes=[PricingChange(
                change_type="value_metric",
                target="pricing basis",
                from_value=structure.model_type,
                to_value=metric_name,
                description=f"Charge by {metric_name} (correlation to expansion {correlation:.2f})",
            )],
            expected=expected,
            churn=churn,
            total_arr=total_arr,
            months=12,
            complexity=Complexity.HIGH,
            affected=[],
            rationale="Aligns revenue with the metric that best predicts expansion",
        )
        # Billing-model changes always carry high risk
        return self._with_risk(option, RiskProfile.HIGH)

    def _packaging(self, economics: EconomicsSnapshot, total_arr: float) -> PricingOption:
        diversification = 1.0 - economics.concentration.hhi_index / 10000.0
        expected = total_arr * self.config.packaging_lift * diversification

        return self._option(
            OptionType.PACKAGING,
            name="Re-package into good-better-best",
            description="Unbundle premium features into add-ons and tier packages",
            changes=[PricingChange(
                change_type="packaging",
                target="feature bundles",
                from_value="bundled",
                to_value="good-better-best with add-ons",
                description="Move premium features into paid add-ons",
            )],
            expected=expected,
            churn=self.config.packaging_churn,
            total_arr=total_arr,
            months=6,
            complexity=Complexity.MEDIUM,
            affected=[],
            rationale=f"Revenue diversification {diversification:.0%} leaves room for add-on uptake",
        )

    def _minimum_fee(
        self,
        small: list[Segment],
        economics: EconomicsSnapshot,
        total_arr: float,
    ) -> PricingOption:
        fee = self.config.minimum_fee_monthly
        churn = self.config.minimum_fee_churn
        expected = 0.0
        affected_customers = 0
        for s in small:
            expected += 12 * s.customer_count * ((1 - churn) * fee - s.avg_mrr)
            affected_customers += s.customer_count

        return self._option(
            OptionType.MINIMUM_FEE,
            name=f"{fee:,.0f}/month minimum fee",
            description=f"Introduce a {fee:,.0f}/month platform minimum",
            changes=[
                PricingChange(
                    change_type="minimum",
                    target=s.name,
                    from_value=round(s.avg_mrr, 2),
                    to_value=fee,
                    description=f"Lift {s.name} to the minimum fee",
                )
                for s in small
            ],
            expected=expected,
            churn=churn * safe_div(affected_customers, economics.total_customers),
            total_arr=total_arr,
            months=3,
            complexity=Complexity.LOW,
            affected=[s.id for s in small],
            rationale=f"{affected_customers} customers pay less than the cost-to-serve floor",
        )

    # ── Helpers ──────────────────────────────────────────

    def _churn_per_percent(self, segment: Segment, economics: EconomicsSnapshot) -> float:
        sens = economics.sensitivity_for(segment.id)
        if sens is not None:
            return sens.churn_per_percent_increase
        return churn_per_percent_increase(-0.8, self.price_delta_percent)

    def _risk_from_churn(self, churn: float) -> RiskProfile:
        if churn < self.config.low_churn_threshold:
            return RiskProfile.LOW
        if churn < self.config.moderate_churn_threshold:
            return RiskProfile.MODERATE
        return RiskProfile.HIGH

    def _impact(
        self,
        expected: float,
        churn: float,
        total_arr: float,
        months: int,
        risk: RiskProfile,
        confidence_penalty: float = 0.0,
    ) -> ImpactModel:
        width = abs(expected) * self.config.bound_widths[risk.value]
        return ImpactModel(
            expected_arr_change=round(expected, 2),
            expected_arr_change_percent=round(safe_div(expected, total_arr) * 100, 4),
            optimistic_arr_change=round(expected + width, 2),
            pessimistic_arr_change=round(expected - width, 2),
            expected_churn_increase=round(churn, 6),
            time_to_full_impact_months=months,
            confidence=clamp(self.config.risk_confidence[risk.value] - confidence_penalty, 0.0, 1.0),
        )

    def _option(
        self,
        option_type: OptionType,
        name: str,
        description: str,
        changes: list[PricingChange],
        expected: float,
        churn: float,
        total_arr: float,
        months: int,
        complexity: Complexity,
        affected: list[str],
        rationale: str,
        confidence_penalty: float = 0.0,
    ) -> PricingOption:
        risk = self._risk_from_churn(churn)
        return PricingOption(
            id=option_id(option_type),
            option_type=option_type,
            name=name,
            description=description,
            changes=changes,
            impact=self._impact(expected, churn, total_arr, months, risk, confidence_penalty),
            risk_profile=risk,
            complexity=complexity,
            affected_segments=affected,
            rationale=rationale,
        )

    def _with_risk(self, option: PricingOption, risk: RiskProfile) -> PricingOption:
        impact = option.impact
        width = abs(impact.expected_arr_change) * self.config.bound_widths[risk.value]
        return option.model_copy(update={
            "risk_profile": risk.value,
            "impact": impact.model_copy(update={
                "optimistic_arr_change": round(impact.expected_arr_change + width, 2),
                "pessimistic_arr_change": round(impact.expected_arr_change - width, 2),
                "confidence": self.config.risk_confidence[risk.value],
            }),
        })
