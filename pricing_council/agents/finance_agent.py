"""
Finance perspective — weighs expected ARR change against downside risk.
"""

from __future__ import annotations

from pricing_council.agents.base_agent import BaseAgent
from pricing_council.models.enums import OptionType, Perspective, Recommendation, RiskLevel
from pricing_council.models.schemas import AgentView, CouncilContext, PricingOption


class FinanceAgent(BaseAgent):
    perspective = Perspective.FINANCE

    def _evaluate(self, option: PricingOption, context: CouncilContext) -> AgentView:
        cfg = self.config
        impact = option.impact
        pct = impact.expected_arr_change_percent

        if pct > cfg.finance_support_percent:
            rec = Recommendation.SUPPORT
            if impact.confidence > cfg.finance_strong_confidence:
                rec = Recommendation.STRONGLY_SUPPORT
            elif impact.confidence < cfg.finance_min_confidence:
                rec = Recommendation.NEUTRAL
        elif pct > 0:
            rec = Recommendation.NEUTRAL
        elif pct < -cfg.finance_support_percent:
            rec = Recommendation.STRONGLY_OPPOSE
        else:
            rec = Recommendation.OPPOSE

        key_points = [
            f"Expected ARR change {impact.expected_arr_change:+,.0f} ({pct:+.1f}%)",
            f"Range {impact.pessimistic_arr_change:+,.0f} to {impact.optimistic_arr_change:+,.0f}",
        ]
        if impact.pessimistic_arr_change < 0 < impact.expected_arr_change:
            key_points.append("Downside scenario loses revenue")

        risk = context.economics.concentration.risk_level if context.economics else RiskLevel.LOW.value
        if risk == RiskLevel.CRITICAL.value and option.option_type == OptionType.PRICE_INCREASE.value:
            key_points.append("Revenue is critically concentrated; a price increase puts the largest accounts at stake")
            if rec == Recommendation.STRONGLY_SUPPORT:
                rec = Recommendation.SUPPORT

        if impact.time_to_full_impact_months > cfg.finance_payback_months:
            key_points.append(
                f"Cash-flow impact arrives late ({impact.time_to_full_impact_months} months to full effect)"
            )

        reasoning = (
            f"Projected {pct:+.1f}% ARR at {impact.confidence:.0%} confidence"
            f" with a {option.risk_profile} risk profile."
        )
        return self._view(
            rec,
            impact.confidence,
            reasoning,
            key_points,
            impact={
                "expected_arr_change": impact.expected_arr_change,
                "pessimistic_arr_change": impact.pessimistic_arr_change,
            },
        )
