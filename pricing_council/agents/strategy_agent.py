"""
Strategy perspective — weighs competitive positioning, revenue concentration
and reversibility.
"""

from __future__ import annotations

from pricing_council.agents.base_agent import BaseAgent
from pricing_council.models.enums import (
    Complexity,
    OptionType,
    Perspective,
    Recommendation,
    RiskLevel,
)
from pricing_council.models.schemas import AgentView, CouncilContext, PricingOption

CONCENTRATED = {RiskLevel.HIGH.value, RiskLevel.CRITICAL.value}


class StrategyAgent(BaseAgent):
    perspective = Perspective.STRATEGY

    def _evaluate(self, option: PricingOption, context: CouncilContext) -> AgentView:
        risk = context.economics.concentration.risk_level if context.economics else RiskLevel.LOW.value
        competitive = context.competitive_context
        key_points: list[str] = []
        confidence = 0.65
        option_type = option.option_type

        if option_type == OptionType.MINIMUM_FEE.value:
            rec = Recommendation.SUPPORT
            key_points.append("Filters out customers below the cost-to-serve floor")
        elif option_type == OptionType.PRICE_INCREASE.value:
            if risk in CONCENTRATED:
                rec = Recommendation.OPPOSE
                key_points.append(f"Revenue concentration is {risk}; a broad increase risks key accounts")
            elif competitive and competitive.premium_competitors:
                rec = Recommendation.SUPPORT
                key_points.append("Premium competitors leave room to move up-market")
            else:
                rec = Recommendation.NEUTRAL
                key_points.append("No competitive signal either way")
        elif option_type in (OptionType.NEW_TIER.value, OptionType.PACKAGING.value):
            rec = Recommendation.SUPPORT
            key_points.append("Sharpens positioning against adjacent offers")
        else:
            rec = Recommendation.NEUTRAL
            key_points.append("Changes how the market compares our price")

        if option.complexity == Complexity.HIGH.value:
            key_points.append("Low reversibility: high complexity change is hard to undo")
            confidence -= 0.1
        elif option.complexity == Complexity.LOW.value:
            key_points.append("Easy to reverse if the market reacts badly")

        if competitive and competitive.competitors:
            confidence += 0.1
            key_points.append(f"Benchmarked against {len(competitive.competitors)} competitor(s)")

        reasoning = f"Concentration risk {risk}; complexity {option.complexity}."
        return self._view(
            rec,
            confidence,
            reasoning,
            key_points,
            impact={"concentration_risk": risk, "reversible": option.complexity != Complexity.HIGH.value},
        )
