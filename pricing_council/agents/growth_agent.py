"""
Growth perspective — weighs expected churn increase across affected segments.
"""

from __future__ import annotations

from pricing_council.agents.base_agent import BaseAgent, affected
from pricing_council.models.enums import OptionType, Perspective, Recommendation
from pricing_council.models.schemas import AgentView, CouncilContext, PricingOption

EXPANSION_LEVERS = {
    OptionType.PACKAGING.value,
    OptionType.VALUE_METRIC_CHANGE.value,
    OptionType.NEW_TIER.value,
}


class GrowthAgent(BaseAgent):
    perspective = Perspective.GROWTH

    def _evaluate(self, option: PricingOption, context: CouncilContext) -> AgentView:
        cfg = self.config
        churn = option.impact.expected_churn_increase
        segments = affected(option, context)

        if churn > cfg.growth_strong_oppose_churn:
            rec = Recommendation.STRONGLY_OPPOSE
        elif churn > cfg.growth_oppose_churn:
            rec = Recommendation.OPPOSE
        elif churn > cfg.growth_caution_churn:
            rec = Recommendation.NEUTRAL
        elif option.option_type in EXPANSION_LEVERS:
            rec = Recommendation.STRONGLY_SUPPORT
        else:
            rec = Recommendation.SUPPORT

        key_points = []
        if churn > cfg.growth_notable_churn:
            key_points.append(f"Adds {churn:.1%} churn in affected segments")
        else:
            key_points.append("Retention impact is negligible")
        if option.option_type in EXPANSION_LEVERS:
            key_points.append("Creates an expansion path for existing customers")

        hot = [s.name for s in segments if s.churn_rate > cfg.growth_segment_churn_alert]
        if hot:
            key_points.append(f"Targets segments with elevated churn already: {', '.join(hot)}")
            if rec in (Recommendation.SUPPORT, Recommendation.STRONGLY_SUPPORT):
                rec = Recommendation.NEUTRAL

        confidence = 0.75 if segments else 0.5
        reasoning = (
            f"Expected churn increase {churn:.1%} across "
            f"{len(segments)} segment(s)."
        )
        return self._view(
            rec,
            confidence,
            reasoning,
            key_points,
            impact={
                "expected_churn_increase": churn,
                "affected_segments": [s.id for s in segments],
            },
        )
