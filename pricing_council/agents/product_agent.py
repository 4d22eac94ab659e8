"""
Product perspective — weighs alignment with the value metric and the
implementation burden of the change.
"""

from __future__ import annotations

from pricing_council.agents.base_agent import BaseAgent
from pricing_council.models.enums import Complexity, OptionType, Perspective, Recommendation
from pricing_council.models.schemas import AgentView, CouncilContext, PricingOption


class ProductAgent(BaseAgent):
    perspective = Perspective.PRODUCT

    def _evaluate(self, option: PricingOption, context: CouncilContext) -> AgentView:
        metric = context.pricing_structure.primary_metric()
        correlation = metric.correlation_to_expansion if metric else 0.0
        key_points: list[str] = []
        confidence = 0.7

        if option.option_type == OptionType.VALUE_METRIC_CHANGE.value:
            if metric and correlation >= self.config.product_min_metric_correlation:
                rec = Recommendation.STRONGLY_SUPPORT
                key_points.append(f"Aligns price with {metric.name} (correlation {correlation:.2f})")
            else:
                rec = Recommendation.SUPPORT
                key_points.append("Value metric correlation to expansion is weak")
            confidence = 0.6 + 0.3 * max(correlation, 0.0)
        elif option.option_type in (OptionType.PACKAGING.value, OptionType.NEW_TIER.value):
            rec = Recommendation.SUPPORT
            key_points.append("Gives customers a clearer upgrade path")
        elif option.option_type == OptionType.MINIMUM_FEE.value:
            rec = Recommendation.OPPOSE
            key_points.append("Adds friction for low-usage customers trying the product")
        else:
            rec = Recommendation.NEUTRAL
            key_points.append("Price moves without any change in delivered value")

        if option.complexity == Complexity.HIGH.value:
            key_points.append("Implementation complexity is high: billing and metering must change")
            confidence -= 0.1

        reasoning = f"{option.option_type.replace('_', ' ').capitalize()} judged on value alignment."
        return self._view(
            rec,
            confidence,
            reasoning,
            key_points,
            impact={"value_metric": metric.name if metric else None, "complexity": option.complexity},
        )
