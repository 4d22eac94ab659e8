"""
Council Evaluator — runs the four perspectives on every option, synthesizes
a consensus verdict and ranks the options.

Synthesis and ranking are total, pure functions of their inputs.
"""

from __future__ import annotations

import logging

from pricing_council.agents import FinanceAgent, GrowthAgent, ProductAgent, StrategyAgent
from pricing_council.models.enums import Consensus
from pricing_council.models.schemas import (
    AgentView,
    CouncilContext,
    CouncilEvaluation,
    CouncilRecommendation,
    PricingOption,
    TradeOff,
)
from pricing_council.rules.rules_config import RulesConfigStore

logger = logging.getLogger(__name__)

DEFAULT_COST_KEYWORDS = ("churn", "complexity")


# ── Synthesis ────────────────────────────────────────────

def consensus_level(scores: list[int]) -> Consensus:
    """
    strong    every score shares one sign and at least two have magnitude 2
    moderate  every score shares one sign
    weak      a strict majority (3 of 4) shares one sign
    divided   anything else (neutral scores agree with nobody)
    """
    positive = sum(1 for s in scores if s > 0)
    negative = sum(1 for s in scores if s < 0)
    total = len(scores)
    if total and (positive == total or negative == total):
        if sum(1 for s in scores if abs(s) >= 2) >= 2:
            return Consensus.STRONG
        return Consensus.MODERATE
    if max(positive, negative) * 2 > total:
        return Consensus.WEAK
    return Consensus.DIVIDED


def collect_trade_offs(
    views: list[AgentView],
    cost_keywords: tuple[str, ...] | list[str] = DEFAULT_COST_KEYWORDS,
) -> list[TradeOff]:
    """Pair every cost key point with every other perspective that supports."""
    supporters = [v for v in views if v.score > 0]
    trade_offs: list[TradeOff] = []
    for view in views:
        for point in view.key_points:
            lowered = point.lower()
            if not any(k in lowered for k in cost_keywords):
                continue
            for supporter in supporters:
                if supporter.perspective != view.perspective:
                    trade_offs.append(TradeOff(
                        perspective=view.perspective,
                        concern=point,
                        supported_by=supporter.perspective,
                    ))
    return trade_offs


def synthesize_recommendation(
    views: list[AgentView],
    option_id: str = "",
    cost_keywords: tuple[str, ...] | list[str] = DEFAULT_COST_KEYWORDS,
) -> CouncilRecommendation:
    scores = [v.score for v in views]
    consensus = consensus_level(scores)
    mean_score = sum(scores) / len(scores) if scores else 0.0
    positive = sum(1 for s in scores if s > 0)
    negative = sum(1 for s in scores if s < 0)

    reasoning_chain = [
        f"{v.perspective}: {v.recommendation} ({v.confidence:.0%}). {v.reasoning}".strip()
        for v in views
    ]
    reasoning_chain.append(f"Consensus {consensus.value} with mean score {mean_score:+.2f}")

    if positive > negative:
        direction = "in favour"
    elif negative > positive:
        direction = "against"
    else:
        direction = "split"
    summary = (
        f"{positive} of {len(views)} perspectives support, {negative} oppose: "
        f"{consensus.value} consensus {direction}."
    )
    return CouncilRecommendation(
        option_id=option_id,
        consensus=consensus,
        score=round(mean_score, 4),
        reasoning_chain=reasoning_chain,
        trade_offs=collect_trade_offs(views, cost_keywords),
        summary=summary,
    )


# ── Ranking ──────────────────────────────────────────────

def rank_evaluations(
    evaluations: list[CouncilEvaluation],
    options: list[PricingOption],
) -> list[CouncilEvaluation]:
    """Consensus level first, then expected ARR change descending, then input order."""
    expected = {o.id: o.impact.expected_arr_change for o in options}
    indexed = list(enumerate(evaluations))
    indexed.sort(
        key=lambda pair: (
            -Consensus(pair[1].recommendation.consensus).rank,
            -expected.get(pair[1].option_id, 0.0),
            pair[0],
        )
    )
    return [ev for _, ev in indexed]


# ── Evaluator ────────────────────────────────────────────

class CouncilEvaluator:
    """Applies finance, growth, product and strategy to each option."""

    def __init__(self, rules: RulesConfigStore | None = None):
        rules = rules or RulesConfigStore()
        self.cost_keywords = tuple(rules.get_council_config().cost_keywords)
        self.finance = FinanceAgent(rules)
        self.growth = GrowthAgent(rules)
        self.product = ProductAgent(rules)
        self.strategy = StrategyAgent(rules)

    def evaluate(self, option: PricingOption, context: CouncilContext) -> CouncilEvaluation:
        finance = self.finance.evaluate(option, context)
        growth = self.growth.evaluate(option, context)
        product = self.product.evaluate(option, context)
        strategy = self.strategy.evaluate(option, context)
        recommendation = synthesize_recommendation(
            [finance, growth, product, strategy], option.id, self.cost_keywords
        )
        logger.info(f"[council] {option.id}: {recommendation.consensus} ({recommendation.score:+.2f})")
        return CouncilEvaluation(
            option_id=option.id,
            finance_view=finance,
            growth_view=growth,
            product_view=product,
            strategy_view=strategy,
            recommendation=recommendation,
        )

    def evaluate_all(self, options: list[PricingOption], context: CouncilContext) -> list[CouncilEvaluation]:
        return [self.evaluate(o, context) for o in options]
