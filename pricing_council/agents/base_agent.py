"""
Base class that every council perspective inherits.

Design:
  - `evaluate()` is called by the council evaluator for each option.
  - `_evaluate()` is the single abstract method; override in each agent.
  - Agents are pure: the same option and context give the same view.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from pricing_council.models.enums import Perspective, Recommendation
from pricing_council.models.schemas import AgentView, CouncilContext, PricingOption
from pricing_council.rules.rules_config import CouncilConfig, RulesConfigStore

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """Abstract base for the four council perspectives."""

    perspective: Perspective  # set in each subclass

    def __init__(self, rules: RulesConfigStore | None = None):
        self.config: CouncilConfig = (rules or RulesConfigStore()).get_council_config()

    # ── Public entry point ───────────────────────────────

    def evaluate(self, option: PricingOption, context: CouncilContext) -> AgentView:
        t0 = time.perf_counter()
        view = self._evaluate(option, context)
        elapsed = time.perf_counter() - t0
        logger.debug(
            f"[{self.perspective.value}] {option.id}: {view.recommendation} "
            f"(confidence {view.confidence:.2f}) in {elapsed * 1000:.1f}ms"
        )
        return view

    # ── Subclass hook ────────────────────────────────────

    @abstractmethod
    def _evaluate(self, option: PricingOption, context: CouncilContext) -> AgentView:
        ...

    # ── Helpers ──────────────────────────────────────────

    def _view(
        self,
        recommendation: Recommendation,
        confidence: float,
        reasoning: str,
        key_points: list[str],
        impact: dict[str, Any] | None = None,
    ) -> AgentView:
        return AgentView(
            perspective=self.perspective,
            reasoning=reasoning,
            key_points=key_points,
            recommendation=recommendation,
            confidence=max(0.0, min(1.0, confidence)),
            impact=impact or {},
        )


def affected(option: PricingOption, context: CouncilContext) -> list:
    """Segments the option touches (all populated segments when unscoped)."""
    if option.affected_segments:
        ids = set(option.affected_segments)
        return [s for s in context.segments if s.id in ids]
    return [s for s in context.segments if s.customer_count > 0]
