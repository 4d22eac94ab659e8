"""
LangGraph State Machine — the pricing analysis pipeline.

    load_ontology → compute_economics → generate_options
        → council_evaluation → select_recommendation → END

`load_ontology` routes to `end_no_data` when the organization has no
active segments. The pipeline only reads from persistence.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol

from langgraph.graph import END, StateGraph

from pricing_council.analytics.economics import EconomicsCalculator
from pricing_council.analytics.segmentation import SegmentationEngine
from pricing_council.config import get_settings
from pricing_council.errors import PricingCouncilError
from pricing_council.models.enums import ErrorKind, PipelineStatus
from pricing_council.models.schemas import (
    AnalysisResult,
    CompetitiveContext,
    CouncilContext,
    Customer,
    EconomicsSnapshot,
    ErrorDetail,
    PricingStructure,
    Segment,
)
from pricing_council.models.state import AnalysisState
from pricing_council.orchestration.council import CouncilEvaluator, rank_evaluations
from pricing_council.orchestration.transitions import route_after_load, route_after_options
from pricing_council.pricing.option_generator import PricingOptionGenerator
from pricing_council.rules.rules_config import RulesConfigStore

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No segments found; run setup first"
ARCHIVED_MESSAGE = "All segments are archived; create a segment or restore a snapshot"


class AnalysisDataSource(Protocol):
    """Read-only view of one organization's ontology and customers."""

    def list_segments(self, organization_id: str, active_only: bool = True) -> list[Segment]: ...

    def pricing_structure(self, organization_id: str) -> PricingStructure: ...

    def competitive_context(self, organization_id: str) -> CompetitiveContext | None: ...

    def list_customers(self, organization_id: str) -> list[Customer]: ...

    def latest_economics(self, organization_id: str) -> EconomicsSnapshot | None: ...


# ── Stage wrapper ────────────────────────────────────────

def _stage(name: str, fn: Callable[[AnalysisState], None]) -> Callable[[dict[str, Any]], dict[str, Any]]:
    """Hydrate the state, run one stage, log timing, hand back a dict."""

    def node(state: dict[str, Any]) -> dict[str, Any]:
        t0 = time.perf_counter()
        analysis = AnalysisState(**state)
        analysis.current_stage = name
        logger.info(f"▶ [{name}] {analysis.organization_id}")

        fn(analysis)

        elapsed = time.perf_counter() - t0
        analysis.stage_log.append(f"{name}: {elapsed:.3f}s")
        logger.info(f"✔ [{name}] completed in {elapsed:.3f}s")
        return analysis.model_dump()

    node.__name__ = name
    return node


# ── Build the graph ──────────────────────────────────────

def build_graph(source: AnalysisDataSource, rules: RulesConfigStore | None = None):
    """Construct and compile the analysis graph over a data source."""
    settings = get_settings()
    rules = rules or RulesConfigStore()
    segmentation = SegmentationEngine(settings.churn_window_months)
    calculator = EconomicsCalculator(rules)
    generator = PricingOptionGenerator(rules, settings.assumed_price_delta_percent)
    council = CouncilEvaluator(rules)

    def load_ontology(s: AnalysisState) -> None:
        org = s.organization_id
        s.segments = source.list_segments(org)
        s.pricing_structure = source.pricing_structure(org)
        s.competitive_context = source.competitive_context(org)
        s.status = PipelineStatus.LOADED

    def compute_economics(s: AnalysisState) -> None:
        org = s.organization_id
        customers = source.list_customers(org)
        if customers:
            s.segments = segmentation.segment(org, customers, s.segments)
            s.economics = calculator.compute(org, customers, s.segments)
        else:
            # No customer rows: fall back to the stored segment metrics
            s.economics = source.latest_economics(org) or calculator.compute(org, [], s.segments)
        s.status = PipelineStatus.ECONOMICS_COMPUTED

    def generate_options(s: AnalysisState) -> None:
        s.options = generator.generate(
            s.segments, s.economics, s.pricing_structure, s.competitive_context
        )
        s.status = PipelineStatus.OPTIONS_GENERATED

    def council_evaluation(s: AnalysisState) -> None:
        context = CouncilContext(
            segments=s.segments,
            economics=s.economics,
            pricing_structure=s.pricing_structure,
            competitive_context=s.competitive_context,
        )
        s.evaluations = council.evaluate_all(s.options, context)
        s.status = PipelineStatus.EVALUATED

    def select_recommendation(s: AnalysisState) -> None:
        ranked = rank_evaluations(s.evaluations, s.options)
        s.recommended_option_id = ranked[0].option_id if ranked else None
        s.status = PipelineStatus.COMPLETED
        logger.info(f"Recommended option: {s.recommended_option_id}")

    def end_no_data(s: AnalysisState) -> None:
        archived = source.list_segments(s.organization_id, active_only=False)
        message = ARCHIVED_MESSAGE if archived else NO_DATA_MESSAGE
        s.status = PipelineStatus.NO_DATA
        s.error = ErrorDetail(kind=ErrorKind.NOT_FOUND, message=message)
        logger.warning(f"Pipeline terminated for {s.organization_id}: {message}")

    graph = StateGraph(dict)

    # ── Add nodes ────────────────────────────────────────
    graph.add_node("load_ontology", _stage("load_ontology", load_ontology))
    graph.add_node("compute_economics", _stage("compute_economics", compute_economics))
    graph.add_node("generate_options", _stage("generate_options", generate_options))
    graph.add_node("council_evaluation", _stage("council_evaluation", council_evaluation))
    graph.add_node("select_recommendation", _stage("select_recommendation", select_recommendation))

    # Terminal node
    graph.add_node("end_no_data", _stage("end_no_data", end_no_data))

    # ── Set entry point ──────────────────────────────────
    graph.set_entry_point("load_ontology")

    # ── Add edges ────────────────────────────────────────
    graph.add_conditional_edges(
        "load_ontology",
        route_after_load,
        {
            "compute_economics": "compute_economics",
            "end_no_data": "end_no_data",
        },
    )
    graph.add_edge("compute_economics", "generate_options")
    graph.add_conditional_edges(
        "generate_options",
        route_after_options,
        {
            "council_evaluation": "council_evaluation",
            "select_recommendation": "select_recommendation",
        },
    )
    graph.add_edge("council_evaluation", "select_recommendation")

    # Terminal edges → END
    graph.add_edge("select_recommendation", END)
    graph.add_edge("end_no_data", END)

    return graph.compile()


# ── Convenience runner ───────────────────────────────────

def run_analysis(
    organization_id: str,
    source: AnalysisDataSource,
    rules: RulesConfigStore | None = None,
) -> AnalysisResult:
    """
    Run the analysis graph end-to-end for one organization.

    Domain errors come back as a failed AnalysisResult with a kind and
    message; partial results are never returned.
    """
    logger.info("═" * 60)
    logger.info(f"  PRICING ANALYSIS STARTING: {organization_id}")
    logger.info("═" * 60)

    try:
        compiled = build_graph(source, rules)
        final = AnalysisState(**compiled.invoke(AnalysisState(organization_id=organization_id).model_dump()))
    except PricingCouncilError as exc:
        logger.error(f"Analysis failed for {organization_id}: {exc.message}")
        return AnalysisResult(
            success=False,
            organization_id=organization_id,
            error=ErrorDetail(kind=exc.kind, message=exc.message),
        )

    logger.info("═" * 60)
    logger.info(f"  ANALYSIS FINISHED: status {final.status.value}")
    logger.info("═" * 60)

    if final.error is not None:
        return AnalysisResult(success=False, organization_id=organization_id, error=final.error)

    recommended = next((o for o in final.options if o.id == final.recommended_option_id), None)
    return AnalysisResult(
        success=True,
        organization_id=organization_id,
        segments=final.segments,
        options=final.options,
        evaluations=final.evaluations,
        recommended_option=recommended,
        economics=final.economics,
        pricing_structure=final.pricing_structure,
    )
