"""
LangGraph shared state for one analysis run.

Design rules:
  1. Each field is "owned" by one stage (see comments).
  2. Stages may READ any field but only WRITE to their owned fields.
  3. The run is read-only with respect to persistence.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .enums import PipelineStatus
from .schemas import (
    CompetitiveContext,
    CouncilEvaluation,
    EconomicsSnapshot,
    ErrorDetail,
    PricingOption,
    PricingStructure,
    Segment,
)


class AnalysisState(BaseModel):
    """The state passed through every analysis node."""

    # ── Pipeline control ─────────────────────────────────
    organization_id: str
    status: PipelineStatus = PipelineStatus.RECEIVED
    current_stage: str = ""
    error: Optional[ErrorDetail] = None
    stage_log: list[str] = []

    # ── load_ontology ────────────────────────────────────
    segments: list[Segment] = []
    pricing_structure: PricingStructure = Field(default_factory=PricingStructure)
    competitive_context: Optional[CompetitiveContext] = None

    # ── compute_economics ────────────────────────────────
    economics: Optional[EconomicsSnapshot] = None

    # ── generate_options ─────────────────────────────────
    options: list[PricingOption] = []

    # ── council_evaluation ───────────────────────────────
    evaluations: list[CouncilEvaluation] = []

    # ── select_recommendation ────────────────────────────
    recommended_option_id: Optional[str] = None
