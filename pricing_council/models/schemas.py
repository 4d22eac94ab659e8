"""
Domain schemas for the pricing ontology, analytics output, pricing options,
council evaluations, snapshots, audit rows and decisions.

Every persisted entity is scoped by `organization_id`.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import (
    AuditAction,
    Complexity,
    Consensus,
    CustomerStatus,
    EntityType,
    ErrorKind,
    MetricType,
    OptionType,
    PatternType,
    Perspective,
    Recommendation,
    RiskLevel,
    RiskProfile,
)

RETENTION_CURVE_POINTS = 12
UNLIMITED = "unlimited"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class OrgEntity(BaseModel):
    """Base for everything stored per organization."""

    model_config = ConfigDict(use_enum_values=True)

    organization_id: str


# ── Unified Customer Store ───────────────────────────────


class ExpansionEvent(BaseModel):
    """An MRR change on an existing customer."""
    occurred_at: datetime
    from_mrr: float = Field(ge=0)
    to_mrr: float = Field(ge=0)

    @property
    def delta(self) -> float:
        return self.to_mrr - self.from_mrr

    @property
    def is_expansion(self) -> bool:
        return self.to_mrr > self.from_mrr


class Customer(OrgEntity):
    """Normalized customer row. Read-only from the analytics core."""
    id: str = Field(default_factory=lambda: new_id("cus"))
    name: str = ""
    mrr: float = Field(ge=0)
    ltv: float = Field(default=0.0, ge=0)
    tenure_months: int = Field(default=0, ge=0)
    segment_id: Optional[str] = None
    plan_id: Optional[str] = None
    company_size: str = ""
    status: CustomerStatus = CustomerStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    churned_at: Optional[datetime] = None
    expansion_events: list[ExpansionEvent] = []
    usage: dict[str, float] = {}  # value metric name -> monthly usage

    @model_validator(mode="after")
    def check_churned_at(self) -> "Customer":
        if self.status == CustomerStatus.CHURNED.value and self.churned_at is None:
            raise ValueError(f"Customer {self.id} is churned but has no churned_at")
        return self

    @property
    def is_churned(self) -> bool:
        return self.status == CustomerStatus.CHURNED.value


# ── Ontology entities ────────────────────────────────────


class SegmentCriteria(BaseModel):
    """Structured predicate over customer attributes. Ranges are [min, max)."""
    mrr_min: Optional[float] = None
    mrr_max: Optional[float] = None
    tenure_min: Optional[int] = None
    tenure_max: Optional[int] = None
    company_sizes: list[str] = []
    statuses: list[CustomerStatus] = []

    model_config = ConfigDict(use_enum_values=True)

    def is_empty(self) -> bool:
        return (
            self.mrr_min is None
            and self.mrr_max is None
            and self.tenure_min is None
            and self.tenure_max is None
            and not self.company_sizes
            and not self.statuses
        )

    def matches(self, customer: Customer) -> bool:
        if self.is_empty():
            return False
        if self.mrr_min is not None and customer.mrr < self.mrr_min:
            return False
        if self.mrr_max is not None and customer.mrr >= self.mrr_max:
            return False
        if self.tenure_min is not None and customer.tenure_months < self.tenure_min:
            return False
        if self.tenure_max is not None and customer.tenure_months >= self.tenure_max:
            return False
        if self.company_sizes and customer.company_size not in self.company_sizes:
            return False
        if self.statuses and customer.status not in self.statuses:
            return False
        return True


class Segment(OrgEntity):
    id: str = Field(default_factory=lambda: new_id("seg"))
    name: str
    description: str = ""
    criteria: SegmentCriteria = Field(default_factory=SegmentCriteria)
    priority: int = 0
    customer_count: int = Field(default=0, ge=0)
    total_revenue: float = Field(default=0.0, ge=0)
    revenue_share: float = Field(default=0.0, ge=0, le=1)
    avg_mrr: float = 0.0
    median_mrr: float = 0.0
    avg_ltv: float = 0.0
    median_ltv: float = 0.0
    retention_rate: float = Field(default=0.0, ge=0, le=1)
    churn_rate: float = Field(default=0.0, ge=0, le=1)
    expansion_rate: float = Field(default=0.0, ge=0)
    retention_curve: list[float] = Field(
        default_factory=lambda: [0.0] * RETENTION_CURVE_POINTS
    )
    value_drivers: list[str] = []
    is_system_generated: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("retention_curve")
    @classmethod
    def check_retention_curve(cls, v: list[float]) -> list[float]:
        if len(v) != RETENTION_CURVE_POINTS:
            raise ValueError(
                f"retention_curve must have {RETENTION_CURVE_POINTS} points, got {len(v)}"
            )
        return v


class PricingTier(OrgEntity):
    id: str = Field(default_factory=lambda: new_id("tier"))
    name: str
    description: str = ""
    price_monthly: float = Field(ge=0)
    price_annual: Optional[float] = None
    position: int = Field(ge=1)
    value_metric_limits: dict[str, Union[float, str]] = {}
    features: list[str] = []
    customer_count: int = Field(default=0, ge=0)
    total_revenue: float = Field(default=0.0, ge=0)
    revenue_share: float = Field(default=0.0, ge=0, le=1)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("value_metric_limits")
    @classmethod
    def check_metric_limits(cls, v: dict[str, Any]) -> dict[str, Any]:
        for name, limit in v.items():
            if isinstance(limit, str) and limit != UNLIMITED:
                raise ValueError(f"Limit for '{name}' must be a number or '{UNLIMITED}'")
        return v


class ValueMetric(OrgEntity):
    id: str = Field(default_factory=lambda: new_id("vm"))
    name: str
    description: str = ""
    metric_type: MetricType = MetricType.PRIMARY
    correlation_to_expansion: float = Field(default=0.0, ge=-1, le=1)
    measurement_method: str = ""
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Pattern(OrgEntity):
    id: str = Field(default_factory=lambda: new_id("pat"))
    name: str
    pattern_type: PatternType
    description: str = ""
    affected_segments: list[str] = []
    confidence: float = Field(default=0.5, ge=0, le=1)
    frequency: float = Field(default=0.0, ge=0)  # share of customers exhibiting it
    recommended_action: str = ""
    is_system_generated: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Competitor(OrgEntity):
    id: str = Field(default_factory=lambda: new_id("comp"))
    name: str
    positioning: str = ""  # "premium" | "mid-market" | "budget"
    pricing_model: str = ""
    price_low: Optional[float] = None
    price_high: Optional[float] = None
    key_differentiators: list[str] = []
    estimated_market_share: Optional[float] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class CompetitiveContext(BaseModel):
    competitors: list[Competitor] = []
    market: str = ""

    @property
    def premium_competitors(self) -> list[Competitor]:
        return [c for c in self.competitors if c.positioning == "premium"]

    def price_ceiling(self) -> Optional[float]:
        highs = [c.price_high for c in self.competitors if c.price_high is not None]
        return max(highs) if highs else None


# ── Economics ────────────────────────────────────────────


class ConcentrationMetrics(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    top_10_percent_revenue_share: float = 0.0
    top_customer_revenue_share: float = 0.0
    hhi_index: float = Field(default=0.0, ge=0, le=10000)
    risk_level: RiskLevel = RiskLevel.LOW
    description: str = ""


class SegmentSensitivity(BaseModel):
    model_config = ConfigDict(frozen=True)

    segment_id: str
    segment_name: str = ""
    elasticity: float
    churn_per_percent_increase: float
    optimal_price_low: float = 0.0
    optimal_price_high: float = 0.0


class SegmentEconomics(BaseModel):
    model_config = ConfigDict(frozen=True)

    segment_id: str
    segment_name: str = ""
    mrr: float = 0.0
    arpu: float = 0.0
    ltv: float = 0.0
    churn_rate: float = 0.0
    expansion_rate: float = 0.0


class MRRMovements(BaseModel):
    """MRR waterfall for one period: starting + new + expansion - contraction - churn = ending."""

    model_config = ConfigDict(frozen=True)

    period_start: datetime
    period_end: datetime
    starting_mrr: float = 0.0
    new_mrr: float = 0.0
    expansion_mrr: float = 0.0
    contraction_mrr: float = 0.0
    churn_mrr: float = 0.0
    net_new_mrr: float = 0.0
    ending_mrr: float = 0.0
    new_customers: int = 0
    expansion_customers: int = 0
    contraction_customers: int = 0
    churned_customers: int = 0
    quick_ratio: Optional[float] = None  # (new + expansion) / (contraction + churn)


class EconomicsSnapshot(OrgEntity):
    """Immutable point-in-time aggregate for one organization."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: str = Field(default_factory=lambda: new_id("econ"))
    snapshot_date: datetime = Field(default_factory=utcnow)
    total_mrr: float = 0.0
    total_arr: float = 0.0
    total_customers: int = 0
    arpu: float = 0.0
    avg_ltv: float = 0.0
    net_revenue_retention: float = 0.0
    gross_revenue_retention: float = 0.0
    mrr_growth_rate: float = 0.0
    concentration: ConcentrationMetrics = Field(default_factory=ConcentrationMetrics)
    price_sensitivity: list[SegmentSensitivity] = []
    segment_economics: list[SegmentEconomics] = []
    mrr_movements: Optional[MRRMovements] = None

    def sensitivity_for(self, segment_id: str) -> Optional[SegmentSensitivity]:
        for s in self.price_sensitivity:
            if s.segment_id == segment_id:
                return s
        return None


class CustomerHealth(BaseModel):
    """Rule-based health of one active customer. Scores are 0-100, signals 0-1."""
    customer_id: str
    segment_id: Optional[str] = None
    usage_score: int
    engagement_score: int
    financial_score: int
    health_score: int
    upgrade_readiness: float
    churn_risk: float
    expansion_potential: float
    flags: list[str] = []


class HealthReport(BaseModel):
    organization_id: str
    as_of: datetime
    scores: list[CustomerHealth] = []
    healthy: int = 0  # 70-100
    at_risk: int = 0  # 40-69
    critical: int = 0  # 0-39
    avg_health_score: float = 0.0
    insights: list[str] = []


class PricingStructure(BaseModel):
    model_type: str = "tiered"
    tiers: list[PricingTier] = []
    value_metrics: list[ValueMetric] = []

    def primary_metric(self) -> Optional[ValueMetric]:
        primaries = [m for m in self.value_metrics if m.metric_type == MetricType.PRIMARY.value]
        pool = primaries or self.value_metrics
        if not pool:
            return None
        return max(pool, key=lambda m: m.correlation_to_expansion)


# ── Pricing options ──────────────────────────────────────


class PricingChange(BaseModel):
    change_type: str
    target: str
    from_value: Any = None
    to_value: Any = None
    description: str = ""


class ImpactModel(BaseModel):
    expected_arr_change: float = 0.0
    expected_arr_change_percent: float = 0.0
    optimistic_arr_change: float = 0.0
    pessimistic_arr_change: float = 0.0
    expected_churn_increase: float = 0.0
    time_to_full_impact_months: int = 3
    confidence: float = Field(default=0.5, ge=0, le=1)


class PricingOption(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    option_type: OptionType
    name: str
    description: str
    changes: list[PricingChange] = []
    impact: ImpactModel = Field(default_factory=ImpactModel)
    risk_profile: RiskProfile = RiskProfile.MODERATE
    complexity: Complexity = Complexity.MEDIUM
    affected_segments: list[str] = []
    rationale: str = ""


# ── Council ──────────────────────────────────────────────


class CouncilContext(BaseModel):
    """Everything a perspective may look at besides the option itself."""
    segments: list[Segment] = []
    economics: Optional[EconomicsSnapshot] = None
    pricing_structure: PricingStructure = Field(default_factory=PricingStructure)
    competitive_context: Optional[CompetitiveContext] = None


class AgentView(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    perspective: Perspective
    reasoning: str = ""
    key_points: list[str] = []
    recommendation: Recommendation = Recommendation.NEUTRAL
    confidence: float = Field(default=0.5, ge=0, le=1)
    impact: dict[str, Any] = {}

    @property
    def score(self) -> int:
        return Recommendation(self.recommendation).score


class TradeOff(BaseModel):
    perspective: Perspective
    concern: str
    supported_by: Perspective


class CouncilRecommendation(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    option_id: str = ""
    consensus: Consensus
    score: float = 0.0
    reasoning_chain: list[str] = []
    trade_offs: list[TradeOff] = []
    summary: str = ""


class CouncilEvaluation(BaseModel):
    option_id: str
    finance_view: AgentView
    growth_view: AgentView
    product_view: AgentView
    strategy_view: AgentView
    recommendation: CouncilRecommendation

    @property
    def views(self) -> list[AgentView]:
        return [self.finance_view, self.growth_view, self.product_view, self.strategy_view]


# ── Snapshots, audit, decisions ──────────────────────────


class OntologySnapshot(OrgEntity):
    id: str = Field(default_factory=lambda: new_id("snap"))
    version: int = Field(ge=1)
    description: str = ""
    triggered_by: str = "manual"
    trigger_details: dict[str, Any] = {}
    segments: list[dict[str, Any]] = []
    pricing_tiers: list[dict[str, Any]] = []
    value_metrics: list[dict[str, Any]] = []
    patterns: list[dict[str, Any]] = []
    competitors: list[dict[str, Any]] = []
    economics: Optional[dict[str, Any]] = None
    options: list[dict[str, Any]] = []
    content_hash: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    def find_option(self, option_id: str) -> Optional[dict[str, Any]]:
        for opt in self.options:
            if opt.get("id") == option_id:
                return opt
        return None


class OntologyAuditLog(OrgEntity):
    id: str = Field(default_factory=lambda: new_id("audit"))
    entity_type: EntityType
    entity_id: str
    action: AuditAction
    previous_state: Optional[dict[str, Any]] = None
    new_state: Optional[dict[str, Any]] = None
    changed_fields: list[str] = []
    triggered_by: str = "user"
    decision_record_id: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class DecisionOutcome(BaseModel):
    measured_at: datetime = Field(default_factory=utcnow)
    actual_arr_change: float
    actual_churn_change: Optional[float] = None
    accuracy_score: Optional[float] = None
    learnings: str = ""


class DecisionRecord(OrgEntity):
    id: str = Field(default_factory=lambda: new_id("dec"))
    question: str
    context: dict[str, Any] = {}
    options_considered: list[str] = []
    chosen_option_id: Optional[str] = None
    reasoning: str
    ontology_snapshot_id: str
    decided_by: str = "user"
    decision_confidence: Optional[float] = Field(default=None, ge=0, le=1)
    created_at: datetime = Field(default_factory=utcnow)
    outcome: Optional[DecisionOutcome] = None


# ── Analysis result ──────────────────────────────────────


class ErrorDetail(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    kind: ErrorKind
    message: str


class AnalysisResult(BaseModel):
    success: bool = True
    organization_id: str
    segments: list[Segment] = []
    options: list[PricingOption] = []
    evaluations: list[CouncilEvaluation] = []
    recommended_option: Optional[PricingOption] = None
    economics: Optional[EconomicsSnapshot] = None
    pricing_structure: Optional[PricingStructure] = None
    error: Optional[ErrorDetail] = None
