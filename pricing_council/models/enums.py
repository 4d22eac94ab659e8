from enum import Enum


class CustomerStatus(str, Enum):
    ACTIVE = "active"
    CHURNED = "churned"
    AT_RISK = "at_risk"


class MetricType(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class PatternType(str, Enum):
    UPGRADE_TRIGGER = "upgrade_trigger"
    CHURN_SIGNAL = "churn_signal"
    EXPANSION_READY = "expansion_ready"
    SEASONAL = "seasonal"
    DISCOUNT_SENSITIVE = "discount_sensitive"
    PRICE_ANCHOR = "price_anchor"


class RiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class OptionType(str, Enum):
    PRICE_INCREASE = "price_increase"
    NEW_TIER = "new_tier"
    VALUE_METRIC_CHANGE = "value_metric_change"
    PACKAGING = "packaging"
    MINIMUM_FEE = "minimum_fee"


class RiskProfile(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Perspective(str, Enum):
    FINANCE = "finance"
    GROWTH = "growth"
    PRODUCT = "product"
    STRATEGY = "strategy"


class Recommendation(str, Enum):
    STRONGLY_SUPPORT = "strongly_support"
    SUPPORT = "support"
    NEUTRAL = "neutral"
    OPPOSE = "oppose"
    STRONGLY_OPPOSE = "strongly_oppose"

    @property
    def score(self) -> int:
        return RECOMMENDATION_SCORES[self]


RECOMMENDATION_SCORES = {
    Recommendation.STRONGLY_SUPPORT: 2,
    Recommendation.SUPPORT: 1,
    Recommendation.NEUTRAL: 0,
    Recommendation.OPPOSE: -1,
    Recommendation.STRONGLY_OPPOSE: -2,
}


class Consensus(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    DIVIDED = "divided"

    @property
    def rank(self) -> int:
        """Higher is better; used when ranking options."""
        return {"strong": 3, "moderate": 2, "weak": 1, "divided": 0}[self.value]


class EntityType(str, Enum):
    SEGMENT = "segment"
    PRICING_TIER = "pricing_tier"
    VALUE_METRIC = "value_metric"
    PATTERN = "pattern"
    COMPETITOR = "competitor"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ARCHIVE = "archive"


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    COMPUTATION_DEGENERATE = "computation_degenerate"
    PERSISTENCE_FAILURE = "persistence_failure"
    AUDIT_FAILURE = "audit_failure"


class PipelineStatus(str, Enum):
    RECEIVED = "RECEIVED"
    LOADED = "LOADED"
    ECONOMICS_COMPUTED = "ECONOMICS_COMPUTED"
    OPTIONS_GENERATED = "OPTIONS_GENERATED"
    EVALUATED = "EVALUATED"
    COMPLETED = "COMPLETED"
    NO_DATA = "NO_DATA"
