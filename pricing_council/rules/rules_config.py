"""
Rules Config Store — thresholds for the economics, option and council
heuristics.

Company-level setting: thresholds are configured once and cached.
Falls back to the defaults below when MongoDB is disabled or empty.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from pricing_council.config import get_settings

logger = logging.getLogger(__name__)


# ── Config models ────────────────────────────────────────

class ConcentrationConfig(BaseModel):
    """HHI risk bands (percentage-point HHI, 0–10000)."""
    moderate_hhi: float = 1500.0  # below → low
    high_hhi: float = 2500.0  # above → high / critical
    critical_top_10_share: float = 0.7
    top_share_fraction: float = 0.1  # "top decile"


class SensitivityConfig(BaseModel):
    """Price elasticity assumptions per segment."""
    segment_elasticity: dict[str, float] = {}  # segment id or name → coefficient
    # (revenue share above, elasticity); first match wins
    share_bands: list[tuple[float, float]] = [(0.5, -0.3), (0.2, -0.5)]
    default_elasticity: float = -0.8
    optimal_range_low: float = 0.8
    optimal_range_high: float = 1.2


class OptionConfig(BaseModel):
    """Levers used by the pricing option generator."""
    price_increase_percent: float = 0.10
    price_increase_max_elasticity: float = -0.5  # target segments at least this inelastic
    new_tier_uptake: float = 0.15
    value_metric_lift: float = 0.15
    value_metric_churn: float = 0.03
    packaging_lift: float = 0.06
    packaging_churn: float = 0.01
    minimum_fee_monthly: float = 49.0
    minimum_fee_churn: float = 0.15
    low_churn_threshold: float = 0.01
    moderate_churn_threshold: float = 0.05
    bound_widths: dict[str, float] = {"low": 0.2, "moderate": 0.4, "high": 0.7}
    risk_confidence: dict[str, float] = {"low": 0.8, "moderate": 0.65, "high": 0.5}
    competitive_confidence_penalty: float = 0.1


class CouncilConfig(BaseModel):
    """Per-perspective heuristic thresholds."""
    finance_support_percent: float = 5.0
    finance_strong_confidence: float = 0.8
    finance_min_confidence: float = 0.6
    finance_payback_months: int = 6
    growth_oppose_churn: float = 0.10
    growth_strong_oppose_churn: float = 0.20
    growth_caution_churn: float = 0.05
    growth_notable_churn: float = 0.01
    growth_segment_churn_alert: float = 0.10
    product_min_metric_correlation: float = 0.3
    cost_keywords: list[str] = ["churn", "complexity"]


# ── Store class ──────────────────────────────────────────

class RulesConfigStore:
    """
    Loads rule configs from MongoDB when `rules_from_mongo` is set.
    Cached after first load for the lifetime of the store.
    """

    def __init__(self):
        self.settings = get_settings()
        self._db = None
        self._cache: dict[str, Any] = {}

    def _get_db(self):
        if self._db is not None or not self.settings.rules_from_mongo:
            return self._db
        try:
            client = MongoClient(self.settings.mongodb_uri, serverSelectionTimeoutMS=2000)
            self._db = client[self.settings.mongodb_database]
        except PyMongoError as e:
            logger.warning(f"MongoDB not available, using default rules: {e}")
            self._db = None
        return self._db

    def _load_config(self, rule_type: str, model_cls: type[BaseModel]) -> BaseModel:
        """Load from MongoDB or return defaults."""
        if rule_type in self._cache:
            return self._cache[rule_type]

        db = self._get_db()
        if db is not None:
            try:
                doc = db.rules_config.find_one({"rule_type": rule_type})
                if doc and "config" in doc:
                    config = model_cls(**doc["config"])
                    self._cache[rule_type] = config
                    return config
            except PyMongoError as e:
                logger.warning(f"Failed loading {rule_type} rules from MongoDB: {e}")

        config = model_cls()
        self._cache[rule_type] = config
        return config

    def get_concentration_config(self) -> ConcentrationConfig:
        return self._load_config("concentration", ConcentrationConfig)  # type: ignore[return-value]

    def get_sensitivity_config(self) -> SensitivityConfig:
        return self._load_config("sensitivity", SensitivityConfig)  # type: ignore[return-value]

    def get_option_config(self) -> OptionConfig:
        return self._load_config("options", OptionConfig)  # type: ignore[return-value]

    def get_council_config(self) -> CouncilConfig:
        return self._load_config("council", CouncilConfig)  # type: ignore[return-value]

    def set_config(self, rule_type: str, config: BaseModel) -> None:
        """Override a config in-process (tests, per-request tuning)."""
        self._cache[rule_type] = config
