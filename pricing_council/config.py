"""
Application configuration using Pydantic Settings.
All environment-specific values are centralized here.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "Pricing Council"
    debug: bool = True

    # ── Storage ──────────────────────────────────────────
    storage_backend: str = "memory"  # "memory" | "mongo"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "pricing_council"

    # ── Analytics windows ────────────────────────────────
    churn_window_months: int = 12
    retention_period_months: int = 12
    assumed_price_delta_percent: float = 1.0
    movements_period_months: int = 1

    # ── Rules config ─────────────────────────────────────
    rules_from_mongo: bool = False  # load heuristic thresholds from MongoDB

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "text"  # "text" | "short"
    log_file: str | None = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()
