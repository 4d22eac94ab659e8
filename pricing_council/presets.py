"""
Company presets used to seed an organization's ontology.

Each preset describes segments (with shares and unit metrics), pricing
tiers, value metrics and competitors for a realistic B2B subscription
business.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel

from pricing_council.errors import NotFoundError


class PresetSegment(BaseModel):
    name: str
    description: str = ""
    customer_share: float
    revenue_share: float
    avg_mrr: float
    churn_rate: float
    expansion_rate: float
    mrr_min: float
    mrr_max: Optional[float] = None
    value_drivers: list[str] = []


class PresetTier(BaseModel):
    name: str
    price_monthly: float
    price_annual: Optional[float] = None
    position: int
    features: list[str] = []
    value_metric_limits: dict[str, Union[float, str]] = {}
    customer_share: float = 0.0
    revenue_share: float = 0.0


class PresetMetric(BaseModel):
    name: str
    metric_type: str = "secondary"
    correlation_to_expansion: float = 0.0
    measurement_method: str = ""


class PresetCompetitor(BaseModel):
    name: str
    positioning: str
    pricing_model: str
    price_low: Optional[float] = None
    price_high: Optional[float] = None
    key_differentiators: list[str] = []


class Preset(BaseModel):
    id: str
    label: str
    description: str
    market: str
    pricing_model: str
    total_customers: int
    total_arr: float
    segments: list[PresetSegment]
    tiers: list[PresetTier]
    value_metrics: list[PresetMetric]
    competitors: list[PresetCompetitor] = []


DEVTOOLS = Preset(
    id="devtools",
    label="StreamAPI",
    description="Developer communication APIs for email, SMS, push and auth.",
    market="Developer Communication APIs",
    pricing_model="usage_based",
    total_customers=3200,
    total_arr=18_500_000,
    segments=[
        PresetSegment(
            name="Enterprise",
            description="Dedicated infrastructure, custom SLAs, SSO. 10M+ API calls/month.",
            customer_share=0.08, revenue_share=0.58, avg_mrr=12000,
            churn_rate=0.003, expansion_rate=0.12,
            mrr_min=5000,
            value_drivers=["99.99% SLA", "Dedicated IP pools", "SSO/SAML", "Premium support"],
        ),
        PresetSegment(
            name="Growth",
            description="Scale-ups sending 1-10M API calls/month.",
            customer_share=0.15, revenue_share=0.28, avg_mrr=2900,
            churn_rate=0.015, expansion_rate=0.2,
            mrr_min=1000, mrr_max=5000,
            value_drivers=["Deliverability analytics", "Multi-channel", "Webhook reliability"],
        ),
        PresetSegment(
            name="Startup",
            description="Early-stage companies sending 10K-1M API calls/month.",
            customer_share=0.17, revenue_share=0.12, avg_mrr=110,
            churn_rate=0.035, expansion_rate=0.3,
            mrr_min=20, mrr_max=1000,
            value_drivers=["Quick integration", "Clear documentation", "Transparent pricing"],
        ),
        PresetSegment(
            name="Free Developer",
            description="Side projects and evaluation users on the free tier.",
            customer_share=0.6, revenue_share=0.02, avg_mrr=5,
            churn_rate=0.1, expansion_rate=0.04,
            mrr_min=0, mrr_max=20,
            value_drivers=["Free tier", "Great documentation", "Community support"],
        ),
    ],
    tiers=[
        PresetTier(name="Free", price_monthly=0, position=1,
                   value_metric_limits={"api_calls": 10_000}, customer_share=0.5, revenue_share=0.005),
        PresetTier(name="Starter", price_monthly=29, price_annual=290, position=2,
                   value_metric_limits={"api_calls": 100_000}, customer_share=0.22, revenue_share=0.06),
        PresetTier(name="Pro", price_monthly=99, price_annual=990, position=3,
                   value_metric_limits={"api_calls": 1_000_000}, customer_share=0.16, revenue_share=0.14),
        PresetTier(name="Business", price_monthly=299, price_annual=2990, position=4,
                   value_metric_limits={"api_calls": 10_000_000}, customer_share=0.09, revenue_share=0.28),
        PresetTier(name="Enterprise", price_monthly=999, price_annual=9990, position=5,
                   value_metric_limits={"api_calls": "unlimited"}, customer_share=0.03, revenue_share=0.515),
    ],
    value_metrics=[
        PresetMetric(name="API calls", metric_type="primary", correlation_to_expansion=0.78,
                     measurement_method="Monthly API requests"),
        PresetMetric(name="channels used", correlation_to_expansion=0.45),
        PresetMetric(name="monthly active users reached", correlation_to_expansion=0.4),
        PresetMetric(name="webhook events delivered", correlation_to_expansion=0.3),
    ],
    competitors=[
        PresetCompetitor(name="Twilio", positioning="premium",
                         pricing_model="Pure usage-based",
                         key_differentiators=["Broadest channel coverage", "Global carrier network"]),
        PresetCompetitor(name="SendGrid", positioning="mid-market",
                         pricing_model="Freemium + tiered subscription", price_low=0, price_high=89.95,
                         key_differentiators=["Email deliverability expertise"]),
        PresetCompetitor(name="Mailgun", positioning="mid-market",
                         pricing_model="Usage-based with tiered plans", price_low=0, price_high=90,
                         key_differentiators=["Email validation", "Inbox placement testing"]),
        PresetCompetitor(name="Vonage", positioning="premium",
                         pricing_model="Usage-based with enterprise contracts",
                         key_differentiators=["Voice/video APIs", "Enterprise focus"]),
    ],
)

MYPARCEL = Preset(
    id="myparcel",
    label="MyParcel",
    description="Multi-carrier shipping SaaS for e-commerce businesses.",
    market="Shipping & Logistics SaaS",
    pricing_model="hybrid",
    total_customers=2700,
    total_arr=11_004_000,
    segments=[
        PresetSegment(
            name="Enterprise",
            description="High-volume shippers and fulfillment centers.",
            customer_share=0.025, revenue_share=0.55, avg_mrr=15000,
            churn_rate=0.005, expansion_rate=0.15,
            mrr_min=5000,
            value_drivers=["API integrations", "Custom carrier contracts", "Dedicated support"],
        ),
        PresetSegment(
            name="Growing Webshops",
            description="Mid-size webshops shipping 500-2000 labels per month.",
            customer_share=0.1, revenue_share=0.3, avg_mrr=1500,
            churn_rate=0.02, expansion_rate=0.25,
            mrr_min=500, mrr_max=5000,
            value_drivers=["Multi-carrier support", "Tracking pages", "Returns handling"],
        ),
        PresetSegment(
            name="Small Senders",
            description="Small businesses shipping 20-100 packages per month.",
            customer_share=0.375, revenue_share=0.12, avg_mrr=150,
            churn_rate=0.04, expansion_rate=0.1,
            mrr_min=40, mrr_max=500,
            value_drivers=["Competitive pricing", "Easy portal", "No minimum commitment"],
        ),
        PresetSegment(
            name="Hobby/Dormant",
            description="Occasional senders, mostly on the free tier.",
            customer_share=0.5, revenue_share=0.03, avg_mrr=10,
            churn_rate=0.08, expansion_rate=0.02,
            mrr_min=0, mrr_max=40,
            value_drivers=["Free tier", "Pay per label"],
        ),
    ],
    tiers=[
        PresetTier(name="Standaard", price_monthly=0, price_annual=0, position=1,
                   value_metric_limits={"labels": 50}, customer_share=0.4, revenue_share=0.015),
        PresetTier(name="Start", price_monthly=25, price_annual=270, position=2,
                   value_metric_limits={"labels": 500}, customer_share=0.25, revenue_share=0.04),
        PresetTier(name="Plus", price_monthly=50, price_annual=540, position=3,
                   value_metric_limits={"labels": 2000}, customer_share=0.2, revenue_share=0.1),
        PresetTier(name="Premium", price_monthly=75, price_annual=810, position=4,
                   value_metric_limits={"labels": 10_000}, customer_share=0.12, revenue_share=0.35),
        PresetTier(name="Max", price_monthly=125, price_annual=1350, position=5,
                   value_metric_limits={"labels": "unlimited"}, customer_share=0.03, revenue_share=0.495),
    ],
    value_metrics=[
        PresetMetric(name="shipping labels", metric_type="primary", correlation_to_expansion=0.82,
                     measurement_method="Labels printed per month"),
        PresetMetric(name="carrier diversity", correlation_to_expansion=0.35),
        PresetMetric(name="API integration depth", correlation_to_expansion=0.5),
    ],
    competitors=[
        PresetCompetitor(name="Sendcloud", positioning="mid-market",
                         pricing_model="Freemium + tiered subscription", price_low=0, price_high=199),
        PresetCompetitor(name="Shippo", positioning="budget",
                         pricing_model="Pay-per-label + subscription", price_low=10, price_high=200),
        PresetCompetitor(name="ShipStation", positioning="premium",
                         pricing_model="Tiered subscription by shipment volume", price_low=9.99, price_high=229.99),
    ],
)

PRESETS: dict[str, Preset] = {p.id: p for p in (DEVTOOLS, MYPARCEL)}


def get_preset(preset_id: str) -> Preset:
    try:
        return PRESETS[preset_id]
    except KeyError:
        raise NotFoundError(f"Unknown preset '{preset_id}'. Available: {sorted(PRESETS)}") from None
