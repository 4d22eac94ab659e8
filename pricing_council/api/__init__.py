"""
FastAPI application factory and API package.

Run with:
    uvicorn pricing_council.api:app --reload --port 8000

Or via main.py:
    python -m pricing_council --serve
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from pricing_council.api.routes import (
    analytics_router,
    audit_router,
    company_router,
    decisions_router,
    error_response,
    health_router,
    ontology_router,
    pricing_router,
)
from pricing_council.config import get_settings
from pricing_council.errors import PricingCouncilError

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI instance."""
    settings = get_settings()

    application = FastAPI(
        title="Pricing Council API",
        description="Segmentation, unit economics and council-evaluated pricing options",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS: allow the frontend (adjust origins in production)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(PricingCouncilError)
    async def domain_error_handler(request: Request, exc: PricingCouncilError):
        logger.warning(f"{request.method} {request.url.path} → {exc.kind.value}: {exc.message}")
        return error_response(**exc.to_dict())

    # Register route groups
    application.include_router(health_router, tags=["Health"])
    application.include_router(company_router, prefix="/api/company", tags=["Company"])
    application.include_router(ontology_router, prefix="/api/ontology", tags=["Ontology"])
    application.include_router(analytics_router, prefix="/api/analytics", tags=["Analytics"])
    application.include_router(pricing_router, prefix="/api/pricing", tags=["Pricing"])
    application.include_router(audit_router, prefix="/api/audit", tags=["Audit"])
    application.include_router(decisions_router, prefix="/api/decisions", tags=["Decisions"])

    logger.info(f"Created {settings.app_name} API (storage: {settings.storage_backend})")
    return application


# Module-level instance for `uvicorn pricing_council.api:app`
app = create_app()
