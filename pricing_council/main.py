"""
Pricing Council — Main Entry Point

Seed an organization (if needed) and run the analysis (CLI):
    python -m pricing_council.main acme --preset devtools

Run as an API server:
    python -m pricing_council.main --serve
    # or: uvicorn pricing_council.api:app --reload --port 8000

Or import and run programmatically:
    from pricing_council.main import run
    result = run("acme", preset="myparcel")
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone

from pricing_council.config import get_settings
from pricing_council.models.schemas import AnalysisResult
from pricing_council.persistence.document_store import create_document_store
from pricing_council.services.ontology_service import OntologyService
from pricing_council.utils.logger import setup_logging


def run(organization_id: str, preset: str = "devtools") -> AnalysisResult:
    """Seed the organization from a preset when it is empty, then analyze it."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.log_file)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("  PRICING COUNCIL")
    logger.info(f"  Storage: {settings.storage_backend} | Started: {datetime.now(timezone.utc).isoformat()}")
    logger.info("=" * 60)

    service = OntologyService(create_document_store(settings))
    setup = service.setup_organization(organization_id, preset)
    logger.info(f"Setup: preset={setup.preset} pre_seeded={setup.pre_seeded} segments={setup.segments}")

    result = service.analyze(organization_id)
    _print_summary(result)
    return result


def _print_summary(result: AnalysisResult) -> None:
    """Print a human-readable summary of the analysis."""
    logger = logging.getLogger(__name__)

    logger.info("")
    logger.info("-" * 60)
    logger.info("  ANALYSIS SUMMARY")
    logger.info("-" * 60)
    logger.info(f"  Organization:   {result.organization_id}")

    if not result.success:
        logger.info(f"  Failed:         {result.error.kind}: {result.error.message}")
        logger.info("-" * 60)
        return

    econ = result.economics
    if econ is not None:
        logger.info(f"  ARR:            {econ.total_arr:,.2f}")
        logger.info(f"  Customers:      {econ.total_customers}")
        logger.info(f"  NRR / GRR:      {econ.net_revenue_retention:.1f}% / {econ.gross_revenue_retention:.1f}%")
        logger.info(f"  Concentration:  {econ.concentration.risk_level} (HHI {econ.concentration.hhi_index:,.0f})")
    logger.info(f"  Segments:       {len(result.segments)}")
    logger.info(f"  Options:        {len(result.options)}")
    logger.info("-" * 60)

    by_option = {e.option_id: e for e in result.evaluations}
    for option in result.options:
        evaluation = by_option.get(option.id)
        consensus = evaluation.recommendation.consensus if evaluation else "n/a"
        logger.info(
            f"    {option.name:<40} {option.impact.expected_arr_change:>+14,.0f}  "
            f"{option.risk_profile:<9} {consensus}"
        )

    if result.recommended_option:
        logger.info("")
        logger.info(f"  Recommended:    {result.recommended_option.name}")
    logger.info("")


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Start the FastAPI server."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.log_file)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run("pricing_council.api:app", host=host, port=port, reload=True)


def main(argv: list[str]) -> None:
    if "--serve" in argv:
        serve()
        return
    args = [a for a in argv if not a.startswith("--")]
    preset = "devtools"
    if "--preset" in argv:
        idx = argv.index("--preset")
        if idx + 1 < len(argv):
            preset = argv[idx + 1]
            args = [a for a in args if a != preset]
    if not args:
        print("usage: python -m pricing_council <organization_id> [--preset devtools|myparcel] | --serve")
        sys.exit(2)
    run(args[0], preset)


def cli() -> None:
    main(sys.argv[1:])


if __name__ == "__main__":
    cli()
