"""Pipeline entrypoint: enrich cached funds with manager names and inception dates."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
from pathlib import Path
import signal
import sys

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError

# Allow running directly from repo root without package installation.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from config.settings import EnrichmentSettings, settings  # noqa: E402
from db.connections import create_analytics_engine  # noqa: E402
from extract.fund_attribute_client import FundAttributeResolver  # noqa: E402
from extract.scheme_identity_client import SchemeIdentityResolver  # noqa: E402
from services.enrichment_service import EnrichmentReport, run_enrichment_pass  # noqa: E402
from utils.logging import configure_logging  # noqa: E402
from utils.pacing import FixedDelayPacer  # noqa: E402

logger = structlog.get_logger("run_enrich_fund_managers")

EXIT_CANCELLED = 130


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch fund manager names and inception dates for cached funds.")
    parser.add_argument(
        "--pacing-delay",
        type=float,
        default=settings.enrichment.pacing_delay_seconds,
        help="Seconds to wait after each external call.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.enrichment.request_timeout_seconds,
        help="Per-request timeout in seconds.",
    )
    parser.add_argument(
        "--freshness-days",
        type=int,
        default=settings.enrichment.freshness_days,
        help="Skip funds whose manager was fetched less than this many days ago.",
    )
    return parser.parse_args(argv)


async def _run(enrichment_settings: EnrichmentSettings) -> EnrichmentReport:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop_event.set)
    except NotImplementedError:  # pragma: no cover - Windows event loops
        pass

    engine = create_analytics_engine()
    try:
        async with httpx.AsyncClient() as client:
            identity = SchemeIdentityResolver(
                client,
                enrichment_settings.scheme_api_base_url,
                enrichment_settings.request_timeout_seconds,
            )
            attributes = FundAttributeResolver(
                client,
                enrichment_settings.attribute_api_base_url,
                enrichment_settings.request_timeout_seconds,
            )
            return await run_enrichment_pass(
                engine,
                enrichment_settings,
                identity,
                attributes,
                FixedDelayPacer(enrichment_settings.pacing_delay_seconds),
                stop_event=stop_event,
            )
    finally:
        engine.dispose()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(settings.log_level)
    enrichment_settings = replace(
        settings.enrichment,
        pacing_delay_seconds=max(0.0, args.pacing_delay),
        request_timeout_seconds=max(0.1, args.timeout),
        freshness_days=max(0, args.freshness_days),
    )

    try:
        report = asyncio.run(_run(enrichment_settings))
    except SQLAlchemyError as exc:
        logger.error("enrichment_failed", error=str(exc))
        print("run_enrich_fund_managers failed", f"error={type(exc).__name__}")
        return 1

    print(
        "run_enrich_fund_managers completed" if not report.cancelled else "run_enrich_fund_managers cancelled",
        f"updated={report.updated}",
        f"skipped={report.skipped}",
        f"not_found={report.not_found}",
        f"elapsed_seconds={report.elapsed_seconds:.1f}",
    )
    return EXIT_CANCELLED if report.cancelled else 0


if __name__ == "__main__":
    raise SystemExit(main())
