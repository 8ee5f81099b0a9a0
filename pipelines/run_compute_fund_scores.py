"""Pipeline entrypoint: recompute fund quality scores and upsert them into the cache."""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
import sys

import structlog
from sqlalchemy.exc import SQLAlchemyError

# Allow running directly from repo root without package installation.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from config.settings import settings  # noqa: E402
from db.connections import create_analytics_engine  # noqa: E402
from services.aggregation_service import AggregationReport, recompute_fund_scores  # noqa: E402
from utils.logging import configure_logging  # noqa: E402

logger = structlog.get_logger("run_compute_fund_scores")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recompute weighted fund quality scores from holdings.")
    parser.add_argument(
        "--top",
        type=int,
        default=settings.aggregation.top_n,
        help="Number of top funds to list in the summary.",
    )
    parser.add_argument(
        "--statement-timeout",
        type=int,
        default=settings.aggregation.statement_timeout_seconds,
        help="Database statement timeout in seconds for the aggregation read.",
    )
    return parser.parse_args(argv)


def _print_summary(report: AggregationReport) -> None:
    print(
        "run_compute_fund_scores completed",
        f"funds_computed={report.funds_computed}",
        f"rows(fund_quality_scores)={report.rows_written}",
        f"elapsed_seconds={report.elapsed_seconds:.1f}",
    )
    for position, fund in enumerate(report.top_funds, start=1):
        label = str(fund.get("scheme_name") or fund["fund_name"])[:50]
        print(f"  #{position} {label:<50} quality={fund['overall_quality_score']}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(settings.log_level)
    aggregation_settings = replace(
        settings.aggregation,
        top_n=max(0, args.top),
        statement_timeout_seconds=max(1, args.statement_timeout),
    )

    engine = create_analytics_engine(aggregation_settings.statement_timeout_seconds)
    try:
        report = recompute_fund_scores(engine, aggregation_settings)
    except SQLAlchemyError as exc:
        logger.error("aggregation_failed", error=str(exc))
        print("run_compute_fund_scores failed", f"error={type(exc).__name__}")
        return 1
    finally:
        engine.dispose()

    _print_summary(report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
