"""Recompute fund quality scores from holdings and persist them to the cache."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import time

import pandas as pd
import structlog
from sqlalchemy.engine import Engine

from config.settings import AggregationSettings
from db.tables import ensure_cache_table
from extract.holdings_reader import read_matched_holdings
from load.fund_score_cache import FundScoreCache, write_fund_scores
from transform.calc.fund_scores import compute_fund_scores

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


@dataclass
class AggregationReport:
    funds_computed: int
    rows_written: int
    elapsed_seconds: float
    top_funds: list[dict[str, object]] = field(default_factory=list)


def recompute_fund_scores(
    engine: Engine,
    settings: AggregationSettings,
    reader: Callable[[Engine], pd.DataFrame] = read_matched_holdings,
    now_fn: Callable[[], datetime] = utcnow,
) -> AggregationReport:
    """Run one full aggregation pass.

    A failing read raises before anything is written. Each fund's upsert commits
    on its own, so an error mid-loop leaves the rows already written intact and
    propagates to the caller.
    """
    started = time.monotonic()
    ensure_cache_table(engine)

    matched_df = reader(engine)
    logger.info("matched_holdings_loaded", rows=len(matched_df))

    scores_df = compute_fund_scores(matched_df)
    if scores_df.empty:
        logger.warning("no_fund_scores_computed", hint="check that holdings and quality scores are populated")
        return AggregationReport(0, 0, time.monotonic() - started)

    cache = FundScoreCache(engine)
    written = write_fund_scores(cache, scores_df, calculated_at=now_fn())

    top = scores_df.head(max(0, settings.top_n))[["fund_name", "scheme_name", "overall_quality_score"]]
    report = AggregationReport(
        funds_computed=len(scores_df),
        rows_written=written,
        elapsed_seconds=time.monotonic() - started,
        top_funds=top.to_dict(orient="records"),
    )
    logger.info(
        "fund_scores_recomputed",
        funds=report.funds_computed,
        rows_written=report.rows_written,
        elapsed_seconds=round(report.elapsed_seconds, 2),
    )
    return report
