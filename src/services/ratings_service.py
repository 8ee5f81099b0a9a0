"""Serve cached fund ratings without recomputation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import pandas as pd
from sqlalchemy import text
from sqlalchemy.engine import Engine

from db.tables import RETURN_COLUMNS, SCORE_COLUMNS
from transform.calc.fund_scores import rank_fund_scores

RATING_COLUMNS = [
    "fund_name",
    "scheme_name",
    "fund_house",
    "fund_manager",
    "fund_start_date",
    "scored_holdings",
    "coverage_pct",
    *SCORE_COLUMNS,
    *RETURN_COLUMNS,
    "calculated_at",
]


@dataclass
class FundRatings:
    funds: pd.DataFrame
    last_updated: datetime | None

    @property
    def total_funds(self) -> int:
        return len(self.funds)


def load_fund_ratings(
    engine: Engine,
    fund_house: str | None = None,
    min_coverage: float = 50.0,
) -> FundRatings:
    query = (
        f"SELECT {', '.join(RATING_COLUMNS)} FROM fund_quality_scores "
        "WHERE overall_quality_score IS NOT NULL AND coverage_pct >= :min_coverage"
    )
    params: dict[str, object] = {"min_coverage": min_coverage}
    if fund_house:
        query += " AND fund_house = :fund_house"
        params["fund_house"] = fund_house

    with engine.connect() as conn:
        df = pd.read_sql(text(query), conn, params=params)

    if df.empty:
        return FundRatings(funds=pd.DataFrame(columns=["rank", *RATING_COLUMNS]), last_updated=None)

    ranked = rank_fund_scores(df)
    ranked.insert(0, "rank", range(1, len(ranked) + 1))
    calculated = pd.to_datetime(ranked["calculated_at"], errors="coerce").dropna()
    last_updated = calculated.max().to_pydatetime() if not calculated.empty else None
    return FundRatings(funds=ranked, last_updated=last_updated)
