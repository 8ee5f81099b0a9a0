"""Read holdings joined with security scores, and fund rows awaiting enrichment."""

from __future__ import annotations

from datetime import datetime

import pandas as pd
from sqlalchemy import text
from sqlalchemy.engine import Engine

from models.schemas import FundEnrichmentCandidate

MATCHED_HOLDINGS_SQL = """
SELECT
  mp.fund_name,
  mp.scheme_name,
  mp.fund_house,
  mp.instrument_name,
  mp.stock_id,
  mp.percent_nav AS weight,
  qs.overall_quality_score,
  qs.piotroski_score,
  qs.altman_z_score,
  qs.financial_health_score,
  qs.management_quality_score,
  qs.earnings_quality_score,
  src.cagr_1y,
  src.cagr_3y,
  src.cagr_5y,
  src.cagr_10y
FROM mutualfund_portfolio mp
LEFT JOIN stock_quality_scores qs ON qs.stock_id = mp.stock_id
LEFT JOIN stocks s ON s.id = mp.stock_id
LEFT JOIN stock_ratings_cache src ON src.symbol = s.symbol
WHERE mp.stock_id IS NOT NULL
  AND mp.percent_nav > 0
  AND qs.overall_quality_score IS NOT NULL
"""

ENRICHMENT_CANDIDATES_SQL = """
SELECT fund_name, scheme_name, fund_house, mfapi_scheme_code,
       fund_manager, fund_manager_updated_at
FROM fund_quality_scores
WHERE mfapi_scheme_code IS NOT NULL
ORDER BY fund_name
"""


def read_matched_holdings(engine: Engine) -> pd.DataFrame:
    with engine.connect() as conn:
        return pd.read_sql(text(MATCHED_HOLDINGS_SQL), conn)


def read_enrichment_candidates(engine: Engine) -> list[FundEnrichmentCandidate]:
    with engine.connect() as conn:
        rows = conn.execute(text(ENRICHMENT_CANDIDATES_SQL)).mappings().all()

    return [
        FundEnrichmentCandidate(
            fund_name=row["fund_name"],
            scheme_name=row["scheme_name"],
            fund_house=row["fund_house"],
            scheme_code=int(row["mfapi_scheme_code"]),
            fund_manager=row["fund_manager"],
            fund_manager_updated_at=_as_datetime(row["fund_manager_updated_at"]),
        )
        for row in rows
    ]


def _as_datetime(value: object) -> datetime | None:
    if value is None:
        return None
    timestamp = pd.Timestamp(value)
    if timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert("UTC").tz_localize(None)
    return timestamp.to_pydatetime()
