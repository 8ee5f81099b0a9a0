"""Table definitions for the fund score cache and the upstream tables it reads."""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

SCORE_COLUMNS = (
    "overall_quality_score",
    "piotroski_score",
    "altman_z_score",
    "financial_health_score",
    "management_quality_score",
    "earnings_quality_score",
)

RETURN_COLUMNS = ("cagr_1y", "cagr_3y", "cagr_5y", "cagr_10y")

AGGREGATED_COLUMNS = (
    "scheme_name",
    "fund_house",
    "scored_holdings",
    "coverage_pct",
    *SCORE_COLUMNS,
    *RETURN_COLUMNS,
    "calculated_at",
)

# The cache row owned by the aggregation and enrichment pipelines.
fund_quality_scores = Table(
    "fund_quality_scores",
    metadata,
    Column("fund_name", String(255), primary_key=True),
    Column("scheme_name", String(255)),
    Column("fund_house", String(255)),
    Column("scored_holdings", Integer),
    Column("coverage_pct", Numeric(10, 2, asdecimal=False)),
    Column("overall_quality_score", Numeric(5, 2, asdecimal=False)),
    Column("piotroski_score", Numeric(5, 2, asdecimal=False)),
    Column("altman_z_score", Numeric(10, 2, asdecimal=False)),
    Column("financial_health_score", Numeric(5, 2, asdecimal=False)),
    Column("management_quality_score", Numeric(5, 2, asdecimal=False)),
    Column("earnings_quality_score", Numeric(5, 2, asdecimal=False)),
    Column("cagr_1y", Numeric(8, 2, asdecimal=False)),
    Column("cagr_3y", Numeric(8, 2, asdecimal=False)),
    Column("cagr_5y", Numeric(8, 2, asdecimal=False)),
    Column("cagr_10y", Numeric(8, 2, asdecimal=False)),
    Column("calculated_at", DateTime),
    Column("mfapi_scheme_code", Integer),
    Column("fund_manager", String(1024)),
    Column("fund_manager_updated_at", DateTime),
    Column("fund_start_date", Date),
)

# Upstream tables below are produced elsewhere; they are declared for reads and tests.
mutualfund_portfolio = Table(
    "mutualfund_portfolio",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("fund_name", String(255), nullable=False),
    Column("scheme_name", String(255)),
    Column("fund_house", String(255)),
    Column("instrument_name", String(255)),
    Column("stock_id", Integer),
    Column("percent_nav", Float),
    Column("asset_type", String(64)),
)

stock_quality_scores = Table(
    "stock_quality_scores",
    metadata,
    Column("stock_id", Integer, primary_key=True),
    *(Column(name, Float) for name in SCORE_COLUMNS),
)

stocks = Table(
    "stocks",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("symbol", String(64)),
)

stock_ratings_cache = Table(
    "stock_ratings_cache",
    metadata,
    Column("symbol", String(64), primary_key=True),
    *(Column(name, Float) for name in RETURN_COLUMNS),
)

UPSTREAM_TABLES = (mutualfund_portfolio, stock_quality_scores, stocks, stock_ratings_cache)


def ensure_cache_table(engine: Engine) -> None:
    fund_quality_scores.create(engine, checkfirst=True)
