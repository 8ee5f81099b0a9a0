"""Aggregate security-level quality scores into weighted fund-level scores.

Input is one row per holding joined with its security's scores. A holding
qualifies when it links to a security, carries a strictly positive weight, and
the security has an overall quality score. Funds with no qualifying holding are
dropped from the output entirely.

``coverage_pct`` is the raw sum of qualifying weights. It is neither normalised
against the fund's total weight nor clamped to 100.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
import math

import pandas as pd

from db.tables import RETURN_COLUMNS, SCORE_COLUMNS
from utils.validation import coerce_numeric, require_columns

INPUT_COLUMNS = {"fund_name", "instrument_name", "stock_id", "weight", "overall_quality_score"}

OUTPUT_COLUMNS = [
    "fund_name",
    "scheme_name",
    "fund_house",
    "scored_holdings",
    "coverage_pct",
    *SCORE_COLUMNS,
    *RETURN_COLUMNS,
]

_CENT = Decimal("0.01")


def round_half_up(value: float | None) -> float | None:
    """Round to 2 decimals the way SQL NUMERIC rounding does (ties away from zero)."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    return float(Decimal(repr(float(value))).quantize(_CENT, rounding=ROUND_HALF_UP))


def qualifying_rows(matched_df: pd.DataFrame) -> pd.DataFrame:
    require_columns(matched_df, INPUT_COLUMNS)
    df = coerce_numeric(matched_df, ["weight", *SCORE_COLUMNS, *RETURN_COLUMNS])
    mask = df["stock_id"].notna() & (df["weight"] > 0) & df["overall_quality_score"].notna()
    return df[mask]


def _weighted_average(
    values: pd.Series,
    weights: pd.Series,
    only_present_weights: bool,
) -> float | None:
    numerator = (values * weights).sum(min_count=1)
    denominator = weights[values.notna()].sum() if only_present_weights else weights.sum()
    if pd.isna(numerator) or denominator == 0:
        return None
    return round_half_up(numerator / denominator)


def _first_non_null_max(series: pd.Series) -> str | None:
    present = series.dropna()
    if present.empty:
        return None
    return str(present.astype(str).max())


def _aggregate_fund(fund_name: str, rows: pd.DataFrame) -> dict[str, object]:
    weights = rows["weight"]
    record: dict[str, object] = {
        "fund_name": fund_name,
        "scheme_name": _first_non_null_max(rows["scheme_name"]) if "scheme_name" in rows else None,
        "fund_house": _first_non_null_max(rows["fund_house"]) if "fund_house" in rows else None,
        "scored_holdings": int(rows["instrument_name"].dropna().nunique()),
        "coverage_pct": round_half_up(weights.sum()),
    }
    for column in SCORE_COLUMNS:
        record[column] = (
            _weighted_average(rows[column], weights, only_present_weights=False) if column in rows else None
        )
    for column in RETURN_COLUMNS:
        record[column] = (
            _weighted_average(rows[column], weights, only_present_weights=True) if column in rows else None
        )
    return record


def compute_fund_scores(matched_df: pd.DataFrame) -> pd.DataFrame:
    """Return one row per fund with at least one qualifying holding, ranked by overall score."""
    qualifying = qualifying_rows(matched_df)
    if qualifying.empty:
        return pd.DataFrame(columns=OUTPUT_COLUMNS)

    records = [
        _aggregate_fund(str(fund_name), rows)
        for fund_name, rows in qualifying.groupby("fund_name", sort=True)
    ]
    scores_df = pd.DataFrame(records, columns=OUTPUT_COLUMNS)
    return rank_fund_scores(scores_df)


def rank_fund_scores(scores_df: pd.DataFrame) -> pd.DataFrame:
    return scores_df.sort_values(
        by=["overall_quality_score", "fund_name"],
        ascending=[False, True],
        na_position="last",
    ).reset_index(drop=True)
