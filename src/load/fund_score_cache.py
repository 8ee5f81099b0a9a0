"""Keyed partial-field upserts into the fund score cache.

``put`` only ever assigns the columns it is given, so the aggregation and
enrichment pipelines can share a row without clobbering each other's fields.
Columns passed as ``set_once`` keep an existing non-null value.
"""

from __future__ import annotations

from collections.abc import Mapping
import math
from typing import Any

import pandas as pd
from sqlalchemy import Table, func
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Engine

from db.tables import AGGREGATED_COLUMNS, fund_quality_scores


def _clean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NA or value is pd.NaT:
        return None
    if hasattr(value, "item"):
        # numpy scalars
        return value.item()
    return value


class FundScoreCache:
    def __init__(self, engine: Engine, table: Table = fund_quality_scores) -> None:
        self.engine = engine
        self.table = table
        self._key = next(iter(table.primary_key.columns)).name

    def put(
        self,
        fund_key: str,
        fields: Mapping[str, Any],
        set_once: Mapping[str, Any] | None = None,
    ) -> None:
        set_once = {name: value for name, value in (set_once or {}).items() if value is not None}
        overlap = set(fields) & set(set_once)
        if overlap:
            raise ValueError(f"Columns cannot be both overwritten and set-once: {sorted(overlap)}")
        unknown = (set(fields) | set(set_once)) - set(self.table.c.keys())
        if unknown:
            raise ValueError(f"Unknown cache columns: {sorted(unknown)}")

        values = {self._key: fund_key}
        values.update({name: _clean(value) for name, value in fields.items()})
        values.update({name: _clean(value) for name, value in set_once.items()})

        with self.engine.begin() as conn:
            conn.execute(self._upsert_statement(values, fields.keys(), set_once.keys()))

    def _upsert_statement(self, values: dict[str, Any], overwrite: Any, keep: Any):
        dialect = self.engine.dialect.name
        table = self.table

        if dialect in {"postgresql", "sqlite"}:
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(table).values(**values)
            assignments = {name: stmt.excluded[name] for name in overwrite}
            assignments.update({name: func.coalesce(table.c[name], stmt.excluded[name]) for name in keep})
            if not assignments:
                return stmt.on_conflict_do_nothing(index_elements=[self._key])
            return stmt.on_conflict_do_update(index_elements=[self._key], set_=assignments)

        if dialect == "mysql":
            stmt = mysql.insert(table).values(**values)
            assignments = {name: stmt.inserted[name] for name in overwrite}
            assignments.update({name: func.coalesce(table.c[name], stmt.inserted[name]) for name in keep})
            if not assignments:
                assignments = {self._key: table.c[self._key]}
            return stmt.on_duplicate_key_update(**assignments)

        raise NotImplementedError(f"Upsert is not supported for dialect {dialect!r}")

    def get(self, fund_key: str) -> dict[str, Any] | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                self.table.select().where(self.table.c[self._key] == fund_key)
            ).mappings().first()
        return dict(row) if row is not None else None


def write_fund_scores(cache: FundScoreCache, scores_df: pd.DataFrame, calculated_at: Any) -> int:
    """Upsert aggregated metrics fund by fund in ascending fund-name order; each row commits alone."""
    written = 0
    for record in scores_df.sort_values("fund_name").to_dict(orient="records"):
        fields = {name: record.get(name) for name in AGGREGATED_COLUMNS if name != "calculated_at"}
        fields["calculated_at"] = calculated_at
        cache.put(str(record["fund_name"]), fields)
        written += 1
    return written
