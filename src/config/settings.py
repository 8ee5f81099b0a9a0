"""Application settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class DatabaseConfig:
    driver: str
    host: str
    port: int
    user: str
    password: str
    name: str
    url: str | None = None


@dataclass(frozen=True)
class AggregationSettings:
    statement_timeout_seconds: int
    top_n: int


@dataclass(frozen=True)
class EnrichmentSettings:
    scheme_api_base_url: str
    attribute_api_base_url: str
    pacing_delay_seconds: float
    request_timeout_seconds: float
    freshness_days: int


@dataclass(frozen=True)
class Settings:
    app_env: str
    log_level: str
    analytics_db: DatabaseConfig
    aggregation: AggregationSettings
    enrichment: EnrichmentSettings


def _db(prefix: str, default_port: int, default_name: str) -> DatabaseConfig:
    return DatabaseConfig(
        driver=os.getenv(f"{prefix}_DRIVER", "mysql+pymysql"),
        host=os.getenv(f"{prefix}_HOST", "127.0.0.1"),
        port=int(os.getenv(f"{prefix}_PORT", str(default_port))),
        user=os.getenv(f"{prefix}_USER", "root"),
        password=os.getenv(f"{prefix}_PASSWORD", ""),
        name=os.getenv(f"{prefix}_NAME", default_name),
        url=os.getenv("DATABASE_URL") or None,
    )


def get_settings() -> Settings:
    return Settings(
        app_env=os.getenv("APP_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        analytics_db=_db("ANALYTICS_DB", 3306, "portfolio_analytics"),
        aggregation=AggregationSettings(
            statement_timeout_seconds=int(os.getenv("AGGREGATION_STATEMENT_TIMEOUT_SECONDS", "300")),
            top_n=int(os.getenv("AGGREGATION_TOP_N", "5")),
        ),
        enrichment=EnrichmentSettings(
            scheme_api_base_url=os.getenv("SCHEME_API_BASE_URL", "https://api.mfapi.in/mf"),
            attribute_api_base_url=os.getenv("ATTRIBUTE_API_BASE_URL", "https://mf.captnemo.in/kuvera"),
            pacing_delay_seconds=float(os.getenv("ENRICHMENT_PACING_DELAY_SECONDS", "0.3")),
            request_timeout_seconds=float(os.getenv("ENRICHMENT_REQUEST_TIMEOUT_SECONDS", "10")),
            freshness_days=int(os.getenv("ENRICHMENT_FRESHNESS_DAYS", "30")),
        ),
    )


settings = get_settings()
