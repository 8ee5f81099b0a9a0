"""Create SQLAlchemy engines for the analytics database."""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

from config.settings import DatabaseConfig, settings


def _database_url(db_config: DatabaseConfig) -> str:
    if db_config.url:
        # Hosted providers hand out bare postgres:// URLs.
        if db_config.url.startswith("postgres://"):
            return "postgresql+psycopg://" + db_config.url[len("postgres://") :]
        return db_config.url
    return (
        f"{db_config.driver}://{db_config.user}:{db_config.password}"
        f"@{db_config.host}:{db_config.port}/{db_config.name}"
    )


def _connect_args(url: str, statement_timeout_seconds: int | None) -> dict[str, Any]:
    if not statement_timeout_seconds:
        return {}
    backend = make_url(url).get_backend_name()
    if backend == "postgresql":
        return {"options": f"-c statement_timeout={statement_timeout_seconds * 1000}"}
    if backend == "mysql":
        return {"read_timeout": statement_timeout_seconds}
    return {}


def create_engine_from_config(
    db_config: DatabaseConfig,
    statement_timeout_seconds: int | None = None,
) -> Engine:
    url = _database_url(db_config)
    return create_engine(
        url,
        pool_pre_ping=True,
        connect_args=_connect_args(url, statement_timeout_seconds),
    )


def create_analytics_engine(statement_timeout_seconds: int | None = None) -> Engine:
    return create_engine_from_config(settings.analytics_db, statement_timeout_seconds)
