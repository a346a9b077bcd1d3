"""
Database connection utilities.
It centralizes cross-cutting concerns like settings, logging, and database access used by the estimator.
The engine is created on first use so importing the estimator never requires a reachable database.
"""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.common.settings import get_settings


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """Shared engine; its connection pool is safe for concurrent read queries."""

    settings = get_settings()
    return create_engine(settings.DATABASE_URL, pool_pre_ping=True, future=True)


def test_connection(engine: Engine | None = None) -> bool:
    """Return True if the database can be reached and queried."""

    target = engine or get_engine()
    try:
        with target.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
