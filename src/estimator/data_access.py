# This module defines the read-only data access port the estimator depends on.
# It exists so the estimation math never knows how cost data points are stored.
# A SQLAlchemy-backed repository implements the port over the `cost_data_points` table.
# Storage failures surface as DataAccessError; an empty result is never an error.

from __future__ import annotations

import logging
import re
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pandas as pd
from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from src.estimator.errors import DataAccessError, EstimationCancelledError
from src.estimator.models import CostDataPoint, ObservationWindow

LOGGER = logging.getLogger("estimator.data_access")

_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_TRANSIENT_ERRORS = (OperationalError, DisconnectionError, PoolTimeoutError)

POINT_COLUMNS = ["id", "recorded_at", "category", "sub_category", "region", "amount", "source", "unit"]


class CostDataPort(ABC):
    """Read-only query contract over stored cost data points.

    Implementations must be safe to call from several threads at once,
    since one estimate fans out one query per category. Every method takes an
    optional `cancel_event`; once it is set the request has been abandoned and
    implementations should stop as soon as they can by raising
    EstimationCancelledError (see `raise_if_cancelled`). A statement already
    running on the driver may still finish; its result is discarded.
    """

    @abstractmethod
    def query(
        self,
        *,
        region: str,
        category: str,
        sub_categories: Sequence[str],
        window: ObservationWindow,
        cancel_event: threading.Event | None = None,
    ) -> list[CostDataPoint]:
        """Return points for region/category recorded inside the window.

        An empty `sub_categories` sequence matches every sub-category.
        """

    @abstractmethod
    def latest_timestamp(
        self,
        *,
        region: str,
        category: str,
        cancel_event: threading.Event | None = None,
    ) -> datetime | None:
        """Return the freshest `recorded_at` for region/category, or None when absent."""

    @abstractmethod
    def count(self, *, region: str, category: str, cancel_event: threading.Event | None = None) -> int:
        """Return how many points exist for region/category across all time."""


def raise_if_cancelled(cancel_event: threading.Event | None, operation: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise EstimationCancelledError(f"cost data {operation} abandoned", details={"operation": operation})


def _to_aware(value: Any) -> datetime | None:
    if value is None or (not isinstance(value, datetime) and pd.isna(value)):
        return None
    return pd.to_datetime(value, utc=True).to_pydatetime()


def _to_decimal(value: Any) -> Decimal:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        raise ValueError("amount is missing")
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if not amount.is_finite():
        raise ValueError(f"amount is not a finite number: {value!r}")
    return amount


def _optional_str(value: Any) -> str | None:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text_value = str(value)
    return text_value or None


def frame_to_points(frame: pd.DataFrame) -> list[CostDataPoint]:
    """Convert a query frame with POINT_COLUMNS into CostDataPoint values."""

    if frame.empty:
        return []
    recorded = pd.to_datetime(frame["recorded_at"], utc=True, format="ISO8601")
    points: list[CostDataPoint] = []
    for row, recorded_at in zip(frame.to_dict(orient="records"), recorded, strict=True):
        points.append(
            CostDataPoint(
                id=str(row["id"]),
                recorded_at=recorded_at.to_pydatetime(),
                category=str(row["category"]),
                sub_category=_optional_str(row.get("sub_category")) or "",
                region=str(row["region"]),
                amount=_to_decimal(row["amount"]),
                source=_optional_str(row.get("source")),
                unit=_optional_str(row.get("unit")),
            )
        )
    return points


class SqlCostDataRepository(CostDataPort):
    """CostDataPort over a SQLAlchemy engine; the engine's pool handles concurrent readers."""

    def __init__(self, *, engine: Engine, table_name: str = "cost_data_points") -> None:
        if not _IDENTIFIER_RE.match(table_name):
            raise ValueError(f"Unsafe SQL identifier: {table_name!r}")
        self._engine = engine
        self._table = table_name

    def _fail(self, operation: str, exc: SQLAlchemyError, **context: Any) -> DataAccessError:
        transient = isinstance(exc, _TRANSIENT_ERRORS)
        LOGGER.warning("cost data %s failed (transient=%s): %s", operation, transient, exc)
        return DataAccessError(
            f"cost data {operation} failed",
            transient=transient,
            details={"operation": operation, **context},
        )

    def query(
        self,
        *,
        region: str,
        category: str,
        sub_categories: Sequence[str],
        window: ObservationWindow,
        cancel_event: threading.Event | None = None,
    ) -> list[CostDataPoint]:
        raise_if_cancelled(cancel_event, "query")
        params: dict[str, Any] = {
            "region": region,
            "category": category,
            "start_ts": window.start.astimezone(UTC),
            "end_ts": window.end.astimezone(UTC),
        }
        sub_category_clause = ""
        if sub_categories:
            sub_category_clause = "AND LOWER(sub_category) IN :sub_categories"
            params["sub_categories"] = [name.lower() for name in sub_categories]

        statement = text(
            f"""
            SELECT {", ".join(POINT_COLUMNS)}
            FROM {self._table}
            WHERE LOWER(region) = LOWER(:region)
              AND LOWER(category) = LOWER(:category)
              AND recorded_at >= :start_ts
              AND recorded_at <= :end_ts
              {sub_category_clause}
            ORDER BY recorded_at DESC, id
            """
        )
        statement = statement.bindparams(
            bindparam("start_ts", type_=DateTime(timezone=True)),
            bindparam("end_ts", type_=DateTime(timezone=True)),
        )
        if sub_categories:
            statement = statement.bindparams(bindparam("sub_categories", expanding=True))

        try:
            with self._engine.connect() as connection:
                frame = pd.read_sql_query(statement, con=connection, params=params, coerce_float=False)
        except SQLAlchemyError as exc:
            raise self._fail("query", exc, region=region, category=category) from exc
        raise_if_cancelled(cancel_event, "query")

        try:
            return frame_to_points(frame)
        except (ValueError, ArithmeticError) as exc:
            LOGGER.warning("cost data rows for %s/%s could not be decoded: %s", region, category, exc)
            raise DataAccessError(
                "cost data rows could not be decoded",
                transient=False,
                details={"operation": "query", "region": region, "category": category, "reason": str(exc)},
            ) from exc

    def latest_timestamp(
        self,
        *,
        region: str,
        category: str,
        cancel_event: threading.Event | None = None,
    ) -> datetime | None:
        raise_if_cancelled(cancel_event, "latest_timestamp")
        statement = text(
            f"""
            SELECT MAX(recorded_at)
            FROM {self._table}
            WHERE LOWER(region) = LOWER(:region)
              AND LOWER(category) = LOWER(:category)
            """
        )
        try:
            with self._engine.connect() as connection:
                value = connection.execute(statement, {"region": region, "category": category}).scalar_one()
        except SQLAlchemyError as exc:
            raise self._fail("latest_timestamp", exc, region=region, category=category) from exc
        return _to_aware(value)

    def count(self, *, region: str, category: str, cancel_event: threading.Event | None = None) -> int:
        raise_if_cancelled(cancel_event, "count")
        statement = text(
            f"""
            SELECT COUNT(*)
            FROM {self._table}
            WHERE LOWER(region) = LOWER(:region)
              AND LOWER(category) = LOWER(:category)
            """
        )
        try:
            with self._engine.connect() as connection:
                value = connection.execute(statement, {"region": region, "category": category}).scalar_one()
        except SQLAlchemyError as exc:
            raise self._fail("count", exc, region=region, category=category) from exc
        return int(value or 0)
