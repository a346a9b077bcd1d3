# This module is the command-line entrypoint for estimates and coverage summaries.
# It wires settings, logging, the SQL repository, and the engine together, then prints JSON.
# Structured errors are printed as JSON too and turn into a non-zero exit code.
# Run with: python -m src.estimator.cli estimate --region Dubai --housing-type 1BR ... (or `health`)

from __future__ import annotations

import argparse
import json
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.engine import Engine

from src.common.db import get_engine, test_connection
from src.common.logging import configure_logging
from src.common.settings import get_settings
from src.estimator.coverage_summarizer import CoverageSummarizer
from src.estimator.data_access import CostDataPort, SqlCostDataRepository
from src.estimator.errors import INVALID_INPUT, DataAccessError, EstimationError
from src.estimator.estimation_orchestrator import EstimationOrchestrator
from src.estimator.estimator_config import EstimatorConfig, load_estimator_config
from src.estimator.models import ObservationWindow, PersonaInput, utc_now

LOGGER = logging.getLogger("estimator.cli")

EXIT_OK = 0
EXIT_INVALID_INPUT = 2
EXIT_FAILURE = 1


def _parse_iso_ts(value: str | None) -> datetime | None:
    if value is None or value.strip() == "":
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cost-of-living estimator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    estimate = subparsers.add_parser("estimate", help="Estimate monthly costs for a persona in a region")
    estimate.add_argument("--region", type=str, required=True)
    estimate.add_argument("--housing-type", type=str, required=True)
    estimate.add_argument("--lifestyle-tier", type=str, required=True)
    estimate.add_argument("--transport-mode", type=str, required=True)
    estimate.add_argument("--window-days", type=int, default=None, help="Trailing observation window in days")
    estimate.add_argument("--as-of", type=str, default=None, help="ISO timestamp closing the window (default: now)")

    coverage = subparsers.add_parser("coverage", help="Summarize data coverage and freshness for a region")
    coverage.add_argument("--region", type=str, required=True)
    coverage.add_argument("--as-of", type=str, default=None)

    subparsers.add_parser("health", help="Check that the cost data database is reachable")
    return parser.parse_args(argv)


def run_command(args: argparse.Namespace, *, port: CostDataPort, config: EstimatorConfig) -> dict[str, Any]:
    as_of = _parse_iso_ts(args.as_of)
    if args.command == "coverage":
        summary = CoverageSummarizer(port=port, config=config).summarize(args.region, as_of=as_of)
        return summary.to_dict()

    orchestrator = EstimationOrchestrator(port=port, config=config)
    window = None
    if args.window_days is not None or as_of is not None:
        window = ObservationWindow.trailing(
            days=args.window_days or config.default_window_days,
            as_of=as_of or utc_now(),
        )
    persona = PersonaInput(
        housing_type=args.housing_type,
        lifestyle_tier=args.lifestyle_tier,
        transport_mode=args.transport_mode,
    )
    return orchestrator.estimate(args.region, persona, window).to_dict()


def _health(engine: Engine) -> int:
    if test_connection(engine):
        print(json.dumps({"database": "ok"}, indent=2))
        return EXIT_OK
    error = DataAccessError("cost data database is unreachable", transient=True, details={"operation": "health"})
    LOGGER.error("health check failed: %s", error.message)
    print(json.dumps({"error": error.to_dict()}, indent=2, default=str))
    return EXIT_FAILURE


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    config = load_estimator_config(config_path=settings.ESTIMATOR_CONFIG_PATH)
    engine = get_engine()

    if args.command == "health":
        return _health(engine)

    port = SqlCostDataRepository(engine=engine)

    try:
        result = run_command(args, port=port, config=config)
    except EstimationError as exc:
        LOGGER.error("%s failed: %s", args.command, exc.message)
        print(json.dumps({"error": exc.to_dict()}, indent=2, default=str))
        return EXIT_INVALID_INPUT if exc.category == INVALID_INPUT else EXIT_FAILURE

    print(json.dumps(result, indent=2, default=str))
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
