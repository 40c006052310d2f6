#!/usr/bin/env python3
"""Run one concurrency stress scenario against a store and report the verdict."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from stressbench.config import settings
from stressbench.connectors import ConnectionFactory
from stressbench.core.driver import ScenarioDriver
from stressbench.core.errors import ConsistencyViolation, StressBenchError
from stressbench.models import (
    AutoVacuumConfig,
    ChangeTrackingConfig,
    ExplicitTxnConfig,
    MultiTableInsertConfig,
    ReplaceIntoConfig,
    ScenarioConfig,
    VacuumConfig,
)
from stressbench.scenarios import build_scenario

logger = logging.getLogger(__name__)

# Driver loggers are chatty at INFO (one line per request).
_NOISY_LOGGERS = ("asyncpg", "databend_driver", "databend_driver.core")


def _add_change_tracking(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("change-tracking", help="Stream consumption under concurrent mutation.")
    p.add_argument("--num-derived-streams", type=int, default=5)
    p.add_argument("--stream-consumption-concurrency", type=int, default=3)
    p.add_argument("--times-consumption-per-stream", type=int, default=10)
    p.add_argument("--show-stream-consumption-errors", action="store_true")
    p.add_argument("--append-only-stream", action="store_true")
    p.add_argument("--clustered-table", action="store_true")


def _add_replace_into(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("replace-into", help="Conflicting replace-into under table maintenance.")
    p.add_argument("--iterations", type=int, default=100)
    p.add_argument("--batch-size", type=int, default=1000)
    p.add_argument(
        "--conflict-interval",
        type=int,
        default=7,
        help="Re-replace earlier batches every N batches (0 disables it).",
    )


def _add_vacuum(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("vacuum", help="Vacuum racing single-row inserts.")
    p.add_argument("--insertion-concurrency", type=int, default=5)
    p.add_argument("--insertion-iteration", type=int, default=1000)
    p.add_argument("--vacuum-concurrency", type=int, default=5)


def _add_auto_vacuum(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("auto-vacuum", help="Inserts into a table with small snapshot retention.")
    p.add_argument("--concurrency", type=int, default=10)
    p.add_argument("--inserts-per-iteration", type=int, default=20)
    p.add_argument("--insert-batch-size", type=int, default=10)


def _add_multi_table_insert(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("multi-table-insert", help="Multi-table insert under table maintenance.")
    p.add_argument("--runs", type=int, default=100)
    p.add_argument("--table-count", type=int, default=10)
    p.add_argument("--maintained-tables", type=int, default=9)
    p.add_argument("--rows-per-run", type=int, default=10000)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a concurrency stress scenario and verify its invariants."
    )
    parser.add_argument(
        "--dsn",
        default=None,
        help="Store DSN (default: STRESSBENCH_DSN / DATABEND_DSN or the local default).",
    )
    parser.add_argument(
        "--verbose-errors",
        action="store_true",
        help="Log every failed stream consumption (other bounded roles always log failures).",
    )
    sub = parser.add_subparsers(dest="scenario", required=True)
    _add_change_tracking(sub)
    _add_replace_into(sub)
    _add_vacuum(sub)
    _add_auto_vacuum(sub)
    _add_multi_table_insert(sub)
    sub.add_parser("explicit-txn", help="Scripted explicit-transaction matrix.")
    return parser


def config_from_args(args: argparse.Namespace) -> ScenarioConfig:
    """Build the scenario config for the chosen subcommand."""
    name = args.scenario
    if name == "change-tracking":
        return ChangeTrackingConfig(
            num_derived_streams=args.num_derived_streams,
            stream_consumption_concurrency=args.stream_consumption_concurrency,
            times_consumption_per_stream=args.times_consumption_per_stream,
            show_stream_consumption_errors=(
                args.show_stream_consumption_errors or args.verbose_errors
            ),
            append_only_stream=args.append_only_stream,
            clustered_table=args.clustered_table,
        )
    if name == "replace-into":
        return ReplaceIntoConfig(
            iterations=args.iterations,
            batch_size=args.batch_size,
            conflict_interval=args.conflict_interval,
        )
    if name == "vacuum":
        return VacuumConfig(
            insertion_concurrency=args.insertion_concurrency,
            insertion_iteration=args.insertion_iteration,
            vacuum_concurrency=args.vacuum_concurrency,
        )
    if name == "auto-vacuum":
        return AutoVacuumConfig(
            concurrency=args.concurrency,
            inserts_per_iteration=args.inserts_per_iteration,
            insert_batch_size=args.insert_batch_size,
        )
    if name == "multi-table-insert":
        return MultiTableInsertConfig(
            runs=args.runs,
            table_count=args.table_count,
            maintained_tables=args.maintained_tables,
            rows_per_run=args.rows_per_run,
        )
    if name == "explicit-txn":
        return ExplicitTxnConfig()
    raise ValueError(f"Unknown scenario: {name}")


async def _run_suite(args: argparse.Namespace) -> int:
    try:
        config = config_from_args(args)
    except ValidationError as e:
        logger.error("Invalid scenario options: %s", e)
        return 1

    scenario = build_scenario(config)
    try:
        factory = ConnectionFactory(args.dsn or settings.DSN)
        report = await ScenarioDriver(factory).run(scenario)
        report.verification.raise_if_failed()
    except ConsistencyViolation as e:
        logger.error("%s failed: %s", scenario.name, e)
        for assertion in e.failures:
            logger.error("  %s", assertion.describe())
        return 1
    except StressBenchError as e:
        logger.error("%s aborted: %s: %s", scenario.name, type(e).__name__, e)
        return 1

    logger.info("%s passed", scenario.name)
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    try:
        return asyncio.run(_run_suite(args))
    except KeyboardInterrupt:
        print("[suite] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
