#!/usr/bin/env python3
"""Run listing pipeline operations once from the command line and print a JSON summary."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from listings.core.config import get_settings
from listings.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from listings.jobs.aggregate import run_aggregation
from listings.jobs.reaper import ReapFailedError, reap_stale_listings
from listings.services.persister import ListingPersister
from listings.services.repository import RepositoryError, get_repository
from listings.sources.registry import build_orchestrator


async def _aggregate(args: argparse.Namespace) -> dict[str, Any]:
    settings = get_settings()
    repository = get_repository()
    try:
        summary = await run_aggregation(
            build_orchestrator(settings),
            ListingPersister(repository),
            keywords=args.keywords or settings.default_keywords,
            location=args.location or settings.default_location,
            deadline_seconds=args.deadline_seconds,
        )
    finally:
        await repository.close()
    return summary.model_dump()


async def _reap(args: argparse.Namespace) -> dict[str, Any]:
    settings = get_settings()
    retention_days = args.retention_days or settings.retention_days
    repository = get_repository()
    try:
        removed = await reap_stale_listings(repository, retention_days)
    finally:
        await repository.close()
    return {"removed": removed, "retention_days": retention_days}


async def _init_db(_: argparse.Namespace) -> dict[str, Any]:
    settings = get_settings()
    repository = get_repository()
    try:
        await repository.apply_schema()
    finally:
        await repository.close()
    return {"schema_applied": bool(settings.database_url)}


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run listing aggregation pipeline operations.")
    subcommands = parser.add_subparsers(dest="command", required=True)

    aggregate = subcommands.add_parser("aggregate", help="Fetch from every enabled source and persist the results")
    aggregate.add_argument("--keywords", help="Search keywords (defaults to LISTINGS_DEFAULT_KEYWORDS)")
    aggregate.add_argument("--location", help="Search location (defaults to LISTINGS_DEFAULT_LOCATION)")
    aggregate.add_argument("--deadline-seconds", type=float, default=None, help="Overall run deadline")
    aggregate.set_defaults(handler=_aggregate)

    reap = subcommands.add_parser("reap", help="Delete external listings not refreshed within the retention window")
    reap.add_argument("--retention-days", type=_positive_int, default=None)
    reap.set_defaults(handler=_reap)

    init_db = subcommands.add_parser("init-db", help="Apply the PostgreSQL schema")
    init_db.set_defaults(handler=_init_db)
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    configure_logging()
    runtime = setup_telemetry(get_settings())
    try:
        result = asyncio.run(args.handler(args))
    except (ReapFailedError, RepositoryError) as exc:
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        return 1
    finally:
        shutdown_telemetry(runtime)

    print(json.dumps(result, indent=2, sort_keys=True, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
