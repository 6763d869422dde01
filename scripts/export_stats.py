#!/usr/bin/env python
"""
Export the stats leaderboard or the attendance table to CSV.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List

from clubspace.analytics import (
    LEADERBOARD_METRICS,
    attendance_percentages,
    export_csv,
    leaderboard,
)
from clubspace.config import Settings
from clubspace.exceptions import ClubspaceError
from clubspace.services import ClubServices


LOGGER = logging.getLogger(__name__)


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export club stats to CSV.")
    parser.add_argument("output", type=str, help="Destination CSV path.")
    parser.add_argument(
        "--report",
        choices=("leaderboard", "attendance"),
        default="leaderboard",
        help="Which table to export.",
    )
    parser.add_argument(
        "--metric",
        choices=LEADERBOARD_METRICS,
        default="goals",
        help="Leaderboard sort metric.",
    )
    parser.add_argument("--limit", type=int, default=None, help="Keep only the top N rows.")
    parser.add_argument("--database", type=str, help="Path to the SQLite store.")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    level = getattr(logging, str(args.log_level).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")

    settings = Settings.from_env()
    if args.database:
        settings = replace(settings, store_backend="sqlite", sqlite_path=args.database)
    services = ClubServices.build(settings)
    try:
        if args.report == "attendance":
            df = attendance_percentages(
                services.repo.archived_events(), services.repo.attendances(archived=True)
            )
        else:
            df = leaderboard(services.repo.all_stats().values(), args.metric, limit=args.limit)
    except ClubspaceError as exc:
        LOGGER.error("Export failed: %s", exc, exc_info=level <= logging.DEBUG)
        return 1
    finally:
        services.close()

    export_csv(df, Path(args.output))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
