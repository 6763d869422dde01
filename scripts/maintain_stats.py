#!/usr/bin/env python
"""
CLI entrypoint for archival and stats repair actions.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import List

from clubspace.config import Settings
from clubspace.exceptions import ClubspaceError
from clubspace.services import ClubServices


LOGGER = logging.getLogger(__name__)

ACTIONS = ("archive", "reprocess", "recalculate", "initialize", "sync", "consolidate")


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Archive past events and repair the player stats collection.",
    )
    parser.add_argument("action", choices=ACTIONS, help="Maintenance action to run.")
    parser.add_argument(
        "--database",
        type=str,
        help="Path to the SQLite store (defaults to CLUBSPACE_DB or .cache/clubspace.db).",
    )
    parser.add_argument(
        "--reset-inactive",
        action="store_true",
        help="With 'reprocess', also zero result counters of players without any result activity.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to CLUBSPACE_LOG_LEVEL.",
    )
    return parser


def run_action(services: ClubServices, action: str, *, reset_inactive: bool = False) -> str:
    if action == "archive":
        report = services.archival.reconcile()
        return f"archived {report.archived} event(s) and {report.archived_attendances} attendance(s)"
    if action == "reprocess":
        report = services.stats.reprocess_match_results(reset_inactive=reset_inactive)
        return (
            f"processed {report.processed_results} result(s), updated {report.updated_players} player(s), "
            f"skipped {len(report.skipped_player_ids)} unknown id(s)"
        )
    if action == "recalculate":
        report = services.stats.recalculate_attendance()
        return f"recalculated attendance for {report.updated_players} player(s)"
    if action == "initialize":
        return f"created {services.stats.initialize_stats()} stats document(s)"
    if action == "sync":
        return f"deleted {services.stats.sync_with_users()} orphaned stats document(s)"
    if action == "consolidate":
        return f"consolidated {services.stats.consolidate_duplicates()} player(s)"
    raise ValueError(f"Unknown action '{action}'")


def main(argv: List[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    if args.database:
        settings = replace(settings, store_backend="sqlite", sqlite_path=args.database)
    level = getattr(logging, str(args.log_level or settings.log_level).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")

    services = ClubServices.build(settings)
    try:
        summary = run_action(services, args.action, reset_inactive=args.reset_inactive)
    except ClubspaceError as exc:
        LOGGER.error("%s failed (%s): %s", args.action, exc.kind.value, exc, exc_info=level <= logging.DEBUG)
        return 1
    finally:
        services.close()

    LOGGER.info("%s completed: %s", args.action, summary)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
