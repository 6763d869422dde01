#!/usr/bin/env python
"""
Seed users and rivals from a YAML roster into the configured store.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List

from clubspace.config import Settings
from clubspace.exceptions import ClubspaceError
from clubspace.records import Role
from clubspace.roster import load_roster, resolve_roster_path, seed_roster
from clubspace.services import ClubServices
from clubspace.session import Session


LOGGER = logging.getLogger(__name__)


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seed users and rivals from a YAML roster.")
    parser.add_argument(
        "--roster",
        type=str,
        help="Path to the roster file (defaults to CLUBSPACE_ROSTER or config/roster.yml).",
    )
    parser.add_argument("--database", type=str, help="Path to the SQLite store.")
    parser.add_argument(
        "--admin-email",
        default="seed@localhost",
        help="Email recorded as creator of the seeded rivals.",
    )
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
    roster_path = resolve_roster_path(Path(args.roster) if args.roster else None, settings)
    LOGGER.info("Loading roster from %s", roster_path)
    try:
        roster = load_roster(roster_path)
    except (OSError, ClubspaceError) as exc:
        LOGGER.error("Could not read roster: %s", exc)
        return 1

    session = Session(args.admin_email, args.admin_email, "Seeder", Role.ADMIN)
    services = ClubServices.build(settings)
    try:
        seed_roster(services, roster, session)
    except ClubspaceError as exc:
        LOGGER.error("Seeding failed: %s", exc, exc_info=level <= logging.DEBUG)
        return 1
    finally:
        services.close()
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
