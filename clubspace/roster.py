"""
YAML roster used to seed users and rivals into an empty store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .config import Settings
from .exceptions import ValidationError
from .session import Session
from .services import ClubServices

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RosterUser:
    email: str
    role: str = "PLAYER"
    alias: Optional[str] = None
    birthday: Optional[str] = None
    position: Optional[str] = None


@dataclass(frozen=True)
class Roster:
    users: Tuple[RosterUser, ...] = ()
    rivals: Tuple[str, ...] = ()


def resolve_roster_path(path: Optional[Path] = None, settings: Optional[Settings] = None) -> Path:
    if path is not None:
        return path
    settings = settings or Settings.from_env()
    return Path(settings.roster_path)


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Roster file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_roster(path: Path) -> Roster:
    """
    Parse a roster file of the form::

        users:
          - email: ana@example.com
            alias: Ana
            role: ADMIN
        rivals:
          - Las Leonas
    """
    raw = _load_yaml(path)
    users: List[RosterUser] = []
    for item in raw.get("users", []) or []:
        if not isinstance(item, dict) or not item.get("email"):
            raise ValidationError(f"Roster user entries need an email: {item!r}")
        birthday = item.get("birthday")
        users.append(
            RosterUser(
                email=str(item["email"]),
                role=str(item.get("role", "PLAYER")).upper(),
                alias=item.get("alias"),
                birthday=str(birthday) if birthday is not None else None,
                position=item.get("position"),
            )
        )
    rivals = tuple(str(name) for name in raw.get("rivals", []) or [] if name)
    return Roster(users=tuple(users), rivals=rivals)


def seed_roster(services: ClubServices, roster: Roster, session: Session) -> Dict[str, int]:
    """
    Add roster users and rivals that are not in the store yet.
    """
    added_users = 0
    for user in roster.users:
        if services.repo.find_user_by_email(user.email.strip().lower()) is not None:
            LOGGER.debug("User %s already exists", user.email)
            continue
        services.users.add_user(
            session,
            email=user.email,
            role=user.role,
            alias=user.alias,
            birthday=user.birthday,
            position=user.position,
        )
        added_users += 1

    existing = {rival.name.lower() for rival in services.fixtures.list_rivals()}
    added_rivals = 0
    for name in roster.rivals:
        if name.strip().lower() in existing:
            continue
        services.fixtures.create_rival(session, name)
        existing.add(name.strip().lower())
        added_rivals += 1
    LOGGER.info("Seeded %s user(s) and %s rival(s)", added_users, added_rivals)
    return {"users": added_users, "rivals": added_rivals}
