"""
Admin management of the ``users`` collection.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from ..exceptions import DocumentNotFoundError, ValidationError
from ..records import Collections, PlayerPosition, Role, UserProfile
from ..session import Session
from .repository import ClubRepository

LOGGER = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email is required.")
    return email


def _parse_role(role: Role | str) -> Role:
    try:
        return Role(str(role.value if isinstance(role, Role) else role).upper())
    except ValueError as exc:
        raise ValidationError(f"Unknown role {role!r}.") from exc


def _check_birthday(birthday: Optional[str]) -> Optional[str]:
    if not birthday:
        return None
    try:
        date.fromisoformat(birthday)
    except ValueError as exc:
        raise ValidationError("Birthday must use the YYYY-MM-DD format.") from exc
    return birthday


def _check_position(role: Role, position: Optional[str]) -> Optional[str]:
    if not position:
        return None
    if role is not Role.PLAYER:
        raise ValidationError("Only players have a position.")
    try:
        return PlayerPosition(position).value
    except ValueError as exc:
        raise ValidationError(f"Unknown position {position!r}.") from exc


class UserService:
    def __init__(self, repo: ClubRepository) -> None:
        self.repo = repo

    def list_users(self) -> List[UserProfile]:
        return sorted(self.repo.users(), key=lambda user: user.display_name.lower())

    def add_user(
        self,
        session: Session,
        *,
        email: str,
        role: Role | str = Role.PLAYER,
        alias: Optional[str] = None,
        birthday: Optional[str] = None,
        position: Optional[str] = None,
    ) -> UserProfile:
        session.require_admin()
        email = _normalize_email(email)
        if self.repo.find_user_by_email(email) is not None:
            raise ValidationError(f"A user with email {email} already exists.")
        role = _parse_role(role)
        profile = UserProfile(
            id="",
            email=email,
            role=role,
            alias=(alias or "").strip() or None,
            birthday=_check_birthday(birthday),
            position=_check_position(role, position),
        )
        user_id = self.repo.store.add_document(Collections.USERS, profile.to_document())
        LOGGER.info("Added user %s with role %s", email, role.value)
        return self.repo.get_user(user_id)

    def update_user(
        self,
        session: Session,
        user_id: str,
        *,
        role: Role | str,
        alias: Optional[str] = None,
        birthday: Optional[str] = None,
        position: Optional[str] = None,
    ) -> UserProfile:
        session.require_admin()
        current = self.repo.get_user(user_id)
        if current is None:
            raise DocumentNotFoundError(f"User {user_id} not found.")
        role = _parse_role(role)
        profile = UserProfile(
            id=user_id,
            email=current.email,
            role=role,
            alias=(alias or "").strip() or None,
            birthday=_check_birthday(birthday),
            position=_check_position(role, position),
        )
        self.repo.store.set_document(Collections.USERS, user_id, profile.to_document())
        return profile

    def update_display_name(self, session: Session, alias: str) -> UserProfile:
        """
        Let the session user change her own alias.
        """
        session.require_writer()
        alias = (alias or "").strip()
        if not alias:
            raise ValidationError("The alias cannot be empty.")
        current = self.repo.find_user_by_email(session.email)
        if current is None:
            raise DocumentNotFoundError(f"User {session.email} not found.")
        self.repo.store.update_document(Collections.USERS, current.id, {"alias": alias})
        return self.repo.get_user(current.id)

    def delete_user(self, session: Session, user_id: str) -> None:
        session.require_admin()
        self.repo.store.delete_document(Collections.USERS, user_id)
