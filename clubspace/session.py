"""
Explicit per-request identity supplied by the authentication collaborator.
"""
from __future__ import annotations

from dataclasses import dataclass

from .exceptions import ReadOnlyError
from .records import Role


@dataclass(frozen=True)
class Session:
    user_id: str
    email: str
    display_name: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_read_only(self) -> bool:
        return self.role is Role.VIEWER

    def require_writer(self) -> None:
        if self.is_read_only:
            raise ReadOnlyError("This account is read-only and cannot modify data.")

    def require_admin(self) -> None:
        self.require_writer()
        if not self.is_admin:
            raise ReadOnlyError("Only administrators can perform this action.")
