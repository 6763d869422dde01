"""
Clubspace: events, attendance and player statistics for an amateur club.
"""

from .config import Settings
from .exceptions import (
    ClubspaceError,
    DocumentNotFoundError,
    MalformedDocumentError,
    ReadOnlyError,
    StoreError,
    StoreErrorKind,
    ValidationError,
)
from .session import Session

__all__ = [
    "Settings",
    "Session",
    "ClubspaceError",
    "DocumentNotFoundError",
    "MalformedDocumentError",
    "ReadOnlyError",
    "StoreError",
    "StoreErrorKind",
    "ValidationError",
    "ClubServices",
]


def __getattr__(name):
    if name == "ClubServices":
        from .services import ClubServices

        return ClubServices
    raise AttributeError(f"module 'clubspace' has no attribute '{name}'")
