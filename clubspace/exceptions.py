"""
Error types shared by the store adapters and the club services.
"""
from __future__ import annotations

from enum import Enum


class StoreErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    PERMISSION_DENIED = "permission-denied"
    NOT_FOUND = "not-found"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ClubspaceError(RuntimeError):
    """
    Base error carrying a closed error kind.
    """

    kind: StoreErrorKind = StoreErrorKind.UNKNOWN

    def __init__(self, message: str, *, kind: StoreErrorKind | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class StoreError(ClubspaceError):
    """
    Raised by document store adapters.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: StoreErrorKind | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, kind=kind)
        self.status_code = status_code


class StoreUnavailableError(StoreError):
    kind = StoreErrorKind.UNAVAILABLE


class StorePermissionError(StoreError):
    kind = StoreErrorKind.PERMISSION_DENIED


class DocumentNotFoundError(StoreError):
    kind = StoreErrorKind.NOT_FOUND


class ValidationError(ClubspaceError):
    """
    Raised when user input is rejected before anything is written.
    """

    kind = StoreErrorKind.VALIDATION


class ReadOnlyError(ClubspaceError):
    """
    Raised when a read-only or unprivileged session attempts a write.
    """

    kind = StoreErrorKind.PERMISSION_DENIED


class MalformedDocumentError(ClubspaceError):
    """
    Raised when a stored document does not match its collection's shape.
    """

    kind = StoreErrorKind.UNKNOWN

    def __init__(self, collection: str, doc_id: str, reason: str):
        super().__init__(f"Malformed document {collection}/{doc_id}: {reason}")
        self.collection = collection
        self.doc_id = doc_id
        self.reason = reason


_STORE_ERRORS = {
    StoreErrorKind.UNAVAILABLE: StoreUnavailableError,
    StoreErrorKind.PERMISSION_DENIED: StorePermissionError,
    StoreErrorKind.NOT_FOUND: DocumentNotFoundError,
}


def store_error_for(
    kind: StoreErrorKind, message: str, *, status_code: int | None = None
) -> StoreError:
    """
    Build the store error subclass matching ``kind``.
    """
    cls = _STORE_ERRORS.get(kind)
    if cls is None:
        return StoreError(message, kind=kind, status_code=status_code)
    return cls(message, status_code=status_code)
