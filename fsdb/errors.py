"""Exceptions raised by the database client."""

from __future__ import annotations


class FirestoreError(Exception):
    """Base class for every error raised by the client."""


class DatabaseError(FirestoreError):
    """An error reported by, or about, the database service."""

    def __init__(self, code: str, details: str, retry_possible: bool = False) -> None:
        super().__init__(details)
        self.code = code
        self.details = details
        self.retry_possible = retry_possible

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, details={self.details!r}, "
            f"retry_possible={self.retry_possible!r})"
        )


class InvalidParametersError(FirestoreError):
    """A parameter handed to the client was rejected before any request was made."""

    def __init__(self, field: str, error: str) -> None:
        super().__init__(f"Invalid parameter {field!r}: {error}")
        self.field = field
        self.error = error


class DataNotFoundError(FirestoreError):
    """The requested document does not exist."""

    def __init__(self, details: str) -> None:
        super().__init__(details)
        self.details = details