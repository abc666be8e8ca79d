"""
Sync Error Taxonomy

Every failure raised by the sync pipeline or the read-only repository derives
from SyncError, so callers can stop a run on the first one.
"""

from typing import Any, Optional


class SyncError(Exception):
    """Base class for all sync and repository errors."""


class ParseError(SyncError):
    """A CSV row could not be converted into a typed record."""

    def __init__(self, row_number: int, message: str):
        self.row_number = row_number
        super().__init__(f"Row {row_number}: {message}")


class ConnectivityError(SyncError):
    """The store could not be reached or refused the credentials."""


class ReferentialIntegrityError(SyncError):
    """A parent row was missing when a child row was written."""


class StageOrderError(SyncError):
    """Stage declarations do not form a valid topological order."""


class StageError(SyncError):
    """Wraps the first failure raised inside a pipeline stage."""

    def __init__(self, stage: str, cause: Exception, key: Optional[Any] = None):
        self.stage = stage
        self.key = key
        self.cause = cause
        location = f"stage '{stage}'"
        if key is not None:
            location += f" at key {key!r}"
        super().__init__(f"Sync failed in {location}: {cause}")


class RepositoryError(SyncError):
    """Base class for errors mapping stored rows to domain values."""


class NotFoundError(RepositoryError):
    """The requested row does not exist."""


class LowLevelError(RepositoryError):
    """The store driver failed underneath a repository call."""


class InvalidEnumValueError(RepositoryError):
    """A stored or supplied code has no matching enumerated value."""

    def __init__(self, value: Any, row_number: Optional[int] = None):
        self.value = value
        self.row_number = row_number
        message = f"{self.__class__.__name__}: {value!r}"
        if row_number is not None:
            message = f"Row {row_number}: {message}"
        super().__init__(message)


class UnknownStateTypeError(InvalidEnumValueError):
    pass


class UnknownConfidenceLevelError(InvalidEnumValueError):
    pass
