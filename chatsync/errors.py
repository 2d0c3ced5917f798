"""Exceptions raised by the record store and the reply client.

All of them are caught at the orchestrator/session boundary and turned into
a single user-visible notification.
"""

from __future__ import annotations


class ChatSyncError(Exception):
    """Base class for failures surfaced to the user."""


class TransientNetworkError(ChatSyncError):
    """The reply stream could not be opened or read. Safe to retry."""


class ServiceError(ChatSyncError):
    """The reply service answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(ChatSyncError):
    """The record store rejected a read or write."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed{detail}")
        self.operation = operation
