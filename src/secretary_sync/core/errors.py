# src/secretary_sync/core/errors.py

"""
Exception hierarchy shared by stores, the sync coordinator and repositories.

Propagation policy:
- local failures propagate (StorageUnavailableError),
- remote failures are absorbed by the coordinator and turned into pending sync markers,
- per-record migration failures are collected, not raised.
"""

from __future__ import annotations


class SecretaryError(Exception):
    """Base class for all errors raised by secretary_sync."""


class ValidationError(SecretaryError):
    """Malformed input rejected before any I/O."""


class NotFoundError(SecretaryError):
    """The requested entity does not exist in any store."""


class DuplicateTaskError(SecretaryError):
    """An update would give two tasks in the same section the same normalized text."""

    def __init__(self, message: str, *, task_id: str, existing_id: str) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.existing_id = existing_id


class StorageUnavailableError(SecretaryError):
    """LocalStore read/write failed. There is nothing beneath it to fall back to."""


class RemoteUnavailableError(SecretaryError):
    """Remote store is offline, timed out or rejected the request."""


class MigrationError(SecretaryError):
    """A single raw record could not be migrated."""

    def __init__(self, message: str, *, record_id: str | None = None, section: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id
        self.section = section


class StaleLockError(SecretaryError):
    """A migration lock is older than the staleness threshold and is considered abandoned."""

    def __init__(self, message: str, *, age_seconds: float) -> None:
        super().__init__(message)
        self.age_seconds = age_seconds


class ScheduleGenerationError(SecretaryError):
    """No schedule generator produced a usable schedule."""
