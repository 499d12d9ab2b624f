"""Error types raised across the reminder pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Sequence


class ReminderError(Exception):
    """Base class for reminder pipeline errors."""


class QueueError(ReminderError):
    """A queue provider call failed (receive, visibility change, delete or send)."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        queue_url: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.queue_url = queue_url
        self.code = code


class DecodeErrorKind(str, Enum):
    MALFORMED = "malformed"
    MISSING_FIELDS = "missing_fields"


class DecodeError(ReminderError, ValueError):
    """A queue payload can never become a valid reminder (poison message)."""

    def __init__(
        self,
        message: str,
        *,
        kind: DecodeErrorKind,
        missing_fields: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.missing_fields = tuple(missing_fields)


class DispatchError(ReminderError):
    """The notifier rejected or failed to deliver a reminder email."""
