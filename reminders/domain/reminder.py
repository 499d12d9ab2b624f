"""Reminder record and its enums.

`receipt_handle` identifies one delivery attempt, not the reminder itself: a
redelivered message arrives with a fresh handle. `ack_state` is in-flight
bookkeeping only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ReminderType(str, Enum):
    FIRST = "first"
    SECOND = "second"

    @classmethod
    def from_wire(cls, value: object) -> "ReminderType":
        """Map the wire `type` value; absent or unknown values mean FIRST."""
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.FIRST


class AckState(str, Enum):
    PENDING = "pending"
    ACKED = "acked"


@dataclass
class ReminderMessage:
    uid: str
    email: str
    code: str
    accept_language: str
    receipt_handle: str
    queue_url: str
    reminder_type: ReminderType = ReminderType.FIRST
    created_at: datetime | None = None
    message_id: str | None = None
    ack_state: AckState = AckState.PENDING

    def mark_acked(self) -> None:
        self.ack_state = AckState.ACKED
