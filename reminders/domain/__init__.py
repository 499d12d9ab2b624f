"""Domain layer: reminder record and email rules."""

from .email import build_verification_reminder_email, select_reminder_template
from .reminder import AckState, ReminderMessage, ReminderType

__all__ = [
    "AckState",
    "ReminderMessage",
    "ReminderType",
    "build_verification_reminder_email",
    "select_reminder_template",
]
