"""Application layer: reminder dispatch orchestration."""

from .dispatch import ReminderDispatcher, never_verified

__all__ = [
    "ReminderDispatcher",
    "never_verified",
]
