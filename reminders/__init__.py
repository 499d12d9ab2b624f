"""Queue-driven verification reminder pipeline."""

from .adapters import (
    InMemoryQueueClient,
    QueueConsumer,
    QueueState,
    SQSQueueClient,
    decode_reminder_message,
    negotiate_language,
    publish_verification_reminder,
    render_template,
    run_reminder_worker_forever,
    send_email_via_console,
    send_email_via_mailgun_from_env,
)
from .application import ReminderDispatcher
from .config import ReminderSettings, load_settings_from_env
from .domain import AckState, ReminderMessage, ReminderType, build_verification_reminder_email
from .errors import DecodeError, DecodeErrorKind, DispatchError, QueueError, ReminderError
from .types import RawMessage

__all__ = [
    "AckState",
    "DecodeError",
    "DecodeErrorKind",
    "DispatchError",
    "InMemoryQueueClient",
    "QueueConsumer",
    "QueueError",
    "QueueState",
    "RawMessage",
    "ReminderDispatcher",
    "ReminderError",
    "ReminderMessage",
    "ReminderSettings",
    "ReminderType",
    "SQSQueueClient",
    "build_verification_reminder_email",
    "decode_reminder_message",
    "load_settings_from_env",
    "negotiate_language",
    "publish_verification_reminder",
    "render_template",
    "run_reminder_worker_forever",
    "send_email_via_console",
    "send_email_via_mailgun_from_env",
]
