"""Adapter layer: queue transports, payload decoding, rendering and senders."""

from .consumer import QueueConsumer, QueueState
from .memory_queue import InMemoryQueueClient
from .payload import decode_reminder_message
from .runtime import publish_verification_reminder, run_reminder_worker_forever
from .senders import send_email_via_console, send_email_via_mailgun_from_env
from .sqs_client import SQSQueueClient
from .templates import negotiate_language, render_template

__all__ = [
    "InMemoryQueueClient",
    "QueueConsumer",
    "QueueState",
    "SQSQueueClient",
    "decode_reminder_message",
    "negotiate_language",
    "publish_verification_reminder",
    "render_template",
    "run_reminder_worker_forever",
    "send_email_via_console",
    "send_email_via_mailgun_from_env",
]
