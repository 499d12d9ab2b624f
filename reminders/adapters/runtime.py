"""Process wiring for the verification reminder worker.

Mental model refresher:
- This module is transport/bootstrap glue.
- It turns environment config into a running consumer: SQS client,
  dispatcher (renderer + email sender) and the reminder pump.
- Business rules still live in domain/application layers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from ..application.dispatch import ReminderDispatcher
from ..config import ReminderSettings, load_settings_from_env
from ..types import SendEmailFn
from .consumer import QueueConsumer
from .senders import send_email_via_console, send_email_via_mailgun_from_env
from .sqs_client import SQSQueueClient
from .templates import render_template

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def run_reminder_worker_forever() -> int:
    """Run the reminder pump until interrupted.

    Returns a process exit code: 0 on interrupt or when reminders are
    disabled, 1 on a startup configuration error or unexpected crash.
    """
    try:
        settings = load_settings_from_env()
    except RuntimeError as exc:
        configure_logging("INFO")
        logger.error("[WORKER ERROR] invalid configuration: %s", exc)
        return 1

    configure_logging(settings.log_level)
    if not settings.enabled:
        logger.info("[WORKER STOP] verification reminders not enabled")
        return 0

    consumer = build_consumer(settings)
    logger.info(
        "[WORKER START] region=%s queues=%s sender=%s delete_on_send_failure=%s",
        settings.queue_region,
        ",".join(settings.queue_urls),
        settings.email_sender,
        settings.delete_on_send_failure,
    )

    try:
        asyncio.run(consumer.run_forever())
    except KeyboardInterrupt:
        logger.info("[WORKER STOP] received keyboard interrupt")
        return 0
    except Exception as exc:
        logger.exception("[WORKER ERROR] %s", exc)
        return 1
    return 0


def build_consumer(
    settings: ReminderSettings,
    *,
    queue_client: Any | None = None,
    send_email: SendEmailFn | None = None,
) -> QueueConsumer:
    client = queue_client or SQSQueueClient(
        region=settings.queue_region,
        max_messages_per_poll=settings.max_messages_per_poll,
        poll_wait_seconds=settings.poll_wait_seconds,
    )
    dispatcher = ReminderDispatcher(
        send_email=send_email or sender_for(settings.email_sender),
        render=render_template,
        settings=settings,
    )
    return QueueConsumer(client, dispatcher.dispatch, settings)


def sender_for(name: str) -> SendEmailFn:
    if name == "console":
        return send_email_via_console
    if name == "mailgun":
        return send_email_via_mailgun_from_env
    raise RuntimeError(f"Unknown email sender: {name!r}")


def publish_verification_reminder(
    payload: Mapping[str, Any],
    *,
    queue_url: str | None = None,
    settings: ReminderSettings | None = None,
) -> str:
    """Send one reminder message to SQS; returns the SQS message id."""
    resolved = settings or load_settings_from_env()
    target = queue_url or next(iter(resolved.queue_urls), None)
    if not target:
        raise RuntimeError(
            "Missing required environment variable: REMINDER_QUEUE_URLS (or REMINDER_QUEUE_URL)"
        )
    client = SQSQueueClient(region=resolved.queue_region)
    return asyncio.run(client.send_reminder(target, payload))


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
