#!/usr/bin/env python3
"""Run the reminder pump against an in-memory queue (no SQS, no Mailgun)."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Mapping

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from reminders.adapters.memory_queue import InMemoryQueueClient  # noqa: E402
from reminders.adapters.runtime import build_consumer, configure_logging  # noqa: E402
from reminders.adapters.senders import send_email_via_console  # noqa: E402
from reminders.config import ReminderSettings  # noqa: E402

QUEUE_URL = "memory://verification-reminders"


def main() -> int:
    configure_logging("INFO")
    return asyncio.run(run_demo())


async def run_demo() -> int:
    settings = ReminderSettings(queue_urls=(QUEUE_URL,), max_in_flight=2)
    queue = InMemoryQueueClient(poll_wait_seconds=0.05)
    for body in sample_bodies():
        queue.put(QUEUE_URL, body)

    consumer = build_consumer(settings, queue_client=queue, send_email=send_email_maybe_fail)
    await consumer.start()
    try:
        for _ in range(100):
            if queue.pending(QUEUE_URL) == 0:
                break
            await asyncio.sleep(0.05)
    finally:
        await consumer.stop()

    print("")
    print("[DEMO SUMMARY]")
    print(f"stats={dict(consumer.stats)}")
    print(f"deleted={[handle for _url, handle in queue.deleted]}")
    print(f"pending={queue.pending(QUEUE_URL)}")
    return 0


def send_email_maybe_fail(
    *,
    to_email: str,
    subject: str,
    html: str,
    text: str,
    headers: Mapping[str, str] | None = None,
) -> None:
    if to_email == "fail-email@example.com":
        raise RuntimeError("email provider unavailable")
    send_email_via_console(
        to_email=to_email, subject=subject, html=html, text=text, headers=headers
    )


def sample_bodies() -> list[Any]:
    return [
        {
            "uid": "uid-100",
            "email": "person@example.com",
            "code": "code-100",
            "acceptLanguage": "en-US,en;q=0.8",
            "type": "first",
        },
        '{"uid": "uid-101", "email": ',
        {
            "uid": "uid-102",
            "email": "person@example.com",
            "code": "code-102",
            "acceptLanguage": "de",
            "type": "second",
        },
        {
            "uid": "uid-103",
            "email": "person@example.com",
            "acceptLanguage": "en",
        },
        {
            "uid": "uid-104",
            "email": "fail-email@example.com",
            "code": "code-104",
            "acceptLanguage": "en",
        },
    ]


if __name__ == "__main__":
    sys.exit(main())
