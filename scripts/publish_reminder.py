#!/usr/bin/env python3
"""Publish one verification reminder message to SQS for local testing."""

from __future__ import annotations

import argparse
import secrets
import sys
import time
import uuid
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from reminders.adapters.runtime import publish_verification_reminder  # noqa: E402
from reminders.config import load_env_file  # noqa: E402


def main() -> int:
    load_env_file(REPO_ROOT / ".env")
    args = parse_args()
    payload = build_payload(args)
    message_id = publish_verification_reminder(payload, queue_url=args.queue_url)

    print("[PUBLISHED]")
    print(f"message_id={message_id}")
    print(f"uid={payload['uid']} email={payload['email']} type={payload['type']}")
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Publish one verification reminder message for SQS testing."
    )
    parser.add_argument(
        "--email",
        required=True,
        help="Recipient email for the reminder.",
    )
    parser.add_argument(
        "--type",
        choices=("first", "second"),
        default="first",
        help="Reminder type. Default: first.",
    )
    parser.add_argument(
        "--uid",
        default=None,
        help="Optional account uid. Default: generated hex uuid.",
    )
    parser.add_argument(
        "--code",
        default=None,
        help="Optional verification code. Default: random 16-byte hex.",
    )
    parser.add_argument(
        "--accept-language",
        default="en-US,en;q=0.8",
        help="Accept-Language value for the reminder.",
    )
    parser.add_argument(
        "--queue-url",
        default=None,
        help="Override queue URL (defaults to the first REMINDER_QUEUE_URLS entry).",
    )
    return parser.parse_args()


def build_payload(args: argparse.Namespace) -> dict[str, object]:
    return {
        "uid": args.uid or uuid.uuid4().hex,
        "email": args.email,
        "code": args.code or secrets.token_hex(16),
        "acceptLanguage": args.accept_language,
        "type": args.type,
        "createdAt": int(time.time() * 1000),
    }


if __name__ == "__main__":
    sys.exit(main())
