#!/usr/bin/env python3
"""Run the verification reminder worker.

This worker long-polls the configured SQS queue(s) and sends reminder email
via Mailgun (or the console sender with `REMINDER_EMAIL_SENDER=console`).
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from reminders.adapters.runtime import run_reminder_worker_forever  # noqa: E402
from reminders.config import load_env_file  # noqa: E402


def main() -> int:
    parse_args()
    load_env_file(REPO_ROOT / ".env")
    return run_reminder_worker_forever()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the SQS consumer loop for verification reminder emails."
    )
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(main())
