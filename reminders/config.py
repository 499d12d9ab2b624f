"""Environment-variable configuration for the reminder worker.

All settings are read once at startup. Invalid or missing values raise
`RuntimeError`; the runtime treats that as a fatal startup error.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# SQS limits for ReceiveMessage / ChangeMessageVisibility.
MAX_MESSAGES_PER_POLL_LIMIT = 10
MAX_POLL_WAIT_SECONDS = 20
MAX_VISIBILITY_TIMEOUT_SECONDS = 43200


@dataclass(frozen=True)
class ReminderSettings:
    queue_urls: tuple[str, ...]
    queue_region: str = "us-east-1"
    enabled: bool = True
    visibility_timeout: int = 60
    max_messages_per_poll: int = 10
    poll_wait_seconds: int = 2
    receive_retry_seconds: float = 2.0
    max_in_flight: int = 10
    delete_on_send_failure: bool = True
    default_language: str = "en"
    verification_url: str = "https://accounts.example.com/verify_email"
    support_url: str = "https://support.example.com/"
    privacy_url: str = "https://www.example.com/privacy/"
    email_sender: str = "mailgun"
    log_level: str = "INFO"


def load_settings_from_env() -> ReminderSettings:
    """Build `ReminderSettings` from `REMINDER_*` environment variables."""
    enabled = _env_bool("REMINDER_ENABLED", default=True)
    settings = ReminderSettings(
        queue_urls=_queue_urls_from_env(required=enabled),
        queue_region=os.getenv(
            "REMINDER_QUEUE_REGION", os.getenv("AWS_REGION", "us-east-1")
        ).strip(),
        enabled=enabled,
        visibility_timeout=_env_int("REMINDER_VISIBILITY_TIMEOUT", 60),
        max_messages_per_poll=_env_int("REMINDER_MAX_MESSAGES_PER_POLL", 10),
        poll_wait_seconds=_env_int("REMINDER_POLL_WAIT_SECONDS", 2),
        receive_retry_seconds=_env_float("REMINDER_RECEIVE_RETRY_SECONDS", 2.0),
        max_in_flight=_env_int("REMINDER_MAX_IN_FLIGHT", 10),
        delete_on_send_failure=_env_bool("REMINDER_DELETE_ON_SEND_FAILURE", default=True),
        default_language=os.getenv("REMINDER_DEFAULT_LANGUAGE", "en").strip() or "en",
        verification_url=os.getenv(
            "REMINDER_VERIFICATION_URL", ReminderSettings.verification_url
        ).strip(),
        support_url=os.getenv("REMINDER_SUPPORT_URL", ReminderSettings.support_url).strip(),
        privacy_url=os.getenv("REMINDER_PRIVACY_URL", ReminderSettings.privacy_url).strip(),
        email_sender=os.getenv("REMINDER_EMAIL_SENDER", "mailgun").strip().lower(),
        log_level=os.getenv("REMINDER_LOG_LEVEL", "INFO").strip().upper(),
    )
    validate_settings(settings)
    return settings


def validate_settings(settings: ReminderSettings) -> None:
    if settings.enabled and not settings.queue_urls:
        raise RuntimeError("At least one reminder queue URL must be configured")
    if not 1 <= settings.max_messages_per_poll <= MAX_MESSAGES_PER_POLL_LIMIT:
        raise RuntimeError(
            f"REMINDER_MAX_MESSAGES_PER_POLL must be between 1 and {MAX_MESSAGES_PER_POLL_LIMIT}"
        )
    if not 0 <= settings.poll_wait_seconds <= MAX_POLL_WAIT_SECONDS:
        raise RuntimeError(
            f"REMINDER_POLL_WAIT_SECONDS must be between 0 and {MAX_POLL_WAIT_SECONDS}"
        )
    # Zero would hand every received message straight back to the queue.
    if not 1 <= settings.visibility_timeout <= MAX_VISIBILITY_TIMEOUT_SECONDS:
        raise RuntimeError(
            "REMINDER_VISIBILITY_TIMEOUT must be between 1 and "
            f"{MAX_VISIBILITY_TIMEOUT_SECONDS}"
        )
    if settings.receive_retry_seconds <= 0:
        raise RuntimeError("REMINDER_RECEIVE_RETRY_SECONDS must be > 0")
    if settings.max_in_flight < 1:
        raise RuntimeError("REMINDER_MAX_IN_FLIGHT must be >= 1")
    if settings.email_sender not in {"mailgun", "console"}:
        raise RuntimeError(
            f"REMINDER_EMAIL_SENDER must be 'mailgun' or 'console', got {settings.email_sender!r}"
        )


def load_env_file(path: Path) -> None:
    """Load `KEY=value` lines into the environment without overriding real env vars."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        text = line.strip()
        if not text or text.startswith("#") or "=" not in text:
            continue
        key, value = text.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue
        if value.startswith(("'", '"')) and value.endswith(("'", '"')) and len(value) >= 2:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _queue_urls_from_env(*, required: bool = True) -> tuple[str, ...]:
    raw = os.getenv("REMINDER_QUEUE_URLS") or os.getenv("REMINDER_QUEUE_URL")
    if raw is None or not raw.strip():
        if not required:
            return ()
        raise RuntimeError(
            "Missing required environment variable: REMINDER_QUEUE_URLS (or REMINDER_QUEUE_URL)"
        )
    urls = tuple(item.strip() for item in raw.split(",") if item.strip())
    if not urls:
        raise RuntimeError("REMINDER_QUEUE_URLS must include at least one queue URL")
    return urls


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise RuntimeError(f"Invalid boolean value for {name}: {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value for {name}: {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid number value for {name}: {raw!r}") from exc
