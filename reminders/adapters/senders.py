"""Email sender adapters.

Mental model refresher:
- This module is an outbound adapter.
- The Mailgun sender integrates with the provider using environment-variable
  config; the console sender only logs, for local runs.
- Application code only sees a plain callable:
  `send_email(*, to_email, subject, html, text, headers)`, raising on failure.
"""

from __future__ import annotations

import base64
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from typing import Mapping

logger = logging.getLogger(__name__)


def send_email_via_mailgun_from_env(
    *,
    to_email: str,
    subject: str,
    html: str,
    text: str,
    headers: Mapping[str, str] | None = None,
) -> None:
    """Send email via Mailgun REST API using environment-variable config."""
    api_key = _required_env("MAILGUN_API_KEY")
    domain = _required_env("MAILGUN_DOMAIN")
    from_email = _required_env("MAILGUN_FROM_EMAIL")
    base_url = os.getenv("MAILGUN_API_BASE_URL", "https://api.mailgun.net").rstrip("/")
    timeout_seconds = float(os.getenv("MAILGUN_TIMEOUT_SECONDS", "10"))

    encoded_domain = urllib.parse.quote(domain, safe="")
    endpoint = f"{base_url}/v3/{encoded_domain}/messages"
    fields = {
        "from": from_email,
        "to": to_email,
        "subject": subject,
        "text": text,
        "html": html,
    }
    # Mailgun takes custom MIME headers as `h:<Name>` fields.
    for name, value in (headers or {}).items():
        fields[f"h:{name}"] = value
    payload = urllib.parse.urlencode(fields).encode("utf-8")

    request = urllib.request.Request(endpoint, data=payload, method="POST")
    request.add_header("Authorization", _basic_auth_header("api", api_key))
    request.add_header("Content-Type", "application/x-www-form-urlencoded")

    try:
        with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
            status = int(response.getcode())
            if status < 200 or status >= 300:
                raise RuntimeError(f"Mailgun email send failed with status {status}")
            response.read()
    except urllib.error.HTTPError as exc:
        details = exc.read().decode("utf-8", errors="replace")
        raise RuntimeError(
            f"Mailgun email send failed HTTP {exc.code}: {details[:300]}"
        ) from exc
    except urllib.error.URLError as exc:
        raise RuntimeError(f"Mailgun email send failed: {exc.reason}") from exc

    logger.info("[EMAIL SENT] provider=mailgun to=%s subject=%r", to_email, subject)


def send_email_via_console(
    *,
    to_email: str,
    subject: str,
    html: str,
    text: str,
    headers: Mapping[str, str] | None = None,
) -> None:
    _ = html
    logger.info(
        "[EMAIL] to=%s subject=%r headers=%s\n%s",
        to_email,
        subject,
        dict(headers or {}),
        text,
    )


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value.strip()


def _basic_auth_header(username: str, password: str) -> str:
    token = f"{username}:{password}".encode("utf-8")
    encoded = base64.b64encode(token).decode("ascii")
    return f"Basic {encoded}"
