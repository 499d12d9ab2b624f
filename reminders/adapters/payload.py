"""Payload adapter functions.

Mental model refresher:
- This is an adapter/edge module.
- It translates transport-shaped data (an SQS message body) into the typed
  `ReminderMessage` used by application/domain code.
- It validates shape and required fields, but it does not decide
  delete/no-delete; the consumer does.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any, Mapping

from ..domain.reminder import ReminderMessage, ReminderType
from ..errors import DecodeError, DecodeErrorKind
from ..types import RawMessage

REQUIRED_FIELDS = ("uid", "email", "code", "acceptLanguage")


def decode_reminder_message(raw: RawMessage) -> ReminderMessage:
    """Decode one raw queue delivery into a `ReminderMessage`.

    Raises `DecodeError` for bodies that are not a JSON object (MALFORMED) and
    for objects missing any required field (MISSING_FIELDS).
    """
    payload = parse_json_object(raw.body)

    missing = [name for name in REQUIRED_FIELDS if _as_optional_str(payload.get(name)) is None]
    if missing:
        raise DecodeError(
            f"Missing required field(s): {', '.join(missing)}",
            kind=DecodeErrorKind.MISSING_FIELDS,
            missing_fields=missing,
        )

    return ReminderMessage(
        uid=_as_required_str(payload["uid"]),
        email=_as_required_str(payload["email"]),
        code=_as_required_str(payload["code"]),
        accept_language=_as_required_str(payload["acceptLanguage"]),
        reminder_type=ReminderType.from_wire(payload.get("type")),
        created_at=parse_created_at(payload.get("createdAt")),
        receipt_handle=raw.receipt_handle,
        queue_url=raw.queue_url,
        message_id=raw.message_id,
    )


def parse_json_object(body: str | bytes | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(body, Mapping):
        return dict(body)

    try:
        text = body.decode("utf-8") if isinstance(body, bytes) else body
        parsed = json.loads(text)
    except (UnicodeDecodeError, TypeError, ValueError) as exc:
        raise DecodeError(
            f"Message body is not valid JSON: {exc}", kind=DecodeErrorKind.MALFORMED
        ) from exc

    if not isinstance(parsed, dict):
        raise DecodeError(
            "Message body must decode to a JSON object", kind=DecodeErrorKind.MALFORMED
        )
    return parsed


def parse_created_at(value: Any) -> datetime | None:
    """Parse `createdAt` as epoch milliseconds or ISO-8601; unparseable means None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def _as_required_str(value: Any) -> str:
    text = _as_optional_str(value)
    if text is None:
        raise DecodeError("Missing required field", kind=DecodeErrorKind.MISSING_FIELDS)
    return text


def _as_optional_str(value: Any) -> str | None:
    # Booleans, zero, lists and objects never identify a user or a code.
    if not value or isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    text = str(value).strip()
    return text or None
