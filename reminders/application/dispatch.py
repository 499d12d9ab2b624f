"""Application orchestration for sending one verification reminder.

Mental model refresher:
- Application layer coordinates use-case flow across domain modules and
  injected adapters.
- For a decoded reminder it:
  1) asks the verification policy whether a reminder is still wanted
  2) builds the email through domain rules
  3) renders it and hands it to the notifier
- It reports a plain channel result and never raises; the consumer decides
  what happens to the queue message.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..config import ReminderSettings
from ..domain.email import build_verification_reminder_email
from ..domain.reminder import ReminderMessage
from ..errors import DispatchError
from ..types import ChannelResult, RenderFn, SendEmailFn

logger = logging.getLogger(__name__)

IsVerifiedFn = Callable[[ReminderMessage], bool]


def never_verified(reminder: ReminderMessage) -> bool:
    """Default verification policy.

    This service has no view of account verification state, so every
    reminder is treated as still wanted.
    """
    _ = reminder
    return False


class ReminderDispatcher:
    def __init__(
        self,
        *,
        send_email: SendEmailFn,
        render: RenderFn,
        settings: ReminderSettings,
        is_verified: IsVerifiedFn | None = None,
    ) -> None:
        self.send_email = send_email
        self.render = render
        self.settings = settings
        self.is_verified = is_verified or never_verified

    async def dispatch(self, reminder: ReminderMessage) -> ChannelResult:
        if not reminder.code or not reminder.email:
            logger.error(
                "[DISPATCH ERROR] uid=%s error=missing code or email", reminder.uid
            )
            return _result(success=False, error="missing code or email")

        try:
            already_verified = self.is_verified(reminder)
        except Exception as exc:
            logger.error(
                "[DISPATCH ERROR] uid=%s error=verification check failed: %s",
                reminder.uid,
                exc,
            )
            return _result(success=False, error=f"verification check failed: {exc}")

        if already_verified:
            logger.info("[DISPATCH SKIPPED] uid=%s reason=already_verified", reminder.uid)
            return _result(success=True, skipped="already_verified")

        try:
            await self._send(reminder)
        except Exception as exc:
            error = DispatchError(f"reminder email send failed: {exc}")
            logger.error(
                "[DISPATCH ERROR] uid=%s type=%s error=%s",
                reminder.uid,
                reminder.reminder_type.value,
                error,
            )
            return _result(success=False, error=str(error))

        logger.info(
            "[DISPATCH] uid=%s type=%s message_id=%s",
            reminder.uid,
            reminder.reminder_type.value,
            reminder.message_id,
        )
        return _result(success=True)

    async def _send(self, reminder: ReminderMessage) -> None:
        email = build_verification_reminder_email(
            reminder,
            verification_url=self.settings.verification_url,
            support_url=self.settings.support_url,
            privacy_url=self.settings.privacy_url,
            default_language=self.settings.default_language,
        )
        values = dict(email["template_values"], subject=email["subject"])
        rendered = self.render(email["template"], email["accept_language"], values)

        headers = {"Content-Language": rendered.get("language", self.settings.default_language)}
        headers.update(email["headers"])

        # Notifiers are blocking HTTP/SMTP clients.
        await asyncio.to_thread(
            self.send_email,
            to_email=email["to_email"],
            subject=rendered["subject"],
            html=rendered["html"],
            text=rendered["text"],
            headers=headers,
        )


def _result(*, success: bool, error: str | None = None, skipped: str | None = None) -> ChannelResult:
    return {
        "channel": "email",
        "requested": skipped is None,
        "success": success,
        "skipped": skipped,
        "error": error,
    }
