"""Verification reminder email rules.

Mental model refresher:
- Domain modules hold channel/business rules.
- They decide what should happen for a reminder:
  - which template and subject does this reminder type use?
  - which links and headers go into the message?
- They do not poll queues, render templates or talk to providers.
"""

from __future__ import annotations

import urllib.parse
from typing import Any, Mapping

from .reminder import ReminderMessage, ReminderType

UTM_PREFIX = "fxa-"

FIRST_REMINDER_TEMPLATE = "verificationReminderFirstEmail"
SECOND_REMINDER_TEMPLATE = "verificationReminderSecondEmail"

# Email template to UTM campaign map.
TEMPLATE_CAMPAIGNS = {
    FIRST_REMINDER_TEMPLATE: "hello-again",
    SECOND_REMINDER_TEMPLATE: "still-there",
}

_TEMPLATE_BY_TYPE = {
    ReminderType.FIRST: (FIRST_REMINDER_TEMPLATE, "Hello again."),
    ReminderType.SECOND: (SECOND_REMINDER_TEMPLATE, "Still there?"),
}


def select_reminder_template(reminder_type: ReminderType) -> tuple[str, str]:
    """Return `(template_name, subject)` for a reminder type."""
    return _TEMPLATE_BY_TYPE.get(reminder_type, _TEMPLATE_BY_TYPE[ReminderType.FIRST])


def build_verification_reminder_email(
    reminder: ReminderMessage,
    *,
    verification_url: str,
    support_url: str,
    privacy_url: str,
    default_language: str = "en",
) -> dict[str, Any]:
    """Build the unrendered email for one reminder.

    The result carries everything the renderer and notifier need: recipient,
    subject, template name, template values, extra headers and language.
    """
    template, subject = select_reminder_template(reminder.reminder_type)

    query: dict[str, Any] = {
        "uid": reminder.uid,
        "code": reminder.code,
        "reminder": reminder.reminder_type.value,
    }
    link = generate_utm_link(verification_url, query, template, "activate")
    alternative_link = generate_utm_link(
        verification_url, query, template, "activate-alternative"
    )
    one_click_link = generate_utm_link(
        verification_url, query | {"one_click": "true"}, template, "activate-oneclick"
    )
    support_link = generate_utm_link(support_url, {}, template, "support")

    return {
        "to_email": reminder.email,
        "subject": subject,
        "template": template,
        "accept_language": reminder.accept_language.strip() or default_language,
        "headers": {
            "X-Link": link,
            "X-Uid": reminder.uid,
            "X-Verify-Code": reminder.code,
        },
        "template_values": {
            "email": reminder.email,
            "link": link,
            "alternativeLink": alternative_link,
            "oneClickLink": one_click_link,
            "privacyUrl": generate_utm_link(privacy_url, {}, template, "privacy"),
            "supportUrl": support_link,
            "supportLinkAttributes": link_attributes(support_link),
        },
    }


def generate_utm_link(
    link: str,
    query: Mapping[str, Any],
    template: str,
    context: str | None = None,
) -> str:
    params: dict[str, Any] = dict(query)
    params["utm_source"] = "email"
    params["utm_medium"] = "email"

    campaign = TEMPLATE_CAMPAIGNS.get(template)
    if campaign and "utm_campaign" not in params:
        params["utm_campaign"] = f"{UTM_PREFIX}{campaign}"
    if context:
        params["utm_context"] = f"{UTM_PREFIX}{context}"

    return f"{link}?{urllib.parse.urlencode(params)}"


def link_attributes(url: str) -> str:
    return (
        f'href="{url}" style="color: #0095dd; text-decoration: none; '
        'font-family: sans-serif;"'
    )
