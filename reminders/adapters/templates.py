"""Built-in renderer for the verification reminder templates.

Only English copy ships with the worker; other languages fall back to the
default language after `Accept-Language` negotiation.
"""

from __future__ import annotations

import html
from typing import Any, Mapping, Sequence

from ..domain.email import FIRST_REMINDER_TEMPLATE, SECOND_REMINDER_TEMPLATE
from ..types import RenderedEmail

SUPPORTED_LANGUAGES = ("en",)

_TEXT_TEMPLATES = {
    FIRST_REMINDER_TEMPLATE: (
        "Hello again.\n\n"
        "A few days ago you created an account, but never verified it.\n"
        "Confirm this email address to activate your account:\n"
        "{link}\n\n"
        "This is an automated email; if you received it in error, no action is required.\n"
        "For more information, please visit {supportUrl}\n"
        "Privacy notice: {privacyUrl}\n"
    ),
    SECOND_REMINDER_TEMPLATE: (
        "Still there?\n\n"
        "A week ago you created an account, but never verified it. We're worried about you.\n"
        "Confirm this email address to activate your account:\n"
        "{link}\n\n"
        "This is an automated email; if you received it in error, no action is required.\n"
        "For more information, please visit {supportUrl}\n"
        "Privacy notice: {privacyUrl}\n"
    ),
}

_HTML_TEMPLATES = {
    FIRST_REMINDER_TEMPLATE: (
        "<html><body>"
        "<h1>Hello again.</h1>"
        "<p>A few days ago you created an account, but never verified it.</p>"
        '<p><a href="{oneClickLink}">Activate now</a></p>'
        '<p>Or copy this link: <a href="{alternativeLink}">{alternativeLink}</a></p>'
        "<p>This is an automated email; if you received it in error, no action is required. "
        "For more information, please visit <a {supportLinkAttributes}>Support</a>.</p>"
        '<p><a href="{privacyUrl}">Privacy notice</a></p>'
        "</body></html>"
    ),
    SECOND_REMINDER_TEMPLATE: (
        "<html><body>"
        "<h1>Still there?</h1>"
        "<p>A week ago you created an account, but never verified it. "
        "We're worried about you.</p>"
        '<p><a href="{oneClickLink}">Activate now</a></p>'
        '<p>Or copy this link: <a href="{alternativeLink}">{alternativeLink}</a></p>'
        "<p>This is an automated email; if you received it in error, no action is required. "
        "For more information, please visit <a {supportLinkAttributes}>Support</a>.</p>"
        '<p><a href="{privacyUrl}">Privacy notice</a></p>'
        "</body></html>"
    ),
}

# Values already formatted as HTML attributes.
_RAW_HTML_VALUES = frozenset({"supportLinkAttributes"})


def render_template(
    template_name: str,
    language: str,
    values: Mapping[str, Any],
) -> RenderedEmail:
    """Render one template; unknown template names raise `KeyError`."""
    text_template = _TEXT_TEMPLATES[template_name]
    html_template = _HTML_TEMPLATES[template_name]
    resolved_language = negotiate_language(language, SUPPORTED_LANGUAGES, SUPPORTED_LANGUAGES[0])

    text_values = {key: str(value) for key, value in values.items()}
    html_values = {
        key: str(value) if key in _RAW_HTML_VALUES else html.escape(str(value))
        for key, value in values.items()
    }

    return {
        "subject": str(values.get("subject", "")),
        "text": text_template.format_map(text_values),
        "html": html_template.format_map(html_values),
        "language": resolved_language,
    }


def negotiate_language(
    accept_language: str | None,
    supported: Sequence[str],
    default: str,
) -> str:
    """Pick the best supported language for an `Accept-Language` header.

    Exact tags win over primary-subtag matches (`en-GB` -> `en`); `q=0`
    entries are ignored; nothing usable means `default`.
    """
    if not accept_language:
        return default

    supported_by_lower = {item.lower(): item for item in supported}
    candidates: list[tuple[float, int, str]] = []
    for position, part in enumerate(accept_language.split(",")):
        pieces = [piece.strip() for piece in part.split(";")]
        tag = pieces[0].lower()
        if not tag or tag == "*":
            continue
        quality = 1.0
        for param in pieces[1:]:
            if param.startswith("q="):
                try:
                    quality = float(param[2:])
                except ValueError:
                    quality = 0.0
        if quality > 0:
            candidates.append((-quality, position, tag))

    for _quality, _position, tag in sorted(candidates):
        if tag in supported_by_lower:
            return supported_by_lower[tag]
        primary = tag.split("-", 1)[0]
        if primary in supported_by_lower:
            return supported_by_lower[primary]
    return default
