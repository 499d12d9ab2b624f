"""Shared type aliases and transport records for the reminder package."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

ChannelResult = dict[str, Any]
HandleResult = dict[str, Any]
RenderedEmail = dict[str, str]

SendEmailFn = Callable[..., None]
RenderFn = Callable[[str, str, Mapping[str, Any]], RenderedEmail]


@dataclass(frozen=True)
class RawMessage:
    """One delivery of a queue entry, exactly as the provider handed it over."""

    queue_url: str
    receipt_handle: str
    body: str | bytes
    message_id: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)


DecodeFn = Callable[[RawMessage], Any]
DispatchFn = Callable[[Any], Awaitable[ChannelResult]]
