"""In-process queue adapter for tests and the local flow demo.

- It mimics the SQS behaviour the pump relies on: a received message is
  hidden until its visibility timeout passes, every delivery gets a fresh
  receipt handle, and a deleted handle is no longer valid.
- Failures can be injected to exercise the pump's error paths.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from ..errors import QueueError
from ..types import RawMessage


@dataclass
class _StoredMessage:
    message_id: str
    body: str | bytes
    visible_at: float = 0.0
    receipt_handle: str | None = None
    receive_count: int = 0


class InMemoryQueueClient:
    def __init__(
        self,
        *,
        max_messages_per_poll: int = 10,
        poll_wait_seconds: float = 0.0,
        default_visibility_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_messages_per_poll = max_messages_per_poll
        self.poll_wait_seconds = poll_wait_seconds
        self.default_visibility_timeout = default_visibility_timeout
        self._clock = clock
        self._queues: dict[str, list[_StoredMessage]] = {}
        self._ids = itertools.count(1)
        self._pending_failures: dict[str, list[Exception]] = {}

        self.receive_calls: list[str] = []
        self.visibility_changes: list[tuple[str, str, int]] = []
        self.deleted: list[tuple[str, str]] = []

    def put(self, queue_url: str, body: str | bytes | Mapping[str, Any]) -> str:
        if isinstance(body, Mapping):
            body = json.dumps(dict(body))
        message_id = f"msg-{next(self._ids)}"
        self._queues.setdefault(queue_url, []).append(_StoredMessage(message_id, body))
        return message_id

    def fail_next(self, operation: str, error: Exception | None = None, *, times: int = 1) -> None:
        """Make the next `times` calls of `operation` raise `error`."""
        failure = error or QueueError(
            f"injected {operation} failure", operation=operation, code="ServiceUnavailable"
        )
        self._pending_failures.setdefault(operation, []).extend([failure] * times)

    def pending(self, queue_url: str) -> int:
        return len(self._queues.get(queue_url, []))

    async def receive_batch(self, queue_url: str) -> list[RawMessage]:
        self.receive_calls.append(queue_url)
        self._raise_injected("receive")

        batch = self._take_visible(queue_url)
        if not batch:
            await asyncio.sleep(self.poll_wait_seconds)
            batch = self._take_visible(queue_url)
        return batch

    async def extend_visibility(
        self, queue_url: str, receipt_handle: str, timeout_seconds: int
    ) -> None:
        self._raise_injected("extend_visibility")
        stored = self._find(queue_url, receipt_handle)
        if stored is None:
            raise QueueError(
                "receipt handle is not in flight",
                operation="extend_visibility",
                queue_url=queue_url,
                code="MessageNotInflight",
            )
        self.visibility_changes.append((queue_url, receipt_handle, timeout_seconds))
        stored.visible_at = self._clock() + timeout_seconds

    async def delete(self, queue_url: str, receipt_handle: str) -> None:
        self._raise_injected("delete")
        self.deleted.append((queue_url, receipt_handle))
        stored = self._find(queue_url, receipt_handle)
        if stored is not None:
            self._queues[queue_url].remove(stored)

    async def send_reminder(self, queue_url: str, payload: Mapping[str, Any]) -> str:
        return self.put(queue_url, payload)

    def _take_visible(self, queue_url: str) -> list[RawMessage]:
        now = self._clock()
        batch: list[RawMessage] = []
        for stored in self._queues.get(queue_url, []):
            if len(batch) >= self.max_messages_per_poll:
                break
            if stored.visible_at > now:
                continue
            stored.receive_count += 1
            stored.receipt_handle = f"{stored.message_id}-r{stored.receive_count}"
            stored.visible_at = now + self.default_visibility_timeout
            batch.append(
                RawMessage(
                    queue_url=queue_url,
                    receipt_handle=stored.receipt_handle,
                    body=stored.body,
                    message_id=stored.message_id,
                    attributes={"ApproximateReceiveCount": str(stored.receive_count)},
                )
            )
        return batch

    def _find(self, queue_url: str, receipt_handle: str) -> _StoredMessage | None:
        for stored in self._queues.get(queue_url, []):
            if stored.receipt_handle == receipt_handle:
                return stored
        return None

    def _raise_injected(self, operation: str) -> None:
        failures = self._pending_failures.get(operation)
        if failures:
            raise failures.pop(0)
