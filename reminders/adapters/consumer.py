"""Queue consumer ("reminder pump") for verification reminder queues.

Mental model refresher:
- This is the controller-like entrypoint for queue processing.
- Each configured queue URL gets its own poll loop plus a small pool of
  handler tasks, joined by a bounded channel:
  poll -> extend visibility -> channel -> decode -> dispatch -> delete
- This module owns transport lifecycle behaviour (poison messages,
  visibility, delete decisions), not email business rules.

Delete policy:
- Malformed or incomplete payloads are deleted without dispatch.
- Dispatched messages are deleted once the send settles, success or not,
  unless `delete_on_send_failure` is off and the send failed.
- A message is never deleted before its handler starts, so a crash means
  redelivery after the visibility timeout rather than loss.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from ..config import ReminderSettings
from ..domain.reminder import ReminderMessage
from ..errors import DecodeError
from ..types import DecodeFn, DispatchFn, HandleResult, RawMessage
from .payload import decode_reminder_message

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]

_STOP = object()


class QueueState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    EMPTY = "empty"
    HAS_MESSAGES = "has_messages"
    PROCESSING = "processing"


class QueueConsumer:
    def __init__(
        self,
        queue_client: Any,
        dispatch: DispatchFn,
        settings: ReminderSettings,
        *,
        decode: DecodeFn = decode_reminder_message,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.queue_client = queue_client
        self.dispatch = dispatch
        self.settings = settings
        self.decode = decode
        self._sleep = sleep
        self.stats: Counter[str] = Counter()
        self._states = {url: QueueState.IDLE for url in settings.queue_urls}
        self._channels: dict[str, asyncio.Queue[Any]] = {}
        self._poll_tasks: list[asyncio.Task[None]] = []
        self._handler_tasks: dict[str, list[asyncio.Task[None]]] = {}

    @property
    def running(self) -> bool:
        return bool(self._poll_tasks)

    def state_of(self, queue_url: str) -> QueueState:
        return self._states.get(queue_url, QueueState.IDLE)

    async def start(self) -> None:
        """Spawn one poll loop and `max_in_flight` handlers per queue URL."""
        if self.running:
            raise RuntimeError("QueueConsumer is already running")

        for queue_url in self.settings.queue_urls:
            self._handler_tasks[queue_url] = [
                asyncio.create_task(self._handler_loop(queue_url))
                for _ in range(self.settings.max_in_flight)
            ]
            self._poll_tasks.append(asyncio.create_task(self._poll_loop(queue_url)))
        logger.info(
            "[CONSUMER START] queues=%s max_in_flight=%s visibility_timeout=%s",
            ",".join(self.settings.queue_urls),
            self.settings.max_in_flight,
            self.settings.visibility_timeout,
        )

    async def stop(self) -> None:
        """Stop polling, let handlers finish every queued message, then return."""
        poll_tasks, self._poll_tasks = self._poll_tasks, []
        for task in poll_tasks:
            task.cancel()
        await asyncio.gather(*poll_tasks, return_exceptions=True)

        handler_tasks, self._handler_tasks = self._handler_tasks, {}
        for queue_url, tasks in handler_tasks.items():
            channel = self._channel(queue_url)
            for _ in tasks:
                await channel.put(_STOP)
        await asyncio.gather(
            *(task for tasks in handler_tasks.values() for task in tasks),
            return_exceptions=True,
        )

        for queue_url in self._states:
            self._states[queue_url] = QueueState.IDLE
        logger.info("[CONSUMER STOP] stats=%s", dict(self.stats))

    async def run_forever(self) -> None:
        """Run until cancelled or until `stop()` is called from elsewhere."""
        await self.start()
        try:
            await asyncio.gather(*self._poll_tasks)
        except asyncio.CancelledError:
            # `stop()` already took the poll tasks: a normal shutdown.
            if self.running:
                raise
        finally:
            if self.running:
                await self.stop()

    async def poll_once(self, queue_url: str) -> int:
        """Run one poll cycle for `queue_url`; returns the number of messages received.

        Receive failures are logged and followed by the retry backoff; they
        never propagate.
        """
        self._states[queue_url] = QueueState.POLLING
        try:
            batch = await self.queue_client.receive_batch(queue_url)
        except Exception as exc:
            self.stats["receive_errors"] += 1
            self._states[queue_url] = QueueState.IDLE
            logger.error(
                "[FETCH ERROR] queue_url=%s retry_in=%ss error=%s",
                queue_url,
                self.settings.receive_retry_seconds,
                exc,
            )
            await self._sleep(self.settings.receive_retry_seconds)
            return 0

        if not batch:
            self._states[queue_url] = QueueState.EMPTY
            return 0

        self._states[queue_url] = QueueState.HAS_MESSAGES
        self.stats["received"] += len(batch)
        logger.debug("[FETCH] queue_url=%s count=%s", queue_url, len(batch))

        # Claim every message before any of them waits for a handler.
        await asyncio.gather(*(self._extend_visibility(raw) for raw in batch))

        self._states[queue_url] = QueueState.PROCESSING
        channel = self._channel(queue_url)
        for raw in batch:
            await channel.put(raw)
        return len(batch)

    async def handle_message(self, raw: RawMessage) -> HandleResult:
        """Decode, dispatch and acknowledge one delivery. Never raises."""
        try:
            return await self._handle_message(raw)
        except Exception as exc:
            self.stats["handle_errors"] += 1
            logger.exception(
                "[HANDLE ERROR] queue_url=%s message_id=%s error=%s",
                raw.queue_url,
                raw.message_id,
                exc,
            )
            return _handle_result(raw, status="handle_failed", error=str(exc))

    async def _handle_message(self, raw: RawMessage) -> HandleResult:
        try:
            reminder = self.decode(raw)
        except DecodeError as exc:
            self.stats["discarded"] += 1
            logger.warning(
                "[DISCARD] queue_url=%s message_id=%s kind=%s error=%s",
                raw.queue_url,
                raw.message_id,
                exc.kind.value,
                exc,
            )
            deleted = await self._delete(raw)
            return _handle_result(
                raw, status="discarded", deleted=deleted, error=f"decode_failed: {exc}"
            )

        self._log_age(reminder)
        dispatch_result = await self.dispatch(reminder)
        succeeded = bool(dispatch_result.get("success"))

        if not succeeded and not self.settings.delete_on_send_failure:
            self.stats["left_for_redelivery"] += 1
            logger.warning(
                "[NO-DELETE] queue_url=%s message_id=%s reason=%s",
                raw.queue_url,
                raw.message_id,
                dispatch_result.get("error"),
            )
            return _handle_result(
                raw,
                status="left_for_redelivery",
                reminder=reminder,
                dispatch=dispatch_result,
                error=dispatch_result.get("error"),
            )

        deleted = await self._delete(raw)
        if deleted:
            reminder.mark_acked()
        self.stats["dispatched" if succeeded else "dispatch_failed"] += 1
        return _handle_result(
            raw,
            status="processed" if succeeded else "dispatch_failed",
            reminder=reminder,
            dispatch=dispatch_result,
            deleted=deleted,
            error=dispatch_result.get("error"),
        )

    async def _poll_loop(self, queue_url: str) -> None:
        while True:
            await self.poll_once(queue_url)

    async def _handler_loop(self, queue_url: str) -> None:
        channel = self._channel(queue_url)
        while True:
            item = await channel.get()
            try:
                if item is _STOP:
                    return
                await self.handle_message(item)
            finally:
                channel.task_done()

    async def _extend_visibility(self, raw: RawMessage) -> None:
        try:
            await self.queue_client.extend_visibility(
                raw.queue_url, raw.receipt_handle, self.settings.visibility_timeout
            )
        except Exception as exc:
            self.stats["visibility_errors"] += 1
            logger.warning(
                "[VISIBILITY ERROR] queue_url=%s message_id=%s error=%s",
                raw.queue_url,
                raw.message_id,
                exc,
            )

    async def _delete(self, raw: RawMessage) -> bool:
        try:
            await self.queue_client.delete(raw.queue_url, raw.receipt_handle)
        except Exception as exc:
            self.stats["delete_errors"] += 1
            logger.error(
                "[DELETE ERROR] queue_url=%s message_id=%s error=%s",
                raw.queue_url,
                raw.message_id,
                exc,
            )
            return False
        self.stats["deleted"] += 1
        logger.debug("[DELETE] queue_url=%s message_id=%s", raw.queue_url, raw.message_id)
        return True

    def _channel(self, queue_url: str) -> asyncio.Queue[Any]:
        channel = self._channels.get(queue_url)
        if channel is None:
            channel = asyncio.Queue(maxsize=self.settings.max_in_flight)
            self._channels[queue_url] = channel
        return channel

    def _log_age(self, reminder: ReminderMessage) -> None:
        # TODO: drop stale reminders once a maximum reminder age is agreed on.
        if reminder.created_at is None:
            return
        age_seconds = (datetime.now(tz=UTC) - reminder.created_at).total_seconds()
        logger.debug(
            "[REMINDER AGE] uid=%s message_id=%s age_seconds=%.0f",
            reminder.uid,
            reminder.message_id,
            age_seconds,
        )


def _handle_result(
    raw: RawMessage,
    *,
    status: str,
    reminder: ReminderMessage | None = None,
    dispatch: dict[str, Any] | None = None,
    deleted: bool = False,
    error: str | None = None,
) -> HandleResult:
    return {
        "status": status,
        "queue_url": raw.queue_url,
        "message_id": raw.message_id,
        "reminder": reminder,
        "dispatch": dispatch,
        "deleted": deleted,
        "error": error,
    }
