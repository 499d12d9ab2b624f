from __future__ import annotations

import asyncio
import json
import unittest
from dataclasses import replace
from typing import Any, Callable, Mapping

from reminders.adapters.consumer import QueueConsumer, QueueState
from reminders.adapters.memory_queue import InMemoryQueueClient
from reminders.adapters.templates import render_template
from reminders.application.dispatch import ReminderDispatcher
from reminders.config import ReminderSettings
from reminders.domain.reminder import AckState
from reminders.types import RawMessage

QUEUE_URL = "memory://verification-reminders"
OTHER_QUEUE_URL = "memory://verification-reminders-eu"

SETTINGS = ReminderSettings(queue_urls=(QUEUE_URL,), receive_retry_seconds=2.0)


def make_body(**overrides: Any) -> dict[str, Any]:
    base: dict[str, Any] = {
        "uid": "uid-1",
        "email": "person@example.com",
        "code": "code-1",
        "acceptLanguage": "en",
        "type": "first",
    }
    return base | overrides


async def wait_for(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


class ConsumerTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.queue = InMemoryQueueClient(poll_wait_seconds=0.01)
        self.sent: list[dict[str, Any]] = []
        self.sleeps: list[float] = []
        self.fail_emails: set[str] = set()

    def fake_send_email(
        self,
        *,
        to_email: str,
        subject: str,
        html: str,
        text: str,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        if to_email in self.fail_emails:
            raise RuntimeError("email provider unavailable")
        self.sent.append({"to_email": to_email, "subject": subject, "headers": headers})

    async def fake_sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        await asyncio.sleep(0)

    def make_consumer(self, settings: ReminderSettings = SETTINGS) -> QueueConsumer:
        dispatcher = ReminderDispatcher(
            send_email=self.fake_send_email, render=render_template, settings=settings
        )
        return QueueConsumer(self.queue, dispatcher.dispatch, settings, sleep=self.fake_sleep)

    async def receive_one(self, queue_url: str = QUEUE_URL) -> RawMessage:
        batch = await self.queue.receive_batch(queue_url)
        self.assertEqual(len(batch), 1)
        return batch[0]


class HandleMessageTests(ConsumerTestCase):
    async def test_well_formed_message_is_dispatched_then_deleted(self) -> None:
        self.queue.put(QUEUE_URL, make_body())
        raw = await self.receive_one()

        result = await self.make_consumer().handle_message(raw)

        self.assertEqual(result["status"], "processed")
        self.assertTrue(result["deleted"])
        self.assertEqual(result["reminder"].ack_state, AckState.ACKED)
        self.assertEqual(len(self.sent), 1)
        self.assertEqual(self.queue.deleted, [(QUEUE_URL, raw.receipt_handle)])
        self.assertEqual(self.queue.pending(QUEUE_URL), 0)

    async def test_missing_required_field_is_deleted_without_dispatch(self) -> None:
        for field_name in ("uid", "email", "code", "acceptLanguage"):
            with self.subTest(field=field_name):
                body = make_body()
                del body[field_name]
                self.queue.put(QUEUE_URL, body)
                raw = await self.receive_one()

                with self.assertLogs("reminders.adapters.consumer", level="WARNING"):
                    result = await self.make_consumer().handle_message(raw)

                self.assertEqual(result["status"], "discarded")
                self.assertTrue(result["deleted"])
                self.assertIn((QUEUE_URL, raw.receipt_handle), self.queue.deleted)
        self.assertEqual(self.sent, [])

    async def test_malformed_json_is_deleted_without_dispatch(self) -> None:
        self.queue.put(QUEUE_URL, '{"uid": ')
        raw = await self.receive_one()

        with self.assertLogs("reminders.adapters.consumer", level="WARNING"):
            result = await self.make_consumer().handle_message(raw)

        self.assertEqual(result["status"], "discarded")
        self.assertIn("decode_failed", result["error"] or "")
        self.assertEqual(self.queue.pending(QUEUE_URL), 0)
        self.assertEqual(self.sent, [])

    async def test_failed_send_still_deletes_by_default(self) -> None:
        self.fail_emails.add("person@example.com")
        self.queue.put(QUEUE_URL, make_body())
        raw = await self.receive_one()

        with self.assertLogs("reminders.application.dispatch", level="ERROR"):
            result = await self.make_consumer().handle_message(raw)

        self.assertEqual(result["status"], "dispatch_failed")
        self.assertTrue(result["deleted"])
        self.assertFalse(result["dispatch"]["success"])
        self.assertEqual(self.queue.pending(QUEUE_URL), 0)

    async def test_failed_send_can_be_left_for_redelivery(self) -> None:
        self.fail_emails.add("person@example.com")
        self.queue.put(QUEUE_URL, make_body())
        raw = await self.receive_one()
        consumer = self.make_consumer(replace(SETTINGS, delete_on_send_failure=False))

        with self.assertLogs("reminders.adapters.consumer", level="WARNING"):
            result = await consumer.handle_message(raw)

        self.assertEqual(result["status"], "left_for_redelivery")
        self.assertFalse(result["deleted"])
        self.assertEqual(result["reminder"].ack_state, AckState.PENDING)
        self.assertEqual(self.queue.deleted, [])
        self.assertEqual(self.queue.pending(QUEUE_URL), 1)

    async def test_delete_failure_is_logged_not_raised(self) -> None:
        self.queue.put(QUEUE_URL, make_body())
        raw = await self.receive_one()
        self.queue.fail_next("delete")
        consumer = self.make_consumer()

        with self.assertLogs("reminders.adapters.consumer", level="ERROR"):
            result = await consumer.handle_message(raw)

        self.assertEqual(result["status"], "processed")
        self.assertFalse(result["deleted"])
        self.assertEqual(consumer.stats["delete_errors"], 1)
        self.assertEqual(self.queue.pending(QUEUE_URL), 1)

    async def test_handling_same_delivery_twice_does_not_crash(self) -> None:
        self.queue.put(QUEUE_URL, make_body())
        raw = await self.receive_one()
        consumer = self.make_consumer()

        first = await consumer.handle_message(raw)
        second = await consumer.handle_message(raw)

        self.assertTrue(first["deleted"])
        self.assertTrue(second["deleted"])
        self.assertEqual(len(self.queue.deleted), 2)
        self.assertEqual(consumer.stats["delete_errors"], 0)

    async def test_unexpected_decode_policy_error_leaves_message(self) -> None:
        def broken_decode(raw: RawMessage) -> Any:
            raise KeyError("boom")

        self.queue.put(QUEUE_URL, make_body())
        raw = await self.receive_one()
        dispatcher = ReminderDispatcher(
            send_email=self.fake_send_email, render=render_template, settings=SETTINGS
        )
        consumer = QueueConsumer(self.queue, dispatcher.dispatch, SETTINGS, decode=broken_decode)

        with self.assertLogs("reminders.adapters.consumer", level="ERROR"):
            result = await consumer.handle_message(raw)

        self.assertEqual(result["status"], "handle_failed")
        self.assertEqual(self.queue.deleted, [])


class PollOnceTests(ConsumerTestCase):
    async def test_empty_queue_is_not_an_error(self) -> None:
        consumer = self.make_consumer()

        received = await consumer.poll_once(QUEUE_URL)

        self.assertEqual(received, 0)
        self.assertEqual(consumer.state_of(QUEUE_URL), QueueState.EMPTY)
        self.assertEqual(self.sleeps, [])

    async def test_visibility_is_extended_on_receipt(self) -> None:
        self.queue.put(QUEUE_URL, make_body())
        self.queue.put(QUEUE_URL, "not json")
        consumer = self.make_consumer()

        received = await consumer.poll_once(QUEUE_URL)

        self.assertEqual(received, 2)
        self.assertEqual(
            [(url, timeout) for url, _handle, timeout in self.queue.visibility_changes],
            [(QUEUE_URL, 60), (QUEUE_URL, 60)],
        )
        self.assertEqual(consumer.state_of(QUEUE_URL), QueueState.PROCESSING)
        self.assertEqual(self.queue.deleted, [])
        self.assertEqual(self.sent, [])

    async def test_visibility_failure_is_ignored(self) -> None:
        self.queue.put(QUEUE_URL, make_body())
        self.queue.fail_next("extend_visibility")
        consumer = self.make_consumer()

        with self.assertLogs("reminders.adapters.consumer", level="WARNING"):
            received = await consumer.poll_once(QUEUE_URL)

        self.assertEqual(received, 1)
        self.assertEqual(consumer.stats["visibility_errors"], 1)

    async def test_receive_error_backs_off_without_raising(self) -> None:
        self.queue.fail_next("receive")
        consumer = self.make_consumer()

        with self.assertLogs("reminders.adapters.consumer", level="ERROR"):
            received = await consumer.poll_once(QUEUE_URL)

        self.assertEqual(received, 0)
        self.assertEqual(self.sleeps, [2.0])
        self.assertEqual(consumer.state_of(QUEUE_URL), QueueState.IDLE)

    async def test_full_channel_holds_back_the_poll_loop(self) -> None:
        for index in range(3):
            self.queue.put(QUEUE_URL, make_body(uid=f"uid-{index}"))
        consumer = self.make_consumer(replace(SETTINGS, max_in_flight=1))

        poll = asyncio.create_task(consumer.poll_once(QUEUE_URL))
        await asyncio.sleep(0.05)
        self.assertFalse(poll.done())

        channel = consumer._channel(QUEUE_URL)
        await channel.get()
        await channel.get()
        self.assertEqual(await asyncio.wait_for(poll, timeout=1.0), 3)


class RunningConsumerTests(ConsumerTestCase):
    async def test_batch_with_malformed_middle_message(self) -> None:
        self.queue.put(QUEUE_URL, make_body(uid="uid-1", email="first@example.com"))
        self.queue.put(QUEUE_URL, '{"uid": "uid-2", "email": ')
        self.queue.put(QUEUE_URL, make_body(uid="uid-3", email="third@example.com"))
        consumer = self.make_consumer()

        await consumer.start()
        try:
            await wait_for(lambda: len(self.queue.deleted) == 3)
        finally:
            await consumer.stop()

        self.assertEqual(len(self.sent), 2)
        self.assertEqual(
            sorted(item["to_email"] for item in self.sent),
            ["first@example.com", "third@example.com"],
        )
        self.assertEqual(consumer.stats["discarded"], 1)
        self.assertEqual(consumer.stats["dispatched"], 2)
        self.assertEqual(self.queue.pending(QUEUE_URL), 0)

    async def test_polling_resumes_after_transient_receive_errors(self) -> None:
        self.queue.fail_next("receive", times=2)
        self.queue.put(QUEUE_URL, make_body())
        consumer = self.make_consumer()

        with self.assertLogs("reminders.adapters.consumer", level="ERROR"):
            await consumer.start()
            try:
                await wait_for(lambda: len(self.queue.deleted) == 1)
            finally:
                await consumer.stop()

        self.assertEqual(self.sleeps, [2.0, 2.0])
        self.assertEqual(consumer.stats["receive_errors"], 2)
        self.assertEqual(len(self.sent), 1)

    async def test_failed_send_is_deleted_and_logged(self) -> None:
        self.fail_emails.add("person@example.com")
        self.queue.put(QUEUE_URL, make_body())
        consumer = self.make_consumer()

        with self.assertLogs("reminders.application.dispatch", level="ERROR") as logs:
            await consumer.start()
            try:
                await wait_for(lambda: len(self.queue.deleted) == 1)
            finally:
                await consumer.stop()

        self.assertIn("email provider unavailable", "\n".join(logs.output))
        self.assertEqual(consumer.stats["dispatch_failed"], 1)
        self.assertEqual(self.queue.pending(QUEUE_URL), 0)

    async def test_each_queue_is_polled_independently(self) -> None:
        settings = replace(SETTINGS, queue_urls=(QUEUE_URL, OTHER_QUEUE_URL))
        self.queue.put(QUEUE_URL, make_body(email="us@example.com"))
        self.queue.put(OTHER_QUEUE_URL, make_body(email="eu@example.com"))
        self.queue.fail_next("receive", times=3)
        consumer = self.make_consumer(settings)

        with self.assertLogs("reminders.adapters.consumer", level="ERROR"):
            await consumer.start()
            try:
                await wait_for(lambda: len(self.queue.deleted) == 2)
            finally:
                await consumer.stop()

        self.assertEqual(
            sorted(item["to_email"] for item in self.sent),
            ["eu@example.com", "us@example.com"],
        )
        self.assertIn(QUEUE_URL, self.queue.receive_calls)
        self.assertIn(OTHER_QUEUE_URL, self.queue.receive_calls)

    async def test_stop_drains_queued_messages(self) -> None:
        consumer = self.make_consumer()
        await consumer.start()
        self.assertTrue(consumer.running)
        with self.assertRaises(RuntimeError):
            await consumer.start()

        await consumer._channel(QUEUE_URL).put(
            RawMessage(
                queue_url=QUEUE_URL,
                receipt_handle="rh-late",
                body=json.dumps(make_body()),
                message_id="msg-late",
            )
        )
        await consumer.stop()

        self.assertFalse(consumer.running)
        self.assertEqual(len(self.sent), 1)
        self.assertEqual(self.queue.deleted, [(QUEUE_URL, "rh-late")])
        self.assertEqual(consumer.state_of(QUEUE_URL), QueueState.IDLE)

    async def test_run_forever_stops_cleanly_when_cancelled(self) -> None:
        self.queue.put(QUEUE_URL, make_body())
        consumer = self.make_consumer()

        task = asyncio.create_task(consumer.run_forever())
        await wait_for(lambda: len(self.queue.deleted) == 1)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertFalse(consumer.running)
        self.assertEqual(len(self.sent), 1)

    async def test_run_forever_returns_after_stop(self) -> None:
        self.queue.put(QUEUE_URL, make_body())
        consumer = self.make_consumer()

        task = asyncio.create_task(consumer.run_forever())
        await wait_for(lambda: len(self.queue.deleted) == 1)
        await consumer.stop()

        self.assertIsNone(await asyncio.wait_for(task, timeout=2.0))
        self.assertFalse(consumer.running)
        self.assertEqual(len(self.sent), 1)


if __name__ == "__main__":
    unittest.main()
