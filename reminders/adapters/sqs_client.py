"""SQS transport adapter for the reminder queues.

Mental model refresher:
- This module is transport glue to SQS itself.
- boto3 is blocking, so every call runs in a worker thread; the pump's event
  loop never blocks on the network.
- Provider failures surface as `QueueError`. Deciding whether to retry,
  ignore or log is the consumer's job, not this module's.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import QueueError
from ..types import RawMessage

logger = logging.getLogger(__name__)

# Responses meaning the receipt handle is already gone (deleted or expired).
BENIGN_RECEIPT_ERROR_CODES = frozenset(
    {
        "ReceiptHandleIsInvalid",
        "AWS.SimpleQueueService.ReceiptHandleIsInvalid",
        "MessageNotInflight",
        "AWS.SimpleQueueService.MessageNotInflight",
    }
)


class SQSQueueClient:
    """Async wrapper over a shared boto3 SQS client."""

    def __init__(
        self,
        *,
        region: str,
        max_messages_per_poll: int = 10,
        poll_wait_seconds: int = 2,
        sqs_client: Any | None = None,
    ) -> None:
        self.region = region
        self.max_messages_per_poll = max_messages_per_poll
        self.poll_wait_seconds = poll_wait_seconds
        # boto3 clients are thread-safe, so one client serves every queue loop.
        self._sqs = sqs_client or boto3.client("sqs", region_name=region)

    async def receive_batch(self, queue_url: str) -> list[RawMessage]:
        response = await self._call(
            "receive",
            queue_url,
            self._sqs.receive_message,
            QueueUrl=queue_url,
            AttributeNames=["All"],
            MaxNumberOfMessages=self.max_messages_per_poll,
            WaitTimeSeconds=self.poll_wait_seconds,
        )
        return [
            RawMessage(
                queue_url=queue_url,
                receipt_handle=str(message.get("ReceiptHandle", "")),
                body=message.get("Body", ""),
                message_id=message.get("MessageId"),
                attributes=dict(message.get("Attributes") or {}),
            )
            for message in response.get("Messages") or []
        ]

    async def extend_visibility(
        self, queue_url: str, receipt_handle: str, timeout_seconds: int
    ) -> None:
        await self._call(
            "extend_visibility",
            queue_url,
            self._sqs.change_message_visibility,
            QueueUrl=queue_url,
            ReceiptHandle=receipt_handle,
            VisibilityTimeout=timeout_seconds,
        )

    async def delete(self, queue_url: str, receipt_handle: str) -> None:
        try:
            await self._call(
                "delete",
                queue_url,
                self._sqs.delete_message,
                QueueUrl=queue_url,
                ReceiptHandle=receipt_handle,
            )
        except QueueError as exc:
            if not is_benign_receipt_error(exc):
                raise
            logger.debug(
                "[DELETE SKIPPED] queue_url=%s code=%s reason=receipt handle already gone",
                queue_url,
                exc.code,
            )

    async def send_reminder(self, queue_url: str, payload: Mapping[str, Any]) -> str:
        response = await self._call(
            "send",
            queue_url,
            self._sqs.send_message,
            QueueUrl=queue_url,
            MessageBody=json.dumps(dict(payload), separators=(",", ":")),
        )
        return str(response.get("MessageId", ""))

    async def _call(self, operation: str, queue_url: str, method: Any, **params: Any) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(method, **params)
        except ClientError as exc:
            error = exc.response.get("Error", {})
            raise QueueError(
                f"SQS {operation} failed: {error.get('Message') or exc}",
                operation=operation,
                queue_url=queue_url,
                code=error.get("Code"),
            ) from exc
        except BotoCoreError as exc:
            raise QueueError(
                f"SQS {operation} failed: {exc}",
                operation=operation,
                queue_url=queue_url,
            ) from exc


def is_benign_receipt_error(exc: QueueError) -> bool:
    if exc.code in BENIGN_RECEIPT_ERROR_CODES:
        return True
    # Expired handles come back as a generic parameter error.
    return exc.code == "InvalidParameterValue" and "receipt handle" in str(exc).lower()
