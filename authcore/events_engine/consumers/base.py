"""Long-polling SQS consumer used by out-of-process audit writers."""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Dict, List, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

LOGGER = logging.getLogger("authcore.events_engine.consumer")


class MessageHandler(Protocol):
    """Handler invoked for each deserialized message."""

    def __call__(self, message: Dict[str, Any]) -> None:
        ...


def unwrap_sns_envelope(message_body: str) -> Dict[str, Any]:
    """Extract the inner payload when delivered via SNS -> SQS."""

    payload = json.loads(message_body)
    if isinstance(payload, dict) and "Message" in payload:
        inner = payload["Message"]
        if isinstance(inner, str):
            return json.loads(inner)
        if isinstance(inner, dict):
            return inner
    return payload


class SQSConsumer:
    """Feeds SQS messages to a handler and deletes the ones it accepts.

    A message whose handler raises is left on the queue so SQS redelivers it
    after the visibility timeout.
    """

    def __init__(
        self,
        *,
        queue_url: str,
        handler: MessageHandler,
        region_name: Optional[str] = None,
        wait_time_seconds: int = 20,
        visibility_timeout: Optional[int] = None,
        max_messages: int = 5,
        client: Any = None,
    ) -> None:
        self._queue_url = queue_url
        self._handler = handler
        self._receive_kwargs: Dict[str, Any] = {
            "QueueUrl": queue_url,
            "MaxNumberOfMessages": max_messages,
            "WaitTimeSeconds": wait_time_seconds,
            "MessageAttributeNames": ["All"],
        }
        if visibility_timeout is not None:
            self._receive_kwargs["VisibilityTimeout"] = visibility_timeout
        self._sqs = client or boto3.client("sqs", region_name=region_name)
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def run_forever(self) -> None:
        LOGGER.info("sqs_consumer_started", extra={"queue_url": self._queue_url})
        while not self._stop.is_set():
            try:
                self.poll_once()
            except (BotoCoreError, ClientError) as exc:  # pragma: no cover - resiliency
                LOGGER.exception("sqs_receive_failed", extra={"error": str(exc)})
                time.sleep(5)
        LOGGER.info("sqs_consumer_stopped", extra={"queue_url": self._queue_url})

    def poll_once(self) -> int:
        """Receive one batch; returns how many messages were handled and deleted."""

        handled = 0
        for message in self._receive_messages():
            receipt_handle = message["ReceiptHandle"]
            try:
                payload = unwrap_sns_envelope(message.get("Body", ""))
                self._handler(payload)
            except Exception as exc:  # noqa: BLE001 - one bad message must not stop the worker
                LOGGER.exception(
                    "sqs_message_failed",
                    extra={"error": str(exc), "message_id": message.get("MessageId")},
                )
                continue

            try:
                self._sqs.delete_message(QueueUrl=self._queue_url, ReceiptHandle=receipt_handle)
            except (BotoCoreError, ClientError) as exc:  # pragma: no cover - resiliency
                LOGGER.exception(
                    "sqs_delete_failed",
                    extra={"error": str(exc), "receipt_handle": receipt_handle},
                )
                continue
            handled += 1
        return handled

    def _receive_messages(self) -> List[Dict[str, Any]]:
        response = self._sqs.receive_message(**self._receive_kwargs)
        return response.get("Messages", [])
