"""Publishers responsible for delivering audit events to a writer."""

from __future__ import annotations

import json
import logging
import queue
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from authcore.schemas.audit import AuditEvent

LOGGER = logging.getLogger("authcore.events_engine.publisher")


class EventPublisher(Protocol):
    """Transport abstraction for audit event delivery."""

    def publish(self, event: AuditEvent) -> None:
        ...


class NullEventPublisher(EventPublisher):
    """No-op publisher used when auditing is disabled."""

    def publish(self, event: AuditEvent) -> None:  # noqa: D401
        LOGGER.debug(
            "events_engine_publish_skipped",
            extra={"event_id": str(event.event_id), "action_type": event.action_type},
        )


class QueueEventPublisher(EventPublisher):
    """Hands events to an in-process queue drained by ``AuditWriter``."""

    def __init__(self, maxsize: int = 10000) -> None:
        self.queue: "queue.Queue[AuditEvent]" = queue.Queue(maxsize=maxsize)

    def publish(self, event: AuditEvent) -> None:
        # Raises queue.Full rather than blocking the request path.
        self.queue.put_nowait(event)


class SnsEventPublisher(EventPublisher):
    """Publishes audit events to an AWS SNS topic for an out-of-process writer."""

    def __init__(self, *, topic_arn: str, region_name: str) -> None:
        self._topic_arn = topic_arn
        self._client = boto3.client("sns", region_name=region_name)

    def publish(self, event: AuditEvent) -> None:
        message = json.dumps(event.model_dump(mode="json"))
        try:
            self._client.publish(
                TopicArn=self._topic_arn,
                Message=message,
                MessageAttributes={
                    "action_type": {
                        "DataType": "String",
                        "StringValue": event.action_type,
                    }
                },
            )
        except (BotoCoreError, ClientError):
            LOGGER.exception(
                "events_engine_publish_failed",
                extra={
                    "event_id": str(event.event_id),
                    "action_type": event.action_type,
                    "topic_arn": self._topic_arn,
                },
            )
            raise
