"""Audit event ingestion from SQS."""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Optional

from authcore.core.database import SessionFactory, SessionLocal, session_scope
from authcore.events_engine.consumers.base import SQSConsumer
from authcore.schemas.audit import AuditEvent
from authcore.services.audit import AuditService

LOGGER = logging.getLogger("authcore.events_engine.consumers.audit")


def build_audit_handler(session_factory: SessionFactory = SessionLocal) -> Callable[[Dict[str, Any]], None]:
    def handle(payload: Dict[str, Any]) -> None:
        event = AuditEvent.model_validate(payload)
        with session_scope(session_factory) as session:
            entry = AuditService(session).record_event(event)
            LOGGER.info(
                "audit_event_ingested",
                extra={
                    "sequence": entry.sequence,
                    "event_id": str(event.event_id),
                    "source": event.source,
                },
            )

    return handle


class AuditSQSConsumer(SQSConsumer):
    """SQS consumer that appends each audit event to the hash chain."""

    def __init__(
        self,
        *,
        queue_url: str,
        region_name: Optional[str] = None,
        wait_time_seconds: int = 20,
        visibility_timeout: Optional[int] = None,
        max_messages: int = 5,
        session_factory: SessionFactory = SessionLocal,
        client: Any = None,
    ) -> None:
        super().__init__(
            queue_url=queue_url,
            handler=build_audit_handler(session_factory),
            region_name=region_name,
            wait_time_seconds=wait_time_seconds,
            visibility_timeout=visibility_timeout,
            max_messages=max_messages,
            client=client,
        )


def build_audit_consumer_from_env() -> AuditSQSConsumer:
    """Construct an audit consumer from AUTHCORE_AUDIT_SQS_* variables."""

    queue_url = os.environ["AUTHCORE_AUDIT_SQS_URL"]
    region = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")
    max_messages = int(os.getenv("AUTHCORE_AUDIT_SQS_MAX_MESSAGES", "5"))
    wait_time = int(os.getenv("AUTHCORE_AUDIT_SQS_WAIT_TIME", "20"))
    visibility_timeout = os.getenv("AUTHCORE_AUDIT_SQS_VISIBILITY_TIMEOUT")
    visibility = int(visibility_timeout) if visibility_timeout else None

    return AuditSQSConsumer(
        queue_url=queue_url,
        region_name=region,
        max_messages=max_messages,
        wait_time_seconds=wait_time,
        visibility_timeout=visibility,
    )
