"""Audit sink used by mutations: emit and forget."""

from __future__ import annotations

import logging
import os
from typing import Any, Optional, Protocol
from uuid import UUID

from authcore.core.config import AppSettings
from authcore.events_engine.publisher import (
    EventPublisher,
    QueueEventPublisher,
    SnsEventPublisher,
)
from authcore.schemas.audit import AuditEvent

LOGGER = logging.getLogger("authcore.events_engine.dispatcher")


class AuditSink(Protocol):
    """Append-only destination for audit events."""

    def append(self, event: AuditEvent) -> None:
        ...

    def emit(self, action_type: str, *, performed_by: Optional[UUID], **fields: Any) -> None:
        ...


class AuditDispatcher(AuditSink):
    """Stamps events with the service source and hands them to a publisher.

    Delivery failures are logged and swallowed; the mutation that emitted the
    event has already happened and must not be undone by the audit path.
    """

    def __init__(self, *, publisher: EventPublisher, default_source: str = "authcore") -> None:
        self._publisher = publisher
        self._default_source = default_source

    @property
    def publisher(self) -> EventPublisher:
        return self._publisher

    def append(self, event: AuditEvent) -> None:
        try:
            self._publisher.publish(event)
        except Exception as exc:  # noqa: BLE001 - audit must never block the primary operation
            LOGGER.error(
                "audit_emit_failed",
                extra={
                    "event_id": str(event.event_id),
                    "action_type": event.action_type,
                    "performed_by": str(event.performed_by) if event.performed_by else None,
                    "error": repr(exc),
                },
            )
            return
        LOGGER.debug(
            "audit_emitted",
            extra={"event_id": str(event.event_id), "action_type": event.action_type},
        )

    def emit(
        self,
        action_type: str,
        *,
        performed_by: Optional[UUID],
        target_role_id: Optional[UUID] = None,
        target_permission_id: Optional[UUID] = None,
        target_principal_id: Optional[UUID] = None,
        old_value: Any = None,
        new_value: Any = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        try:
            event = AuditEvent(
                source=self._default_source,
                action_type=action_type,
                performed_by=performed_by,
                target_role_id=target_role_id,
                target_permission_id=target_permission_id,
                target_principal_id=target_principal_id,
                old_value=old_value,
                new_value=new_value,
                ip_address=ip_address,
                user_agent=user_agent[:512] if user_agent else None,
            )
        except ValueError as exc:
            LOGGER.error("audit_event_invalid", extra={"action_type": action_type, "error": str(exc)})
            return
        self.append(event)


def build_audit_dispatcher(settings: AppSettings) -> AuditDispatcher:
    """Pick the publisher from settings; called once at startup."""

    if settings.audit_topic_arn:
        region = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "us-east-1"
        publisher: EventPublisher = SnsEventPublisher(topic_arn=settings.audit_topic_arn, region_name=region)
    else:
        publisher = QueueEventPublisher(maxsize=settings.audit_queue_size)
    return AuditDispatcher(publisher=publisher, default_source=settings.audit_source)
