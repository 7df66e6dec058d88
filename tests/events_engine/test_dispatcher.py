from __future__ import annotations

import queue
from uuid import uuid4

from authcore.core.config import AppSettings
from authcore.events_engine.dispatcher import AuditDispatcher, build_audit_dispatcher
from authcore.events_engine.publisher import NullEventPublisher, QueueEventPublisher
from authcore.schemas.audit import AuditEvent


class StubPublisher:
    def __init__(self) -> None:
        self.events = []

    def publish(self, event: AuditEvent) -> None:
        self.events.append(event)


class FailingPublisher:
    def publish(self, event: AuditEvent) -> None:
        raise RuntimeError("topic unavailable")


def test_emit_builds_event_with_source() -> None:
    publisher = StubPublisher()
    dispatcher = AuditDispatcher(publisher=publisher, default_source="authcore-test")
    actor = uuid4()

    dispatcher.emit("role.create", performed_by=actor, new_value={"name": "viewer"}, user_agent="x" * 600)

    assert len(publisher.events) == 1
    event = publisher.events[0]
    assert event.source == "authcore-test"
    assert event.performed_by == actor
    assert event.new_value == {"name": "viewer"}
    assert len(event.user_agent) == 512


def test_publisher_failure_is_swallowed() -> None:
    dispatcher = AuditDispatcher(publisher=FailingPublisher())

    dispatcher.append(AuditEvent(action_type="role.delete"))


def test_full_queue_does_not_block_the_caller() -> None:
    publisher = QueueEventPublisher(maxsize=1)
    dispatcher = AuditDispatcher(publisher=publisher)

    dispatcher.append(AuditEvent(action_type="role.create"))
    dispatcher.append(AuditEvent(action_type="role.update"))

    assert publisher.queue.qsize() == 1
    assert publisher.queue.get_nowait().action_type == "role.create"
    assert isinstance(publisher.queue, queue.Queue)


def test_null_publisher_discards_events() -> None:
    AuditDispatcher(publisher=NullEventPublisher()).append(AuditEvent(action_type="role.create"))


def test_build_audit_dispatcher_defaults_to_in_process_queue() -> None:
    dispatcher = build_audit_dispatcher(AppSettings(audit_topic_arn=None, audit_queue_size=5))
    assert isinstance(dispatcher.publisher, QueueEventPublisher)
    assert dispatcher.publisher.queue.maxsize == 5
