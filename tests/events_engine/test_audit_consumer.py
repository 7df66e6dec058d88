from __future__ import annotations

import json
from uuid import uuid4

from sqlalchemy import select

from authcore.core.database import session_scope
from authcore.events_engine.consumers.audit import AuditSQSConsumer, build_audit_handler
from authcore.models.audit_log import AuditLog
from authcore.schemas.audit import AuditEvent


class StubSQSClient:
    def __init__(self, messages) -> None:  # noqa: ANN001
        self.messages = messages
        self.deleted = []
        self.receive_calls = []

    def receive_message(self, **kwargs):  # noqa: ANN003
        self.receive_calls.append(kwargs)
        messages, self.messages = self.messages, []
        return {"Messages": messages}

    def delete_message(self, *, QueueUrl, ReceiptHandle) -> None:  # noqa: N803, ANN001
        self.deleted.append(ReceiptHandle)


def _sns_message(payload: dict, receipt: str) -> dict:
    return {
        "MessageId": receipt,
        "ReceiptHandle": receipt,
        "Body": json.dumps({"Type": "Notification", "Message": json.dumps(payload)}),
    }


def test_audit_handler_persists_events() -> None:
    event = AuditEvent(action_type="role.assign", source="authcore-api", target_principal_id=uuid4())

    build_audit_handler()(event.model_dump(mode="json"))

    with session_scope() as session:
        entries = session.execute(select(AuditLog)).scalars().all()
        assert [entry.action_type for entry in entries] == ["role.assign"]
        assert entries[0].source == "authcore-api"


def test_consumer_deletes_handled_messages_and_keeps_failures() -> None:
    good = AuditEvent(action_type="role.create").model_dump(mode="json")
    bad = {"source": "authcore"}
    client = StubSQSClient([_sns_message(good, "r-good"), _sns_message(bad, "r-bad")])
    consumer = AuditSQSConsumer(queue_url="https://sqs.example.test/audit", client=client, wait_time_seconds=1)

    handled = consumer.poll_once()

    assert handled == 1
    assert client.deleted == ["r-good"]
    assert client.receive_calls[0]["WaitTimeSeconds"] == 1
    with session_scope() as session:
        assert len(session.execute(select(AuditLog)).scalars().all()) == 1


def test_redelivered_event_is_written_once() -> None:
    payload = AuditEvent(action_type="role.update").model_dump(mode="json")
    client = StubSQSClient([_sns_message(payload, "r-1"), _sns_message(payload, "r-2")])
    consumer = AuditSQSConsumer(queue_url="https://sqs.example.test/audit", client=client)

    assert consumer.poll_once() == 2

    with session_scope() as session:
        assert len(session.execute(select(AuditLog)).scalars().all()) == 1
