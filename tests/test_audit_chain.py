from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from authcore.core.database import session_scope
from authcore.models.audit_log import AuditLog
from authcore.schemas.audit import AuditEvent
from authcore.services.audit import AuditService
from authcore.services.audit_verifier import AuditVerificationError, AuditVerifier


def test_audit_chain_sequences_and_hashes() -> None:
    with session_scope() as session:
        service = AuditService(session)
        service.record_event(AuditEvent(action_type="unit.test.create", new_value={"step": 1}))
        service.record_event(AuditEvent(action_type="unit.test.update", new_value={"step": 2}))

    with session_scope() as session:
        entries = session.execute(select(AuditLog).order_by(AuditLog.sequence)).scalars().all()
        assert [entry.sequence for entry in entries] == [1, 2]
        assert entries[0].previous_hash == "0" * 64
        assert entries[1].previous_hash == entries[0].entry_hash

        result = AuditVerifier(session).verify()
        assert result.checked == 2
        assert (result.start_sequence, result.end_sequence) == (1, 2)


def test_replayed_event_is_stored_once() -> None:
    event = AuditEvent(action_type="role.create", target_role_id=uuid4())
    with session_scope() as session:
        first = AuditService(session).record_event(event)
        second = AuditService(session).record_event(event)
        assert first.id == second.id

    with session_scope() as session:
        assert len(session.execute(select(AuditLog)).scalars().all()) == 1


def test_audit_chain_tampering_detected() -> None:
    event_id = uuid4()
    with session_scope() as session:
        service = AuditService(session)
        service.record_event(AuditEvent(action_type="role.assign"))
        service.record_event(AuditEvent(event_id=event_id, action_type="role.remove", old_value={"status": "active"}))

    with session_scope() as session:
        entry = session.execute(select(AuditLog).where(AuditLog.event_id == str(event_id))).scalar_one()
        entry.old_value = {"status": "revoked"}
        session.add(entry)

    with session_scope() as session:
        with pytest.raises(AuditVerificationError):
            AuditVerifier(session).verify()
        # The untouched prefix still verifies.
        assert AuditVerifier(session).verify(end_sequence=1).checked == 1


def test_deleted_entry_breaks_the_chain() -> None:
    with session_scope() as session:
        service = AuditService(session)
        for step in range(3):
            service.record_event(AuditEvent(action_type="role.update", new_value={"step": step}))

    with session_scope() as session:
        middle = session.execute(select(AuditLog).where(AuditLog.sequence == 2)).scalar_one()
        session.delete(middle)

    with session_scope() as session:
        with pytest.raises(AuditVerificationError):
            AuditVerifier(session).verify()


def test_mutations_reach_the_audit_trail(client: TestClient, app, admin_headers: dict) -> None:  # noqa: ANN001
    response = client.post("/api/v1/roles", json={"name": "auditor"}, headers=admin_headers)
    role_id = response.json()["id"]

    written = app.state.audit_writer.drain()
    assert written == 1

    records = client.get("/api/v1/audit", params={"action_type": "role.create"}, headers=admin_headers).json()
    assert len(records) == 1
    assert records[0]["target_role_id"] == role_id
    assert records[0]["new_value"]["name"] == "auditor"
    assert records[0]["user_agent"] == "testclient"

    with session_scope() as session:
        assert AuditVerifier(session).verify().checked == 1


def test_audit_listing_requires_permission(client: TestClient) -> None:
    assert client.get("/api/v1/audit").status_code == 401
