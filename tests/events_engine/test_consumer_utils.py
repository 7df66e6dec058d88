from __future__ import annotations

import json

from authcore.events_engine.consumers.base import unwrap_sns_envelope


def test_unwrap_sns_envelope_handles_plain_json() -> None:
    payload = {"action_type": "role.create"}
    assert unwrap_sns_envelope(json.dumps(payload)) == payload


def test_unwrap_sns_envelope_handles_sns_wrapping() -> None:
    inner = {"action_type": "role.assign", "new_value": {"status": "active"}}
    body = json.dumps({"Type": "Notification", "Message": json.dumps(inner)})
    assert unwrap_sns_envelope(body) == inner


def test_unwrap_sns_envelope_accepts_raw_message_objects() -> None:
    inner = {"action_type": "role.remove"}
    assert unwrap_sns_envelope(json.dumps({"Message": inner})) == inner
