from __future__ import annotations

import json
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import pytest

from alert_oracle.errors import ResponseError
from alert_oracle.receiver import NotificationReceiver, parse_notifications

STARTS_AT = "2022-01-25T12:36:43Z"
STARTS_AT_MS = 1_643_114_203_000


def _raw(ends_at: str, **extra) -> dict:
    raw = {
        "labels": {"alertname": "ZeroFor_SmallFor_ZeroFor", "foo": "bar"},
        "annotations": {"description": "fired"},
        "startsAt": STARTS_AT,
        "endsAt": ends_at,
        "generatorURL": "http://engine/graph",
    }
    raw.update(extra)
    return raw


def test_alert_list_uses_ends_at_for_resolution() -> None:
    received_at = STARTS_AT_MS + 65_000
    firing, resolved = parse_notifications(
        [_raw("2022-01-25T12:41:48Z"), _raw("2022-01-25T12:37:48Z")],
        received_at,
    )
    assert firing.resolved is False
    assert firing.starts_at == STARTS_AT_MS
    assert firing.ends_at == STARTS_AT_MS + 305_000
    assert firing.received_at == received_at
    assert resolved.resolved is True
    assert resolved.ends_at == received_at


def test_webhook_envelope_uses_status() -> None:
    payload = {
        "status": "firing",
        "alerts": [_raw("0001-01-01T00:00:00Z", status="firing"), _raw(STARTS_AT, status="resolved")],
    }
    firing, resolved = parse_notifications(payload, STARTS_AT_MS)
    assert firing.resolved is False
    assert firing.ends_at is None
    assert resolved.resolved is True


def test_malformed_notifications_are_rejected() -> None:
    with pytest.raises(ResponseError, match="labels"):
        parse_notifications([{"startsAt": STARTS_AT}], 0)
    with pytest.raises(ResponseError, match="startsAt"):
        parse_notifications([{"labels": {"alertname": "A"}}], 0)
    with pytest.raises(ResponseError):
        parse_notifications({"receiver": "oracle"}, 0)
    with pytest.raises(ResponseError, match="must be an object"):
        parse_notifications([_raw(STARTS_AT), "resolved"], 0)
    with pytest.raises(ResponseError, match="annotations"):
        parse_notifications([_raw(STARTS_AT, annotations=["description"])], 0)


def _post(url: str, body: bytes) -> int:
    request = Request(url, data=body, headers={"Content-Type": "application/json"}, method="POST")
    with urlopen(request, timeout=5) as response:
        return response.status


def test_receiver_records_posted_notifications() -> None:
    with NotificationReceiver(clock=lambda: STARTS_AT_MS + 5_000) as receiver:
        assert receiver.url is not None
        status = _post(receiver.url, json.dumps([_raw("2022-01-25T12:40:48Z")]).encode("utf-8"))
        assert status == 200

        (notification,) = receiver.consume()
        assert notification.received_at == STARTS_AT_MS + 5_000
        assert notification.labels["alertname"] == "ZeroFor_SmallFor_ZeroFor"
        assert notification.resolved is False
        assert receiver.consume() == []


def test_receiver_rejects_bad_payloads() -> None:
    with NotificationReceiver() as receiver:
        with pytest.raises(HTTPError) as excinfo:
            _post(receiver.url, b"not json")
        assert excinfo.value.code == 400
        with pytest.raises(HTTPError):
            _post(receiver.url, json.dumps([{"labels": {}}]).encode("utf-8"))
        assert receiver.consume() == []
