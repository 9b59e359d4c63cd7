from __future__ import annotations

import io
import json
from typing import Any, Dict, List

import pytest

from alert_oracle import api
from alert_oracle.api import (
    EngineClient,
    find_rule_group,
    parse_alerts,
    parse_federate,
    parse_rule_groups,
    parse_vector,
)
from alert_oracle.errors import ResponseError
from alert_oracle.models import AlertState

ACTIVE_AT = "2022-01-25T12:36:43.123456789Z"
ACTIVE_AT_MS = 1_643_114_203_123


def _alert_json(**overrides: Any) -> Dict[str, Any]:
    alert = {
        "labels": {"alertname": "ZeroFor_SmallFor_ZeroFor", "foo": "bar"},
        "annotations": {"description": "fired"},
        "state": "firing",
        "activeAt": ACTIVE_AT,
        "value": "1.5e+01",
    }
    alert.update(overrides)
    return alert


def test_parse_alerts_converts_timestamps() -> None:
    (alert,) = parse_alerts({"status": "success", "data": {"alerts": [_alert_json()]}})
    assert alert.state == AlertState.FIRING
    assert alert.active_at == ACTIVE_AT_MS
    assert alert.value == "1.5e+01"
    assert alert.labels["foo"] == "bar"


def test_parse_alerts_rejects_failed_calls() -> None:
    with pytest.raises(ResponseError, match="bad_data"):
        parse_alerts({"status": "error", "error": "bad_data"})
    with pytest.raises(ResponseError):
        parse_alerts({"status": "success", "data": {}})
    with pytest.raises(ResponseError, match="invalid timestamp"):
        parse_alerts({"status": "success", "data": {"alerts": [_alert_json(activeAt="yesterday")]}})


def test_parse_rule_groups_keeps_only_alerting_rules() -> None:
    payload = {
        "status": "success",
        "data": {
            "groups": [
                {
                    "name": "ZeroFor_SmallFor",
                    "interval": 10,
                    "rules": [
                        {"type": "recording", "name": "job:up:sum", "query": "sum(up)"},
                        {
                            "type": "alerting",
                            "name": "ZeroFor_SmallFor_ZeroFor",
                            "query": "alert_generator_test_suite > 10",
                            "state": "firing",
                            "duration": 0,
                            "labels": {"foo": "bar"},
                            "annotations": {"description": "{{$value}}"},
                            "alerts": [_alert_json()],
                            "health": "ok",
                        },
                    ],
                },
                {"name": "other", "interval": 30, "rules": []},
            ]
        },
    }
    groups = parse_rule_groups(payload)
    group = find_rule_group(groups, "ZeroFor_SmallFor")
    assert group is not None
    assert group.interval == 10.0
    (rule,) = group.rules
    assert rule.name == "ZeroFor_SmallFor_ZeroFor"
    assert rule.alerts[0].active_at == ACTIVE_AT_MS
    assert find_rule_group(groups, "missing") is None


def test_parse_vector_requires_vector_result() -> None:
    payload = {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [{"metric": {"__name__": "ALERTS", "alertstate": "firing"}, "value": [1643114248.5, "1"]}],
        },
    }
    (sample,) = parse_vector(payload)
    assert sample.timestamp == 1_643_114_248_500
    assert sample.value == 1.0
    assert sample.metric["alertstate"] == "firing"

    with pytest.raises(ResponseError, match="vector"):
        parse_vector({"status": "success", "data": {"resultType": "matrix", "result": []}})


def test_parse_federate_picks_alerts_series() -> None:
    text = "\n".join(
        [
            "# TYPE ALERTS untyped",
            'ALERTS{alertname="A",alertstate="pending"} 1 1643114248000',
            'ALERTS{alertname="B",alertstate="firing"} 1',
            "# TYPE up gauge",
            'up{job="engine"} 1',
            "",
        ]
    )
    samples = parse_federate(text, default_timestamp=5_000)
    assert [sample.metric["alertname"] for sample in samples] == ["A", "B"]
    assert samples[0].metric["__name__"] == "ALERTS"
    assert samples[1].timestamp == 5_000
    assert all(sample.value == 1.0 for sample in samples)


class _FakeResponse(io.BytesIO):
    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def test_engine_client_sends_token_and_parses(monkeypatch: pytest.MonkeyPatch) -> None:
    requests: List[Any] = []

    def fake_urlopen(request, timeout):
        requests.append((request, timeout))
        body = {"status": "success", "data": {"alerts": [_alert_json()]}}
        return _FakeResponse(json.dumps(body).encode("utf-8"))

    monkeypatch.setattr(api, "urlopen", fake_urlopen)
    client = EngineClient("http://engine:9090/", token="secret", timeout_seconds=3.0)

    alerts = client.alerts()

    assert len(alerts) == 1
    request, timeout = requests[0]
    assert request.full_url == "http://engine:9090/api/v1/alerts"
    assert request.get_header("Authorization") == "Bearer secret"
    assert timeout == 3.0


def test_engine_client_query_passes_time_in_seconds(monkeypatch: pytest.MonkeyPatch) -> None:
    urls: List[str] = []

    def fake_urlopen(request, timeout):
        urls.append(request.full_url)
        body = {"status": "success", "data": {"resultType": "vector", "result": []}}
        return _FakeResponse(json.dumps(body).encode("utf-8"))

    monkeypatch.setattr(api, "urlopen", fake_urlopen)

    assert EngineClient("http://engine:9090").query("ALERTS", 1_643_114_248_500) == []
    assert "time=1643114248.500" in urls[0]
    assert "query=ALERTS" in urls[0]


@pytest.mark.parametrize(
    "payload, context",
    [
        ({"status": "success", "data": {"groups": ["oops"]}}, "rule group"),
        ({"status": "success", "data": {"groups": [{"name": "g", "rules": [7]}]}}, "rule"),
        ({"status": "success", "data": {"groups": [{"name": "g", "interval": "10s", "rules": []}]}}, "interval"),
    ],
)
def test_malformed_rule_groups_raise_response_error(payload: Dict[str, Any], context: str) -> None:
    with pytest.raises(ResponseError, match=context):
        parse_rule_groups(payload)


def test_malformed_vector_entries_raise_response_error() -> None:
    with pytest.raises(ResponseError, match="vector sample"):
        parse_vector({"status": "success", "data": {"resultType": "vector", "result": [["x"]]}})
    with pytest.raises(ResponseError, match="sample value"):
        parse_vector(
            {
                "status": "success",
                "data": {"resultType": "vector", "result": [{"metric": {}, "value": [1643114248.5, "one"]}]},
            }
        )
    with pytest.raises(ResponseError, match="alert"):
        parse_alerts({"status": "success", "data": {"alerts": ["firing"]}})
    with pytest.raises(ResponseError, match="invalid timestamp"):
        parse_alerts({"status": "success", "data": {"alerts": [_alert_json(activeAt=1643114203)]}})
