"""Read-only access to the engine under test.

The parsers accept the JSON bodies of the Prometheus-compatible HTTP API
(``/api/v1/alerts``, ``/api/v1/rules``, ``/api/v1/query``) and turn them into
the records the checks compare. :class:`EngineClient` fetches those bodies.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from prometheus_client.parser import text_string_to_metric_families

from alert_oracle.errors import ResponseError
from alert_oracle.models import Alert, AlertingRule, QuerySample, RuleGroupSnapshot
from alert_oracle.settings import ALERTS_METRIC_NAME
from alert_oracle.timestamps import parse_rfc3339, seconds_to_ms

logger = logging.getLogger(__name__)


def _data(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    status = payload.get("status")
    if status != "success":
        raise ResponseError(f"engine API call failed with status {status}: {payload.get('error', payload)}")
    data = payload.get("data")
    if not isinstance(data, Mapping):
        raise ResponseError("engine API response missing data object")
    return data


def _object(raw: Any, context: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise ResponseError(f"{context} must be an object, got {type(raw).__name__}")
    return raw


def _string_map(raw: Any, context: str) -> Dict[str, str]:
    if raw is None:
        return {}
    return {str(key): str(value) for key, value in _object(raw, context).items()}


def _float(raw: Any, context: str) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ResponseError(f"{context} is not a number: {raw!r}") from exc


def _alert(raw: Any) -> Alert:
    raw = _object(raw, "alert")
    return Alert(
        labels=_string_map(raw.get("labels"), "alert labels"),
        annotations=_string_map(raw.get("annotations"), "alert annotations"),
        state=str(raw.get("state", "")),
        value=str(raw.get("value", "")),
        active_at=parse_rfc3339(raw.get("activeAt")),
    )


def parse_alerts(payload: Mapping[str, Any]) -> List[Alert]:
    alerts = _data(payload).get("alerts")
    if not isinstance(alerts, list):
        raise ResponseError("alerts response missing alerts array")
    return [_alert(raw) for raw in alerts]


def _rule(raw: Any) -> Optional[AlertingRule]:
    raw = _object(raw, "rule")
    if raw.get("type") != "alerting":
        return None
    return AlertingRule(
        name=str(raw.get("name", "")),
        query=str(raw.get("query", "")),
        state=str(raw.get("state", "")),
        labels=_string_map(raw.get("labels"), "rule labels"),
        annotations=_string_map(raw.get("annotations"), "rule annotations"),
        duration=_float(raw.get("duration", 0.0), "rule duration"),
        alerts=tuple(_alert(alert) for alert in raw.get("alerts") or []),
        health=str(raw.get("health", "")),
        type="alerting",
    )


def parse_rule_groups(payload: Mapping[str, Any]) -> List[RuleGroupSnapshot]:
    groups = _data(payload).get("groups")
    if not isinstance(groups, list):
        raise ResponseError("rules response missing groups array")
    snapshots: List[RuleGroupSnapshot] = []
    for group in groups:
        group = _object(group, "rule group")
        rules = [_rule(raw) for raw in group.get("rules") or []]
        snapshots.append(
            RuleGroupSnapshot(
                name=str(group.get("name", "")),
                interval=_float(group.get("interval", 0.0), "group interval"),
                rules=tuple(rule for rule in rules if rule is not None),
            )
        )
    return snapshots


def find_rule_group(groups: List[RuleGroupSnapshot], name: str) -> Optional[RuleGroupSnapshot]:
    for group in groups:
        if group.name == name:
            return group
    return None


def parse_vector(payload: Mapping[str, Any]) -> List[QuerySample]:
    data = _data(payload)
    if data.get("resultType") != "vector":
        raise ResponseError(f"expected a vector result, got {data.get('resultType')!r}")
    result = data.get("result")
    if not isinstance(result, list):
        raise ResponseError("query response missing result array")
    samples: List[QuerySample] = []
    for entry in result:
        entry = _object(entry, "vector sample")
        point = entry.get("value")
        if not isinstance(point, list) or len(point) != 2:
            raise ResponseError(f"malformed vector sample: {entry!r}")
        samples.append(
            QuerySample(
                metric=_string_map(entry.get("metric"), "sample metric"),
                timestamp=seconds_to_ms(point[0]),
                value=_float(point[1], "sample value"),
            )
        )
    return samples


def parse_federate(text: str, default_timestamp: int, metric: str = ALERTS_METRIC_NAME) -> List[QuerySample]:
    """Extract ``metric`` series from exposition text (e.g. ``/federate``)."""

    samples: List[QuerySample] = []
    for family in text_string_to_metric_families(text):
        for sample in family.samples:
            if sample.name != metric:
                continue
            labels = dict(sample.labels)
            labels["__name__"] = sample.name
            timestamp = default_timestamp
            if sample.timestamp is not None:
                timestamp = seconds_to_ms(float(sample.timestamp))
            samples.append(QuerySample(metric=labels, timestamp=timestamp, value=float(sample.value)))
    return samples


class EngineClient:
    def __init__(self, base_url: str, token: Optional[str] = None, timeout_seconds: float = 10.0) -> None:
        if base_url.endswith("/"):
            self._base_url = base_url[:-1]
        else:
            self._base_url = base_url
        self._token = token
        self._timeout_seconds = timeout_seconds

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Mapping[str, Any]:
        url = f"{self._base_url}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        request = Request(url)
        if self._token:
            request.add_header("Authorization", f"Bearer {self._token}")
        logger.debug("GET %s", url)
        with urlopen(request, timeout=self._timeout_seconds) as response:
            payload = json.loads(response.read().decode("utf-8"))
        if not isinstance(payload, Mapping):
            raise ResponseError(f"{path} returned a non-object body")
        return payload

    def alerts(self) -> List[Alert]:
        return parse_alerts(self._get("/api/v1/alerts"))

    def rule_group(self, name: str) -> Optional[RuleGroupSnapshot]:
        return find_rule_group(parse_rule_groups(self._get("/api/v1/rules", {"type": "alert"})), name)

    def query(self, query: str, timestamp: int) -> List[QuerySample]:
        return parse_vector(self._get("/api/v1/query", {"query": query, "time": f"{timestamp / 1000.0:.3f}"}))
