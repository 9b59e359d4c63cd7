from __future__ import annotations

import pytest

from alert_oracle.checks import (
    check_expected_alerts,
    check_expected_rule_group,
    check_expected_samples,
    rule_group_due,
    values_equal,
)
from alert_oracle.errors import ExpectationError
from alert_oracle.models import Alert, AlertingRule, AlertState, QuerySample, RuleGroupSnapshot

TOLERANCE = 10_000


def _alert(name: str, state: str = AlertState.FIRING, value: str = "15", active_at: int = 40_000) -> Alert:
    return Alert(
        labels={"alertname": name, "foo": "bar"},
        annotations={"description": f"{name} fired"},
        state=state,
        value=value,
        active_at=active_at,
    )


def test_alerts_match_any_candidate_ignoring_order_and_jitter() -> None:
    expected = [[], [_alert("A"), _alert("B", state=AlertState.PENDING)]]
    actual = [_alert("B", state=AlertState.PENDING, active_at=45_000), _alert("A", active_at=49_000)]

    check_expected_alerts(expected, actual, TOLERANCE)
    check_expected_alerts(expected, [], TOLERANCE)


def test_empty_candidate_only_matches_no_alerts() -> None:
    with pytest.raises(ExpectationError) as excinfo:
        check_expected_alerts([[]], [_alert("A")], TOLERANCE)
    assert excinfo.value.actual == [_alert("A")]
    assert excinfo.value.candidates == [[]]


def test_active_at_outside_tolerance_is_rejected() -> None:
    with pytest.raises(ExpectationError) as excinfo:
        check_expected_alerts([[_alert("A")]], [_alert("A", active_at=50_001)], TOLERANCE)
    assert "activeAt" in str(excinfo.value)


def test_state_and_annotations_must_match_exactly() -> None:
    with pytest.raises(ExpectationError, match="state"):
        check_expected_alerts([[_alert("A")]], [_alert("A", state=AlertState.PENDING)], TOLERANCE)

    changed = Alert(
        labels={"alertname": "A", "foo": "bar"},
        annotations={"description": "something else"},
        state=AlertState.FIRING,
        value="15",
        active_at=40_000,
    )
    with pytest.raises(ExpectationError, match="annotations"):
        check_expected_alerts([[_alert("A")]], [changed], TOLERANCE)


def test_values_compare_numerically() -> None:
    assert values_equal("15", "1.5e+01")
    assert values_equal("NaN", "NaN")
    assert not values_equal("15", "11")
    assert not values_equal("15", "fifteen")
    check_expected_alerts([[_alert("A", value="15")]], [_alert("A", value="1.5e+01")], TOLERANCE)


def test_no_valid_candidates_always_fails() -> None:
    with pytest.raises(ExpectationError, match="no candidate"):
        check_expected_alerts([], [], TOLERANCE)


def _rule(name: str, state: str, alerts=()) -> AlertingRule:
    return AlertingRule(
        name=name,
        query=f"{name}_metric > 1",
        state=state,
        labels={"foo": "bar"},
        annotations={"description": "{{$value}}"},
        duration=5.0,
        alerts=tuple(alerts),
    )


def test_rule_group_requires_rule_order() -> None:
    expected = RuleGroupSnapshot(
        name="g",
        interval=10.0,
        rules=(_rule("A", AlertState.FIRING, [_alert("A")]), _rule("B", AlertState.INACTIVE)),
    )
    check_expected_rule_group([expected], expected, TOLERANCE)

    swapped = RuleGroupSnapshot(name="g", interval=10.0, rules=(expected.rules[1], expected.rules[0]))
    with pytest.raises(ExpectationError):
        check_expected_rule_group([expected], swapped, TOLERANCE)


def test_rule_group_checks_nested_alerts_and_health() -> None:
    expected = RuleGroupSnapshot(name="g", interval=10.0, rules=(_rule("A", AlertState.FIRING, [_alert("A")]),))
    jittered = RuleGroupSnapshot(
        name="g", interval=10.0, rules=(_rule("A", AlertState.FIRING, [_alert("A", active_at=42_000)]),)
    )
    check_expected_rule_group([expected], jittered, TOLERANCE)

    unhealthy_rule = AlertingRule(
        name="A",
        query="A_metric > 1",
        state=AlertState.FIRING,
        labels={"foo": "bar"},
        annotations={"description": "{{$value}}"},
        duration=5.0,
        alerts=(_alert("A"),),
        health="err",
    )
    with pytest.raises(ExpectationError, match="health"):
        check_expected_rule_group([expected], RuleGroupSnapshot("g", 10.0, (unhealthy_rule,)), TOLERANCE)


def test_samples_none_candidate_matches_empty_result() -> None:
    sample = QuerySample(metric={"__name__": "ALERTS", "alertstate": "firing"}, timestamp=45_000, value=1.0)
    check_expected_samples([None], [])
    check_expected_samples([None, [sample]], [sample])
    with pytest.raises(ExpectationError):
        check_expected_samples([None], [sample])


def test_sample_timestamps_use_tolerance() -> None:
    sample = QuerySample(metric={"__name__": "ALERTS"}, timestamp=45_000, value=1.0)
    late = QuerySample(metric={"__name__": "ALERTS"}, timestamp=46_000, value=1.0)
    check_expected_samples([[sample]], [late], tolerance_ms=1_000)
    with pytest.raises(ExpectationError, match="timestamp"):
        check_expected_samples([[sample]], [late])


def test_missing_rule_group_tolerated_only_before_first_evaluation() -> None:
    group = RuleGroupSnapshot(name="g", interval=10.0)
    assert rule_group_due(9_999, TOLERANCE, None) is False
    assert rule_group_due(10_000, TOLERANCE, group) is True
    with pytest.raises(ExpectationError, match="no rule group found"):
        rule_group_due(10_000, TOLERANCE, None)
