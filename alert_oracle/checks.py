"""Compare engine observations with the candidate sets produced by a test case.

An observation passes when it is equivalent to at least one candidate. Labels,
states, annotations and values must match exactly; timestamps only need to
fall within the tolerance because evaluation instants jitter.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence

from alert_oracle.errors import ExpectationError
from alert_oracle.models import Alert, AlertingRule, QuerySample, RuleGroupSnapshot

logger = logging.getLogger(__name__)


def values_equal(expected: str, actual: str) -> bool:
    """Engine values are strings; ``"15"`` and ``"1.5e+01"`` are the same value."""

    if expected == actual:
        return True
    try:
        left, right = float(expected), float(actual)
    except ValueError:
        return False
    if math.isnan(left) and math.isnan(right):
        return True
    return left == right


def _within(expected: Optional[int], actual: Optional[int], tolerance_ms: int) -> bool:
    if expected is None or actual is None:
        return expected is None and actual is None
    return abs(expected - actual) <= tolerance_ms


def _alert_difference(expected: Alert, actual: Alert, tolerance_ms: int) -> Optional[str]:
    if expected.labels != actual.labels:
        return f"labels {actual.labels} != {expected.labels}"
    name = expected.labels.get("alertname", "<unnamed>")
    if expected.state != actual.state:
        return f"{name}: state {actual.state!r} != {expected.state!r}"
    if expected.annotations != actual.annotations:
        return f"{name}: annotations {actual.annotations} != {expected.annotations}"
    if not values_equal(expected.value, actual.value):
        return f"{name}: value {actual.value!r} != {expected.value!r}"
    if not _within(expected.active_at, actual.active_at, tolerance_ms):
        return f"{name}: activeAt {actual.active_at} not within {tolerance_ms}ms of {expected.active_at}"
    return None


def _alerts_difference(expected: Sequence[Alert], actual: Sequence[Alert], tolerance_ms: int) -> Optional[str]:
    if len(expected) != len(actual):
        return f"{len(actual)} alerts != {len(expected)} expected"
    for exp, act in zip(sorted(expected, key=lambda a: a.key), sorted(actual, key=lambda a: a.key)):
        difference = _alert_difference(exp, act, tolerance_ms)
        if difference is not None:
            return difference
    return None


def _rule_difference(expected: AlertingRule, actual: AlertingRule, tolerance_ms: int) -> Optional[str]:
    for attribute in ("name", "query", "state", "health", "type", "labels", "annotations"):
        exp_value, act_value = getattr(expected, attribute), getattr(actual, attribute)
        if exp_value != act_value:
            return f"rule {expected.name}: {attribute} {act_value!r} != {exp_value!r}"
    if not math.isclose(expected.duration, actual.duration):
        return f"rule {expected.name}: duration {actual.duration} != {expected.duration}"
    difference = _alerts_difference(expected.alerts, actual.alerts, tolerance_ms)
    if difference is not None:
        return f"rule {expected.name}: {difference}"
    return None


def _group_difference(expected: RuleGroupSnapshot, actual: RuleGroupSnapshot, tolerance_ms: int) -> Optional[str]:
    if expected.name != actual.name:
        return f"group name {actual.name!r} != {expected.name!r}"
    if not math.isclose(expected.interval, actual.interval):
        return f"group interval {actual.interval} != {expected.interval}"
    if len(expected.rules) != len(actual.rules):
        return f"{len(actual.rules)} rules != {len(expected.rules)} expected"
    # Rule order is significant.
    for exp_rule, act_rule in zip(expected.rules, actual.rules):
        difference = _rule_difference(exp_rule, act_rule, tolerance_ms)
        if difference is not None:
            return difference
    return None


def _sample_difference(
    expected: Optional[Sequence[QuerySample]], actual: Sequence[QuerySample], tolerance_ms: int
) -> Optional[str]:
    expected = expected or []
    if len(expected) != len(actual):
        return f"{len(actual)} samples != {len(expected)} expected"
    for exp, act in zip(sorted(expected, key=lambda s: s.key), sorted(actual, key=lambda s: s.key)):
        if exp.metric != act.metric:
            return f"series {act.metric} != {exp.metric}"
        if exp.value != act.value:
            return f"series {act.metric}: value {act.value} != {exp.value}"
        if not _within(exp.timestamp, act.timestamp, tolerance_ms):
            return f"series {act.metric}: timestamp {act.timestamp} not within {tolerance_ms}ms of {exp.timestamp}"
    return None


def _raise_mismatch(what: str, actual: object, candidates: Sequence[object], differences: List[str]) -> None:
    reason = " | ".join(differences) if differences else "no candidate is valid at this time"
    logger.warning("%s mismatch: %s", what, reason)
    raise ExpectationError(what, actual, candidates, reason=reason)


def check_expected_alerts(candidates: Sequence[Sequence[Alert]], actual: Sequence[Alert], tolerance_ms: int) -> None:
    differences: List[str] = []
    for candidate in candidates:
        difference = _alerts_difference(candidate, actual, tolerance_ms)
        if difference is None:
            return
        differences.append(difference)
    _raise_mismatch("alerts", list(actual), candidates, differences)


def check_expected_rule_group(
    candidates: Sequence[RuleGroupSnapshot], actual: RuleGroupSnapshot, tolerance_ms: int
) -> None:
    differences: List[str] = []
    for candidate in candidates:
        difference = _group_difference(candidate, actual, tolerance_ms)
        if difference is None:
            return
        differences.append(difference)
    _raise_mismatch(f"rule group {actual.name}", actual, candidates, differences)


def check_expected_samples(
    candidates: Sequence[Optional[Sequence[QuerySample]]],
    actual: Sequence[QuerySample],
    tolerance_ms: int = 0,
) -> None:
    differences: List[str] = []
    for candidate in candidates:
        difference = _sample_difference(candidate, actual, tolerance_ms)
        if difference is None:
            return
        differences.append(difference)
    _raise_mismatch("samples", list(actual), candidates, differences)


def rule_group_due(elapsed_ms: int, group_interval_ms: int, actual: Optional[RuleGroupSnapshot]) -> bool:
    """Whether a rule group snapshot must be checked at ``elapsed_ms``.

    A missing group is tolerated until one evaluation interval has passed.
    """

    if elapsed_ms < group_interval_ms:
        return False
    if actual is None:
        raise ExpectationError("rule group", None, [], reason="no rule group found")
    return True
