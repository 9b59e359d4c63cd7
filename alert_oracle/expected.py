"""Building blocks the test cases use to materialize expected engine state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

from alert_oracle.errors import DefinitionError, OracleError
from alert_oracle.models import Alert, AlertingRule, AlertState, QuerySample, RuleGroupSnapshot
from alert_oracle.rules import Rule, RuleGroup
from alert_oracle.settings import ALERTS_METRIC_NAME


class Origin:
    """The zero time of a test case, bound once when the test is scheduled."""

    def __init__(self) -> None:
        self._zero_time: Optional[int] = None

    def bind(self, zero_time: int) -> None:
        if self._zero_time is not None and self._zero_time != zero_time:
            raise DefinitionError(f"zero time already bound to {self._zero_time}, refusing {zero_time}")
        self._zero_time = zero_time

    @property
    def bound(self) -> bool:
        return self._zero_time is not None

    @property
    def zero_time(self) -> int:
        if self._zero_time is None:
            raise OracleError("test case used before init()")
        return self._zero_time

    def elapsed(self, timestamp: int) -> int:
        return timestamp - self.zero_time

    def at(self, offset_ms: int) -> int:
        return self.zero_time + offset_ms


@dataclass(frozen=True)
class AlertTemplate:
    """A rule plus the literal strings its annotations render to.

    ``series_labels`` are the labels the rule expression returns besides the
    metric name; the rule's own labels override them.
    """

    rule: Rule
    rendered_annotations: Dict[str, str]
    series_labels: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if set(self.rendered_annotations) != set(self.rule.annotations):
            raise DefinitionError(f"rendered annotations of {self.rule.name} do not cover the rule annotations")

    @property
    def labels(self) -> Dict[str, str]:
        labels = dict(self.series_labels)
        labels.update(self.rule.labels)
        labels["alertname"] = self.rule.name
        return labels

    def alert(self, state: str, value: str, active_at: int) -> Alert:
        return Alert(
            labels=self.labels,
            annotations=dict(self.rendered_annotations),
            state=state,
            value=value,
            active_at=active_at,
        )

    def rule_snapshot(self, state: str, alerts: Sequence[Alert] = ()) -> AlertingRule:
        # The rules API reports annotation templates unrendered.
        return AlertingRule(
            name=self.rule.name,
            query=self.rule.expr,
            state=state,
            labels=dict(self.rule.labels),
            annotations=dict(self.rule.annotations),
            duration=self.rule.for_seconds,
            alerts=tuple(alerts),
        )

    def indicator(self, state: str, timestamp: int) -> QuerySample:
        if state == AlertState.INACTIVE:
            raise ValueError("inactive alerts have no ALERTS series")
        metric = self.labels
        metric["__name__"] = ALERTS_METRIC_NAME
        metric["alertstate"] = state
        return QuerySample(metric=metric, timestamp=timestamp, value=1.0)


def rule_state(alerts: Sequence[Alert]) -> str:
    """A rule reports the most advanced state among its alerts."""

    states = {alert.state for alert in alerts}
    if AlertState.FIRING in states:
        return AlertState.FIRING
    if AlertState.PENDING in states:
        return AlertState.PENDING
    return AlertState.INACTIVE


def group_snapshot(group: RuleGroup, rules: Sequence[AlertingRule]) -> RuleGroupSnapshot:
    if len(rules) != len(group.rules):
        raise DefinitionError(f"snapshot of {group.name} needs {len(group.rules)} rules, got {len(rules)}")
    return RuleGroupSnapshot(name=group.name, interval=group.interval_seconds, rules=tuple(rules))
