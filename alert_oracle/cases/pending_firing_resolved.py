from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from alert_oracle.checks import (
    check_expected_alerts,
    check_expected_rule_group,
    check_expected_samples,
    rule_group_due,
)
from alert_oracle.expected import AlertTemplate, Origin, group_snapshot, rule_state
from alert_oracle.models import Alert, AlertState, QuerySample, RuleGroupSnapshot
from alert_oracle.notifications import ExpectedNotification, TimelineBuilder
from alert_oracle.rules import Rule, RuleGroup, format_labels, metric_labels
from alert_oracle.samples import TimeSeries, format_value, sample_slice
from alert_oracle.settings import DEFAULT_SETTINGS, MINUTE, SECOND, OracleSettings
from alert_oracle.windows import WindowClassifier, phase_windows

logger = logging.getLogger(__name__)

GROUP_NAME = "PendingAndFiringAndResolved"
SUMMARY_TEMPLATE = "The value is {{$value}} {{.Value}}"

BECOMES_ACTIVE = 6
BECOMES_INACTIVE = 22

INACTIVE = "inactive"
PENDING = "pending"
FIRING = "firing"
RESOLVED = "resolved"
PHASES = (INACTIVE, PENDING, FIRING, RESOLVED)


class PendingAndFiringAndResolved:
    """A ``for: 2m`` alert that waits in pending across many evaluations, fires and resolves."""

    def __init__(
        self,
        sample_interval_ms: int = 15 * SECOND,
        group_interval_ms: int = 10 * SECOND,
        settings: OracleSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.group_name = GROUP_NAME
        self.sample_interval_ms = sample_interval_ms
        self.group_interval_ms = group_interval_ms
        self.settings = settings
        self._origin = Origin()

        self._samples = sample_slice(
            sample_interval_ms,
            "3", "0x5",  # Inactive.
            "15", "0x15",  # Pending for 2m, then firing.
            "9", "0x59",  # Resolved and kept long enough to see the resends stop.
        )
        self.total_samples = len(self._samples) + 20
        self.value = format_value(self._samples[BECOMES_ACTIVE].value)

        name = f"{GROUP_NAME}_SimpleAlert"
        self.metric_labels = metric_labels(GROUP_NAME, name)
        self.alert_template = AlertTemplate(
            rule=Rule(
                name=name,
                expr=f"{format_labels(self.metric_labels)} > 10",
                for_ms=2 * MINUTE,
                labels={"foo": "bar", "rulegroup": GROUP_NAME},
                annotations={"description": "SimpleAlert is firing", "summary": SUMMARY_TEMPLATE},
            ),
            rendered_annotations={
                "description": "SimpleAlert is firing",
                "summary": f"The value is {self.value} {self.value}",
            },
        )
        self._group = RuleGroup(name=GROUP_NAME, interval_ms=group_interval_ms, rules=(self.alert_template.rule,))

        self.active_ms = BECOMES_ACTIVE * sample_interval_ms
        self.inactive_ms = BECOMES_INACTIVE * sample_interval_ms
        # 'for' is counted from the evaluation that saw the alert active.
        for_ms = self.alert_template.rule.for_ms
        self.fires_ms = self.active_ms + -(-for_ms // group_interval_ms) * group_interval_ms
        windows = phase_windows(
            [self.active_ms / 1000.0, self.fires_ms / 1000.0, self.inactive_ms / 1000.0],
            (self.total_samples * sample_interval_ms + group_interval_ms) / 1000.0,
            group_interval_ms / 1000.0,
        )
        self.classifier = WindowClassifier({phase: [window] for phase, window in zip(PHASES, windows)})

    def describe(self) -> Tuple[str, str]:
        return (
            self.group_name,
            "(1) Alert goes into pending and stays there for its whole 'for' duration before firing. "
            "(2) Firing alert resolves and the resolved notification is resent until the retention ends. "
            "(3) Annotations render the alert value.",
        )

    def rule_group(self) -> RuleGroup:
        return self._group

    def samples(self) -> List[TimeSeries]:
        return [TimeSeries(labels=dict(self.metric_labels), samples=tuple(self._samples))]

    def init(self, zero_time: int) -> None:
        self._origin.bind(zero_time)

    def test_until(self) -> int:
        return self._origin.at(self.total_samples * self.sample_interval_ms)

    def _candidates(self, ts: int) -> List[List[Alert]]:
        states = self.classifier.states(self._origin.elapsed(ts))
        active_at = self._origin.at(self.active_ms)
        by_phase: Dict[str, List[Alert]] = {
            INACTIVE: [],
            PENDING: [self.alert_template.alert(AlertState.PENDING, self.value, active_at)],
            FIRING: [self.alert_template.alert(AlertState.FIRING, self.value, active_at)],
            RESOLVED: [],
        }
        candidates = [by_phase[phase] for phase in PHASES if phase in states]
        logger.debug("%s: candidates %s", self.group_name, "/".join(p for p in PHASES if p in states))
        return candidates

    def expected_alerts(self, ts: int) -> List[List[Alert]]:
        return self._candidates(ts)

    def expected_rule_groups(self, ts: int) -> List[RuleGroupSnapshot]:
        return [
            group_snapshot(self._group, [self.alert_template.rule_snapshot(rule_state(alerts), alerts)])
            for alerts in self._candidates(ts)
        ]

    def expected_metrics(self, ts: int) -> List[Optional[List[QuerySample]]]:
        return [
            [self.alert_template.indicator(alert.state, ts) for alert in alerts] or None
            for alerts in self._candidates(ts)
        ]

    def check_alerts(self, ts: int, alerts: Sequence[Alert]) -> None:
        check_expected_alerts(self.expected_alerts(ts), alerts, self.group_interval_ms)

    def check_rule_group(self, ts: int, group: Optional[RuleGroupSnapshot]) -> None:
        if not rule_group_due(self._origin.elapsed(ts), self.group_interval_ms, group):
            return
        check_expected_rule_group(self.expected_rule_groups(ts), group, self.group_interval_ms)

    def check_metrics(self, ts: int, samples: Sequence[QuerySample]) -> None:
        check_expected_samples(self.expected_metrics(ts), samples, self.group_interval_ms)

    def expected_notifications(self) -> List[ExpectedNotification]:
        builder = TimelineBuilder(self._origin.zero_time, self.group_interval_ms, self.settings)
        labels, annotations = self.alert_template.labels, self.alert_template.rendered_annotations
        builder.firing(labels, annotations, start=self.fires_ms, until=self.inactive_ms)
        builder.resolved(labels, annotations, starts_at=self.fires_ms, start=self.inactive_ms)
        return builder.build()


def pending_and_firing_and_resolved() -> PendingAndFiringAndResolved:
    return PendingAndFiringAndResolved()
