from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from alert_oracle.checks import (
    check_expected_alerts,
    check_expected_rule_group,
    check_expected_samples,
    rule_group_due,
)
from alert_oracle.expected import AlertTemplate, Origin, group_snapshot
from alert_oracle.models import Alert, AlertState, QuerySample, RuleGroupSnapshot
from alert_oracle.notifications import ExpectedNotification
from alert_oracle.rules import Rule, RuleGroup, format_labels, metric_labels
from alert_oracle.samples import TimeSeries, format_value, sample_slice
from alert_oracle.settings import MINUTE, SECOND
from alert_oracle.windows import Window, WindowClassifier

logger = logging.getLogger(__name__)

GROUP_NAME = "PendingAndResolved_AlwaysInactive"

BECOMES_ACTIVE = 8
BECOMES_INACTIVE = 12

INACTIVE = "inactive"
PENDING = "pending"


class PendingAndResolvedAlwaysInactive:
    """A pending alert that resolves before its ``for`` elapses, next to a rule that never matches."""

    def __init__(self, sample_interval_ms: int = 5 * SECOND, group_interval_ms: int = 10 * SECOND) -> None:
        self.group_name = GROUP_NAME
        self.sample_interval_ms = sample_interval_ms
        self.group_interval_ms = group_interval_ms
        self._origin = Origin()

        pending_name = f"{GROUP_NAME}_PendingAlert"
        inactive_name = f"{GROUP_NAME}_InactiveAlert"
        self.pending_metric_labels = metric_labels(GROUP_NAME, pending_name)
        self.inactive_metric_labels = metric_labels(GROUP_NAME, inactive_name)
        self.pending = AlertTemplate(
            rule=Rule(
                name=pending_name,
                expr=f"{format_labels(self.pending_metric_labels)} > 10",
                for_ms=1 * MINUTE,
                labels={"foo": "bar", "rulegroup": GROUP_NAME},
                annotations={"description": "SimpleAlert is firing"},
            ),
            rendered_annotations={"description": "SimpleAlert is firing"},
        )
        self.inactive = AlertTemplate(
            rule=Rule(
                name=inactive_name,
                expr=f"{format_labels(self.inactive_metric_labels)} > 99",
                for_ms=1 * MINUTE,
                labels={"ba_dum": "tss", "rulegroup": GROUP_NAME},
                annotations={"description": "This should never fire"},
            ),
            rendered_annotations={"description": "This should never fire"},
        )
        self._group = RuleGroup(
            name=GROUP_NAME,
            interval_ms=group_interval_ms,
            rules=(self.pending.rule, self.inactive.rule),
        )
        # Active for four samples only, well short of the 1m 'for'.
        self._samples = sample_slice(sample_interval_ms, "5", "0x7", "15", "0x3", "3", "0x30")
        self.total_samples = len(self._samples) + 20

        rw = sample_interval_ms / 1000.0
        gi = group_interval_ms / 1000.0
        active = BECOMES_ACTIVE * rw
        inactive = BECOMES_INACTIVE * rw
        self.classifier = WindowClassifier(
            {
                INACTIVE: [Window(0, active + gi), Window(inactive - 1, self.total_samples * rw + gi)],
                PENDING: [Window(active - 1, inactive + gi)],
            }
        )

    def describe(self) -> Tuple[str, str]:
        return (
            self.group_name,
            "(1) Alert that goes into pending and back to inactive without ever firing, so no notification is sent. "
            "(2) Alert that is never active.",
        )

    def rule_group(self) -> RuleGroup:
        return self._group

    def samples(self) -> List[TimeSeries]:
        return [
            TimeSeries(labels=dict(self.pending_metric_labels), samples=tuple(self._samples)),
            TimeSeries(labels=dict(self.inactive_metric_labels), samples=tuple(self._samples)),
        ]

    def init(self, zero_time: int) -> None:
        self._origin.bind(zero_time)

    def test_until(self) -> int:
        return self._origin.at(self.total_samples * self.sample_interval_ms)

    def _candidates(self, ts: int) -> List[List[Alert]]:
        states = self.classifier.states(self._origin.elapsed(ts))
        candidates: List[List[Alert]] = []
        if INACTIVE in states:
            candidates.append([])
        if PENDING in states:
            active_at = self._origin.at(BECOMES_ACTIVE * self.sample_interval_ms)
            value = format_value(self._samples[BECOMES_ACTIVE].value)
            candidates.append([self.pending.alert(AlertState.PENDING, value, active_at)])
        logger.debug("%s: %d candidates", self.group_name, len(candidates))
        return candidates

    def expected_alerts(self, ts: int) -> List[List[Alert]]:
        return self._candidates(ts)

    def expected_rule_groups(self, ts: int) -> List[RuleGroupSnapshot]:
        return [
            group_snapshot(
                self._group,
                [
                    self.pending.rule_snapshot(AlertState.PENDING if alerts else AlertState.INACTIVE, alerts),
                    self.inactive.rule_snapshot(AlertState.INACTIVE),
                ],
            )
            for alerts in self._candidates(ts)
        ]

    def expected_metrics(self, ts: int) -> List[Optional[List[QuerySample]]]:
        return [
            [self.pending.indicator(alert.state, ts) for alert in alerts] or None
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
        # Pending alerts are never sent.
        return []


def pending_and_resolved_always_inactive() -> PendingAndResolvedAlwaysInactive:
    return PendingAndResolvedAlwaysInactive()
