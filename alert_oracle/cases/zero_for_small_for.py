from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

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
from alert_oracle.settings import DEFAULT_SETTINGS, SECOND, OracleSettings
from alert_oracle.windows import Window, WindowClassifier

logger = logging.getLogger(__name__)

GROUP_NAME = "ZeroFor_SmallFor"

ZERO_FOR_TEMPLATE_TEST = (
    "{{humanize 1048576}} {{humanize1024 1048576}} {{humanizeDuration 135.3563}} "
    "{{humanizePercentage 0.959}} {{humanizeTimestamp 1643114203}}"
)
ZERO_FOR_TEMPLATE_RENDERED = "1.049M 1Mi 2m 15s 95.9% 2022-01-25 12:36:43 +0000 UTC"
SMALL_FOR_TEMPLATE_TEST = (
    '{{title "this part"}} {{toUpper "is testing"}} {{toLower "THE STRINGS"}}. '
    '{{if match "[0-9]+" "1234"}}{{reReplaceAll "r.*d" "replaced" "rpld text"}}{{end}}. '
    '{{if match "[0-9]+$" "1234a"}}WRONG{{end}}.'
)
SMALL_FOR_TEMPLATE_RENDERED = "This Part IS TESTING the strings. replaced text. ."

# Sample indexes where the series changes behaviour.
BECOMES_ACTIVE = 8
BECOMES_INACTIVE = 21
ACTIVE_AGAIN = 93
INACTIVE_AGAIN = 106
# Samples classified as inactive once the last resolution is past.
INACTIVE_HORIZON = 240

INACTIVE = "inactive"
ZF_FIRING = "zf_firing"
ZF_FIRING_AGAIN = "zf_firing_again"
SF_PENDING = "sf_pending"
SF_FIRING = "sf_firing"


class ZeroForSmallFor:
    """Zero and sub-interval ``for`` durations in one group.

    (1) An alert with a zero ``for`` goes straight to firing without pending.
    (2) With a non-zero ``for`` shorter than the evaluation interval, the alert
    fires at the second evaluation and never at the first.
    (3) The zero ``for`` alert fires again after having resolved.
    (4) An alert goes inactive when its series stops matching while firing.
    """

    def __init__(
        self,
        sample_interval_ms: int = 5 * SECOND,
        group_interval_ms: int = 10 * SECOND,
        settings: OracleSettings = DEFAULT_SETTINGS,
    ) -> None:
        # Window bounds below are derived for a 5s/10s pairing; other
        # intervals need the windows re-derived, they do not scale.
        self.group_name = GROUP_NAME
        self.sample_interval_ms = sample_interval_ms
        self.group_interval_ms = group_interval_ms
        self.settings = settings
        self.for_ms = group_interval_ms // 2
        self._origin = Origin()

        zf_name = f"{GROUP_NAME}_ZeroFor"
        sf_name = f"{GROUP_NAME}_SmallFor"
        self.zf_metric_labels = metric_labels(GROUP_NAME, zf_name)
        self.sf_metric_labels = metric_labels(GROUP_NAME, sf_name)
        self.zero_for = AlertTemplate(
            rule=Rule(
                name=zf_name,
                expr=f"{format_labels(self.zf_metric_labels)} > 10",
                labels={"foo": "bar", "rulegroup": GROUP_NAME},
                annotations={
                    "description": "This should immediately fire",
                    "template_test": ZERO_FOR_TEMPLATE_TEST,
                },
            ),
            rendered_annotations={
                "description": "This should immediately fire",
                "template_test": ZERO_FOR_TEMPLATE_RENDERED,
            },
        )
        self.small_for = AlertTemplate(
            rule=Rule(
                name=sf_name,
                expr=f"{format_labels(self.sf_metric_labels)} > 13",
                for_ms=self.for_ms,
                labels={"ba_dum": "tss", "rulegroup": GROUP_NAME},
                annotations={
                    "description": "This should fire after an interval",
                    "template_test": SMALL_FOR_TEMPLATE_TEST,
                },
            ),
            rendered_annotations={
                "description": "This should fire after an interval",
                "template_test": SMALL_FOR_TEMPLATE_RENDERED,
            },
        )
        self._group = RuleGroup(
            name=GROUP_NAME,
            interval_ms=group_interval_ms,
            rules=(self.zero_for.rule, self.small_for.rule),
        )
        self._samples = sample_slice(
            sample_interval_ms,
            "3", "5", "0x2", "9",  # 3 is at zero time.
            "0x3", "15",  # Pending or firing from 15 onwards.
            "0x12",  # Active for a while.
            "9", "0x71",  # Resolved; resolved resends stop after 15m of this.
            "11", "0x12",  # Zero 'for' alert fires again.
            "9",  # Resolved again.
        )
        # Keep observing for 20 more samples to see the inactive state.
        self.total_samples = len(self._samples) + 20
        self.classifier = self._build_classifier()

    def describe(self) -> Tuple[str, str]:
        return (
            self.group_name,
            "(1) Alert that goes directly to firing state (skipping the pending state) because of zero for duration. "
            "(2) When the for duration is non-zero and less than the evaluation interval, firing alert must be "
            "sent after the second evaluation of the rule and not before. "
            "(3) Alert that becomes active after having fired already and gone into inactive state where 'for' "
            "duration is zero and the inactive alert was not being sent anymore. "
            "(4) Alert goes into inactive when there is no more data when in firing.",
        )

    def rule_group(self) -> RuleGroup:
        return self._group

    def samples(self) -> List[TimeSeries]:
        return [
            TimeSeries(labels=dict(self.zf_metric_labels), samples=tuple(self._samples)),
            TimeSeries(labels=dict(self.sf_metric_labels), samples=tuple(self._samples)),
        ]

    def init(self, zero_time: int) -> None:
        self._origin.bind(zero_time)

    def test_until(self) -> int:
        return self._origin.at(self.total_samples * self.sample_interval_ms)

    def _at_sample(self, index: int) -> int:
        return index * self.sample_interval_ms

    def _value_at_sample(self, index: int) -> str:
        return format_value(self._samples[index].value)

    def _build_classifier(self) -> WindowClassifier:
        rw = self.sample_interval_ms / 1000.0
        gi = self.group_interval_ms / 1000.0
        active = BECOMES_ACTIVE * rw
        inactive = BECOMES_INACTIVE * rw
        active_again = ACTIVE_AGAIN * rw
        inactive_again = INACTIVE_AGAIN * rw
        return WindowClassifier(
            {
                INACTIVE: [
                    Window(0, active + gi),
                    Window(inactive - 1, active_again + gi),
                    Window(inactive_again, INACTIVE_HORIZON * rw),
                ],
                ZF_FIRING: [Window(active - 1, inactive + gi)],
                ZF_FIRING_AGAIN: [Window(active_again - 1, inactive_again + gi)],
                SF_PENDING: [Window(active - 1, active + 2 * gi)],
                SF_FIRING: [Window(active + gi, inactive + gi)],
            }
        )

    def possible_states(self, ts: int) -> frozenset:
        return self.classifier.states(self._origin.elapsed(ts))

    def _active_alerts(self, states: frozenset) -> List[Tuple[str, List[Alert], List[Alert]]]:
        """Each candidate as (description, zero-for alerts, small-for alerts)."""

        active_at = self._origin.at(self._at_sample(BECOMES_ACTIVE))
        active_at_again = self._origin.at(self._at_sample(ACTIVE_AGAIN))
        value = self._value_at_sample(BECOMES_ACTIVE)
        value_again = self._value_at_sample(ACTIVE_AGAIN)

        candidates: List[Tuple[str, List[Alert], List[Alert]]] = []
        if INACTIVE in states:
            candidates.append(("inactive", [], []))
        if ZF_FIRING in states and SF_PENDING in states:
            candidates.append(
                (
                    "firing/pending",
                    [self.zero_for.alert(AlertState.FIRING, value, active_at)],
                    [self.small_for.alert(AlertState.PENDING, value, active_at)],
                )
            )
        if ZF_FIRING in states and SF_FIRING in states:
            candidates.append(
                (
                    "firing/firing",
                    [self.zero_for.alert(AlertState.FIRING, value, active_at)],
                    [self.small_for.alert(AlertState.FIRING, value, active_at)],
                )
            )
        if ZF_FIRING_AGAIN in states:
            candidates.append(
                (
                    "firing_again",
                    [self.zero_for.alert(AlertState.FIRING, value_again, active_at_again)],
                    [],
                )
            )
        logger.debug("%s: candidates %s", self.group_name, "/".join(desc for desc, _, _ in candidates))
        return candidates

    def expected_alerts(self, ts: int) -> List[List[Alert]]:
        return [zf + sf for _, zf, sf in self._active_alerts(self.possible_states(ts))]

    def expected_rule_groups(self, ts: int) -> List[RuleGroupSnapshot]:
        expected: List[RuleGroupSnapshot] = []
        for _, zf, sf in self._active_alerts(self.possible_states(ts)):
            expected.append(
                group_snapshot(
                    self._group,
                    [
                        self.zero_for.rule_snapshot(rule_state(zf), zf),
                        self.small_for.rule_snapshot(rule_state(sf), sf),
                    ],
                )
            )
        return expected

    def expected_metrics(self, ts: int) -> List[Optional[List[QuerySample]]]:
        expected: List[Optional[List[QuerySample]]] = []
        for _, zf, sf in self._active_alerts(self.possible_states(ts)):
            if not zf and not sf:
                expected.append(None)
                continue
            expected.append(
                [self.zero_for.indicator(alert.state, ts) for alert in zf]
                + [self.small_for.indicator(alert.state, ts) for alert in sf]
            )
        return expected

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
        active = self._at_sample(BECOMES_ACTIVE)
        sf_fires = active + self.group_interval_ms
        inactive = self._at_sample(BECOMES_INACTIVE)
        active_again = self._at_sample(ACTIVE_AGAIN)
        inactive_again = self._at_sample(INACTIVE_AGAIN)

        zf_labels, zf_annotations = self.zero_for.labels, self.zero_for.rendered_annotations
        builder.firing(zf_labels, zf_annotations, start=active, until=inactive)
        builder.resolved(zf_labels, zf_annotations, starts_at=active, start=inactive, next_state=active_again)
        builder.firing(zf_labels, zf_annotations, start=active_again, until=inactive_again)
        builder.resolved(zf_labels, zf_annotations, starts_at=active_again, start=inactive_again)

        sf_labels, sf_annotations = self.small_for.labels, self.small_for.rendered_annotations
        builder.firing(sf_labels, sf_annotations, start=sf_fires, until=inactive)
        builder.resolved(sf_labels, sf_annotations, starts_at=sf_fires, start=inactive)
        return builder.build()


def zero_for_small_for() -> ZeroForSmallFor:
    return ZeroForSmallFor()
