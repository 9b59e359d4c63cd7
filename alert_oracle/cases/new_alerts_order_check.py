from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

from alert_oracle.checks import (
    check_expected_alerts,
    check_expected_rule_group,
    check_expected_samples,
    rule_group_due,
)
from alert_oracle.expected import AlertTemplate, Origin, group_snapshot, rule_state
from alert_oracle.models import Alert, AlertState, QuerySample, RuleGroupSnapshot, label_key
from alert_oracle.notifications import ExpectedNotification, TimelineBuilder
from alert_oracle.rules import Rule, RuleGroup, format_labels, metric_labels
from alert_oracle.samples import TimeSeries, format_value, sample_slice
from alert_oracle.settings import DEFAULT_SETTINGS, MINUTE, SECOND, OracleSettings
from alert_oracle.windows import WindowClassifier, phase_windows

logger = logging.getLogger(__name__)

GROUP_NAME = "NewAlerts_OrderCheck"
RULE1 = f"{GROUP_NAME}_Rule1"
RULE2 = f"{GROUP_NAME}_Rule2"

RULE2_EXPR = (
    f'(ALERTS{{alertstate="firing", alertname="{RULE1}", foo="bar", rulegroup="{GROUP_NAME}", variant="one"}}'
    f' + ignoring(variant) ALERTS{{alertstate="firing", alertname="{RULE1}", foo="bar", '
    f'rulegroup="{GROUP_NAME}", variant="two"}}) == 2'
)
RULE2_DESCRIPTION = "Based on ALERTS. Old alertname was {{$labels.alertname}}. foo was {{.Labels.foo}}."
RULE2_DESCRIPTION_RENDERED = f"Based on ALERTS. Old alertname was {RULE1}. foo was bar."

# Sample indexes where each variant of the first rule's series changes.
ONE_ACTIVE = 4
ONE_INACTIVE = 20
TWO_ACTIVE = 6
TWO_INACTIVE = 22


class Phase(NamedTuple):
    """States of (variant one, variant two, second rule); ``None`` is inactive."""

    name: str
    one: Optional[str]
    two: Optional[str]
    derived: Optional[str]


PHASES = (
    Phase("inactive", None, None, None),
    Phase("one_pending", AlertState.PENDING, None, None),
    Phase("both_pending", AlertState.PENDING, AlertState.PENDING, None),
    Phase("one_firing", AlertState.FIRING, AlertState.PENDING, None),
    Phase("all_firing", AlertState.FIRING, AlertState.FIRING, AlertState.FIRING),
    Phase("two_firing", None, AlertState.FIRING, None),
    Phase("resolved", None, None, None),
)


class NewAlertsOrderCheck:
    """Alerts that appear while others are already firing, and a rule built on ``ALERTS``.

    The first rule yields one alert per ``variant`` of its series. The second
    rule fires once both variants fire, in the same evaluation as the second
    variant, so its notifications must trail the first rule's.
    """

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

        self._one_samples = sample_slice(sample_interval_ms, "3", "0x3", "15", "0x15", "9", "0x61")
        self._two_samples = sample_slice(sample_interval_ms, "3", "0x5", "15", "0x15", "9", "0x59")
        self.total_samples = max(len(self._one_samples), len(self._two_samples)) + 20

        self.rule1_metric_labels = metric_labels(GROUP_NAME, RULE1)
        rule1 = Rule(
            name=RULE1,
            expr=f"{format_labels(self.rule1_metric_labels)} > 10",
            for_ms=1 * MINUTE,
            labels={"foo": "bar", "rulegroup": GROUP_NAME},
            annotations={"description": "This should produce more alerts later"},
        )
        self.one = AlertTemplate(rule1, dict(rule1.annotations), series_labels={"variant": "one"})
        self.two = AlertTemplate(rule1, dict(rule1.annotations), series_labels={"variant": "two"})
        # The ALERTS series keep their alertstate label; foo is replaced by the rule's own.
        self.derived = AlertTemplate(
            rule=Rule(
                name=RULE2,
                expr=RULE2_EXPR,
                labels={"ba_dum": "tss", "foo": "baz", "rulegroup": GROUP_NAME},
                annotations={"description": RULE2_DESCRIPTION},
            ),
            rendered_annotations={"description": RULE2_DESCRIPTION_RENDERED},
            series_labels={"alertstate": AlertState.FIRING, "foo": "bar", "rulegroup": GROUP_NAME},
        )
        self._group = RuleGroup(name=GROUP_NAME, interval_ms=group_interval_ms, rules=(rule1, self.derived.rule))

        self.one_active_ms = ONE_ACTIVE * sample_interval_ms
        self.two_active_ms = TWO_ACTIVE * sample_interval_ms
        self.one_fires_ms = self._fires(self.one_active_ms, rule1.for_ms)
        self.two_fires_ms = self._fires(self.two_active_ms, rule1.for_ms)
        self.one_inactive_ms = ONE_INACTIVE * sample_interval_ms
        self.two_inactive_ms = TWO_INACTIVE * sample_interval_ms
        windows = phase_windows(
            [
                edge / 1000.0
                for edge in (
                    self.one_active_ms,
                    self.two_active_ms,
                    self.one_fires_ms,
                    self.two_fires_ms,
                    self.one_inactive_ms,
                    self.two_inactive_ms,
                )
            ],
            (self.total_samples * sample_interval_ms + group_interval_ms) / 1000.0,
            group_interval_ms / 1000.0,
        )
        self.classifier = WindowClassifier({phase.name: [window] for phase, window in zip(PHASES, windows)})

    def _fires(self, active_ms: int, for_ms: int) -> int:
        return active_ms + -(-for_ms // self.group_interval_ms) * self.group_interval_ms

    def describe(self) -> Tuple[str, str]:
        return (
            self.group_name,
            "(1) New alerts of a rule become active and fire while another alert of the same rule is firing. "
            "(2) A rule based on ALERTS fires in the same evaluation as the alert it depends on, and its "
            "notifications are sent after that alert's. "
            "(3) Both rules resolve and their resolved notifications keep that order.",
        )

    def rule_group(self) -> RuleGroup:
        return self._group

    def samples(self) -> List[TimeSeries]:
        return [
            TimeSeries(labels={**self.rule1_metric_labels, "variant": "one"}, samples=tuple(self._one_samples)),
            TimeSeries(labels={**self.rule1_metric_labels, "variant": "two"}, samples=tuple(self._two_samples)),
        ]

    def init(self, zero_time: int) -> None:
        self._origin.bind(zero_time)

    def test_until(self) -> int:
        return self._origin.at(self.total_samples * self.sample_interval_ms)

    def _phase_alerts(self, phase: Phase) -> Tuple[List[Alert], List[Alert]]:
        """The alerts of (first rule, second rule) in ``phase``."""

        rule1: List[Alert] = []
        if phase.one is not None:
            value = format_value(self._one_samples[ONE_ACTIVE].value)
            rule1.append(self.one.alert(phase.one, value, self._origin.at(self.one_active_ms)))
        if phase.two is not None:
            value = format_value(self._two_samples[TWO_ACTIVE].value)
            rule1.append(self.two.alert(phase.two, value, self._origin.at(self.two_active_ms)))
        rule2: List[Alert] = []
        if phase.derived is not None:
            # Both ALERTS series are 1.
            rule2.append(self.derived.alert(phase.derived, "2", self._origin.at(self.two_fires_ms)))
        return rule1, rule2

    def _candidates(self, ts: int) -> List[Tuple[List[Alert], List[Alert]]]:
        states = self.classifier.states(self._origin.elapsed(ts))
        phases = [phase for phase in PHASES if phase.name in states]
        logger.debug("%s: candidates %s", self.group_name, "/".join(phase.name for phase in phases))
        return [self._phase_alerts(phase) for phase in phases]

    def expected_alerts(self, ts: int) -> List[List[Alert]]:
        return [rule1 + rule2 for rule1, rule2 in self._candidates(ts)]

    def expected_rule_groups(self, ts: int) -> List[RuleGroupSnapshot]:
        return [
            group_snapshot(
                self._group,
                [
                    self.one.rule_snapshot(rule_state(rule1), rule1),
                    self.derived.rule_snapshot(rule_state(rule2), rule2),
                ],
            )
            for rule1, rule2 in self._candidates(ts)
        ]

    def expected_metrics(self, ts: int) -> List[Optional[List[QuerySample]]]:
        templates = {label_key(template.labels): template for template in (self.one, self.two, self.derived)}
        return [
            [templates[alert.key].indicator(alert.state, ts) for alert in rule1 + rule2] or None
            for rule1, rule2 in self._candidates(ts)
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
        # Within one evaluation the first rule sends before the second, so
        # its bursts are generated first.
        builder = TimelineBuilder(self._origin.zero_time, self.group_interval_ms, self.settings)
        for template, fires, inactive in (
            (self.one, self.one_fires_ms, self.one_inactive_ms),
            (self.two, self.two_fires_ms, self.two_inactive_ms),
            (self.derived, self.two_fires_ms, self.one_inactive_ms),
        ):
            builder.firing(template.labels, template.rendered_annotations, start=fires, until=inactive)
            builder.resolved(template.labels, template.rendered_annotations, starts_at=fires, start=inactive)
        return builder.build()


def new_alerts_order_check() -> NewAlertsOrderCheck:
    return NewAlertsOrderCheck()
