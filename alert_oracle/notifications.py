"""Expected outbound notification timeline and the matcher that consumes it.

For every alert the engine sends a firing notification as soon as the alert
fires and resends it every ``resend_delay`` while it keeps firing. Once the
alert resolves, a resolved notification is sent and resent at the same
cadence for ``resolved_retention``, unless the alert becomes active again
first. Each expected notification carries a time tolerance and a global
ordering id; the matcher enforces both.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Tuple

from alert_oracle.errors import DefinitionError, NotificationError
from alert_oracle.models import LabelKey, Notification, label_key
from alert_oracle.settings import DEFAULT_SETTINGS, OracleSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpectedNotification:
    labels: Dict[str, str]
    annotations: Dict[str, str]
    starts_at: int
    ts: int
    resolved: bool
    resend: bool
    tolerance_ms: int
    ends_at_delta_ms: int
    ordering_id: int
    resolved_time: int
    next_state: Optional[int] = None
    burst: int = field(default=0, compare=False)

    @property
    def key(self) -> LabelKey:
        return label_key(self.labels)

    def ideal(self) -> Notification:
        """The notification a jitter-free engine would deliver."""

        ends_at = self.resolved_time if self.resolved else self.ts + self.ends_at_delta_ms
        return Notification(
            labels=dict(self.labels),
            annotations=dict(self.annotations),
            starts_at=self.starts_at,
            ends_at=ends_at,
            resolved=self.resolved,
            received_at=self.ts,
        )


class TimelineBuilder:
    """Accumulates notification bursts in generation order.

    All offsets passed in are relative to the zero time given at construction.
    """

    def __init__(self, zero_time: int, group_interval_ms: int, settings: OracleSettings = DEFAULT_SETTINGS):
        if group_interval_ms <= 0:
            raise DefinitionError("group interval must be positive")
        if settings.resend_delay_ms <= 0:
            raise DefinitionError("resend delay must be positive")
        self._zero_time = zero_time
        self._group_interval_ms = group_interval_ms
        self._settings = settings
        self._ends_at_delta = settings.ends_at_delta(group_interval_ms)
        self._events: List[ExpectedNotification] = []
        self._bursts = 0

    @property
    def ends_at_delta_ms(self) -> int:
        return self._ends_at_delta

    def _add(self, **kwargs) -> None:
        self._events.append(ExpectedNotification(ordering_id=len(self._events) + 1, **kwargs))

    def firing(
        self,
        labels: Dict[str, str],
        annotations: Dict[str, str],
        start: int,
        until: int,
        starts_at: Optional[int] = None,
    ) -> "TimelineBuilder":
        """Firing at ``start`` and resent until the alert resolves at ``until``."""

        if until <= start:
            raise DefinitionError(f"firing burst for {labels} ends before it starts")
        self._bursts += 1
        first_ts = start
        for ts in range(start, until, self._settings.resend_delay_ms):
            self._add(
                labels=dict(labels),
                annotations=dict(annotations),
                starts_at=self._zero_time + (start if starts_at is None else starts_at),
                ts=self._zero_time + ts,
                resolved=False,
                resend=ts != first_ts,
                tolerance_ms=self._group_interval_ms,
                ends_at_delta_ms=self._ends_at_delta,
                resolved_time=self._zero_time + until,
                next_state=self._zero_time + until,
                burst=self._bursts,
            )
        return self

    def resolved(
        self,
        labels: Dict[str, str],
        annotations: Dict[str, str],
        starts_at: int,
        start: int,
        next_state: Optional[int] = None,
    ) -> "TimelineBuilder":
        """Resolved at ``start``, resent for the retention window or until ``next_state``."""

        self._bursts += 1
        until = start + self._settings.resolved_retention_ms
        if next_state is not None:
            if next_state <= start:
                raise DefinitionError(f"alert {labels} becomes active again before it resolves")
            until = min(until, next_state)
        for ts in range(start, until, self._settings.resend_delay_ms):
            tolerance = self._group_interval_ms
            if ts == start:
                # The state reset can delay the first resolved notification by
                # one more evaluation; resends are re-anchored on it.
                tolerance = 2 * self._group_interval_ms
            self._add(
                labels=dict(labels),
                annotations=dict(annotations),
                starts_at=self._zero_time + starts_at,
                ts=self._zero_time + ts,
                resolved=True,
                resend=ts != start,
                tolerance_ms=tolerance,
                ends_at_delta_ms=self._ends_at_delta,
                resolved_time=self._zero_time + start,
                next_state=None if next_state is None else self._zero_time + next_state,
                burst=self._bursts,
            )
        return self

    def build(self) -> List[ExpectedNotification]:
        return list(self._events)


def ideal_stream(expected: Iterable[ExpectedNotification]) -> List[Notification]:
    """Jitter-free delivery of ``expected`` in send order."""

    ordered = sorted(expected, key=lambda exp: (exp.ts, exp.ordering_id))
    return [exp.ideal() for exp in ordered]


class NotificationMatcher:
    def __init__(self, expected: Sequence[ExpectedNotification]):
        self._queues: Dict[LabelKey, Deque[ExpectedNotification]] = {}
        previous = 0
        for exp in expected:
            if exp.ordering_id <= previous:
                raise DefinitionError(f"ordering ids must increase strictly, got {exp.ordering_id} after {previous}")
            previous = exp.ordering_id
            self._queues.setdefault(exp.key, deque()).append(exp)
        self._anchors: Dict[Tuple[LabelKey, int], int] = {}
        self.total = len(expected)
        self.consumed: List[Tuple[ExpectedNotification, Notification]] = []

    def due(self, exp: ExpectedNotification) -> int:
        """Expected send time, shifted by how late the burst actually started."""

        if not exp.resend:
            return exp.ts
        return exp.ts + self._anchors.get((exp.key, exp.burst), 0)

    def pending(self) -> List[ExpectedNotification]:
        remaining = [exp for queue in self._queues.values() for exp in queue]
        return sorted(remaining, key=lambda exp: exp.ordering_id)

    @property
    def complete(self) -> bool:
        return len(self.consumed) == self.total

    def _fail(self, message: str, notification: Notification, expected: Optional[ExpectedNotification]) -> None:
        logger.warning("notification rejected: %s", message)
        raise NotificationError(message, notification, expected)

    def observe(self, notification: Notification) -> ExpectedNotification:
        queue = self._queues.get(notification.key)
        if not queue:
            self._fail("no remaining expected notification for this alert", notification, None)
        exp = queue[0]
        due = self.due(exp)
        tolerance = exp.tolerance_ms
        if abs(notification.received_at - due) > tolerance:
            direction = "early" if notification.received_at < due else "late"
            self._fail(f"notification {notification.received_at - due:+d}ms {direction}", notification, exp)
        if notification.resolved != exp.resolved:
            self._fail(f"resolved={notification.resolved}, expected {exp.resolved}", notification, exp)
        if notification.annotations != exp.annotations:
            self._fail("annotations differ", notification, exp)
        if abs(notification.starts_at - exp.starts_at) > tolerance:
            self._fail("startsAt outside tolerance", notification, exp)
        self._check_ends_at(notification, exp)
        self._check_order(exp, notification)

        queue.popleft()
        if not exp.resend:
            self._anchors[(exp.key, exp.burst)] = notification.received_at - exp.ts
        self.consumed.append((exp, notification))
        logger.debug(
            "matched #%d %s resolved=%s resend=%s",
            exp.ordering_id,
            exp.labels.get("alertname"),
            exp.resolved,
            exp.resend,
        )
        return exp

    def _check_ends_at(self, notification: Notification, exp: ExpectedNotification) -> None:
        if notification.ends_at is None:
            self._fail("endsAt missing", notification, exp)
        if exp.resolved:
            expected_ends_at = exp.resolved_time
            if exp.resend:
                expected_ends_at += self._anchors.get((exp.key, exp.burst), 0)
        else:
            # Guards against the receiver expiring a still-firing alert.
            expected_ends_at = notification.received_at + exp.ends_at_delta_ms
        if abs(notification.ends_at - expected_ends_at) > exp.tolerance_ms:
            self._fail(f"endsAt {notification.ends_at} != {expected_ends_at}", notification, exp)

    def _check_order(self, exp: ExpectedNotification, notification: Notification) -> None:
        """Reject ``exp`` while another alert still owes an earlier notification.

        Ordering ids follow generation order, which is per rule and not per
        time: a later rule's burst can be generated before an earlier send of
        another rule. A lower id therefore only has to arrive first when its
        nominal send time is not after that of ``exp``. Nominal times are used
        because re-anchoring shifts whole bursts, not the relative order of
        sends from one evaluation.
        """

        for key, queue in self._queues.items():
            if key == exp.key or not queue:
                continue
            head = queue[0]
            if head.ordering_id < exp.ordering_id and head.ts <= exp.ts:
                self._fail(
                    f"out of order: #{exp.ordering_id} arrived before #{head.ordering_id}",
                    notification,
                    exp,
                )

    def finish(self, now: int) -> None:
        """Fail if any expected notification's window closed before ``now``."""

        overdue = [exp for exp in self.pending() if self.due(exp) + exp.tolerance_ms < now]
        if overdue:
            first = overdue[0]
            message = f"{len(overdue)} expected notifications never arrived"
            logger.warning("%s (first #%d at %d)", message, first.ordering_id, self.due(first))
            raise NotificationError(message, None, first)
