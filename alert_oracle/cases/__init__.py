"""Registered conformance test cases.

Every case satisfies :class:`ConformanceCase`; the driver runs whatever
:func:`all_cases` returns.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from alert_oracle.models import Alert, QuerySample, RuleGroupSnapshot
from alert_oracle.notifications import ExpectedNotification
from alert_oracle.rules import RuleGroup
from alert_oracle.samples import TimeSeries

from .new_alerts_order_check import NewAlertsOrderCheck, new_alerts_order_check
from .pending_always_inactive import PendingAndResolvedAlwaysInactive, pending_and_resolved_always_inactive
from .pending_firing_resolved import PendingAndFiringAndResolved, pending_and_firing_and_resolved
from .zero_for_small_for import ZeroForSmallFor, zero_for_small_for


class ConformanceCase(Protocol):
    def describe(self) -> Tuple[str, str]: ...

    def rule_group(self) -> RuleGroup: ...

    def samples(self) -> List[TimeSeries]: ...

    def init(self, zero_time: int) -> None: ...

    def test_until(self) -> int: ...

    def expected_alerts(self, ts: int) -> List[List[Alert]]: ...

    def expected_rule_groups(self, ts: int) -> List[RuleGroupSnapshot]: ...

    def expected_metrics(self, ts: int) -> List[Optional[List[QuerySample]]]: ...

    def check_alerts(self, ts: int, alerts: Sequence[Alert]) -> None: ...

    def check_rule_group(self, ts: int, group: Optional[RuleGroupSnapshot]) -> None: ...

    def check_metrics(self, ts: int, samples: Sequence[QuerySample]) -> None: ...

    def expected_notifications(self) -> List[ExpectedNotification]: ...


CASE_FACTORIES: Tuple[Callable[[], ConformanceCase], ...] = (
    pending_and_firing_and_resolved,
    pending_and_resolved_always_inactive,
    zero_for_small_for,
    new_alerts_order_check,
)


def all_cases() -> List[ConformanceCase]:
    return [factory() for factory in CASE_FACTORIES]


__all__ = [
    "CASE_FACTORIES",
    "ConformanceCase",
    "NewAlertsOrderCheck",
    "PendingAndFiringAndResolved",
    "PendingAndResolvedAlwaysInactive",
    "ZeroForSmallFor",
    "all_cases",
    "new_alerts_order_check",
    "pending_and_firing_and_resolved",
    "pending_and_resolved_always_inactive",
    "zero_for_small_for",
]
