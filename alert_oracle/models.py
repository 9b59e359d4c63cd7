"""Observed and expected records exchanged with the engine under test.

Every timestamp is an integer number of milliseconds since the Unix epoch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

LabelKey = Tuple[Tuple[str, str], ...]


class AlertState:
    INACTIVE = "inactive"
    PENDING = "pending"
    FIRING = "firing"


def label_key(labels: Mapping[str, str]) -> LabelKey:
    return tuple(sorted(labels.items()))


@dataclass(frozen=True)
class Alert:
    """An alert as listed by the engine's alerts API."""

    labels: Dict[str, str]
    annotations: Dict[str, str]
    state: str
    value: str
    active_at: Optional[int] = None

    @property
    def key(self) -> LabelKey:
        return label_key(self.labels)


@dataclass(frozen=True)
class AlertingRule:
    name: str
    query: str
    state: str
    labels: Dict[str, str]
    annotations: Dict[str, str]
    duration: float = 0.0
    alerts: Tuple[Alert, ...] = ()
    health: str = "ok"
    type: str = "alerting"


@dataclass(frozen=True)
class RuleGroupSnapshot:
    name: str
    interval: float
    rules: Tuple[AlertingRule, ...] = ()


@dataclass(frozen=True)
class QuerySample:
    """One element of an instant-query vector."""

    metric: Dict[str, str]
    timestamp: int
    value: float

    @property
    def key(self) -> LabelKey:
        return label_key(self.metric)


@dataclass(frozen=True)
class Notification:
    """One alert as delivered by the engine's outbound notification path."""

    labels: Dict[str, str]
    annotations: Dict[str, str]
    starts_at: int
    ends_at: Optional[int]
    resolved: bool
    received_at: int
    generator_url: str = field(default="", compare=False)

    @property
    def key(self) -> LabelKey:
        return label_key(self.labels)
