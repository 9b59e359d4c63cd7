from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

import yaml

from alert_oracle.errors import DefinitionError
from alert_oracle.settings import TEST_METRIC_NAME

logger = logging.getLogger(__name__)

_DURATION_UNITS: Tuple[Tuple[str, int], ...] = (
    ("y", 365 * 24 * 60 * 60 * 1000),
    ("w", 7 * 24 * 60 * 60 * 1000),
    ("d", 24 * 60 * 60 * 1000),
    ("h", 60 * 60 * 1000),
    ("m", 60 * 1000),
    ("s", 1000),
    ("ms", 1),
)


def format_duration(duration_ms: int) -> str:
    """Render milliseconds in Prometheus duration notation (``1m30s``)."""

    if duration_ms < 0:
        raise DefinitionError(f"duration must not be negative, got {duration_ms}ms")
    if duration_ms == 0:
        return "0s"
    parts: List[str] = []
    remaining = duration_ms
    for unit, size in _DURATION_UNITS:
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count}{unit}")
    return "".join(parts)


def metric_labels(group_name: str, alert_name: str) -> Dict[str, str]:
    return {"__name__": TEST_METRIC_NAME, "alertname": alert_name, "rulegroup": group_name}


def format_labels(labels: Mapping[str, str]) -> str:
    """Render a label set as a series selector, label names sorted."""

    pairs = [f"{name}={json.dumps(labels[name])}" for name in sorted(labels)]
    return "{" + ", ".join(pairs) + "}"


@dataclass(frozen=True)
class Rule:
    name: str
    expr: str
    for_ms: int = 0
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise DefinitionError("alerting rule is missing a name")
        if not self.expr:
            raise DefinitionError(f"alerting rule {self.name} is missing an expression")
        if self.for_ms < 0:
            raise DefinitionError(f"alerting rule {self.name} has a negative 'for' duration")
        for key in list(self.labels) + list(self.annotations):
            if not key:
                raise DefinitionError(f"alerting rule {self.name} has an empty label or annotation name")

    @property
    def for_seconds(self) -> float:
        return self.for_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        rule: Dict[str, Any] = {"alert": self.name, "expr": self.expr}
        if self.for_ms:
            rule["for"] = format_duration(self.for_ms)
        if self.labels:
            rule["labels"] = dict(self.labels)
        if self.annotations:
            rule["annotations"] = dict(self.annotations)
        return rule


@dataclass(frozen=True)
class RuleGroup:
    name: str
    interval_ms: int
    rules: Tuple[Rule, ...]

    def __post_init__(self) -> None:
        if not self.name:
            raise DefinitionError("rule group is missing a name")
        if self.interval_ms <= 0:
            raise DefinitionError(f"rule group {self.name} must have a positive interval")
        if not self.rules:
            raise DefinitionError(f"rule group {self.name} has no rules")
        seen = set()
        for rule in self.rules:
            if rule.name in seen:
                raise DefinitionError(f"rule group {self.name} defines {rule.name} twice")
            seen.add(rule.name)

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000.0

    def rule(self, name: str) -> Rule:
        for rule in self.rules:
            if rule.name == name:
                return rule
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval": format_duration(self.interval_ms),
            "rules": [rule.to_dict() for rule in self.rules],
        }


def rules_document(groups: Iterable[RuleGroup]) -> Dict[str, Any]:
    documents: List[Dict[str, Any]] = []
    names = set()
    for group in groups:
        if group.name in names:
            raise DefinitionError(f"rule group {group.name} is defined by more than one test case")
        names.add(group.name)
        documents.append(group.to_dict())
    return {"groups": documents}


def write_rules_file(path: Path, groups: Sequence[RuleGroup]) -> None:
    data = rules_document(groups)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False, allow_unicode=True)
    logger.info("wrote %d rule groups to %s", len(data["groups"]), path)
