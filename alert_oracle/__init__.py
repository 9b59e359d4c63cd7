"""Conformance oracle for Prometheus-style alert evaluation engines."""

from .cases import ConformanceCase, all_cases
from .checks import check_expected_alerts, check_expected_rule_group, check_expected_samples
from .errors import DefinitionError, ExpectationError, NotificationError, OracleError, ResponseError
from .models import Alert, AlertingRule, AlertState, Notification, QuerySample, RuleGroupSnapshot
from .notifications import ExpectedNotification, NotificationMatcher, TimelineBuilder, ideal_stream
from .rules import Rule, RuleGroup, rules_document, write_rules_file
from .samples import Sample, TimeSeries, sample_slice
from .settings import DEFAULT_SETTINGS, OracleSettings
from .windows import Window, WindowClassifier

__all__ = [
    "Alert",
    "AlertState",
    "AlertingRule",
    "ConformanceCase",
    "DEFAULT_SETTINGS",
    "DefinitionError",
    "ExpectationError",
    "ExpectedNotification",
    "Notification",
    "NotificationError",
    "NotificationMatcher",
    "OracleError",
    "OracleSettings",
    "QuerySample",
    "ResponseError",
    "Rule",
    "RuleGroup",
    "RuleGroupSnapshot",
    "Sample",
    "TimeSeries",
    "TimelineBuilder",
    "Window",
    "WindowClassifier",
    "all_cases",
    "check_expected_alerts",
    "check_expected_rule_group",
    "check_expected_samples",
    "ideal_stream",
    "rules_document",
    "sample_slice",
    "write_rules_file",
]
