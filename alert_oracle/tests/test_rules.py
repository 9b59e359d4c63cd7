from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from alert_oracle.cases import ZeroForSmallFor, all_cases
from alert_oracle.errors import DefinitionError
from alert_oracle.rules import (
    Rule,
    RuleGroup,
    format_duration,
    format_labels,
    metric_labels,
    rules_document,
    write_rules_file,
)


@pytest.mark.parametrize(
    "duration_ms, expected",
    [
        (0, "0s"),
        (5_000, "5s"),
        (10_000, "10s"),
        (60_000, "1m"),
        (90_000, "1m30s"),
        (1_500, "1s500ms"),
        (2 * 60 * 60 * 1000, "2h"),
    ],
)
def test_format_duration(duration_ms: int, expected: str) -> None:
    assert format_duration(duration_ms) == expected


def test_selector_sorts_label_names() -> None:
    labels = metric_labels("ZeroFor_SmallFor", "ZeroFor_SmallFor_ZeroFor")
    assert format_labels(labels) == (
        '{__name__="alert_generator_test_suite", alertname="ZeroFor_SmallFor_ZeroFor", rulegroup="ZeroFor_SmallFor"}'
    )


def test_zero_for_group_matches_rule_file_schema() -> None:
    data = ZeroForSmallFor().rule_group().to_dict()

    assert data["name"] == "ZeroFor_SmallFor"
    assert data["interval"] == "10s"
    zero_for, small_for = data["rules"]
    assert list(zero_for) == ["alert", "expr", "labels", "annotations"]
    assert zero_for["alert"] == "ZeroFor_SmallFor_ZeroFor"
    assert zero_for["expr"].endswith("} > 10")
    assert zero_for["labels"] == {"foo": "bar", "rulegroup": "ZeroFor_SmallFor"}
    assert small_for["for"] == "5s"
    assert small_for["expr"].endswith("} > 13")
    assert small_for["annotations"]["description"] == "This should fire after an interval"


def test_write_rules_file_preserves_templates(tmp_path: Path) -> None:
    target = tmp_path / "out" / "rules.yaml"
    write_rules_file(target, [case.rule_group() for case in all_cases()])

    with target.open("r", encoding="utf-8") as handle:
        manifest = yaml.safe_load(handle)

    names = [group["name"] for group in manifest["groups"]]
    assert names == [
        "PendingAndFiringAndResolved",
        "PendingAndResolved_AlwaysInactive",
        "ZeroFor_SmallFor",
        "NewAlerts_OrderCheck",
    ]
    annotations = {
        rule["alert"]: rule["annotations"]
        for group in manifest["groups"]
        for rule in group["rules"]
    }
    assert annotations["ZeroFor_SmallFor_ZeroFor"]["template_test"].startswith("{{humanize 1048576}}")
    assert annotations["PendingAndFiringAndResolved_SimpleAlert"]["summary"] == "The value is {{$value}} {{.Value}}"

    order_check = manifest["groups"][3]["rules"]
    assert order_check[0]["for"] == "1m"
    assert "for" not in order_check[1]
    assert order_check[1]["expr"].startswith('(ALERTS{alertstate="firing", alertname="NewAlerts_OrderCheck_Rule1"')
    assert order_check[1]["labels"] == {"ba_dum": "tss", "foo": "baz", "rulegroup": "NewAlerts_OrderCheck"}


def test_rules_document_rejects_duplicate_groups() -> None:
    group = ZeroForSmallFor().rule_group()
    with pytest.raises(DefinitionError):
        rules_document([group, group])


def test_rule_group_invariants() -> None:
    rule = Rule(name="A", expr="up == 0")
    with pytest.raises(DefinitionError):
        RuleGroup(name="g", interval_ms=0, rules=(rule,))
    with pytest.raises(DefinitionError):
        RuleGroup(name="g", interval_ms=10_000, rules=(rule, Rule(name="A", expr="up == 1")))
    with pytest.raises(DefinitionError):
        RuleGroup(name="g", interval_ms=10_000, rules=())
    with pytest.raises(DefinitionError):
        Rule(name="B", expr="up", for_ms=-1)
    with pytest.raises(DefinitionError):
        Rule(name="C", expr="")


def test_rule_lookup_keeps_declared_order() -> None:
    group = ZeroForSmallFor().rule_group()
    assert [rule.name for rule in group.rules] == ["ZeroFor_SmallFor_ZeroFor", "ZeroFor_SmallFor_SmallFor"]
    assert group.rule("ZeroFor_SmallFor_SmallFor").for_seconds == 5.0
    with pytest.raises(KeyError):
        group.rule("missing")
