"""Self-check every registered case against its own expectations.

For each case the projectors are sampled across the whole test duration:
every instant must admit at least one candidate, repeated projections must
agree, and the first candidate must pass the checks. The expected
notification timeline is then replayed without jitter through the matcher.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from alert_oracle.cases import ConformanceCase, all_cases
from alert_oracle.errors import OracleError
from alert_oracle.notifications import NotificationMatcher, ideal_stream

logger = logging.getLogger(__name__)

DEFAULT_ZERO_TIME = 1_643_114_203_000
DEFAULT_STEP_MS = 1000


@dataclass
class CaseReport:
    case: str
    instants_checked: int
    notifications_expected: int
    notifications_matched: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _check_projections(case: ConformanceCase, zero_time: int, step_ms: int) -> int:
    instants = 0
    for ts in range(zero_time, case.test_until(), step_ms):
        alerts = case.expected_alerts(ts)
        groups = case.expected_rule_groups(ts)
        metrics = case.expected_metrics(ts)
        if not alerts or not groups or not metrics:
            raise OracleError(f"no expected state at +{ts - zero_time}ms")
        if alerts != case.expected_alerts(ts) or groups != case.expected_rule_groups(ts):
            raise OracleError(f"projections differ between calls at +{ts - zero_time}ms")
        case.check_alerts(ts, alerts[0])
        case.check_rule_group(ts, groups[0])
        case.check_metrics(ts, metrics[0] or [])
        instants += 1
    return instants


def check_case(case: ConformanceCase, zero_time: int = DEFAULT_ZERO_TIME, step_ms: int = DEFAULT_STEP_MS) -> CaseReport:
    title, _ = case.describe()
    case.init(zero_time)
    report = CaseReport(case=title, instants_checked=0, notifications_expected=0, notifications_matched=0)
    try:
        report.instants_checked = _check_projections(case, zero_time, step_ms)
        expected = case.expected_notifications()
        report.notifications_expected = len(expected)
        matcher = NotificationMatcher(expected)
        stream = ideal_stream(expected)
        for notification in stream:
            matcher.observe(notification)
        report.notifications_matched = len(matcher.consumed)
        if stream:
            matcher.finish(stream[-1].received_at)
    except OracleError as exc:
        logger.warning("case %s failed its self-check: %s", title, exc)
        report.error = str(exc)
    return report


def run_self_check(zero_time: int = DEFAULT_ZERO_TIME, step_ms: int = DEFAULT_STEP_MS) -> List[CaseReport]:
    return [check_case(case, zero_time, step_ms) for case in all_cases()]


def _format_report(report: CaseReport) -> str:
    status = "ok" if report.ok else "failed"
    return (
        f"[{report.case}] {status} :: {report.instants_checked} instants, "
        f"notifications {report.notifications_matched}/{report.notifications_expected}"
    )


def _write_artifacts(reports: Sequence[CaseReport], artifact_dir: Path) -> None:
    artifact_dir.mkdir(parents=True, exist_ok=True)
    with (artifact_dir / "case_self_check.json").open("w", encoding="utf-8") as fp:
        json.dump([asdict(report) for report in reports], fp, indent=2)


def main() -> int:
    parser = argparse.ArgumentParser(description="Self-check the expected states of every conformance case")
    parser.add_argument("--artifacts", type=Path, default=None, help="Optional directory for JSON summaries")
    parser.add_argument("--step-ms", type=int, default=DEFAULT_STEP_MS, help="Spacing of checked instants")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    reports = run_self_check(step_ms=args.step_ms)
    if args.artifacts is not None:
        _write_artifacts(reports, args.artifacts)
    for report in reports:
        print(_format_report(report))
    failed = [report for report in reports if not report.ok]
    if failed:
        for report in failed:
            print(f"::error ::{report.case}: {report.error}", file=sys.stderr)
        return 1
    print("Case self-check completed successfully.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
