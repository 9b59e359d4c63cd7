from __future__ import annotations

import argparse
import logging
from pathlib import Path

from alert_oracle.cases import all_cases
from alert_oracle.errors import DefinitionError
from alert_oracle.rules import write_rules_file


def render_rules(output: Path) -> int:
    cases = all_cases()
    write_rules_file(output, [case.rule_group() for case in cases])
    return len(cases)


def main() -> int:
    parser = argparse.ArgumentParser(description="Write the rule groups of every conformance case to a rules file")
    parser.add_argument("--output", type=Path, required=True, help="Rules file to write")
    parser.add_argument("--describe", action="store_true", help="Print what each case tests")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        count = render_rules(args.output)
    except DefinitionError as exc:
        print(f"error: {exc}")
        return 1
    if args.describe:
        for case in all_cases():
            title, description = case.describe()
            print(f"{title}: {description}")
    print(f"Wrote {count} rule groups to {args.output}.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
