#!/usr/bin/env python3
"""
Check that docs/test_scenarios_business_summary.md describes exactly the
scenarios in tests/test_integration_scenarios.py.

Missing documentation is an error; documentation for scenarios that no
longer exist is a warning.

Run: python scripts/validate_test_docs_sync.py [--tests PATH] [--doc PATH]
"""

import argparse
import ast
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

CLASS_REF = re.compile(r"\*\*Test Class\*\*:\s*`(Test\w+)`")
METHOD_REF = re.compile(r"\*\*Test Method\*\*:\s*`(test_\w+)`")


@dataclass
class SyncReport:
    scenarios: dict[str, list[str]]
    documented_classes: set[str]
    documented_methods: set[str]
    undocumented: list[str] = field(default_factory=list)
    stale: list[str] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not self.undocumented and not self.stale


def collect_scenarios(test_file: Path) -> dict[str, list[str]]:
    """Map each top-level Test* class to its test_* methods, in source order."""
    tree = ast.parse(test_file.read_text(encoding="utf-8"))
    scenarios = {}
    for node in tree.body:
        if isinstance(node, ast.ClassDef) and node.name.startswith("Test"):
            scenarios[node.name] = [
                item.name
                for item in node.body
                if isinstance(item, ast.FunctionDef) and item.name.startswith("test_")
            ]
    return scenarios


def compare(test_file: Path, doc_file: Path) -> SyncReport:
    text = doc_file.read_text(encoding="utf-8")
    report = SyncReport(
        scenarios=collect_scenarios(test_file),
        documented_classes=set(CLASS_REF.findall(text)),
        documented_methods=set(METHOD_REF.findall(text)),
    )
    methods = {m for names in report.scenarios.values() for m in names}

    report.undocumented = sorted(
        [f"class {c}" for c in report.scenarios.keys() - report.documented_classes]
        + [f"method {m}" for m in methods - report.documented_methods]
    )
    report.stale = sorted(
        [f"class {c}" for c in report.documented_classes - report.scenarios.keys()]
        + [f"method {m}" for m in report.documented_methods - methods]
    )
    return report


def print_report(report: SyncReport, test_file: Path, doc_file: Path) -> None:
    print(f"Scenarios: {test_file.relative_to(PROJECT_ROOT)}")
    print(f"Summary:   {doc_file.relative_to(PROJECT_ROOT)}")
    print(f"{len(report.scenarios)} classes, {sum(map(len, report.scenarios.values()))} methods\n")

    for name, methods in report.scenarios.items():
        mark = "ok " if name in report.documented_classes else "MISSING"
        print(f"[{mark}] {name}")
        for method in methods:
            mark = "ok " if method in report.documented_methods else "MISSING"
            print(f"    [{mark}] {method}")

    for item in report.undocumented:
        print(f"ERROR: undocumented {item}")
    for item in report.stale:
        print(f"WARNING: documented {item} no longer exists")
    if report.in_sync:
        print("\nIn sync.")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--tests", type=Path, default=PROJECT_ROOT / "tests" / "test_integration_scenarios.py")
    parser.add_argument("--doc", type=Path, default=PROJECT_ROOT / "docs" / "test_scenarios_business_summary.md")
    args = parser.parse_args(argv)

    for path in (args.tests, args.doc):
        if not path.exists():
            print(f"ERROR: file not found: {path}")
            return 1

    report = compare(args.tests.resolve(), args.doc.resolve())
    print_report(report, args.tests.resolve(), args.doc.resolve())
    return 1 if report.undocumented else 0


if __name__ == "__main__":
    sys.exit(main())
