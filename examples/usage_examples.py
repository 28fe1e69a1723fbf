#!/usr/bin/env python3
"""
Example script showing how to use the advisory-matcher library.
"""

import json
from pathlib import Path

from advisory_matcher import (
    AdvisoryStore,
    DependencyGraph,
    GraphEntry,
    MatchOptions,
    PackageId,
    Report,
    TracePaths,
    match,
)
from advisory_matcher import cvss
from advisory_matcher.osv import advisory_to_osv
from advisory_matcher.reporting import export_worksheets, format_finding


ADVISORIES = [
    {
        "id": "RUSTSEC-2021-0001",
        "package": "smallvec",
        "date": "2021-01-08",
        "title": "Buffer overflow in SmallVec::insert_many",
        "aliases": ["CVE-2021-25900"],
        "cvss": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
        "patched": [">=0.6.14, <1.0.0", ">=1.6.1"],
    },
    {
        "id": "RUSTSEC-2020-0036",
        "package": "failure",
        "date": "2020-05-02",
        "title": "failure is officially deprecated/unmaintained",
        "informational": "unmaintained",
        "unaffected": [],
    },
]


def example_graph():
    app = PackageId("crates.io", "app")
    return DependencyGraph.from_entries([
        GraphEntry(app, "0.1.0"),
        GraphEntry(PackageId("crates.io", "parser"), "2.0.0", app),
        GraphEntry(PackageId("crates.io", "smallvec"), "1.6.0", PackageId("crates.io", "parser")),
        GraphEntry(PackageId("crates.io", "failure"), "0.1.8", app),
    ])


def example_audit():
    """Example: Match advisories against a small graph."""
    print("="*60)
    print("Example 1: Audit")
    print("="*60)

    store = AdvisoryStore.load(ADVISORIES)
    options = MatchOptions(trace_paths=TracePaths.SHORTEST)
    report = Report(match(store, example_graph(), options))

    for finding in report.findings:
        print()
        print(format_finding(finding))
    print(f"\nVulnerabilities: {report.count}")
    print(f"Severity counts: {report.severity_counts}")
    return report


def example_cvss():
    """Example: Score a CVSS vector."""
    print("\n" + "="*60)
    print("Example 2: CVSS Scoring")
    print("="*60)

    vector = cvss.parse("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/E:U/RL:O/RC:C")
    result = cvss.score(vector)
    print(f"Vector: {vector}")
    print(f"Base: {result.base} ({result.severity.value})")
    print(f"Temporal: {result.temporal} ({result.overall_severity.value})")


def example_osv_export():
    """Example: Export advisories in OSV format."""
    print("\n" + "="*60)
    print("Example 3: OSV Export")
    print("="*60)

    store = AdvisoryStore.load(ADVISORIES)
    advisory = store.lookup_by_alias("CVE-2021-25900")
    print(json.dumps(advisory_to_osv(advisory), indent=2))


if __name__ == "__main__":
    report = example_audit()
    example_cvss()
    example_osv_export()

    excel_file = export_worksheets(report, Path("./output/examples"))
    print("\n" + "="*60)
    print(f"Worksheets saved to: {excel_file}")
    print("="*60)
