import json
from pathlib import Path

import pandas as pd

from advisory_matcher.advisories import AdvisoryStore
from advisory_matcher.graph import DependencyGraph, GraphEntry
from advisory_matcher.matcher import MatchOptions, TracePaths, match
from advisory_matcher.models import PackageId
from advisory_matcher.report import Report
from advisory_matcher.reporting import (
    export_findings_csv,
    export_worksheets,
    findings_frame,
    format_finding,
    print_summary,
    save_report_json,
)


def _pkg(name):
    return PackageId("crates.io", name)


def _report():
    store = AdvisoryStore.load([
        {
            "id": "RUSTSEC-2021-0001",
            "package": "demo",
            "date": "2021-06-01",
            "title": "Heap overflow",
            "url": "https://example.com/1",
            "cvss": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
            "patched": [">=1.2.3, <2.0.0", ">=2.1.0"],
        },
        {
            "id": "RUSTSEC-2021-0002",
            "package": "demo",
            "date": "2021-05-01",
            "severity": "medium",
            "patched": [],
        },
        {
            "id": "RUSTSEC-2022-0001",
            "package": "old",
            "date": "2022-01-01",
            "informational": "unmaintained",
            "unaffected": [],
        },
    ])
    graph = DependencyGraph.from_entries([
        GraphEntry(_pkg("app"), "0.1.0"),
        GraphEntry(_pkg("demo"), "1.0.0", _pkg("app")),
        GraphEntry(_pkg("old"), "0.3.0", _pkg("app")),
    ])
    return Report(match(store, graph, MatchOptions(trace_paths=TracePaths.SHORTEST)))


def test_findings_frame_columns():
    df = findings_frame(_report().findings)
    assert list(df["advisory_id"]) == ["RUSTSEC-2021-0001", "RUSTSEC-2021-0002", "RUSTSEC-2022-0001"]
    assert list(df["severity"]) == ["critical", "medium", "unknown"]
    assert df.loc[0, "path"] == "app 0.1.0 -> demo 1.0.0"
    assert findings_frame([]).empty


def test_reporting_exports(tmp_path: Path):
    output_dir = tmp_path / "out"
    report = _report()

    report_file = save_report_json(report, output_dir)
    csv_file = export_findings_csv(report, output_dir)
    excel_file = export_worksheets(report, output_dir)

    assert json.loads(report_file.read_text())["vulnerabilities"]["count"] == 2
    assert csv_file is not None and len(pd.read_csv(csv_file)) == 3
    assert excel_file is not None and excel_file.exists()
    sheets = pd.read_excel(excel_file, sheet_name=None, engine="openpyxl")
    assert list(sheets) == ["critical", "medium", "warning-unmaintained"]


def test_exports_skip_empty_reports(tmp_path: Path):
    assert export_findings_csv(Report([]), tmp_path) is None
    assert export_worksheets(Report([]), tmp_path) is None


def test_format_finding_presenter_block():
    findings = _report().findings
    block = format_finding(findings[0])
    assert "Crate:    demo" in block
    assert "Version:  1.0.0" in block
    assert "ID:       RUSTSEC-2021-0001" in block
    assert "URL:      https://example.com/1" in block
    assert "Severity: 9.8 (critical)" in block
    assert "Solution: Upgrade to >=1.2.3, <2.0.0 OR >=2.1.0" in block
    assert "app 0.1.0 -> demo 1.0.0" in block

    assert "Solution: No fixed upgrade is available!" in format_finding(findings[1])
    warning = format_finding(findings[2])
    assert "Warning:  unmaintained" in warning
    assert "Solution" not in warning


def test_print_summary_logs_block(caplog):
    caplog.set_level("INFO")
    print_summary(_report(), graph_size=3, advisory_count=3)
    assert "AUDIT RESULTS" in caplog.text
    assert "Vulnerabilities found: 2" in caplog.text
