import json

from advisory_matcher.advisories import AdvisoryStore
from advisory_matcher.graph import DependencyGraph, GraphEntry
from advisory_matcher.matcher import match
from advisory_matcher.models import PackageId
from advisory_matcher.report import ALL_WARNINGS, Report


def _pkg(name):
    return PackageId("crates.io", name)


def _report():
    store = AdvisoryStore.load([
        {
            "id": "RUSTSEC-2021-0001",
            "package": "demo",
            "date": "2021-06-01",
            "cvss": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
            "patched": [">=2.0.0"],
        },
        {
            "id": "RUSTSEC-2021-0002",
            "package": "demo",
            "date": "2021-07-01",
            "severity": "low",
            "patched": [">=2.0.0"],
        },
        {
            "id": "RUSTSEC-2021-0003",
            "package": "demo",
            "date": "2021-08-01",
            "patched": [],
        },
        {
            "id": "RUSTSEC-2022-0001",
            "package": "old",
            "date": "2022-01-01",
            "informational": "unmaintained",
            "unaffected": [],
        },
        {
            "id": "RUSTSEC-2022-0002",
            "package": "old",
            "date": "2022-02-01",
            "informational": "unsound",
            "patched": [],
        },
    ])
    graph = DependencyGraph.from_entries([
        GraphEntry(_pkg("app"), "0.1.0"),
        GraphEntry(_pkg("demo"), "1.0.0", _pkg("app")),
        GraphEntry(_pkg("old"), "0.3.0", _pkg("app")),
    ])
    return Report(match(store, graph))


def test_counts_and_severity_bands():
    report = _report()
    assert len(report) == 5
    assert report.count == 3
    assert report.found
    assert report.severity_counts == {
        "none": 0,
        "low": 1,
        "medium": 0,
        "high": 0,
        "critical": 1,
        "unknown": 1,
    }


def test_warnings_grouped_by_kind():
    warnings = _report().warnings
    assert list(warnings) == ["unmaintained", "unsound"]
    assert warnings["unsound"][0].advisory.id == "RUSTSEC-2022-0002"


def test_count_warnings_by_denied_kind():
    report = _report()
    assert report.count_warnings() == (0, 2)
    assert report.count_warnings(["unsound"]) == (1, 1)
    assert report.count_warnings(["unsound", "unmaintained"]) == (2, 0)
    assert report.count_warnings([ALL_WARNINGS]) == (2, 0)
    assert report.count_warnings(["yanked"]) == (0, 2)


def test_empty_report():
    report = Report([])
    assert not report.found
    assert report.count == 0
    assert report.warnings == {}
    assert sum(report.severity_counts.values()) == 0


def test_to_dict_is_json_serializable():
    data = _report().to_dict()
    encoded = json.loads(json.dumps(data))
    vulnerabilities = encoded["vulnerabilities"]
    assert vulnerabilities["count"] == 3
    assert vulnerabilities["list"][0]["advisory"]["id"] == "RUSTSEC-2021-0003"
    assert vulnerabilities["list"][-1]["score"]["base"] == 9.8
    assert set(encoded["warnings"]) == {"unmaintained", "unsound"}
