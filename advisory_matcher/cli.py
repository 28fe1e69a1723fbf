"""
Command-line interface for the advisory matcher.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .advisories import DEFAULT_ECOSYSTEM, AdvisoryStore, affected_versions
from .errors import AdvisoryMatcherError, LoadError
from .graph import DependencyGraph
from .interfaces import AdvisorySource, GraphSource, PackageListSource
from .matcher import MatchOptions, TracePaths, match
from .osv import advisory_to_osv
from .report import ALL_WARNINGS, Report
from .reporting import (
    export_findings_csv,
    export_worksheets,
    format_finding,
    print_summary,
    save_report_json,
)
from .sources import DirectoryAdvisorySource, JsonGraphSource, JsonPackageListSource


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FOUND = 1
EXIT_FAILURE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="advisory-matcher",
        description="Match security advisories against a resolved dependency graph"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)"
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--ecosystem",
        default=DEFAULT_ECOSYSTEM,
        help=f"Ecosystem for records that do not name one. Default: {DEFAULT_ECOSYSTEM}"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    audit = subparsers.add_parser("audit", parents=[common], help="Audit a dependency graph")
    audit.add_argument("--db", required=True, help="Advisory database directory")
    audit.add_argument("--graph", required=True, help="Dependency graph JSON file")
    audit.add_argument(
        "--binary-packages",
        default=None,
        help="JSON list of packages recovered from a built binary"
    )
    audit.add_argument(
        "--trace-paths",
        choices=[t.value for t in TracePaths],
        default=TracePaths.NONE.value,
        help="Attach dependency paths to findings. Default: none"
    )
    audit.add_argument(
        "--max-paths",
        type=int,
        default=64,
        help="Maximum paths per finding with --trace-paths all. Default: 64"
    )
    audit.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="ID",
        help="Advisory id or alias to ignore (repeatable)"
    )
    audit.add_argument("--no-cvss", action="store_true", help="Skip CVSS scoring")
    audit.add_argument("--workers", type=int, default=1, help="Matcher threads. Default: 1")
    audit.add_argument(
        "--deny",
        action="append",
        default=[],
        metavar="KIND",
        help="Exit non-zero on warnings of KIND, e.g. unmaintained or unsound; "
             f"'{ALL_WARNINGS}' denies every kind (repeatable)"
    )
    audit.add_argument(
        "--deny-warnings",
        action="store_true",
        help=f"Same as --deny {ALL_WARNINGS}"
    )
    audit.add_argument(
        "--output-dir",
        default="./output",
        help="Output directory for exported files. Default: ./output"
    )
    audit.add_argument("--json", action="store_true", help="Save the report as JSON")
    audit.add_argument("--csv", action="store_true", help="Export findings as CSV")
    audit.add_argument(
        "--worksheets",
        action="store_true",
        help="Export findings to an Excel file with one sheet per severity"
    )

    osv = subparsers.add_parser("osv", parents=[common], help="Export every advisory in OSV format")
    osv.add_argument("--db", required=True, help="Advisory database directory")
    osv.add_argument("output_dir", help="Directory where <id>.json files are written")

    lister = subparsers.add_parser(
        "list-affected-versions",
        parents=[common],
        help="Classify versions of a package against one advisory"
    )
    lister.add_argument("--db", required=True, help="Advisory database directory")
    lister.add_argument("--advisory", required=True, help="Advisory id or alias")
    lister.add_argument("versions", nargs="+", help="Versions to classify")
    return parser


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def load_store(source: AdvisorySource, ecosystem: str) -> AdvisoryStore:
    return AdvisoryStore.load(source.records(), default_ecosystem=ecosystem)


def build_graph(
    graph_source: GraphSource, package_source: Optional[PackageListSource] = None
) -> DependencyGraph:
    extra = package_source.packages() if package_source is not None else []
    return DependencyGraph.from_entries(graph_source.entries(), extra_packages=extra)


def run_audit(args) -> int:
    store = load_store(DirectoryAdvisorySource(Path(args.db)), args.ecosystem)
    package_source = None
    if args.binary_packages:
        package_source = JsonPackageListSource(Path(args.binary_packages), args.ecosystem)
    graph = build_graph(JsonGraphSource(Path(args.graph), args.ecosystem), package_source)

    options = MatchOptions(
        include_cvss=not args.no_cvss,
        trace_paths=TracePaths(args.trace_paths),
        ignore_list=frozenset(args.ignore),
        max_paths=args.max_paths,
        workers=max(1, args.workers),
    )
    report = Report(match(store, graph, options))

    for finding in report.findings:
        print(format_finding(finding))
        print()
    deny = list(args.deny)
    if args.deny_warnings:
        deny.append(ALL_WARNINGS)
    denied, allowed = report.count_warnings(deny)

    print_summary(report, len(graph), len(store))
    print(f"{report.count} vulnerabilities found, "
          f"{denied} denied warnings, {allowed} allowed warnings")

    output_dir = Path(args.output_dir)
    if args.json:
        print(f"Report saved to: {save_report_json(report, output_dir)}")
    if args.csv:
        csv_file = export_findings_csv(report, output_dir)
        if csv_file:
            print(f"Findings saved to: {csv_file}")
    if args.worksheets:
        excel_file = export_worksheets(report, output_dir)
        if excel_file:
            print(f"Worksheets saved to: {excel_file}")

    if report.found or denied:
        return EXIT_FOUND
    return EXIT_OK


def osv_file_name(advisory_id: str) -> str:
    """File name of an exported advisory.

    Raises:
        LoadError: If the id would name a path outside the output directory
    """
    if "/" in advisory_id or "\\" in advisory_id or advisory_id.startswith("."):
        raise LoadError(f"advisory id {advisory_id!r} is not usable as a file name")
    return f"{advisory_id}.json"


def run_osv(args) -> int:
    store = load_store(DirectoryAdvisorySource(Path(args.db)), args.ecosystem)
    file_names = [(advisory, osv_file_name(advisory.id)) for advisory in store]
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    for advisory, file_name in file_names:
        osv_file = output_dir / file_name
        with open(osv_file, 'w') as f:
            json.dump(advisory_to_osv(advisory), f, indent=2)
    print(f"Exported {len(store)} advisories to: {output_dir}")
    return EXIT_OK


def run_list_affected_versions(args) -> int:
    store = load_store(DirectoryAdvisorySource(Path(args.db), show_progress=False), args.ecosystem)
    advisory = store.lookup_by_alias(args.advisory)
    for version, vulnerable in affected_versions(advisory, args.versions):
        print(f"{version} {'vulnerable' if vulnerable else 'OK'}")
    return EXIT_OK


COMMANDS = {
    "audit": run_audit,
    "osv": run_osv,
    "list-affected-versions": run_list_affected_versions,
}


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        return COMMANDS[args.command](args)
    except (AdvisoryMatcherError, OSError) as e:
        logger.debug("%s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
