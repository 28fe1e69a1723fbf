"""
Advisory Matcher

Match security advisories against resolved dependency graphs, score their
CVSS vectors and export findings.
"""

__version__ = "0.1.0"

from .advisories import Advisory, AdvisoryStore, affected_versions
from .graph import DependencyGraph, GraphEntry
from .matcher import MatchOptions, TracePaths, match
from .models import DependencyNode, Finding, PackageId, Severity
from .report import Report
from .versions import Version, VersionRange, parse_range, parse_version, satisfies

__all__ = [
    "Advisory",
    "AdvisoryStore",
    "DependencyGraph",
    "DependencyNode",
    "Finding",
    "GraphEntry",
    "MatchOptions",
    "PackageId",
    "Report",
    "Severity",
    "TracePaths",
    "Version",
    "VersionRange",
    "affected_versions",
    "match",
    "parse_range",
    "parse_version",
    "satisfies",
]
