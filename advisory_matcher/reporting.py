"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Optional
import logging

import pandas as pd

from .models import Finding, Severity
from .report import Report, UNKNOWN_SEVERITY


logger = logging.getLogger(__name__)

FINDING_COLUMNS = [
    "ecosystem",
    "package",
    "version",
    "advisory_id",
    "aliases",
    "title",
    "date",
    "severity",
    "cvss_vector",
    "cvss_score",
    "informational",
    "patched",
    "path",
]


def findings_frame(findings: Iterable[Finding]) -> pd.DataFrame:
    """One row per finding, in match order."""
    rows = []
    for finding in findings:
        advisory = finding.advisory
        severity = finding.severity
        rows.append({
            "ecosystem": finding.package.ecosystem,
            "package": finding.package.name,
            "version": str(finding.version),
            "advisory_id": advisory.id,
            "aliases": ", ".join(advisory.aliases),
            "title": advisory.title,
            "date": advisory.date.isoformat(),
            "severity": severity.value if severity is not None else UNKNOWN_SEVERITY,
            "cvss_vector": advisory.cvss.to_string() if advisory.cvss else None,
            "cvss_score": finding.cvss.base if finding.cvss else None,
            "informational": advisory.informational,
            "patched": " OR ".join(str(r) for r in advisory.patched),
            "path": " -> ".join(str(node) for node in finding.paths[0]) if finding.paths else None,
        })
    return pd.DataFrame(rows, columns=FINDING_COLUMNS)


def print_summary(report: Report, graph_size: int, advisory_count: int) -> None:
    logger.info("\n" + "=" * 60)
    logger.info("AUDIT RESULTS")
    logger.info("=" * 60)
    logger.info("Advisories loaded: %s", advisory_count)
    logger.info("Dependencies scanned: %s", graph_size)
    logger.info("-" * 60)
    logger.info("Vulnerabilities found: %s", report.count)
    for band, count in report.severity_counts.items():
        if count:
            logger.info("  %s: %s", band, count)
    for kind, findings in report.warnings.items():
        logger.info("Warnings (%s): %s", kind, len(findings))
    logger.info("=" * 60)


def save_report_json(report: Report, output_dir: Path, name: str = "audit") -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    report_file = output_dir / f"{name}_report.json"
    with open(report_file, 'w') as f:
        json.dump(report.to_dict(), f, indent=2, default=str)
    return report_file


def export_findings_csv(report: Report, output_dir: Path, name: str = "audit") -> Optional[Path]:
    if not len(report):
        return None
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_file = output_dir / f"{name}_findings.csv"
    findings_frame(report.findings).to_csv(csv_file, index=False)
    return csv_file


def export_worksheets(report: Report, output_dir: Path, name: str = "audit") -> Optional[Path]:
    """Write one worksheet per severity band that has vulnerabilities.

    Warnings go to a sheet per informational kind.
    """
    if not len(report):
        return None
    output_dir.mkdir(parents=True, exist_ok=True)
    excel_file = output_dir / f"{name}_worksheets.xlsx"
    df = findings_frame(report.vulnerabilities)
    bands = [s.value for s in reversed(list(Severity))] + [UNKNOWN_SEVERITY]
    with pd.ExcelWriter(excel_file, engine='openpyxl') as writer:
        for band in bands:
            band_df = df[df["severity"] == band]
            if band_df.empty:
                continue
            band_df.to_excel(writer, sheet_name=band, index=False)
        for kind, findings in report.warnings.items():
            sheet_name = f"warning-{kind}"[:31]
            findings_frame(findings).to_excel(writer, sheet_name=sheet_name, index=False)
    return excel_file


def solution_text(finding: Finding) -> str:
    patched = finding.advisory.patched
    if not patched:
        return "No fixed upgrade is available!"
    return "Upgrade to " + " OR ".join(str(r) for r in patched)


def format_finding(finding: Finding) -> str:
    """Render a finding as a presenter block."""
    advisory = finding.advisory
    lines: List[str] = [
        f"Crate:    {finding.package.name}",
        f"Version:  {finding.version}",
    ]
    if finding.is_warning:
        lines.append(f"Warning:  {advisory.informational}")
    lines.extend([
        f"Title:    {advisory.title}",
        f"Date:     {advisory.date.isoformat()}",
        f"ID:       {advisory.id}",
    ])
    if advisory.url:
        lines.append(f"URL:      {advisory.url}")
    if finding.cvss is not None:
        lines.append(f"Severity: {finding.cvss.base} ({finding.cvss.severity.value})")
    elif advisory.severity is not None:
        lines.append(f"Severity: {advisory.severity.value}")
    if not finding.is_warning:
        lines.append(f"Solution: {solution_text(finding)}")
    if finding.paths:
        lines.append("Dependency tree:")
        for path in finding.paths:
            lines.append("  " + " -> ".join(str(node) for node in path))
    return "\n".join(lines)
