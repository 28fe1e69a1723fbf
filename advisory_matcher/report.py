"""
Aggregated view over a list of findings.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Tuple

from .models import Finding, Severity


UNKNOWN_SEVERITY = "unknown"

# Deny option covering every warning kind
ALL_WARNINGS = "warnings"


class Report:
    """Immutable summary of one match run.

    Informational advisories (unmaintained, unsound, notice) are reported
    as warnings grouped by kind; every other finding is a vulnerability.
    """

    def __init__(self, findings: Iterable[Finding]) -> None:
        self._findings: Tuple[Finding, ...] = tuple(findings)

    @property
    def findings(self) -> Tuple[Finding, ...]:
        return self._findings

    @property
    def vulnerabilities(self) -> Tuple[Finding, ...]:
        return tuple(f for f in self._findings if not f.is_warning)

    @property
    def warnings(self) -> Dict[str, Tuple[Finding, ...]]:
        grouped: Dict[str, List[Finding]] = {}
        for finding in self._findings:
            if finding.is_warning:
                grouped.setdefault(finding.advisory.informational, []).append(finding)
        return {kind: tuple(items) for kind, items in sorted(grouped.items())}

    def count_warnings(self, deny: Iterable[str] = ()) -> Tuple[int, int]:
        """Split the warning count into ``(denied, allowed)``.

        ``deny`` names warning kinds; ``ALL_WARNINGS`` denies every kind.
        """
        kinds = frozenset(deny)
        denied = allowed = 0
        for kind, findings in self.warnings.items():
            if ALL_WARNINGS in kinds or kind in kinds:
                denied += len(findings)
            else:
                allowed += len(findings)
        return denied, allowed

    @property
    def count(self) -> int:
        return len(self.vulnerabilities)

    @property
    def found(self) -> bool:
        return self.count > 0

    @property
    def severity_counts(self) -> Dict[str, int]:
        """Vulnerability counts per severity band, ``unknown`` when unrated."""
        counts = {severity.value: 0 for severity in Severity}
        counts[UNKNOWN_SEVERITY] = 0
        for finding in self.vulnerabilities:
            severity = finding.severity
            counts[severity.value if severity is not None else UNKNOWN_SEVERITY] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable report."""
        return {
            "vulnerabilities": {
                "found": self.found,
                "count": self.count,
                "severity_counts": self.severity_counts,
                "list": [finding_to_dict(f) for f in self.vulnerabilities],
            },
            "warnings": {
                kind: [finding_to_dict(f) for f in findings]
                for kind, findings in self.warnings.items()
            },
        }

    def __len__(self) -> int:
        return len(self._findings)


def finding_to_dict(finding: Finding) -> Dict[str, Any]:
    advisory = finding.advisory
    severity = finding.severity
    result: Dict[str, Any] = {
        "advisory": {
            "id": advisory.id,
            "package": advisory.package.name,
            "ecosystem": advisory.package.ecosystem,
            "title": advisory.title,
            "date": advisory.date.isoformat(),
            "aliases": list(advisory.aliases),
            "url": advisory.url,
            "cvss": advisory.cvss.to_string() if advisory.cvss else None,
            "informational": advisory.informational,
        },
        "package": {
            "name": finding.package.name,
            "ecosystem": finding.package.ecosystem,
            "version": str(finding.version),
        },
        "versions": {
            "patched": [str(r) for r in advisory.patched],
            "unaffected": [str(r) for r in advisory.unaffected],
        },
        "severity": severity.value if severity is not None else None,
        "paths": [[str(node) for node in path] for path in finding.paths],
    }
    if finding.cvss is not None:
        result["score"] = {
            "base": finding.cvss.base,
            "temporal": finding.cvss.temporal,
            "environmental": finding.cvss.environmental,
        }
    return result
