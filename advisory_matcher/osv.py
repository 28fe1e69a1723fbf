"""
OSV (Open Source Vulnerabilities) export and import.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from .advisories import Advisory, validation_cause
from .cvss import CvssVersion, CvssVector
from .errors import InvalidAdvisory
from .models import Finding
from .time_utils import osv_timestamp, parse_advisory_date
from .versions import Interval, vulnerable_intervals


logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.4.0"

_SEVERITY_TYPES = {
    CvssVersion.V2: "CVSS_V2",
    CvssVersion.V3_0: "CVSS_V3",
    CvssVersion.V3_1: "CVSS_V3",
    CvssVersion.V4_0: "CVSS_V4",
}


def transformation_semver(version: str) -> str:
    """Pad short OSV version strings (``1``, ``1.2``) to semver.

    Args:
        version: Version string from an OSV event

    Returns:
        Transformed version string
    """
    if version == '0':
        return '0.0.0'
    elif version.count('.') == 0 and version.isdigit():
        return version + '.0.0'
    elif re.match(r'^\d+\.\d+$', version):
        return version + '.0'
    else:
        return version


def _events(intervals: List[Interval]) -> List[Dict[str, str]]:
    # OSV "introduced" is inclusive, so an exclusive lower bound is widened
    # to include the boundary version.
    events = []
    for interval in intervals:
        introduced = "0" if interval.lower is None else str(interval.lower.version)
        events.append({"introduced": introduced})
        if interval.upper is None:
            continue
        if interval.upper.inclusive:
            events.append({"last_affected": str(interval.upper.version)})
        else:
            events.append({"fixed": str(interval.upper.version)})
    return events


def _severity_entry(vector: CvssVector) -> Dict[str, str]:
    text = vector.to_string()
    if vector.version == CvssVersion.V2:
        # OSV carries bare CVSS 2.0 vectors
        text = text[len("CVSS:2.0/"):]
    return {"type": _SEVERITY_TYPES[vector.version], "score": text}


def _severity_band(advisory: Advisory) -> Optional[str]:
    if advisory.severity is not None:
        return advisory.severity.value
    return None


def advisory_to_osv(advisory: Advisory) -> Dict[str, Any]:
    """Export an advisory as an OSV record.

    The original range expressions travel in ``database_specific`` so that
    ``osv_to_record`` can restore them exactly.
    """
    safe_ranges = advisory.patched + advisory.unaffected
    events = _events(vulnerable_intervals(safe_ranges))
    ranges = [{"type": "SEMVER", "events": events}] if events else []

    references = []
    if advisory.url:
        references.append({"type": "ADVISORY", "url": advisory.url})
    references.extend({"type": "WEB", "url": url} for url in advisory.references)

    database_specific: Dict[str, Any] = {
        "patched": [str(r) for r in advisory.patched],
        "unaffected": [str(r) for r in advisory.unaffected],
    }
    band = _severity_band(advisory)
    if band is not None:
        database_specific["severity"] = band
    if advisory.informational is not None:
        database_specific["informational"] = advisory.informational

    record: Dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "id": advisory.id,
        "modified": osv_timestamp(advisory.withdrawn or advisory.date),
        "published": osv_timestamp(advisory.date),
        "aliases": list(advisory.aliases),
        "summary": advisory.title,
        "details": advisory.description,
        "severity": [_severity_entry(advisory.cvss)] if advisory.cvss is not None else [],
        "affected": [{
            "package": {
                "ecosystem": advisory.package.ecosystem,
                "name": advisory.package.name,
            },
            "ranges": ranges,
        }],
        "references": references,
        "database_specific": database_specific,
    }
    if advisory.withdrawn is not None:
        record["withdrawn"] = osv_timestamp(advisory.withdrawn)
    return record


def finding_to_osv(finding: Finding) -> Dict[str, Any]:
    """Export a finding: the advisory record plus the matched version."""
    record = advisory_to_osv(finding.advisory)
    affected = record["affected"][0]
    affected["versions"] = [str(finding.version)]
    if finding.paths:
        affected["database_specific"] = {
            "paths": [[str(node) for node in path] for path in finding.paths],
        }
    return record


class OsvEvent(BaseModel):
    introduced: Optional[str] = None
    fixed: Optional[str] = None
    last_affected: Optional[str] = None
    limit: Optional[str] = None


class OsvRange(BaseModel):
    type: str
    events: List[OsvEvent]


class OsvPackage(BaseModel):
    ecosystem: str
    name: str


class OsvAffected(BaseModel):
    package: OsvPackage
    ranges: Optional[List[OsvRange]] = None
    versions: Optional[List[str]] = None


class OsvSeverity(BaseModel):
    type: str
    score: str


class OsvReference(BaseModel):
    type: Optional[str] = None
    url: str


class OsvVulnerability(BaseModel):
    """The parts of an OSV record that map onto an advisory record."""

    id: str = Field(min_length=1)
    published: Optional[str] = None
    modified: Optional[str] = None
    withdrawn: Optional[str] = None
    aliases: Optional[List[str]] = None
    summary: Optional[str] = None
    details: Optional[str] = None
    severity: Optional[List[OsvSeverity]] = None
    affected: List[OsvAffected] = Field(min_length=1)
    references: Optional[List[OsvReference]] = None
    database_specific: Optional[Dict[str, Any]] = None


def _ranges_from_events(events: List[OsvEvent]) -> Tuple[List[str], List[str]]:
    """Rebuild (patched, unaffected) expressions from OSV range events.

    Versions before the first introduction are unaffected; every gap after
    a fix (or after a last affected version) is patched.
    """
    patched: List[str] = []
    unaffected: List[str] = []
    pairs: List[Tuple[str, Optional[str], bool]] = []
    introduced = None
    for event in events:
        if event.introduced is not None:
            introduced = transformation_semver(event.introduced)
        elif event.fixed is not None and introduced is not None:
            pairs.append((introduced, transformation_semver(event.fixed), False))
            introduced = None
        elif event.last_affected is not None and introduced is not None:
            pairs.append((introduced, transformation_semver(event.last_affected), True))
            introduced = None
    if introduced is not None:
        pairs.append((introduced, None, False))

    for position, (start, end, inclusive) in enumerate(pairs):
        if position == 0 and start != "0.0.0":
            unaffected.append(f"<{start}")
        if end is None:
            continue
        lower = f">{end}" if inclusive else f">={end}"
        following = pairs[position + 1][0] if position + 1 < len(pairs) else None
        patched.append(f"{lower}, <{following}" if following else lower)
    return patched, unaffected


def _cvss_from_severity(entries: List[OsvSeverity]) -> Optional[str]:
    for entry in entries:
        if not entry.type.startswith("CVSS_") or not entry.score:
            continue
        if entry.type == "CVSS_V2" and not entry.score.startswith("CVSS:"):
            return "CVSS:2.0/" + entry.score
        return entry.score
    return None


def osv_to_record(osv: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert an OSV record into the raw advisory record format.

    Only the first ``affected`` entry is used.

    Raises:
        InvalidAdvisory: If the record does not follow the OSV schema or has
            no affected package
    """
    raw_id = osv.get("id") if isinstance(osv, Mapping) else None
    try:
        vulnerability = OsvVulnerability.model_validate(osv)
    except ValidationError as exc:
        raise InvalidAdvisory(
            raw_id if isinstance(raw_id, str) else None,
            f"not a valid OSV record: {validation_cause(exc)}",
        ) from exc

    if len(vulnerability.affected) > 1:
        logger.debug(
            "OSV record %s affects %d packages; using the first",
            vulnerability.id, len(vulnerability.affected),
        )
    affected = vulnerability.affected[0]

    database_specific = vulnerability.database_specific or {}
    if "patched" in database_specific or "unaffected" in database_specific:
        patched = database_specific.get("patched") or []
        unaffected = database_specific.get("unaffected") or []
    else:
        events: List[OsvEvent] = []
        for range_data in affected.ranges or []:
            if range_data.type in ("SEMVER", "ECOSYSTEM"):
                events.extend(range_data.events)
        patched, unaffected = _ranges_from_events(events)

    url = None
    references = []
    for reference in vulnerability.references or []:
        if reference.type == "ADVISORY" and url is None:
            url = reference.url
        else:
            references.append(reference.url)

    published = parse_advisory_date(vulnerability.published or vulnerability.modified)
    record: Dict[str, Any] = {
        "id": vulnerability.id,
        "package": affected.package.name,
        "ecosystem": affected.package.ecosystem,
        "title": vulnerability.summary or "",
        "description": vulnerability.details or "",
        "date": published.isoformat() if published else None,
        "aliases": list(vulnerability.aliases or []),
        "references": references,
        "url": url,
        "patched": patched,
        "unaffected": unaffected,
    }
    withdrawn = parse_advisory_date(vulnerability.withdrawn)
    if withdrawn is not None:
        record["withdrawn"] = withdrawn.isoformat()
    cvss = _cvss_from_severity(vulnerability.severity or [])
    if cvss is not None:
        record["cvss"] = cvss
    if database_specific.get("severity"):
        record["severity"] = database_specific["severity"]
    if database_specific.get("informational"):
        record["informational"] = database_specific["informational"]
    return record
