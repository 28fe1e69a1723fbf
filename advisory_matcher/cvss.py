"""
CVSS vector parsing and scoring for standard versions 2.0, 3.0, 3.1 and 4.0.

Vectors are validated here against the metric grammar of their version;
the scores themselves come from the ``cvss`` package, one calculator class
per standard.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from cvss import CVSS2, CVSS3, CVSS4, CVSSError

from .errors import ParseError
from .models import Severity


logger = logging.getLogger(__name__)

# Metric values meaning "not defined"
_UNDEFINED = frozenset({"X", "ND"})


class CvssVersion(str, Enum):
    """Supported CVSS standard versions."""

    V2 = "2.0"
    V3_0 = "3.0"
    V3_1 = "3.1"
    V4_0 = "4.0"


def _table(**groups: Dict[str, str]) -> Dict[str, Tuple[str, Tuple[str, ...]]]:
    table = {}
    for group, metrics in groups.items():
        for name, values in metrics.items():
            table[name] = (group, tuple(values.split()))
    return table


_V2_METRICS = _table(
    base={
        "AV": "L A N", "AC": "H M L", "Au": "M S N",
        "C": "N P C", "I": "N P C", "A": "N P C",
    },
    temporal={"E": "U POC F H ND", "RL": "OF TF W U ND", "RC": "UC UR C ND"},
    environmental={
        "CDP": "N L LM MH H ND", "TD": "N L M H ND",
        "CR": "L M H ND", "IR": "L M H ND", "AR": "L M H ND",
    },
)

_V3_METRICS = _table(
    base={
        "AV": "N A L P", "AC": "L H", "PR": "N L H", "UI": "N R", "S": "U C",
        "C": "H L N", "I": "H L N", "A": "H L N",
    },
    temporal={"E": "X U P F H", "RL": "X O T W U", "RC": "X U R C"},
    environmental={
        "CR": "X L M H", "IR": "X L M H", "AR": "X L M H",
        "MAV": "X N A L P", "MAC": "X L H", "MPR": "X N L H", "MUI": "X N R",
        "MS": "X U C", "MC": "X N L H", "MI": "X N L H", "MA": "X N L H",
    },
)

# CVSS 4.0 calls its temporal group "threat"
_V4_METRICS = _table(
    base={
        "AV": "N A L P", "AC": "L H", "AT": "N P", "PR": "N L H", "UI": "N P A",
        "VC": "H L N", "VI": "H L N", "VA": "H L N",
        "SC": "H L N", "SI": "H L N", "SA": "H L N",
    },
    threat={"E": "X A P U"},
    environmental={
        "CR": "X H M L", "IR": "X H M L", "AR": "X H M L",
        "MAV": "X N A L P", "MAC": "X L H", "MAT": "X N P", "MPR": "X N L H",
        "MUI": "X N P A", "MVC": "X H L N", "MVI": "X H L N", "MVA": "X H L N",
        "MSC": "X H L N", "MSI": "X S H L N", "MSA": "X S H L N",
    },
    supplemental={
        "S": "X N P", "AU": "X N Y", "R": "X A U I", "V": "X D C",
        "RE": "X L M H", "U": "X Clear Green Amber Red",
    },
)

METRIC_TABLES: Dict[CvssVersion, Dict[str, Tuple[str, Tuple[str, ...]]]] = {
    CvssVersion.V2: _V2_METRICS,
    CvssVersion.V3_0: _V3_METRICS,
    CvssVersion.V3_1: _V3_METRICS,
    CvssVersion.V4_0: _V4_METRICS,
}


@dataclass(frozen=True)
class CvssVector:
    """A validated metric set tagged with its standard version.

    Metrics are kept in the canonical order of the standard.
    """

    version: CvssVersion
    metrics: Tuple[Tuple[str, str], ...]

    def as_dict(self) -> Dict[str, str]:
        return dict(self.metrics)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.as_dict().get(name, default)

    def has_group(self, group: str) -> bool:
        """True when a metric of ``group`` carries a defined value."""
        table = METRIC_TABLES[self.version]
        return any(
            table[name][0] == group and value not in _UNDEFINED
            for name, value in self.metrics
        )

    def select(self, *groups: str) -> "CvssVector":
        """The sub-vector holding only the metrics of ``groups``."""
        table = METRIC_TABLES[self.version]
        kept = tuple((name, value) for name, value in self.metrics if table[name][0] in groups)
        return CvssVector(version=self.version, metrics=kept)

    def to_string(self) -> str:
        body = "/".join(f"{name}:{value}" for name, value in self.metrics)
        return f"CVSS:{self.version.value}/{body}"

    def __str__(self) -> str:
        return self.to_string()


@dataclass(frozen=True)
class CvssScore:
    """Scores computed from a vector.

    ``temporal`` holds the threat score for CVSS 4.0. Sub-scores are only
    defined for 2.0 and 3.x.
    """

    version: CvssVersion
    base: float
    temporal: Optional[float] = None
    environmental: Optional[float] = None
    impact: Optional[float] = None
    exploitability: Optional[float] = None

    @property
    def value(self) -> float:
        """The most specific score computed."""
        if self.environmental is not None:
            return self.environmental
        if self.temporal is not None:
            return self.temporal
        return self.base

    @property
    def severity(self) -> Severity:
        """Severity band of the base score."""
        return severity_from_score(self.base, self.version)

    @property
    def overall_severity(self) -> Severity:
        return severity_from_score(self.value, self.version)


def severity_from_score(value: float, version: CvssVersion) -> Severity:
    """Map a score to its qualitative band for the given standard version."""
    if version == CvssVersion.V2:
        if value < 4.0:
            return Severity.LOW
        if value < 7.0:
            return Severity.MEDIUM
        return Severity.HIGH
    if value == 0.0:
        return Severity.NONE
    if value < 4.0:
        return Severity.LOW
    if value < 7.0:
        return Severity.MEDIUM
    if value < 9.0:
        return Severity.HIGH
    return Severity.CRITICAL


def parse(vector: str) -> CvssVector:
    """Parse and validate a CVSS vector string such as ``CVSS:3.1/AV:N/...``.

    Raises:
        ParseError: On a missing or unknown version prefix, malformed token,
            unknown or duplicate metric, invalid value or missing base metric
    """
    if not isinstance(vector, str) or not vector.strip():
        raise ParseError("empty CVSS vector", repr(vector))

    head, *tokens = vector.strip().split("/")
    if not head.startswith("CVSS:"):
        raise ParseError("CVSS vector lacks a version prefix", vector)
    try:
        version = CvssVersion(head[len("CVSS:"):])
    except ValueError:
        raise ParseError("unsupported CVSS version", vector) from None

    table = METRIC_TABLES[version]
    seen: Dict[str, str] = {}
    for token in tokens:
        name, sep, value = token.partition(":")
        if not sep or not name or not value:
            raise ParseError(f"malformed CVSS metric token {token!r}", vector)
        if name not in table:
            raise ParseError(f"unknown CVSS {version.value} metric {name!r}", vector)
        if name in seen:
            raise ParseError(f"duplicate CVSS metric {name!r}", vector)
        if value not in table[name][1]:
            raise ParseError(f"invalid value {value!r} for CVSS metric {name!r}", vector)
        seen[name] = value

    missing = [name for name, (group, _) in table.items() if group == "base" and name not in seen]
    if missing:
        raise ParseError(f"missing mandatory CVSS metrics {', '.join(missing)}", vector)

    ordered = tuple((name, seen[name]) for name in table if name in seen)
    return CvssVector(version=version, metrics=ordered)


def _one_decimal(value: Decimal) -> float:
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _score_v2(vector: CvssVector) -> CvssScore:
    # The calculator takes 2.0 vectors without the version prefix
    calculator = CVSS2(vector.to_string()[len("CVSS:2.0/"):])
    base, temporal, environmental = calculator.scores()
    exploitability = (
        20
        * calculator.get_value("AV")
        * calculator.get_value("AC")
        * calculator.get_value("Au")
    )
    return CvssScore(
        version=vector.version,
        base=base,
        temporal=temporal,
        environmental=environmental,
        impact=_one_decimal(calculator.impact_equation()),
        exploitability=_one_decimal(exploitability),
    )


def _score_v3(vector: CvssVector) -> CvssScore:
    calculator = CVSS3(vector.to_string())
    temporal = None
    if vector.has_group("temporal"):
        temporal = float(calculator.temporal_score)
    environmental = None
    if vector.has_group("environmental"):
        environmental = float(calculator.environmental_score)
    return CvssScore(
        version=vector.version,
        base=float(calculator.base_score),
        temporal=temporal,
        environmental=environmental,
        impact=_one_decimal(max(calculator.isc, Decimal("0"))),
        exploitability=_one_decimal(calculator.esc),
    )


def _score_v4(vector: CvssVector) -> CvssScore:
    # CVSS 4.0 yields one score from whatever metrics it is given, so the
    # base, threat and environmental scores come from nested sub-vectors.
    base = CVSS4(vector.select("base").to_string()).base_score

    threat = None
    if vector.has_group("threat"):
        threat = CVSS4(vector.select("base", "threat").to_string()).base_score

    environmental = None
    if vector.has_group("environmental"):
        environmental = CVSS4(vector.to_string()).base_score

    return CvssScore(
        version=vector.version,
        base=float(base),
        temporal=None if threat is None else float(threat),
        environmental=None if environmental is None else float(environmental),
    )


_SCORERS: Dict[CvssVersion, Callable[[CvssVector], CvssScore]] = {
    CvssVersion.V2: _score_v2,
    CvssVersion.V3_0: _score_v3,
    CvssVersion.V3_1: _score_v3,
    CvssVersion.V4_0: _score_v4,
}


def score(vector: CvssVector) -> CvssScore:
    """Compute base, temporal and environmental scores of a parsed vector.

    Raises:
        ParseError: If the calculator rejects the vector
    """
    try:
        result = _SCORERS[vector.version](vector)
    except CVSSError as exc:
        raise ParseError(f"cannot score CVSS vector: {exc}", vector.to_string()) from exc
    logger.debug("Scored %s: base=%s", vector, result.base)
    return result
