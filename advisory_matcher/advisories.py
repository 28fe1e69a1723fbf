"""
Advisory records: validation at the load boundary and the immutable store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Annotated, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from .cvss import CvssVector, parse as parse_cvss
from .errors import AdvisoryNotFound, InvalidAdvisory, ParseError
from .models import PackageId, Severity
from .time_utils import parse_advisory_date
from .versions import Version, VersionRange, parse_range, parse_version


logger = logging.getLogger(__name__)

DEFAULT_ECOSYSTEM = "crates.io"


@dataclass(frozen=True)
class Advisory:
    """A validated security advisory for a single package."""

    id: str
    package: PackageId
    date: date
    title: str = ""
    description: str = ""
    aliases: Tuple[str, ...] = ()
    references: Tuple[str, ...] = ()
    url: Optional[str] = None
    withdrawn: Optional[date] = None
    patched: Tuple[VersionRange, ...] = ()
    unaffected: Tuple[VersionRange, ...] = ()
    cvss: Optional[CvssVector] = None
    cvss_raw: Optional[str] = None
    severity: Optional[Severity] = None
    informational: Optional[str] = None

    @property
    def is_withdrawn(self) -> bool:
        return self.withdrawn is not None

    def is_vulnerable(self, version: Version) -> bool:
        """True unless a patched or unaffected range covers ``version``.

        With no ranges at all, every version is vulnerable.
        """
        if any(r.contains(version) for r in self.patched):
            return False
        if any(r.contains(version) for r in self.unaffected):
            return False
        return True


def affected_versions(
    advisory: Advisory, versions: Iterable[Union[str, Version]]
) -> List[Tuple[Version, bool]]:
    """Classify published versions of the advisory's package.

    Returns:
        ``(version, vulnerable)`` pairs in input order
    """
    results = []
    for item in versions:
        version = parse_version(item) if isinstance(item, str) else item
        results.append((version, advisory.is_vulnerable(version)))
    return results


def _advisory_date(value: Any) -> date:
    parsed = parse_advisory_date(value)
    if parsed is None:
        raise ValueError(f"invalid date {value!r}")
    return parsed


def _version_range(value: Any) -> VersionRange:
    if not isinstance(value, str):
        raise ValueError("range expressions must be strings")
    return parse_range(value)


AdvisoryDate = Annotated[date, BeforeValidator(_advisory_date)]
RangeExpression = Annotated[VersionRange, BeforeValidator(_version_range)]
SeverityBand = Annotated[Severity, BeforeValidator(Severity.parse)]


class AdvisoryRecord(BaseModel):
    """Structural schema of a raw advisory record."""

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    id: str
    package: str
    date: AdvisoryDate
    ecosystem: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    withdrawn: Optional[AdvisoryDate] = None
    aliases: Optional[List[str]] = None
    references: Optional[List[str]] = None
    url: Optional[str] = None
    cvss: Optional[str] = None
    severity: Optional[SeverityBand] = None
    informational: Optional[str] = None
    patched: Optional[List[RangeExpression]] = None
    unaffected: Optional[List[RangeExpression]] = None

    @field_validator("id", "package")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @model_validator(mode="after")
    def _has_ranges(self) -> "AdvisoryRecord":
        if "patched" not in self.model_fields_set and "unaffected" not in self.model_fields_set:
            raise ValueError("one of 'patched' or 'unaffected' is required")
        return self


def validation_cause(error: ValidationError) -> str:
    details = []
    for item in error.errors():
        loc = " -> ".join(str(part) for part in item["loc"])
        details.append(f"{loc}: {item['msg']}" if loc else item["msg"])
    return "; ".join(details)


def parse_advisory(record: Mapping[str, Any], default_ecosystem: str = DEFAULT_ECOSYSTEM) -> Advisory:
    """Validate one raw advisory record.

    ``AdvisoryRecord`` checks the structure along with dates, ranges and
    severity. An unparsable CVSS vector is logged and dropped; every other
    problem raises.

    Raises:
        InvalidAdvisory: If the record cannot be trusted
    """
    if not isinstance(record, Mapping):
        raise InvalidAdvisory(None, "record is not a mapping")
    raw_id = record.get("id")
    advisory_id = raw_id.strip() if isinstance(raw_id, str) and raw_id.strip() else None

    try:
        validated = AdvisoryRecord.model_validate(dict(record))
    except ValidationError as exc:
        raise InvalidAdvisory(advisory_id, validation_cause(exc)) from exc

    vector = None
    if validated.cvss:
        try:
            vector = parse_cvss(validated.cvss)
        except ParseError as exc:
            logger.warning("Advisory %s: ignoring CVSS vector, advisory kept without score: %s", validated.id, exc)

    informational = validated.informational
    return Advisory(
        id=validated.id,
        package=PackageId(validated.ecosystem or default_ecosystem, validated.package),
        date=validated.date,
        title=validated.title or "",
        description=validated.description or "",
        aliases=tuple(validated.aliases or ()),
        references=tuple(validated.references or ()),
        url=validated.url,
        withdrawn=validated.withdrawn,
        patched=tuple(validated.patched or ()),
        unaffected=tuple(validated.unaffected or ()),
        cvss=vector,
        cvss_raw=validated.cvss,
        severity=validated.severity,
        informational=informational.strip().lower() if informational else None,
    )


class AdvisoryStore:
    """Immutable index of advisories by package and by id/alias."""

    def __init__(self, advisories: Iterable[Advisory]) -> None:
        by_package: Dict[PackageId, List[Advisory]] = {}
        by_id: Dict[str, Advisory] = {}
        ordered: List[Advisory] = []

        for advisory in advisories:
            if advisory.id in by_id:
                raise InvalidAdvisory(advisory.id, "duplicate advisory id")
            by_id[advisory.id] = advisory
            by_package.setdefault(advisory.package, []).append(advisory)
            ordered.append(advisory)

        by_alias = dict(by_id)
        for advisory in ordered:
            for alias in advisory.aliases:
                owner = by_alias.setdefault(alias, advisory)
                if owner is not advisory:
                    logger.debug("Alias %s of %s already resolves to %s", alias, advisory.id, owner.id)

        self._advisories: Tuple[Advisory, ...] = tuple(ordered)
        self._by_package = MappingProxyType({k: tuple(v) for k, v in by_package.items()})
        self._by_alias = MappingProxyType(by_alias)

    @classmethod
    def load(
        cls,
        raw_records: Iterable[Mapping[str, Any]],
        default_ecosystem: str = DEFAULT_ECOSYSTEM,
    ) -> "AdvisoryStore":
        """Build a store from raw records, all or nothing.

        Args:
            raw_records: Advisory documents
            default_ecosystem: Ecosystem for records that do not name one

        Raises:
            InvalidAdvisory: If any record fails validation; no partial
                store is ever returned
        """
        advisories = [parse_advisory(record, default_ecosystem) for record in raw_records]
        store = cls(advisories)
        logger.info(
            "Loaded %d advisories for %d packages", len(store), len(store._by_package)
        )
        return store

    def lookup(self, package: PackageId) -> Tuple[Advisory, ...]:
        return self._by_package.get(package, ())

    def lookup_by_alias(self, identifier: str) -> Advisory:
        """Resolve an advisory id or alias (e.g. a CVE id).

        Raises:
            AdvisoryNotFound: If nothing is known under ``identifier``
        """
        try:
            return self._by_alias[identifier]
        except KeyError:
            raise AdvisoryNotFound(identifier) from None

    @property
    def packages(self) -> Tuple[PackageId, ...]:
        return tuple(self._by_package)

    def __len__(self) -> int:
        return len(self._advisories)

    def __iter__(self) -> Iterator[Advisory]:
        return iter(self._advisories)
