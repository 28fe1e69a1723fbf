"""
Semantic version parsing and range predicates.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .errors import ParseError, ParseErrorKind


_NUMERIC = r"0|[1-9]\d*"
_IDENT = r"[0-9A-Za-z-]+"
_SEMVER_RE = re.compile(
    rf"^(?P<major>{_NUMERIC})\.(?P<minor>{_NUMERIC})\.(?P<patch>{_NUMERIC})"
    rf"(?:-(?P<pre>{_IDENT}(?:\.{_IDENT})*))?"
    rf"(?:\+(?P<build>{_IDENT}(?:\.{_IDENT})*))?$"
)
_COMPARATOR_RE = re.compile(r"^(?P<op>>=|<=|>|<|=|\^|~)?\s*(?P<version>\S+)$")

_OPERATORS: Dict[str, Callable[["Version", "Version"], bool]] = {
    "=": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True, eq=False)
class Version:
    """A semantic version. Build metadata is carried but never compared."""

    major: int
    minor: int
    patch: int
    pre: Tuple[str, ...] = ()
    build: Tuple[str, ...] = ()

    @property
    def is_prerelease(self) -> bool:
        return bool(self.pre)

    def _key(self) -> tuple:
        # Numeric identifiers sort before alphanumeric ones, and a release
        # sorts after all of its pre-releases.
        pre_key = tuple(
            (0, int(ident), "") if ident.isdigit() else (1, 0, ident)
            for ident in self.pre
        )
        return (self.major, self.minor, self.patch, 0 if self.pre else 1, pre_key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __le__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() <= other._key()

    def __gt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() > other._key()

    def __ge__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() >= other._key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


def parse_version(text: str) -> Version:
    """Parse a strict ``MAJOR.MINOR.PATCH[-pre][+build]`` version string.

    Raises:
        ParseError: If the string deviates from the grammar
    """
    if not isinstance(text, str):
        raise ParseError("version must be a string", repr(text))
    match = _SEMVER_RE.match(text.strip())
    if not match:
        raise ParseError("malformed version", text)

    pre = tuple(match.group("pre").split(".")) if match.group("pre") else ()
    for ident in pre:
        if ident.isdigit() and len(ident) > 1 and ident.startswith("0"):
            raise ParseError("numeric pre-release identifier has a leading zero", text)
    build = tuple(match.group("build").split(".")) if match.group("build") else ()

    return Version(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        pre=pre,
        build=build,
    )


@dataclass(frozen=True)
class Comparator:
    """A single ``(operator, version)`` clause."""

    op: str
    version: Version

    def matches(self, version: Version) -> bool:
        return _OPERATORS[self.op](version, self.version)

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


@dataclass(frozen=True)
class Bound:
    """One end of an interval of versions."""

    version: Version
    inclusive: bool


@dataclass(frozen=True)
class Interval:
    """A contiguous set of versions; a None bound is unbounded."""

    lower: Optional[Bound] = None
    upper: Optional[Bound] = None

    def contains(self, version: Version) -> bool:
        if self.lower is not None:
            if version < self.lower.version:
                return False
            if version == self.lower.version and not self.lower.inclusive:
                return False
        if self.upper is not None:
            if version > self.upper.version:
                return False
            if version == self.upper.version and not self.upper.inclusive:
                return False
        return True

    def __str__(self) -> str:
        parts = []
        if self.lower is not None:
            parts.append(f"{'>=' if self.lower.inclusive else '>'}{self.lower.version}")
        if self.upper is not None:
            parts.append(f"{'<=' if self.upper.inclusive else '<'}{self.upper.version}")
        return ", ".join(parts) if parts else "*"


@dataclass(frozen=True)
class VersionRange:
    """A non-empty conjunction of comparators."""

    comparators: Tuple[Comparator, ...]

    def __post_init__(self) -> None:
        if not self.comparators:
            raise ParseError("version range has no comparators", kind=ParseErrorKind.EMPTY_RANGE)

    def contains(self, version: Version) -> bool:
        return all(comparator.matches(version) for comparator in self.comparators)

    def bounds(self) -> Optional[Interval]:
        """Return the interval this range describes, or None if it is empty."""
        lower: Optional[Bound] = None
        upper: Optional[Bound] = None
        for comparator in self.comparators:
            version = comparator.version
            if comparator.op in ("=", ">", ">="):
                candidate = Bound(version, comparator.op != ">")
                if lower is None or _tighter_lower(candidate, lower):
                    lower = candidate
            if comparator.op in ("=", "<", "<="):
                candidate = Bound(version, comparator.op != "<")
                if upper is None or _tighter_upper(candidate, upper):
                    upper = candidate

        if lower is not None and upper is not None:
            if lower.version > upper.version:
                return None
            if lower.version == upper.version and not (lower.inclusive and upper.inclusive):
                return None
        return Interval(lower, upper)

    def __str__(self) -> str:
        return ", ".join(str(comparator) for comparator in self.comparators)


def _tighter_lower(candidate: Bound, current: Bound) -> bool:
    if candidate.version != current.version:
        return candidate.version > current.version
    return not candidate.inclusive


def _tighter_upper(candidate: Bound, current: Bound) -> bool:
    if candidate.version != current.version:
        return candidate.version < current.version
    return not candidate.inclusive


def _expand(op: str, version: Version) -> List[Comparator]:
    """Desugar caret and tilde requirements into primitive comparators."""
    if op == "^":
        if version.major > 0:
            ceiling = Version(version.major + 1, 0, 0)
        elif version.minor > 0:
            ceiling = Version(0, version.minor + 1, 0)
        else:
            ceiling = Version(0, 0, version.patch + 1)
        return [Comparator(">=", version), Comparator("<", ceiling)]
    if op == "~":
        return [Comparator(">=", version), Comparator("<", Version(version.major, version.minor + 1, 0))]
    return [Comparator(op, version)]


def parse_range(text: str) -> VersionRange:
    """Parse a comma-separated list of comparators, e.g. ``>= 1.2.3, < 2.0.0``.

    Raises:
        ParseError: ``EMPTY_RANGE`` for an empty range or clause,
            ``MALFORMED`` for anything else that does not parse
    """
    if not isinstance(text, str):
        raise ParseError("version range must be a string", repr(text))
    if not text.strip():
        raise ParseError("empty version range", text, kind=ParseErrorKind.EMPTY_RANGE)

    comparators: List[Comparator] = []
    for clause in text.split(","):
        clause = clause.strip()
        if not clause:
            raise ParseError("empty comparator in version range", text, kind=ParseErrorKind.EMPTY_RANGE)
        match = _COMPARATOR_RE.match(clause)
        if not match:
            raise ParseError("malformed comparator in version range", text)
        try:
            version = parse_version(match.group("version"))
        except ParseError as exc:
            raise ParseError(f"malformed version range ({exc})", text) from exc
        comparators.extend(_expand(match.group("op") or "=", version))

    return VersionRange(tuple(comparators))


def satisfies(
    version: Union[Version, str],
    version_range: Union[VersionRange, str],
) -> bool:
    """Return True if ``version`` satisfies every comparator of the range."""
    if isinstance(version, str):
        version = parse_version(version)
    if isinstance(version_range, str):
        version_range = parse_range(version_range)
    return version_range.contains(version)


def _lower_sort_key(interval: Interval) -> tuple:
    if interval.lower is None:
        return (0,)
    return (1, interval.lower.version, 0 if interval.lower.inclusive else 1)


def _touches(current: Interval, following: Interval) -> bool:
    if current.upper is None or following.lower is None:
        return True
    if following.lower.version != current.upper.version:
        return following.lower.version < current.upper.version
    return following.lower.inclusive or current.upper.inclusive


def _max_upper(first: Optional[Bound], second: Optional[Bound]) -> Optional[Bound]:
    if first is None or second is None:
        return None
    if first.version != second.version:
        return first if first.version > second.version else second
    return first if first.inclusive else second


def vulnerable_intervals(safe_ranges: Iterable[VersionRange]) -> List[Interval]:
    """Return the complement of the union of ``safe_ranges``.

    The result is a sorted list of disjoint intervals covering every version
    that no safe range matches.
    """
    intervals = [r.bounds() for r in safe_ranges]
    ordered = sorted((i for i in intervals if i is not None), key=_lower_sort_key)

    merged: List[Interval] = []
    for interval in ordered:
        if merged and _touches(merged[-1], interval):
            last = merged[-1]
            merged[-1] = Interval(last.lower, _max_upper(last.upper, interval.upper))
        else:
            merged.append(interval)

    result: List[Interval] = []
    cursor: Optional[Bound] = None
    for interval in merged:
        if interval.lower is not None:
            upper = Bound(interval.lower.version, not interval.lower.inclusive)
            gap = Interval(cursor, upper)
            if cursor is None or gap.lower.version < upper.version or (
                gap.lower.inclusive and upper.inclusive
            ):
                result.append(gap)
        if interval.upper is None:
            return result
        cursor = Bound(interval.upper.version, not interval.upper.inclusive)

    result.append(Interval(cursor, None))
    return result
